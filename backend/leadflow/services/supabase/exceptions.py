class SupabaseAPIError(Exception):
    """Base exception for Supabase API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SupabaseAuthError(SupabaseAPIError):
    """Authentication or row-level security rejected the request."""

    pass


class SupabaseRateLimitError(SupabaseAPIError):
    """Rate limit exceeded."""

    pass


class SupabaseNotFoundError(SupabaseAPIError):
    """Table, row or function not found."""

    pass


class SupabaseConfigError(SupabaseAPIError):
    """Project URL or API key missing."""

    pass


class SupabaseFunctionError(SupabaseAPIError):
    """An edge function rejected the invocation."""

    def __init__(
        self,
        message: str,
        function_name: str,
        status_code: int | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.function_name = function_name
