from pydantic import BaseModel


class SupabaseConfig(BaseModel):
    """Configuration for the Supabase REST and edge-function client."""

    url: str = ""
    anon_key: str = ""
    access_token: str = ""
    rest_path: str = "/rest/v1"
    functions_path: str = "/functions/v1"
    timeout_seconds: float = 30.0
    function_timeout_seconds: float = 60.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    max_retries: int = 3

    @property
    def base_url(self) -> str:
        """Return the project URL without a trailing slash."""
        return self.url.rstrip("/")

    @property
    def bearer_token(self) -> str:
        """Return the user access token, falling back to the anon key."""
        return self.access_token or self.anon_key
