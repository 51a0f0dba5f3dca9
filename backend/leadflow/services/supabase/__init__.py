"""Supabase REST and edge-function client."""

from .client import SupabaseClient, create_supabase_client
from .config import SupabaseConfig
from .exceptions import (
    SupabaseAPIError,
    SupabaseAuthError,
    SupabaseConfigError,
    SupabaseFunctionError,
    SupabaseNotFoundError,
    SupabaseRateLimitError,
)
from .models import FunctionResponse, parse_content_range

__all__ = [
    "SupabaseClient",
    "create_supabase_client",
    "SupabaseConfig",
    "SupabaseAPIError",
    "SupabaseAuthError",
    "SupabaseConfigError",
    "SupabaseFunctionError",
    "SupabaseNotFoundError",
    "SupabaseRateLimitError",
    "parse_content_range",
    "FunctionResponse",
]
