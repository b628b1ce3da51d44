"""
Authentication module for MDB_COMPAT.

Token lifecycle management against the token-issuing auth service:
sign-in/up/out, silent refresh and identity broadcast.
"""

from .client import AuthApiClient
from .events import StateBroadcaster
from .manager import AuthState, AuthTokenManager
from .models import AuthResponse, IdTokenResult, TokenPair, User, UserCredential
from .token_lifecycle import (
    compute_refresh_delay,
    extract_token_metadata,
    get_time_until_expiry,
    get_token_expiry_time,
    is_token_expiring_soon,
)
from .token_store import FileTokenStore, MemoryTokenStore, TokenStore

__all__ = [
    "AuthApiClient",
    "AuthResponse",
    "AuthState",
    "AuthTokenManager",
    "FileTokenStore",
    "IdTokenResult",
    "MemoryTokenStore",
    "StateBroadcaster",
    "TokenPair",
    "TokenStore",
    "User",
    "UserCredential",
    "compute_refresh_delay",
    "extract_token_metadata",
    "get_time_until_expiry",
    "get_token_expiry_time",
    "is_token_expiring_soon",
]
