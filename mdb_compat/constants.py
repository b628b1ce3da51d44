"""
Constants for MDB_COMPAT.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# DOCUMENT MODEL CONSTANTS
# ============================================================================

INTERNAL_ID_FIELD: Final[str] = "_id"
"""MongoDB's internal identifier field. Never exposed through snapshot data."""

ALTERNATE_ID_FIELDS: Final[tuple[str, ...]] = ("id", "uid")
"""Legacy identifier fields checked after ``_id``, in precedence order."""

CREATED_AT_FIELD: Final[str] = "createdAt"
UPDATED_AT_FIELD: Final[str] = "updatedAt"

TIMESTAMP_FIELDS: Final[tuple[str, ...]] = (CREATED_AT_FIELD, UPDATED_AT_FIELD, "orderDate")
"""Top-level fields whose datetime values are presented as Timestamp objects."""

DOCUMENT_PATH_SEPARATOR: Final[str] = "/"

# ============================================================================
# QUERY CONSTANTS
# ============================================================================

OPERATOR_MAP: Final[dict[str, str]] = {
    "==": "$eq",
    "!=": "$ne",
    ">": "$gt",
    ">=": "$gte",
    "<": "$lt",
    "<=": "$lte",
    "in": "$in",
    "array-contains": "$elemMatch",
}
"""Legacy query operators and the MongoDB operator each one translates to."""

SORT_DIRECTIONS: Final[dict[str, int]] = {"asc": 1, "desc": -1}

# ============================================================================
# AUTH CONSTANTS
# ============================================================================

ACCESS_TOKEN_KEY: Final[str] = "auth_access_token"
"""Client-local storage key for the access token."""

REFRESH_TOKEN_KEY: Final[str] = "auth_refresh_token"
"""Client-local storage key for the refresh token."""

REFRESH_LEEWAY_SECONDS: Final[int] = 300
"""Refresh this many seconds before the access token expires."""

MIN_REFRESH_DELAY_SECONDS: Final[int] = 60
"""Floor for the scheduled refresh delay."""

DEFAULT_SIGN_IN_PROVIDER: Final[str] = "password"

DEFAULT_PROFILE_COLLECTION: Final[str] = "profiles"

# ============================================================================
# REALTIME CONSTANTS
# ============================================================================

RECONNECT_BASE_DELAY_SECONDS: Final[float] = 1.0
"""Delay before the first reconnect attempt; doubles on every attempt."""

MAX_RECONNECT_ATTEMPTS: Final[int] = 5
"""Reconnect attempts before the channel gives up."""

CLEAN_CLOSE_CODE: Final[int] = 1000
"""Websocket close code for a normal closure."""

# ============================================================================
# TIMEOUT CONSTANTS
# ============================================================================

DEFAULT_REQUEST_TIMEOUT: Final[float] = 10.0
"""Deadline in seconds for HTTP and database requests."""

DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
"""Deadline in seconds for the websocket handshake."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000

DEFAULT_MAX_POOL_SIZE: Final[int] = 50

DEFAULT_MIN_POOL_SIZE: Final[int] = 1

# ============================================================================
# MIGRATION CONSTANTS
# ============================================================================

MIN_JWT_SECRET_LENGTH: Final[int] = 32
"""Minimum signing secret length accepted by migration validation."""

KNOWN_DEVELOPMENT_SECRETS: Final[tuple[str, ...]] = (
    "hospitakeaway-super-secret-jwt-key-for-development-only",
    "dev-secret-change-me",
    "changeme",
)
"""Placeholder signing secrets that must never be active in production."""

LEGACY_REQUIRED_SETTINGS: Final[tuple[str, ...]] = (
    "FIREBASE_API_KEY",
    "FIREBASE_AUTH_DOMAIN",
    "FIREBASE_PROJECT_ID",
    "FIREBASE_STORAGE_BUCKET",
    "FIREBASE_MESSAGING_SENDER_ID",
    "FIREBASE_APP_ID",
)
"""Legacy client settings required while any subsystem still uses it."""
