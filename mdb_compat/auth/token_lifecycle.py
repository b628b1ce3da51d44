"""
Token Lifecycle Management

Utilities for scheduling silent refreshes and reading token timing metadata.

The client never holds the signing secret, so claims are read without
signature verification; they are only used for scheduling and display,
never for trust decisions.

This module is part of MDB_COMPAT.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import jwt

from ..constants import MIN_REFRESH_DELAY_SECONDS, REFRESH_LEEWAY_SECONDS

logger = logging.getLogger(__name__)


def compute_refresh_delay(
    expires_in: int | float,
    leeway: int = REFRESH_LEEWAY_SECONDS,
    minimum: int = MIN_REFRESH_DELAY_SECONDS,
) -> float:
    """
    Seconds to wait before refreshing a token that expires in ``expires_in``.

    Example:
        compute_refresh_delay(3600)  # -> 3300
        compute_refresh_delay(30)    # -> 60
    """
    return float(max(expires_in - leeway, minimum))


def extract_token_metadata(token: str) -> dict[str, Any] | None:
    """
    Decode a JWT's claims without verifying its signature.

    Args:
        token: JWT token string

    Returns:
        Claims dict, or None if the token is not a decodable JWT
    """
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
            algorithms=["HS256", "RS256", "ES256"],
        )
    except jwt.InvalidTokenError as e:
        logger.debug(f"Could not decode token metadata: {e}")
        return None


def _claim_time(claims: dict[str, Any] | None, claim: str) -> datetime | None:
    if not claims:
        return None
    value = claims.get(claim)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None


def get_token_expiry_time(token: str) -> datetime | None:
    """Expiration datetime of a token, or None when unknown."""
    return _claim_time(extract_token_metadata(token), "exp")


def get_token_issued_time(token: str) -> datetime | None:
    """Issued-at datetime of a token, or None when unknown."""
    return _claim_time(extract_token_metadata(token), "iat")


def get_time_until_expiry(token: str) -> float | None:
    """
    Seconds until the token expires (negative once expired), or None.
    """
    expiry_time = get_token_expiry_time(token)
    if expiry_time is None:
        return None
    return (expiry_time - datetime.now(timezone.utc)).total_seconds()


def is_token_expiring_soon(token: str, threshold_seconds: int = REFRESH_LEEWAY_SECONDS) -> bool:
    """True when the token expires within ``threshold_seconds``."""
    remaining = get_time_until_expiry(token)
    if remaining is None:
        return False
    return remaining <= threshold_seconds
