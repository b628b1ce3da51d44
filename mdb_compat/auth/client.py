"""
Auth service HTTP client.

Thin async wrapper over the token-issuing auth service:

    POST /signin     {email, password}         -> AuthResponse
    POST /signup     {email, password, ...}    -> AuthResponse
    POST /signout    (bearer)                  -> ignored body
    POST /refresh    {refreshToken}            -> AuthResponse
    GET  /verify     (bearer)                  -> {user}
    GET  /token-info (bearer)                  -> token metadata

Transport failures become ``AuthError("auth/network-error")``; non-2xx
responses become ``AuthError`` with the service's ``code`` (or a per-call
default) and message.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..constants import DEFAULT_REQUEST_TIMEOUT
from ..exceptions import AuthError
from .models import AuthResponse, User

logger = logging.getLogger(__name__)


class AuthApiClient:
    """
    Async client for the auth service.

    Args:
        base_url: Service base URL, e.g. ``http://localhost:9002/api/auth``
        timeout: Per-request deadline in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _bearer(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    async def _request(
        self,
        method: str,
        path: str,
        default_code: str,
        *,
        json: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        headers = self._bearer(access_token) if access_token else None
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Auth service request {method} {path} failed: {e}")
            raise AuthError("auth/network-error", "Network connection failed") from e

        body = self._parse_body(response)
        if response.is_error:
            code = body.get("code") or default_code
            message = body.get("message") or f"Auth service returned {response.status_code}"
            raise AuthError(code, message, context={"status": response.status_code})
        return body

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _auth_response(body: dict[str, Any]) -> AuthResponse:
        try:
            return AuthResponse.model_validate(body)
        except ValidationError as e:
            raise AuthError("auth/invalid-response", "Malformed auth service response") from e

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        body = await self._request(
            "POST",
            "/signin",
            "auth/invalid-credential",
            json={"email": email, "password": password},
        )
        return self._auth_response(body)

    async def sign_up(self, email: str, password: str, **extra: Any) -> AuthResponse:
        body = await self._request(
            "POST",
            "/signup",
            "auth/email-already-in-use",
            json={"email": email, "password": password, **extra},
        )
        return self._auth_response(body)

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/signout", "auth/signout-failed", access_token=access_token)

    async def refresh(self, refresh_token: str) -> AuthResponse:
        body = await self._request(
            "POST",
            "/refresh",
            "auth/user-token-expired",
            json={"refreshToken": refresh_token},
        )
        return self._auth_response(body)

    async def verify(self, access_token: str) -> User:
        body = await self._request(
            "GET", "/verify", "auth/invalid-user-token", access_token=access_token
        )
        try:
            return User.model_validate(body.get("user", body))
        except ValidationError as e:
            raise AuthError("auth/invalid-response", "Malformed verify response") from e

    async def token_info(self, access_token: str) -> dict[str, Any]:
        return await self._request(
            "GET", "/token-info", "auth/invalid-user-token", access_token=access_token
        )
