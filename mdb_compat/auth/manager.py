"""
Auth Token Manager

Owns the credential exchange, token storage, silent refresh scheduling and
the broadcast of the current signed-in identity.

State machine:

    signed_out -> signing_in | signing_up -> signed_in
    signed_in -> refreshing -> signed_in | signed_out
    any -> signed_out (sign_out)

All transitions run under one asyncio.Lock. Refreshes are single-flight:
concurrent callers await the same in-flight exchange. The silent refresh is
a cancellable task owned by the manager and is cancelled on sign-out and on
``close()``.

This module is part of MDB_COMPAT.

Usage:
    manager = AuthTokenManager(AuthApiClient(base_url), MemoryTokenStore())
    unsubscribe = await manager.on_auth_state_changed(lambda user: print(user))
    credential = await manager.sign_in("ada@example.com", "s3cret")
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..constants import (
    DEFAULT_PROFILE_COLLECTION,
    MIN_REFRESH_DELAY_SECONDS,
    REFRESH_LEEWAY_SECONDS,
)
from ..exceptions import AuthError, CompatError, ProfileCreationError
from ..observability.logging import bind_session_user
from .client import AuthApiClient
from .events import StateBroadcaster
from .models import AuthResponse, IdTokenResult, User, UserCredential
from .token_lifecycle import (
    compute_refresh_delay,
    extract_token_metadata,
    get_time_until_expiry,
    is_token_expiring_soon,
)
from .token_store import MemoryTokenStore, TokenStore

if TYPE_CHECKING:
    from ..database.store import Database

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    SIGNED_OUT = "signed_out"
    SIGNING_IN = "signing_in"
    SIGNING_UP = "signing_up"
    SIGNED_IN = "signed_in"
    REFRESHING = "refreshing"


def _iso_claim(claims: dict[str, Any] | None, claim: str) -> str | None:
    if not claims or not isinstance(claims.get(claim), int | float):
        return None
    return datetime.fromtimestamp(claims[claim], tz=timezone.utc).isoformat()


class AuthTokenManager:
    """
    Token lifecycle manager.

    Args:
        client: Auth service client
        token_store: Where tokens are kept between calls (and restarts)
        database: Database used to write sign-up profile records
        profile_collection: Collection that receives profile records
        refresh_leeway: Refresh this many seconds before expiry
        min_refresh_delay: Floor for the refresh delay
    """

    def __init__(
        self,
        client: AuthApiClient,
        token_store: TokenStore | None = None,
        *,
        database: "Database | None" = None,
        profile_collection: str = DEFAULT_PROFILE_COLLECTION,
        refresh_leeway: int = REFRESH_LEEWAY_SECONDS,
        min_refresh_delay: int = MIN_REFRESH_DELAY_SECONDS,
    ):
        self._client = client
        self._tokens = token_store or MemoryTokenStore()
        self._database = database
        self._profile_collection = profile_collection
        self._refresh_leeway = refresh_leeway
        self._min_refresh_delay = min_refresh_delay

        self._state = AuthState.SIGNED_OUT
        self._current_user: User | None = None
        self._lock = asyncio.Lock()
        self._broadcaster: StateBroadcaster[User | None] = StateBroadcaster("auth state")
        self._refresh_timer: asyncio.Task | None = None
        self._refresh_in_flight: asyncio.Future | None = None
        self.last_refresh_delay: float | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def current_user(self) -> User | None:
        return self._current_user

    @property
    def access_token(self) -> str | None:
        return self._tokens.access_token

    def authorization_header(self) -> dict[str, str]:
        """Bearer header for identity-bearing calls (empty when signed out)."""
        token = self.access_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    # ------------------------------------------------------------------
    # Sign in / up / out
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> UserCredential:
        """
        Exchange credentials for a token pair.

        Raises:
            AuthError: ``auth/invalid-credential``, ``auth/network-error``, ...
                The manager's state is unchanged on failure.
        """
        async with self._lock:
            previous = self._state
            self._state = AuthState.SIGNING_IN
            try:
                response = await self._client.sign_in(email, password)
            except AuthError:
                self._state = previous
                raise
            self._accept(response)

        logger.info(f"Signed in as {response.user.uid}")
        await self._broadcaster.publish(self._current_user)
        return UserCredential(user=response.user)

    signInWithEmailAndPassword = sign_in

    async def sign_up(
        self,
        email: str,
        password: str,
        profile: Mapping[str, Any] | None = None,
        **extra: Any,
    ) -> UserCredential:
        """
        Create an account, then write its profile record.

        The profile goes to ``<profile_collection>/<uid>``. If that write
        fails the session is rolled back (best-effort server sign-out, local
        tokens cleared, state ``signed_out``) and ProfileCreationError is
        raised, so callers never observe a signed-in user without a profile.

        Raises:
            AuthError: If the account could not be created
            ProfileCreationError: If the profile record could not be written
        """
        async with self._lock:
            previous = self._state
            self._state = AuthState.SIGNING_UP
            try:
                response = await self._client.sign_up(email, password, **extra)
            except AuthError:
                self._state = previous
                raise
            self._tokens.store_tokens(response.access_token, response.refresh_token)

            if profile is not None:
                try:
                    await self._write_profile(response.user, email, profile)
                except (CompatError, ValueError, TypeError) as e:
                    logger.error(
                        f"Profile write failed for new account {response.user.uid}; "
                        f"rolling back session: {e}"
                    )
                    await self._invalidate_server_session(response.access_token)
                    self._tokens.clear_tokens()
                    self._state = AuthState.SIGNED_OUT
                    self._current_user = None
                    raise ProfileCreationError(
                        "Account created but its profile could not be written",
                        user=response.user,
                    ) from e

            self._accept(response)

        logger.info(f"Signed up as {response.user.uid}")
        await self._broadcaster.publish(self._current_user)
        return UserCredential(user=response.user)

    createUserWithEmailAndPassword = sign_up

    async def _write_profile(self, user: User, email: str, profile: Mapping[str, Any]) -> None:
        if self._database is None:
            raise CompatError("No database configured for profile records")
        record = {**profile, "ownerId": user.uid, "email": email}
        await self._database.collection(self._profile_collection).doc(user.uid).set(record)

    async def sign_out(self) -> None:
        """
        Sign out. Safe to call repeatedly.

        Server-side invalidation is best-effort; its failure is logged.
        """
        async with self._lock:
            token = self._tokens.access_token
            if token:
                await self._invalidate_server_session(token)
            self._clear_session()

        await self._broadcaster.publish(None)

    signOut = sign_out

    async def _invalidate_server_session(self, access_token: str) -> None:
        try:
            await self._client.sign_out(access_token)
        except AuthError as e:
            logger.warning(f"Server-side sign-out failed: {e}")

    def _clear_session(self) -> None:
        self._tokens.clear_tokens()
        self._cancel_refresh_timer()
        self._current_user = None
        self._state = AuthState.SIGNED_OUT
        bind_session_user(None)

    def _accept(self, response: AuthResponse) -> None:
        self._tokens.store_tokens(response.access_token, response.refresh_token)
        self._schedule_refresh(response.expires_in)
        self._current_user = response.user
        self._state = AuthState.SIGNED_IN
        bind_session_user(response.user.uid)

    # ------------------------------------------------------------------
    # Silent refresh
    # ------------------------------------------------------------------

    def _schedule_refresh(self, expires_in: int) -> None:
        self._cancel_refresh_timer()
        delay = compute_refresh_delay(
            expires_in, leeway=self._refresh_leeway, minimum=self._min_refresh_delay
        )
        self.last_refresh_delay = delay
        self._refresh_timer = asyncio.create_task(self._refresh_after(delay))
        logger.debug(f"Token refresh scheduled in {delay:.0f}s")

    def _cancel_refresh_timer(self) -> None:
        timer = self._refresh_timer
        self._refresh_timer = None
        # The timer may be the task signing out after a failed refresh
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()

    async def _refresh_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.refresh_access_token()

    async def refresh_access_token(self) -> bool:
        """
        Exchange the refresh token for a new token pair.

        On success the refresh task is rearmed and the identity re-broadcast.
        On failure the manager signs out. Concurrent callers share one
        in-flight refresh.

        Returns:
            True if the tokens were refreshed
        """
        in_flight = self._refresh_in_flight
        if in_flight is None:
            in_flight = asyncio.ensure_future(self._perform_refresh())
            self._refresh_in_flight = in_flight
            in_flight.add_done_callback(self._clear_refresh_in_flight)
        return await asyncio.shield(in_flight)

    def _clear_refresh_in_flight(self, future: asyncio.Future) -> None:
        if self._refresh_in_flight is future:
            self._refresh_in_flight = None

    async def _perform_refresh(self) -> bool:
        async with self._lock:
            refresh_token = self._tokens.refresh_token
            previous = self._state
            response: AuthResponse | None = None
            if refresh_token:
                self._state = AuthState.REFRESHING
                try:
                    response = await self._client.refresh(refresh_token)
                except AuthError as e:
                    logger.warning(f"Token refresh failed: {e}")
                    self._state = previous
            if response is not None:
                self._accept(response)

        if response is None:
            await self.sign_out()
            return False

        await self._broadcaster.publish(self._current_user)
        return True

    # ------------------------------------------------------------------
    # State observation
    # ------------------------------------------------------------------

    async def on_auth_state_changed(
        self, callback: Callable[[User | None], Any]
    ) -> Callable[[], None]:
        """
        Observe identity changes.

        The callback is invoked once with the resolved current user (after a
        verification round-trip) before it joins future broadcasts.

        Returns:
            Unsubscribe callable
        """
        user = await self._resolve_current_user()
        result = callback(user)
        if inspect.isawaitable(result):
            await result
        return self._broadcaster.subscribe(callback)

    onAuthStateChanged = on_auth_state_changed

    async def _resolve_current_user(self) -> User | None:
        token = self._tokens.access_token
        if not token:
            return None

        try:
            user = await self._client.verify(token)
        except AuthError as e:
            if e.code == "auth/network-error":
                logger.warning(f"Could not verify session, keeping cached identity: {e}")
                return self._current_user
            # Token rejected: one refresh attempt, which signs out on failure
            if await self.refresh_access_token():
                return self._current_user
            return None

        async with self._lock:
            self._current_user = user
            if self._state == AuthState.SIGNED_OUT:
                self._state = AuthState.SIGNED_IN
                bind_session_user(user.uid)
            restored = self._refresh_timer is None
            remaining = get_time_until_expiry(token)
            refresh_now = restored and (
                remaining is None or is_token_expiring_soon(token, self._refresh_leeway)
            )
            if restored and not refresh_now:
                self._schedule_refresh(int(remaining))

        # A session restored from the token store has no refresh task yet
        if refresh_now:
            if await self.refresh_access_token():
                return self._current_user
            return None
        return user

    async def get_id_token_result(self, user: User | None = None) -> IdTokenResult:
        """
        Metadata for the stored access token.

        Raises:
            AuthError: ``auth/user-token-expired`` when no token is stored,
                ``auth/invalid-user-token`` when the service rejects it
        """
        token = self._tokens.access_token
        if not token:
            raise AuthError("auth/user-token-expired", "No access token is stored")

        info = await self._client.token_info(token)
        claims = extract_token_metadata(token)
        return IdTokenResult(
            token=token,
            auth_time=info.get("authTime") or _iso_claim(claims, "auth_time"),
            issued_at_time=info.get("issuedAtTime") or _iso_claim(claims, "iat"),
            expiration_time=info.get("expirationTime") or _iso_claim(claims, "exp"),
            sign_in_provider=info.get("signInProvider") or "password",
            claims=info.get("claims") or claims or {},
        )

    getIdTokenResult = get_id_token_result

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel the refresh task, drop subscribers and close the HTTP client."""
        self._cancel_refresh_timer()
        self._broadcaster.clear()
        await self._client.aclose()
