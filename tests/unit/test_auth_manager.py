"""
Unit tests for the auth token manager and the auth service client.

The auth service is served in-process through httpx.MockTransport
(see FakeAuthService in conftest).
"""

import asyncio

import pytest

from mdb_compat.auth import AuthState, AuthTokenManager, MemoryTokenStore, User
from mdb_compat.exceptions import AuthError, ProfileCreationError

EMAIL = "ada@example.com"
PASSWORD = "correct-horse"


class TestAuthApiClient:
    """Test error translation in the HTTP client."""

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, auth_client):
        with pytest.raises(AuthError) as exc_info:
            await auth_client.sign_in(EMAIL, "wrong")
        assert exc_info.value.code == "auth/invalid-credential"
        assert exc_info.value.context["status"] == 401

    @pytest.mark.asyncio
    async def test_network_failure(self, auth_client, auth_service):
        auth_service.network_down = True
        with pytest.raises(AuthError) as exc_info:
            await auth_client.sign_in(EMAIL, PASSWORD)
        assert exc_info.value.code == "auth/network-error"

    @pytest.mark.asyncio
    async def test_duplicate_sign_up(self, auth_client):
        with pytest.raises(AuthError) as exc_info:
            await auth_client.sign_up(EMAIL, "whatever")
        assert exc_info.value.code == "auth/email-already-in-use"

    @pytest.mark.asyncio
    async def test_sign_in_parses_camel_case_response(self, auth_client):
        response = await auth_client.sign_in(EMAIL, PASSWORD)
        assert response.user.display_name == "Ada"
        assert response.expires_in == 3600
        assert response.token_pair.refresh_token == response.refresh_token


class TestSignIn:
    """Test sign-in and refresh scheduling."""

    @pytest.mark.asyncio
    async def test_sign_in_stores_tokens_and_broadcasts(self, auth_manager):
        seen = []
        await auth_manager.on_auth_state_changed(seen.append)

        credential = await auth_manager.sign_in(EMAIL, PASSWORD)

        assert credential.user.email == EMAIL
        assert auth_manager.state == AuthState.SIGNED_IN
        assert auth_manager.access_token
        assert auth_manager.current_user == credential.user
        assert seen == [None, credential.user]

    @pytest.mark.asyncio
    async def test_refresh_scheduled_five_minutes_before_expiry(self, auth_manager):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        assert auth_manager.last_refresh_delay == 3300

    @pytest.mark.asyncio
    async def test_short_lived_token_uses_minimum_delay(self, auth_manager, auth_service):
        auth_service.expires_in = 30
        await auth_manager.sign_in(EMAIL, PASSWORD)
        assert auth_manager.last_refresh_delay == 60

    @pytest.mark.asyncio
    async def test_failed_sign_in_leaves_state_unchanged(self, auth_manager):
        with pytest.raises(AuthError) as exc_info:
            await auth_manager.sign_in(EMAIL, "wrong")
        assert exc_info.value.code == "auth/invalid-credential"
        assert auth_manager.state == AuthState.SIGNED_OUT
        assert auth_manager.access_token is None

    @pytest.mark.asyncio
    async def test_authorization_header(self, auth_manager):
        assert auth_manager.authorization_header() == {}
        await auth_manager.sign_in(EMAIL, PASSWORD)
        assert auth_manager.authorization_header() == {
            "Authorization": f"Bearer {auth_manager.access_token}"
        }

    @pytest.mark.asyncio
    async def test_legacy_aliases(self, auth_manager):
        await auth_manager.signInWithEmailAndPassword(EMAIL, PASSWORD)
        await auth_manager.signOut()
        assert auth_manager.state == AuthState.SIGNED_OUT


class TestSignOut:
    """Test sign-out."""

    @pytest.mark.asyncio
    async def test_double_sign_out_is_safe(self, auth_manager, auth_service):
        await auth_manager.sign_in(EMAIL, PASSWORD)

        await auth_manager.sign_out()
        await auth_manager.sign_out()

        assert auth_manager.state == AuthState.SIGNED_OUT
        assert auth_manager.current_user is None
        assert auth_service.count("/signout") == 1

    @pytest.mark.asyncio
    async def test_sign_out_survives_network_failure(self, auth_manager, auth_service):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        auth_service.network_down = True

        await auth_manager.sign_out()

        assert auth_manager.state == AuthState.SIGNED_OUT
        assert auth_manager.access_token is None

    @pytest.mark.asyncio
    async def test_sign_out_broadcasts_none(self, auth_manager):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        seen = []
        await auth_manager.on_auth_state_changed(seen.append)

        await auth_manager.sign_out()

        assert seen[-1] is None


class TestSignUp:
    """Test account creation and profile rollback."""

    @pytest.mark.asyncio
    async def test_sign_up_writes_profile(self, auth_manager, mongo_db):
        credential = await auth_manager.sign_up(
            "grace@example.com", "hopper123", profile={"name": "Grace"}
        )

        assert auth_manager.state == AuthState.SIGNED_IN
        stored = mongo_db["profiles"].documents[0]
        assert stored["_id"] == credential.user.uid
        assert stored["ownerId"] == credential.user.uid
        assert stored["name"] == "Grace"

    @pytest.mark.asyncio
    async def test_profile_failure_rolls_back_the_session(
        self, auth_manager, auth_service, mongo_db
    ):
        mongo_db.go_offline()
        seen = []
        await auth_manager.on_auth_state_changed(seen.append)

        with pytest.raises(ProfileCreationError) as exc_info:
            await auth_manager.sign_up("grace@example.com", "hopper123", profile={"name": "Grace"})

        assert exc_info.value.code == "auth/profile-creation-failed"
        assert exc_info.value.user.email == "grace@example.com"
        assert auth_manager.state == AuthState.SIGNED_OUT
        assert auth_manager.access_token is None
        assert auth_manager.current_user is None
        assert auth_service.count("/signout") == 1
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_duplicate_email(self, auth_manager):
        with pytest.raises(AuthError) as exc_info:
            await auth_manager.createUserWithEmailAndPassword(EMAIL, "whatever")
        assert exc_info.value.code == "auth/email-already-in-use"
        assert auth_manager.state == AuthState.SIGNED_OUT


class TestRefresh:
    """Test silent refresh."""

    @pytest.mark.asyncio
    async def test_refresh_rotates_tokens(self, auth_manager):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        before = auth_manager.access_token

        assert await auth_manager.refresh_access_token() is True

        assert auth_manager.access_token != before
        assert auth_manager.state == AuthState.SIGNED_IN

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_exchange(self, auth_manager, auth_service):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        auth_service.refresh_started = asyncio.Event()
        auth_service.refresh_gate = asyncio.Event()

        pending = asyncio.ensure_future(
            asyncio.gather(auth_manager.refresh_access_token(), auth_manager.refresh_access_token())
        )
        await auth_service.refresh_started.wait()
        auth_service.refresh_gate.set()

        assert await pending == [True, True]
        assert auth_service.count("/refresh") == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_signs_out(self, auth_manager, auth_service):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        auth_service.reject_refresh = True

        assert await auth_manager.refresh_access_token() is False

        assert auth_manager.state == AuthState.SIGNED_OUT
        assert auth_manager.access_token is None

    @pytest.mark.asyncio
    async def test_refresh_without_session(self, auth_manager, auth_service):
        assert await auth_manager.refresh_access_token() is False
        assert auth_service.count("/refresh") == 0

    @pytest.mark.asyncio
    async def test_sign_out_cancels_scheduled_refresh(self, auth_manager):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        timer = auth_manager._refresh_timer

        await auth_manager.sign_out()
        await asyncio.sleep(0)

        assert timer.cancelled()


class TestStateObservation:
    """Test on_auth_state_changed resolution."""

    @pytest.mark.asyncio
    async def test_restored_session_is_verified(self, auth_client, auth_service, database):
        first = AuthTokenManager(auth_client, MemoryTokenStore(), database=database)
        await first.sign_in(EMAIL, PASSWORD)

        restored = AuthTokenManager(auth_client, first._tokens, database=database)
        seen = []
        await restored.on_auth_state_changed(seen.append)

        assert isinstance(seen[0], User)
        assert seen[0].email == EMAIL
        assert restored.state == AuthState.SIGNED_IN
        await first.close()
        await restored.close()

    @pytest.mark.asyncio
    async def test_restored_session_arms_refresh(self, auth_client, auth_service, database):
        first = AuthTokenManager(auth_client, MemoryTokenStore(), database=database)
        await first.sign_in(EMAIL, PASSWORD)

        restored = AuthTokenManager(auth_client, first._tokens, database=database)
        await restored.on_auth_state_changed(lambda user: None)

        assert restored._refresh_timer is not None
        assert restored.last_refresh_delay == pytest.approx(3300, abs=5)
        assert auth_service.count("/refresh") == 0
        await first.close()
        await restored.close()

    @pytest.mark.asyncio
    async def test_restored_session_near_expiry_refreshes_now(
        self, auth_client, auth_service, database
    ):
        auth_service.expires_in = 120
        first = AuthTokenManager(auth_client, MemoryTokenStore(), database=database)
        await first.sign_in(EMAIL, PASSWORD)
        old_token = first.access_token

        restored = AuthTokenManager(auth_client, first._tokens, database=database)
        seen = []
        await restored.on_auth_state_changed(seen.append)

        assert auth_service.count("/refresh") == 1
        assert restored.access_token != old_token
        assert restored.state == AuthState.SIGNED_IN
        assert seen[0].email == EMAIL
        await first.close()
        await restored.close()

    @pytest.mark.asyncio
    async def test_network_failure_keeps_cached_identity(self, auth_manager, auth_service):
        credential = await auth_manager.sign_in(EMAIL, PASSWORD)
        auth_service.network_down = True
        seen = []

        await auth_manager.on_auth_state_changed(seen.append)

        assert seen == [credential.user]
        assert auth_manager.state == AuthState.SIGNED_IN

    @pytest.mark.asyncio
    async def test_rejected_token_with_failed_refresh_resolves_to_none(
        self, auth_manager, auth_service
    ):
        await auth_manager.sign_in(EMAIL, PASSWORD)
        auth_service.access_tokens.clear()
        auth_service.reject_refresh = True
        seen = []

        await auth_manager.on_auth_state_changed(seen.append)

        assert seen == [None]
        assert auth_manager.state == AuthState.SIGNED_OUT

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_notifications(self, auth_manager):
        seen = []
        unsubscribe = await auth_manager.on_auth_state_changed(seen.append)
        unsubscribe()

        await auth_manager.sign_in(EMAIL, PASSWORD)

        assert seen == [None]


class TestIdTokenResult:
    """Test token metadata."""

    @pytest.mark.asyncio
    async def test_without_token(self, auth_manager):
        with pytest.raises(AuthError) as exc_info:
            await auth_manager.get_id_token_result()
        assert exc_info.value.code == "auth/user-token-expired"

    @pytest.mark.asyncio
    async def test_with_token(self, auth_manager):
        await auth_manager.sign_in(EMAIL, PASSWORD)

        result = await auth_manager.getIdTokenResult()

        assert result.token == auth_manager.access_token
        assert result.sign_in_provider == "password"
        assert result.claims == {"role": "user"}
        assert result.expiration_time is not None
        assert result.issued_at_time is not None
