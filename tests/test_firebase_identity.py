"""
Tests for the Firebase identity service, with the REST transports mocked out.
"""

import json
from unittest.mock import AsyncMock

import pytest

from backend import (
    AuthenticationError, BackendConnectionError, CredentialStore, FirebaseAuthClient,
    FirestoreClient, NotFoundError
)
from identity import (
    FirebaseIdentityService, IdentityError, IdentityServiceUnavailableError, InvalidCredentialsError,
    SessionNotFoundError
)

SIGN_IN_RESPONSE = {
    "localId": "user-1",
    "email": "reader@example.com",
    "idToken": "id-token",
    "refreshToken": "refresh-token",
    "displayName": "Auth Name",
}


@pytest.fixture
def credential_store(tmp_path):
    return CredentialStore(str(tmp_path / "credentials.json"))


@pytest.fixture
def auth_client():
    client = FirebaseAuthClient(api_key="test-key")
    client._post = AsyncMock(return_value=(200, dict(SIGN_IN_RESPONSE)))
    return client


@pytest.fixture
def firestore(credential_store, auth_client):
    client = FirestoreClient("demo-project", credential_store, auth_client)
    client.get_document = AsyncMock(return_value={"name": "Profile Name", "email": "reader@example.com"})
    client.update_fields = AsyncMock()
    client.set_document = AsyncMock()
    return client


@pytest.fixture
def service(auth_client, firestore, credential_store):
    return FirebaseIdentityService(auth_client, firestore, credential_store)


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_persists_credentials_and_reads_profile(self, service, credential_store, firestore):
        user = await service.login("reader@example.com", "secret123")

        assert user.id == "user-1"
        assert user.name == "Profile Name"
        assert service.get_current_user_id() == "user-1"
        firestore.update_fields.assert_awaited_once()

        with open(credential_store.path, encoding="utf-8") as f:
            assert json.load(f)["refresh_token"] == "refresh-token"

    @pytest.mark.asyncio
    async def test_login_without_profile_uses_auth_display_name(self, service, firestore):
        firestore.get_document = AsyncMock(side_effect=NotFoundError("users/user-1"))

        user = await service.login("reader@example.com", "secret123")

        assert user.name == "Auth Name"

    @pytest.mark.asyncio
    async def test_wrong_password(self, service, auth_client):
        auth_client._post = AsyncMock(return_value=(400, {"error": {"message": "INVALID_LOGIN_CREDENTIALS"}}))

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await service.login("reader@example.com", "wrong")

        assert exc_info.value.details["code"] == "INVALID_LOGIN_CREDENTIALS"
        assert service.get_current_user_id() is None

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, service, auth_client):
        auth_client._post = AsyncMock(side_effect=BackendConnectionError("Cannot reach Firebase Auth"))

        with pytest.raises(IdentityServiceUnavailableError):
            await service.login("reader@example.com", "secret123")


class TestSessionPersistence:

    @pytest.mark.asyncio
    async def test_sign_in_survives_restart(self, service, credential_store, auth_client, firestore):
        await service.login("reader@example.com", "secret123")

        reloaded = FirebaseIdentityService(auth_client, firestore, CredentialStore(str(credential_store.path)))

        assert reloaded.get_current_user_id() == "user-1"

    @pytest.mark.asyncio
    async def test_logout_forgets_user(self, service, credential_store):
        await service.login("reader@example.com", "secret123")

        await service.logout()

        assert service.get_current_user_id() is None
        assert not credential_store.path.exists()

    @pytest.mark.asyncio
    async def test_missing_profile_is_session_not_found(self, service, firestore):
        firestore.get_document = AsyncMock(side_effect=NotFoundError("users/ghost"))

        with pytest.raises(SessionNotFoundError):
            await service.fetch_user_profile("ghost")


class TestRestoreSignIn:

    @pytest.mark.asyncio
    async def test_restores_earlier_user_after_later_sign_in(self, service, auth_client, credential_store):
        await service.login("reader@example.com", "secret123")
        auth_client._post = AsyncMock(return_value=(200, dict(SIGN_IN_RESPONSE, localId="user-2",
                                                              email="other@example.com")))
        await service.login("other@example.com", "hunter22")
        assert service.get_current_user_id() == "user-2"

        await service.restore_sign_in("user-1")

        assert service.get_current_user_id() == "user-1"
        with open(credential_store.path, encoding="utf-8") as f:
            assert json.load(f)["user_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_restore_after_logout(self, service):
        await service.login("reader@example.com", "secret123")
        await service.logout()

        await service.restore_sign_in("user-1")

        assert service.get_current_user_id() == "user-1"

    @pytest.mark.asyncio
    async def test_restore_to_signed_out(self, service, credential_store):
        await service.login("reader@example.com", "secret123")

        await service.restore_sign_in(None)

        assert service.get_current_user_id() is None
        assert not credential_store.path.exists()

    @pytest.mark.asyncio
    async def test_unknown_user_cannot_be_restored(self, service):
        with pytest.raises(IdentityError):
            await service.restore_sign_in("stranger")


class TestRegisterAndReset:

    @pytest.mark.asyncio
    async def test_register_writes_profile(self, service, auth_client, firestore):
        user = await service.register("reader@example.com", "secret123", "Ada Reader")

        assert user.name == "Ada Reader"
        path, fields = firestore.set_document.call_args.args
        assert path == "users/user-1"
        assert fields["name"] == "Ada Reader"
        assert set(fields) == {"name", "email", "dateJoined", "lastLogin"}

        methods = [call.args[0].rsplit("/", 1)[-1] for call in auth_client._post.call_args_list]
        assert methods == ["accounts:signUp", "accounts:update"]

    @pytest.mark.asyncio
    async def test_email_in_use(self, service, auth_client):
        auth_client._post = AsyncMock(return_value=(400, {"error": {"message": "EMAIL_EXISTS"}}))

        with pytest.raises(InvalidCredentialsError):
            await service.register("reader@example.com", "secret123", "Ada")

    @pytest.mark.asyncio
    async def test_password_reset_request(self, service, auth_client):
        auth_client._post = AsyncMock(return_value=(200, {"email": "reader@example.com"}))

        await service.reset_password("reader@example.com")

        url, payload = auth_client._post.call_args.args
        assert url.endswith("accounts:sendOobCode")
        assert payload == {"requestType": "PASSWORD_RESET", "email": "reader@example.com"}


class TestAuthClientErrors:

    def test_server_errors_are_not_auth_errors(self):
        with pytest.raises(Exception) as exc_info:
            FirebaseAuthClient._raise_for_error(503, {}, "accounts:signInWithPassword")

        assert not isinstance(exc_info.value, AuthenticationError)
        assert exc_info.value.details["status"] == 503
