"""
Identity service interface and its Firebase implementation
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, Optional

import pytz

from backend import (
    AuthenticationError, BackendConnectionError, BackendError, CredentialStore,
    Credentials, FirebaseAuthClient, FirestoreClient, NotFoundError
)
from core.logging_config import get_logger
from .exceptions import (
    IdentityError, IdentityServiceUnavailableError, InvalidCredentialsError, SessionNotFoundError
)
from .models import User


class IdentityService(ABC):
    """Remote identity collaborator consumed by ``SessionState``"""

    @abstractmethod
    def get_current_user_id(self) -> Optional[str]:
        """Id of the user with a persisted sign-in, if any"""
        pass

    @abstractmethod
    async def fetch_user_profile(self, user_id: str) -> Dict[str, Any]:
        """
        Fetch the stored profile fields for a user

        Raises:
            IdentityError: Profile missing or service failure
        """
        pass

    @abstractmethod
    async def login(self, email: str, password: str) -> User:
        pass

    @abstractmethod
    async def logout(self) -> None:
        pass

    @abstractmethod
    async def register(self, email: str, password: str, name: str) -> User:
        pass

    @abstractmethod
    async def reset_password(self, email: str) -> None:
        pass

    @abstractmethod
    async def restore_sign_in(self, user_id: Optional[str]) -> None:
        """
        Make ``user_id`` the persisted sign-in again (``None`` signs out)

        Raises:
            IdentityError: No credentials are known for ``user_id``
        """
        pass


class FirebaseIdentityService(IdentityService):
    """Firebase Auth for credentials, Firestore ``users/{uid}`` for profiles"""

    def __init__(self,
                 auth_client: FirebaseAuthClient,
                 firestore: FirestoreClient,
                 credential_store: CredentialStore,
                 users_collection: str = "users"):
        self.logger = get_logger(__name__)
        self.auth_client = auth_client
        self.firestore = firestore
        self.credential_store = credential_store
        self.users_collection = users_collection

        # Credentials seen in this process, by user id
        self._known_credentials: Dict[str, Credentials] = {}

    def get_current_user_id(self) -> Optional[str]:
        credentials = self.credential_store.get()
        if credentials is None:
            return None
        self._remember(credentials)
        return credentials.user_id

    async def fetch_user_profile(self, user_id: str) -> Dict[str, Any]:
        try:
            return await self.firestore.get_document(self._profile_path(user_id))
        except NotFoundError:
            raise SessionNotFoundError(user_id)
        except BackendError as e:
            raise self._translate(e)

    async def login(self, email: str, password: str) -> User:
        try:
            credentials = await self.auth_client.sign_in(email, password)
        except BackendError as e:
            raise self._translate(e)

        self._remember(credentials)
        self.credential_store.save(credentials)

        try:
            profile = await self.fetch_user_profile(credentials.user_id)
            name = profile.get("name") or credentials.display_name
        except IdentityError as e:
            # Signed in but no readable profile: fall back to the auth record
            self.logger.warning(f"Failed to fetch profile during sign in: {e}")
            name = credentials.display_name

        await self._touch_last_login(credentials.user_id)
        return User(id=credentials.user_id, name=name or "", email=credentials.email or email)

    async def logout(self) -> None:
        try:
            current = self.credential_store.get()
            if current:
                self._remember(current)
            self.credential_store.clear()
        except OSError as e:
            raise IdentityError(f"Could not remove stored credentials: {e}")

    async def register(self, email: str, password: str, name: str) -> User:
        try:
            credentials = await self.auth_client.sign_up(email, password)
        except BackendError as e:
            raise self._translate(e)

        self._remember(credentials)
        self.credential_store.save(credentials)

        try:
            await self.auth_client.update_display_name(credentials.id_token, name)
        except BackendError as e:
            self.logger.warning(f"Error updating display name: {e}")

        now = datetime.now(pytz.UTC)
        try:
            await self.firestore.set_document(self._profile_path(credentials.user_id), {
                "name": name,
                "email": email,
                "dateJoined": now,
                "lastLogin": now,
            })
        except BackendError as e:
            # The account exists even if the profile write failed
            self.logger.error(f"Error saving user profile: {e}")

        return User(id=credentials.user_id, name=name, email=email)

    async def reset_password(self, email: str) -> None:
        try:
            await self.auth_client.send_password_reset(email)
        except BackendError as e:
            raise self._translate(e)

    async def restore_sign_in(self, user_id: Optional[str]) -> None:
        if user_id is None:
            await self.logout()
            return

        credentials = self._known_credentials.get(user_id)
        if credentials is None:
            raise IdentityError(f"No stored credentials for user {user_id}", {"user_id": user_id})

        try:
            self.credential_store.save(credentials)
        except OSError as e:
            raise IdentityError(f"Could not store credentials: {e}")
        self.logger.info(f"Persisted sign-in restored for user {user_id}")

    def _remember(self, credentials: Credentials) -> None:
        self._known_credentials[credentials.user_id] = credentials

    async def _touch_last_login(self, user_id: str) -> None:
        try:
            await self.firestore.update_fields(self._profile_path(user_id), {
                "lastLogin": datetime.now(pytz.UTC)
            })
        except BackendError as e:
            self.logger.debug(f"Error updating last login time: {e}")

    def _profile_path(self, user_id: str) -> str:
        return f"{self.users_collection}/{user_id}"

    @staticmethod
    def _translate(error: BackendError) -> IdentityError:
        if isinstance(error, AuthenticationError):
            return InvalidCredentialsError(str(error), {"code": error.code})
        if isinstance(error, BackendConnectionError):
            return IdentityServiceUnavailableError(str(error))
        return IdentityError(str(error), error.details)
