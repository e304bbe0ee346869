"""
Session state holder: current user, login, logout and refresh
"""

import asyncio
import re
from typing import Optional, Dict, Any

from core.logging_config import get_logger, log_error_with_context
from core.observable import ObservableValue
from core.update_context import UpdateContext
from events import EventBus, EventTypes
from .exceptions import RegistrationValidationError
from .models import LOGGED_OUT, Session, User
from .service import IdentityService

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

# Completions whose service call changed the persisted sign-in
SIGN_IN_EVENTS = (EventTypes.SESSION_LOGIN, EventTypes.SESSION_LOGOUT, EventTypes.SESSION_REGISTERED)


class SessionState:
    """Holds the authenticated user and publishes every change.

    Each session-mutating call takes a fresh operation token when it starts.
    A successful completion waits until every newer call still in flight has
    finished, then is applied unless a newer call was applied first. A call
    that fails supersedes nothing, so the last requested *successful*
    operation wins. When a dropped completion had already changed the
    identity service's persisted sign-in, the service is pointed back at the
    session's user once nothing is in flight.

    Failures never propagate: they are logged and either leave the session as
    it was (login, logout, register) or reset it to logged out (refresh).
    """

    def __init__(self,
                 identity_service: IdentityService,
                 context: UpdateContext,
                 event_bus: Optional[EventBus] = None,
                 min_password_length: int = 6):
        self.logger = get_logger(__name__)
        self.identity = identity_service
        self.context = context
        self.event_bus = event_bus
        self.min_password_length = min_password_length

        self.session: ObservableValue[Session] = ObservableValue(LOGGED_OUT, name="session")

        self._operation_token = 0
        self._applied_token = 0
        self._in_flight: Dict[int, str] = {}
        self._settled = asyncio.Event()
        self._identity_out_of_step = False

        # Stats
        self.stale_completions = 0
        self.failed_operations = 0
        self.identity_restores = 0

    @property
    def current_user(self) -> Optional[User]:
        return self.session.value.user

    @property
    def is_logged_in(self) -> bool:
        return self.session.value.logged_in

    async def refresh_current_user(self) -> bool:
        """
        Restore the session from the identity service's persisted sign-in

        Returns:
            True if a user is logged in afterwards
        """
        token = self._begin("refresh")

        try:
            user_id = self.identity.get_current_user_id()
            if not user_id:
                self.logger.info("No existing session")
                await self._complete(token, LOGGED_OUT, EventTypes.SESSION_REFRESHED, {"logged_in": False})
                return False

            profile = await self.identity.fetch_user_profile(user_id)
        except Exception as e:
            self.failed_operations += 1
            self.logger.error(f"Could not load user profile: {e}")
            self._emit(EventTypes.SESSION_ERROR, {"operation": "refresh", "error": str(e)})
            await self._complete(token, LOGGED_OUT, EventTypes.SESSION_REFRESHED, {"logged_in": False})
            return False

        user = User.from_profile(user_id, profile)
        if not await self._complete(token, Session(user), EventTypes.SESSION_REFRESHED,
                                    {"logged_in": True, "user_id": user.id}):
            return self.is_logged_in

        self.logger.info(f"Session restored for user {user.id}")
        return True

    async def login(self, email: str, password: str) -> bool:
        """
        Sign in with email and password

        Returns:
            True if this call logged the user in
        """
        token = self._begin("login")

        try:
            user = await self.identity.login(email, password)
        except Exception as e:
            await self._fail(token, "login", e)
            return False

        if not await self._complete(token, Session(user), EventTypes.SESSION_LOGIN, {"user_id": user.id}):
            return False

        self.logger.info(f"User {user.id} logged in")
        return True

    async def logout(self) -> bool:
        """Sign out; the session is cleared only when the service confirms"""
        token = self._begin("logout")
        previous = self.current_user

        try:
            await self.identity.logout()
        except Exception as e:
            await self._fail(token, "logout", e)
            return False

        data = {"user_id": previous.id if previous else None}
        if not await self._complete(token, LOGGED_OUT, EventTypes.SESSION_LOGOUT, data):
            return False

        self.logger.info("User logged out")
        return True

    async def register(self, email: str, password: str, name: str) -> bool:
        """
        Create an account and log it in

        Returns:
            True if the new user is logged in
        """
        try:
            self.validate_registration(email, password, name)
        except RegistrationValidationError as e:
            self._report_failure("register", e)
            return False

        token = self._begin("register")

        try:
            user = await self.identity.register(email.strip(), password, name.strip())
        except Exception as e:
            await self._fail(token, "register", e)
            return False

        if not await self._complete(token, Session(user), EventTypes.SESSION_REGISTERED, {"user_id": user.id}):
            return False

        self.logger.info(f"Registered and logged in user {user.id}")
        return True

    async def reset_password(self, email: str) -> bool:
        """Ask the service to send a password reset email; never touches the session"""
        try:
            await self.identity.reset_password(email.strip())
        except Exception as e:
            self._report_failure("reset_password", e)
            return False

        self.logger.info("Password reset email requested")
        self._emit(EventTypes.SESSION_PASSWORD_RESET, {})
        return True

    def validate_registration(self, email: str, password: str, name: str) -> None:
        """
        Reject obviously invalid registration input

        Raises:
            RegistrationValidationError: On the first invalid field
        """
        if not email.strip() or not password or not name.strip():
            raise RegistrationValidationError("all", "Email, password and name are required")

        if len(password) < self.min_password_length:
            raise RegistrationValidationError(
                "password", f"Password must be at least {self.min_password_length} characters"
            )

        if not EMAIL_PATTERN.match(email.strip()):
            raise RegistrationValidationError("email", "Invalid email address")

    def _begin(self, operation: str) -> int:
        self._operation_token += 1
        if self._in_flight:
            self.logger.debug(f"{operation} requested while {', '.join(self._in_flight.values())} in flight")
        self._in_flight[self._operation_token] = operation
        return self._operation_token

    async def _complete(self, token: int, session: Session, event_type: str, data: Dict[str, Any]) -> bool:
        """Apply ``session`` once newer calls have settled; returns False if it was superseded"""
        while any(other > token for other in self._in_flight):
            await self._settled.wait()

        try:
            return self._apply(token, session, event_type, data)
        finally:
            self._release(token)
            await self._restore_identity()

    async def _fail(self, token: int, operation: str, error: Exception) -> None:
        self._report_failure(operation, error)
        self._release(token)
        await self._restore_identity()

    def _apply(self, token: int, session: Session, event_type: str, data: Dict[str, Any]) -> bool:
        self.context.ensure_current()

        if token < self._applied_token:
            self.stale_completions += 1
            self.logger.debug(f"Ignoring stale {event_type} completion (token {token}, applied {self._applied_token})")
            self._emit(EventTypes.SESSION_STALE_COMPLETION, {"event": event_type, "token": token})
            if event_type in SIGN_IN_EVENTS:
                self._identity_out_of_step = True
            return False

        self._applied_token = token
        self.session.set(session)
        self._emit(event_type, data)
        return True

    def _release(self, token: int) -> None:
        self._in_flight.pop(token, None)
        settled, self._settled = self._settled, asyncio.Event()
        settled.set()

    async def _restore_identity(self) -> None:
        """Point the identity service back at the session's user after a dropped sign-in change"""
        if self._in_flight or not self._identity_out_of_step:
            return
        self._identity_out_of_step = False

        user_id = self.current_user.id if self.current_user else None
        if self.identity.get_current_user_id() == user_id:
            return

        self.identity_restores += 1
        self.logger.info(f"Restoring persisted sign-in to {user_id or 'signed out'}")
        try:
            await self.identity.restore_sign_in(user_id)
        except Exception as e:
            self._report_failure("restore_sign_in", e)

    def _report_failure(self, operation: str, error: Exception) -> None:
        self.failed_operations += 1
        log_error_with_context(self.logger, error, operation)
        self._emit(EventTypes.SESSION_ERROR, {
            "operation": operation,
            "error_type": type(error).__name__,
            "error": str(error)
        })

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.event_bus:
            self.event_bus.emit(event_type, data, source="session_state")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "session": self.session.value.to_dict(),
            "operation_token": self._operation_token,
            "applied_token": self._applied_token,
            "in_flight": [self._in_flight[token] for token in sorted(self._in_flight)],
            "stale_completions": self.stale_completions,
            "failed_operations": self.failed_operations,
            "identity_restores": self.identity_restores,
        }
