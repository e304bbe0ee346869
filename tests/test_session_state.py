"""
Tests for session state: refresh, login, logout, registration and stale completions.
"""

import asyncio
import threading

import pytest

from conftest import settle
from events import EventTypes
from identity import (
    IdentityServiceUnavailableError, LOGGED_OUT, RegistrationValidationError, Session, User
)


class TestRefresh:

    @pytest.mark.asyncio
    async def test_restores_persisted_user(self, session_state, identity, event_bus):
        identity.current_user_id = "user-1"

        assert await session_state.refresh_current_user() is True

        assert session_state.is_logged_in
        assert session_state.current_user == User(id="user-1", name="Ada Reader", email="reader@example.com")
        assert event_bus.get_recent_events(event_type=EventTypes.SESSION_REFRESHED)[-1]["data"]["logged_in"]

    @pytest.mark.asyncio
    async def test_no_persisted_user_means_logged_out(self, session_state):
        assert await session_state.refresh_current_user() is False
        assert session_state.session.value == LOGGED_OUT

    @pytest.mark.asyncio
    async def test_profile_failure_resets_to_logged_out(self, session_state, identity, event_bus):
        """A failing profile fetch is logged and never propagates."""
        identity.current_user_id = "user-1"
        await session_state.refresh_current_user()
        assert session_state.is_logged_in

        identity.fail_with = IdentityServiceUnavailableError("offline")
        assert await session_state.refresh_current_user() is False

        assert not session_state.is_logged_in
        assert session_state.failed_operations == 1
        assert event_bus.get_recent_events(event_type=EventTypes.SESSION_ERROR)

    @pytest.mark.asyncio
    async def test_missing_profile_resets_to_logged_out(self, session_state, identity):
        identity.current_user_id = "ghost"
        assert await session_state.refresh_current_user() is False
        assert not session_state.is_logged_in


class TestLoginLogout:

    @pytest.mark.asyncio
    async def test_login_publishes_user(self, session_state):
        changes = []
        session_state.session.subscribe(lambda old, new: changes.append((old.logged_in, new.logged_in)))

        assert await session_state.login("reader@example.com", "secret123") is True

        assert session_state.current_user.id == "user-1"
        assert changes == [(False, True)]

    @pytest.mark.asyncio
    async def test_wrong_password_leaves_state_unchanged(self, session_state, event_bus):
        assert await session_state.login("reader@example.com", "nope") is False

        assert session_state.session.value == LOGGED_OUT
        error = event_bus.get_recent_events(event_type=EventTypes.SESSION_ERROR)[-1]
        assert error["data"]["operation"] == "login"
        assert error["data"]["error_type"] == "InvalidCredentialsError"

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, session_state, identity):
        await session_state.login("reader@example.com", "secret123")

        assert await session_state.logout() is True

        assert not session_state.is_logged_in
        assert identity.current_user_id is None

    @pytest.mark.asyncio
    async def test_failed_logout_keeps_user(self, session_state, identity):
        await session_state.login("reader@example.com", "secret123")
        identity.fail_with = IdentityServiceUnavailableError("offline")

        assert await session_state.logout() is False
        assert session_state.current_user.id == "user-1"


class TestStaleCompletions:
    """Last requested successful operation wins."""

    @pytest.mark.asyncio
    async def test_older_login_finishing_late_is_ignored(self, session_state, identity, event_bus):
        slow_gate = asyncio.Event()
        identity.gates["reader@example.com"] = slow_gate

        slow = asyncio.ensure_future(session_state.login("reader@example.com", "secret123"))
        await asyncio.sleep(0)

        assert await session_state.login("other@example.com", "hunter22") is True
        assert session_state.current_user.id == "user-2"

        slow_gate.set()
        assert await slow is False

        assert session_state.current_user.id == "user-2"
        assert session_state.stale_completions == 1
        assert event_bus.get_recent_events(event_type=EventTypes.SESSION_STALE_COMPLETION)

    @pytest.mark.asyncio
    async def test_late_login_does_not_replace_persisted_sign_in(self, session_state, identity):
        slow_gate = asyncio.Event()
        identity.gates["reader@example.com"] = slow_gate

        slow = asyncio.ensure_future(session_state.login("reader@example.com", "secret123"))
        await asyncio.sleep(0)
        await session_state.login("other@example.com", "hunter22")

        slow_gate.set()
        await slow

        assert identity.get_current_user_id() == session_state.current_user.id == "user-2"
        assert identity.restored == ["user-2"]
        assert session_state.get_stats()["identity_restores"] == 1

    @pytest.mark.asyncio
    async def test_logout_requested_after_login_wins(self, session_state, identity):
        gate = asyncio.Event()
        identity.gates["reader@example.com"] = gate

        pending_login = asyncio.ensure_future(session_state.login("reader@example.com", "secret123"))
        await asyncio.sleep(0)
        await session_state.logout()

        gate.set()
        await pending_login

        assert session_state.session.value == LOGGED_OUT
        assert identity.get_current_user_id() is None

    @pytest.mark.asyncio
    async def test_failed_login_does_not_supersede_logout_in_flight(self, session_state, identity):
        await session_state.login("reader@example.com", "secret123")
        logout_gate = asyncio.Event()
        identity.gates["logout"] = logout_gate

        pending_logout = asyncio.ensure_future(session_state.logout())
        await asyncio.sleep(0)

        assert await session_state.login("reader@example.com", "wrong") is False

        logout_gate.set()
        assert await pending_logout is True

        assert not session_state.is_logged_in
        assert identity.get_current_user_id() is None
        assert session_state.stale_completions == 0

    @pytest.mark.asyncio
    async def test_completion_waits_for_newer_call_that_then_fails(self, session_state, identity):
        await session_state.login("reader@example.com", "secret123")
        logout_gate = asyncio.Event()
        login_gate = asyncio.Event()
        identity.gates["logout"] = logout_gate
        identity.gates["reader@example.com"] = login_gate

        pending_logout = asyncio.ensure_future(session_state.logout())
        await asyncio.sleep(0)
        pending_login = asyncio.ensure_future(session_state.login("reader@example.com", "wrong"))
        await asyncio.sleep(0)

        logout_gate.set()
        await settle()
        assert session_state.is_logged_in
        assert session_state.get_stats()["in_flight"] == ["logout", "login"]

        login_gate.set()
        assert await pending_login is False
        assert await pending_logout is True

        assert not session_state.is_logged_in
        assert identity.get_current_user_id() is None

    @pytest.mark.asyncio
    async def test_failure_clears_in_flight_operation(self, session_state):
        assert await session_state.login("reader@example.com", "nope") is False

        stats = session_state.get_stats()
        assert stats["in_flight"] == []
        assert stats["failed_operations"] == 1


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_logs_in_new_user(self, session_state, event_bus):
        assert await session_state.register(" new@example.com ", "longenough", " New Reader ") is True

        user = session_state.current_user
        assert user.email == "new@example.com"
        assert user.name == "New Reader"
        assert event_bus.get_recent_events(event_type=EventTypes.SESSION_REGISTERED)

    @pytest.mark.parametrize("email,password,name,field", [
        ("", "longenough", "Name", "all"),
        ("a@example.com", "short", "Name", "password"),
        ("not-an-email", "longenough", "Name", "email"),
        ("a@example.com", "longenough", "   ", "all"),
    ])
    def test_validation_rejects_bad_input(self, session_state, email, password, name, field):
        with pytest.raises(RegistrationValidationError) as exc_info:
            session_state.validate_registration(email, password, name)
        assert exc_info.value.field == field

    @pytest.mark.asyncio
    async def test_invalid_registration_never_reaches_service(self, session_state, identity):
        accounts_before = dict(identity.accounts)

        assert await session_state.register("bad", "longenough", "Name") is False

        assert identity.accounts == accounts_before
        assert not session_state.is_logged_in


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_reset_does_not_touch_session(self, session_state, identity):
        await session_state.login("reader@example.com", "secret123")
        before = session_state.session.value

        assert await session_state.reset_password(" reader@example.com ") is True

        assert identity.reset_requests == ["reader@example.com"]
        assert session_state.session.value is before


class TestUpdateContextGuard:

    @pytest.mark.asyncio
    async def test_mutation_from_another_thread_is_rejected(self, session_state, context):
        context.bind()
        errors = []

        def mutate():
            try:
                session_state._apply(session_state._begin("login"), Session(User(id="x")),
                                     EventTypes.SESSION_LOGIN, {})
            except RuntimeError as e:
                errors.append(e)

        thread = threading.Thread(target=mutate)
        thread.start()
        thread.join()

        assert len(errors) == 1
        assert session_state.session.value == LOGGED_OUT
