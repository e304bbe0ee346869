# tests/conftest.py
import asyncio
from datetime import datetime
from typing import Dict, Any, List, Optional

import pytest
import pytz

from connectivity import ConnectivityMonitor
from core import UpdateContext
from events import EventBus
from identity import IdentityService, InvalidCredentialsError, SessionNotFoundError, SessionState, User
from library import Book, LocalLibrary, RemoteBookStore
from backend import BackendConnectionError
from sync import SyncResult, SyncService, SyncStatePersistence


async def settle(rounds: int = 5) -> None:
    """Let callbacks posted with call_soon_threadsafe run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeIdentityService(IdentityService):
    """In-memory identity backend with optional gates to hold a call open"""

    def __init__(self):
        self.current_user_id: Optional[str] = None
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.accounts: Dict[str, str] = {}  # email -> password
        self.user_ids: Dict[str, str] = {}  # email -> user id
        self.gates: Dict[str, asyncio.Event] = {}
        self.fail_with: Optional[Exception] = None
        self.reset_requests: List[str] = []
        self.restored: List[Optional[str]] = []

    def add_account(self, user_id: str, email: str, password: str, name: str = "") -> None:
        self.accounts[email] = password
        self.user_ids[email] = user_id
        self.profiles[user_id] = {"name": name, "email": email}

    def get_current_user_id(self) -> Optional[str]:
        return self.current_user_id

    async def fetch_user_profile(self, user_id: str) -> Dict[str, Any]:
        await self._maybe_wait("fetch")
        if self.fail_with:
            raise self.fail_with
        if user_id not in self.profiles:
            raise SessionNotFoundError(user_id)
        return self.profiles[user_id]

    async def login(self, email: str, password: str) -> User:
        await self._maybe_wait(email)
        if self.fail_with:
            raise self.fail_with
        if self.accounts.get(email) != password:
            raise InvalidCredentialsError("INVALID_LOGIN_CREDENTIALS")
        user_id = self.user_ids[email]
        self.current_user_id = user_id
        return User.from_profile(user_id, self.profiles[user_id])

    async def logout(self) -> None:
        await self._maybe_wait("logout")
        if self.fail_with:
            raise self.fail_with
        self.current_user_id = None

    async def register(self, email: str, password: str, name: str) -> User:
        if self.fail_with:
            raise self.fail_with
        user_id = f"uid-{len(self.accounts) + 1}"
        self.add_account(user_id, email, password, name)
        self.current_user_id = user_id
        return User(id=user_id, name=name, email=email)

    async def reset_password(self, email: str) -> None:
        if self.fail_with:
            raise self.fail_with
        self.reset_requests.append(email)

    async def restore_sign_in(self, user_id: Optional[str]) -> None:
        self.restored.append(user_id)
        self.current_user_id = user_id

    async def _maybe_wait(self, key: str) -> None:
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()


class FakeSyncService(SyncService):
    """Returns queued results; ``gate`` holds sync_all open until set"""

    def __init__(self):
        self.calls = 0
        self.results: List[SyncResult] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def sync_all(self) -> SyncResult:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return SyncResult(success=True, last_sync_time=datetime(2024, 5, 1, 12, 0, tzinfo=pytz.UTC),
                          synced_item_count=3)


class FakeRemoteStore(RemoteBookStore):
    """Per-user book dicts; ``fail_on`` makes the named call raise"""

    def __init__(self):
        self.books: Dict[str, Dict[str, Book]] = {}
        self.saved: List[str] = []
        self.deleted: List[str] = []
        self.fail_on: Dict[str, Exception] = {}

    async def fetch_books(self, user_id: str) -> List[Book]:
        self._maybe_fail("fetch")
        return list(self.books.get(user_id, {}).values())

    async def save_book(self, book: Book, user_id: str) -> None:
        self._maybe_fail("save")
        self._maybe_fail(f"save:{book.id}")
        self.books.setdefault(user_id, {})[book.id] = book
        self.saved.append(book.id)

    async def delete_book(self, book_id: str, user_id: str) -> None:
        self._maybe_fail("delete")
        self.books.get(user_id, {}).pop(book_id, None)
        self.deleted.append(book_id)

    def _maybe_fail(self, key: str) -> None:
        if key in self.fail_on:
            raise self.fail_on[key]


@pytest.fixture
def context():
    return UpdateContext()


@pytest.fixture
def event_bus():
    return EventBus(max_history=100)


@pytest.fixture
def identity():
    service = FakeIdentityService()
    service.add_account("user-1", "reader@example.com", "secret123", "Ada Reader")
    service.add_account("user-2", "other@example.com", "hunter22", "Other Reader")
    return service


@pytest.fixture
def session_state(identity, context, event_bus):
    return SessionState(identity, context, event_bus=event_bus)


@pytest.fixture
def monitor(context, event_bus):
    return ConnectivityMonitor(context, event_bus=event_bus, enable_probe=False)


@pytest.fixture
def sync_service():
    return FakeSyncService()


@pytest.fixture
def remote_store():
    return FakeRemoteStore()


@pytest.fixture
def local_library():
    return LocalLibrary()


@pytest.fixture
def persistence(tmp_path):
    return SyncStatePersistence(str(tmp_path / "sync_state.json"))


@pytest.fixture
def offline_error():
    return BackendConnectionError("Firestore timed out after 10.0s")
