"""
Sync trigger: starts a full sync when the app is online and a user is signed in
"""

import asyncio
from enum import Enum
from typing import Dict, Any, Optional

import pytz

from connectivity.monitor import ConnectivityMonitor, ConnectivityState
from core.logging_config import get_logger, log_error_with_context
from core.update_context import UpdateContext
from events import EventBus, EventTypes
from identity.models import Session
from identity.session_state import SessionState
from .models import SyncResult
from .service import SyncService


class SyncTriggerState(Enum):
    """Trigger states"""
    IDLE = "idle"
    SYNCING = "syncing"


class SyncTrigger:
    """Watches connectivity and session state and fires ``sync_all``.

    A sync fires once at startup when connected and logged in, and again on
    every offline to online transition while logged in. At most one sync is
    in flight; conditions met while syncing are skipped, not queued. Results
    are reported and never retried.
    """

    def __init__(self,
                 sync_service: SyncService,
                 connectivity: ConnectivityMonitor,
                 session_state: SessionState,
                 context: UpdateContext,
                 event_bus: Optional[EventBus] = None,
                 sync_on_startup: bool = True,
                 sync_on_login: bool = False,
                 display_timezone: str = "UTC"):
        self.logger = get_logger(__name__)
        self.sync_service = sync_service
        self.connectivity = connectivity
        self.session_state = session_state
        self.context = context
        self.event_bus = event_bus
        self.sync_on_startup = sync_on_startup
        self.sync_on_login = sync_on_login
        self.display_timezone = pytz.timezone(display_timezone)

        self.state = SyncTriggerState.IDLE
        self.last_result: Optional[SyncResult] = None
        self._sync_task: Optional[asyncio.Task] = None
        self._unsubscribers = []

        # Stats
        self.sync_count = 0
        self.skipped_count = 0
        self.failed_count = 0

    @property
    def is_syncing(self) -> bool:
        return self.state == SyncTriggerState.SYNCING

    def start(self) -> None:
        """Subscribe to state changes and evaluate the startup condition"""
        self.context.ensure_current()
        if self._unsubscribers:
            return

        self._unsubscribers = [
            self.connectivity.state.subscribe(self._on_connectivity_changed),
            self.session_state.session.subscribe(self._on_session_changed),
        ]

        if self.sync_on_startup and self._can_sync():
            self.logger.info("Online with a signed-in user at startup")
            self._fire("startup")

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def wait_idle(self) -> Optional[SyncResult]:
        """Wait for the in-flight sync, if any; returns the latest result"""
        if self._sync_task is not None:
            await asyncio.gather(self._sync_task, return_exceptions=True)
        return self.last_result

    def _can_sync(self) -> bool:
        return self.connectivity.is_connected and self.session_state.is_logged_in

    def _on_connectivity_changed(self, old: ConnectivityState, new: ConnectivityState) -> None:
        if old.connected or not new.connected:
            return

        if not self.session_state.is_logged_in:
            self.logger.debug("Back online but nobody is signed in, not syncing")
            return

        self._fire("connectivity")

    def _on_session_changed(self, old: Session, new: Session) -> None:
        if not self.sync_on_login:
            return

        if old.logged_in or not new.logged_in:
            return

        if self.connectivity.is_connected:
            self._fire("login")

    def _fire(self, reason: str) -> None:
        self.context.ensure_current()

        if self.state == SyncTriggerState.SYNCING:
            self.skipped_count += 1
            self.logger.debug(f"Sync already in flight, skipping {reason} trigger")
            self._emit(EventTypes.SYNC_SKIPPED, {"reason": reason})
            return

        self.state = SyncTriggerState.SYNCING
        self.sync_count += 1
        self._emit(EventTypes.SYNC_START, {"reason": reason})
        self._sync_task = self.context.spawn(self._run(reason), name=f"Sync-{self.sync_count}")

    async def _run(self, reason: str) -> None:
        try:
            result = await self.sync_service.sync_all()
        except Exception as e:
            self.failed_count += 1
            result = SyncResult.failure(e)
            log_error_with_context(self.logger, e, "Sync", reason=reason)
            self._finish(result, EventTypes.SYNC_ERROR)
            return

        if not result.success:
            self.failed_count += 1
        self._report(result)
        self._finish(result, EventTypes.SYNC_COMPLETE)

    def _finish(self, result: SyncResult, event_type: str) -> None:
        self.last_result = result
        self.state = SyncTriggerState.IDLE
        self._emit(event_type, result.to_dict())

    def _report(self, result: SyncResult) -> None:
        self.logger.info(f"Sync success: {result.success}")
        self.logger.info(f"Last sync time: {self._format_time(result)}")
        self.logger.info(f"Synced items: {result.synced_item_count}")
        for error in result.errors:
            self.logger.warning(f"Sync error: {error}")

    def _format_time(self, result: SyncResult) -> str:
        if result.last_sync_time is None:
            return "never"

        sync_time = result.last_sync_time
        if sync_time.tzinfo is None:
            sync_time = pytz.UTC.localize(sync_time)
        return sync_time.astimezone(self.display_timezone).strftime("%Y-%m-%d %H:%M:%S %Z")

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.event_bus:
            self.event_bus.emit(event_type, data, source="sync_trigger")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "sync_count": self.sync_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
