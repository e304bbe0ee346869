#!/usr/bin/env python3
"""
Main application - Wires connectivity, session state and the library sync trigger
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

from config import (
    FIREBASE_CONFIG, IDENTITY_CONFIG, CONNECTIVITY_CONFIG, SYNC_CONFIG,
    LIBRARY_CONFIG, EVENT_CONFIG, LOGGING_CONFIG
)
from backend import CredentialStore, FirebaseAuthClient, FirestoreClient
from connectivity import ConnectivityMonitor
from core import UpdateContext, setup_logging, get_logger
from core.config_validator import validate_startup_config, ConfigValidationError
from events import EventBus, EventTypes, SystemEvent
from identity import FirebaseIdentityService, SessionState
from library import FirestoreBookStore, LocalLibrary
from sync import LibrarySyncService, SyncStatePersistence, SyncTrigger


class BookMateApp:
    """Owns every component and runs them on one update context"""

    def __init__(self, enable_probe: bool = True):
        self.logger = get_logger(__name__)

        self.context = UpdateContext()
        self.event_bus = EventBus(max_history=EVENT_CONFIG.get("max_history", 1000))
        self.event_bus.on_all(self._log_event)

        # Backend clients
        self.credential_store = CredentialStore(IDENTITY_CONFIG.get("credentials_file"))
        self.auth_client = FirebaseAuthClient(
            api_key=FIREBASE_CONFIG["api_key"],
            auth_endpoint=FIREBASE_CONFIG["auth_endpoint"],
            token_endpoint=FIREBASE_CONFIG["token_endpoint"],
            timeout=FIREBASE_CONFIG["request_timeout"]
        )
        self.firestore = FirestoreClient(
            project_id=FIREBASE_CONFIG["project_id"],
            credential_store=self.credential_store,
            auth_client=self.auth_client,
            endpoint=FIREBASE_CONFIG["firestore_endpoint"],
            timeout=FIREBASE_CONFIG["request_timeout"]
        )

        # Identity
        self.identity_service = FirebaseIdentityService(
            auth_client=self.auth_client,
            firestore=self.firestore,
            credential_store=self.credential_store,
            users_collection=IDENTITY_CONFIG.get("users_collection", "users")
        )
        self.session_state = SessionState(
            identity_service=self.identity_service,
            context=self.context,
            event_bus=self.event_bus,
            min_password_length=IDENTITY_CONFIG.get("min_password_length", 6)
        )

        # Connectivity
        self.connectivity = ConnectivityMonitor(
            context=self.context,
            probe_host=CONNECTIVITY_CONFIG["probe_host"],
            probe_port=CONNECTIVITY_CONFIG["probe_port"],
            check_interval=CONNECTIVITY_CONFIG["check_interval"],
            probe_timeout=CONNECTIVITY_CONFIG["probe_timeout"],
            event_bus=self.event_bus,
            enable_probe=enable_probe
        )

        # Library and sync
        self.local_library = LocalLibrary(LIBRARY_CONFIG.get("storage_file"))
        self.remote_store = FirestoreBookStore(
            firestore=self.firestore,
            users_collection=IDENTITY_CONFIG.get("users_collection", "users"),
            books_collection=LIBRARY_CONFIG.get("books_collection", "books")
        )
        self.sync_service = LibrarySyncService(
            remote_store=self.remote_store,
            local_library=self.local_library,
            identity_service=self.identity_service,
            persistence=SyncStatePersistence(SYNC_CONFIG.get("state_file"))
        )
        self.sync_trigger = SyncTrigger(
            sync_service=self.sync_service,
            connectivity=self.connectivity,
            session_state=self.session_state,
            context=self.context,
            event_bus=self.event_bus,
            sync_on_startup=SYNC_CONFIG.get("sync_on_startup", True),
            sync_on_login=SYNC_CONFIG.get("sync_on_login", False),
            display_timezone=SYNC_CONFIG.get("display_timezone", "UTC")
        )

        self.running = False
        self._stop_event: Optional[asyncio.Event] = None

    async def start(self, email: Optional[str] = None, password: Optional[str] = None) -> None:
        """Bring up connectivity and the session, then arm the sync trigger"""
        self.context.bind()
        self._stop_event = asyncio.Event()
        self.running = True
        self.event_bus.emit(EventTypes.SYSTEM_START, {}, source="main")

        await self.connectivity.start()
        await self.session_state.refresh_current_user()

        if email and password and not self.session_state.is_logged_in:
            await self.session_state.login(email, password)

        # Armed last so the startup sync sees the final startup state
        self.sync_trigger.start()

        self.logger.info("System ready", extra={"extra_data": {
            "connected": self.connectivity.is_connected,
            "logged_in": self.session_state.is_logged_in,
            "pending_operations": self.sync_service.pending_count,
            "books": len(self.local_library)
        }})

    async def run_forever(self) -> None:
        await self._stop_event.wait()

    async def run_once(self) -> None:
        """Wait for any sync the startup fired, then return"""
        result = await self.sync_trigger.wait_idle()
        if result is None:
            self.logger.info("No sync was needed at startup")

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self) -> None:
        if not self.running:
            return

        self.logger.info("Stopping BookMate sync")
        self.running = False

        self.sync_trigger.stop()

        try:
            await self.connectivity.stop()
        except Exception as e:
            self.logger.error(f"Error stopping connectivity monitor: {e}", exc_info=True)

        await self.context.shutdown()
        self.event_bus.emit(EventTypes.SYSTEM_STOP, {
            "sync": self.sync_trigger.get_stats(),
            "session": self.session_state.get_stats()
        }, source="main")
        self.logger.info("BookMate sync stopped")

    def _log_event(self, event: SystemEvent) -> None:
        self.logger.debug(f"Event {event.type}", extra={"extra_data": {
            "event_type": event.type,
            "event_source": event.source,
            "event_data": event.data
        }})


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="BookMate library sync coordinator")
    parser.add_argument("--email", help="Log in with this email if no session is stored")
    parser.add_argument("--password", help="Password for --email")
    parser.add_argument("--once", action="store_true",
                        help="Run the startup sequence, wait for any sync and exit")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Override LOG_LEVEL")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> None:
    app = BookMateApp()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.request_stop)
        except NotImplementedError:
            # Not available on Windows event loops; Ctrl+C still raises KeyboardInterrupt
            pass

    try:
        await app.start(email=args.email, password=args.password)
        if args.once:
            await app.run_once()
        else:
            await app.run_forever()
    finally:
        await app.stop()


if __name__ == "__main__":
    args = parse_args()

    # Validate configuration first (before logging setup)
    try:
        validate_startup_config()
    except ConfigValidationError as e:
        print(f"Configuration validation failed: {e}")
        print("Please fix the configuration errors and try again.")
        sys.exit(1)

    logging_config = dict(LOGGING_CONFIG)
    if args.log_level:
        logging_config["log_level"] = args.log_level

    setup_logging(logging_config)
    logger = get_logger(__name__)
    logger.info("Starting BookMate sync")

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nShutting down...")
    except Exception as e:
        logger.error("BookMate sync failed", exc_info=True, extra={
            "extra_data": {"error_type": type(e).__name__, "error_message": str(e)}
        })
        sys.exit(1)
