"""
Network reachability monitor exposing a single "connected" signal
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from core.logging_config import get_logger
from core.observable import ObservableValue
from core.update_context import UpdateContext
from events import EventBus, EventTypes


@dataclass(frozen=True)
class ConnectivityState:
    """Snapshot of network reachability"""
    connected: bool = False
    changed_at: float = field(default_factory=time.time, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"connected": self.connected, "changed_at": self.changed_at}


class ConnectivityMonitor:
    """Publishes reachability transitions on the update context.

    Reachability comes from two sources: a periodic TCP probe against the
    backend host, and ``report_reachability`` for platform events delivered
    from any thread. A probe that fails for any reason means disconnected;
    monitoring never raises.
    """

    def __init__(self,
                 context: UpdateContext,
                 probe_host: str = "firestore.googleapis.com",
                 probe_port: int = 443,
                 check_interval: float = 5.0,
                 probe_timeout: float = 3.0,
                 event_bus: Optional[EventBus] = None,
                 enable_probe: bool = True):
        """
        Args:
            context: Update context that owns the connectivity state
            probe_host: Host used for the TCP reachability probe
            probe_port: Port used for the probe
            check_interval: Seconds between probes
            probe_timeout: TCP connect timeout in seconds
            event_bus: Optional status sink
            enable_probe: Disable to rely on ``report_reachability`` only
        """
        self.logger = get_logger(__name__)
        self.context = context
        self.probe_host = probe_host
        self.probe_port = probe_port
        self.check_interval = check_interval
        self.probe_timeout = probe_timeout
        self.event_bus = event_bus
        self.enable_probe = enable_probe

        # Assume disconnected until the first probe or report says otherwise
        self.state: ObservableValue[ConnectivityState] = ObservableValue(
            ConnectivityState(connected=False), name="connectivity"
        )

        self._probe_task: Optional[asyncio.Task] = None
        self._running = False

        # Stats
        self.probe_count = 0
        self.probe_failures = 0
        self.transition_count = 0

    @property
    def is_connected(self) -> bool:
        return self.state.value.connected

    async def start(self) -> None:
        """Run one probe immediately, then keep probing in the background"""
        if self._running:
            return

        self._running = True
        if not self.enable_probe:
            self.logger.info("Connectivity probe disabled, waiting for reachability reports")
            return

        self._apply(await self.probe(), source="probe")
        self._probe_task = self.context.spawn(self._probe_loop(), name="ConnectivityProbe")
        self.logger.info(f"Connectivity monitor started (connected={self.is_connected})")

    async def stop(self) -> None:
        self._running = False
        if self._probe_task and not self._probe_task.done():
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
        self._probe_task = None

    async def probe(self) -> bool:
        """
        Try a TCP connection to the probe target

        Returns:
            True if the connection succeeded within ``probe_timeout``
        """
        self.probe_count += 1
        writer = None
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.probe_host, self.probe_port),
                timeout=self.probe_timeout
            )
            return True
        except (OSError, asyncio.TimeoutError) as e:
            self.probe_failures += 1
            self.logger.debug(f"Connectivity probe to {self.probe_host}:{self.probe_port} failed: {e}")
            return False
        finally:
            if writer is not None:
                writer.close()

    async def _probe_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.check_interval)
            try:
                connected = await self.probe()
            except Exception as e:
                # Unexpected monitor failure degrades to disconnected
                self.logger.error(f"Connectivity probe crashed: {e}", exc_info=True)
                self._emit(EventTypes.CONNECTIVITY_PROBE_FAILED, {"error": str(e)})
                connected = False
            self._apply(connected, source="probe")

    def report_reachability(self, connected: bool) -> None:
        """Platform reachability callback; safe to call from any thread"""
        self.context.post(self._apply, bool(connected), "platform")

    def _apply(self, connected: bool, source: str = "probe") -> None:
        self.context.ensure_current()
        if connected == self.is_connected:
            return

        self.transition_count += 1
        self.logger.info(f"Network {'connected' if connected else 'disconnected'} ({source})")
        self.state.set(ConnectivityState(connected=connected))
        self._emit(EventTypes.CONNECTIVITY_CHANGED, {"connected": connected, "source": source})

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.event_bus:
            self.event_bus.emit(event_type, data, source="connectivity_monitor")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "connected": self.is_connected,
            "probe_target": f"{self.probe_host}:{self.probe_port}",
            "probe_count": self.probe_count,
            "probe_failures": self.probe_failures,
            "transition_count": self.transition_count,
            "running": self._running,
        }
