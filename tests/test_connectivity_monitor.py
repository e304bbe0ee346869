"""
Tests for the connectivity monitor.
"""

import asyncio
import threading
from unittest.mock import AsyncMock, patch

import pytest

from conftest import settle
from connectivity import ConnectivityMonitor
from events import EventTypes


class TestReachabilityReports:

    @pytest.mark.asyncio
    async def test_starts_disconnected(self, monitor):
        await monitor.start()
        assert monitor.is_connected is False

    @pytest.mark.asyncio
    async def test_transitions_are_published_once(self, monitor, event_bus):
        seen = []
        monitor.state.subscribe(lambda old, new: seen.append((old.connected, new.connected)))

        monitor.report_reachability(True)
        monitor.report_reachability(True)
        monitor.report_reachability(False)
        await settle()

        assert seen == [(False, True), (True, False)]
        assert monitor.transition_count == 2
        changes = event_bus.get_recent_events(event_type=EventTypes.CONNECTIVITY_CHANGED)
        assert [c["data"]["connected"] for c in changes] == [True, False]

    @pytest.mark.asyncio
    async def test_report_from_foreign_thread_lands_on_context(self, monitor, context):
        context.bind()
        applied_on = []
        monitor.state.subscribe(lambda old, new: applied_on.append(threading.get_ident()))

        thread = threading.Thread(target=monitor.report_reachability, args=(True,))
        thread.start()
        thread.join()
        await settle()

        assert monitor.is_connected
        assert applied_on == [threading.get_ident()]


class TestProbe:

    @pytest.mark.asyncio
    async def test_failed_probe_means_disconnected(self, context):
        monitor = ConnectivityMonitor(context, probe_host="127.0.0.1", probe_port=9, probe_timeout=0.2)

        with patch("asyncio.open_connection", AsyncMock(side_effect=OSError("refused"))):
            assert await monitor.probe() is False

        assert monitor.probe_failures == 1

    @pytest.mark.asyncio
    async def test_probe_timeout_means_disconnected(self, context):
        monitor = ConnectivityMonitor(context, probe_timeout=0.01)

        async def hang(*args, **kwargs):
            await asyncio.sleep(1)

        with patch("asyncio.open_connection", hang):
            assert await monitor.probe() is False

    @pytest.mark.asyncio
    async def test_start_applies_initial_probe(self, context):
        monitor = ConnectivityMonitor(context, check_interval=60)

        with patch.object(monitor, "probe", AsyncMock(return_value=True)):
            await monitor.start()

        try:
            assert monitor.is_connected
            assert context.pending_tasks == 1
        finally:
            await monitor.stop()

        assert context.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_probe_loop_follows_network(self, context):
        monitor = ConnectivityMonitor(context, check_interval=0.01)
        results = iter([True, False, True])

        async def fake_probe():
            return next(results, True)

        with patch.object(monitor, "probe", fake_probe):
            await monitor.start()
            await asyncio.sleep(0.1)
            await monitor.stop()

        assert monitor.is_connected
        assert monitor.transition_count == 3
