"""Tests for the Fluentd audit logging plugin."""

from unittest.mock import MagicMock, patch

import pytest

from chargesim.collector import CollectorError
from chargesim.config import SimulatorConfig
from chargesim.plugins import FluentdAuditPlugin
from chargesim.session import ChargingSessionMachine


async def create_test_machine(collector, scheduler, clock, plugins=None):
    """Helper to create and initialize a session machine."""
    config = SimulatorConfig(collector_url="http://collector.test", charger_id="TEST001")
    machine = ChargingSessionMachine(
        config,
        collector,
        plugins=plugins,
        scheduler=scheduler,
        clock=clock,
    )

    # Initialize plugins (normally done by main)
    await machine.initialize()
    return machine


def emitted(mock_sender, tag):
    """Return the data of every event emitted with the given tag."""
    return [c[0][1] for c in mock_sender.emit.call_args_list if c[0][0] == tag]


class TestFluentdAuditPlugin:
    """Test the Fluentd audit logging plugin."""

    @pytest.mark.asyncio
    async def test_plugin_initialization(self, collector, scheduler, clock):
        """Test that Fluentd sender is initialized."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin(
                tag_prefix="test_chargesim",
                host="test-host",
                port=12345,
            )

            await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            mock_sender_class.assert_called_once_with(
                "test_chargesim",
                host="test-host",
                port=12345,
                timeout=3.0,
                buffer_overflow_handler=None,
                nanosecond_precision=False,
            )

            assert plugin.sender is not None

    @pytest.mark.asyncio
    async def test_session_start_logging(self, collector, scheduler, clock):
        """Test that session start is logged with the transaction id."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            await machine.start()

            events = emitted(mock_sender, "session.start")
            assert len(events) == 1
            event_data = events[0]
            assert event_data["type"] == "session"
            assert event_data["charger"] == "TEST001"
            assert event_data["tx"] == "tx-001"
            assert event_data["msg"] == {
                "started_at": clock().isoformat(),
                "soc_start": 0.2,
            }
            await machine.wait_for_updates()

    @pytest.mark.asyncio
    async def test_charge_update_logging(self, collector, scheduler, clock):
        """Test that each accepted update is logged with its record."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            await machine.start()
            scheduler.fire()
            await machine.wait_for_updates()

            events = emitted(mock_sender, "charge.update")
            assert len(events) == 2

            records = [c.args[1].to_payload() for c in collector.send_update.await_args_list]
            assert all(e["msg"] in records for e in events)
            assert events[0]["msg"] != events[1]["msg"]
            assert all(e["tx"] == "tx-001" for e in events)

    @pytest.mark.asyncio
    async def test_session_end_logging(self, collector, scheduler, clock):
        """Test that session end is logged with totals."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            await machine.start()
            await machine.wait_for_updates()
            clock.advance(30)
            energy = machine.session.energy_dispensed_kwh
            await machine.stop()

            events = emitted(mock_sender, "session.end")
            assert len(events) == 1
            event_data = events[0]
            assert event_data["tx"] == "tx-001"
            assert event_data["acknowledged"] is True
            assert event_data["energy_kwh"] == energy
            assert event_data["elapsed_s"] == 30
            assert "error" not in event_data
            assert event_data["msg"]["sample_time_increment"] == 1

    @pytest.mark.asyncio
    async def test_unacknowledged_end_logging(self, collector, scheduler, clock):
        """Test that a rejected end call is logged with its error."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            collector.end_session.side_effect = CollectorError("charge_end", "Failed to end charge: 500 boom")
            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            await machine.start()
            await machine.stop()

            event_data = emitted(mock_sender, "session.end")[0]
            assert event_data["acknowledged"] is False
            assert event_data["error"] == "Failed to end charge: 500 boom"
            await machine.wait_for_updates()

    @pytest.mark.asyncio
    async def test_session_error_logging(self, collector, scheduler, clock):
        """Test that start failures are logged as session errors."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            collector.start_session.side_effect = CollectorError(
                "start_charge", "Failed to start charge: 500 boom"
            )
            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            await machine.start()

            events = emitted(mock_sender, "session.error")
            assert len(events) == 1
            event_data = events[0]
            assert event_data["error_type"] == "start_failure"
            assert event_data["error"] == "Failed to start charge: 500 boom"
            assert "tx" not in event_data
            assert emitted(mock_sender, "session.start") == []

    @pytest.mark.asyncio
    async def test_sender_failure_does_not_break_session(self, collector, scheduler, clock):
        """Test that Fluentd errors are contained."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender.emit.side_effect = OSError("connection refused")
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            assert await machine.start() is True
            await machine.wait_for_updates()
            assert await machine.stop() is True

    @pytest.mark.asyncio
    async def test_without_sender_nothing_is_sent(self, collector, scheduler, clock):
        """Test that a failed sender initialization disables logging."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender_class.side_effect = RuntimeError("bad config")

            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            assert plugin.sender is None
            assert await machine.start() is True
            await machine.wait_for_updates()

    @pytest.mark.asyncio
    async def test_cleanup_closes_sender(self, collector, scheduler, clock):
        """Test that Fluentd sender is closed on cleanup."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            machine = await create_test_machine(collector, scheduler, clock, plugins=[plugin])

            await machine.close()

            mock_sender.close.assert_called_once()
