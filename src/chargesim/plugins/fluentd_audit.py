"""Plugin for structured audit logging to Fluentd."""

import asyncio
from typing import Any

from fluent import sender

from .base import PluginContext, PluginHook, SessionPlugin


class FluentdAuditPlugin(SessionPlugin):
    """
    Sends structured audit logs of session events to Fluentd.

    Every collector exchange of a session (start, each telemetry update, end)
    and every transition to the error state produces one event.

    Example log entry:
    {
        "type": "session",
        "charger": "King_of_the_North",
        "tx": "a1b2c3",
        "msg": {
            "sample_time_increment": 1,
            "soc": 0.22,
            "temp_c": 20.31,
            ...
        }
    }
    """

    def __init__(
        self,
        tag_prefix: str = "chargesim",
        host: str = "localhost",
        port: int = 24224,
        timeout: float = 3.0,
        buffer_overflow_handler: Any = None,
        nanosecond_precision: bool = False,
    ):
        """
        Initialize the Fluentd audit plugin.

        Args:
            tag_prefix: Prefix for Fluentd tags (default: "chargesim")
                       Tags will be: chargesim.session.start, chargesim.charge.update, etc.
            host: Fluentd server hostname (default: "localhost")
            port: Fluentd server port (default: 24224)
            timeout: Connection timeout in seconds (default: 3.0)
            buffer_overflow_handler: Handler for buffer overflow (default: None)
            nanosecond_precision: Use nanosecond precision timestamps (default: False)
        """
        super().__init__()
        self.tag_prefix = tag_prefix
        self.host = host
        self.port = port
        self.timeout = timeout
        self.buffer_overflow_handler = buffer_overflow_handler
        self.nanosecond_precision = nanosecond_precision
        self.sender = None

    def hooks(self) -> dict[PluginHook, str]:
        """Register hooks for all session events."""
        return {
            PluginHook.AFTER_START_SESSION: "log_start_session",
            PluginHook.AFTER_CHARGE_UPDATE: "log_charge_update",
            PluginHook.AFTER_END_SESSION: "log_end_session",
            PluginHook.ON_SESSION_ERROR: "log_session_error",
        }

    async def initialize(self, machine):
        """Initialize Fluentd sender when plugin is registered."""
        try:
            self.sender = sender.FluentSender(
                self.tag_prefix,
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                buffer_overflow_handler=self.buffer_overflow_handler,
                nanosecond_precision=self.nanosecond_precision,
            )
        except Exception as e:
            self.logger.error(f"Failed to initialize Fluentd sender: {e}", exc_info=True)
            self.sender = None

    async def cleanup(self, machine):
        """Close Fluentd sender when the machine shuts down."""
        if self.sender:
            try:
                await asyncio.to_thread(self.sender.close)
            except Exception as e:
                self.logger.error(f"Error closing Fluentd sender: {e}", exc_info=True)

    async def _send_event(self, tag: str, data: dict):
        """
        Send an event to Fluentd without blocking the event loop.

        Args:
            tag: Event tag (e.g., "session.start", "charge.update")
            data: Event data dictionary
        """
        if not self.sender:
            return

        try:
            await asyncio.to_thread(self.sender.emit, tag, data)
        except Exception as e:
            self.logger.error(f"Failed to send event to Fluentd (tag={tag}): {e}")

    def _base_event_data(self, context: PluginContext, message: Any = None) -> dict:
        """Create base event data with common fields."""
        data = {
            "type": "session",
            "charger": context.machine.id,
            "msg": message if message is not None else context.event_data,
        }
        transaction_id = context.event_data.get("transaction_id")
        if transaction_id is not None:
            data["tx"] = transaction_id
        return data

    async def log_start_session(self, context: PluginContext):
        """Log session start."""
        message = {
            "started_at": context.event_data.get("started_at"),
            "soc_start": context.event_data.get("soc_start"),
        }
        await self._send_event("session.start", self._base_event_data(context, message))

    async def log_charge_update(self, context: PluginContext):
        """Log an accepted telemetry update."""
        data = self._base_event_data(context, context.event_data.get("record"))
        await self._send_event("charge.update", data)

    async def log_end_session(self, context: PluginContext):
        """Log session end, including whether the collector acknowledged it."""
        data = self._base_event_data(context, context.event_data.get("record"))
        data["acknowledged"] = bool(context.result and context.result.ok)
        data["energy_kwh"] = context.event_data.get("energy_dispensed_kwh")
        data["elapsed_s"] = context.event_data.get("elapsed_seconds")
        if context.result and context.result.error:
            data["error"] = context.result.error
        await self._send_event("session.end", data)

    async def log_session_error(self, context: PluginContext):
        """Log a transition to the error state."""
        data = self._base_event_data(context, context.event_data.get("record"))
        data["error_type"] = context.event_data.get("error_type")
        data["error"] = context.event_data.get("error")
        await self._send_event("session.error", data)
