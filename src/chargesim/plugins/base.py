"""Lifecycle extension points for a simulated charging session.

A plugin names the session events it cares about and the coroutine to run for
each. The machine awaits those coroutines in registration order; anything a
handler raises is logged by the machine and never reaches the session flow.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..session.machine import ChargingSessionMachine

logger = logging.getLogger(__name__)


class PluginHook(str, Enum):
    """
    Session events a plugin can subscribe to.

    BEFORE_START_SESSION runs before the start call is sent. AFTER_START_SESSION
    and AFTER_CHARGE_UPDATE run only when the collector accepted the call; an
    update acknowledged after its session ended is dropped without hooks.
    AFTER_END_SESSION runs once the machine is back to idle, with the end call's
    outcome in the context result. ON_SESSION_ERROR runs when a start fails, and
    when an update or a telemetry step fails mid-session.
    """

    BEFORE_START_SESSION = "before_start_session"
    AFTER_START_SESSION = "after_start_session"

    AFTER_CHARGE_UPDATE = "after_charge_update"

    AFTER_END_SESSION = "after_end_session"

    ON_SESSION_ERROR = "on_session_error"


@dataclass
class PluginContext:
    """
    What a hook handler receives.

    ``event_data`` is a fresh dict per event. Keys depend on the hook: the
    transaction id where one exists, the wire ``record`` for updates and ends,
    ``error`` for failures. ``result`` is the transaction id after a start, a
    DispatchResult after an update or end, and None otherwise.
    """

    machine: "ChargingSessionMachine"
    event_data: dict[str, Any]
    result: Any = None


class SessionPlugin(ABC):
    """
    Subclass this and map hooks to coroutine method names in ``hooks()``.

    Each plugin gets ``self.logger``, a child of this module's logger named after
    the subclass.

    Example:
        class EnergyLogger(SessionPlugin):
            def hooks(self) -> dict[PluginHook, str]:
                return {PluginHook.AFTER_END_SESSION: "report"}

            async def report(self, context: PluginContext):
                kwh = context.event_data["energy_dispensed_kwh"]
                self.logger.info(f"{context.machine.id} dispensed {kwh} kWh")
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def hooks(self) -> dict[PluginHook, str]:
        """Hook to handler-name mapping, read once when the machine is built."""

    async def initialize(self, machine: "ChargingSessionMachine"):
        """Awaited from ``machine.initialize()``. No-op unless overridden."""
        _ = machine

    async def cleanup(self, machine: "ChargingSessionMachine"):
        """Awaited from ``machine.close()`` after any running session is stopped."""
        _ = machine
