"""Charging session state machine with periodic telemetry dispatch."""

import asyncio
import logging
import random
from datetime import UTC, datetime
from typing import Callable, Optional

from ..collector import CollectorClient, CollectorError
from ..config import SimulatorConfig
from ..logging_utils import log_error, log_session_event
from ..models import (
    ChargingSession,
    DispatchResult,
    PhysicalState,
    SessionStatus,
    TelemetryRecord,
    round2,
)
from ..plugins.base import PluginContext, PluginHook, SessionPlugin
from ..scheduler import PeriodicScheduler
from ..telemetry import EnergyIntegrator, GeneratorError, TelemetryGenerator
from .snapshot import SessionSnapshot, build_snapshot

logger = logging.getLogger(__name__)


class ChargingSessionMachine:
    """
    Drives one simulated charging session at a time.

    idle -> starting -> running -> stopping -> idle, with error reachable
    from starting and running. Requests that do not apply to the current
    state (start while busy, stop while not running) are ignored.

    Each tick generates the next physical state, integrates energy and
    dispatches the telemetry record as its own task, so a slow collector
    never holds back the next tick. Update results are interpreted against
    the session generation they were sent for: an update that settles after
    the session was stopped, or replaced by a newer one, runs no hooks and
    cannot move the machine to error.

    Supports a plugin system for extending behavior at lifecycle hooks.
    """

    def __init__(
        self,
        config: SimulatorConfig,
        collector: CollectorClient,
        plugins: list[SessionPlugin] | None = None,
        generator: TelemetryGenerator | None = None,
        scheduler: PeriodicScheduler | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config.validate()
        self.collector = collector
        self.generator = generator or TelemetryGenerator(config, rng)
        self.scheduler = scheduler or PeriodicScheduler()
        self.integrator = EnergyIntegrator(config.interval_seconds)
        self._clock = clock or (lambda: datetime.now(UTC))

        self.session = ChargingSession()
        self.physical: PhysicalState = config.initial_state()
        self._generation = 0
        self._in_flight: set[asyncio.Task] = set()

        # Initialize plugin system
        self.plugins: list[SessionPlugin] = plugins or []
        self._plugin_hooks: dict[PluginHook, list[tuple[SessionPlugin, str]]] = {}
        self._register_plugins()

    @property
    def id(self) -> str:
        return self.config.charger_id

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def is_pending(self) -> bool:
        """True while a start or end call has not settled yet."""
        return self.session.status in (SessionStatus.STARTING, SessionStatus.STOPPING)

    @property
    def in_flight_updates(self) -> int:
        return len(self._in_flight)

    def now(self) -> datetime:
        return self._clock()

    def snapshot(self) -> SessionSnapshot:
        return build_snapshot(self.session, self.physical, self.config, self.now())

    async def initialize(self):
        """Initialize all plugins. Call once before the first session."""
        for plugin in self.plugins:
            try:
                await plugin.initialize(self)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_initialize_error",
                    f"Error initializing plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def start(self) -> bool:
        """
        Start a new session.

        Returns:
            True if the session is running, False if the request was ignored
            or the collector rejected it (the machine is then in error)
        """
        if self.session.status not in (SessionStatus.IDLE, SessionStatus.ERROR):
            logger.debug(f"Ignoring start request in state {self.session.status.value}")
            return False

        self._generation += 1
        self.session = ChargingSession(status=SessionStatus.STARTING)
        self.physical = self.config.initial_state()
        self.integrator.reset()

        started_at = self.now()
        soc_start = round2(self.config.initial_soc / 100)
        event_data = {"started_at": started_at.isoformat(), "soc_start": soc_start}
        await self._execute_plugin_hooks(PluginHook.BEFORE_START_SESSION, event_data)

        try:
            transaction_id = await self.collector.start_session(started_at, soc_start)
        except CollectorError as e:
            self.session.status = SessionStatus.ERROR
            self.session.last_error = str(e)
            log_error(logger, "start_failure", str(e), charger_id=self.id)
            await self._execute_plugin_hooks(
                PluginHook.ON_SESSION_ERROR,
                {**event_data, "error_type": "start_failure", "error": str(e)},
            )
            return False

        self.session.transaction_id = transaction_id
        self.session.start_time = started_at
        self.session.energy_dispensed_kwh = 0.0
        self.session.status = SessionStatus.RUNNING
        log_session_event(logger, "started", transaction_id, charger_id=self.id, soc_start=soc_start)

        self.scheduler.start(self.tick, self.config.interval_seconds)

        await self._execute_plugin_hooks(
            PluginHook.AFTER_START_SESSION,
            {**event_data, "transaction_id": transaction_id},
            result=transaction_id,
        )
        return self.session.status == SessionStatus.RUNNING

    def tick(self):
        """Generate, integrate and dispatch one telemetry sample."""
        if self.session.status != SessionStatus.RUNNING:
            return

        try:
            state = self.generator.next(self.physical)
        except GeneratorError as e:
            self._enter_error("generator_failure", str(e))
            self._spawn(
                self._execute_plugin_hooks(
                    PluginHook.ON_SESSION_ERROR,
                    {
                        "transaction_id": self.session.transaction_id,
                        "error_type": "generator_failure",
                        "error": str(e),
                    },
                )
            )
            return

        self.physical = state
        self.session.energy_dispensed_kwh = self.integrator.add(state.power_w)
        record = TelemetryRecord.from_state(state, self.config.interval_seconds)
        self._spawn(
            self._dispatch_update(self._generation, self.session.transaction_id, record)
        )

    async def stop(self) -> bool:
        """
        Stop the running session and reset to idle.

        The end call is attempted once; its failure is logged and the session
        is torn down locally regardless. Any other exception (including
        cancellation) still leaves the machine idle before it propagates.

        Returns:
            True if a running session was stopped, False if the request was ignored
        """
        if self.session.status != SessionStatus.RUNNING:
            logger.debug(f"Ignoring stop request in state {self.session.status.value}")
            return False

        self.session.status = SessionStatus.STOPPING
        self.session.ended_at = self.now()
        self.scheduler.cancel()

        transaction_id = self.session.transaction_id
        final_record = TelemetryRecord.from_state(self.physical, self.config.interval_seconds)
        event_data = {
            "transaction_id": transaction_id,
            "record": final_record.to_payload(),
            "energy_dispensed_kwh": self.session.energy_dispensed_kwh,
            "elapsed_seconds": self.session.elapsed_seconds(self.now()),
        }

        try:
            await self.collector.end_session(transaction_id, final_record)
            result = DispatchResult.success()
        except CollectorError as e:
            result = DispatchResult.failure(str(e))
            log_error(logger, "end_failure", f"Failed to end charge session: {e}", transaction_id)
        finally:
            self._reset()

        log_session_event(
            logger,
            "stopped",
            transaction_id,
            acknowledged=result.ok,
            energy_dispensed_kwh=event_data["energy_dispensed_kwh"],
        )
        await self._execute_plugin_hooks(PluginHook.AFTER_END_SESSION, event_data, result)
        return True

    async def wait_for_updates(self):
        """Wait until every dispatched update (and error hook) has settled."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight))

    async def close(self):
        """Stop any running session, drain updates and clean up plugins."""
        await self.stop()
        await self.wait_for_updates()

        for plugin in self.plugins:
            try:
                await plugin.cleanup(self)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_cleanup_error",
                    f"Error cleaning up plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def _send_update(self, transaction_id: str, record: TelemetryRecord) -> DispatchResult:
        try:
            await self.collector.send_update(transaction_id, record)
        except CollectorError as e:
            return DispatchResult.failure(str(e))
        return DispatchResult.success()

    async def _dispatch_update(self, generation: int, transaction_id: str, record: TelemetryRecord):
        result = await self._send_update(transaction_id, record)
        event_data = {"transaction_id": transaction_id, "record": record.to_payload()}

        if result.ok:
            if generation != self._generation:
                logger.debug(f"Dropping update for ended session {transaction_id}")
                return
            await self._execute_plugin_hooks(PluginHook.AFTER_CHARGE_UPDATE, event_data, result)
            return

        if generation != self._generation or self.session.status != SessionStatus.RUNNING:
            log_error(
                logger,
                "late_update_failure",
                f"Update failed after session was stopped: {result.error}",
                transaction_id,
            )
            return

        self._enter_error("update_failure", result.error)
        await self._execute_plugin_hooks(
            PluginHook.ON_SESSION_ERROR,
            {**event_data, "error_type": "update_failure", "error": result.error},
            result,
        )

    def _enter_error(self, error_type: str, message: str):
        """Move a running session to error, keeping its last local state."""
        self.scheduler.cancel()
        self.session.status = SessionStatus.ERROR
        self.session.last_error = message
        self.session.ended_at = self.now()
        log_error(logger, error_type, message, self.session.transaction_id, charger_id=self.id)

    def _reset(self):
        # Results still in flight belong to the session being discarded
        self._generation += 1
        self.session = ChargingSession()
        self.physical = self.config.initial_state()
        self.integrator.reset()

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    def _register_plugins(self):
        """Register all plugins and build hook mapping."""
        for plugin in self.plugins:
            try:
                hooks = plugin.hooks()
                for hook, method_name in hooks.items():
                    if hook not in self._plugin_hooks:
                        self._plugin_hooks[hook] = []
                    self._plugin_hooks[hook].append((plugin, method_name))
            except Exception as e:
                log_error(
                    logger,
                    "plugin_registration_error",
                    f"Failed to register plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def _execute_plugin_hooks(
        self,
        hook: PluginHook,
        event_data: dict,
        result=None,
    ):
        """
        Execute all registered plugin hooks for a given lifecycle point.

        Args:
            hook: The hook point to execute
            event_data: Fields describing the event
            result: The collector result (for AFTER hooks)
        """
        if hook not in self._plugin_hooks:
            return

        context = PluginContext(
            machine=self,
            event_data=event_data,
            result=result,
        )

        for plugin, method_name in self._plugin_hooks[hook]:
            try:
                method = getattr(plugin, method_name)
                await method(context)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_execution_error",
                    f"Error executing {plugin.__class__.__name__}.{method_name} for hook {hook.value}: {e}",
                    plugin=plugin.__class__.__name__,
                    hook=hook.value,
                    method=method_name,
                    exc_info=e,
                )
