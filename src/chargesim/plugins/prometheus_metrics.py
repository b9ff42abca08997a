"""Plugin for Prometheus metrics instrumentation."""

import time

from prometheus_client import Counter, Gauge, Histogram

from .base import PluginContext, PluginHook, SessionPlugin


class PrometheusMetricsPlugin(SessionPlugin):
    """
    Exposes Prometheus metrics for the charging simulator.

    This plugin tracks:
    - Session lifecycle (active flag, started/ended counters, errors)
    - Collector round-trip latency for session start calls
    - The latest telemetry sample accepted by the collector

    Metrics are exposed via the standard prometheus_client registry.
    Use prometheus_client.start_http_server() or generate_latest() to expose /metrics.
    """

    # Class-level metrics (shared across all plugin instances)

    chargesim_up = Gauge(
        "chargesim_up",
        "1 if the simulator is running, 0 otherwise",
    )

    chargesim_collector_call_seconds = Histogram(
        "chargesim_collector_call_seconds",
        "Collector call duration in seconds",
        labelnames=["charger_id", "operation"],
    )

    chargesim_session_active = Gauge(
        "chargesim_session_active",
        "1 if a session is running, 0 otherwise",
        labelnames=["charger_id"],
    )

    chargesim_sessions_total = Counter(
        "chargesim_sessions_total",
        "Total number of sessions started on the collector",
        labelnames=["charger_id"],
    )

    chargesim_session_ends_total = Counter(
        "chargesim_session_ends_total",
        "Total number of session end attempts by outcome",
        labelnames=["charger_id", "acknowledged"],
    )

    chargesim_updates_total = Counter(
        "chargesim_updates_total",
        "Total number of telemetry updates accepted by the collector",
        labelnames=["charger_id"],
    )

    chargesim_errors_total = Counter(
        "chargesim_errors_total",
        "Total number of session errors",
        labelnames=["charger_id", "error_type"],
    )

    chargesim_soc_ratio = Gauge(
        "chargesim_soc_ratio",
        "Last reported state of charge (0-1)",
        labelnames=["charger_id"],
    )

    chargesim_power_w = Gauge(
        "chargesim_power_w",
        "Last reported charging power (W)",
        labelnames=["charger_id"],
    )

    chargesim_voltage_v = Gauge(
        "chargesim_voltage_v",
        "Last reported voltage (V)",
        labelnames=["charger_id"],
    )

    chargesim_current_a = Gauge(
        "chargesim_current_a",
        "Last reported current (A)",
        labelnames=["charger_id"],
    )

    chargesim_temp_c = Gauge(
        "chargesim_temp_c",
        "Last reported battery temperature (C)",
        labelnames=["charger_id"],
    )

    chargesim_session_energy_kwh = Gauge(
        "chargesim_session_energy_kwh",
        "Energy dispensed in the current session (kWh)",
        labelnames=["charger_id"],
    )

    def __init__(self):
        """Initialize the Prometheus metrics plugin."""
        super().__init__()
        self.chargesim_up.set(1)
        self._call_start_times = {}

    def hooks(self) -> dict[PluginHook, str]:
        """Register hooks for the whole session lifecycle."""
        return {
            PluginHook.BEFORE_START_SESSION: "before_start_session",
            PluginHook.AFTER_START_SESSION: "after_start_session",
            PluginHook.AFTER_CHARGE_UPDATE: "after_charge_update",
            PluginHook.AFTER_END_SESSION: "after_end_session",
            PluginHook.ON_SESSION_ERROR: "on_session_error",
        }

    async def initialize(self, machine):
        """Publish an inactive session gauge for this charger."""
        self.chargesim_session_active.labels(charger_id=machine.id).set(0)

    async def cleanup(self, machine):
        """Mark the charger's session inactive."""
        self.chargesim_session_active.labels(charger_id=machine.id).set(0)

    def _observe_call(self, charger_id: str, operation: str):
        started = self._call_start_times.pop((charger_id, operation), None)
        if started is not None:
            self.chargesim_collector_call_seconds.labels(
                charger_id=charger_id,
                operation=operation,
            ).observe(time.time() - started)

    # Hook handlers

    async def before_start_session(self, context: PluginContext):
        """Record call start time for latency tracking."""
        self._call_start_times[(context.machine.id, "start_charge")] = time.time()

    async def after_start_session(self, context: PluginContext):
        """Track session start."""
        charger_id = context.machine.id
        self._observe_call(charger_id, "start_charge")
        self.chargesim_sessions_total.labels(charger_id=charger_id).inc()
        self.chargesim_session_active.labels(charger_id=charger_id).set(1)
        self.chargesim_session_energy_kwh.labels(charger_id=charger_id).set(0)

    async def after_charge_update(self, context: PluginContext):
        """Track the latest accepted telemetry sample."""
        charger_id = context.machine.id
        record = context.event_data.get("record", {})

        self.chargesim_updates_total.labels(charger_id=charger_id).inc()
        self.chargesim_session_energy_kwh.labels(charger_id=charger_id).set(
            context.machine.session.energy_dispensed_kwh
        )

        gauges = {
            "soc": self.chargesim_soc_ratio,
            "avg_power_w": self.chargesim_power_w,
            "avg_voltage_v": self.chargesim_voltage_v,
            "avg_current_a": self.chargesim_current_a,
            "temp_c": self.chargesim_temp_c,
        }
        for field, gauge in gauges.items():
            value = record.get(field)
            if value is not None:
                gauge.labels(charger_id=charger_id).set(value)

    async def after_end_session(self, context: PluginContext):
        """Track session end and its acknowledgement."""
        charger_id = context.machine.id
        acknowledged = bool(context.result and context.result.ok)
        self.chargesim_session_ends_total.labels(
            charger_id=charger_id,
            acknowledged=str(acknowledged).lower(),
        ).inc()
        self.chargesim_session_active.labels(charger_id=charger_id).set(0)
        self.chargesim_session_energy_kwh.labels(charger_id=charger_id).set(0)

    async def on_session_error(self, context: PluginContext):
        """Count errors and mark the session inactive."""
        charger_id = context.machine.id
        error_type = context.event_data.get("error_type", "unknown")
        if error_type == "start_failure":
            self._observe_call(charger_id, "start_charge")
        self.chargesim_errors_total.labels(charger_id=charger_id, error_type=error_type).inc()
        self.chargesim_session_active.labels(charger_id=charger_id).set(0)
