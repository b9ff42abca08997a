"""Plugin framework for extending ChargingSessionMachine behavior."""

from .base import PluginContext, PluginHook, SessionPlugin
from .fluentd_audit import FluentdAuditPlugin
from .prometheus_metrics import PrometheusMetricsPlugin

__all__ = [
    "FluentdAuditPlugin",
    "PluginContext",
    "PluginHook",
    "PrometheusMetricsPlugin",
    "SessionPlugin",
]
