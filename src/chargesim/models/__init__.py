from .domain import (
    ChargingSession,
    DispatchResult,
    PhysicalState,
    SessionStatus,
    TelemetryRecord,
    round2,
)

__all__ = [
    "ChargingSession",
    "DispatchResult",
    "PhysicalState",
    "SessionStatus",
    "TelemetryRecord",
    "round2",
]
