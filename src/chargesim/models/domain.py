"""Domain models for the charging session simulator."""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SessionStatus(str, Enum):
    """Lifecycle states of a charging session."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass(frozen=True)
class PhysicalState:
    """Instantaneous charger readings. Replaced, never mutated, on every tick."""

    soc: float
    power_w: float
    voltage_v: float
    current_a: float
    temp_c: float


@dataclass
class ChargingSession:
    """
    The session aggregate owned by the state machine.

    elapsed time is derived from start_time rather than accumulated, so it
    cannot drift. ended_at freezes the clock once the session stops running.
    """

    status: SessionStatus = SessionStatus.IDLE
    transaction_id: Optional[str] = None
    start_time: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    energy_dispensed_kwh: float = 0.0
    last_error: Optional[str] = None

    def elapsed_seconds(self, now: datetime) -> int:
        """Whole seconds since the session started, 0 when no session is active."""
        if self.start_time is None:
            return 0
        until = self.ended_at or now
        return max(0, math.floor((until - self.start_time).total_seconds()))


def round2(value: float) -> float:
    """Round a telemetry value to 2 decimal places for transmission."""
    return round(value, 2)


@dataclass(frozen=True)
class TelemetryRecord:
    """A telemetry sample as sent to the collector."""

    sample_time_increment: int
    soc: float
    temp_c: float
    avg_power_w: float
    avg_current_a: float
    avg_voltage_v: float

    @classmethod
    def from_state(cls, state: PhysicalState, interval_seconds: float) -> "TelemetryRecord":
        """
        Build a record from a physical state.

        Every numeric field is rounded to 2 decimal places. SOC is reported as
        a fraction of capacity, rounded after scaling.
        """
        return cls(
            sample_time_increment=int(interval_seconds),
            soc=round2(state.soc / 100),
            temp_c=round2(state.temp_c),
            avg_power_w=round2(state.power_w),
            avg_current_a=round2(state.current_a),
            avg_voltage_v=round2(state.voltage_v),
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the collector's JSON field names."""
        return {
            "sample_time_increment": self.sample_time_increment,
            "soc": self.soc,
            "temp_c": self.temp_c,
            "avg_power_w": self.avg_power_w,
            "avg_current_a": self.avg_current_a,
            "avg_voltage_v": self.avg_voltage_v,
        }


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a collector call, interpreted by the state machine."""

    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "DispatchResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, message: str) -> "DispatchResult":
        return cls(ok=False, error=message)
