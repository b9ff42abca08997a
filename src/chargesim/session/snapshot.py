"""Read-only view of a charging session, as shown on the charger display."""

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

from ..config import SimulatorConfig
from ..models import ChargingSession, PhysicalState, SessionStatus


def format_elapsed(seconds: float) -> str:
    """Format a duration as m:ss (minutes are not wrapped into hours)."""
    seconds = max(0, math.floor(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


@dataclass(frozen=True)
class SessionSnapshot:
    charger_id: str
    status: SessionStatus
    transaction_id: Optional[str]
    soc: float
    power_w: float
    power_kw: float
    voltage_v: float
    current_a: float
    temp_c: float
    elapsed_seconds: int
    elapsed_display: str
    energy_dispensed_kwh: float
    estimated_cost: float
    last_error: Optional[str]
    pending: bool

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


def build_snapshot(
    session: ChargingSession,
    physical: PhysicalState,
    config: SimulatorConfig,
    now: datetime,
) -> SessionSnapshot:
    elapsed = session.elapsed_seconds(now)
    return SessionSnapshot(
        charger_id=config.charger_id,
        status=session.status,
        transaction_id=session.transaction_id,
        soc=physical.soc,
        power_w=physical.power_w,
        power_kw=physical.power_w / 1000,
        voltage_v=physical.voltage_v,
        current_a=physical.current_a,
        temp_c=physical.temp_c,
        elapsed_seconds=elapsed,
        elapsed_display=format_elapsed(elapsed),
        energy_dispensed_kwh=session.energy_dispensed_kwh,
        estimated_cost=session.energy_dispensed_kwh * config.rate_per_kwh,
        last_error=session.last_error,
        pending=session.status in (SessionStatus.STARTING, SessionStatus.STOPPING),
    )
