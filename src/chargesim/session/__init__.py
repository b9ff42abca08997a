from .machine import ChargingSessionMachine
from .snapshot import SessionSnapshot, build_snapshot, format_elapsed

__all__ = ["ChargingSessionMachine", "SessionSnapshot", "build_snapshot", "format_elapsed"]
