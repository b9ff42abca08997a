"""
chargesim - DC Fast-Charging Session Simulator

Simulates a charging session (state of charge, power, voltage, current,
temperature) and reports its telemetry to a remote collector API.
"""

__version__ = "0.1.0"

from .collector import CollectorClient, CollectorError
from .config import SimulatorConfig
from .session import ChargingSessionMachine

__all__ = ["ChargingSessionMachine", "CollectorClient", "CollectorError", "SimulatorConfig"]
