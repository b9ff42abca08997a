"""Physical telemetry model: generator and energy integrator."""

from .generator import GeneratorError, TelemetryGenerator
from .integrator import EnergyIntegrator, energy_increment_kwh, integrate

__all__ = [
    "EnergyIntegrator",
    "GeneratorError",
    "TelemetryGenerator",
    "energy_increment_kwh",
    "integrate",
]
