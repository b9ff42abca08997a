"""Synthetic DC fast-charging telemetry."""

import math
import random
from typing import Optional

from ..config import SimulatorConfig
from ..models import PhysicalState


class GeneratorError(RuntimeError):
    """Raised when a physical state cannot be derived (e.g. zero voltage)."""


class TelemetryGenerator:
    """
    Maps the previous physical state to the next one.

    The model is a simple DC fast-charging curve: full power below the taper
    point, then a linear reduction towards a floor as the battery fills up.
    The only source of nondeterminism is the injected ``rng``.
    """

    def __init__(self, config: SimulatorConfig, rng: Optional[random.Random] = None):
        if config.voltage_min <= 0:
            raise GeneratorError(
                f"Voltage band [{config.voltage_min}, {config.voltage_max}] includes "
                "non-positive values; current would be undefined"
            )
        self.config = config
        self.rng = rng or random.Random()

    def taper_factor(self, soc: float) -> float:
        """Fraction of rated power available at the given SOC percentage."""
        cfg = self.config
        factor = 1.0 - max(0.0, soc / 100 - cfg.taper_start_soc) * cfg.taper_steepness
        return max(cfg.min_power_fraction, factor)

    def next(self, prev: PhysicalState) -> PhysicalState:
        """
        Produce the next physical state.

        Raises:
            GeneratorError: if the sampled voltage is not a positive finite number,
                or is so small that the derived current overflows
        """
        cfg = self.config
        rng = self.rng

        soc = min(cfg.target_soc, prev.soc + rng.uniform(cfg.soc_step_min, cfg.soc_step_max))
        # Once clamped, never step back below the previous reading.
        soc = max(soc, prev.soc)

        voltage_v = rng.uniform(cfg.voltage_min, cfg.voltage_max)
        if not math.isfinite(voltage_v) or voltage_v <= 0:
            raise GeneratorError(f"Sampled voltage {voltage_v!r} V is not usable")

        noise = rng.uniform(cfg.power_noise_min, cfg.power_noise_max)
        power_w = cfg.max_power_w * self.taper_factor(soc) * noise

        current_a = power_w / voltage_v
        if not math.isfinite(current_a):
            raise GeneratorError(
                f"Current {current_a!r} A derived from {power_w!r} W at {voltage_v!r} V is not finite"
            )

        temp_c = prev.temp_c + rng.uniform(0.0, cfg.temp_step_max)

        return PhysicalState(
            soc=soc,
            power_w=power_w,
            voltage_v=voltage_v,
            current_a=current_a,
            temp_c=temp_c,
        )
