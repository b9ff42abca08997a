"""Simulator configuration loaded from the environment (and a .env file)."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .models import PhysicalState

load_dotenv()

DEFAULT_COLLECTOR_URL = "http://localhost:8000"
DEFAULT_CHARGER_ID = "King_of_the_North"


class ConfigurationError(ValueError):
    """Raised when configuration values are out of their valid range."""


@dataclass
class SimulatorConfig:
    """All tunables of the generator, integrator and session machine."""

    collector_url: str = DEFAULT_COLLECTOR_URL
    charger_id: str = DEFAULT_CHARGER_ID
    interval_seconds: float = 1.0
    request_timeout: float = 10.0

    # Battery
    initial_soc: float = 20.0
    target_soc: float = 90.0
    soc_step_min: float = 1.0
    soc_step_max: float = 2.0

    # Voltage band (V) and baseline reading before the first tick
    voltage_min: float = 380.0
    voltage_max: float = 420.0
    baseline_voltage: float = 400.0

    # Power curve
    max_power_w: float = 50_000.0
    taper_start_soc: float = 0.6
    taper_steepness: float = 1.5
    min_power_fraction: float = 0.2
    power_noise_min: float = 0.9
    power_noise_max: float = 1.1

    # Thermal
    initial_temp_c: float = 20.0
    temp_step_max: float = 0.5

    # Pricing
    rate_per_kwh: float = 0.25

    @classmethod
    def from_env(cls) -> "SimulatorConfig":
        """Build a config from CHARGESIM_* environment variables."""
        defaults = cls()
        return cls(
            collector_url=os.getenv("CHARGESIM_COLLECTOR_URL", defaults.collector_url),
            charger_id=os.getenv("CHARGESIM_CHARGER_ID", defaults.charger_id),
            interval_seconds=float(
                os.getenv("CHARGESIM_INTERVAL_SECONDS", str(defaults.interval_seconds))
            ),
            request_timeout=float(
                os.getenv("CHARGESIM_REQUEST_TIMEOUT", str(defaults.request_timeout))
            ),
            initial_soc=float(os.getenv("CHARGESIM_INITIAL_SOC", str(defaults.initial_soc))),
            target_soc=float(os.getenv("CHARGESIM_TARGET_SOC", str(defaults.target_soc))),
            max_power_w=float(os.getenv("CHARGESIM_MAX_POWER_W", str(defaults.max_power_w))),
            rate_per_kwh=float(os.getenv("CHARGESIM_RATE_PER_KWH", str(defaults.rate_per_kwh))),
        )

    def validate(self) -> "SimulatorConfig":
        """
        Check value ranges and return self.

        Raises:
            ConfigurationError: if any value is outside its valid range
        """
        if self.interval_seconds <= 0:
            raise ConfigurationError(f"interval_seconds must be positive, got {self.interval_seconds}")
        if not float(self.interval_seconds).is_integer():
            # Records carry the interval as an integer sample_time_increment
            raise ConfigurationError(
                f"interval_seconds must be a whole number of seconds, got {self.interval_seconds}"
            )
        if not 0 <= self.initial_soc <= self.target_soc <= 100:
            raise ConfigurationError(
                f"SOC must satisfy 0 <= initial ({self.initial_soc}) "
                f"<= target ({self.target_soc}) <= 100"
            )
        if not 0 <= self.soc_step_min <= self.soc_step_max:
            raise ConfigurationError("SOC step range must be non-negative and ordered")
        if self.voltage_min > self.voltage_max:
            raise ConfigurationError(
                f"voltage_min ({self.voltage_min}) exceeds voltage_max ({self.voltage_max})"
            )
        if self.baseline_voltage <= 0:
            raise ConfigurationError("baseline_voltage must be positive")
        if self.max_power_w < 0:
            raise ConfigurationError("max_power_w must not be negative")
        if not 0 <= self.min_power_fraction <= 1:
            raise ConfigurationError("min_power_fraction must be within [0, 1]")
        if self.power_noise_min > self.power_noise_max:
            raise ConfigurationError("power noise range is inverted")
        if self.temp_step_max < 0:
            raise ConfigurationError("temp_step_max must not be negative")
        return self

    def initial_state(self) -> PhysicalState:
        """The physical state at session start and after every reset."""
        return PhysicalState(
            soc=self.initial_soc,
            power_w=0.0,
            voltage_v=self.baseline_voltage,
            current_a=0.0,
            temp_c=self.initial_temp_c,
        )
