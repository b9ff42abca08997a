"""Dispensed-energy accumulation from periodic power samples."""


def energy_increment_kwh(power_w: float, interval_seconds: float) -> float:
    """Energy delivered at a constant power over one sample interval."""
    return (power_w / 1000) * (interval_seconds / 3600)


def integrate(energy_kwh: float, power_w: float, interval_seconds: float) -> float:
    """Return the accumulated energy after one more sample."""
    return energy_kwh + energy_increment_kwh(power_w, interval_seconds)


class EnergyIntegrator:
    """
    Running energy accumulator for one session.

    Uses Neumaier compensated summation so that long sessions with many small
    increments do not lose precision.
    """

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._sum = 0.0
        self._compensation = 0.0
        self.samples = 0

    @property
    def total_kwh(self) -> float:
        return self._sum + self._compensation

    def add(self, power_w: float) -> float:
        """Accumulate one power sample and return the new total (kWh)."""
        increment = energy_increment_kwh(power_w, self.interval_seconds)
        total = self._sum + increment
        if abs(self._sum) >= abs(increment):
            self._compensation += (self._sum - total) + increment
        else:
            self._compensation += (increment - total) + self._sum
        self._sum = total
        self.samples += 1
        return self.total_kwh

    def reset(self):
        self._sum = 0.0
        self._compensation = 0.0
        self.samples = 0
