import random
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from .models import SensorKind


@dataclass(frozen=True)
class SensorRange:
    minimum: float
    maximum: float
    max_change: float

    @property
    def midpoint(self) -> float:
        return self.minimum + (self.maximum - self.minimum) / 2

    @property
    def decimals(self) -> int:
        # Fractional-scale sensors keep one decimal place
        return 1 if self.max_change < 1 else 0


def round_half_up(value: float, decimals: int) -> float:
    """Round with exact halves going up, as dashboards display them."""
    step = Decimal(1).scaleb(-decimals)
    return float(Decimal(value).quantize(step, rounding=ROUND_HALF_UP))


SENSOR_RANGES: Dict[SensorKind, SensorRange] = {
    SensorKind.HUMIDITY: SensorRange(40, 90, 1.5),
    SensorKind.TEMPERATURE: SensorRange(15, 30, 0.3),
    SensorKind.LIGHTING: SensorRange(50, 100, 3),
    SensorKind.CO2: SensorRange(350, 1200, 15),
    SensorKind.PH: SensorRange(5.0, 7.5, 0.1),
}


class SensorSimulator:
    """Advances sensor values with a clamped, bounded random walk."""

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else random.Random(seed)

    def next_value(self, previous: Optional[float], sensor: SensorKind) -> float:
        """Produce the next value for a sensor.

        Args:
            previous: Last recorded value, or None if the sensor has no history.
            sensor: Kind of sensor being simulated.

        Returns:
            The new value, clamped into the sensor's range and rounded.
        """
        limits = SENSOR_RANGES[SensorKind(sensor)]
        if previous is None:
            value = limits.midpoint
        else:
            value = previous + self.rng.uniform(-limits.max_change, limits.max_change)
        value = max(limits.minimum, min(limits.maximum, value))
        return round_half_up(value, limits.decimals)
