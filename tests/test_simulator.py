import random

import pytest

from pyautofarm.models import SensorKind
from pyautofarm.simulator import SENSOR_RANGES, SensorSimulator, round_half_up

MIDPOINTS = {
    SensorKind.HUMIDITY: 65.0,
    SensorKind.TEMPERATURE: 22.5,
    SensorKind.LIGHTING: 75.0,
    SensorKind.CO2: 775.0,
    SensorKind.PH: 6.3,
}


class StillRandom(random.Random):
    """Never perturbs the previous value."""

    def uniform(self, a, b):
        return 0.0


def decimals(value: float) -> int:
    text = repr(value)
    return len(text.split(".")[1].rstrip("0")) if "." in text else 0


@pytest.mark.parametrize("sensor", list(SensorKind))
def test_first_value_is_range_midpoint(sensor):
    assert SensorSimulator(seed=1).next_value(None, sensor) == MIDPOINTS[sensor]


def test_ph_seed_rounds_half_up():
    # midpoint is 6.25
    assert SensorSimulator(seed=0).next_value(None, SensorKind.PH) == 6.3


@pytest.mark.parametrize(
    "previous, sensor, expected",
    [
        (812.5, SensorKind.CO2, 813.0),
        (64.5, SensorKind.HUMIDITY, 65.0),
        (20.25, SensorKind.TEMPERATURE, 20.3),
        (812.4, SensorKind.CO2, 812.0),
    ],
)
def test_exact_halves_round_up(previous, sensor, expected):
    simulator = SensorSimulator(rng=StillRandom())
    assert simulator.next_value(previous, sensor) == expected


def test_round_half_up_uses_stored_binary_value():
    # 6.35 is stored just below the half
    assert round_half_up(6.35, 1) == 6.3
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(775, 0) == 775.0


@pytest.mark.parametrize("sensor", list(SensorKind))
def test_walk_stays_within_range(sensor):
    limits = SENSOR_RANGES[sensor]
    simulator = SensorSimulator(seed=42)
    value = None
    for _ in range(2000):
        value = simulator.next_value(value, sensor)
        assert limits.minimum <= value <= limits.maximum


@pytest.mark.parametrize("sensor", list(SensorKind))
def test_out_of_range_previous_is_clamped(sensor):
    limits = SENSOR_RANGES[sensor]
    simulator = SensorSimulator(seed=3)
    assert simulator.next_value(limits.maximum * 10, sensor) == limits.maximum
    assert simulator.next_value(limits.minimum - 1000, sensor) == limits.minimum


def test_step_is_bounded_by_max_change():
    simulator = SensorSimulator(seed=7)
    limits = SENSOR_RANGES[SensorKind.CO2]
    previous = 800.0
    for _ in range(500):
        value = simulator.next_value(previous, SensorKind.CO2)
        # rounding to whole ppm can add at most half a unit
        assert abs(value - previous) <= limits.max_change + 0.5
        previous = value


@pytest.mark.parametrize("sensor", [SensorKind.TEMPERATURE, SensorKind.PH])
def test_fractional_sensors_round_to_one_decimal(sensor):
    simulator = SensorSimulator(seed=11)
    value = None
    for _ in range(200):
        value = simulator.next_value(value, sensor)
        assert decimals(value) <= 1
        assert round(value, 1) == value


@pytest.mark.parametrize("sensor", [SensorKind.HUMIDITY, SensorKind.LIGHTING, SensorKind.CO2])
def test_coarse_sensors_round_to_whole_numbers(sensor):
    simulator = SensorSimulator(seed=11)
    value = None
    for _ in range(200):
        value = simulator.next_value(value, sensor)
        assert value == int(value)


def test_seeded_simulators_are_reproducible():
    first = SensorSimulator(seed=99)
    second = SensorSimulator(rng=random.Random(99))
    a = b = None
    for _ in range(50):
        a = first.next_value(a, SensorKind.HUMIDITY)
        b = second.next_value(b, SensorKind.HUMIDITY)
        assert a == b


def test_accepts_sensor_names():
    assert SensorSimulator(seed=0).next_value(None, "lighting") == 75.0


def test_unknown_sensor_is_rejected():
    with pytest.raises(ValueError):
        SensorSimulator(seed=0).next_value(None, "wind")
