import json

import pytest

from pyautofarm.alerts import ActuatorState, AlertRule, SensorThreshold
from pyautofarm.evaluator import AlertEvaluator, describe_action
from pyautofarm.models import SensorKind


def threshold(rule_id, sensor, condition, limit, active=True, action=None, name=None):
    return AlertRule(
        id=rule_id,
        name=name or f"rule {rule_id}",
        target=SensorThreshold(sensor),
        condition=condition,
        limit=limit,
        action=action,
        active=active,
    )


@pytest.fixture
def evaluator():
    return AlertEvaluator()


def test_threshold_breach_fires_once(evaluator):
    rule = threshold(1, SensorKind.TEMPERATURE, ">", 30, name="Hot")
    firings = evaluator.evaluate({7: {SensorKind.TEMPERATURE: 31.0}}, [rule])
    assert len(firings) == 1
    firing = firings[0]
    assert (firing.alert_id, firing.alert_name, firing.unit_id) == (1, "Hot", 7)
    assert firing.triggered_value == 31
    assert firing.action_taken == "notified"
    assert firing.message == "Hot: temperature 31 > 30 in unit 7"


@pytest.mark.parametrize(
    "condition, limit, value, fires",
    [
        (">", 30, 30.0, False),
        (">", 30, 30.1, True),
        ("<", 5.5, 5.4, True),
        ("<", 5.5, 5.5, False),
        ("=", 800, 800.0, True),
        ("=", 6.3, 6.3, True),
        ("=", 800, 801.0, False),
    ],
)
def test_comparisons(evaluator, condition, limit, value, fires):
    rule = threshold(1, SensorKind.CO2, condition, limit)
    assert bool(evaluator.evaluate({1: {SensorKind.CO2: value}}, [rule])) is fires


def test_inactive_rule_never_fires(evaluator):
    rule = threshold(1, SensorKind.TEMPERATURE, ">", 0, active=False)
    assert evaluator.evaluate({1: {SensorKind.TEMPERATURE: 29.0}}, [rule]) == []


def test_missing_sensor_value_does_not_fire(evaluator):
    rule = threshold(1, SensorKind.PH, "<", 14)
    assert evaluator.evaluate({1: {SensorKind.TEMPERATURE: 20.0}}, [rule]) == []


def test_rule_without_limit_is_skipped(evaluator):
    rule = threshold(1, SensorKind.PH, "<", None)
    assert evaluator.evaluate({1: {SensorKind.PH: 6.0}}, [rule]) == []


def test_actuator_rules_are_not_evaluated(evaluator):
    rule = AlertRule(1, "Fan on", ActuatorState("fan_1"), "on", None, None, True)
    assert evaluator.evaluate({1: {SensorKind.TEMPERATURE: 25.0}}, [rule]) == []


def test_every_unit_is_checked(evaluator):
    rule = threshold(1, SensorKind.HUMIDITY, ">", 80)
    batch = {
        1: {SensorKind.HUMIDITY: 85.0},
        2: {SensorKind.HUMIDITY: 60.0},
        3: {SensorKind.HUMIDITY: 90.0},
    }
    assert sorted(f.unit_id for f in evaluator.evaluate(batch, [rule])) == [1, 3]


def test_multiple_rules_fire_independently(evaluator):
    rules = [
        threshold(1, SensorKind.TEMPERATURE, ">", 25),
        threshold(2, SensorKind.TEMPERATURE, ">", 20),
        threshold(3, SensorKind.CO2, "<", 400),
    ]
    batch = {1: {SensorKind.TEMPERATURE: 26.0, SensorKind.CO2: 500.0}}
    assert [f.alert_id for f in evaluator.evaluate(batch, rules)] == [1, 2]


def test_repeated_breach_fires_every_time(evaluator):
    rule = threshold(1, SensorKind.TEMPERATURE, ">", 25)
    batch = {1: {SensorKind.TEMPERATURE: 26.0}}
    total = sum(len(evaluator.evaluate(batch, [rule])) for _ in range(3))
    assert total == 3


def test_malformed_action_degrades_to_notified(evaluator, caplog):
    broken = threshold(1, SensorKind.TEMPERATURE, ">", 25, action="{not json")
    action = json.dumps({"device": "fan", "state": "on"})
    fine = threshold(2, SensorKind.TEMPERATURE, ">", 25, action=action)
    firings = evaluator.evaluate({1: {SensorKind.TEMPERATURE: 26.0}}, [broken, fine])
    assert [f.action_taken for f in firings] == ["notified", "fan_on"]
    assert "Could not parse alert action" in caplog.text


@pytest.mark.parametrize(
    "action, expected",
    [
        (None, "notified"),
        ({"device": "heater", "state": "off"}, "heater_off"),
        ('{"device": "pump", "state": true}', "pump_on"),
        ('{"device": "pump"}', "notified"),
        ("[1, 2]", "notified"),
        ('"just text"', "notified"),
    ],
)
def test_describe_action(action, expected):
    assert describe_action(action) == expected
