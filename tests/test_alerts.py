import pytest

from pyautofarm.alerts import (
    ActuatorState,
    AlertRule,
    Firing,
    SensorThreshold,
    format_value,
    parse_target,
)
from pyautofarm.models import Alert, SensorKind

from conftest import at


def test_parse_sensor_target():
    assert parse_target("temperature_sensor") == SensorThreshold(SensorKind.TEMPERATURE)
    assert parse_target("co2_sensor").device == "co2_sensor"


def test_parse_actuator_target():
    assert parse_target("fan_1") == ActuatorState("fan_1")
    # unknown sensor names fall back to actuator descriptors
    assert parse_target("wind_sensor") == ActuatorState("wind_sensor")


def test_create_defaults_to_active(rules):
    rule = rules.create("Hot", "temperature_sensor", ">", 30, {"device": "fan", "state": "on"})
    assert rule.active
    assert rule.target == SensorThreshold(SensorKind.TEMPERATURE)
    assert rule.limit == 30.0
    assert rules.get(rule.id).to_dict()["action"] == {"device": "fan", "state": "on"}


def test_create_accepts_state_condition_without_limit(rules):
    rule = rules.create("Pump off", "pump_1", "off")
    assert rule.limit is None
    assert isinstance(rule.target, ActuatorState)


@pytest.mark.parametrize("condition, limit", [(">", None), ("<", ""), ("!=", 3), (">=", 3)])
def test_create_rejects_invalid_rules(rules, condition, limit):
    with pytest.raises(ValueError):
        rules.create("Bad", "ph_sensor", condition, limit)


def test_active_rules_reflect_toggles(rules):
    hot = rules.create("Hot", "temperature_sensor", ">", 30)
    acid = rules.create("Acid", "ph_sensor", "<", 5.5)
    assert {r.id for r in rules.active_rules()} == {hot.id, acid.id}

    assert rules.toggle(hot.id).active is False
    assert [r.id for r in rules.active_rules()] == [acid.id]

    rules.set_active(hot.id, True)
    assert {r.id for r in rules.active_rules()} == {hot.id, acid.id}


def test_toggle_unknown_rule(rules):
    assert rules.toggle(42) is None


def test_list_is_ordered_by_name(rules):
    rules.create("b", "ph_sensor", "<", 5)
    rules.create("a", "ph_sensor", ">", 7)
    assert [r.name for r in rules.list()] == ["a", "b"]


def test_record_and_recent(rules, history, unit):
    rule = rules.create("Hot", "temperature_sensor", ">", 30)
    for i, value in enumerate((31.0, 32.5, 30.5)):
        firing = Firing(rule.id, rule.name, unit.id, value, "fan_on")
        assert history.record(firing, timestamp=at(i))

    entries = history.recent(2)
    assert [e.triggered_value for e in entries] == ["30.5", "32.5"]
    assert entries[0].alert_name == "Hot"
    assert entries[0].action_taken == "fan_on"


def test_history_keeps_name_snapshot_after_rename(rules, history, unit, database):
    rule = rules.create("Hot", "temperature_sensor", ">", 30)
    history.record(Firing(rule.id, rule.name, unit.id, 31.0, "notified"))
    with database.get_session() as session:
        session.get(Alert, rule.id).name = "Very hot"
        session.commit()
    assert history.recent(1)[0].alert_name == "Hot"


def test_deleting_rule_removes_its_history(rules, history, unit):
    keep = rules.create("Acid", "ph_sensor", "<", 5.5)
    gone = rules.create("Hot", "temperature_sensor", ">", 30)
    history.record(Firing(keep.id, keep.name, unit.id, 5.2, "notified"))
    for _ in range(3):
        history.record(Firing(gone.id, gone.name, unit.id, 31.0, "notified"))

    assert rules.delete(gone.id)
    assert [e.alert_id for e in history.recent(10)] == [keep.id]
    assert rules.delete(gone.id) is False


def test_deleting_unit_removes_its_history(rules, history, unit, database):
    rule = rules.create("Hot", "temperature_sensor", ">", 30)
    history.record(Firing(rule.id, rule.name, unit.id, 31.0, "notified"))
    database.delete_unit(unit.id)
    assert history.recent(10) == []


def test_record_failure_is_reported_not_raised(history, unit):
    # no such rule: the foreign key rejects the row
    assert history.record(Firing(999, "ghost", unit.id, 1.0, "notified")) is False
    assert history.recent(10) == []


def test_purge(rules, history, unit):
    rule = rules.create("Hot", "temperature_sensor", ">", 30)
    history.record(Firing(rule.id, rule.name, unit.id, 31.0, "notified"))
    assert history.purge() == 1
    assert history.recent() == []


@pytest.mark.parametrize(
    "value, text",
    [
        (31.0, "31"),
        (6.5, "6.5"),
        (1234567.0, "1234567"),
        (812.25, "812.25"),
        (1234567.89, "1234567.89"),
        (True, "on"),
        (False, "off"),
        (None, None),
    ],
)
def test_format_value(value, text):
    assert format_value(value) == text


def test_rule_to_dict_with_plain_text_action():
    rule = AlertRule(1, "x", ActuatorState("fan"), "on", None, "not json", True)
    assert rule.to_dict()["action"] == "not json"
