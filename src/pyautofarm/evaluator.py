import json
import logging
import operator
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .alerts import ActuatorState, AlertRule, Firing, SensorThreshold, format_value
from .models import SensorKind

logger = logging.getLogger("AutoFarm")

DEFAULT_ACTION = "notified"

# "=" is exact float equality
COMPARISONS: Dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    "<": operator.lt,
    "=": operator.eq,
}

Batch = Mapping[int, Mapping[SensorKind, float]]


def describe_action(action: Any) -> str:
    """Turn a rule's action payload into the text stored with a firing.

    Payloads carrying ``device`` and ``state`` become ``"<device>_<state>"``;
    anything else degrades to ``"notified"``.
    """
    if action is None or action == "":
        return DEFAULT_ACTION
    try:
        payload = json.loads(action) if isinstance(action, (str, bytes)) else action
        device = payload["device"]
        state = payload["state"]
    except (TypeError, ValueError, KeyError) as e:
        logger.warning(f"Could not parse alert action {action!r}: {e}")
        return DEFAULT_ACTION
    if not device or state in (None, ""):
        return DEFAULT_ACTION
    if isinstance(state, bool):
        state = "on" if state else "off"
    return f"{device}_{state}"


class AlertEvaluator:
    """Matches a tick's freshly produced values against the active rules."""

    def evaluate(self, batch: Batch, rules: Iterable[AlertRule]) -> List[Firing]:
        rules = list(rules)
        firings = []
        for unit_id, values in batch.items():
            for rule in rules:
                if not rule.active:
                    continue
                try:
                    firing = self._check(rule, unit_id, values)
                except Exception as e:
                    logger.error(f"Failed to evaluate alert {rule.id} for unit {unit_id}: {e}")
                    continue
                if firing is not None:
                    firings.append(firing)
        return firings

    def _check(
        self, rule: AlertRule, unit_id: int, values: Mapping[SensorKind, float]
    ) -> Optional[Firing]:
        target = rule.target
        if isinstance(target, ActuatorState):
            # No actuator state source exists yet
            return None
        if not isinstance(target, SensorThreshold):
            raise TypeError(f"Unsupported rule target: {target!r}")

        value = values.get(target.sensor)
        if value is None or rule.limit is None:
            return None
        compare = COMPARISONS.get(rule.condition)
        if compare is None:
            logger.warning(f"Alert {rule.id} has unsupported condition {rule.condition!r}")
            return None
        if not compare(value, rule.limit):
            return None

        return Firing(
            alert_id=rule.id,
            alert_name=rule.name,
            unit_id=unit_id,
            triggered_value=value,
            action_taken=describe_action(rule.action),
            message=(
                f"{rule.name}: {target.sensor.value} {format_value(value)} {rule.condition}"
                f" {format_value(rule.limit)} in unit {unit_id}"
            ),
        )
