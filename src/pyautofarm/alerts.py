"""
Alert rules and the log of their firings.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Union

from sqlalchemy import delete, select

from .database import DatabaseService
from .models import Alert, AlertHistory, SensorKind, utcnow

logger = logging.getLogger("AutoFarm")

THRESHOLD_CONDITIONS = (">", "<", "=")
STATE_CONDITIONS = ("on", "off")
SENSOR_SUFFIX = "_sensor"


@dataclass(frozen=True)
class SensorThreshold:
    """Rule watching a live sensor value."""

    sensor: SensorKind

    @property
    def device(self) -> str:
        return f"{self.sensor.value}{SENSOR_SUFFIX}"


@dataclass(frozen=True)
class ActuatorState:
    """Rule watching an actuator's on/off state. Never evaluated."""

    actuator: str

    @property
    def device(self) -> str:
        return self.actuator


RuleTarget = Union[SensorThreshold, ActuatorState]


def parse_target(device: str) -> RuleTarget:
    """Map a stored device descriptor onto its rule target."""
    if device.endswith(SENSOR_SUFFIX):
        try:
            return SensorThreshold(SensorKind(device[: -len(SENSOR_SUFFIX)]))
        except ValueError:
            pass
    return ActuatorState(device)


@dataclass(frozen=True)
class AlertRule:
    id: int
    name: str
    target: RuleTarget
    condition: str
    limit: Optional[float]
    action: Optional[str]
    active: bool = True

    @property
    def device(self) -> str:
        return self.target.device

    @classmethod
    def from_record(cls, record: Alert) -> "AlertRule":
        return cls(
            id=record.id,
            name=record.name,
            target=parse_target(record.device),
            condition=record.condition,
            limit=record.limit_value,
            action=record.action,
            active=bool(record.is_active),
        )

    def to_dict(self) -> dict:
        try:
            action = json.loads(self.action) if self.action else None
        except ValueError:
            action = self.action
        return {
            "id": self.id,
            "name": self.name,
            "device": self.device,
            "condition": self.condition,
            "limit_value": self.limit,
            "action": action,
            "is_active": self.active,
        }


@dataclass(frozen=True)
class Firing:
    """A rule whose condition held for a unit in the current tick."""

    alert_id: int
    alert_name: str
    unit_id: Optional[int]
    triggered_value: Union[float, bool]
    action_taken: str
    message: Optional[str] = None


def format_value(value: Union[float, bool, None]) -> Optional[str]:
    """Text form of a triggering value, covering numeric and on/off states."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "on" if value else "off"
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


class AlertRuleSet:
    """CRUD over alert rules plus the live view used by the scheduler."""

    def __init__(self, database: DatabaseService):
        self.database = database

    def active_rules(self) -> List[AlertRule]:
        """Rules with the active flag set, queried fresh on every call."""
        try:
            with self.database.get_session() as session:
                stmt = select(Alert).where(Alert.is_active.is_(True)).order_by(Alert.id)
                return [AlertRule.from_record(r) for r in session.execute(stmt).scalars()]
        except Exception as e:
            logger.error(f"Failed to load active alert rules: {e}")
            raise

    def create(
        self,
        name: str,
        device: str,
        condition: str,
        limit: Optional[float] = None,
        action: Any = None,
    ) -> AlertRule:
        """Create a new, active rule.

        Args:
            name: Display name.
            device: ``"<sensor>_sensor"`` for thresholds, any actuator id otherwise.
            condition: One of ``>``, ``<``, ``=``, ``on``, ``off``.
            limit: Numeric limit, required unless the condition is ``on``/``off``.
            action: Opaque payload stored as JSON.

        Raises:
            ValueError: If the condition is unknown or a required limit is missing.
        """
        if condition not in THRESHOLD_CONDITIONS + STATE_CONDITIONS:
            raise ValueError(f"Unknown condition: {condition!r}")
        limit_value = float(limit) if limit not in (None, "") else None
        if limit_value is None and condition not in STATE_CONDITIONS:
            raise ValueError("A limit value is required for threshold conditions")

        try:
            record = Alert(
                name=name,
                device=device,
                condition=condition,
                limit_value=limit_value,
                action=json.dumps(action) if action is not None else None,
                is_active=True,
            )
            with self.database.get_session() as session:
                session.add(record)
                session.commit()
            logger.info(f"Created alert rule {record.id} ({name})")
            return AlertRule.from_record(record)
        except Exception as e:
            logger.error(f"Failed to create alert rule: {e}")
            raise

    def get(self, alert_id: int) -> Optional[AlertRule]:
        with self.database.get_session() as session:
            record = session.get(Alert, alert_id)
            return AlertRule.from_record(record) if record is not None else None

    def list(self) -> List[AlertRule]:
        with self.database.get_session() as session:
            stmt = select(Alert).order_by(Alert.name, Alert.id)
            return [AlertRule.from_record(r) for r in session.execute(stmt).scalars()]

    def set_active(self, alert_id: int, active: bool) -> Optional[AlertRule]:
        try:
            with self.database.get_session() as session:
                record = session.get(Alert, alert_id)
                if record is None:
                    return None
                record.is_active = bool(active)
                session.commit()
            logger.info(f"Alert rule {alert_id} is now {'active' if active else 'inactive'}")
            return AlertRule.from_record(record)
        except Exception as e:
            logger.error(f"Failed to update alert rule {alert_id}: {e}")
            raise

    def toggle(self, alert_id: int) -> Optional[AlertRule]:
        """Flip the stored active flag."""
        rule = self.get(alert_id)
        if rule is None:
            return None
        return self.set_active(alert_id, not rule.active)

    def delete(self, alert_id: int) -> bool:
        """Delete a rule. Its history rows go with it."""
        try:
            with self.database.get_session() as session:
                result = session.execute(
                    delete(Alert)
                    .where(Alert.id == alert_id)
                    .execution_options(synchronize_session=False)
                )
                session.commit()
            return result.rowcount > 0
        except Exception as e:
            logger.error(f"Failed to delete alert rule {alert_id}: {e}")
            raise


class AlertHistoryLog:
    """Append-only log of firings."""

    def __init__(self, database: DatabaseService):
        self.database = database

    def record(self, firing: Firing, timestamp: Optional[datetime] = None) -> bool:
        """Persist a firing.

        Failures are logged and reported through the return value so the
        caller can go on with the remaining firings.
        """
        try:
            entry = AlertHistory(
                alert_id=firing.alert_id,
                alert_name=firing.alert_name,
                unit_id=firing.unit_id,
                triggered_value=format_value(firing.triggered_value),
                message=firing.message,
                action_taken=firing.action_taken,
                timestamp=timestamp or utcnow(),
            )
            with self.database.get_session() as session:
                session.add(entry)
                session.commit()
            return True
        except Exception as e:
            logger.error(
                f"Failed to record firing of alert {firing.alert_id} for unit {firing.unit_id}: {e}"
            )
            return False

    def recent(self, limit: int = 50) -> List[AlertHistory]:
        """Latest firings, newest first."""
        with self.database.get_session() as session:
            stmt = (
                select(AlertHistory)
                .order_by(AlertHistory.timestamp.desc(), AlertHistory.id.desc())
                .limit(limit)
            )
            return list(session.execute(stmt).scalars().all())

    def purge(self) -> int:
        with self.database.get_session() as session:
            result = session.execute(delete(AlertHistory))
            session.commit()
        logger.info(f"Purged {result.rowcount} alert history entries")
        return result.rowcount
