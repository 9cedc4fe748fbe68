"""
Database models for the AutoFarm application.
"""

from datetime import datetime
from enum import Enum

from pytz import utc
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored by SQLite."""
    return datetime.now(utc).replace(tzinfo=None)


class SensorKind(str, Enum):
    """Sensors simulated for every unit."""

    HUMIDITY = "humidity"
    TEMPERATURE = "temperature"
    LIGHTING = "lighting"
    CO2 = "co2"
    PH = "ph"


class Unit(Base):
    """A monitored growing zone."""

    __tablename__ = "units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    area = Column(String, nullable=True)
    type = Column(String, nullable=True)
    lighting_level_ideal = Column(Integer, nullable=True)
    sensors = Column(Text, nullable=True)  # JSON list of sensor names
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, name={self.name!r})>"


class Reading(Base):
    """A single simulated sensor value."""

    __tablename__ = "readings"
    __table_args__ = (
        Index("idx_readings_unit_sensor_time", "unit_id", "sensor_type", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False)
    sensor_type = Column(String, nullable=False)
    value = Column(Float, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<Reading(unit_id={self.unit_id}, sensor_type={self.sensor_type}, "
            f"value={self.value}, timestamp={self.timestamp})>"
        )


class Alert(Base):
    """A user-defined alert rule."""

    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    device = Column(String, nullable=False)
    condition = Column(String, nullable=False)
    limit_value = Column(Float, nullable=True)
    action = Column(Text, nullable=True)  # JSON payload
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Alert(id={self.id}, name={self.name!r}, is_active={self.is_active})>"


class AlertHistory(Base):
    """Append-only record of alert firings."""

    __tablename__ = "alert_history"
    __table_args__ = (Index("idx_alert_history_time", "timestamp"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(Integer, ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False)
    alert_name = Column(String, nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=True)
    triggered_value = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    action_taken = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<AlertHistory(alert_id={self.alert_id}, timestamp={self.timestamp})>"
