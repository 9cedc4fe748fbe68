"""
Bounded time series of simulated readings, one sequence per unit and sensor.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import delete, func, select

from .database import DatabaseService
from .models import Reading, SensorKind, utcnow
from .simulator import round_half_up

logger = logging.getLogger("AutoFarm")

ReadingKey = Tuple[int, SensorKind]

# Decimal places used when presenting current values
DISPLAY_DECIMALS = {
    SensorKind.HUMIDITY: 1,
    SensorKind.TEMPERATURE: 1,
    SensorKind.LIGHTING: 1,
    SensorKind.CO2: 0,
    SensorKind.PH: 1,
}


def _sequence(unit_id: int, sensor: SensorKind):
    return Reading.unit_id == unit_id, Reading.sensor_type == SensorKind(sensor).value


class ReadingStore:
    """Reads and writes the ``readings`` table."""

    def __init__(self, database: DatabaseService):
        self.database = database
        self._locks: Dict[ReadingKey, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def lock_for(self, unit_id: int, sensor: SensorKind) -> threading.Lock:
        """Lock serializing read-simulate-append-trim work on one sequence."""
        with self._locks_guard:
            return self._locks[(unit_id, SensorKind(sensor))]

    def forget_unit(self, unit_id: int) -> None:
        """Drop the locks of a deleted unit."""
        with self._locks_guard:
            for key in [key for key in self._locks if key[0] == unit_id]:
                del self._locks[key]

    def latest(self, unit_id: int, sensor: SensorKind) -> Optional[float]:
        try:
            with self.database.get_session() as session:
                stmt = (
                    select(Reading.value)
                    .where(*_sequence(unit_id, sensor))
                    .order_by(Reading.timestamp.desc(), Reading.id.desc())
                    .limit(1)
                )
                return session.execute(stmt).scalar_one_or_none()
        except Exception as e:
            logger.error(f"Failed to read latest {sensor} for unit {unit_id}: {e}")
            raise

    def append(
        self,
        unit_id: int,
        sensor: SensorKind,
        value: float,
        timestamp: Optional[datetime] = None,
    ) -> Reading:
        """Persist a new reading. Write failures are logged and re-raised."""
        try:
            reading = Reading(
                unit_id=unit_id,
                sensor_type=SensorKind(sensor).value,
                value=float(value),
                timestamp=timestamp or utcnow(),
            )
            with self.database.get_session() as session:
                session.add(reading)
                session.commit()
            return reading
        except Exception as e:
            logger.error(f"Failed to save {sensor} reading for unit {unit_id}: {e}")
            raise

    def trim_to_retention(self, unit_id: int, sensor: SensorKind, max_count: int) -> int:
        """Delete everything but the newest ``max_count`` rows of a sequence.

        Returns:
            Number of rows removed.
        """
        try:
            with self.database.get_session() as session:
                stale = (
                    select(Reading.id)
                    .where(*_sequence(unit_id, sensor))
                    .order_by(Reading.timestamp.desc(), Reading.id.desc())
                    .offset(max(0, max_count))
                )
                result = session.execute(
                    delete(Reading)
                    .where(Reading.id.in_(stale))
                    .execution_options(synchronize_session=False)
                )
                session.commit()
            if result.rowcount:
                logger.debug(f"Evicted {result.rowcount} {sensor} readings for unit {unit_id}")
            return result.rowcount
        except Exception as e:
            logger.error(f"Failed to trim {sensor} history for unit {unit_id}: {e}")
            raise

    def history(self, unit_id: int, sensor: SensorKind, limit: int) -> List[Reading]:
        """Most recent ``limit`` readings, oldest first."""
        with self.database.get_session() as session:
            stmt = (
                select(Reading)
                .where(*_sequence(unit_id, sensor))
                .order_by(Reading.timestamp.desc(), Reading.id.desc())
                .limit(limit)
            )
            rows = list(session.execute(stmt).scalars().all())
        rows.reverse()
        return rows

    def latest_per_unit_and_sensor(self) -> Dict[ReadingKey, float]:
        ranked = select(
            Reading.unit_id,
            Reading.sensor_type,
            Reading.value,
            func.row_number()
            .over(
                partition_by=(Reading.unit_id, Reading.sensor_type),
                order_by=(Reading.timestamp.desc(), Reading.id.desc()),
            )
            .label("rank"),
        ).subquery()
        stmt = select(ranked.c.unit_id, ranked.c.sensor_type, ranked.c.value).where(
            ranked.c.rank == 1
        )
        latest = {}
        with self.database.get_session() as session:
            for unit_id, sensor_type, value in session.execute(stmt):
                try:
                    latest[(unit_id, SensorKind(sensor_type))] = value
                except ValueError:
                    logger.warning(f"Ignoring reading with unknown sensor type {sensor_type!r}")
        return latest

    def current_readings(self) -> Dict[int, Dict[str, float]]:
        """Latest value per unit and sensor, shaped for the dashboard."""
        current: Dict[int, Dict[str, float]] = {}
        for (unit_id, sensor), value in sorted(self.latest_per_unit_and_sensor().items()):
            current.setdefault(unit_id, {})[sensor.value] = round_half_up(
                value, DISPLAY_DECIMALS[sensor]
            )
        return current

    def history_frame(self, unit_id: int, sensor: SensorKind, limit: int) -> pd.DataFrame:
        """History of one sequence as a DataFrame with ``time`` and ``value`` columns."""
        rows = self.history(unit_id, sensor, limit)
        if not rows:
            return pd.DataFrame(columns=["time", "value"])
        bdf = pd.DataFrame([{"time": row.timestamp, "value": row.value} for row in rows])
        bdf["time"] = pd.to_datetime(bdf["time"]).dt.tz_localize("UTC")
        return bdf

    def readings_frame(self) -> pd.DataFrame:
        """Every stored reading, used for CSV export."""
        with self.database.get_session() as session:
            stmt = select(
                Reading.unit_id, Reading.sensor_type, Reading.value, Reading.timestamp
            ).order_by(Reading.unit_id, Reading.sensor_type, Reading.timestamp, Reading.id)
            rows = [tuple(row) for row in session.execute(stmt)]
        return pd.DataFrame(rows, columns=["unit_id", "sensor_type", "value", "timestamp"])
