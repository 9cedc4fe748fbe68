"""
Database service for AutoFarm.
Provides connection management, schema bootstrap and unit data access.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, delete, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .models import Base, Unit

logger = logging.getLogger("AutoFarm")


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def encode_sensors(sensors: Any) -> str:
    """Normalize a sensor list coming from the API into its stored JSON form.

    Entries may be plain names or objects carrying a ``name`` or ``value`` key.
    """
    names = []
    for sensor in sensors or []:
        if isinstance(sensor, dict):
            sensor = sensor.get("name") or sensor.get("value")
        if sensor:
            names.append(str(sensor))
    return json.dumps(names)


def decode_sensors(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        return list(json.loads(raw))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed sensor list: {raw!r}")
        return []


class DatabaseService:
    """Provides database operations for the application."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the database service.

        Args:
            db_path: Optional path to the SQLite database file.
                    If not provided, uses the path from settings.
        """
        self.db_path = db_path or settings.database_path
        self._engine: Optional[Engine] = None
        self._session_factory = None

        # Ensure the database directory exists
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine, creating the schema on first use."""
        if self._engine is None:
            engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": 30},
            )
            event.listen(engine, "connect", _enable_foreign_keys)
            Base.metadata.create_all(engine)
            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        return self._engine

    def initialize(self) -> None:
        """Open the database and bootstrap the schema.

        Raises whatever the driver raises; callers treat this as fatal.
        """
        try:
            with self.engine.connect():
                pass
            logger.info(f"Connected to SQLite database at {self.db_path}")
        except Exception as e:
            logger.error(f"Failed to open database {self.db_path}: {e}")
            raise

    def get_session(self) -> Session:
        """Get a new database session."""
        if self._session_factory is None:
            _ = self.engine  # Initialize engine and session factory
        return self._session_factory()

    def close(self) -> None:
        """Release pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    def create_unit(
        self,
        name: str,
        area: Optional[str] = None,
        type: Optional[str] = None,
        lighting_level: Optional[int] = None,
        sensors: Any = None,
    ) -> Unit:
        """Create a new unit.

        Args:
            name: Display name of the unit.
            area: Free-form area description.
            type: Kind of growing zone.
            lighting_level: Ideal lighting level.
            sensors: Sensor names (or objects with a name) installed in the unit.

        Returns:
            The persisted unit.
        """
        try:
            unit = Unit(
                name=name,
                area=area,
                type=type,
                lighting_level_ideal=int(lighting_level) if lighting_level is not None else None,
                sensors=encode_sensors(sensors),
            )
            with self.get_session() as session:
                session.add(unit)
                session.commit()

            logger.debug(f"Created unit {unit.id} ({name})")
            return unit
        except Exception as e:
            logger.error(f"Failed to create unit: {e}")
            raise

    def update_unit(
        self,
        unit_id: int,
        name: str,
        area: Optional[str] = None,
        type: Optional[str] = None,
        lighting_level: Optional[int] = None,
        sensors: Any = None,
    ) -> Optional[Unit]:
        """Replace the fields of an existing unit. Returns None if it does not exist."""
        try:
            with self.get_session() as session:
                unit = session.get(Unit, unit_id)
                if unit is None:
                    return None
                unit.name = name
                unit.area = area
                unit.type = type
                unit.lighting_level_ideal = (
                    int(lighting_level) if lighting_level is not None else None
                )
                unit.sensors = encode_sensors(sensors)
                session.commit()
            return unit
        except Exception as e:
            logger.error(f"Failed to update unit {unit_id}: {e}")
            raise

    def delete_unit(self, unit_id: int) -> bool:
        """Delete a unit together with its readings and alert history."""
        try:
            with self.get_session() as session:
                result = session.execute(
                    delete(Unit)
                    .where(Unit.id == unit_id)
                    .execution_options(synchronize_session=False)
                )
                session.commit()
            return result.rowcount > 0
        except Exception as e:
            logger.error(f"Failed to delete unit {unit_id}: {e}")
            raise

    def get_unit(self, unit_id: int) -> Optional[Unit]:
        with self.get_session() as session:
            return session.get(Unit, unit_id)

    def list_units(self) -> List[Unit]:
        try:
            with self.get_session() as session:
                return list(session.execute(select(Unit).order_by(Unit.name)).scalars().all())
        except Exception as e:
            logger.error(f"Failed to list units: {e}")
            raise

    def unit_ids(self) -> List[int]:
        """Ids of every unit, read fresh on each call."""
        with self.get_session() as session:
            return list(session.execute(select(Unit.id).order_by(Unit.id)).scalars().all())

    def unit_to_dict(self, unit: Unit) -> Dict[str, Any]:
        return {
            "id": unit.id,
            "name": unit.name,
            "area": unit.area,
            "type": unit.type,
            "lighting_level_ideal": unit.lighting_level_ideal,
            "sensors": decode_sensors(unit.sensors),
        }
