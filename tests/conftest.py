from datetime import datetime, timedelta

import pytest

from pyautofarm.alerts import AlertHistoryLog, AlertRuleSet
from pyautofarm.database import DatabaseService
from pyautofarm.readings import ReadingStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


def at(seconds: int) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


@pytest.fixture
def database(tmp_path):
    db = DatabaseService(str(tmp_path / "autofarm.db"))
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def store(database):
    return ReadingStore(database)


@pytest.fixture
def rules(database):
    return AlertRuleSet(database)


@pytest.fixture
def history(database):
    return AlertHistoryLog(database)


@pytest.fixture
def unit(database):
    return database.create_unit("Lettuce A", "12", "hydroponic", 80, ["temperature", "ph"])
