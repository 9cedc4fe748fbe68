"""
AutoFarm - a simulated greenhouse monitoring backend
"""

from .alerts import AlertHistoryLog, AlertRule, AlertRuleSet, Firing
from .config import settings
from .database import DatabaseService
from .evaluator import AlertEvaluator
from .models import SensorKind
from .readings import ReadingStore
from .scheduler import SimulationScheduler
from .simulator import SensorSimulator

__version__ = "0.1.0"
__all__ = [
    "settings",
    "DatabaseService",
    "ReadingStore",
    "SensorKind",
    "SensorSimulator",
    "AlertRule",
    "AlertRuleSet",
    "AlertHistoryLog",
    "AlertEvaluator",
    "Firing",
    "SimulationScheduler",
]
