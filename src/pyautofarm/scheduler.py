"""
Periodic driver of the simulation: advances every sensor of every unit,
then evaluates the active alert rules against the values it just produced.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .alerts import AlertHistoryLog, AlertRuleSet, Firing
from .config import settings
from .database import DatabaseService
from .evaluator import AlertEvaluator
from .models import SensorKind, utcnow
from .readings import ReadingStore
from .simulator import SensorSimulator

logger = logging.getLogger("AutoFarm")

IDLE = "idle"
RUNNING = "running"


@dataclass
class TickResult:
    batch: Dict[int, Dict[SensorKind, float]] = field(default_factory=dict)
    firings: List[Firing] = field(default_factory=list)
    failures: List[Tuple[int, SensorKind, str]] = field(default_factory=list)


class SimulationScheduler:
    """Runs simulation ticks on a fixed period in a background thread.

    Ticks never overlap. When a tick overruns the period the next one starts
    right after it and the missed periods are dropped.
    """

    def __init__(
        self,
        database: DatabaseService,
        store: ReadingStore,
        rule_set: AlertRuleSet,
        history_log: AlertHistoryLog,
        simulator: Optional[SensorSimulator] = None,
        evaluator: Optional[AlertEvaluator] = None,
        interval: Optional[float] = None,
        max_history: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        self.database = database
        self.store = store
        self.rule_set = rule_set
        self.history_log = history_log
        self.simulator = simulator or SensorSimulator(seed=settings.random_seed)
        self.evaluator = evaluator or AlertEvaluator()
        self.interval = interval if interval is not None else settings.simulation_interval
        self.max_history = max_history if max_history is not None else settings.max_history
        self.max_workers = max_workers or settings.simulation_workers

        self.state = IDLE
        self.ticks = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._tick_lock = threading.Lock()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking in a background thread."""
        if self.is_alive:
            logger.warning("Simulation already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="autofarm-simulation", daemon=True)
        self._thread.start()
        logger.info(f"Simulation started. New data every {self.interval:g} seconds.")
        logger.info(f"Keeping the last {self.max_history} readings per sensor and unit.")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel future ticks, wait for the running one and release storage."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                # Keep the handle so start() cannot run a second loop
                logger.warning("Simulation thread did not finish in time")
            else:
                self._thread = None
        with self._tick_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            self.database.close()
        logger.info("Simulation stopped")

    def _run(self) -> None:
        deadline = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in simulation tick: {e}")

            deadline += self.interval
            now = time.monotonic()
            if deadline < now:
                skipped = int((now - deadline) // self.interval)
                if skipped:
                    logger.warning(f"Simulation tick overran; skipping {skipped} period(s)")
                deadline = now
            self._stop_event.wait(deadline - now)

    def tick(self, now: Optional[datetime] = None) -> TickResult:
        """Run one simulate-and-evaluate cycle."""
        with self._tick_lock:
            self.state = RUNNING
            try:
                return self._tick(now or utcnow())
            finally:
                self.state = IDLE
                self.ticks += 1

    def _tick(self, now: datetime) -> TickResult:
        result = TickResult()
        unit_ids = self.database.unit_ids()
        if not unit_ids:
            logger.debug("No units to simulate")
            return result

        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="autofarm-sensor"
            )
        futures = {
            self._executor.submit(self._advance, unit_id, sensor, now): (unit_id, sensor)
            for unit_id in unit_ids
            for sensor in SensorKind
        }
        # All pairs finish before evaluation sees the batch
        wait(futures)

        for future, (unit_id, sensor) in futures.items():
            error = future.exception()
            if error is not None:
                logger.error(f"Simulation failed for {sensor.value} in unit {unit_id}: {error}")
                result.failures.append((unit_id, sensor, str(error)))
                continue
            result.batch.setdefault(unit_id, {})[sensor] = future.result()

        try:
            rules = self.rule_set.active_rules()
        except Exception as e:
            logger.error(f"Skipping alert evaluation for this tick: {e}")
            return result

        result.firings = self.evaluator.evaluate(result.batch, rules)
        for firing in result.firings:
            logger.info(
                f"Alert '{firing.alert_name}' fired for unit {firing.unit_id} "
                f"(value {firing.triggered_value}, action {firing.action_taken})"
            )
            self.history_log.record(firing, timestamp=now)
        return result

    def _advance(self, unit_id: int, sensor: SensorKind, now: datetime) -> float:
        with self.store.lock_for(unit_id, sensor):
            previous = self.store.latest(unit_id, sensor)
            value = self.simulator.next_value(previous, sensor)
            self.store.append(unit_id, sensor, value, now)
            self.store.trim_to_retention(unit_id, sensor, self.max_history)
        return value
