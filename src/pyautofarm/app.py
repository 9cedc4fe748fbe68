"""
Composition root: opens the database, runs the simulation in the background
and serves the REST API (or the Streamlit dashboard).
"""

import argparse
import logging
import os
import signal
import sys

from .alerts import AlertHistoryLog, AlertRuleSet
from .config import settings
from .database import DatabaseService
from .readings import ReadingStore
from .run_streamlit import main as run_streamlit
from .scheduler import SimulationScheduler
from .simulator import SensorSimulator
from .web_server import create_app

logger = logging.getLogger("AutoFarm")


def build_scheduler(database: DatabaseService, store: ReadingStore) -> SimulationScheduler:
    return SimulationScheduler(
        database,
        store,
        AlertRuleSet(database),
        AlertHistoryLog(database),
        simulator=SensorSimulator(seed=settings.random_seed),
    )


def main(argv=None):
    """Main entry point for the application"""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
    )

    parser = argparse.ArgumentParser(description="AutoFarm - simulated greenhouse backend")
    parser.add_argument("--streamlit", action="store_true", help="Serve the Streamlit dashboard")
    parser.add_argument("--db", help="Path to SQLite database (default: from settings)")
    parser.add_argument("--port", type=int, help="REST API port (default: from settings)")
    parser.add_argument(
        "--no-simulation", action="store_true", help="Serve data without generating readings"
    )
    args = parser.parse_args(argv)

    if args.streamlit:
        settings.use_streamlit = True
    if args.db:
        settings.database_path = args.db
        # The dashboard runs in its own process and reads settings from the environment
        os.environ["AUTOFARM_DATABASE_PATH"] = args.db

    try:
        database = DatabaseService(settings.database_path)
        database.initialize()
    except Exception:
        logger.critical("Cannot start without a database")
        return 1

    store = ReadingStore(database)
    scheduler = None
    if not args.no_simulation:
        scheduler = build_scheduler(database, store)
        scheduler.start()

    def shutdown(signum, frame):
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, shutdown)

    try:
        if settings.use_streamlit:
            logger.info("Starting Streamlit visualization server")
            return run_streamlit()
        app = create_app(database, store)
        port = args.port or settings.server_port
        logger.info(f"Backend listening on http://{settings.server_host}:{port}")
        app.run(host=settings.server_host, port=port, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        if scheduler is not None:
            scheduler.stop()
        else:
            database.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
