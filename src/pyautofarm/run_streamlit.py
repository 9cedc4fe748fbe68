#!/usr/bin/env python3
"""
Runner script for the AutoFarm Streamlit dashboard.
"""

import importlib
import importlib.util
import logging
import subprocess
import sys
from pathlib import Path

from .config import settings

logger = logging.getLogger("AutoFarm")


def check_dependencies() -> bool:
    """Check that Streamlit and Altair are importable"""
    missing = []
    for package in ("streamlit", "altair"):
        try:
            importlib.import_module(package)
            logger.info(f"Found {package} package")
        except ImportError:
            logger.error(f"Missing required package: {package}")
            missing.append(package)
    return not missing


def main():
    """Run the Streamlit app"""
    if not check_dependencies():
        logger.error("Install the dashboard dependencies to run Streamlit")
        return 1

    module_spec = importlib.util.find_spec("pyautofarm.streamlit_app")
    if module_spec and module_spec.origin:
        app_path = module_spec.origin
    else:
        app_path = str(Path(__file__).resolve().parent / "streamlit_app.py")
    logger.info(f"Using Streamlit app file: {app_path}")

    cmd = [
        "streamlit",
        "run",
        app_path,
        "--server.port",
        str(settings.streamlit_port),
        "--server.address",
        settings.server_host,
        "--browser.serverAddress",
        "localhost",
        "--theme.base",
        "dark",
    ]

    logger.info(f"Starting Streamlit app: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, check=True)
    except KeyboardInterrupt:
        logger.info("Streamlit app stopped by user")
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to start Streamlit: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
