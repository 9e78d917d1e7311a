"""
Configuration: module defaults, overridable through environment variables.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DB_PATH = Path(os.environ.get("DOUBLES_TRACKER_DB_PATH", str(PROJECT_ROOT / "data" / "doubles.db")))
LOG_LEVEL = os.environ.get("DOUBLES_TRACKER_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Header row of the tabular export; import requires this exact column order.
CSV_HEADER = (
    "PointNumber",
    "SetNumber",
    "ScoreAtPointStart",
    "PointWinner(Team)",
    "Server",
    "ServeOutcome",
    "PointOutcome",
    "PlayerResponsible",
    "FinishedAtNet",
    "WasOnReturnOfServe",
    "VideoTimestamp",
)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once (API lifespan and CLI call this)."""
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
