"""Run history: one record per pipeline run in data/run-history.json.

Records older than 18 months are pruned on every append.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from jobsync.models import parse_timestamp
from jobsync.storage import DEFAULT_DATA_DIR, read_json, write_json

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "run-history.json"
MAX_AGE = timedelta(days=548)  # ~18 months


def get_run_history(data_dir: str | Path = DEFAULT_DATA_DIR) -> list[dict[str, Any]]:
    """All stored run records, oldest first. Missing or corrupt -> []."""
    history = read_json(Path(data_dir) / HISTORY_FILENAME, default=[])
    if not isinstance(history, list):
        logger.warning("Run history is not a list; ignoring it")
        return []
    return history


def append_run_history(
    record: dict[str, Any],
    data_dir: str | Path = DEFAULT_DATA_DIR,
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """Append `record`, drop records older than 18 months, and save.

    Returns the history as written.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - MAX_AGE

    history = get_run_history(data_dir)
    history.append(record)

    pruned = []
    for entry in history:
        ts = parse_timestamp(entry.get("timestamp"))
        if ts is not None and ts >= cutoff:
            pruned.append(entry)

    dropped = len(history) - len(pruned)
    if dropped:
        logger.info("Pruned %d run records older than %d days", dropped, MAX_AGE.days)

    write_json(Path(data_dir) / HISTORY_FILENAME, pruned)
    return pruned
