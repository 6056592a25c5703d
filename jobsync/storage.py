"""JSON file persistence for caches and run history.

Every file here is a single JSON document rewritten as a whole:

  1. Copy the current file to `<name>.bak`
  2. Write the new document to `<name>.tmp` and fsync it
  3. Rename the temp file over the target (atomic on POSIX)

Reads never fail: a missing file yields the default, a corrupt file is
restored from its `.bak` when possible, otherwise the default is used.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def read_json(path: str | Path, default: Any = None) -> Any:
    """Read a JSON document, falling back to `.bak` and then `default`."""
    path = Path(path)
    fallback = default if default is not None else {}

    if not path.exists():
        return fallback

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read %s: %s; trying backup", path, exc)

    bak_path = _backup_path(path)
    if bak_path.exists():
        try:
            with open(bak_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            logger.error("Backup %s also unreadable: %s", bak_path, exc)
        else:
            logger.info("Restored %s from backup", path)
            atomic_write_json(path, data)
            return data

    logger.warning("Could not read %s or its backup; starting empty", path)
    return fallback


def write_json(path: str | Path, data: Any) -> None:
    """Back up the current file, then atomically replace it with `data`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists():
        try:
            shutil.copy2(path, _backup_path(path))
        except OSError as exc:
            logger.warning("Failed to create backup of %s: %s", path, exc)

    atomic_write_json(path, data)


def atomic_write_json(path: str | Path, data: Any) -> None:
    """Write JSON via a temp file in the same directory, then rename."""
    path = Path(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def _backup_path(path: Path) -> Path:
    return path.with_suffix(path.suffix + ".bak")
