"""
Checkpoint files.

Writes encoded snapshots to disk atomically and reads them back for restore.
The progress core only hands snapshots over; this module is the serializer.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from .progress.snapshot import ProgressSnapshot, SnapshotCodec

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    ensure_dir(path.parent)
    tmp_dir = str(path.parent)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=tmp_dir, delete=False) as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.flush()
        os.fsync(f.fileno())
        tmp_name = f.name
    os.replace(tmp_name, path)


def save_checkpoint(path: Path | str, snapshot: ProgressSnapshot, codec: Optional[SnapshotCodec] = None) -> Path:
    """Write a snapshot to path, replacing any previous checkpoint."""
    path = Path(path).expanduser()
    codec = codec or SnapshotCodec()
    atomic_write_json(path, codec.encode(snapshot))
    logger.info(f"Checkpoint saved: {path} ({len(snapshot.tasks)} tasks)")
    return path


def load_checkpoint(path: Path | str) -> Optional[dict[str, Any]]:
    """
    Read a checkpoint file.

    Returns the raw snapshot data, or None if the file is missing or not
    valid JSON. Structural validation happens on restore.
    """
    path = Path(path).expanduser()
    if not path.exists():
        return None

    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load checkpoint: {e}")
        return None


def clear_checkpoint(path: Path | str) -> bool:
    """Remove a checkpoint file. Returns True if one was removed."""
    path = Path(path).expanduser()
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.debug(f"Checkpoint removed: {path}")
    return True
