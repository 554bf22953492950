"""Shared utility functions for vidshelf.

- utc_iso(): UTC timestamp in ISO format
- save_json(): atomic JSON write (temp file + replace)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


def utc_iso() -> str:
    """Return current UTC time in ISO 8601 format.

    Returns:
        ISO formatted timestamp string like '2024-01-15T10:30:00+00:00'
    """
    return datetime.now(timezone.utc).isoformat()


def timestamp_iso(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def save_json(path: Path, obj: Dict[str, Any]) -> None:
    """Replace ``path`` with ``obj`` as JSON; readers see the old or the new document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory as the target so os.replace never crosses filesystems
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            logger.debug("Could not remove temp file %s", tmp_name)
        raise
