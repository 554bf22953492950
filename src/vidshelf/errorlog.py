"""Append-only error record kept next to the downloaded media.

Each entry looks like::

    2024-01-15T10:30:00+00:00 - Video download failed: <message>
    <stack trace>

and entries are separated by a blank line. The file is never truncated or
rotated here.
"""

from __future__ import annotations

import logging
import re
import threading
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

from .utils import utc_iso

logger = logging.getLogger(__name__)

ERROR_LOG_NAME = "error.log"

_HEADER_RE = re.compile(r"^(?P<timestamp>\d{4}-\d{2}-\d{2}T\S+) - (?P<context>[^:]+): (?P<message>.*)$")


def _format_stack(error: BaseException) -> str:
    if error.__traceback__ is None:
        return f"{type(error).__name__}: {error}"
    return "".join(traceback.format_exception(type(error), error, error.__traceback__)).rstrip()


class ErrorLog:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    @classmethod
    def for_storage_dir(cls, storage_dir: Path) -> "ErrorLog":
        return cls(Path(storage_dir) / ERROR_LOG_NAME)

    def record(self, context: str, error: BaseException, *, timestamp: Optional[str] = None) -> None:
        """Append one entry and mirror it to the application log."""
        message = str(error).replace("\n", " ").strip() or type(error).__name__
        entry = f"{timestamp or utc_iso()} - {context}: {message}\n{_format_stack(error)}\n\n"
        logger.error("%s: %s", context, message)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(entry)
        except OSError as exc:
            # The original failure is what the caller is reporting
            logger.error("Failed to write error log %s: %s", self.path, exc)

    def entries(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        out: List[Dict[str, Any]] = []
        stack: List[str] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            m = _HEADER_RE.match(line)
            if m:
                if out:
                    out[-1]["stack"] = "\n".join(stack).strip("\n")
                stack = []
                out.append(
                    {
                        "timestamp": m.group("timestamp"),
                        "context": m.group("context"),
                        "message": m.group("message"),
                        "stack": "",
                    }
                )
            elif out:
                # Chained tracebacks contain blank lines of their own
                stack.append(line)
        if out:
            out[-1]["stack"] = "\n".join(stack).strip("\n")
        return out
