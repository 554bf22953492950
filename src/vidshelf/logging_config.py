"""Process-wide logging setup.

Every module logs through ``logging.getLogger(__name__)``, so all records
land under the ``vidshelf`` logger configured here. Call ``setup_logging``
once from the entry point; later calls are no-ops.

Per-module levels come from the ``logging.module_levels`` config mapping
and from ``VS_LOG_MODULE_LEVELS`` (which wins), e.g.::

    VS_LOG_MODULE_LEVELS="studio.jobs=DEBUG;downloads:WARNING"
"""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

ROOT_LOGGER = "vidshelf"
MODULE_LEVELS_ENV = "VS_LOG_MODULE_LEVELS"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# uvicorn logs every request at INFO; the download log is what matters
_QUIET_LOGGERS = {"uvicorn.access": logging.WARNING}

_configured = False

LevelLike = Union[int, str]


def qualify(name: str) -> str:
    """``studio.app`` -> ``vidshelf.studio.app``; full names pass through."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return name
    return f"{ROOT_LOGGER}.{name}"


def to_level(value: LevelLike) -> Optional[int]:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    return level if isinstance(level, int) else None


def _parse_module_levels(spec: str) -> Dict[str, int]:
    """``name=LEVEL`` pairs split on ``,`` or ``;``; ``:`` also assigns.

    Unparseable pairs and unknown level names are dropped.
    """
    out: Dict[str, int] = {}
    for part in re.split(r"[;,]", spec or ""):
        m = re.match(r"^\s*([\w.]+)\s*[=:]\s*(\w+)\s*$", part)
        if not m:
            continue
        level = to_level(m.group(2))
        if level is not None:
            out[qualify(m.group(1))] = level
    return out


def setup_logging(
    level: LevelLike = logging.INFO,
    log_file: Optional[Path] = None,
    module_levels: Optional[Mapping[str, LevelLike]] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """Attach stderr (and optionally file) handlers to the ``vidshelf`` logger.

    Args:
        level: Level for the package logger, as int or name
        log_file: Also append records here when set
        module_levels: Extra per-module levels from config
        format_string: Override ``DEFAULT_FORMAT``
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    if _configured:
        return root

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt=DATE_FORMAT)
    root.setLevel(to_level(level) or logging.INFO)
    root.handlers.clear()

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        # Levels are decided per logger so module overrides can go below the root level
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.propagate = False

    overrides: Dict[str, int] = {}
    for name, value in (module_levels or {}).items():
        lvl = to_level(value)
        if lvl is not None:
            overrides[qualify(name)] = lvl
    overrides.update(_parse_module_levels(os.getenv(MODULE_LEVELS_ENV, "")))
    for name, lvl in overrides.items():
        logging.getLogger(name).setLevel(lvl)

    for name, lvl in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(lvl)

    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(qualify(name))
