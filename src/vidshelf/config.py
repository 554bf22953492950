from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

STORAGE_DIR_ENV = "VS_STORAGE_DIR"
PORT_ENV = "VS_PORT"
MAX_CONCURRENT_ENV = "VS_MAX_CONCURRENT"

PROGRESS_SOURCES = ("simulated", "reported")


def default_config() -> Dict[str, Any]:
    return {
        "server": {
            "host": "127.0.0.1",
            "port": 3001,
        },
        "storage": {
            "path": "downloads",
        },
        "download": {
            "max_concurrent": 2,
            "quality": "highest",  # highest, 1080p, 720p, 480p
            "format": "mp4",
            "timeout_seconds": 300.0,
        },
        "progress": {
            "interval_seconds": 0.5,
            "step": 5,
            "cap": 95,
            # "simulated" ticks a fixed step; "reported" follows yt-dlp progress hooks
            "source": "simulated",
        },
        "logging": {
            "level": "INFO",
            "file": None,  # relative paths resolve against storage.path
            "module_levels": {},
        },
    }


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer)", name, raw)
        return None


def _apply_env(data: Dict[str, Any]) -> Dict[str, Any]:
    storage = os.getenv(STORAGE_DIR_ENV)
    if storage:
        data["storage"]["path"] = storage
    port = _env_int(PORT_ENV)
    if port is not None:
        data["server"]["port"] = port
    max_concurrent = _env_int(MAX_CONCURRENT_ENV)
    if max_concurrent is not None:
        data["download"]["max_concurrent"] = max_concurrent
    return data


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the YAML config (if any) over the defaults, then env overrides."""
    data = default_config()

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config not found: {config_path}")

        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("Config YAML must be a mapping")
        data = _deep_merge(data, loaded)

    return _apply_env(data)


@dataclass(frozen=True)
class AppConfig:
    """Validated, read-only view of the startup configuration."""

    host: str
    port: int
    storage_dir: Path
    max_concurrent: int
    quality: str
    media_format: str
    timeout_seconds: float
    progress_interval_seconds: float
    progress_step: int
    progress_cap: int
    progress_source: str
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    log_module_levels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        merged = _deep_merge(default_config(), data)
        server = merged["server"]
        download = merged["download"]
        progress = merged["progress"]
        log = merged["logging"] or {}
        storage_dir = Path(str(merged["storage"]["path"])).expanduser()
        log_file = Path(str(log["file"])).expanduser() if log.get("file") else None
        if log_file is not None and not log_file.is_absolute():
            log_file = storage_dir / log_file

        cfg = cls(
            host=str(server["host"]),
            port=int(server["port"]),
            storage_dir=storage_dir,
            max_concurrent=int(download["max_concurrent"]),
            quality=str(download["quality"]).lower(),
            media_format=str(download["format"]).lower(),
            timeout_seconds=float(download["timeout_seconds"]),
            progress_interval_seconds=float(progress["interval_seconds"]),
            progress_step=int(progress["step"]),
            progress_cap=int(progress["cap"]),
            progress_source=str(progress["source"]).lower(),
            log_level=str(log.get("level") or "INFO").upper(),
            log_file=log_file,
            log_module_levels={str(k): str(v) for k, v in (log.get("module_levels") or {}).items()},
        )
        cfg.validate()
        return cfg

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "AppConfig":
        return cls.from_dict(load_config(config_path))

    def validate(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError("download.max_concurrent must be >= 1")
        if self.timeout_seconds <= 0:
            raise ValueError("download.timeout_seconds must be > 0")
        if self.progress_interval_seconds <= 0:
            raise ValueError("progress.interval_seconds must be > 0")
        if self.progress_step < 1:
            raise ValueError("progress.step must be >= 1")
        # The synthetic signal must never reach 100 on its own
        if not 0 < self.progress_cap < 100:
            raise ValueError("progress.cap must be between 1 and 99")
        if self.progress_source not in PROGRESS_SOURCES:
            raise ValueError(f"progress.source must be one of {PROGRESS_SOURCES}")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"logging.level is not a level name: {self.log_level!r}")
