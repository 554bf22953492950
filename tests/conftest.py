"""Shared fakes for the download core tests."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from vidshelf.errorlog import ErrorLog
from vidshelf.errors import ExternalToolFailure
from vidshelf.ingest.models import MediaInfo
from vidshelf.library.store import MetadataStore
from vidshelf.studio.jobs import JobTracker
from vidshelf.studio.notify import NotificationHub


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class RecordingConnection:
    """Hub client that keeps every decoded event."""

    def __init__(self, open_: bool = True) -> None:
        self.open = open_
        self.events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def is_open(self) -> bool:
        return self.open

    def send(self, message: str) -> None:
        with self._lock:
            self.events.append(json.loads(message))

    def for_job(self, job_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self.events if e["job_id"] == job_id]

    def percents(self, job_id: str) -> List[int]:
        return [e["percent"] for e in self.for_job(job_id) if e["type"] == "progress"]

    def completions(self, job_id: str) -> List[Dict[str, Any]]:
        return [e for e in self.for_job(job_id) if e["type"] == "completion"]


class FakeTool:
    """Stands in for yt-dlp; downloads block until ``release`` is set."""

    def __init__(
        self,
        *,
        info: Optional[Dict[str, Any]] = None,
        fail_info: Optional[Exception] = None,
        fail_download: Optional[Exception] = None,
        released: bool = True,
    ) -> None:
        self.info = info
        self.fail_info = fail_info
        self.fail_download = fail_download
        self.release = threading.Event()
        if released:
            self.release.set()
        self.info_calls: List[str] = []
        self.download_calls: List[Path] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def fetch_info(self, url: str) -> MediaInfo:
        self.info_calls.append(url)
        if self.fail_info is not None:
            raise self.fail_info
        info = self.info or {"title": f"Clip {url.rsplit('/', 1)[-1]}", "uploader": "Acme"}
        return MediaInfo(url=url, **info)

    def download(self, url: str, output_path: Path, on_progress=None) -> Path:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.download_calls.append(Path(output_path))
        try:
            if not self.release.wait(10):
                raise ExternalToolFailure("test download never released")
            if self.fail_download is not None:
                raise self.fail_download
            if on_progress is not None:
                on_progress(0.5)
            Path(output_path).write_bytes(b"fake video data")
            return Path(output_path)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub()


@pytest.fixture
def listener(hub: NotificationHub) -> RecordingConnection:
    conn = RecordingConnection()
    hub.register(conn)
    return conn


@pytest.fixture
def tracker(hub: NotificationHub):
    tracker = JobTracker(hub, interval_seconds=0.01)
    yield tracker
    tracker.shutdown()


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def store(storage_dir: Path) -> MetadataStore:
    store = MetadataStore.for_storage_dir(storage_dir)
    store.load()
    return store


@pytest.fixture
def error_log(storage_dir: Path) -> ErrorLog:
    return ErrorLog.for_storage_dir(storage_dir)
