"""Download orchestration: metadata first, media in the background.

submit() answers as soon as yt-dlp has reported the video's metadata. The
media transfer then runs on a bounded worker pool, so at most
``max_concurrent`` transfers are in flight and the rest wait for a slot.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Union

from .errorlog import ErrorLog
from .errors import ExternalToolFailure, InvalidRequest, PersistenceFailure, ServiceUnavailable
from .ingest.models import MediaInfo
from .ingest.policy import build_filename
from .library.store import MetadataStore, VideoMetadataRecord
from .studio.jobs import JobId, JobTracker, ProgressSource, ReportedProgress
from .studio.notify import NotificationHub

logger = logging.getLogger(__name__)


class ExternalTool(Protocol):
    def fetch_info(self, url: str) -> MediaInfo:
        ...

    def download(
        self,
        url: str,
        output_path: Path,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Path:
        ...


@dataclass
class VideoDescriptor:
    job_id: JobId
    filename: str
    uploader: str
    title: str
    thumbnail_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    upload_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "filename": self.filename,
            "uploader": self.uploader,
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "duration_seconds": self.duration_seconds,
            "upload_date": self.upload_date,
        }

    def to_record(self) -> VideoMetadataRecord:
        return VideoMetadataRecord(
            filename=self.filename,
            uploader=self.uploader,
            title=self.title,
            thumbnail_url=self.thumbnail_url,
            duration_seconds=self.duration_seconds,
            upload_date=self.upload_date,
        )


def _time_based_job_id() -> int:
    return int(time.time() * 1000)


def normalize_job_id(job_id: Any) -> JobId:
    """Client ids keep their JSON type; a missing id becomes a millisecond timestamp."""
    if job_id is None or (isinstance(job_id, str) and not job_id.strip()):
        return _time_based_job_id()
    # bool is an int subclass but never a meaningful id
    if isinstance(job_id, bool) or not isinstance(job_id, (int, str)):
        raise InvalidRequest("invalid_job_id")
    return job_id.strip() if isinstance(job_id, str) else job_id


def normalize_url(url: Any) -> str:
    url = str(url or "").strip()
    if not url:
        raise InvalidRequest("url_required")
    if not (url.startswith("http://") or url.startswith("https://")):
        raise InvalidRequest("invalid_url")
    return url


class DownloadOrchestrator:
    def __init__(
        self,
        *,
        tool: ExternalTool,
        tracker: JobTracker,
        hub: NotificationHub,
        store: MetadataStore,
        error_log: ErrorLog,
        storage_dir: Path,
        max_concurrent: int = 2,
        media_extension: str = "mp4",
        progress_source: str = "simulated",
        progress_cap: int = 95,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.tool = tool
        self.tracker = tracker
        self.hub = hub
        self.store = store
        self.error_log = error_log
        self.storage_dir = Path(storage_dir)
        self.max_concurrent = int(max_concurrent)
        self.media_extension = media_extension
        self.progress_source = progress_source
        self.progress_cap = int(progress_cap)

        self._pool = ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix="download")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._active = 0
        self._closed = False

    @property
    def active_transfers(self) -> int:
        with self._lock:
            return self._active

    def submit(self, url: Any, job_id: Union[str, int, None] = None) -> VideoDescriptor:
        """Look up metadata, register the job and queue the media transfer.

        Raises:
            InvalidRequest: empty/non-http URL, or a job id already in flight
            ExternalToolFailure: the metadata lookup failed (no job registered)
            ServiceUnavailable: the orchestrator has been shut down
        """
        url = normalize_url(url)
        job_id = normalize_job_id(job_id)
        job_key = str(job_id)
        if self._closed:
            raise ServiceUnavailable("shutting_down")
        # Checked again by register(); this one spares a pointless metadata lookup
        if self.tracker.get(job_key) is not None:
            raise InvalidRequest("job_id_in_use")

        logger.info("Starting download for: %s", url)
        try:
            info = self.tool.fetch_info(url)
        except ExternalToolFailure as e:
            self.error_log.record("Metadata lookup failed", e)
            raise
        except Exception as e:
            self.error_log.record("Metadata lookup failed", e)
            raise ExternalToolFailure(f"Metadata lookup failed: {e}") from e
        logger.info("Got video info: %s", info.title)

        descriptor = VideoDescriptor(
            job_id=job_id,
            filename=build_filename(info.uploader, info.title, self.media_extension),
            uploader=info.uploader,
            title=info.title,
            thumbnail_url=info.thumbnail_url,
            duration_seconds=info.duration_seconds,
            upload_date=info.upload_date,
        )

        self.tracker.register(job_id, url)
        try:
            future = self._pool.submit(self._transfer, url, descriptor)
        except RuntimeError as e:
            # Pool shut down while the metadata lookup was running
            self.tracker.fail(job_id, "Server is shutting down")
            raise ServiceUnavailable("shutting_down") from e
        with self._lock:
            self._futures[job_key] = future
        future.add_done_callback(lambda _f, key=job_key: self._forget(key))
        return descriptor

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._futures.pop(job_id, None)

    def _make_source(self) -> tuple[Optional[ProgressSource], Optional[Callable[[float], None]]]:
        if self.progress_source == "reported":
            source = ReportedProgress(cap=self.progress_cap)
            return source, source.report
        return None, None

    def _transfer(self, url: str, descriptor: VideoDescriptor) -> None:
        job_id = descriptor.job_id
        with self._lock:
            self._active += 1
        try:
            source, on_progress = self._make_source()
            self.tracker.start(job_id, source=source)

            output_path = self.storage_dir / descriptor.filename
            logger.info("Downloading to: %s", output_path)
            try:
                self.tool.download(url, output_path, on_progress=on_progress)
            except Exception as e:
                self.error_log.record("Video download failed", e)
                self.tracker.fail(job_id, str(e) or type(e).__name__)
                return

            try:
                self.store.upsert(descriptor.filename, descriptor.to_record())
            except PersistenceFailure as e:
                # The media exists; only its metadata is lost
                self.error_log.record("Metadata save failed", e)

            self.tracker.complete(job_id, filename=descriptor.filename)
        except Exception as e:
            self.error_log.record("Download worker crashed", e)
            self.tracker.fail(job_id, f"{type(e).__name__}: {e}")
        finally:
            with self._lock:
                self._active -= 1

    def join(self, job_id: Union[str, int], timeout: Optional[float] = None) -> bool:
        """Wait for a job's transfer to finish. Returns False on timeout."""
        with self._lock:
            future = self._futures.get(str(job_id))
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        except CancelledError:
            pass
        return True

    def shutdown(self, wait: bool = False) -> None:
        """Drop queued transfers and stop progress timers.

        Running yt-dlp calls are not interrupted and partial files stay on
        disk.
        """
        self._closed = True
        self._pool.shutdown(wait=wait, cancel_futures=True)
        self.tracker.shutdown()
