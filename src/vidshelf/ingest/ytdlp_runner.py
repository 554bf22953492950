"""yt-dlp wrapper used as the external extraction tool.

Two calls are exposed:
- fetch_info(): metadata only, no download
- download(): fetch the media to an exact output path, reporting progress
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadCancelled

from ..errors import ExternalToolFailure
from .models import MediaInfo
from .policy import get_format_selector, pick_thumbnail

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class TransferTimedOut(DownloadCancelled):
    """Raised from the progress hook once the transfer deadline passes."""
    pass


class _YtDlpLogger:
    """Route yt-dlp output into our logging instead of stdout/stderr."""

    def debug(self, msg: str) -> None:
        logger.debug("yt-dlp: %s", msg)

    def warning(self, msg: str) -> None:
        logger.debug("yt-dlp warning: %s", msg)

    def error(self, msg: str) -> None:
        logger.debug("yt-dlp error: %s", msg)


def _base_opts() -> dict[str, Any]:
    return {
        "logger": _YtDlpLogger(),
        "quiet": True,
        "no_warnings": True,
        # We rely on progress_hooks for UI instead of yt-dlp's console output
        "noprogress": True,
        "noplaylist": True,
        "nocheckcertificate": True,
    }


def info_from_dict(url: str, info: dict[str, Any]) -> MediaInfo:
    duration = info.get("duration")
    try:
        duration_seconds = float(duration) if duration is not None else None
    except (TypeError, ValueError):
        duration_seconds = None

    return MediaInfo(
        url=url,
        title=str(info.get("title") or ""),
        uploader=str(info.get("channel") or info.get("uploader") or ""),
        duration_seconds=duration_seconds,
        upload_date=str(info["upload_date"]) if info.get("upload_date") else None,
        thumbnail_url=pick_thumbnail(info),
        video_id=str(info.get("id") or ""),
        extractor=str(info.get("extractor") or info.get("ie_key") or ""),
        webpage_url=str(info.get("webpage_url") or url),
    )


class YtDlpTool:
    def __init__(
        self,
        *,
        quality: str = "highest",
        media_format: str = "mp4",
        timeout_seconds: float = 300.0,
    ) -> None:
        self.quality = quality
        self.media_format = media_format
        self.timeout_seconds = float(timeout_seconds)
        # Fail fast on a bad quality string instead of at download time
        self.format_selector = get_format_selector(quality)

    def fetch_info(self, url: str) -> MediaInfo:
        """Look up title, uploader, duration, upload date and thumbnail."""
        opts = _base_opts()
        opts["skip_download"] = True
        opts["socket_timeout"] = min(self.timeout_seconds, 60.0)

        try:
            with YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except Exception as e:
            raise ExternalToolFailure(f"Metadata lookup failed: {e}") from e

        if not info:
            raise ExternalToolFailure(f"Metadata lookup returned nothing for {url}")
        return info_from_dict(url, info)

    def download(
        self,
        url: str,
        output_path: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Download media for ``url`` to exactly ``output_path``.

        Raises:
            ExternalToolFailure: on any yt-dlp error, on timeout, or when no
                file exists at ``output_path`` afterwards
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout_seconds

        def progress_hook(d: dict[str, Any]) -> None:
            if time.monotonic() > deadline:
                raise TransferTimedOut(f"Transfer exceeded {self.timeout_seconds:g}s")

            if d.get("status") != "downloading" or on_progress is None:
                return
            total = d.get("total_bytes") or d.get("total_bytes_estimate")
            downloaded = d.get("downloaded_bytes", 0)
            if total and total > 0:
                on_progress(max(0.0, min(1.0, downloaded / total)))

        opts = _base_opts()
        opts.update(
            {
                "outtmpl": str(output_path),
                "format": self.format_selector,
                "merge_output_format": self.media_format,
                "progress_hooks": [progress_hook],
                "socket_timeout": min(self.timeout_seconds, 60.0),
            }
        )

        try:
            with YoutubeDL(opts) as ydl:
                ydl.download([url])
        except TransferTimedOut as e:
            raise ExternalToolFailure(f"Download timed out: {e}") from e
        except Exception as e:
            raise ExternalToolFailure(f"Download failed: {e}") from e

        if not output_path.exists():
            raise ExternalToolFailure(f"No file found after download: {output_path.name}")
        return output_path
