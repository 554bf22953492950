"""Data models for URL ingest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class MediaInfo:
    """Metadata yt-dlp reports for a URL before anything is downloaded."""

    url: str
    title: str = ""
    uploader: str = ""
    duration_seconds: Optional[float] = None
    upload_date: Optional[str] = None  # YYYYMMDD as yt-dlp reports it
    thumbnail_url: Optional[str] = None
    video_id: str = ""
    extractor: str = ""
    webpage_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "uploader": self.uploader,
            "duration_seconds": self.duration_seconds,
            "upload_date": self.upload_date,
            "thumbnail_url": self.thumbnail_url,
            "video_id": self.video_id,
            "extractor": self.extractor,
            "webpage_url": self.webpage_url,
        }
