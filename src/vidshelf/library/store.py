from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import PersistenceFailure
from ..utils import save_json

logger = logging.getLogger(__name__)

METADATA_DIR_NAME = "metadata"
METADATA_FILE_NAME = "metadata.json"


@dataclass
class VideoMetadataRecord:
    filename: str
    uploader: str
    title: str
    thumbnail_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    upload_date: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        # filename is the document key, not part of the stored value
        return {
            "uploader": self.uploader,
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "duration_seconds": self.duration_seconds,
            "upload_date": self.upload_date,
        }

    @classmethod
    def from_dict(cls, filename: str, payload: dict[str, Any]) -> "VideoMetadataRecord":
        duration = payload.get("duration_seconds")
        return cls(
            filename=filename,
            uploader=str(payload.get("uploader") or ""),
            title=str(payload.get("title") or ""),
            thumbnail_url=payload.get("thumbnail_url") or None,
            duration_seconds=float(duration) if duration is not None else None,
            upload_date=str(payload["upload_date"]) if payload.get("upload_date") else None,
        )


class MetadataStore:
    """Filename -> metadata mapping persisted as one JSON document.

    Every write replaces the whole document. Writers are serialized so
    concurrent completions cannot lose each other's updates.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._records: Dict[str, VideoMetadataRecord] = {}

    @classmethod
    def for_storage_dir(cls, storage_dir: Path) -> "MetadataStore":
        return cls(Path(storage_dir) / METADATA_DIR_NAME / METADATA_FILE_NAME)

    def load(self) -> Dict[str, VideoMetadataRecord]:
        """Read the document, creating an empty one when absent.

        Raises:
            PersistenceFailure: the document exists but is not a JSON object
                of records, or it cannot be created
        """
        with self._lock:
            if not self.path.exists():
                try:
                    save_json(self.path, {})
                except OSError as e:
                    raise PersistenceFailure(f"Cannot create metadata file {self.path}: {e}") from e
                logger.info("Created new metadata file %s", self.path)
                self._records = {}
                return {}

            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                raise PersistenceFailure(f"Cannot read metadata file {self.path}: {e}") from e

            if not isinstance(raw, dict):
                raise PersistenceFailure(f"Metadata file {self.path} must contain a JSON object")

            records: Dict[str, VideoMetadataRecord] = {}
            for filename, payload in raw.items():
                if not isinstance(payload, dict):
                    raise PersistenceFailure(f"Metadata entry for {filename!r} is not an object")
                try:
                    records[filename] = VideoMetadataRecord.from_dict(filename, payload)
                except (TypeError, ValueError) as e:
                    raise PersistenceFailure(f"Metadata entry for {filename!r} is malformed: {e}") from e

            self._records = records
            logger.info("Loaded metadata for %d videos", len(records))
            return dict(records)

    def upsert(self, filename: str, record: VideoMetadataRecord) -> None:
        """Insert or replace one record and rewrite the whole document.

        On a failed write the in-memory mapping is left as it was.
        """
        if record.filename != filename:
            record = VideoMetadataRecord(
                filename=filename,
                uploader=record.uploader,
                title=record.title,
                thumbnail_url=record.thumbnail_url,
                duration_seconds=record.duration_seconds,
                upload_date=record.upload_date,
            )

        with self._lock:
            updated = dict(self._records)
            updated[filename] = record
            document = {name: rec.to_dict() for name, rec in updated.items()}
            try:
                save_json(self.path, document)
            except OSError as e:
                raise PersistenceFailure(f"Cannot write metadata file {self.path}: {e}") from e
            self._records = updated
        logger.info("Saved metadata for: %s", filename)

    def get(self, filename: str) -> Optional[VideoMetadataRecord]:
        with self._lock:
            return self._records.get(filename)

    def all(self) -> Dict[str, VideoMetadataRecord]:
        with self._lock:
            return dict(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, filename: object) -> bool:
        with self._lock:
            return filename in self._records
