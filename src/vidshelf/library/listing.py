"""Library listing: files in the storage directory merged with stored metadata."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errorlog import ERROR_LOG_NAME
from ..utils import timestamp_iso
from .store import METADATA_DIR_NAME, MetadataStore, VideoMetadataRecord

logger = logging.getLogger(__name__)

# yt-dlp partials (including fragment files) and our own atomic-write temp files
_ARTIFACT_RE = re.compile(r"\.(?:part(?:-Frag\d+)?|ytdl|tmp)$")


def is_reserved_name(name: str) -> bool:
    if name.startswith("."):
        return True
    if name == METADATA_DIR_NAME:
        return True
    if name == ERROR_LOG_NAME:
        return True
    return _ARTIFACT_RE.search(name) is not None


@dataclass
class LibraryEntry:
    filename: str
    size_bytes: int
    created_at: str
    metadata: Optional[VideoMetadataRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "filename": self.filename,
            "size_bytes": self.size_bytes,
            "created_at": self.created_at,
        }
        if self.metadata is not None:
            out.update(self.metadata.to_dict())
        return out


def list_backing_files(storage_dir: Path) -> List[str]:
    """Names of the media files currently in ``storage_dir``."""
    storage_dir = Path(storage_dir)
    if not storage_dir.is_dir():
        return []
    names = []
    for path in storage_dir.iterdir():
        if is_reserved_name(path.name):
            continue
        if not path.is_file():
            continue
        names.append(path.name)
    return sorted(names)


def _created_seconds(st: Any) -> float:
    # st_birthtime exists on macOS/BSD (and Windows on 3.12+)
    birth = getattr(st, "st_birthtime", None)
    if birth:
        return float(birth)
    return float(st.st_ctime)


def list_library(storage_dir: Path, store: MetadataStore) -> List[LibraryEntry]:
    """One entry per backing file; store records without a file never appear."""
    storage_dir = Path(storage_dir)
    entries: List[LibraryEntry] = []
    for name in list_backing_files(storage_dir):
        try:
            st = (storage_dir / name).stat()
        except FileNotFoundError:
            # Deleted between listing and stat
            logger.info("File disappeared while listing: %s", name)
            continue
        entries.append(
            LibraryEntry(
                filename=name,
                size_bytes=int(st.st_size),
                created_at=timestamp_iso(_created_seconds(st)),
                metadata=store.get(name),
            )
        )
    logger.debug("Found %d videos in %s", len(entries), storage_dir)
    return entries
