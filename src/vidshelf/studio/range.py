"""Serving library files with HTTP Range support (needed for video seeking)."""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Iterator, Optional, Tuple

from fastapi import Request
from fastapi.responses import StreamingResponse

from ..library.listing import is_reserved_name

CHUNK_SIZE = 1024 * 1024


def resolve_media_path(storage_dir: Path, filename: str) -> Optional[Path]:
    """Map a requested filename to a file directly inside ``storage_dir``.

    Returns None for traversal attempts, reserved artifacts and missing files.
    """
    if not filename or filename != Path(filename).name or filename in {".", ".."}:
        return None
    if is_reserved_name(filename):
        return None
    root = Path(storage_dir).resolve()
    candidate = (root / filename).resolve()
    if candidate.parent != root or not candidate.is_file():
        return None
    return candidate


def guess_media_type(path: Path) -> str:
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or "application/octet-stream"


def _parse_range_header(range_header: str, file_size: int) -> Optional[Tuple[int, int]]:
    # bytes=start-end; only the first range of a multi-range request is honored
    if not range_header or not range_header.startswith("bytes="):
        return None
    spec = range_header[len("bytes="):].split(",", 1)[0].strip()
    if "-" not in spec or file_size <= 0:
        return None
    first, last = (part.strip() for part in spec.split("-", 1))

    try:
        if first == "":
            # Suffix range: the final N bytes
            length = min(int(last), file_size)
            if length <= 0:
                return None
            return file_size - length, file_size - 1
        start = max(0, int(first))
        end = file_size - 1 if last == "" else min(int(last), file_size - 1)
    except ValueError:
        return None

    if end < start:
        return None
    return start, end


def _iter_file_range(path: Path, start: int, end: int) -> Iterator[bytes]:
    with path.open("rb") as f:
        f.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            data = f.read(min(CHUNK_SIZE, remaining))
            if not data:
                break
            remaining -= len(data)
            yield data


def ranged_file_response(request: Request, path: Path, *, media_type: Optional[str] = None) -> StreamingResponse:
    path = Path(path)
    file_size = path.stat().st_size
    media_type = media_type or guess_media_type(path)

    range_header = request.headers.get("range")
    byte_range = _parse_range_header(range_header, file_size) if range_header else None

    if byte_range is None:
        headers = {"Accept-Ranges": "bytes", "Content-Length": str(file_size)}
        return StreamingResponse(
            _iter_file_range(path, 0, file_size - 1),
            status_code=200,
            media_type=media_type,
            headers=headers,
        )

    start, end = byte_range
    headers = {
        "Content-Range": f"bytes {start}-{end}/{file_size}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(end - start + 1),
    }
    return StreamingResponse(
        _iter_file_range(path, start, end),
        status_code=206,
        media_type=media_type,
        headers=headers,
    )
