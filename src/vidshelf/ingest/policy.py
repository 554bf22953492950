"""Format selection, thumbnail choice and output naming."""

from __future__ import annotations

import re
from typing import Any, Optional

# Only ASCII letters, digits, whitespace and hyphens survive in filenames
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")

_HIGHEST = {"highest", "source", "best"}


def get_format_selector(quality: str) -> str:
    """Get yt-dlp format selector for a quality setting.

    Args:
        quality: "highest" (aliases "source", "best") or a height such as
            "1080p", "720" or "480p"

    Returns:
        yt-dlp format string
    """
    q = str(quality or "highest").strip().lower()
    if q in _HIGHEST:
        # Best video+audio, prefer mp4
        return "bestvideo[ext=mp4]+bestaudio[ext=m4a]/bestvideo+bestaudio/best"

    try:
        height = int(q.rstrip("p"))
    except ValueError:
        raise ValueError(f"Unknown quality: {quality!r}")

    # Best video up to height + best audio, with fallbacks
    return (
        f"bestvideo[height<={height}][ext=mp4]+bestaudio[ext=m4a]/"
        f"bestvideo[height<={height}]+bestaudio/"
        f"best[height<={height}]/"
        "best"
    )


def _height(thumb: dict[str, Any]) -> int:
    try:
        return int(thumb.get("height"))
    except (TypeError, ValueError):
        return -1


def pick_thumbnail(info: dict[str, Any]) -> Optional[str]:
    """Return the URL of the tallest thumbnail.

    Ties keep the first entry seen; entries without a height rank below any
    entry that has one. Falls back to the single ``thumbnail`` field.
    """
    best: Optional[dict[str, Any]] = None
    for thumb in info.get("thumbnails") or []:
        if not isinstance(thumb, dict) or not thumb.get("url"):
            continue
        if best is None or _height(thumb) > _height(best):
            best = thumb
    if best is not None:
        return str(best["url"])
    fallback = info.get("thumbnail")
    return str(fallback) if fallback else None


def sanitize_component(text: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("", text or "")
    return _WHITESPACE.sub(" ", cleaned).strip()


def build_filename(uploader: str, title: str, extension: str = "mp4", max_length: int = 150) -> str:
    """Combine uploader and title into a filesystem-safe media filename."""
    stem = sanitize_component(f"{uploader}-{title}")
    stem = stem.strip("- ")
    if len(stem) > max_length:
        stem = stem[:max_length].rstrip("- ")
    ext = sanitize_component(extension).replace(" ", "") or "mp4"
    return f"{stem or 'video'}.{ext}"
