"""Ingest module: the yt-dlp boundary.

- Metadata lookup without downloading
- Media transfer to an exact output path with progress reporting
- Thumbnail choice and filesystem-safe naming
"""

from .models import MediaInfo
from .policy import (
    build_filename,
    get_format_selector,
    pick_thumbnail,
    sanitize_component,
)
from .ytdlp_runner import TransferTimedOut, YtDlpTool, info_from_dict

__all__ = [
    # Main entry point
    "YtDlpTool",
    # Models
    "MediaInfo",
    "info_from_dict",
    # Exceptions
    "TransferTimedOut",
    # Policy
    "build_filename",
    "get_format_selector",
    "pick_thumbnail",
    "sanitize_component",
]
