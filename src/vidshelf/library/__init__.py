from .listing import LibraryEntry, is_reserved_name, list_backing_files, list_library
from .store import MetadataStore, VideoMetadataRecord

__all__ = [
    "LibraryEntry",
    "MetadataStore",
    "VideoMetadataRecord",
    "is_reserved_name",
    "list_backing_files",
    "list_library",
]
