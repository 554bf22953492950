"""Error taxonomy shared by the download core and the HTTP layer."""

from __future__ import annotations


class VidshelfError(Exception):
    """Base class for errors raised by vidshelf."""
    pass


class InvalidRequest(VidshelfError):
    """Missing or malformed input from a caller (maps to HTTP 4xx)."""
    pass


class ExternalToolFailure(VidshelfError):
    """yt-dlp failed to look up metadata or to transfer media."""
    pass


class PersistenceFailure(VidshelfError):
    """The metadata document could not be read or written."""
    pass


class NotificationDeliveryFailure(VidshelfError):
    """A single client connection rejected an event."""
    pass


class ServiceUnavailable(VidshelfError):
    """The server is shutting down and accepts no new jobs (maps to HTTP 503)."""
    pass
