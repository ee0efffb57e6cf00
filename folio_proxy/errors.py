"""Error taxonomy for the retrieval and caching layer.

``RenderError`` and ``CacheWriteError`` are recovered inside the layer and
only ever logged. Transport and upstream status errors become structured
``{"success": False, "error": ...}`` results in the cache services, while
``DecodeError`` and ``ConversionError`` reach the HTTP layer as error
responses.
"""

from __future__ import annotations

from typing import Optional


class FolioError(Exception):
    """Base class for every error raised by this package."""


class TransportError(FolioError):
    """Connection failure or timeout on every available transport."""


class UpstreamStatusError(FolioError):
    def __init__(self, status: int, message: Optional[str] = None) -> None:
        self.status = status
        super().__init__(message or f"Upstream API returned HTTP {status}")


class NotFoundError(UpstreamStatusError):
    def __init__(self, status: int = 404, message: Optional[str] = None) -> None:
        super().__init__(status, message or f"Resource not found (HTTP {status})")


class RateLimitedError(UpstreamStatusError):
    def __init__(self, status: int = 403, message: Optional[str] = None) -> None:
        super().__init__(status, message or f"Upstream API rate limit exceeded (HTTP {status})")


class UpstreamError(UpstreamStatusError):
    pass


class DecodeError(FolioError):
    """Malformed base64, UTF-8 or JSON content."""


class RenderError(FolioError):
    """Remote markdown renderer unavailable."""


class ConversionError(FolioError):
    """Source image could not be converted."""


class CacheWriteError(FolioError):
    """Cache entry could not be persisted."""


class ImageLoadError(FolioError):
    def __init__(self, url: str, message: Optional[str] = None) -> None:
        self.url = url
        super().__init__(message or f"Failed to load image: {url}")
