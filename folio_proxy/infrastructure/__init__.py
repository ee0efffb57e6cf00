"""Infrastructure helpers for networking, caching and HTTP responses."""

from .cache import CacheEntry, DiskCacheStore, normalize_key
from .network import (
    DualTransportFetcher,
    ErrorKind,
    FetchAttemptResult,
    FetchRequest,
    HttpxTransport,
    RequestsTransport,
    Transport,
)

__all__ = [
    "CacheEntry",
    "DiskCacheStore",
    "normalize_key",
    "DualTransportFetcher",
    "ErrorKind",
    "FetchAttemptResult",
    "FetchRequest",
    "HttpxTransport",
    "RequestsTransport",
    "Transport",
]
