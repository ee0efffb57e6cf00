"""Asyncio client side of the content layer: request cache and image loading."""

from .api import PortfolioClient
from .image_loader import (
    Container,
    HttpImageFetcher,
    ImageElement,
    ImageLoadCoordinator,
    InFlightImageRequest,
    LoadingIndicator,
    LoadState,
    placeholder_for,
)
from .request_cache import DEFAULT_TTL_SECONDS, RequestCache

__all__ = [
    "PortfolioClient",
    "Container",
    "HttpImageFetcher",
    "ImageElement",
    "ImageLoadCoordinator",
    "InFlightImageRequest",
    "LoadingIndicator",
    "LoadState",
    "placeholder_for",
    "DEFAULT_TTL_SECONDS",
    "RequestCache",
]
