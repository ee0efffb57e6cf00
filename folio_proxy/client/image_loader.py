from __future__ import annotations

import asyncio
import io
import logging
import posixpath
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlsplit, urlunsplit

import httpx
from PIL import Image

from ..errors import ImageLoadError


log = logging.getLogger(__name__)

PLACEHOLDER_ASSET = "/assets/img/placeholder.png"
DEFAULT_EXTENSIONS: Tuple[str, ...] = (".jpg", ".png", ".webp", ".jpeg")

ImageFetcher = Callable[[str], Awaitable[Any]]

_ASSET_BASE_RE = re.compile(r"^(.*?)/assets/")


class LoadState(str, Enum):
    UNSTARTED = "unstarted"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class InFlightImageRequest:
    url: str
    task: Optional["asyncio.Task[Any]"] = None
    attempted_extensions: List[str] = field(default_factory=list)


@dataclass
class ImageElement:
    src: Optional[str] = None
    alt: str = ""
    opacity: float = 1.0


@dataclass(frozen=True, eq=False)
class LoadingIndicator:
    css_class: str = "loader"


@dataclass
class Container:
    children: List[Any] = field(default_factory=list)

    def append(self, child: Any) -> None:
        self.children.append(child)

    def remove(self, child: Any) -> None:
        if child in self.children:
            self.children.remove(child)


class HttpImageFetcher:
    """Download an image with ``httpx`` and make sure Pillow can decode it."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def __call__(self, url: str) -> Image.Image:
        response = await self._client.get(url)
        response.raise_for_status()
        image = Image.open(io.BytesIO(response.content))
        image.load()
        return image


def placeholder_for(url: str) -> str:
    match = _ASSET_BASE_RE.match(url)
    base = match.group(1) if match else ""
    return f"{base}{PLACEHOLDER_ASSET}"


def extension_candidates(url: str, extensions: Sequence[str]) -> List[Tuple[str, str]]:
    """Return ``(candidate_url, extension)`` pairs, the original URL first."""

    parts = urlsplit(url)
    stem, original_ext = posixpath.splitext(parts.path)
    candidates = [(url, original_ext.lower())]
    for ext in extensions:
        candidate = urlunsplit(parts._replace(path=f"{stem}{ext}"))
        if candidate != url:
            candidates.append((candidate, ext))
    return candidates


class ImageLoadCoordinator:
    """Per-URL image loading with in-flight sharing and a failure memo.

    Each URL moves ``UNSTARTED -> IN_FLIGHT -> SUCCEEDED | FAILED``. ``FAILED``
    is terminal until :meth:`clear`; later requests for such a URL resolve to
    the placeholder without touching the network.
    """

    def __init__(self, fetch_image: ImageFetcher) -> None:
        self._fetch_image = fetch_image
        self._in_flight: Dict[str, InFlightImageRequest] = {}
        self._probes: Dict[str, InFlightImageRequest] = {}
        self._loaded: Dict[str, Any] = {}
        self._failed: Set[str] = set()

    def state(self, url: str) -> LoadState:
        if url in self._failed:
            return LoadState.FAILED
        if url in self._loaded:
            return LoadState.SUCCEEDED
        if url in self._in_flight:
            return LoadState.IN_FLIGHT
        return LoadState.UNSTARTED

    def has_failed(self, url: str) -> bool:
        return url in self._failed

    def clear(self) -> None:
        self._in_flight.clear()
        self._probes.clear()
        self._loaded.clear()
        self._failed.clear()

    async def preload(self, url: str) -> Any:
        if url in self._failed:
            raise ImageLoadError(url, f"Skipping previously failed image: {url}")
        if url in self._loaded:
            return self._loaded[url]

        request = self._in_flight.get(url)
        if request is None:
            request = InFlightImageRequest(url)
            request.task = asyncio.ensure_future(self._load(request))
            self._in_flight[url] = request
        return await asyncio.shield(request.task)

    async def load_into(self, container: Container, image: ImageElement, url: str) -> None:
        if url in self._failed:
            image.src = placeholder_for(url)
            image.opacity = 1.0
            return

        indicator = LoadingIndicator()
        container.append(indicator)
        image.opacity = 0.0
        try:
            await self.preload(url)
            image.src = url
        except ImageLoadError:
            log.warning("Failed to load image: %s", url)
            image.src = placeholder_for(url)
        finally:
            container.remove(indicator)
            image.opacity = 1.0

    async def resolve_with_extensions(self, url: str, extensions: Sequence[str] = DEFAULT_EXTENSIONS) -> str:
        """Find a loadable variant of ``url`` by probing alternative extensions.

        At most ``len(extensions) + 1`` URLs are tried before the placeholder
        is returned.
        """

        probe = self._probes.get(url)
        if probe is None:
            probe = InFlightImageRequest(url)
            probe.task = asyncio.ensure_future(self._probe(probe, tuple(extensions)))
            self._probes[url] = probe
        return await asyncio.shield(probe.task)

    async def load_with_extension_fallback(
        self,
        image: ImageElement,
        url: str,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    ) -> str:
        image.src = await self.resolve_with_extensions(url, extensions)
        image.opacity = 1.0
        return image.src

    async def _load(self, request: InFlightImageRequest) -> Any:
        # After clear() this request no longer owns the URL's state.
        url = request.url
        try:
            loaded = await self._fetch_image(url)
        except Exception as exc:
            if self._in_flight.get(url) is request:
                self._failed.add(url)
            raise ImageLoadError(url) from exc
        else:
            if self._in_flight.get(url) is request:
                self._loaded[url] = loaded
            return loaded
        finally:
            if self._in_flight.get(url) is request:
                del self._in_flight[url]

    async def _probe(self, probe: InFlightImageRequest, extensions: Tuple[str, ...]) -> str:
        try:
            for candidate, ext in extension_candidates(probe.url, extensions):
                probe.attempted_extensions.append(ext)
                try:
                    await self.preload(candidate)
                except ImageLoadError:
                    continue
                return candidate
            log.warning("No loadable variant of %s after trying %s", probe.url, probe.attempted_extensions)
            return placeholder_for(probe.url)
        finally:
            if self._probes.get(probe.url) is probe:
                del self._probes[probe.url]
