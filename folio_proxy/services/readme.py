from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

from ..config import SETTINGS, Settings
from ..errors import DecodeError, FolioError
from ..infrastructure.cache import DiskCacheStore
from ..infrastructure.network import DualTransportFetcher, FetchRequest
from ..rendering.chain import GITHUB_ACCEPT, ContentRenderFallbackChain, RenderContext


log = logging.getLogger(__name__)

_GITHUB_HOSTS = {"github.com", "www.github.com"}
_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def parse_repo_url(repo_url: str) -> Tuple[str, str]:
    """Extract ``(owner, repo)`` from a GitHub URL or an ``owner/repo`` string."""

    text = (repo_url or "").strip()
    parsed = urlsplit(text)
    if parsed.scheme:
        if parsed.netloc.lower() not in _GITHUB_HOSTS:
            raise ValueError(f"Not a GitHub repository URL: {repo_url}")
        text = parsed.path

    parts = [part for part in text.split("/") if part]
    if parts and parts[0].lower() in _GITHUB_HOSTS:
        parts = parts[1:]
    if len(parts) < 2:
        raise ValueError("Invalid GitHub URL format")

    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not (_NAME_RE.match(owner) and _NAME_RE.match(repo)):
        raise ValueError("Invalid GitHub URL format")
    return owner, repo


def encode_content(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(encoded: str) -> str:
    """Decode the API's base64 payload (which may contain line breaks) as UTF-8."""

    cleaned = "".join((encoded or "").split())
    try:
        return base64.b64decode(cleaned, validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"README content is not valid base64 UTF-8: {exc}") from exc


class ReadmeCacheService:
    """Serve rendered repository READMEs from the disk cache or the GitHub API."""

    def __init__(
        self,
        store: DiskCacheStore,
        fetcher: DualTransportFetcher,
        renderer: ContentRenderFallbackChain,
        *,
        api_base: str = SETTINGS.github_api,
        ttl_seconds: Optional[int] = None,
        timeout: float = SETTINGS.timeout,
        static_dir: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._renderer = renderer
        self._api_base = api_base.rstrip("/")
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._static_dir = static_dir
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings = SETTINGS,
        *,
        store: Optional[DiskCacheStore] = None,
        fetcher: Optional[DualTransportFetcher] = None,
    ) -> "ReadmeCacheService":
        fetcher = fetcher or DualTransportFetcher.from_settings(settings)
        return cls(
            store or DiskCacheStore(settings.cache_dir, settings.cache_ttl_seconds),
            fetcher,
            ContentRenderFallbackChain.from_settings(fetcher, settings),
            api_base=settings.github_api,
            ttl_seconds=settings.cache_ttl_seconds,
            timeout=settings.timeout,
            static_dir=Path(settings.asset_root) / settings.static_dir,
        )

    @staticmethod
    def cache_key(owner: str, repo: str) -> Tuple[str, str, str]:
        return ("readme", owner, repo)

    def get_readme(self, owner: str, repo: str) -> Dict[str, Any]:
        key = self.cache_key(owner, repo)
        entry = self._store.get(key)
        if entry is not None:
            log.debug("README cache hit for %s/%s", owner, repo)
            return {**entry.payload, "source": "cache"}

        try:
            result = self._fetch_live(owner, repo)
        except FolioError as exc:
            log.warning("README fetch failed for %s/%s: %s", owner, repo, exc)
            return self._static_fallback(repo) or {
                "success": False,
                "error": str(exc),
                "error_type": type(exc).__name__,
                "source": "error",
            }

        self._store.put(key, result, self._ttl_seconds)
        return result

    def clear(self, owner: str, repo: str) -> bool:
        return self._store.invalidate(self.cache_key(owner, repo))

    def _fetch_live(self, owner: str, repo: str) -> Dict[str, Any]:
        request = FetchRequest.get(
            f"{self._api_base}/repos/{owner}/{repo}/readme",
            headers={"Accept": GITHUB_ACCEPT},
            timeout=self._timeout,
        )
        data = self._fetcher.fetch_json(request)
        if not isinstance(data, dict) or not isinstance(data.get("content"), str):
            raise DecodeError("Invalid README response from GitHub API")

        markdown = decode_content(data["content"])
        html = self._renderer.render(markdown, RenderContext(owner, repo))
        return {
            "success": True,
            "content": html,
            "cached_at": int(self._clock()),
            "source": "github_api",
        }

    def _static_fallback(self, repo: str) -> Optional[Dict[str, Any]]:
        if self._static_dir is None:
            return None
        path = self._static_dir / f"{repo}.html"
        try:
            content = path.read_text(encoding="utf-8")
        except OSError:
            return None
        log.info("Serving static description %s", path)
        return {"success": True, "content": content, "cached_at": None, "source": "static"}
