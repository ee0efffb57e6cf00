from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from ..errors import DecodeError, FolioError
from .request_cache import RequestCache


log = logging.getLogger(__name__)

README_UNAVAILABLE = "<p>Project description is currently unavailable.</p>"


class PortfolioClient:
    """Front-end facing client for the cache endpoints.

    Every JSON call goes through the shared :class:`RequestCache`; failed
    calls are not cached.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_path: str = "",
        request_cache: Optional[RequestCache] = None,
    ) -> None:
        self._http = http
        self.base_path = base_path.rstrip("/")
        self.request_cache = request_cache if request_cache is not None else RequestCache()

    def endpoint(self, name: str) -> str:
        return f"{self.base_path}/{name.lstrip('/')}"

    def converted_image_url(self, source_path: str) -> str:
        return f"{self.endpoint('convert-image')}?{urlencode({'src': source_path})}"

    async def readme(self, repo_url: str) -> str:
        result = await self._json("POST", "readme-cache", {"repo_url": repo_url})
        return result["content"]

    async def work_description(self, repo_url: Optional[str], description_path: str) -> str:
        """README HTML for a work item, then its static description, then a notice."""

        if repo_url:
            try:
                return await self.readme(repo_url)
            except (FolioError, httpx.HTTPError) as exc:
                log.warning("README unavailable for %s, using %s: %s", repo_url, description_path, exc)
        try:
            response = await self._http.get(self.endpoint(description_path))
            response.raise_for_status()
            return response.text
        except httpx.HTTPError as exc:
            log.warning("Static description %s unavailable: %s", description_path, exc)
            return README_UNAVAILABLE

    async def profile(self) -> Optional[Dict[str, Any]]:
        """Return ``{"user": ..., "repos": ...}`` or ``None`` when the widget should hide."""

        try:
            result = await self._json("POST", "profile-cache", {"type": "all"})
        except (FolioError, httpx.HTTPError) as exc:
            log.warning("Profile data unavailable: %s", exc)
            return None
        return {"user": result["user"]["data"], "repos": result["repos"]["data"]}

    async def gallery_page(self, page: int = 1) -> Dict[str, Any]:
        return await self._json("GET", f"list-images?{urlencode({'page': page})}", require_success=False)

    async def _json(self, method: str, path: str, body: Any = None, *, require_success: bool = True) -> Any:
        url = self.endpoint(path)

        async def load() -> Any:
            response = await self._http.request(method, url, json=body)
            response.raise_for_status()
            try:
                payload = response.json()
            except ValueError as exc:
                raise DecodeError(f"Invalid JSON from {url}: {exc}") from exc
            if require_success and not payload.get("success"):
                raise FolioError(payload.get("error") or f"{url} reported failure")
            return payload

        return await self.request_cache.fetch_cached(RequestCache.fingerprint(url, body), load)
