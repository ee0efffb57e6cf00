from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional, Tuple

from ..config import SETTINGS, Settings
from ..errors import FolioError
from ..infrastructure.cache import DiskCacheStore
from ..infrastructure.network import DualTransportFetcher, FetchRequest
from ..rendering.chain import GITHUB_ACCEPT


log = logging.getLogger(__name__)

RESOURCE_PATHS = {
    "user": "users/{username}",
    "repos": "users/{username}/repos",
}


class ProfileCacheService:
    """Cache a GitHub user's profile and repository list as raw JSON."""

    def __init__(
        self,
        store: DiskCacheStore,
        fetcher: DualTransportFetcher,
        *,
        username: str = SETTINGS.github_user,
        api_base: str = SETTINGS.github_api,
        ttl_seconds: Optional[int] = None,
        timeout: float = SETTINGS.timeout,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self.username = username
        self._api_base = api_base.rstrip("/")
        self._ttl_seconds = store.default_ttl if ttl_seconds is None else ttl_seconds
        self._timeout = timeout
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings = SETTINGS,
        *,
        store: Optional[DiskCacheStore] = None,
        fetcher: Optional[DualTransportFetcher] = None,
    ) -> "ProfileCacheService":
        return cls(
            store or DiskCacheStore(settings.cache_dir, settings.cache_ttl_seconds),
            fetcher or DualTransportFetcher.from_settings(settings),
            username=settings.github_user,
            api_base=settings.github_api,
            ttl_seconds=settings.cache_ttl_seconds,
            timeout=settings.timeout,
        )

    def cache_key(self, resource: str) -> Tuple[str, str]:
        return (resource, self.username)

    def get_user_data(self) -> Dict[str, Any]:
        return self._get("user")

    def get_repos_data(self) -> Dict[str, Any]:
        return self._get("repos")

    def get_all_data(self) -> Dict[str, Any]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="profile") as pool:
            user_future = pool.submit(self.get_user_data)
            repos_future = pool.submit(self.get_repos_data)
            user, repos = user_future.result(), repos_future.result()
        return {"success": user["success"] and repos["success"], "user": user, "repos": repos}

    def clear_user_cache(self) -> bool:
        return self._clear("user")

    def clear_repos_cache(self) -> bool:
        return self._clear("repos")

    def clear_all_cache(self) -> bool:
        user = self.clear_user_cache()
        repos = self.clear_repos_cache()
        return user and repos

    def _clear(self, resource: str) -> bool:
        """False only when an entry exists and could not be removed."""
        key = self.cache_key(resource)
        if not self._store.path_for(key).exists():
            return True
        return self._store.invalidate(key)

    def _get(self, resource: str) -> Dict[str, Any]:
        key = self.cache_key(resource)
        entry = self._store.get(key)
        if entry is not None:
            return {"success": True, "data": entry.payload["data"], "source": "cache"}

        url = f"{self._api_base}/{RESOURCE_PATHS[resource].format(username=self.username)}"
        try:
            data = self._fetcher.fetch_json(
                FetchRequest.get(url, headers={"Accept": GITHUB_ACCEPT}, timeout=self._timeout)
            )
        except FolioError as exc:
            log.warning("Profile %s fetch failed for %s: %s", resource, self.username, exc)
            return {"success": False, "error": str(exc), "source": "error"}

        now = int(self._clock())
        self._store.put(
            key,
            {"data": data, "cached_at": now, "expires_at": now + self._ttl_seconds},
            self._ttl_seconds,
        )
        return {"success": True, "data": data, "source": "github_api"}
