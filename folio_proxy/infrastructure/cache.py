from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence, Union

from ..errors import CacheWriteError


log = logging.getLogger(__name__)

CacheKey = Union[str, Sequence[str]]
Clock = Callable[[], float]

_NAMESPACE_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    stored_at: float
    ttl_seconds: int

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl_seconds


def normalize_key(key: CacheKey) -> str:
    """Collapse a key (or its components) into one canonical string.

    Components are stripped and lower-cased so that ``("Acme", " Widget")``
    and ``("acme", "widget")`` address the same entry.
    """

    parts = [key] if isinstance(key, str) else list(key)
    if not parts:
        raise ValueError("Cache key must have at least one component")
    return "/".join(" ".join(str(part).split()).lower() for part in parts)


class DiskCacheStore:
    """File-per-entry JSON cache with per-entry TTL.

    Entry files are named ``<namespace>_<sha256>.json`` where the namespace is
    the sanitized first key component, so distinct keys never share a file.
    """

    def __init__(
        self,
        root: Union[str, Path],
        default_ttl: int = 24 * 3600,
        clock: Clock = time.time,
    ) -> None:
        self.root = Path(root)
        self.default_ttl = default_ttl
        self._clock = clock

    def path_for(self, key: CacheKey) -> Path:
        canonical = normalize_key(key)
        namespace = _NAMESPACE_RE.sub("-", canonical.split("/", 1)[0]).strip("-") or "entry"
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return self.root / f"{namespace}_{digest}.json"

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("Cache read failed for %s", path, exc_info=True)
            return None

        entry = self._parse(raw)
        if entry is None or entry.key != normalize_key(key):
            log.warning("Discarding unreadable cache entry %s", path)
            self._unlink(path)
            return None

        if not entry.is_valid(self._clock()):
            log.debug("Cache entry expired: %s", entry.key)
            self._unlink(path)
            return None
        return entry

    def put(self, key: CacheKey, payload: Any, ttl_seconds: Optional[int] = None) -> bool:
        try:
            self._write(key, payload, self.default_ttl if ttl_seconds is None else ttl_seconds)
        except CacheWriteError as exc:
            log.warning("%s", exc)
            return False
        return True

    def invalidate(self, key: CacheKey) -> bool:
        return self._unlink(self.path_for(key))

    def sweep(self, max_age_seconds: float) -> int:
        now = self._clock()
        removed = 0
        for path in self._entry_files():
            entry = self._read_quietly(path)
            stored_at = entry.stored_at if entry else self._mtime(path)
            if stored_at is not None and now - stored_at > max_age_seconds:
                if self._unlink(path):
                    removed += 1
        if removed:
            log.info("Swept %d cache entries from %s", removed, self.root)
        return removed

    def clear(self) -> int:
        return sum(1 for path in self._entry_files() if self._unlink(path))

    def _write(self, key: CacheKey, payload: Any, ttl_seconds: int) -> None:
        path = self.path_for(key)
        record = {
            "key": normalize_key(key),
            "stored_at": self._clock(),
            "ttl_seconds": int(ttl_seconds),
            "payload": payload,
        }
        tmp_name: Optional[str] = None
        try:
            data = json.dumps(record, indent=2)
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".part", dir=str(self.root))
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as exc:
            raise CacheWriteError(f"Cache write failed for {path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                self._unlink(Path(tmp_name))

    def _parse(self, raw: str) -> Optional[CacheEntry]:
        try:
            record = json.loads(raw)
            return CacheEntry(
                key=str(record["key"]),
                payload=record["payload"],
                stored_at=float(record["stored_at"]),
                ttl_seconds=int(record["ttl_seconds"]),
            )
        except (ValueError, KeyError, TypeError):
            return None

    def _read_quietly(self, path: Path) -> Optional[CacheEntry]:
        try:
            return self._parse(path.read_text(encoding="utf-8"))
        except OSError:
            return None

    def _entry_files(self) -> Iterator[Path]:
        if not self.root.is_dir():
            return iter(())
        return (path for path in sorted(self.root.glob("*.json")) if path.is_file())

    @staticmethod
    def _mtime(path: Path) -> Optional[float]:
        try:
            return path.stat().st_mtime
        except OSError:
            return None

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError:
            log.warning("Could not remove cache file %s", path, exc_info=True)
            return False
        return True
