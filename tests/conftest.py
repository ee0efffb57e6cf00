from __future__ import annotations

import json
import threading
from typing import Callable, List, Tuple

import pytest

from folio_proxy.errors import TransportError
from folio_proxy.infrastructure.cache import DiskCacheStore
from folio_proxy.infrastructure.network import DualTransportFetcher, FetchRequest


Handler = Callable[[FetchRequest], Tuple[int, bytes]]


class FakeTransport:
    """Transport double that answers through ``handler`` and records requests."""

    def __init__(self, handler: Handler, enabled: bool = True) -> None:
        self.enabled = enabled
        self._handler = handler
        self._lock = threading.Lock()
        self.requests: List[FetchRequest] = []

    def send(self, request: FetchRequest) -> Tuple[int, bytes]:
        with self._lock:
            self.requests.append(request)
        return self._handler(request)


def failing(request: FetchRequest) -> Tuple[int, bytes]:
    raise TransportError(f"connection refused: {request.url}")


def respond(status: int, payload=None) -> Handler:
    if isinstance(payload, bytes):
        body = payload
    elif isinstance(payload, str):
        body = payload.encode("utf-8")
    else:
        body = json.dumps(payload).encode("utf-8")
    return lambda request: (status, body)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(tmp_path, clock) -> DiskCacheStore:
    return DiskCacheStore(tmp_path / "cache", default_ttl=3600, clock=clock)


def make_fetcher(primary: Handler, secondary: Handler = failing) -> Tuple[DualTransportFetcher, FakeTransport, FakeTransport]:
    first, second = FakeTransport(primary), FakeTransport(secondary)
    return DualTransportFetcher(first, second), first, second
