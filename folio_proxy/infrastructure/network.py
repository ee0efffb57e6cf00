from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple

import httpx
import requests

from ..config import SETTINGS, Settings
from ..errors import (
    DecodeError,
    NotFoundError,
    RateLimitedError,
    TransportError,
    UpstreamError,
)


log = logging.getLogger(__name__)

SessionFactory = Callable[[], requests.Session]
ClientFactory = Callable[[], httpx.Client]

DEFAULT_TIMEOUT = 30.0
RATE_LIMIT_STATUSES = frozenset({403, 429})


class Transport(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    DISABLED = "disabled"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"


# Primary outcomes that hand the request over to the secondary transport.
FALLBACK_KINDS = frozenset({ErrorKind.TRANSPORT, ErrorKind.DISABLED, ErrorKind.RATE_LIMITED})


@dataclass(frozen=True)
class FetchRequest:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def get(cls, url: str, *, headers: Optional[Mapping[str, str]] = None, timeout: float = DEFAULT_TIMEOUT) -> "FetchRequest":
        return cls("GET", url, dict(headers or {}), None, timeout)

    @classmethod
    def post_json(
        cls,
        url: str,
        payload: Any,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "FetchRequest":
        merged = {"Content-Type": "application/json", **dict(headers or {})}
        body = json.dumps(payload).encode("utf-8")
        return cls("POST", url, merged, body, timeout)


@dataclass(frozen=True)
class FetchAttemptResult:
    succeeded: bool
    transport_used: Transport
    http_status: Optional[int] = None
    body: Optional[bytes] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    def raise_for_failure(self) -> None:
        if self.succeeded:
            return
        status = self.http_status or 0
        if self.error_kind is ErrorKind.NOT_FOUND:
            raise NotFoundError(status)
        if self.error_kind is ErrorKind.RATE_LIMITED:
            raise RateLimitedError(status)
        if self.error_kind is ErrorKind.UPSTREAM:
            raise UpstreamError(status)
        raise TransportError(self.error or "All transports failed")

    def json(self) -> Any:
        self.raise_for_failure()
        try:
            return json.loads((self.body or b"").decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecodeError(f"Invalid JSON from upstream: {exc}") from exc


def classify_status(status: int) -> Optional[ErrorKind]:
    if 200 <= status < 300:
        return None
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status in RATE_LIMIT_STATUSES:
        return ErrorKind.RATE_LIMITED
    return ErrorKind.UPSTREAM


class RequestsTransport:
    """Transport backed by a ``requests.Session``."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        enabled: bool = True,
        user_agent: str = SETTINGS.user_agent,
    ) -> None:
        self.enabled = enabled
        self._session_factory = session_factory or requests.Session
        self._user_agent = user_agent
        self._session: requests.Session | None = None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            session = self._session_factory()
            session.headers.update({"User-Agent": self._user_agent})
            self._session = session
        return self._session

    def send(self, request: FetchRequest) -> Tuple[int, bytes]:
        try:
            response = self._get_session().request(
                request.method,
                request.url,
                headers=dict(request.headers),
                data=request.body,
                timeout=request.timeout,
            )
            return response.status_code, response.content
        except requests.RequestException as exc:
            raise TransportError(f"requests transport failed: {exc}") from exc


class HttpxTransport:
    """Transport backed by an ``httpx.Client``."""

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        *,
        enabled: bool = True,
        user_agent: str = SETTINGS.user_agent,
    ) -> None:
        self.enabled = enabled
        self._client_factory = client_factory or (lambda: httpx.Client(follow_redirects=True))
        self._user_agent = user_agent
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            client = self._client_factory()
            client.headers["User-Agent"] = self._user_agent
            self._client = client
        return self._client

    def send(self, request: FetchRequest) -> Tuple[int, bytes]:
        try:
            response = self._get_client().request(
                request.method,
                request.url,
                headers=dict(request.headers),
                content=request.body,
                timeout=request.timeout,
            )
            return response.status_code, response.content
        except httpx.HTTPError as exc:
            raise TransportError(f"httpx transport failed: {exc}") from exc


class DualTransportFetcher:
    """Send a request on the primary transport, falling back once to the secondary.

    Only connection failures, timeouts, a disabled primary or a rate-limit
    status move the request to the secondary transport. Any other status is
    returned classified so the caller can decide what to do with it.
    """

    def __init__(self, primary, secondary) -> None:
        self._transports = ((Transport.PRIMARY, primary), (Transport.SECONDARY, secondary))

    @classmethod
    def from_settings(cls, settings: Settings = SETTINGS) -> "DualTransportFetcher":
        return cls(
            RequestsTransport(enabled=settings.primary_transport, user_agent=settings.user_agent),
            HttpxTransport(user_agent=settings.user_agent),
        )

    def attempts(self, request: FetchRequest) -> List[FetchAttemptResult]:
        results: List[FetchAttemptResult] = []
        for role, transport in self._transports:
            result = self._attempt(role, transport, request)
            results.append(result)
            if result.succeeded or result.error_kind not in FALLBACK_KINDS:
                break
            log.warning(
                "%s transport failed for %s %s (%s), trying next",
                role.value,
                request.method,
                request.url,
                result.error or result.error_kind.value,
            )
        return results

    def fetch(self, request: FetchRequest) -> FetchAttemptResult:
        return self.attempts(request)[-1]

    def fetch_json(self, request: FetchRequest) -> Any:
        return self.fetch(request).json()

    @staticmethod
    def _attempt(role: Transport, transport, request: FetchRequest) -> FetchAttemptResult:
        if not getattr(transport, "enabled", True):
            return FetchAttemptResult(False, role, error_kind=ErrorKind.DISABLED, error=f"{role.value} transport disabled")
        try:
            status, body = transport.send(request)
        except TransportError as exc:
            return FetchAttemptResult(False, role, error_kind=ErrorKind.TRANSPORT, error=str(exc))

        kind = classify_status(status)
        if kind is None:
            return FetchAttemptResult(True, role, http_status=status, body=body)
        return FetchAttemptResult(
            False,
            role,
            http_status=status,
            error_kind=kind,
            error=f"HTTP {status} from {request.url}",
        )
