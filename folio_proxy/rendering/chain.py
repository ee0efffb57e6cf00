from __future__ import annotations

import logging
from dataclasses import dataclass
from html import escape
from typing import Optional, Sequence, Union

from ..config import SETTINGS, Settings
from ..errors import RenderError
from ..infrastructure.network import DualTransportFetcher, FetchAttemptResult, FetchRequest
from .markdown import markdown_to_html


log = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github.v3+json"


@dataclass(frozen=True)
class RenderContext:
    owner: str
    repo: str
    mode: str = "gfm"

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class RenderOutcome:
    succeeded: bool
    renderer: str
    html: Optional[str] = None
    error: Optional[str] = None


class RemoteRenderer:
    """Render through a GitHub-compatible ``POST /markdown`` endpoint."""

    name = "remote"

    def __init__(self, fetcher: DualTransportFetcher, endpoint: str, timeout: float) -> None:
        self._fetcher = fetcher
        self._endpoint = endpoint
        self._timeout = timeout

    def render(self, markdown: str, context: RenderContext) -> RenderOutcome:
        request = FetchRequest.post_json(
            self._endpoint,
            {"text": markdown, "mode": context.mode, "context": context.repository},
            headers={"Accept": GITHUB_ACCEPT},
            timeout=self._timeout,
        )
        try:
            html = self._extract_html(self._fetcher.fetch(request))
        except RenderError as exc:
            return RenderOutcome(False, self.name, error=str(exc))
        return RenderOutcome(True, self.name, html=html)

    @staticmethod
    def _extract_html(result: FetchAttemptResult) -> str:
        if not result.succeeded:
            raise RenderError(result.error or "remote renderer failed")
        try:
            html = (result.body or b"").decode("utf-8")
        except UnicodeDecodeError as exc:
            raise RenderError(f"remote renderer returned undecodable output: {exc}") from exc
        if not html.strip():
            raise RenderError("remote renderer returned an empty body")
        return html


class LocalRenderer:
    name = "local"

    def render(self, markdown: str, context: RenderContext) -> RenderOutcome:
        return RenderOutcome(True, self.name, html=markdown_to_html(markdown))


class ContentRenderFallbackChain:
    """Try each renderer in order and return the first successful output.

    The chain never raises; when every renderer fails the local converter's
    output is returned.
    """

    def __init__(self, renderers: Sequence) -> None:
        self._renderers = tuple(renderers)

    @classmethod
    def from_settings(cls, fetcher: DualTransportFetcher, settings: Settings = SETTINGS) -> "ContentRenderFallbackChain":
        remote = RemoteRenderer(fetcher, f"{settings.github_api}/markdown", settings.timeout)
        return cls([remote, LocalRenderer()])

    def resolve(self, markdown: Union[str, bytes], context: RenderContext) -> RenderOutcome:
        if isinstance(markdown, bytes):
            markdown = markdown.decode("utf-8", errors="replace")
        for renderer in self._renderers:
            try:
                outcome = renderer.render(markdown, context)
            except Exception as exc:
                log.warning("Renderer %s raised for %s", renderer.name, context.repository, exc_info=True)
                outcome = RenderOutcome(False, renderer.name, error=str(exc))
            if outcome.succeeded and outcome.html is not None:
                return outcome
            log.warning("Renderer %s failed for %s: %s", outcome.renderer, context.repository, outcome.error)
        try:
            html = markdown_to_html(markdown)
        except Exception:
            log.exception("Local converter failed for %s, serving escaped text", context.repository)
            html = f"<p>{escape(markdown)}</p>"
        return RenderOutcome(True, LocalRenderer.name, html=html)

    def render(self, markdown: Union[str, bytes], context: RenderContext) -> str:
        return self.resolve(markdown, context).html or ""
