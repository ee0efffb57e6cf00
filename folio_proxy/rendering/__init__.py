"""Markdown rendering with a remote-first fallback chain."""

from .chain import ContentRenderFallbackChain, LocalRenderer, RemoteRenderer, RenderContext, RenderOutcome
from .markdown import markdown_to_html

__all__ = [
    "ContentRenderFallbackChain",
    "LocalRenderer",
    "RemoteRenderer",
    "RenderContext",
    "RenderOutcome",
    "markdown_to_html",
]
