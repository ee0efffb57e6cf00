"""Best-effort markdown to HTML conversion used when the remote renderer is down.

Covers headings (levels 1 to 3), bold and italic emphasis, inline links and
images, fenced and inline code, unordered list items and paragraph / line
break normalization. Anything else passes through as text.
"""

from __future__ import annotations

import re
from html import escape
from typing import Callable, List


_FENCE_RE = re.compile(r"^[ \t]*```[^\n`]*\n(.*?)^[ \t]*```[ \t]*$", re.MULTILINE | re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_HEADING_RE = re.compile(r"^(#{1,3})\s+(.+?)(?:\s+#+)?\s*$")
_LIST_ITEM_RE = re.compile(r"^\s*[*-]\s+(.*)$")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*|__(.+?)__")
_ITALIC_RE = re.compile(r"(?<![*\w])\*(?![\s*])(.+?)(?<![\s*])\*(?![*\w])|(?<!\w)_(?![\s_])(.+?)(?<![\s_])_(?!\w)")

_BLOCK_TOKEN = "\x01{}\x01"
_INLINE_TOKEN = "\x02{}\x02"
_BLOCK_TOKEN_RE = re.compile(r"\x01(\d+)\x01")
_ANY_TOKEN_RE = re.compile(r"[\x01\x02](\d+)[\x01\x02]")
_TOKEN_MARKERS = {0x01: None, 0x02: None}


class _Stash:
    def __init__(self) -> None:
        self._items: List[str] = []

    def keep(self, html: str, template: str = _INLINE_TOKEN) -> str:
        self._items.append(html)
        return template.format(len(self._items) - 1)

    def restore(self, text: str) -> str:
        # An item only ever refers to items stashed before it.
        resolved: List[str] = []
        for item in self._items:
            resolved.append(_ANY_TOKEN_RE.sub(lambda match: _lookup(resolved, match), item))
        return _ANY_TOKEN_RE.sub(lambda match: _lookup(resolved, match), text)


def _lookup(resolved: List[str], match: "re.Match[str]") -> str:
    index = int(match.group(1))
    return resolved[index] if index < len(resolved) else ""


def _inline(text: str, stash: _Stash) -> str:
    text = _IMAGE_RE.sub(
        lambda m: stash.keep(
            f'<img src="{escape(m.group(2))}" alt="{escape(m.group(1))}" style="max-width: 100%; height: auto;">'
        ),
        text,
    )
    text = _LINK_RE.sub(
        lambda m: stash.keep(f'<a href="{escape(m.group(2))}" target="_blank">{_emphasis(m.group(1))}</a>'),
        text,
    )
    return _emphasis(text)


def _emphasis(text: str) -> str:
    text = _BOLD_RE.sub(lambda m: f"<strong>{m.group(1) or m.group(2)}</strong>", text)
    return _ITALIC_RE.sub(lambda m: f"<em>{m.group(1) or m.group(2)}</em>", text)


def _code_block(match: "re.Match[str]") -> str:
    body = match.group(1).rstrip("\n")
    return f"<pre><code>{escape(body)}</code></pre>"


def markdown_to_html(markdown: str) -> str:
    text = markdown.replace("\r\n", "\n").replace("\r", "\n")
    text = text.translate(_TOKEN_MARKERS)
    stash = _Stash()

    text = _FENCE_RE.sub(lambda m: "\n" + stash.keep(_code_block(m), _BLOCK_TOKEN) + "\n", text)
    text = _INLINE_CODE_RE.sub(lambda m: stash.keep(f"<code>{escape(m.group(1))}</code>"), text)

    blocks: List[str] = []
    paragraph: List[str] = []
    items: List[str] = []

    def flush(target: List[str], render: Callable[[List[str]], str]) -> None:
        if target:
            blocks.append(render(target))
            target.clear()

    def flush_all() -> None:
        flush(paragraph, lambda lines: "<p>" + "<br>".join(lines) + "</p>")
        flush(items, lambda lis: "<ul>" + "".join(lis) + "</ul>")

    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped:
            flush_all()
            continue
        if _BLOCK_TOKEN_RE.fullmatch(stripped):
            flush_all()
            blocks.append(stripped)
            continue
        heading = _HEADING_RE.match(stripped)
        if heading:
            flush_all()
            level = len(heading.group(1))
            blocks.append(f"<h{level}>{_inline(heading.group(2), stash)}</h{level}>")
            continue
        item = _LIST_ITEM_RE.match(line)
        if item:
            flush(paragraph, lambda lines: "<p>" + "<br>".join(lines) + "</p>")
            items.append(f"<li>{_inline(item.group(1), stash)}</li>")
            continue
        flush(items, lambda lis: "<ul>" + "".join(lis) + "</ul>")
        paragraph.append(_inline(stripped, stash))
    flush_all()

    return stash.restore("\n".join(blocks))
