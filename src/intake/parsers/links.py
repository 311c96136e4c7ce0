"""Hyperlink extraction from free-form card text."""

from __future__ import annotations

import re
from typing import NamedTuple
from urllib.parse import urlsplit

_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_BARE_URL_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9+.\-]*://[^\s\])<>]+")


class RawLink(NamedTuple):
    url: str
    text: str | None


def label_for_url(url: str) -> str:
    """Derive a display label from a URL's host, minus a leading ``www.``.

    Falls back to the raw URL when it has no parseable host.
    """
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return url
    if not host:
        return url
    return host.removeprefix("www.")


def extract_links(text: str | None) -> list[RawLink]:
    """Return the links in *text* in order of appearance.

    Markdown ``[label](url)`` links are found first; bare ``scheme://``
    URLs overlapping a markdown link are dropped, so the markdown label
    wins. Bare URLs get a host-derived label.

    Args:
        text: Any card text (name, description, comment, checklist item).

    Returns:
        ``(url, text)`` pairs sorted by their offset in *text*.
    """
    if not text:
        return []

    found: list[tuple[int, RawLink]] = []
    spans: list[tuple[int, int]] = []

    for match in _MARKDOWN_LINK_RE.finditer(text):
        spans.append(match.span())
        found.append((match.start(), RawLink(url=match.group(2), text=match.group(1))))

    for match in _BARE_URL_RE.finditer(text):
        start, end = match.span()
        if any(start < s_end and end > s_start for s_start, s_end in spans):
            continue
        url = match.group(0)
        found.append((start, RawLink(url=url, text=label_for_url(url))))

    found.sort(key=lambda pair: pair[0])
    return [link for _, link in found]
