"""Metadata enrichment for classified tasks.

The Enricher issues provider calls one at a time. Pacing is delegated
to a limiter object so the fixed pause can be swapped for another
policy without touching the coordinator.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Protocol

from boardintake.intake.detection import count_tracked_seasons
from boardintake.intake.models import (
    CachedEnrichment,
    ContentKind,
    ContentMetadata,
    Task,
)

logger = logging.getLogger(__name__)

_TRAILING_YEAR_RE = re.compile(r"\s*\(\d{4}[^)]*\)\s*$")
_YEAR_RE = re.compile(r"\((\d{4})")

SEASONAL_KINDS = frozenset({ContentKind.TV_SERIES, ContentKind.ANIME})
ALWAYS_ELIGIBLE_KINDS = frozenset({ContentKind.MOVIE, ContentKind.BOOK, ContentKind.GAME})


def clean_title(title: str) -> str:
    """Drop a trailing parenthetical year or year range.

    ``"Dark (2017-2020)"`` and ``"Show (2019– )"`` both become their bare
    name.
    """
    return _TRAILING_YEAR_RE.sub("", title).strip()


def extract_year(title: str) -> str | None:
    """First four-digit year opening a parenthesis in *title*, if any."""
    match = _YEAR_RE.search(title)
    return match.group(1) if match else None


def is_eligible(task: Task, threshold: int) -> bool:
    """Whether *task* should be sent to the metadata provider.

    The task must be classified with a known kind at or above
    *threshold*. Seasonal kinds also need at least one season marker in
    their checklists; movies, books and games need nothing more. Other
    kinds are never enriched.
    """
    kind = task.content_type
    if kind is None or kind == ContentKind.UNKNOWN:
        return False
    if (task.content_type_confidence or 0) < threshold:
        return False
    if kind in SEASONAL_KINDS:
        return count_tracked_seasons(task.checklists) > 0
    return kind in ALWAYS_ELIGIBLE_KINDS


class MetadataProvider(Protocol):
    """External metadata lookup.

    Returns ``None`` when nothing matches; raises on transport or decode
    failures.
    """

    async def fetch(
        self, title: str, kind: ContentKind, year: str | None = None
    ) -> ContentMetadata | None: ...


class Limiter(Protocol):
    async def wait(self) -> None: ...

    def reset(self) -> None: ...


class FixedDelayLimiter:
    """Sleeps a fixed interval before every call except the first."""

    def __init__(self, delay: float = 0.2) -> None:
        self.delay = delay
        self._calls = 0

    async def wait(self) -> None:
        if self._calls and self.delay > 0:
            await asyncio.sleep(self.delay)
        self._calls += 1

    def reset(self) -> None:
        self._calls = 0


class Enricher:
    """Fetches metadata for tasks, strictly one request at a time.

    Args:
        provider: The metadata source.
        limiter: Pacing policy applied before each fetch. Defaults to a
            :class:`FixedDelayLimiter` with a 200 ms pause.
    """

    def __init__(self, provider: MetadataProvider, limiter: Limiter | None = None) -> None:
        self.provider = provider
        self.limiter = limiter or FixedDelayLimiter()
        self._lock = asyncio.Lock()

    def reset(self) -> None:
        """Start a new batch; the next fetch is not delayed."""
        self.limiter.reset()

    async def enrich(
        self, title: str, kind: ContentKind, year: str | None = None
    ) -> ContentMetadata | None:
        """Look up *title*. Cleans the title and derives the year hint."""
        query = clean_title(title) or title
        hint = year or extract_year(title)
        async with self._lock:
            await self.limiter.wait()
            logger.debug("Fetching %s metadata for %r (year=%s)", kind, query, hint)
            return await self.provider.fetch(query, kind, hint)

    async def enrich_task(self, task: Task) -> bool:
        """Enrich one task in place.

        Returns ``True`` when metadata was cached on the task. Provider
        failures are logged and leave the task untouched.
        """
        if task.content_type is None:
            return False
        try:
            metadata = await self.enrich(task.text, task.content_type)
        except Exception:
            logger.warning("Enrichment failed for %r", task.text, exc_info=True)
            return False

        if metadata is None:
            logger.info("No metadata found for %r", task.text)
            return False

        task.cached_enrichment = CachedEnrichment(data=metadata)
        return True
