"""Credential-free metadata providers.

Jikan (MyAnimeList mirror) covers anime, Open Library covers books.
Both are plain JSON-over-HTTPS APIs fetched with ``urllib``; the
blocking request runs on a worker thread so the coordinator's event
loop is never blocked.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from boardintake.errors import EnrichmentError
from boardintake.intake.config import ProviderConfig
from boardintake.intake.enrichment import MetadataProvider
from boardintake.intake.models import (
    ContentKind,
    ContentMetadata,
    MetadataLink,
    RelatedContent,
    RelationType,
    ShowStatus,
)

logger = logging.getLogger(__name__)

_SEARCH_LIMIT = 5
_MAX_RELATED = 5


def fetch_json(url: str, config: ProviderConfig) -> Any:
    """GET *url* and decode its JSON body.

    Raises:
        EnrichmentError: On any transport, HTTP status or decode failure.
    """
    req = urllib.request.Request(
        url, headers={"User-Agent": config.user_agent, "Accept": "application/json"}
    )
    try:
        with urllib.request.urlopen(req, timeout=config.timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        raise EnrichmentError(f"HTTP {exc.code} from {url}") from exc
    except (urllib.error.URLError, TimeoutError) as exc:
        raise EnrichmentError(f"Request to {url} failed: {exc}") from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise EnrichmentError(f"Invalid JSON from {url}") from exc


def _pick(results: list[dict], year: str | None, year_of) -> dict | None:
    """First result whose year matches the hint, else the first result."""
    if not results:
        return None
    if year:
        for item in results:
            if str(year_of(item) or "") == year:
                return item
    return results[0]


# ---------------------------------------------------------------------------
# Jikan
# ---------------------------------------------------------------------------

_JIKAN_STATUS = {
    "finished airing": ShowStatus.ENDED,
    "currently airing": ShowStatus.ONGOING,
    "not yet aired": ShowStatus.UPCOMING,
}

_JIKAN_RELATIONS = {
    "sequel": RelationType.SEQUEL,
    "prequel": RelationType.PREQUEL,
    "spin-off": RelationType.SPINOFF,
    "side story": RelationType.SPINOFF,
    "parent story": RelationType.SERIES,
    "alternative version": RelationType.SERIES,
}


def _jikan_year(anime: dict) -> str | None:
    if anime.get("year"):
        return str(anime["year"])
    aired_from = (anime.get("aired") or {}).get("from") or ""
    return aired_from[:4] or None


class JikanProvider:
    """Anime metadata from the Jikan v4 API."""

    source = "jikan"

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self.config = config or ProviderConfig()

    async def fetch(
        self, title: str, kind: ContentKind, year: str | None = None
    ) -> ContentMetadata | None:
        return await asyncio.to_thread(self.lookup, title, year)

    def lookup(self, title: str, year: str | None = None) -> ContentMetadata | None:
        base = self.config.jikan_base_url.rstrip("/")
        query = urllib.parse.urlencode({"q": title, "limit": _SEARCH_LIMIT, "sfw": "true"})
        data = fetch_json(f"{base}/anime?{query}", self.config)
        anime = _pick(data.get("data") or [], year, _jikan_year)
        if anime is None:
            return None

        related: list[RelatedContent] = []
        try:
            related = self._relations(anime["mal_id"])
        except EnrichmentError:
            logger.warning("Could not load relations for %r", title, exc_info=True)

        aired = anime.get("aired") or {}
        start = (aired.get("from") or "")[:4]
        end = (aired.get("to") or "")[:4]
        year_range = f"{start} - {end}" if start and end and end != start else start or None

        display = anime.get("title_english") or anime.get("title") or title
        images = (anime.get("images") or {}).get("jpg") or {}
        url = anime.get("url") or ""
        return ContentMetadata(
            kind=ContentKind.ANIME,
            title=display,
            year=_jikan_year(anime),
            year_range=year_range,
            episodes=anime.get("episodes"),
            status=_JIKAN_STATUS.get((anime.get("status") or "").lower()),
            genres=[g["name"] for g in anime.get("genres") or [] if g.get("name")],
            related=related,
            links=[MetadataLink(name="MyAnimeList", url=url)] if url else [],
            poster=images.get("large_image_url") or images.get("image_url"),
            source=self.source,
        )

    def _relations(self, mal_id: int) -> list[RelatedContent]:
        base = self.config.jikan_base_url.rstrip("/")
        data = fetch_json(f"{base}/anime/{mal_id}/relations", self.config)
        related: list[RelatedContent] = []
        for relation in data.get("data") or []:
            rel_type = _JIKAN_RELATIONS.get((relation.get("relation") or "").lower())
            if rel_type is None:
                continue
            for entry in relation.get("entry") or []:
                if entry.get("type") != "anime":
                    continue
                related.append(
                    RelatedContent(
                        type=rel_type,
                        title=entry.get("name", ""),
                        id=str(entry.get("mal_id", "")) or None,
                        url=entry.get("url"),
                    )
                )
        return related[:_MAX_RELATED]


# ---------------------------------------------------------------------------
# Open Library
# ---------------------------------------------------------------------------

_SEARCH_FIELDS = "key,title,author_name,first_publish_year,cover_i,subject"


class OpenLibraryProvider:
    """Book metadata from the Open Library search API."""

    source = "openlibrary"

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self.config = config or ProviderConfig()

    async def fetch(
        self, title: str, kind: ContentKind, year: str | None = None
    ) -> ContentMetadata | None:
        return await asyncio.to_thread(self.lookup, title, year)

    def lookup(self, title: str, year: str | None = None) -> ContentMetadata | None:
        base = self.config.openlibrary_base_url.rstrip("/")
        query = urllib.parse.urlencode(
            {"q": title, "limit": _SEARCH_LIMIT, "fields": _SEARCH_FIELDS}
        )
        data = fetch_json(f"{base}/search.json?{query}", self.config)
        doc = _pick(data.get("docs") or [], year, lambda d: d.get("first_publish_year"))
        if doc is None:
            return None

        author = (doc.get("author_name") or [None])[0]
        related: list[RelatedContent] = []
        if author:
            try:
                related = self._by_author(author, doc.get("title", ""))
            except EnrichmentError:
                logger.warning("Could not load other books by %s", author, exc_info=True)

        cover = doc.get("cover_i")
        work_url = f"{base}{doc.get('key', '')}"
        return ContentMetadata(
            kind=ContentKind.BOOK,
            title=doc.get("title") or title,
            year=str(doc["first_publish_year"]) if doc.get("first_publish_year") else None,
            author=author,
            genres=[s.split(" -- ")[0] for s in (doc.get("subject") or [])[:5]],
            related=related,
            links=[MetadataLink(name="Open Library", url=work_url)],
            poster=f"https://covers.openlibrary.org/b/id/{cover}-L.jpg" if cover else None,
            source=self.source,
        )

    def _by_author(self, author: str, exclude_title: str) -> list[RelatedContent]:
        base = self.config.openlibrary_base_url.rstrip("/")
        query = urllib.parse.urlencode(
            {"author": author, "limit": _SEARCH_LIMIT, "fields": "key,title,first_publish_year"}
        )
        data = fetch_json(f"{base}/search.json?{query}", self.config)
        related = []
        for doc in data.get("docs") or []:
            if (doc.get("title") or "").lower() == exclude_title.lower():
                continue
            related.append(
                RelatedContent(
                    type=RelationType.BY_SAME_CREATOR,
                    title=doc.get("title", ""),
                    year=str(doc["first_publish_year"]) if doc.get("first_publish_year") else None,
                    url=f"{base}{doc.get('key', '')}",
                )
            )
        return related[: _MAX_RELATED - 1]


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class RoutingProvider:
    """Dispatches to a per-kind provider; kinds without one get ``None``."""

    def __init__(self, providers: dict[ContentKind, MetadataProvider]) -> None:
        self.providers = providers

    async def fetch(
        self, title: str, kind: ContentKind, year: str | None = None
    ) -> ContentMetadata | None:
        provider = self.providers.get(kind)
        if provider is None:
            logger.debug("No metadata provider for %s; skipping %r", kind, title)
            return None
        return await provider.fetch(title, kind, year)


def default_provider(config: ProviderConfig | None = None) -> RoutingProvider:
    config = config or ProviderConfig()
    return RoutingProvider(
        {
            ContentKind.ANIME: JikanProvider(config),
            ContentKind.BOOK: OpenLibraryProvider(config),
        }
    )
