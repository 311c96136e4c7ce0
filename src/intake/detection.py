"""New-content detection.

Reconciles what the user has tracked on a card (its season checklists)
with what a metadata provider reports, and derives a release status.
Each content kind has its own strategy; kinds without one never report
new content.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import date

from boardintake.intake.models import (
    Checklist,
    ContentKind,
    ContentMetadata,
    NewContentResult,
    RelationType,
    ShowStatus,
    UpcomingContent,
    UpcomingKind,
)

logger = logging.getLogger(__name__)

_SEASON_RE = re.compile(r"season\s*(\d+)", re.IGNORECASE)

UPCOMING_LABELS: dict[UpcomingKind, str] = {
    UpcomingKind.SEASON: "NEW SEASON",
    UpcomingKind.SEQUEL: "SEQUEL",
    UpcomingKind.BOOK: "NEW BOOK",
    UpcomingKind.DLC: "DLC",
    UpcomingKind.RELATED: "NEW RELEASE",
    UpcomingKind.EPISODE: "NEW EPISODE",
}


def label_for(kind: UpcomingKind | str) -> str:
    """Display badge for an upcoming-content kind."""
    try:
        return UPCOMING_LABELS[UpcomingKind(kind)]
    except ValueError:
        return "NEW"


def count_tracked_seasons(checklists: Iterable[Checklist]) -> int:
    """Return the highest season number referenced in season checklists.

    A checklist counts when its name contains "season" or any of its
    items matches ``season <n>``. Returns 0 when nothing matches.
    """
    highest = 0
    for checklist in checklists:
        matches = [_SEASON_RE.search(item.text) for item in checklist.items]
        if "season" not in checklist.name.lower() and not any(matches):
            continue
        for match in matches:
            if match:
                highest = max(highest, int(match.group(1)))
    return highest


def parse_release_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def is_upcoming(release_date: str | None, *, today: date | None = None) -> bool:
    """True when *release_date* (ISO date or datetime) is after today."""
    released = parse_release_date(release_date)
    return released is not None and released > (today or date.today())


def _year(value: str | None) -> int:
    try:
        return int((value or "0")[:4])
    except ValueError:
        return 0


def _year_date(year: str | None) -> str | None:
    return f"{year[:4]}-01-01" if year else None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

Strategy = Callable[[ContentMetadata, list[Checklist]], NewContentResult]


def _check_seasons(meta: ContentMetadata, checklists: list[Checklist]) -> NewContentResult:
    tracked = count_tracked_seasons(checklists)
    if tracked == 0:
        return NewContentResult(reason="No seasons tracked")

    api_seasons = meta.seasons or 0
    comparison = f"API: {api_seasons} seasons, Tracked: {tracked} seasons"
    released = api_seasons > tracked
    announced = meta.next_season is not None and meta.next_season.season_number > tracked

    if not (released or announced):
        return NewContentResult(reason="No new seasons", comparison=comparison)

    if announced:
        nxt = meta.next_season
        upcoming = UpcomingContent(
            kind=UpcomingKind.SEASON,
            title=f"Season {nxt.season_number}",
            release_date=nxt.air_date,
            description=nxt.episode_name,
            source=meta.source,
            season_number=nxt.season_number,
        )
        reason = "Upcoming season announced"
    else:
        upcoming = UpcomingContent(
            kind=UpcomingKind.SEASON,
            title=f"Season {tracked + 1}",
            source=meta.source,
            season_number=tracked + 1,
        )
        reason = "New season released"

    return NewContentResult(
        has_new_content=True,
        upcoming_content=upcoming,
        reason=reason,
        comparison=comparison,
    )


def _first_related(meta: ContentMetadata, *types: RelationType):
    return next((r for r in meta.related if r.type in types), None)


def tv_strategy(meta: ContentMetadata, checklists: list[Checklist]) -> NewContentResult:
    if meta.kind != ContentKind.TV_SERIES:
        return NewContentResult(reason="Metadata is not a TV series")
    return _check_seasons(meta, checklists)


def anime_strategy(meta: ContentMetadata, checklists: list[Checklist]) -> NewContentResult:
    if meta.kind not in (ContentKind.ANIME, ContentKind.TV_SERIES):
        return NewContentResult(reason="Metadata is not an anime")

    seasons = _check_seasons(meta, checklists)
    if seasons.has_new_content:
        return seasons

    sequel = _first_related(meta, RelationType.SEQUEL, RelationType.SERIES)
    if sequel is None:
        return NewContentResult(reason="No new seasons or sequels found")
    return NewContentResult(
        has_new_content=True,
        upcoming_content=UpcomingContent(
            kind=UpcomingKind.SEQUEL,
            title=sequel.title,
            release_date=_year_date(sequel.year),
            source=meta.source,
        ),
        reason="Sequel found",
        comparison=sequel.title,
    )


def movie_strategy(meta: ContentMetadata, checklists: list[Checklist]) -> NewContentResult:
    franchise = meta.franchise
    if meta.kind != ContentKind.MOVIE or franchise is None or not franchise.items:
        return NewContentResult(reason="Not part of a franchise")

    position = franchise.position or 0
    total = franchise.total or 0
    comparison = f"Position {position} of {total}"
    if position == 0 or position >= total:
        return NewContentResult(reason="Latest entry in franchise", comparison=comparison)

    current = _year(meta.year)
    later = next((item for item in franchise.items if _year(item.year) > current), None)
    if later is None:
        return NewContentResult(reason="No later entry in franchise", comparison=comparison)

    return NewContentResult(
        has_new_content=True,
        upcoming_content=UpcomingContent(
            kind=UpcomingKind.SEQUEL,
            title=later.title,
            release_date=_year_date(later.year),
            source=meta.source,
            series_position=position + 1,
        ),
        reason="Sequel in franchise",
        comparison=f"{later.title} ({later.year})",
    )


def book_strategy(meta: ContentMetadata, checklists: list[Checklist]) -> NewContentResult:
    if meta.kind != ContentKind.BOOK:
        return NewContentResult(reason="Metadata is not a book")

    series = meta.series
    if series and series.position and series.total and series.position < series.total:
        return NewContentResult(
            has_new_content=True,
            upcoming_content=UpcomingContent(
                kind=UpcomingKind.BOOK,
                title=f"Book {series.position + 1} in {series.name}",
                source=meta.source,
                series_position=series.position + 1,
            ),
            reason="More books in series",
            comparison=f'Position {series.position} of {series.total} in "{series.name}"',
        )

    sequel = _first_related(meta, RelationType.SEQUEL, RelationType.SERIES)
    if sequel is not None:
        return NewContentResult(
            has_new_content=True,
            upcoming_content=UpcomingContent(
                kind=UpcomingKind.BOOK,
                title=sequel.title,
                release_date=_year_date(sequel.year),
                source=meta.source,
            ),
            reason="Sequel found",
            comparison=sequel.title,
        )

    same_author = _first_related(meta, RelationType.BY_SAME_CREATOR)
    if same_author is not None and _year(same_author.year) > _year(meta.year):
        return NewContentResult(
            has_new_content=True,
            upcoming_content=UpcomingContent(
                kind=UpcomingKind.RELATED,
                title=same_author.title,
                description=f"New book by {meta.author}" if meta.author else None,
                release_date=_year_date(same_author.year),
                source=meta.source,
            ),
            reason="New book by same author",
            comparison=f"{same_author.title} ({same_author.year})",
        )

    return NewContentResult(reason="No new books found in series or by author")


def game_strategy(meta: ContentMetadata, checklists: list[Checklist]) -> NewContentResult:
    if meta.kind != ContentKind.GAME:
        return NewContentResult(reason="Metadata is not a game")

    game_year = _year(meta.year)

    sequel = _first_related(meta, RelationType.SEQUEL, RelationType.SERIES)
    if sequel is not None:
        sequel_year = _year(sequel.year)
        # Undated sequels count as announced.
        if sequel_year == 0 or sequel_year > game_year:
            return NewContentResult(
                has_new_content=True,
                upcoming_content=UpcomingContent(
                    kind=UpcomingKind.SEQUEL,
                    title=sequel.title,
                    release_date=_year_date(sequel.year),
                    source=meta.source,
                ),
                reason="Sequel found",
                comparison=f"{sequel.title} ({sequel.year or 'TBD'})",
            )

    dlc = _first_related(meta, RelationType.SPINOFF)
    if dlc is not None:
        dlc_year = _year(dlc.year)
        if dlc_year == 0 or dlc_year >= game_year:
            return NewContentResult(
                has_new_content=True,
                upcoming_content=UpcomingContent(
                    kind=UpcomingKind.DLC,
                    title=dlc.title,
                    release_date=_year_date(dlc.year),
                    source=meta.source,
                ),
                reason="DLC available",
                comparison=dlc.title,
            )

    return NewContentResult(reason="No new games or DLC found")


DEFAULT_STRATEGIES: dict[ContentKind, Strategy] = {
    ContentKind.TV_SERIES: tv_strategy,
    ContentKind.ANIME: anime_strategy,
    ContentKind.MOVIE: movie_strategy,
    ContentKind.BOOK: book_strategy,
    ContentKind.GAME: game_strategy,
}


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class NewContentDetector:
    """Routes a task's metadata to the strategy for its content kind.

    Args:
        strategies: Kind-to-strategy table; defaults to
            :data:`DEFAULT_STRATEGIES`.
        today: Fixed "current date" for release-date checks. ``None``
            means the real date at call time.
    """

    def __init__(
        self,
        strategies: dict[ContentKind, Strategy] | None = None,
        *,
        today: date | None = None,
    ) -> None:
        self.strategies = dict(DEFAULT_STRATEGIES if strategies is None else strategies)
        self.today = today

    def detect(
        self,
        title: str,
        kind: ContentKind,
        metadata: ContentMetadata,
        checklists: list[Checklist],
    ) -> NewContentResult:
        strategy = self.strategies.get(kind)
        if strategy is None:
            return NewContentResult(
                status=self._status(metadata, None), reason=f"No strategy for {kind}"
            )

        try:
            result = strategy(metadata, checklists)
        except Exception:
            logger.warning("New-content check failed for %r", title, exc_info=True)
            return NewContentResult(reason="Detection failed")

        result.status = self._status(metadata, result.upcoming_content)
        logger.debug(
            "New content for %r: %s (%s) %s",
            title,
            result.has_new_content,
            result.reason,
            result.comparison,
        )
        return result

    def _status(
        self, metadata: ContentMetadata, upcoming: UpcomingContent | None
    ) -> ShowStatus | None:
        """Metadata status, corrected by the next known release date."""
        release = upcoming.release_date if upcoming else None
        if release is None and metadata.next_season is not None:
            release = metadata.next_season.air_date

        if is_upcoming(release, today=self.today):
            return ShowStatus.UPCOMING
        if metadata.status == ShowStatus.UPCOMING and parse_release_date(release):
            return ShowStatus.ONGOING
        return metadata.status
