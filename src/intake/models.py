"""Pure data models for the import pipeline.

All Pydantic models and enums live here. No I/O, no business logic.
Parsers, classifiers and the coordinator import from this module; this
module only imports from stdlib and pydantic.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ContentKind(StrEnum):
    """Closed classification of a task's subject matter."""

    TV_SERIES = "tv_series"
    MOVIE = "movie"
    ANIME = "anime"
    BOOK = "book"
    GAME = "game"
    MUSIC = "music"
    UNKNOWN = "unknown"


class LensCategory(StrEnum):
    """Coarse grouping of content kinds."""

    ENTERTAINMENT = "entertainment"
    LEISURE = "leisure"
    UNKNOWN = "unknown"


class LinkSource(StrEnum):
    """Where on a card a link was found."""

    NAME = "name"
    DESCRIPTION = "description"
    ATTACHMENT = "attachment"
    COMMENT = "comment"
    CHECKLIST = "checklist"


class ShowStatus(StrEnum):
    ONGOING = "ongoing"
    ENDED = "ended"
    UPCOMING = "upcoming"


class UpcomingKind(StrEnum):
    """What kind of new installment was found."""

    SEASON = "season"
    SEQUEL = "sequel"
    BOOK = "book"
    DLC = "dlc"
    RELATED = "related"
    EPISODE = "episode"


class RelationType(StrEnum):
    SEQUEL = "sequel"
    PREQUEL = "prequel"
    SPINOFF = "spinoff"
    SERIES = "series"
    SIMILAR = "similar"
    BY_SAME_CREATOR = "by_same_creator"


class GoalType(StrEnum):
    MEDIA = "media"
    TRAVEL = "travel"
    LEARNING = "learning"
    FITNESS = "fitness"
    COOKING = "cooking"
    JOB = "job"


class BoardType(StrEnum):
    GENERAL = "general"
    MEDIA = "media"
    ANIME = "anime"
    MOVIES = "movies"
    TVSHOWS = "tvshows"
    BOOKS = "books"
    GAMES = "games"
    TRAVEL = "travel"
    LEARNING = "learning"
    FITNESS = "fitness"
    COOKING = "cooking"
    WORK = "work"


MEDIA_BOARD_TYPES: frozenset[BoardType] = frozenset(
    {
        BoardType.MEDIA,
        BoardType.ANIME,
        BoardType.MOVIES,
        BoardType.TVSHOWS,
        BoardType.BOOKS,
        BoardType.GAMES,
    }
)


class ImportPhase(StrEnum):
    """States of the import coordinator."""

    IDLE = "idle"
    PARSING = "parsing"
    DETECTING_TYPES = "detecting_types"
    ENRICHING = "enriching"
    FINALIZING = "finalizing"
    STAGED = "staged"
    ERROR = "error"


class EventSource(StrEnum):
    IMPORTED = "imported"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Task building blocks
# ---------------------------------------------------------------------------


class TaskLabel(BaseModel):
    name: str
    color: str = ""


class ChecklistItem(BaseModel):
    id: str
    text: str
    checked: bool = False


class Checklist(BaseModel):
    id: str
    name: str = ""
    items: list[ChecklistItem] = Field(default_factory=list)


class Attachment(BaseModel):
    id: str
    name: str = ""
    url: str = ""
    mime_type: str | None = None
    is_upload: bool = False


class Comment(BaseModel):
    id: str
    text: str = ""
    author: str = "Unknown"
    date: str = ""


class ExtractedLink(BaseModel):
    """A hyperlink found somewhere on a card.

    Unique by ``url`` within one task's link list; the first source that
    produced the URL wins.
    """

    url: str
    text: str | None = None
    source: LinkSource
    card_title: str = ""
    checklist_name: str | None = None


# ---------------------------------------------------------------------------
# Enrichment payload
# ---------------------------------------------------------------------------


class RelatedContent(BaseModel):
    type: RelationType
    title: str
    year: str | None = None
    id: str | None = None
    url: str | None = None


class NextSeason(BaseModel):
    season_number: int
    air_date: str | None = None
    episode_name: str | None = None


class FranchiseEntry(BaseModel):
    title: str
    year: str | None = None


class Franchise(BaseModel):
    name: str
    position: int | None = None
    total: int | None = None
    items: list[FranchiseEntry] = Field(default_factory=list)


class BookSeries(BaseModel):
    name: str
    position: int | None = None
    total: int | None = None


class MetadataLink(BaseModel):
    name: str
    url: str


class ContentMetadata(BaseModel):
    """Provider-neutral description of a show, film, book or game."""

    kind: ContentKind
    title: str
    year: str | None = None
    year_range: str | None = None
    seasons: int | None = None
    episodes: int | None = None
    status: ShowStatus | None = None
    next_season: NextSeason | None = None
    genres: list[str] = Field(default_factory=list)
    related: list[RelatedContent] = Field(default_factory=list)
    franchise: Franchise | None = None
    series: BookSeries | None = None
    author: str | None = None
    links: list[MetadataLink] = Field(default_factory=list)
    poster: str | None = None
    source: str = ""


class CachedEnrichment(BaseModel):
    data: ContentMetadata
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class UpcomingContent(BaseModel):
    """A new or announced installment the user has not tracked yet."""

    kind: UpcomingKind
    title: str
    release_date: str | None = None
    description: str | None = None
    source: str = ""
    season_number: int | None = None
    series_position: int | None = None


# ---------------------------------------------------------------------------
# Task  (canonical model)
# ---------------------------------------------------------------------------


class Task(BaseModel):
    """One normalized card.

    Created by the card transformer; the classification and enrichment
    fields are filled in place by the coordinator as the import runs.
    """

    id: str = Field(default_factory=lambda: f"task-{uuid.uuid4().hex[:12]}")
    text: str
    checked: bool = False
    category: str = "imported"
    description: str | None = None
    due_date: str | None = None
    start_date: str | None = None
    labels: list[TaskLabel] = Field(default_factory=list)
    checklists: list[Checklist] = Field(default_factory=list)
    checklist_total: int = 0
    checklist_checked: int = 0
    attachments: list[Attachment] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)
    cover_color: str | None = None
    cover_image: str | None = None
    cover_attachment_id: str | None = None
    position: float = 0
    links: list[ExtractedLink] = Field(default_factory=list)

    content_type: ContentKind | None = None
    content_type_confidence: int | None = None
    cached_enrichment: CachedEnrichment | None = None
    has_new_content: bool | None = None
    show_status: ShowStatus | None = None
    upcoming_content: UpcomingContent | None = None

    @property
    def link_urls(self) -> list[str]:
        return [link.url for link in self.links]

    @property
    def checklist_names(self) -> list[str]:
        return [cl.name for cl in self.checklists]


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------


class ContentClassification(BaseModel):
    """Output of the content classifier for one task."""

    kind: ContentKind = ContentKind.UNKNOWN
    confidence: int = 0
    category: LensCategory = LensCategory.UNKNOWN
    signals: list[str] = Field(default_factory=list)
    title: str = ""
    year: str | None = None
    year_range: str | None = None


class NewContentResult(BaseModel):
    """Output of the new-content detector for one task."""

    has_new_content: bool = False
    status: ShowStatus | None = None
    upcoming_content: UpcomingContent | None = None
    reason: str = ""
    comparison: str = ""


class ImportStats(BaseModel):
    """Counts used for the human-readable import summary."""

    total_lists: int = 0
    total_tasks: int = 0
    total_checklists: int = 0
    total_attachments: int = 0
    total_comments: int = 0
    total_links: int = 0

    def summary(self) -> str:
        parts = [
            f"{self.total_tasks} tasks",
            f"{self.total_lists} lists",
            f"{self.total_checklists} checklists",
            f"{self.total_attachments} attachments",
            f"{self.total_comments} comments",
            f"{self.total_links} links",
        ]
        return ", ".join(parts)


class ImportSource(BaseModel):
    kind: str = "trello"
    board_name: str = ""
    board_url: str = ""
    imported_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class StagedImportResult(BaseModel):
    """An assembled board held in memory until the caller commits it."""

    model_config = ConfigDict(frozen=True)

    goal_title: str
    goal_type: GoalType = GoalType.MEDIA
    board_type: BoardType = BoardType.GENERAL
    tasks: list[Task] = Field(default_factory=list)
    background_image: str | None = None
    source: ImportSource = Field(default_factory=ImportSource)
    stats: ImportStats = Field(default_factory=ImportStats)


class ImportProgress(BaseModel):
    phase: ImportPhase
    current: int = 0
    total: int = 0
    status_text: str = ""


class ImportOutcome(BaseModel):
    success: bool
    result: StagedImportResult | None = None
    message: str = ""


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


class CalendarEvent(BaseModel):
    """A single event parsed from an interchange calendar file.

    Only materialized when both a title and a start instant were parsed.
    """

    id: str = Field(default_factory=lambda: f"cal-{uuid.uuid4().hex[:12]}")
    title: str
    description: str | None = None
    location: str | None = None
    start: datetime
    end: datetime
    is_all_day: bool = False
    source: EventSource = EventSource.IMPORTED
    source_file: str | None = None
