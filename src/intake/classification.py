"""Board-level and task-level classification.

``classify_board`` infers what a whole board is about from its name,
list names and card names. ``ContentClassifier`` scores a single task
against keyword, URL and list-context signals and picks the best kind.
Both are pure and synchronous.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import NamedTuple, Protocol

from boardintake.intake.models import (
    MEDIA_BOARD_TYPES,
    BoardType,
    ContentClassification,
    ContentKind,
    GoalType,
    LensCategory,
    Task,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Board classification
# ---------------------------------------------------------------------------

_MEDIA_BOARD_NAME_RE = re.compile(r"\b(tv|show|series|movie|film|anime|watch|drama|episode)\b")
_MEDIA_LIST_RE = re.compile(
    r"\b(to watch|watching|watched|backlog|queue|completed|finished|dropped)\b"
)
_MEDIA_CARD_RE = re.compile(r"\b(season|episode|s\d+e\d+|ep\s*\d+)\b")
_TV_BOARD_RE = re.compile(r"\b(tv|show|series|drama)\b")

# Checked in order; first substring hit wins.
_BOARD_KEYWORDS: list[tuple[tuple[str, ...], GoalType, BoardType]] = [
    (("travel", "trip"), GoalType.TRAVEL, BoardType.TRAVEL),
    (("learn", "study"), GoalType.LEARNING, BoardType.LEARNING),
    (("fitness", "health"), GoalType.FITNESS, BoardType.FITNESS),
    (("cook", "recipe"), GoalType.COOKING, BoardType.COOKING),
    (("work", "job"), GoalType.JOB, BoardType.WORK),
    (("book", "read"), GoalType.MEDIA, BoardType.BOOKS),
    (("game", "gaming"), GoalType.MEDIA, BoardType.GAMES),
]

MEDIA_CATEGORY_SYNONYMS: dict[str, str] = {
    "to watch": "to_watch",
    "want to watch": "to_watch",
    "backlog": "to_watch",
    "queue": "to_watch",
    "plan to watch": "to_watch",
    "watching": "watching",
    "in progress": "watching",
    "currently watching": "watching",
    "started": "watching",
    "watched": "watched",
    "completed": "watched",
    "finished": "watched",
    "done": "watched",
    "dropped": "dropped",
    "on hold": "on_hold",
    "paused": "on_hold",
}


class BoardClassification(NamedTuple):
    goal_type: GoalType
    board_type: BoardType

    @property
    def is_media(self) -> bool:
        return self.board_type in MEDIA_BOARD_TYPES


def classify_board(
    board_name: str, list_names: Iterable[str], card_names: Iterable[str]
) -> BoardClassification:
    """Infer ``(goal_type, board_type)`` for a board.

    Media vocabulary in the board name, list names or card names wins
    first and is sub-typed from the board name. Otherwise the board
    name is checked against a fixed keyword table; no hit falls back to
    a generic media board.
    """
    name = board_name.lower()
    lists = " ".join(n.lower() for n in list_names)
    cards = " ".join(n.lower() for n in card_names)

    is_media = (
        _MEDIA_BOARD_NAME_RE.search(name)
        or _MEDIA_LIST_RE.search(lists)
        or _MEDIA_CARD_RE.search(cards)
    )
    if is_media:
        if "anime" in name:
            board_type = BoardType.ANIME
        elif "movie" in name or "film" in name:
            board_type = BoardType.MOVIES
        elif _TV_BOARD_RE.search(name):
            board_type = BoardType.TVSHOWS
        else:
            board_type = BoardType.MEDIA
        return BoardClassification(GoalType.MEDIA, board_type)

    for keywords, goal_type, board_type in _BOARD_KEYWORDS:
        if any(k in name for k in keywords):
            return BoardClassification(goal_type, board_type)

    return BoardClassification(GoalType.MEDIA, BoardType.GENERAL)


def normalize_media_category(category: str) -> str:
    """Map a list-derived category onto the shared media vocabulary.

    Categories with no synonym are returned unchanged.
    """
    key = category.lower().replace("_", " ")
    return MEDIA_CATEGORY_SYNONYMS.get(key, category)


def remap_media_categories(tasks: Iterable[Task]) -> int:
    """Rewrite each task's category in place; return how many changed."""
    changed = 0
    for task in tasks:
        mapped = normalize_media_category(task.category)
        if mapped != task.category:
            task.category = mapped
            changed += 1
    return changed


# ---------------------------------------------------------------------------
# Content classification
# ---------------------------------------------------------------------------


class TaskClassifier(Protocol):
    """Anything that can score a task. The coordinator only needs this."""

    def classify(self, task: Task) -> ContentClassification: ...


_YEAR_RANGE_RE = re.compile(r"\b(19|20)\d{2}\s*[-–—]\s*(19|20)?\d{2,4}\b")
_SINGLE_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")

_TV_KEYWORDS_RE = re.compile(
    r"\b(season|seasons|episode|episodes|series|tv\s*show|miniseries|mini[_\s]?series"
    r"|limited[_\s]?series|s\d{1,2}e\d{1,2})\b",
    re.IGNORECASE,
)
_TV_CONTEXT_RE = re.compile(
    r"\b(to[_\s]?watch|watching|watched|binge|netflix|hbo|streaming|tv|shows?)\b",
    re.IGNORECASE,
)
_MOVIE_KEYWORDS_RE = re.compile(
    r"\b(movie|film|cinema|theatrical|director'?s\s*cut|extended\s*edition)\b", re.IGNORECASE
)
_MOVIE_RUNTIME_RE = re.compile(r"\b\d{1,3}\s*(min|mins|minutes|hr|hrs|hours)\b", re.IGNORECASE)
_ANIME_KEYWORDS_RE = re.compile(
    r"\b(anime|manga|ova|ona|sub|dub|crunchyroll|funimation|myanimelist|mal"
    r"|shonen|shounen|shojo|shoujo|seinen|isekai|mecha)\b",
    re.IGNORECASE,
)
_BOOK_KEYWORDS_RE = re.compile(
    r"\b(book|novel|author|read|reading|pages?|chapter|isbn|kindle|audiobook"
    r"|paperback|hardcover)\b",
    re.IGNORECASE,
)
_BOOK_AUTHOR_RE = re.compile(r"\bby\s+[A-Z][a-z]+\s+[A-Z][a-z]+")
_GAME_KEYWORDS_RE = re.compile(
    r"\b(game|gaming|playstation|ps[45]|xbox|nintendo|switch|steam|pc\s*game|dlc"
    r"|multiplayer|rpg|fps|pc|epic\s*games|gog)\b",
    re.IGNORECASE,
)
_MUSIC_KEYWORDS_RE = re.compile(
    r"\b(album|song|track|artist|band|music|spotify|vinyl|ep|single|discography)\b",
    re.IGNORECASE,
)

_IMDB_URL_RE = re.compile(r"imdb\.com/title/(tt\d+)", re.IGNORECASE)
_TMDB_URL_RE = re.compile(r"themoviedb\.org/(movie|tv)/(\d+)", re.IGNORECASE)
_URL_SIGNALS: list[tuple[re.Pattern[str], ContentKind, str]] = [
    (re.compile(r"myanimelist\.net/anime/(\d+)", re.IGNORECASE), ContentKind.ANIME, "MyAnimeList"),
    (re.compile(r"goodreads\.com/book/show/(\d+)", re.IGNORECASE), ContentKind.BOOK, "Goodreads"),
    (re.compile(r"store\.steampowered\.com/app/(\d+)", re.IGNORECASE), ContentKind.GAME, "Steam"),
    (
        re.compile(r"open\.spotify\.com/(album|track|artist)/([a-zA-Z0-9]+)", re.IGNORECASE),
        ContentKind.MUSIC,
        "Spotify",
    ),
]

LIST_CONTEXT: dict[str, tuple[ContentKind, ...]] = {
    "to_watch": (ContentKind.TV_SERIES, ContentKind.MOVIE, ContentKind.ANIME),
    "watching": (ContentKind.TV_SERIES, ContentKind.ANIME),
    "watched": (ContentKind.TV_SERIES, ContentKind.MOVIE, ContentKind.ANIME),
    "movies": (ContentKind.MOVIE,),
    "films": (ContentKind.MOVIE,),
    "tv": (ContentKind.TV_SERIES,),
    "tv_series": (ContentKind.TV_SERIES,),
    "tv_shows": (ContentKind.TV_SERIES,),
    "shows": (ContentKind.TV_SERIES,),
    "series": (ContentKind.TV_SERIES,),
    "limited_series": (ContentKind.TV_SERIES,),
    "miniseries": (ContentKind.TV_SERIES,),
    "anime": (ContentKind.ANIME,),
    "books": (ContentKind.BOOK,),
    "reading": (ContentKind.BOOK,),
    "to_read": (ContentKind.BOOK,),
    "games": (ContentKind.GAME,),
    "playing": (ContentKind.GAME,),
    "backlog": (ContentKind.GAME,),
    "music": (ContentKind.MUSIC,),
    "albums": (ContentKind.MUSIC,),
    "listening": (ContentKind.MUSIC,),
}

_ENTERTAINMENT = frozenset({ContentKind.TV_SERIES, ContentKind.MOVIE, ContentKind.ANIME})
_LEISURE = frozenset({ContentKind.BOOK, ContentKind.GAME, ContentKind.MUSIC})

_TITLE_YEAR_RE = re.compile(
    r"\s*\(\s*(19|20)\d{2}\s*[-–—]?\s*((19|20)?\d{2,4}|present)?\s*\)", re.IGNORECASE
)
_TRAILING_YEAR_RE = re.compile(r"\s*[-–—]\s*(19|20)\d{2}\s*$")
_EDGE_DASH_RE = re.compile(r"^\s*[-–—]\s*|\s*[-–—]\s*$")


def lens_category(kind: ContentKind) -> LensCategory:
    if kind in _ENTERTAINMENT:
        return LensCategory.ENTERTAINMENT
    if kind in _LEISURE:
        return LensCategory.LEISURE
    return LensCategory.UNKNOWN


def display_title(text: str) -> str:
    """Strip year markers from a card title for display and lookups."""
    title = _TITLE_YEAR_RE.sub("", text)
    title = _YEAR_RANGE_RE.sub("", title)
    title = _TRAILING_YEAR_RE.sub("", title)
    title = _EDGE_DASH_RE.sub("", title).strip()
    return title or text


class ContentClassifier:
    """Weighted keyword heuristic over a task's text, links and list.

    Each matched signal adds a fixed weight to one or more kinds; the
    highest-scoring kind wins and its score, capped at 100, is the
    confidence. Ties go to the kind listed first in ``ContentKind``.
    """

    def classify(self, task: Task) -> ContentClassification:
        text = " ".join(
            part for part in (task.text, task.description or "", *task.checklist_names) if part
        )
        scores: dict[ContentKind, int] = {}
        signals: dict[ContentKind, list[str]] = {}

        def add(kind: ContentKind, weight: int, reason: str) -> None:
            scores[kind] = scores.get(kind, 0) + weight
            signals.setdefault(kind, []).append(reason)

        year: str | None = None
        year_range: str | None = None
        range_match = _YEAR_RANGE_RE.search(text)
        if range_match:
            year_range = range_match.group(0)
            add(ContentKind.TV_SERIES, 20, "Year range detected")
            add(ContentKind.ANIME, 15, "Year range detected")
        else:
            year_match = _SINGLE_YEAR_RE.search(text)
            if year_match:
                year = year_match.group(0)

        for url in task.link_urls:
            self._score_url(url, add)

        context = re.sub(r"[\s_-]+", "_", task.category.lower())
        for kind in LIST_CONTEXT.get(context, ()):
            add(kind, 25, f"List context: {task.category}")

        if _ANIME_KEYWORDS_RE.search(text):
            add(ContentKind.ANIME, 35, "Anime keywords detected")
        if _TV_KEYWORDS_RE.search(text):
            add(ContentKind.TV_SERIES, 30, "TV keywords detected")
        if _TV_CONTEXT_RE.search(text):
            add(ContentKind.TV_SERIES, 15, "TV context detected")
            add(ContentKind.MOVIE, 10, "Watch context detected")
        if _MOVIE_KEYWORDS_RE.search(text):
            add(ContentKind.MOVIE, 30, "Movie keywords detected")
        if _MOVIE_RUNTIME_RE.search(text):
            add(ContentKind.MOVIE, 20, "Runtime detected")
        if _BOOK_KEYWORDS_RE.search(text) or _BOOK_AUTHOR_RE.search(text):
            add(ContentKind.BOOK, 35, "Book keywords detected")
        if _GAME_KEYWORDS_RE.search(text):
            add(ContentKind.GAME, 35, "Game keywords detected")
        if _MUSIC_KEYWORDS_RE.search(text):
            add(ContentKind.MUSIC, 35, "Music keywords detected")

        season_lists = sum(1 for name in task.checklist_names if "season" in name.lower())
        if season_lists:
            add(ContentKind.TV_SERIES, 20, "Season checklist found")
            add(ContentKind.ANIME, 10, "Season checklist found")

        best = ContentKind.UNKNOWN
        best_score = 0
        for kind in ContentKind:
            if scores.get(kind, 0) > best_score:
                best, best_score = kind, scores[kind]

        result = ContentClassification(
            kind=best,
            confidence=min(100, best_score),
            category=lens_category(best),
            signals=signals.get(best, []),
            title=display_title(task.text),
            year=year,
            year_range=year_range,
        )
        logger.debug(
            "Classified %r as %s (%d): %s",
            task.text,
            result.kind,
            result.confidence,
            ", ".join(result.signals),
        )
        return result

    @staticmethod
    def _score_url(url: str, add) -> None:
        if _IMDB_URL_RE.search(url):
            add(ContentKind.MOVIE, 40, "IMDb URL found")
            add(ContentKind.TV_SERIES, 35, "IMDb URL found")
        tmdb = _TMDB_URL_RE.search(url)
        if tmdb:
            if tmdb.group(1).lower() == "tv":
                add(ContentKind.TV_SERIES, 50, "TMDb TV URL found")
            else:
                add(ContentKind.MOVIE, 50, "TMDb Movie URL found")
        for pattern, kind, site in _URL_SIGNALS:
            if pattern.search(url):
                add(kind, 60, f"{site} URL found")
