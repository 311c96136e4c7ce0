"""Trello board export parser.

Two steps, both synchronous and side-effect free:

``index_board``
    Validates the raw JSON document and indexes its cross-referenced
    collections (lists, checklists, members, comment actions) into
    lookup maps keyed by Trello's opaque ids.

``transform_cards``
    Builds one :class:`~boardintake.intake.models.Task` per open card,
    resolving checklists, attachments, members, comments and links.

Every raw shape is modelled with all fields optional; JSON ``null`` is
treated as absent. Nothing optional escapes ``BoardIndex``.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Annotated, Any, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)

from boardintake.errors import ExportFormatError
from boardintake.intake.models import (
    Attachment,
    Checklist,
    ChecklistItem,
    Comment,
    ExtractedLink,
    LinkSource,
    Task,
    TaskLabel,
)
from boardintake.intake.parsers.links import extract_links

logger = logging.getLogger(__name__)

INVALID_EXPORT_MESSAGE = (
    "Invalid Trello export file. Please export your board as JSON from Trello."
)

UNKNOWN_LIST_CATEGORY = "imported"


def _to_position(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


Position = Annotated[float, BeforeValidator(_to_position)]

_M = TypeVar("_M", bound=BaseModel)


def _validate_one(model: type[_M], raw: Any, label: str) -> _M | None:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "Skipping malformed %s entry: %s", label, exc.errors()[0].get("msg", exc)
        )
        return None


def _validate_items(model: type[_M], items: Any, label: str) -> list[_M]:
    """Validate each element of a collection, skipping malformed ones."""
    if not isinstance(items, list):
        if items is not None:
            logger.warning("Ignoring non-list %s collection in board export", label)
        return []
    validated = (_validate_one(model, raw, label) for raw in items)
    return [item for item in validated if item is not None]


def _lenient_list(model: type[BaseModel], label: str) -> BeforeValidator:
    """Field validator keeping only the elements of a nested list that validate."""
    return BeforeValidator(lambda items: _validate_items(model, items, label))


def _lenient_one(model: type[BaseModel], label: str) -> BeforeValidator:
    return BeforeValidator(lambda raw: _validate_one(model, raw, label))


def _string_ids(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    ids = [item for item in items if isinstance(item, str) and item]
    if len(ids) != len(items):
        logger.debug("Dropped %d non-string ids", len(items) - len(ids))
    return ids


IdList = Annotated[list[str], BeforeValidator(_string_ids)]


# ---------------------------------------------------------------------------
# Raw export shapes
# ---------------------------------------------------------------------------


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class RawCheckItem(_RawModel):
    id: str = ""
    name: str = ""
    state: str = "incomplete"
    pos: Position = 0


class RawChecklist(_RawModel):
    id: str = ""
    id_card: str = Field(default="", alias="idCard")
    name: str = ""
    pos: Position = 0
    check_items: Annotated[
        list[RawCheckItem], _lenient_list(RawCheckItem, "check item")
    ] = Field(default_factory=list, alias="checkItems")


class RawLabel(_RawModel):
    id: str = ""
    name: str = ""
    color: str = ""


class RawAttachment(_RawModel):
    id: str = ""
    name: str = ""
    url: str = ""
    date: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")
    is_upload: bool = Field(default=False, alias="isUpload")


class RawCover(_RawModel):
    color: str | None = None
    id_attachment: str | None = Field(default=None, alias="idAttachment")


class RawCard(_RawModel):
    id: str = ""
    name: str = ""
    desc: str = ""
    id_list: str = Field(default="", alias="idList")
    due: str | None = None
    start: str | None = None
    due_complete: bool = Field(default=False, alias="dueComplete")
    closed: bool = False
    pos: Position = 0
    id_checklists: IdList = Field(default_factory=list, alias="idChecklists")
    id_members: IdList = Field(default_factory=list, alias="idMembers")
    labels: Annotated[list[RawLabel], _lenient_list(RawLabel, "label")] = Field(
        default_factory=list
    )
    cover: Annotated[RawCover | None, _lenient_one(RawCover, "cover")] = None
    attachments: Annotated[
        list[RawAttachment], _lenient_list(RawAttachment, "attachment")
    ] = Field(default_factory=list)


class RawList(_RawModel):
    id: str = ""
    name: str = ""
    closed: bool = False
    pos: Position = 0


class RawMember(_RawModel):
    id: str = ""
    full_name: str = Field(default="", alias="fullName")
    username: str = ""

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


class RawActionCard(_RawModel):
    id: str = ""
    name: str = ""


class RawActionData(_RawModel):
    text: str = ""
    card: RawActionCard | None = None


class RawAction(_RawModel):
    id: str = ""
    type: str = ""
    date: str = ""
    id_member_creator: str = Field(default="", alias="idMemberCreator")
    member_creator: RawMember | None = Field(default=None, alias="memberCreator")
    data: RawActionData = Field(default_factory=RawActionData)


class RawScaledImage(_RawModel):
    url: str = ""
    width: int = 0
    height: int = 0


class RawPrefs(_RawModel):
    background: str | None = None
    background_image: str | None = Field(default=None, alias="backgroundImage")
    background_image_scaled: Annotated[
        list[RawScaledImage], _lenient_list(RawScaledImage, "scaled background")
    ] = Field(default_factory=list, alias="backgroundImageScaled")


class RawBoardMeta(_RawModel):
    name: str = ""
    desc: str = ""
    url: str = ""
    short_url: str = Field(default="", alias="shortUrl")
    prefs: RawPrefs | None = None


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


class BoardIndex(BaseModel):
    """Lookup maps built from one board export."""

    board: RawBoardMeta
    open_lists: list[RawList] = Field(default_factory=list)
    list_names: dict[str, str] = Field(default_factory=dict)
    closed_list_ids: set[str] = Field(default_factory=set)
    cards: list[RawCard] = Field(default_factory=list)
    checklists: dict[str, RawChecklist] = Field(default_factory=dict)
    checklists_by_card: dict[str, list[RawChecklist]] = Field(default_factory=dict)
    member_names: dict[str, str] = Field(default_factory=dict)
    comments_by_card: dict[str, list[Comment]] = Field(default_factory=dict)

    @property
    def list_order(self) -> dict[str, int]:
        return {lst.id: i for i, lst in enumerate(self.open_lists)}


def index_board(data: Any) -> BoardIndex:
    """Validate a board export and index its collections.

    Only the presence of ``lists`` and ``cards`` is enforced; every other
    field falls back to a safe default.

    Args:
        data: The decoded JSON document.

    Returns:
        A :class:`BoardIndex` with all lookup maps populated.

    Raises:
        ExportFormatError: If the document is not an object or lacks a
            ``lists`` or ``cards`` array.
    """
    if not isinstance(data, dict):
        raise ExportFormatError(INVALID_EXPORT_MESSAGE)

    missing = [key for key in ("lists", "cards") if not isinstance(data.get(key), list)]
    if missing:
        raise ExportFormatError(INVALID_EXPORT_MESSAGE, missing=missing)

    try:
        board = RawBoardMeta.model_validate(
            {k: data.get(k) for k in ("name", "desc", "url", "shortUrl", "prefs")}
        )
    except ValidationError:
        logger.warning("Board metadata is malformed; using defaults", exc_info=True)
        board = RawBoardMeta()

    lists = _validate_items(RawList, data["lists"], "list")
    cards = _validate_items(RawCard, data["cards"], "card")
    checklists = _validate_items(RawChecklist, data.get("checklists"), "checklist")
    members = _validate_items(RawMember, data.get("members"), "member")
    actions = _validate_items(RawAction, data.get("actions"), "action")

    open_lists = sorted((lst for lst in lists if not lst.closed), key=lambda lst: lst.pos)

    checklist_map: dict[str, RawChecklist] = {}
    checklists_by_card: dict[str, list[RawChecklist]] = {}
    for checklist in checklists:
        checklist_map[checklist.id] = checklist
        if checklist.id_card:
            checklists_by_card.setdefault(checklist.id_card, []).append(checklist)

    member_names = {m.id: m.display_name for m in members if m.display_name}

    comments_by_card: dict[str, list[Comment]] = {}
    for action in actions:
        if action.type != "commentCard" or action.data.card is None:
            continue
        card_id = action.data.card.id
        if not card_id:
            continue
        author = member_names.get(action.id_member_creator)
        if not author and action.member_creator is not None:
            author = action.member_creator.display_name
        comments_by_card.setdefault(card_id, []).append(
            Comment(
                id=action.id,
                text=action.data.text,
                author=author or "Unknown",
                date=action.date,
            )
        )

    index = BoardIndex(
        board=board,
        open_lists=open_lists,
        list_names={lst.id: lst.name for lst in open_lists},
        closed_list_ids={lst.id for lst in lists if lst.closed},
        cards=cards,
        checklists=checklist_map,
        checklists_by_card=checklists_by_card,
        member_names=member_names,
        comments_by_card=comments_by_card,
    )
    logger.debug(
        "Indexed board %r: %d open lists, %d cards, %d checklists, %d comments",
        board.name,
        len(open_lists),
        len(cards),
        len(checklist_map),
        sum(len(c) for c in comments_by_card.values()),
    )
    return index


# ---------------------------------------------------------------------------
# Card transformation
# ---------------------------------------------------------------------------


def category_key(list_name: str) -> str:
    """Lower-case a list name and turn whitespace runs into underscores."""
    return re.sub(r"\s+", "_", list_name.strip().lower())


class _LinkCollector:
    """Accumulates links for one card, first occurrence of a URL wins."""

    def __init__(self, card_title: str) -> None:
        self._card_title = card_title
        self._seen: set[str] = set()
        self.links: list[ExtractedLink] = []

    def add(
        self,
        url: str,
        text: str | None,
        source: LinkSource,
        checklist_name: str | None = None,
    ) -> None:
        if not url or url in self._seen:
            return
        self._seen.add(url)
        self.links.append(
            ExtractedLink(
                url=url,
                text=text,
                source=source,
                card_title=self._card_title,
                checklist_name=checklist_name,
            )
        )

    def add_text(
        self, text: str | None, source: LinkSource, checklist_name: str | None = None
    ) -> None:
        for link in extract_links(text):
            self.add(link.url, link.text, source, checklist_name)


def _resolve_checklists(card: RawCard, index: BoardIndex) -> list[Checklist]:
    if card.id_checklists:
        raw = [index.checklists[cid] for cid in card.id_checklists if cid in index.checklists]
    else:
        raw = index.checklists_by_card.get(card.id, [])

    checklists: list[Checklist] = []
    for cl in sorted(raw, key=lambda c: c.pos):
        items = [
            ChecklistItem(id=item.id, text=item.name, checked=item.state == "complete")
            for item in sorted(cl.check_items, key=lambda i: i.pos)
        ]
        checklists.append(Checklist(id=cl.id, name=cl.name, items=items))
    return checklists


def card_to_task(card: RawCard, index: BoardIndex) -> Task:
    """Normalize one raw card into a task."""
    if card.id_list in index.list_names:
        category = category_key(index.list_names[card.id_list])
    else:
        category = UNKNOWN_LIST_CATEGORY

    try:
        checklists = _resolve_checklists(card, index)
    except Exception:
        logger.warning("Could not resolve checklists for card %r", card.name, exc_info=True)
        checklists = []

    checklist_total = sum(len(cl.items) for cl in checklists)
    checklist_checked = sum(1 for cl in checklists for item in cl.items if item.checked)

    attachments = [
        Attachment(
            id=att.id,
            name=att.name,
            url=att.url,
            mime_type=att.mime_type,
            is_upload=att.is_upload,
        )
        for att in card.attachments
    ]

    cover_color: str | None = None
    cover_attachment_id: str | None = None
    cover_image: str | None = None
    if card.cover is not None:
        cover_color = card.cover.color
        cover_attachment_id = card.cover.id_attachment
        if cover_attachment_id:
            cover_image = next(
                (att.url for att in attachments if att.id == cover_attachment_id and att.url),
                None,
            )

    assignees = [index.member_names[m] for m in card.id_members if m in index.member_names]
    comments = list(index.comments_by_card.get(card.id, []))

    collector = _LinkCollector(card.name)
    collector.add_text(card.name, LinkSource.NAME)
    collector.add_text(card.desc, LinkSource.DESCRIPTION)
    for att in attachments:
        if not att.is_upload:
            collector.add(att.url, att.name or None, LinkSource.ATTACHMENT)
    for comment in comments:
        collector.add_text(comment.text, LinkSource.COMMENT)
    for checklist in checklists:
        for item in checklist.items:
            collector.add_text(item.text, LinkSource.CHECKLIST, checklist.name)

    fully_complete = checklist_total > 0 and checklist_checked == checklist_total

    return Task(
        text=card.name,
        checked=card.due_complete or fully_complete,
        category=category,
        description=card.desc or None,
        due_date=card.due,
        start_date=card.start,
        labels=[TaskLabel(name=lbl.name or lbl.color, color=lbl.color) for lbl in card.labels],
        checklists=checklists,
        checklist_total=checklist_total,
        checklist_checked=checklist_checked,
        attachments=attachments,
        comments=comments,
        assignees=assignees,
        cover_color=cover_color,
        cover_image=cover_image,
        cover_attachment_id=cover_attachment_id,
        position=card.pos,
        links=collector.links,
    )


def transform_cards(index: BoardIndex) -> list[Task]:
    """Build one task per open card in an open (or unknown) list.

    Tasks come out in board order: by list position, then by card
    position within the list. Cards whose list id matches no list sort
    after all known lists.
    """
    order = index.list_order
    tail = len(order)

    open_cards = [
        card
        for card in index.cards
        if not card.closed and card.id_list not in index.closed_list_ids
    ]
    open_cards.sort(key=lambda c: (order.get(c.id_list, tail), c.pos))

    tasks = [card_to_task(card, index) for card in open_cards]
    logger.info("Transformed %d open cards into tasks", len(tasks))
    return tasks


def resolve_background_image(prefs: RawPrefs | None, max_width: int) -> str | None:
    """Pick the board background image.

    Prefers the widest pre-scaled variant no wider than *max_width*
    (or the narrowest one if none fits); falls back to the default
    background image field.
    """
    if prefs is None:
        return None
    scaled = sorted(
        (img for img in prefs.background_image_scaled if img.url), key=lambda img: img.width
    )
    if scaled:
        fitting = [img for img in scaled if img.width <= max_width]
        return (fitting[-1] if fitting else scaled[0]).url
    return prefs.background_image


def load_board_export(path: Path) -> Any:
    """Read and decode a board export file.

    Raises:
        ExportFormatError: If the file is not valid JSON.
    """
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ExportFormatError(INVALID_EXPORT_MESSAGE) from exc
