"""Shared fixtures: a small but fully cross-referenced Trello export."""

from __future__ import annotations

import pytest
from boardintake.intake.models import ContentKind, ContentMetadata


@pytest.fixture
def watchlist_export() -> dict:
    """Board export exercising every collection the parser reads.

    Open lists in position order: Watching, Want to Watch, Finished.
    "Archive" is closed. Expected task order:
    Inception, Breaking Bad, Dune, Frieren, Orphan.
    """
    return {
        "name": "My Watchlist",
        "url": "https://trello.com/b/abc123/my-watchlist",
        "shortUrl": "https://trello.com/b/abc123",
        "prefs": {
            "backgroundImage": "https://img.example/full.jpg",
            "backgroundImageScaled": [
                {"width": 480, "height": 270, "url": "https://img.example/480.jpg"},
                {"width": 1920, "height": 1080, "url": "https://img.example/1920.jpg"},
                {"width": 960, "height": 540, "url": "https://img.example/960.jpg"},
            ],
        },
        "lists": [
            {"id": "l1", "name": "Want to Watch", "closed": False, "pos": 100},
            {"id": "l2", "name": "Watching", "closed": False, "pos": 50},
            {"id": "l3", "name": "Finished", "closed": False, "pos": 200},
            {"id": "l4", "name": "Archive", "closed": True, "pos": 10},
        ],
        "cards": [
            {
                "id": "c1",
                "name": "Breaking Bad (2008-2013)",
                "desc": "Great show https://www.imdb.com/title/tt0903747/",
                "idList": "l2",
                "pos": 2,
                "closed": False,
                "idChecklists": ["cl1"],
                "idMembers": ["m1", "m-unknown"],
                "labels": [{"id": "lb1", "name": "", "color": "green"}],
            },
            {
                "id": "c2",
                "name": "Dune",
                "desc": "Watch the [trailer](https://youtu.be/abc) first",
                "idList": "l1",
                "pos": 1,
                "due": None,
                "dueComplete": False,
                "idChecklists": [],
                "attachments": [
                    {
                        "id": "a1",
                        "name": "IMDb",
                        "url": "https://www.imdb.com/title/tt1160419/",
                        "isUpload": False,
                    },
                    {
                        "id": "a2",
                        "name": "poster.jpg",
                        "url": "https://trello.com/poster.jpg",
                        "isUpload": True,
                        "mimeType": "image/jpeg",
                    },
                ],
                "cover": {"idAttachment": "a2", "color": None},
            },
            {"id": "c3", "name": "Old card", "idList": "l2", "pos": 3, "closed": True},
            {"id": "c4", "name": "Archived", "idList": "l4", "pos": 1},
            {"id": "c5", "name": "Orphan", "idList": "gone", "pos": 1},
            {"id": "c6", "name": "Frieren", "desc": "", "idList": "l3", "pos": 1},
            {"id": "c7", "name": "Inception", "idList": "l2", "pos": 1},
        ],
        "checklists": [
            {
                "id": "cl1",
                "idCard": "c1",
                "name": "Seasons",
                "pos": 1,
                "checkItems": [
                    {"id": "i2", "name": "season2", "state": "complete", "pos": 2},
                    {"id": "i1", "name": "Season 1", "state": "complete", "pos": 1},
                    {"id": "i3", "name": "Season 3 completed", "state": "complete", "pos": 3},
                ],
            },
            {
                "id": "cl2",
                "idCard": "c6",
                "name": "Episodes",
                "pos": 1,
                "checkItems": [
                    {"id": "e1", "name": "Episode 1", "state": "complete", "pos": 1},
                    {"id": "e2", "name": "Episode 2", "state": "incomplete", "pos": 2},
                ],
            },
        ],
        "members": [{"id": "m1", "fullName": "Alex Doe", "username": "alexd"}],
        "actions": [
            {
                "id": "act1",
                "type": "commentCard",
                "date": "2024-03-01T10:00:00.000Z",
                "idMemberCreator": "m1",
                "data": {
                    "text": "Also https://www.imdb.com/title/tt0903747/",
                    "card": {"id": "c1", "name": "Breaking Bad (2008-2013)"},
                },
            },
            {
                "id": "act2",
                "type": "commentCard",
                "date": "2024-03-02T10:00:00.000Z",
                "idMemberCreator": "m-gone",
                "data": {
                    "text": "See https://myanimelist.net/anime/52991",
                    "card": {"id": "c6"},
                },
            },
            {
                "id": "act3",
                "type": "updateCard",
                "idMemberCreator": "m1",
                "data": {"card": {"id": "c2"}},
            },
        ],
    }


class FakeProvider:
    """Records calls and returns canned metadata keyed by title."""

    def __init__(self, responses: dict[str, ContentMetadata] | None = None, fail=()):
        self.responses = responses or {}
        self.fail = set(fail)
        self.calls: list[tuple[str, ContentKind, str | None]] = []

    async def fetch(self, title, kind, year=None):
        self.calls.append((title, kind, year))
        if title in self.fail:
            raise RuntimeError(f"provider down for {title}")
        return self.responses.get(title)


@pytest.fixture
def fake_provider():
    """Factory for :class:`FakeProvider` instances."""
    return FakeProvider
