"""Tests for the Trello export parser (indexing and card transformation)."""

from __future__ import annotations

import json

import pytest
from boardintake.errors import ExportFormatError
from boardintake.intake.models import LinkSource
from boardintake.intake.parsers.trello import (
    INVALID_EXPORT_MESSAGE,
    RawCard,
    RawPrefs,
    category_key,
    index_board,
    load_board_export,
    resolve_background_image,
    transform_cards,
)


def _tasks(export: dict):
    return transform_cards(index_board(export))


def _by_text(tasks, text):
    return next(t for t in tasks if t.text == text)


class TestIndexBoard:
    def test_open_lists_sorted_by_position(self, watchlist_export):
        index = index_board(watchlist_export)
        assert [lst.name for lst in index.open_lists] == ["Watching", "Want to Watch", "Finished"]
        assert index.closed_list_ids == {"l4"}

    def test_maps(self, watchlist_export):
        index = index_board(watchlist_export)
        assert index.list_names["l1"] == "Want to Watch"
        assert "l4" not in index.list_names
        assert set(index.checklists) == {"cl1", "cl2"}
        assert [cl.id for cl in index.checklists_by_card["c6"]] == ["cl2"]
        assert index.member_names == {"m1": "Alex Doe"}

    def test_comments_only_from_comment_actions(self, watchlist_export):
        index = index_board(watchlist_export)
        assert set(index.comments_by_card) == {"c1", "c6"}
        assert index.comments_by_card["c1"][0].author == "Alex Doe"
        assert index.comments_by_card["c6"][0].author == "Unknown"

    def test_comment_author_from_embedded_member(self, watchlist_export):
        watchlist_export["actions"][1]["memberCreator"] = {"id": "m-gone", "username": "ghost"}
        index = index_board(watchlist_export)
        assert index.comments_by_card["c6"][0].author == "ghost"

    @pytest.mark.parametrize("missing", ["lists", "cards"])
    def test_missing_collection_is_structural_error(self, watchlist_export, missing):
        del watchlist_export[missing]
        with pytest.raises(ExportFormatError) as exc_info:
            index_board(watchlist_export)
        assert str(exc_info.value) == INVALID_EXPORT_MESSAGE
        assert exc_info.value.missing == [missing]

    def test_non_list_collection_is_structural_error(self, watchlist_export):
        watchlist_export["cards"] = {"c1": {}}
        with pytest.raises(ExportFormatError):
            index_board(watchlist_export)

    def test_not_an_object(self):
        with pytest.raises(ExportFormatError):
            index_board(["lists", "cards"])

    def test_minimal_board(self):
        index = index_board({"lists": [], "cards": []})
        assert index.board.name == ""
        assert transform_cards(index) == []

    def test_nulls_treated_as_absent(self):
        export = {
            "name": None,
            "lists": [{"id": "l1", "name": None, "pos": None, "closed": None}],
            "cards": [{"id": "c1", "name": "A", "idList": "l1", "desc": None, "labels": None}],
            "checklists": None,
        }
        tasks = _tasks(export)
        assert len(tasks) == 1
        assert tasks[0].description is None
        assert tasks[0].labels == []
        assert tasks[0].category == ""

    def test_malformed_card_is_skipped(self, watchlist_export, caplog):
        watchlist_export["cards"].append({"id": "bad", "name": {"nested": True}, "idList": "l1"})
        tasks = _tasks(watchlist_export)
        assert len(tasks) == 5
        assert "Skipping malformed card" in caplog.text

    def test_malformed_nested_entries_keep_the_card(self, caplog):
        export = {
            "name": "B",
            "lists": [{"id": "l", "name": "Todo"}],
            "cards": [
                {"id": "c1", "name": "Labelled", "idList": "l", "pos": 1, "labels": [None]},
                {
                    "id": "c2",
                    "name": "Attached",
                    "idList": "l",
                    "pos": 2,
                    "attachments": ["x", {"id": "a", "url": "https://example.com/a"}],
                    "idMembers": [None, 7, "m1"],
                    "idChecklists": [{"id": "cl"}],
                    "cover": "blue",
                },
            ],
            "checklists": [
                {
                    "id": "cl",
                    "idCard": "c2",
                    "name": "Steps",
                    "checkItems": ["oops", {"id": "i", "name": "Do it", "state": "complete"}],
                }
            ],
            "members": [{"id": "m1", "fullName": "Sam"}],
        }
        tasks = _tasks(export)

        assert [t.text for t in tasks] == ["Labelled", "Attached"]
        assert tasks[0].labels == []
        attached = tasks[1]
        assert [a.id for a in attached.attachments] == ["a"]
        assert attached.assignees == ["Sam"]
        assert attached.cover_attachment_id is None
        assert [i.text for i in attached.checklists[0].items] == ["Do it"]
        assert "Skipping malformed label entry" in caplog.text
        assert "Skipping malformed attachment entry" in caplog.text
        assert "Skipping malformed card" not in caplog.text

    def test_non_numeric_position(self):
        card = RawCard.model_validate({"id": "c", "pos": "bottom"})
        assert card.pos == 0


class TestTransformCards:
    def test_order_and_exclusions(self, watchlist_export):
        tasks = _tasks(watchlist_export)
        assert [t.text for t in tasks] == [
            "Inception",
            "Breaking Bad (2008-2013)",
            "Dune",
            "Frieren",
            "Orphan",
        ]
        texts = {t.text for t in tasks}
        assert "Old card" not in texts
        assert "Archived" not in texts

    def test_category_from_list_name(self, watchlist_export):
        tasks = _tasks(watchlist_export)
        assert _by_text(tasks, "Dune").category == "want_to_watch"
        assert _by_text(tasks, "Orphan").category == "imported"

    def test_category_key(self):
        assert category_key("  To   Read Later ") == "to_read_later"

    def test_checklists_sorted_and_auto_completed(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Breaking Bad (2008-2013)")
        assert [i.text for i in task.checklists[0].items] == [
            "Season 1",
            "season2",
            "Season 3 completed",
        ]
        assert task.checklist_total == 3
        assert task.checklist_checked == 3
        assert task.checked is True

    def test_checklist_fallback_by_card_id(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Frieren")
        assert task.checklist_names == ["Episodes"]
        assert (task.checklist_checked, task.checklist_total) == (1, 2)
        assert task.checked is False

    def test_no_checklist_items_never_auto_completes(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Inception")
        assert task.checklist_total == 0
        assert task.checked is False

    def test_due_complete_marks_checked(self, watchlist_export):
        watchlist_export["cards"][1]["dueComplete"] = True
        assert _by_text(_tasks(watchlist_export), "Dune").checked is True

    def test_checklist_counts_invariant(self, watchlist_export):
        for task in _tasks(watchlist_export):
            assert task.checklist_checked <= task.checklist_total
            if task.checklist_total and task.checklist_checked == task.checklist_total:
                assert task.checked

    def test_attachments_and_cover(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Dune")
        assert [a.is_upload for a in task.attachments] == [False, True]
        assert task.cover_attachment_id == "a2"
        assert task.cover_image == "https://trello.com/poster.jpg"

    def test_assignees_and_labels(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Breaking Bad (2008-2013)")
        assert task.assignees == ["Alex Doe"]
        assert task.labels[0].name == "green"

    def test_no_classification_fields_yet(self, watchlist_export):
        for task in _tasks(watchlist_export):
            assert task.content_type is None
            assert task.cached_enrichment is None


class TestLinkProvenance:
    def test_description_beats_comment(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Breaking Bad (2008-2013)")
        assert len(task.links) == 1
        assert task.links[0].source == LinkSource.DESCRIPTION
        assert task.links[0].text == "imdb.com"
        assert task.links[0].card_title == "Breaking Bad (2008-2013)"

    def test_uploads_are_not_links(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Dune")
        assert [(l.source, l.text) for l in task.links] == [
            (LinkSource.DESCRIPTION, "trailer"),
            (LinkSource.ATTACHMENT, "IMDb"),
        ]

    def test_comment_links(self, watchlist_export):
        task = _by_text(_tasks(watchlist_export), "Frieren")
        assert task.links[0].source == LinkSource.COMMENT

    def test_description_and_checklist_duplicate(self):
        url = "https://example.com/guide"
        export = {
            "lists": [{"id": "l", "name": "Todo"}],
            "cards": [{"id": "c", "name": "Trip", "idList": "l", "desc": f"Read {url}"}],
            "checklists": [
                {
                    "id": "cl",
                    "idCard": "c",
                    "name": "Prep",
                    "checkItems": [
                        {"id": "i", "name": f"Open [guide]({url})"},
                        {"id": "j", "name": "Book https://hotels.example"},
                    ],
                }
            ],
        }
        task = _tasks(export)[0]
        assert task.link_urls == [url, "https://hotels.example"]
        assert task.links[0].source == LinkSource.DESCRIPTION
        assert task.links[1].source == LinkSource.CHECKLIST
        assert task.links[1].checklist_name == "Prep"

    def test_name_is_scanned_first(self):
        url = "https://example.com"
        export = {
            "lists": [{"id": "l", "name": "Todo"}],
            "cards": [{"id": "c", "name": f"Check {url}", "idList": "l", "desc": url}],
        }
        task = _tasks(export)[0]
        assert [l.source for l in task.links] == [LinkSource.NAME]

    def test_no_duplicate_urls(self, watchlist_export):
        for task in _tasks(watchlist_export):
            assert len(task.link_urls) == len(set(task.link_urls))


class TestBackgroundImage:
    def test_largest_scaled_variant(self, watchlist_export):
        prefs = RawPrefs.model_validate(watchlist_export["prefs"])
        assert resolve_background_image(prefs, 10000) == "https://img.example/1920.jpg"

    def test_width_cap(self, watchlist_export):
        prefs = RawPrefs.model_validate(watchlist_export["prefs"])
        assert resolve_background_image(prefs, 1000) == "https://img.example/960.jpg"
        assert resolve_background_image(prefs, 100) == "https://img.example/480.jpg"

    def test_default_image_without_variants(self):
        prefs = RawPrefs.model_validate({"backgroundImage": "https://img.example/bg.png"})
        assert resolve_background_image(prefs, 10000) == "https://img.example/bg.png"

    def test_no_prefs(self):
        assert resolve_background_image(None, 10000) is None


class TestLoadBoardExport:
    def test_reads_json(self, tmp_path, watchlist_export):
        path = tmp_path / "board.json"
        path.write_text(json.dumps(watchlist_export), encoding="utf-8")
        assert load_board_export(path)["name"] == "My Watchlist"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "board.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ExportFormatError):
            load_board_export(path)
