"""Tests for the import coordinator and staged commit/discard."""

from __future__ import annotations

import asyncio
import copy

import pytest
from boardintake.errors import StoreError
from boardintake.intake.config import ImportConfig
from boardintake.intake.coordinator import ImportCoordinator, PendingImport
from boardintake.intake.models import (
    BoardType,
    ContentKind,
    ContentMetadata,
    GoalType,
    ImportPhase,
    ShowStatus,
    StagedImportResult,
)

NO_DELAY = ImportConfig(enrichment_delay_seconds=0)

BREAKING_BAD = ContentMetadata(
    kind=ContentKind.TV_SERIES,
    title="Breaking Bad",
    seasons=5,
    status=ShowStatus.ENDED,
    source="test",
)


def _run(coordinator: ImportCoordinator, data):
    return asyncio.run(coordinator.run(data))


class TestImportRun:
    def test_stages_board(self, watchlist_export, fake_provider):
        provider = fake_provider({"Breaking Bad": BREAKING_BAD})
        coordinator = ImportCoordinator.with_provider(provider, NO_DELAY)
        outcome = _run(coordinator, watchlist_export)

        assert outcome.success is True
        result = outcome.result
        assert result.goal_title == "My Watchlist"
        assert (result.goal_type, result.board_type) == (GoalType.MEDIA, BoardType.MEDIA)
        assert result.background_image == "https://img.example/1920.jpg"
        assert result.source.board_url == "https://trello.com/b/abc123/my-watchlist"
        assert [t.category for t in result.tasks] == [
            "watching",
            "watching",
            "to_watch",
            "watched",
            "imported",
        ]
        assert coordinator.phase == ImportPhase.STAGED

    def test_stats(self, watchlist_export):
        outcome = _run(ImportCoordinator(NO_DELAY), watchlist_export)
        stats = outcome.result.stats
        assert stats.total_lists == 3
        assert stats.total_tasks == 5
        assert stats.total_checklists == 2
        assert stats.total_attachments == 2
        assert stats.total_comments == 2
        assert stats.total_links == 4
        assert outcome.message == stats.summary()

    def test_classification_and_enrichment(self, watchlist_export, fake_provider):
        provider = fake_provider({"Breaking Bad": BREAKING_BAD})
        coordinator = ImportCoordinator.with_provider(provider, NO_DELAY)
        tasks = {t.text: t for t in _run(coordinator, watchlist_export).result.tasks}

        assert tasks["Orphan"].content_type == ContentKind.UNKNOWN
        assert tasks["Breaking Bad (2008-2013)"].content_type == ContentKind.TV_SERIES
        assert tasks["Dune"].content_type == ContentKind.MOVIE

        # Seasonal kinds without season markers are skipped; order is preserved.
        assert [(title, kind) for title, kind, _ in provider.calls] == [
            ("Breaking Bad", ContentKind.TV_SERIES),
            ("Dune", ContentKind.MOVIE),
        ]
        assert provider.calls[0][2] == "2008"

        bb = tasks["Breaking Bad (2008-2013)"]
        assert bb.cached_enrichment.data.seasons == 5
        assert bb.has_new_content is True
        assert bb.upcoming_content.title == "Season 4"
        assert bb.show_status == ShowStatus.ENDED

        dune = tasks["Dune"]
        assert dune.cached_enrichment is None
        assert dune.has_new_content is None

    def test_enrichment_failure_does_not_abort(self, watchlist_export, fake_provider):
        dune = ContentMetadata(kind=ContentKind.MOVIE, title="Dune")
        provider = fake_provider({"Dune": dune}, fail={"Breaking Bad"})
        coordinator = ImportCoordinator.with_provider(provider, NO_DELAY)
        outcome = _run(coordinator, watchlist_export)

        assert outcome.success is True
        tasks = {t.text: t for t in outcome.result.tasks}
        assert tasks["Breaking Bad (2008-2013)"].cached_enrichment is None
        assert tasks["Dune"].cached_enrichment.data == dune

    def test_enrichment_disabled(self, watchlist_export, fake_provider):
        provider = fake_provider()
        config = ImportConfig(enrich=False)
        _run(ImportCoordinator.with_provider(provider, config), watchlist_export)
        assert provider.calls == []

    def test_threshold_is_configurable(self, watchlist_export, fake_provider):
        provider = fake_provider()
        config = ImportConfig(confidence_threshold=90, enrichment_delay_seconds=0)
        _run(ImportCoordinator.with_provider(provider, config), watchlist_export)
        # Only Breaking Bad (capped at 100) clears 90.
        assert [c[0] for c in provider.calls] == ["Breaking Bad"]

    def test_idempotent_stats(self, watchlist_export, fake_provider):
        def once():
            provider = fake_provider({"Breaking Bad": BREAKING_BAD})
            coordinator = ImportCoordinator.with_provider(provider, NO_DELAY)
            return _run(coordinator, copy.deepcopy(watchlist_export)).result

        first, second = once(), once()
        assert first.stats == second.stats
        assert [t.content_type for t in first.tasks] == [t.content_type for t in second.tasks]

    def test_board_type_uses_closed_card_names(self):
        export = {
            "name": "Stuff",
            "lists": [{"id": "l", "name": "Inbox"}],
            "cards": [
                {"id": "c1", "name": "Groceries", "idList": "l"},
                {"id": "c2", "name": "Severance S01E03", "idList": "l", "closed": True},
            ],
        }
        outcome = _run(ImportCoordinator(NO_DELAY), export)
        assert [t.text for t in outcome.result.tasks] == ["Groceries"]
        assert outcome.result.board_type == BoardType.MEDIA

    def test_default_board_name(self, watchlist_export):
        del watchlist_export["name"]
        outcome = _run(ImportCoordinator(NO_DELAY), watchlist_export)
        assert outcome.result.goal_title == "Imported Trello Board"

    def test_classifier_failure_is_absorbed(self, watchlist_export, caplog):
        class Flaky:
            def classify(self, task):
                raise ValueError("bad task")

        outcome = _run(ImportCoordinator(NO_DELAY, classifier=Flaky()), watchlist_export)
        assert outcome.success is True
        assert all(t.content_type is None for t in outcome.result.tasks)
        assert "Classification failed" in caplog.text


class TestStructuralErrors:
    def test_missing_cards(self, watchlist_export):
        del watchlist_export["cards"]
        updates = []
        coordinator = ImportCoordinator(NO_DELAY, on_progress=updates.append)
        outcome = _run(coordinator, watchlist_export)

        assert outcome.success is False
        assert outcome.result is None
        assert "export your board as JSON from Trello" in outcome.message
        assert coordinator.phase == ImportPhase.ERROR
        assert [u.phase for u in updates] == [ImportPhase.PARSING, ImportPhase.ERROR]

    def test_not_a_board(self):
        outcome = _run(ImportCoordinator(NO_DELAY), "hello")
        assert outcome.success is False


class TestProgress:
    def _board(self, n_cards: int) -> dict:
        return {
            "name": "Chores",
            "lists": [{"id": "l", "name": "Todo"}],
            "cards": [
                {"id": f"c{i}", "name": f"Chore {i}", "idList": "l", "pos": i}
                for i in range(n_cards)
            ],
        }

    def test_phase_sequence(self, watchlist_export, fake_provider):
        updates = []
        provider = fake_provider()
        coordinator = ImportCoordinator.with_provider(
            provider, NO_DELAY, on_progress=updates.append
        )
        _run(coordinator, watchlist_export)

        phases = [u.phase for u in updates]
        assert phases == [
            ImportPhase.PARSING,
            ImportPhase.DETECTING_TYPES,
            ImportPhase.DETECTING_TYPES,
            ImportPhase.ENRICHING,
            ImportPhase.ENRICHING,
            ImportPhase.FINALIZING,
            ImportPhase.STAGED,
        ]
        enriching = [u for u in updates if u.phase == ImportPhase.ENRICHING]
        assert [u.status_text for u in enriching] == ["loading: Breaking Bad", "loading: Dune"]
        assert [(u.current, u.total) for u in enriching] == [(0, 2), (1, 2)]

    def test_detection_reported_every_five(self):
        updates = []
        coordinator = ImportCoordinator(NO_DELAY, on_progress=updates.append)
        _run(coordinator, self._board(12))
        detecting = [
            (u.current, u.total) for u in updates if u.phase == ImportPhase.DETECTING_TYPES
        ]
        assert detecting == [(0, 12), (5, 12), (10, 12), (12, 12)]

    def test_callback_errors_are_ignored(self, caplog):
        def explode(update):
            raise RuntimeError("ui gone")

        outcome = _run(ImportCoordinator(NO_DELAY, on_progress=explode), self._board(2))
        assert outcome.success is True
        assert "Progress callback raised" in caplog.text

    def test_delay_between_enrichment_calls(self, watchlist_export, fake_provider, monkeypatch):
        pauses = []

        async def fake_sleep(delay):
            pauses.append(delay)

        monkeypatch.setattr("boardintake.intake.enrichment.asyncio.sleep", fake_sleep)
        config = ImportConfig(enrichment_delay_seconds=0.2)
        _run(ImportCoordinator.with_provider(fake_provider(), config), watchlist_export)
        assert pauses == [0.2]

    def test_second_run_starts_without_delay(self, watchlist_export, fake_provider, monkeypatch):
        pauses = []

        async def fake_sleep(delay):
            pauses.append(delay)

        monkeypatch.setattr("boardintake.intake.enrichment.asyncio.sleep", fake_sleep)
        config = ImportConfig(enrichment_delay_seconds=0.2)
        coordinator = ImportCoordinator.with_provider(fake_provider(), config)
        _run(coordinator, copy.deepcopy(watchlist_export))
        _run(coordinator, copy.deepcopy(watchlist_export))
        # One pause between the two fetches of each run, none across runs.
        assert pauses == [0.2, 0.2]


class _ListStore:
    def __init__(self, fail: bool = False):
        self.boards: list[StagedImportResult] = []
        self.fail = fail

    def append(self, result):
        if self.fail:
            raise StoreError("disk full")
        self.boards.append(result)


class TestPendingImport:
    def _staged(self, export) -> StagedImportResult:
        return _run(ImportCoordinator(NO_DELAY), export).result

    def test_commit_once(self, watchlist_export):
        pending = PendingImport(self._staged(watchlist_export))
        store = _ListStore()
        assert pending.commit(store) is True
        assert pending.commit(store) is False
        assert pending.discard() is False
        assert len(store.boards) == 1
        assert pending.committed is True

    def test_discard_once(self, watchlist_export):
        pending = PendingImport(self._staged(watchlist_export))
        store = _ListStore()
        assert pending.discard() is True
        assert pending.discard() is False
        assert pending.commit(store) is False
        assert store.boards == []
        assert pending.result is None

    def test_failed_commit_stays_pending(self, watchlist_export):
        pending = PendingImport(self._staged(watchlist_export))
        with pytest.raises(StoreError):
            pending.commit(_ListStore(fail=True))
        assert pending.pending is True
        assert pending.commit(_ListStore()) is True

    def test_run_never_touches_store(self, watchlist_export):
        store = _ListStore()
        _run(ImportCoordinator(NO_DELAY), watchlist_export)
        assert store.boards == []
