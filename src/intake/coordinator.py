"""Board import orchestration.

``ImportCoordinator.run`` walks one export through
parse → classify → enrich → finalize and stops at a staged result. It
never writes anywhere; persisting is the caller's job, done through
:class:`PendingImport`.

One coordinator must not run twice concurrently. Callers serialize.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from boardintake.errors import ExportFormatError
from boardintake.intake.classification import (
    ContentClassifier,
    TaskClassifier,
    classify_board,
    remap_media_categories,
)
from boardintake.intake.config import ImportConfig
from boardintake.intake.detection import NewContentDetector
from boardintake.intake.enrichment import (
    Enricher,
    FixedDelayLimiter,
    clean_title,
    is_eligible,
)
from boardintake.intake.models import (
    ImportOutcome,
    ImportPhase,
    ImportProgress,
    ImportSource,
    ImportStats,
    StagedImportResult,
    Task,
)
from boardintake.intake.parsers.trello import (
    BoardIndex,
    index_board,
    resolve_background_image,
    transform_cards,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportProgress], None]


def compute_stats(index: BoardIndex, tasks: list[Task]) -> ImportStats:
    return ImportStats(
        total_lists=len(index.open_lists),
        total_tasks=len(tasks),
        total_checklists=sum(len(t.checklists) for t in tasks),
        total_attachments=sum(len(t.attachments) for t in tasks),
        total_comments=sum(len(t.comments) for t in tasks),
        total_links=sum(len(t.links) for t in tasks),
    )


class ImportCoordinator:
    """Runs the import pipeline for one board export at a time.

    Args:
        config: Pipeline tunables.
        enricher: Metadata fetcher. ``None`` skips the enrichment phase.
        classifier: Per-task content classifier.
        detector: New-content detector applied after each successful
            enrichment.
        on_progress: Called synchronously with every progress update.
    """

    def __init__(
        self,
        config: ImportConfig | None = None,
        *,
        enricher: Enricher | None = None,
        classifier: TaskClassifier | None = None,
        detector: NewContentDetector | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.config = config or ImportConfig()
        self.enricher = enricher
        self.classifier = classifier or ContentClassifier()
        self.detector = detector or NewContentDetector()
        self.on_progress = on_progress
        self.phase = ImportPhase.IDLE

    @classmethod
    def with_provider(
        cls, provider, config: ImportConfig | None = None, **kwargs: Any
    ) -> ImportCoordinator:
        """Build a coordinator whose enricher paces calls by the configured delay."""
        config = config or ImportConfig()
        enricher = Enricher(provider, FixedDelayLimiter(config.enrichment_delay_seconds))
        return cls(config, enricher=enricher, **kwargs)

    def _emit(self, phase: ImportPhase, current: int = 0, total: int = 0, text: str = "") -> None:
        self.phase = phase
        if self.on_progress is None:
            return
        try:
            self.on_progress(
                ImportProgress(phase=phase, current=current, total=total, status_text=text)
            )
        except Exception:
            logger.warning("Progress callback raised; ignoring", exc_info=True)

    async def run(self, data: Any) -> ImportOutcome:
        """Import one decoded board export.

        Returns:
            A successful outcome carrying the staged result, or a failed
            outcome with a user-facing message when the export is not a
            usable board. No other failure ends the run.
        """
        self._emit(ImportPhase.PARSING, text="Parsing board export")
        try:
            index = index_board(data)
        except ExportFormatError as exc:
            logger.error("Board export rejected: %s", exc)
            self._emit(ImportPhase.ERROR, text=str(exc))
            return ImportOutcome(success=False, message=str(exc))

        tasks = transform_cards(index)
        board = classify_board(
            index.board.name,
            (lst.name for lst in index.open_lists),
            (card.name for card in index.cards),
        )
        if board.is_media:
            changed = remap_media_categories(tasks)
            logger.debug("Remapped %d task categories for %s board", changed, board.board_type)

        self._classify(tasks)
        await self._enrich(tasks)

        self._emit(ImportPhase.FINALIZING, text="Assembling board")
        stats = compute_stats(index, tasks)
        result = StagedImportResult(
            goal_title=index.board.name or self.config.default_board_name,
            goal_type=board.goal_type,
            board_type=board.board_type,
            tasks=tasks,
            background_image=resolve_background_image(
                index.board.prefs, self.config.max_background_width
            ),
            source=ImportSource(
                board_name=index.board.name,
                board_url=index.board.url or index.board.short_url,
            ),
            stats=stats,
        )

        summary = stats.summary()
        logger.info("Staged %s board %r: %s", board.board_type, result.goal_title, summary)
        self._emit(ImportPhase.STAGED, len(tasks), len(tasks), summary)
        return ImportOutcome(success=True, result=result, message=summary)

    def _classify(self, tasks: list[Task]) -> None:
        total = len(tasks)
        every = self.config.progress_every
        for i, task in enumerate(tasks):
            if i % every == 0:
                self._emit(ImportPhase.DETECTING_TYPES, i, total, "Detecting content types")
            try:
                classification = self.classifier.classify(task)
            except Exception:
                logger.warning("Classification failed for %r", task.text, exc_info=True)
                continue
            task.content_type = classification.kind
            task.content_type_confidence = classification.confidence
        self._emit(ImportPhase.DETECTING_TYPES, total, total, "Content types detected")

    async def _enrich(self, tasks: list[Task]) -> None:
        if not self.config.enrich or self.enricher is None:
            logger.info("Enrichment disabled; skipping")
            return

        self.enricher.reset()
        eligible = [t for t in tasks if is_eligible(t, self.config.confidence_threshold)]
        logger.info("Enriching %d of %d tasks", len(eligible), len(tasks))

        enriched = 0
        for i, task in enumerate(eligible):
            self._emit(
                ImportPhase.ENRICHING, i, len(eligible), f"loading: {clean_title(task.text)}"
            )
            if not await self.enricher.enrich_task(task):
                continue
            enriched += 1

            detection = self.detector.detect(
                task.text,
                task.content_type,
                task.cached_enrichment.data,
                task.checklists,
            )
            task.has_new_content = detection.has_new_content
            task.show_status = detection.status
            task.upcoming_content = detection.upcoming_content

        logger.info("Enriched %d of %d eligible tasks", enriched, len(eligible))


# ---------------------------------------------------------------------------
# Stage / commit
# ---------------------------------------------------------------------------


class ImportTarget(Protocol):
    def append(self, result: StagedImportResult) -> None: ...


class PendingImport:
    """A staged import awaiting a single commit or discard.

    Both operations are idempotent: only the first one of either kind
    has an effect, later calls return ``False``. A commit whose target
    raises leaves the import pending so it can be retried.
    """

    def __init__(self, result: StagedImportResult) -> None:
        self._result: StagedImportResult | None = result
        self.committed = False

    @property
    def result(self) -> StagedImportResult | None:
        return self._result

    @property
    def pending(self) -> bool:
        return self._result is not None

    def commit(self, target: ImportTarget) -> bool:
        if self._result is None:
            return False
        target.append(self._result)
        self._result = None
        self.committed = True
        return True

    def discard(self) -> bool:
        if self._result is None:
            return False
        logger.info("Discarded staged board %r", self._result.goal_title)
        self._result = None
        return True
