"""JSON-file board store, the default commit target for staged imports."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field

from boardintake.errors import StoreError
from boardintake.intake.models import StagedImportResult

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path(".boardintake") / "boards.json"


class StoredBoards(BaseModel):
    boards: list[StagedImportResult] = Field(default_factory=list)


class BoardStore:
    """Append-only collection of committed boards kept in one JSON file.

    A file that cannot be read is treated as empty. The first append
    after that moves it to ``<name>.bak`` instead of overwriting it.
    """

    def __init__(self, path: Path | str = DEFAULT_STORE_PATH) -> None:
        self.path = Path(path)

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    def _load(self) -> StoredBoards | None:
        """Read the store; ``None`` means the file exists but is corrupt."""
        if not self.path.exists():
            return StoredBoards()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return StoredBoards.model_validate(data)
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt board store at %s, starting fresh", self.path)
            return None

    def boards(self) -> list[StagedImportResult]:
        stored = self._load()
        return stored.boards if stored is not None else []

    def append(self, result: StagedImportResult) -> None:
        stored = self._load()
        try:
            if stored is None:
                self.path.replace(self.backup_path)
                logger.warning("Moved corrupt board store to %s", self.backup_path)
                stored = StoredBoards()
            stored.boards.append(result)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(stored.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"Could not write board store {self.path}: {exc}") from exc
        logger.info(
            "Committed board %r (%d tasks) to %s",
            result.goal_title,
            len(result.tasks),
            self.path,
        )
