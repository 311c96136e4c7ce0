"""Error types shared across the import pipeline.

Only :class:`ExportFormatError` is structural: it means the input file
cannot be read as a board export at all. Everything else is absorbed
per item by the stage that raised it and surfaces only in logs.
"""

from __future__ import annotations


class BoardIntakeError(Exception):
    """Base error for boardintake."""


class ExportFormatError(BoardIntakeError):
    """The board export is missing a required collection or is not a board."""

    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class EnrichmentError(BoardIntakeError):
    """A metadata provider failed to fetch or decode a response."""


class StoreError(BoardIntakeError):
    """The caller-side board store could not be written."""
