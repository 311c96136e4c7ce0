"""Import pipeline configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_USER_AGENT = "boardintake/0.1 (+https://github.com/boardintake/boardintake)"


class ProviderConfig(BaseModel):
    """Metadata provider configuration."""

    timeout: int = 15
    user_agent: str = DEFAULT_USER_AGENT
    jikan_base_url: str = "https://api.jikan.moe/v4"
    openlibrary_base_url: str = "https://openlibrary.org"


class ImportConfig(BaseModel):
    """Tunables for one board import run.

    ``confidence_threshold`` and ``enrichment_delay_seconds`` were tuned
    on a single dataset; treat them as knobs, not constants.
    """

    confidence_threshold: int = Field(default=25, ge=0, le=100)
    enrichment_delay_seconds: float = Field(default=0.2, ge=0)
    progress_every: int = Field(default=5, ge=1)
    max_background_width: int = 10000
    enrich: bool = True
    default_board_name: str = "Imported Trello Board"
    providers: ProviderConfig = Field(default_factory=ProviderConfig)
