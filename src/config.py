"""Unified configuration loaded from .boardintake.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from boardintake.intake.config import DEFAULT_USER_AGENT, ImportConfig, ProviderConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".boardintake.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "boardintake" / "config.toml"


class IntakeSectionConfig(BaseModel):
    """[intake] section."""

    confidence_threshold: int = Field(default=25, ge=0, le=100)
    enrichment_delay_seconds: float = Field(default=0.2, ge=0)
    progress_every: int = Field(default=5, ge=1)
    max_background_width: int = 10000
    enrich: bool = True


class ProvidersSectionConfig(BaseModel):
    """[providers] section."""

    timeout: int = 15
    user_agent: str = DEFAULT_USER_AGENT


class StoreSectionConfig(BaseModel):
    """[store] section."""

    path: str = ".boardintake/boards.json"


class BoardIntakeConfig(BaseModel):
    """Top-level configuration model."""

    intake: IntakeSectionConfig = Field(default_factory=IntakeSectionConfig)
    providers: ProvidersSectionConfig = Field(default_factory=ProvidersSectionConfig)
    store: StoreSectionConfig = Field(default_factory=StoreSectionConfig)

    def to_import_config(self) -> ImportConfig:
        """Convert to ImportConfig for the import coordinator."""
        return ImportConfig(
            confidence_threshold=self.intake.confidence_threshold,
            enrichment_delay_seconds=self.intake.enrichment_delay_seconds,
            progress_every=self.intake.progress_every,
            max_background_width=self.intake.max_background_width,
            enrich=self.intake.enrich,
            providers=ProviderConfig(
                timeout=self.providers.timeout,
                user_agent=self.providers.user_agent,
            ),
        )


def load_config(path: str | Path | None = None) -> BoardIntakeConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .boardintake.toml in CWD
    3. ~/.config/boardintake/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged BoardIntakeConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = _validate(data)
    return _apply_env_vars(config)


def merge_cli_overrides(config: BoardIntakeConfig, **cli_kwargs: object) -> BoardIntakeConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "enrich": ("intake", "enrich"),
        "confidence_threshold": ("intake", "confidence_threshold"),
        "enrichment_delay": ("intake", "enrichment_delay_seconds"),
        "store_path": ("store", "path"),
        "timeout": ("providers", "timeout"),
    }

    for key, value in cli_kwargs.items():
        if value is None or key not in mapping:
            continue
        section, field = mapping[key]
        data[section][field] = value

    return BoardIntakeConfig.model_validate(data)


def _validate(data: dict[str, object]) -> BoardIntakeConfig:
    if not data:
        return BoardIntakeConfig()
    try:
        return BoardIntakeConfig.model_validate(data)
    except ValidationError as exc:
        logger.warning("Invalid configuration, using defaults: %s", exc)
        return BoardIntakeConfig()


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: BoardIntakeConfig) -> BoardIntakeConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "BOARDINTAKE_CONFIDENCE_THRESHOLD": ("intake", "confidence_threshold"),
        "BOARDINTAKE_ENRICHMENT_DELAY": ("intake", "enrichment_delay_seconds"),
        "BOARDINTAKE_STORE_PATH": ("store", "path"),
        "BOARDINTAKE_PROVIDER_TIMEOUT": ("providers", "timeout"),
    }

    changed = False
    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value:
            data[section][field] = value
            changed = True

    if not changed:
        return config
    try:
        return BoardIntakeConfig.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring invalid environment overrides: %s", exc)
        return config
