"""Unified configuration schema for tavern_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the server connection, logging and sync behavior.  Includes
an adapter to the flat ``Config`` dataclass used by ``TavernClient``.

Usage:
    from tavern_sync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"url": "http://..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class TavernConfig(BaseModel):
    """Server connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Server URL")
    username: str | None = Field(
        default=None, description="Basic-auth username"
    )
    password: str | None = Field(
        default=None, description="Basic-auth password"
    )
    api_key: str | None = Field(default=None, description="Bearer token")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    timeout: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Read timeout in seconds (1-3600)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class WatchConfig(BaseModel):
    """Debounce timing for the change watcher, in seconds."""

    stability_threshold: float = Field(default=0.5, gt=0)
    poll_interval: float = Field(default=0.1, gt=0)

    model_config = {"frozen": True}


class IdentityConfig(BaseModel):
    """How the diff engine treats two entries with the same name.

    ``last-wins`` keeps the later entry; ``disambiguate`` suffixes
    repeats with ``#2``, ``#3``...
    """

    duplicates: Literal["last-wins", "disambiguate"] = "last-wins"

    model_config = {"frozen": True}


class NormalizeConfig(BaseModel):
    """Canonical-form options for comparisons."""

    zero_means_unset: bool = Field(
        default=True,
        description="Treat sticky/cooldown/delay/role of 0 as unset",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync engine and watcher behavior."""

    watch: WatchConfig = Field(default_factory=WatchConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    normalize: NormalizeConfig = Field(default_factory=NormalizeConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    tavern: TavernConfig = Field(default_factory=TavernConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Missing sections get defaults.  A ``null`` section is treated as absent.
    """
    if not raw_data:
        return UnifiedConfig()

    cleaned = {k: v for k, v in raw_data.items() if v is not None}
    return UnifiedConfig(**cleaned)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass.

    The precedence applied here is:
        CLI override > unified config value > built-in default

    CLI overrides dict keys: url, username, password, api_key, insecure,
    debug.

    Returns:
        ``Config`` instance (NOT validated; run ``validate_config()``).
    """
    # Import here to avoid circular imports
    from .config import DEFAULT_API_URL, Config

    overrides = cli_overrides or {}

    return Config(
        api_url=overrides.get("url") or unified.tavern.url or DEFAULT_API_URL,
        username=overrides.get("username") or unified.tavern.username,
        password=overrides.get("password") or unified.tavern.password,
        api_key=overrides.get("api_key") or unified.tavern.api_key,
        insecure=overrides.get("insecure", False) or unified.tavern.insecure,
        debug=overrides.get("debug", False) or unified.tavern.debug,
        timeout=unified.tavern.timeout,
    )
