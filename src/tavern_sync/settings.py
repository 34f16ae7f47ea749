"""One-call assembly of connection and sync settings from every source."""

import logging
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv

from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """Validated connection config plus the full unified config."""

    config: Config
    unified: UnifiedConfig


def load_settings(config_overrides: dict[str, Any] | None = None) -> Settings:
    """Load settings with unified precedence.

    CLI overrides > env vars (``.env`` loaded first) > YAML config > defaults.

    Args:
        config_overrides: Optional dict with CLI values (url, username,
            password, api_key, insecure, debug).

    Raises:
        ValueError: If the merged configuration is invalid.
    """
    # .env first so ${VAR} interpolation in YAML can see its values
    load_dotenv()

    unified = UnifiedConfig()
    yaml_fallbacks: dict[str, Any] | None = None
    sources: list[str] = []

    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        yaml_fallbacks = {
            k: v
            for k, v in unified.tavern.model_dump().items()
            if v is not None
        }
        sources.append(f"config file: {config_files[0]}")

    overrides = config_overrides or {}
    config = load_config(
        url=overrides.get("url"),
        username=overrides.get("username"),
        password=overrides.get("password"),
        api_key=overrides.get("api_key"),
        insecure=overrides.get("insecure", False),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )

    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    logger.info("Configuration loaded from: %s", ", ".join(sources))
    logger.info("API URL: %s", config.api_url)
    return Settings(config=config, unified=unified)
