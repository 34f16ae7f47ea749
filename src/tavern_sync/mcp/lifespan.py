"""Startup and shutdown for the sync tools.

Settings, logging, the remote client and the sync engine are built once
here and handed to every tool call as a ``SyncContext``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..core.async_utils import run_sync
from ..core.client import TavernClient
from ..logger import setup_logging
from ..settings import Settings, load_settings
from ..sync.engine import SyncEngine
from ..sync.normalizer import NormalizationPolicy
from ..sync.progress import ProgressReporter
from ..sync.remote import RemoteStore
from ..sync.watcher import ChangeWatcher, watch

logger = logging.getLogger(__name__)


def build_engine(
    settings: Settings,
    client: RemoteStore,
    reporter: ProgressReporter | None = None,
) -> SyncEngine:
    """Build a ``SyncEngine`` with the identity and normalize options of *settings*."""
    sync = settings.unified.sync
    return SyncEngine(
        client,
        reporter=reporter,
        policy=NormalizationPolicy(
            zero_means_unset=sync.normalize.zero_means_unset
        ),
        duplicates=sync.identity.duplicates,
    )


@dataclass(frozen=True)
class SyncContext:
    """Everything a tool call needs, built once at startup.

    Attributes:
        settings: Connection config plus the unified config.
        client: Remote store the engine talks to.
        engine: Engine configured from ``settings.unified.sync``.
    """

    settings: Settings
    client: RemoteStore
    engine: SyncEngine

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: RemoteStore | None = None,
        reporter: ProgressReporter | None = None,
    ) -> "SyncContext":
        """Build the context; a ``TavernClient`` is created unless *client* is given."""
        if client is None:
            client = TavernClient(settings.config)
        return cls(
            settings=settings,
            client=client,
            engine=build_engine(settings, client, reporter),
        )

    async def watch(
        self, project_dir: Path, name: str | None = None
    ) -> ChangeWatcher:
        """Auto-push *project_dir* using the configured debounce timings."""
        timings = self.settings.unified.sync.watch
        return await watch(
            self.engine,
            project_dir,
            name,
            stability_threshold=timings.stability_threshold,
            poll_interval=timings.poll_interval,
        )


def configure_logging(settings: Settings, mode: str = "mcp") -> None:
    """Set up logging from the ``logging`` section of *settings*."""
    setup_logging(
        mode=mode,
        debug=settings.config.debug,
        log_file=settings.unified.logging.file,
        default_level=settings.unified.logging.level,
    )


@asynccontextmanager
async def sync_lifespan(
    config_overrides: dict[str, Any] | None = None,
    mode: str = "mcp",
    check_connection: bool = True,
) -> AsyncIterator[SyncContext]:
    """
    Manage startup and shutdown of the sync tools.

    On startup:
    - Load settings once: CLI > env vars (.env first) > YAML config > defaults
    - Configure logging from the ``logging`` section
    - Create the client and engine
    - Fail fast if the server is unreachable (unless *check_connection* is off)

    Args:
        config_overrides: Optional dict with CLI values (url, username,
            password, api_key, insecure, debug).
        mode: Logging mode passed to ``setup_logging``.
        check_connection: Verify the server answers before yielding.

    Yields:
        The ``SyncContext`` shared by every tool call.

    Raises:
        RuntimeError: If configuration is invalid or the server is unreachable.
    """
    try:
        settings = load_settings(config_overrides)
    except ValueError as e:
        raise RuntimeError(f"Configuration error: {e}") from e

    configure_logging(settings, mode)
    logger.info("tavern-sync starting, API URL: %s", settings.config.api_url)

    client = TavernClient(settings.config)
    if check_connection:
        connected = await run_sync(client.check_connection)
        if not connected:
            raise RuntimeError(
                f"Cannot reach SillyTavern at {settings.config.api_url}. "
                "Check ST_API_URL and that the server is running."
            )
        logger.info("Connected to %s", settings.config.api_url)

    context = SyncContext.from_settings(settings, client)
    try:
        yield context
    finally:
        logger.info("tavern-sync shutting down")
