"""Async utilities for bridging the synchronous sync engine to asyncio."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used by the change watcher and the tool handlers to call the
    requests-based engine and client.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        engine = SyncEngine(TavernClient(config))
        result = await run_sync(engine.push, project_dir)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
