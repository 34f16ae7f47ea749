"""Server connection and async bridging."""

from .async_utils import run_sync
from .client import TavernClient

__all__ = ["TavernClient", "run_sync"]
