"""Shared pytest fixtures for tavern-sync tests."""

from __future__ import annotations

import copy
from typing import Any
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from tavern_sync.config import Config
from tavern_sync.sync.models import LoreBook

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live SillyTavern server",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live SillyTavern server"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeRemoteStore:
    """In-memory stand-in for ``TavernClient``.

    Books are stored as raw payloads (``{"entries": {...}}``) exactly as the
    server would return them; every replace is recorded.
    """

    def __init__(
        self,
        books: dict[str, dict[str, Any]] | None = None,
        characters: dict[str, dict[str, Any]] | None = None,
        assets: dict[str, bytes] | None = None,
    ) -> None:
        self.books: dict[str, dict[str, Any]] = books or {}
        self.characters: dict[str, dict[str, Any]] = characters or {}
        self.assets: dict[str, bytes] = assets or {}
        self.book_replacements: list[tuple[str, LoreBook]] = []
        self.character_replacements: list[tuple[str, dict[str, Any]]] = []
        self.calls: list[str] = []

    def fetch_lorebook(self, name: str) -> dict[str, Any] | None:
        self.calls.append(f"fetch_lorebook:{name}")
        book = self.books.get(name)
        return copy.deepcopy(book) if book is not None else None

    def replace_lorebook(self, name: str, book: LoreBook) -> None:
        self.calls.append(f"replace_lorebook:{name}")
        self.book_replacements.append((name, book))
        self.books[name] = {"entries": book.to_payload()["entries"]}

    def fetch_character(self, name: str) -> dict[str, Any] | None:
        self.calls.append(f"fetch_character:{name}")
        record = self.characters.get(name)
        return copy.deepcopy(record) if record is not None else None

    def replace_character(self, name: str, payload: dict[str, Any]) -> None:
        self.calls.append(f"replace_character:{name}")
        self.character_replacements.append((name, payload))
        self.characters[name] = copy.deepcopy(payload)

    def fetch_asset(self, asset_id: str) -> bytes:
        self.calls.append(f"fetch_asset:{asset_id}")
        return self.assets.get(asset_id, b"")

    def list_lorebooks(self) -> list[str]:
        return sorted(self.books)

    def list_characters(self) -> list[dict[str, Any]]:
        return [
            {
                "name": record.get("name"),
                "avatar": record.get("avatar"),
                "tags": record.get("tags", []),
            }
            for record in self.characters.values()
        ]


def remote_entry(uid: int, comment: str | None, content: str, **extra: Any):
    """Build a remote entry payload the way the server stores it."""
    entry: dict[str, Any] = {
        "uid": uid,
        "key": extra.pop("key", [comment.lower()] if comment else []),
        "keysecondary": extra.pop("keysecondary", []),
        "comment": comment,
        "content": content,
        "order": extra.pop("order", 100),
        "displayIndex": uid,
    }
    entry.update(extra)
    return entry


@pytest.fixture
def fake_remote():
    """Empty in-memory remote store."""
    return FakeRemoteStore()


@pytest.fixture
def mock_config():
    """Create a mock Config instance for testing."""
    return Config(
        api_url="http://tavern.example.com:8000",
        username="testuser",
        password="testpass",
        insecure=False,
    )


@pytest.fixture
def mock_tavern_client(mock_config):
    """Create a mock TavernClient instance for testing."""
    from tavern_sync.core.client import TavernClient

    client = MagicMock(spec=TavernClient)
    client.config = mock_config
    return client
