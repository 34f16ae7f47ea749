"""Error taxonomy shared by the sync engine, the remote client and tool handlers.

- ``ValidationError``: an Entry, Lore Book or Character failed schema checks.
- ``NotFoundError``: the named remote collection or character is absent or empty.
- ``RemoteError``: the remote API answered with a non-2xx status.
- ``MalformedLocalStateError``: the local project tree cannot be interpreted.

Local I/O failures are left as ``OSError``.
"""

from __future__ import annotations


class TavernSyncError(Exception):
    """Base class for all tavern-sync errors."""


class ValidationError(TavernSyncError):
    """Schema validation failed.

    Attributes:
        label: What was being validated (e.g. ``"Entry rule_a"``).
        errors: Field-level messages, ``"path: message"`` each.
    """

    def __init__(self, label: str, errors: list[str]) -> None:
        self.label = label
        self.errors = list(errors)
        detail = "; ".join(self.errors) if self.errors else "invalid data"
        super().__init__(f"{label} validation failed: {detail}")


class NotFoundError(TavernSyncError):
    """A named remote resource does not exist or has no entries."""


class RemoteError(TavernSyncError):
    """The remote API returned a non-2xx response.

    Attributes:
        status: HTTP status code.
        body: Response body text, kept for diagnosis.
    """

    def __init__(self, status: int, body: str, endpoint: str = "") -> None:
        self.status = status
        self.body = body
        self.endpoint = endpoint
        where = f" ({endpoint})" if endpoint else ""
        super().__init__(f"Tavern API error {status}{where}: {body}")


class MalformedLocalStateError(TavernSyncError):
    """The local project tree is missing required files or is inconsistent."""
