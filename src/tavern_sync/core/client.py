import json
import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import RemoteError
from ..sync.models import LoreBook

logger = logging.getLogger(__name__)

# Fields the character edit endpoint takes as top-level form values.
_CHARACTER_TEXT_FIELDS = (
    "description",
    "personality",
    "scenario",
    "first_mes",
    "mes_example",
)


class TavernClient:
    """Whole-resource access to a SillyTavern server.

    Implements the ``RemoteStore`` protocol used by the sync engine.  Every
    endpoint is a JSON ``POST``; non-2xx responses raise ``RemoteError``.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.api_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {"Content-Type": "application/json", "Accept": "application/json"}
        )
        if self.config.username and self.config.password:
            session.auth = (self.config.username, self.config.password)
        elif self.config.api_key:
            session.headers["Authorization"] = f"Bearer {self.config.api_key}"
        session.verify = not self.config.insecure
        return session

    def _request(
        self, endpoint: str, payload: dict[str, Any] | None = None
    ) -> requests.Response:
        """POST *payload* to *endpoint* and return the raw response.

        Raises:
            RemoteError: On transport failure (status 0) or non-2xx status.
        """
        session = self._get_session()
        try:
            response = session.post(
                f"{self.base_url}{endpoint}",
                json=payload if payload is not None else {},
                timeout=(10, self.config.timeout),
            )
        except requests.RequestException as exc:
            raise RemoteError(0, str(exc), endpoint) from exc

        if not 200 <= response.status_code < 300:
            raise RemoteError(response.status_code, response.text, endpoint)
        return response

    def _post_json(
        self, endpoint: str, payload: dict[str, Any] | None = None
    ) -> Any:
        response = self._request(endpoint, payload)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Some edit endpoints answer with plain "OK"
            return response.text

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def check_connection(self) -> bool:
        """Return True when the server answers the settings endpoint."""
        try:
            self._post_json("/api/settings/get")
        except RemoteError as exc:
            logger.warning("Connection check failed: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Lore Books
    # ------------------------------------------------------------------

    def list_lorebooks(self) -> list[str]:
        """Return the names of all Lore Books known to the server."""
        settings = self._post_json("/api/settings/get")
        if not isinstance(settings, dict):
            return []
        return list(settings.get("world_names") or [])

    def fetch_lorebook(self, name: str) -> dict[str, Any] | None:
        """Fetch a Lore Book payload, or None when the server has none."""
        try:
            data = self._post_json("/api/worldinfo/get", {"name": name})
        except RemoteError as exc:
            if exc.status == 404:
                return None
            raise
        if not isinstance(data, dict) or not data:
            return None
        return data

    def replace_lorebook(self, name: str, book: LoreBook) -> None:
        """Replace the remote Lore Book *name* with *book* wholesale."""
        entries = book.to_payload()["entries"]
        logger.debug("Replacing Lore Book '%s' (%d entries)", name, len(entries))
        self._post_json(
            "/api/worldinfo/edit",
            {"name": name, "data": {"entries": entries}},
        )

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def list_characters(self) -> list[dict[str, Any]]:
        """Return the summary records of every character."""
        data = self._post_json("/api/characters/all")
        return data if isinstance(data, list) else []

    def _get_character(self, avatar_url: str) -> dict[str, Any] | None:
        data = self._post_json(
            "/api/characters/get", {"avatar_url": avatar_url}
        )
        if isinstance(data, dict) and data.get("name"):
            return data
        return None

    def fetch_character(self, name: str) -> dict[str, Any] | None:
        """Fetch a character by display name or avatar filename.

        Tries ``name`` and ``name.png`` as avatar ids first, then scans the
        full character list.

        Returns:
            The character record, or None if nothing matches.
        """
        for candidate in (name, f"{name}.png"):
            try:
                found = self._get_character(candidate)
            except RemoteError as exc:
                if exc.status == 0 or exc.status >= 500:
                    raise
                logger.debug("Avatar guess '%s' failed: %s", candidate, exc)
                continue
            if found is not None:
                return found

        logger.warning(
            "Character '%s' not found by filename, scanning all characters",
            name,
        )
        for summary in self.list_characters():
            avatar = summary.get("avatar")
            if summary.get("name") == name or avatar in (name, f"{name}.png"):
                if not avatar:
                    return None
                return self._get_character(avatar)
        return None

    def replace_character(self, name: str, payload: dict[str, Any]) -> None:
        """Overwrite a character with *payload* (the full card record).

        ``payload['avatar']`` identifies the remote record; ``chat`` and
        ``create_date`` are passed through so the server keeps them.
        """
        data_block = payload.get("data") or {}
        world = (data_block.get("extensions") or {}).get("world")
        form: dict[str, Any] = {
            "avatar_url": payload.get("avatar"),
            "ch_name": payload.get("name") or name,
        }
        for field in _CHARACTER_TEXT_FIELDS:
            form[field] = payload.get(field) or ""
        form["chat"] = payload.get("chat")
        form["create_date"] = payload.get("create_date")
        if world:
            form["extensions"] = json.dumps({"world": world})
        form["json_data"] = json.dumps(payload, ensure_ascii=False)

        logger.debug("Replacing character '%s'", name)
        self._post_json("/api/characters/edit", form)

    def fetch_asset(self, asset_id: str) -> bytes:
        """Download a character's PNG card by avatar id."""
        response = self._request(
            "/api/characters/export",
            {"format": "png", "avatar_url": asset_id},
        )
        return response.content
