"""
Config file discovery and loading for tavern_sync.

A project keeps ``sillytavern.config.yaml`` at (or above) its working
directory; a user-wide file under ``~/.config/tavern_sync`` supplies
defaults.  Files may pull in fragments with ``!include`` and reference
environment variables as ``${VAR}`` or ``${VAR:-default}``.

Usage:
    from tavern_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = "sillytavern.config.yaml"
GLOBAL_CONFIG_PATH = Path("~/.config/tavern_sync/config.yml")
CONFIG_ENV_VAR = "TAVERN_SYNC_CONFIG"
MAX_SEARCH_DEPTH = 10

# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<fallback>.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-fallback}`` references in *value*.

    An unset or empty variable expands to its fallback, or to ``""`` when
    none is given.  An unterminated ``${`` is kept as written.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m["name"]) or m["fallback"] or "", value
    )


def _expand(node: Any) -> Any:
    match node:
        case str():
            return interpolate_env_vars(node)
        case dict():
            return {key: _expand(item) for key, item in node.items()}
        case list():
            return [_expand(item) for item in node]
        case _:
            return node


# ---------------------------------------------------------------------------
# YAML with !include
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader that resolves ``!include <path>`` relative to its file.

    Each loader carries the chain of files that led to it so that a cycle
    is reported instead of recursing forever.  ``yaml.SafeLoader`` itself
    is left untouched.
    """

    chain: tuple[Path, ...] = ()

    def include(self, node: yaml.ScalarNode) -> Any:
        target = Path(self.construct_scalar(node)).expanduser()
        origin = Path(self.name).resolve()
        if not target.is_absolute():
            target = origin.parent / target
        target = target.resolve()

        if target in self.chain:
            cycle = " -> ".join(str(p) for p in (*self.chain, target))
            raise ValueError(f"Circular include detected: {cycle}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} (from {origin})"
            )
        return read_config_file(target, chain=self.chain)


IncludeLoader.add_constructor("!include", IncludeLoader.include)


def read_config_file(path: Path, *, chain: tuple[Path, ...] = ()) -> Any:
    """Parse one YAML config file, following ``!include`` directives.

    Raises:
        ValueError: On an include cycle.
        FileNotFoundError: If an included file is missing.
        yaml.YAMLError: If a file is not valid YAML.
    """
    path = path.resolve()
    with path.open(encoding="utf-8") as stream:
        loader = IncludeLoader(stream)
        loader.chain = (*chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def find_project_config(start: Path | None = None) -> Path | None:
    """Return the nearest ``sillytavern.config.yaml`` at or above *start*.

    *start* defaults to the CWD.  At most ``MAX_SEARCH_DEPTH`` directories
    are inspected.
    """
    start_dir = (start or Path.cwd()).resolve()
    for directory in [start_dir, *start_dir.parents][:MAX_SEARCH_DEPTH]:
        candidate = directory / PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
    return None


def discover_config_files() -> list[Path]:
    """List the config files that exist, highest precedence first.

    1. The file named by ``TAVERN_SYNC_CONFIG``.
    2. The nearest project file (see ``find_project_config``).
    3. ``~/.config/tavern_sync/config.yml``.
    """
    found: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        found.append(Path(explicit).expanduser().resolve())
    project = find_project_config()
    if project is not None:
        found.append(project)
    found.append(GLOBAL_CONFIG_PATH.expanduser())
    return [path for path in found if path.exists()]


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# tavern-sync configuration
#
# Connection settings can also be set via environment variables:
#   ST_API_URL, ST_USERNAME, ST_PASSWORD, ST_API_KEY, ST_INSECURE_SSL
#
# tavern:
#   url: http://127.0.0.1:8000
#   username: ${ST_USERNAME}
#   password: ${ST_PASSWORD}
#   insecure: false
#   timeout: 60
#
# sync:
#   watch:
#     stability_threshold: 0.5
#     poll_interval: 0.1
#   identity:
#     duplicates: last-wins
#   normalize:
#     zero_means_unset: true
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Path of the config file in effect, or the CWD project file if none.

    Nothing is created; see ``ensure_config``.
    """
    return next(iter(discover_config_files()), Path.cwd() / PROJECT_CONFIG_NAME)


def ensure_config(target: Path | None = None) -> Path:
    """Return the config file in effect, writing a commented starter if none.

    Args:
        target: Where to write the starter.  Defaults to
            ``resolve_config_path()``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Using existing config %s", existing[0])
        return existing[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Wrote starter config to %s", path)
    return path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one raw dict.

    Lower-precedence files are applied first and a later file replaces
    whole top-level sections; there is no deep merge.  Environment
    references are expanded on the merged result.  With no config file at
    all the result is ``{}``.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Reading config %s", path)
        try:
            data = read_config_file(path)
        except (OSError, ValueError, yaml.YAMLError):
            logger.error("Could not load config file %s", path)
            raise
        match data:
            case dict():
                merged.update(data)
            case None:
                pass
            case _:
                logger.warning(
                    "Ignoring %s: top level is %s, not a mapping",
                    path,
                    type(data).__name__,
                )
    if not merged:
        logger.debug("No config found, using defaults")
    return _expand(merged)
