"""Connection configuration for the SillyTavern server.

Reads connection settings from CLI args, environment variables, .env
files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    ST_API_URL: Server URL (optional, default: http://127.0.0.1:8000)
    ST_USERNAME: Basic-auth username (optional, requires ST_PASSWORD)
    ST_PASSWORD: Basic-auth password (optional, requires ST_USERNAME)
    ST_API_KEY: Bearer token, used when no basic-auth pair is set (optional)
    ST_INSECURE_SSL: Skip SSL verification (optional, default: false)
    ST_TIMEOUT: Read timeout in seconds (optional, default: 60)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://127.0.0.1:8000"
DEFAULT_TIMEOUT = 60


@dataclass
class Config:
    api_url: str = DEFAULT_API_URL
    username: str | None = None
    password: str | None = None
    api_key: str | None = None
    insecure: bool = False
    debug: bool = False
    timeout: int = DEFAULT_TIMEOUT


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL format is invalid, only one half of the
            username/password pair is set, or the timeout is out of range.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if bool(config.username) != bool(config.password):
        raise ValueError(
            "ST_USERNAME and ST_PASSWORD must be set together for basic auth."
        )

    if not 1 <= config.timeout <= 3600:
        raise ValueError(
            f"Invalid timeout '{config.timeout}': must be between 1 and 3600 seconds"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def load_config(
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    api_key: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override server URL.
        username: Override basic-auth username.
        password: Override basic-auth password.
        api_key: Override bearer token.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config ``tavern``
            section, used when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    api_url = (
        url
        or os.getenv("ST_API_URL")
        or fb.get("url")
        or DEFAULT_API_URL
    )
    final_username = username or os.getenv("ST_USERNAME") or fb.get("username")
    final_password = password or os.getenv("ST_PASSWORD") or fb.get("password")
    final_api_key = api_key or os.getenv("ST_API_KEY") or fb.get("api_key")

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if insecure:
        final_insecure = True
    else:
        env_insecure = get_bool_env("ST_INSECURE_SSL")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("ST_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout_raw = os.getenv("ST_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = int(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid ST_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "timeout" in fb:
        final_timeout = int(fb["timeout"])
    else:
        final_timeout = DEFAULT_TIMEOUT

    config = Config(
        api_url=api_url.strip(),
        username=final_username.strip() if final_username else None,
        password=final_password if final_password else None,
        api_key=final_api_key.strip() if final_api_key else None,
        insecure=final_insecure,
        debug=final_debug,
        timeout=final_timeout,
    )

    validate_config(config)

    return config
