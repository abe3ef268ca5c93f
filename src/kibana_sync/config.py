"""Run configuration for kibana-sync.

Reads Kibana connection settings and repository paths from CLI args,
environment variables, a credentials (.env) file, and YAML config file
fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > credentials file > YAML config > Built-in defaults

Environment variables:
    KIBANA_URL: Kibana base URL (required)
    KIBANA_SPACE: Space id (optional, default: default)
    KIBANA_APIKEY: API key, takes priority over username/password
    KIBANA_USERNAME / KIBANA_PASSWORD: Basic auth credentials
    KIBANA_INSECURE: Skip SSL verification (optional, default: false)
    KIBANA_KEEP_TEMP: Keep staging directories after a run (optional)
    KIBANA_MANIFEST: Manifest file path (optional, default: manifest.json)
    KIBANA_OBJECTS_DIR: Objects directory (optional, default: objects)
    LLM_URL / LLM_API_KEY / LLM_MODEL / LLM_TEMPERATURE: diff summarizer
    DIFF_CHUNK_LINES: Lines per summarized diff chunk (optional, default: 300)
"""

import base64
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SPACE = "default"
DEFAULT_MANIFEST = "manifest.json"
DEFAULT_OBJECTS_DIR = "objects"
DEFAULT_LLM_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_LLM_MODEL = "gpt-4o-mini"
DEFAULT_CHUNK_LINES = 300


@dataclass(frozen=True)
class Config:
    kibana_url: str
    space: str = DEFAULT_SPACE
    apikey: str | None = None
    username: str | None = None
    password: str | None = None
    insecure: bool = False
    debug: bool = False
    keep_temp: bool = False
    manifest_path: Path = Path(DEFAULT_MANIFEST)
    objects_dir: Path = Path(DEFAULT_OBJECTS_DIR)
    llm_url: str = DEFAULT_LLM_URL
    llm_api_key: str | None = None
    llm_model: str = DEFAULT_LLM_MODEL
    llm_temperature: float = 0.2
    diff_chunk_lines: int = DEFAULT_CHUNK_LINES

    @property
    def auth_mode(self) -> str:
        """Return ``apikey``, ``basic`` or ``none``."""
        if self.apikey:
            return "apikey"
        if self.username and self.password:
            return "basic"
        return "none"

    def auth_header(self) -> str | None:
        """Return the Authorization header value for the configured mode."""
        match self.auth_mode:
            case "apikey":
                return f"ApiKey {self.apikey}"
            case "basic":
                token = base64.b64encode(
                    f"{self.username}:{self.password}".encode("utf-8")
                ).decode("ascii")
                return f"Basic {token}"
            case _:
                return None


def validate_config(config: Config) -> Config:
    """Validate configuration values and return a normalized copy.

    Args:
        config: Config instance to validate.

    Returns:
        Config with the URL stripped of whitespace and trailing slash.

    Raises:
        ConfigurationError: If URL format is invalid, the space is empty or
            only half of a username/password pair is set.
    """
    url = config.kibana_url.strip()

    if not url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Invalid Kibana URL '{url}': must start with http:// or https://"
        )

    parsed = urlparse(url)
    if not parsed.hostname:
        raise ConfigurationError(
            f"Invalid Kibana URL '{url}': URL must include a hostname"
        )

    url = url.removesuffix("/")

    if not config.space.strip():
        raise ConfigurationError(
            "Kibana space cannot be empty. Set KIBANA_SPACE or pass --space."
        )

    if not config.apikey and bool(config.username) != bool(config.password):
        raise ConfigurationError(
            "Both KIBANA_USERNAME and KIBANA_PASSWORD must be set for basic auth."
        )

    if not 1 <= config.diff_chunk_lines <= 100_000:
        raise ConfigurationError(
            f"Invalid diff chunk size {config.diff_chunk_lines}: "
            "must be a number between 1 and 100000"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )
    if config.auth_mode == "none":
        logger.debug("No Kibana credentials configured; sending anonymous requests")

    return replace(config, kibana_url=url, space=config.space.strip())


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _resolve_flag(cli_value: bool, env_key: str, fallback) -> bool:
    if cli_value:
        return True
    env_value = _get_bool_env(env_key)
    if env_value is not None:
        return env_value
    return bool(fallback)


def load_config(
    url: str | None = None,
    space: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    keep_temp: bool = False,
    manifest: str | None = None,
    objects_dir: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / credentials file > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` on the selected
    credentials file before this function so that its values are
    available via ``os.getenv()``.

    Args:
        url: Override Kibana URL.
        space: Override space id.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        keep_temp: Keep staging directories (CLI flag).
        manifest: Override manifest path.
        objects_dir: Override objects directory.
        yaml_fallbacks: Flat dict of values from the YAML config file.

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationError: If the Kibana URL is missing after checking all
            sources, or a numeric setting is malformed.
    """
    fb = yaml_fallbacks or {}

    kibana_url = url or os.getenv("KIBANA_URL") or fb.get("url")
    if not kibana_url:
        raise ConfigurationError(
            "Kibana URL not found. Set KIBANA_URL in the credentials file, "
            "pass --url, or add 'url' to .kibana_sync/config.yml."
        )

    final_space = space or os.getenv("KIBANA_SPACE") or fb.get("space") or DEFAULT_SPACE

    apikey = os.getenv("KIBANA_APIKEY") or fb.get("apikey")
    username = os.getenv("KIBANA_USERNAME") or fb.get("username")
    password = os.getenv("KIBANA_PASSWORD") or fb.get("password")

    final_manifest = (
        manifest or os.getenv("KIBANA_MANIFEST") or fb.get("manifest") or DEFAULT_MANIFEST
    )
    final_objects = (
        objects_dir
        or os.getenv("KIBANA_OBJECTS_DIR")
        or fb.get("objects_dir")
        or DEFAULT_OBJECTS_DIR
    )

    chunk_raw = os.getenv("DIFF_CHUNK_LINES")
    if chunk_raw is not None:
        try:
            chunk_lines = int(chunk_raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid DIFF_CHUNK_LINES '{chunk_raw}': must be a number"
            ) from None
    else:
        chunk_lines = int(fb.get("diff_chunk_lines", DEFAULT_CHUNK_LINES))

    temperature_raw = os.getenv("LLM_TEMPERATURE")
    if temperature_raw is not None:
        try:
            temperature = float(temperature_raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid LLM_TEMPERATURE '{temperature_raw}': must be a number"
            ) from None
    else:
        temperature = float(fb.get("llm_temperature", 0.2))

    config = Config(
        kibana_url=kibana_url,
        space=final_space,
        apikey=apikey,
        username=username,
        password=password,
        insecure=_resolve_flag(insecure, "KIBANA_INSECURE", fb.get("insecure", False)),
        debug=_resolve_flag(debug, "KIBANA_DEBUG", fb.get("debug", False)),
        keep_temp=_resolve_flag(keep_temp, "KIBANA_KEEP_TEMP", fb.get("keep_temp", False)),
        manifest_path=Path(final_manifest),
        objects_dir=Path(final_objects),
        llm_url=os.getenv("LLM_URL") or fb.get("llm_url") or DEFAULT_LLM_URL,
        llm_api_key=os.getenv("LLM_API_KEY") or fb.get("llm_api_key"),
        llm_model=os.getenv("LLM_MODEL") or fb.get("llm_model") or DEFAULT_LLM_MODEL,
        llm_temperature=temperature,
        diff_chunk_lines=chunk_lines,
    )

    return validate_config(config)
