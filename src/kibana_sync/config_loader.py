"""
YAML settings files for kibana_sync.

A repository can carry ``.kibana_sync/config.yml`` next to its manifest and
a user can keep defaults in ``~/.config/kibana_sync/config.yml``.  Both are
optional.  String values may reference the environment (and therefore the
credentials file) as ``${VAR}`` or ``${VAR:-default}``, which keeps API keys
out of committed files.

Usage:
    from kibana_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_REPO_CONFIG = Path(".kibana_sync") / "config.yml"
_USER_CONFIG = Path(".config") / "kibana_sync" / "config.yml"

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand environment references in *value*.

    An unset or empty variable yields its default, or ``""`` without one.
    A ``${`` that is never closed is kept literally.
    """

    def _expand(match: re.Match) -> str:
        return os.environ.get(match.group(1)) or match.group(2) or ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_recursive(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _interpolate_recursive(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_interpolate_recursive(item) for item in node]
    return node


def discover_config_files() -> list[Path]:
    """Existing settings files, highest precedence first.

    ``KIBANA_SYNC_CONFIG`` names an explicit file; after it come the
    repository file in the working directory and the per-user file.
    """
    candidates = [Path.cwd() / _REPO_CONFIG, Path.home() / _USER_CONFIG]
    explicit = os.environ.get("KIBANA_SYNC_CONFIG")
    if explicit:
        candidates.insert(0, Path(explicit).expanduser().resolve())
    return [path for path in candidates if path.exists()]


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Failed to parse config file {path}: {exc}"
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Ignoring config file %s: top level is a %s, not a mapping",
            path,
            type(data).__name__,
        )
        return {}
    return data


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered settings file into one dict.

    Sections (``kibana``, ``repository``, ``summarizer``, ``logging``) are
    replaced whole by a higher-precedence file, never merged key by key.
    Environment references are expanded after the merge.  No files means
    ``{}``.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Reading config file %s", path)
        merged.update(_read_yaml(path))
    return _interpolate_recursive(merged)
