"""Configuration file schema for kibana_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the Kibana connection, the local repository layout, the diff
summarizer and logging.  ``to_fallbacks`` flattens a validated config into
the dict ``load_config()`` accepts as its lowest-precedence source.

Usage:
    from kibana_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class KibanaConfig(BaseModel):
    """Kibana connection settings.

    All fields are optional: the credentials file, env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Kibana base URL")
    space: str | None = Field(default=None, description="Space id")
    apikey: str | None = Field(default=None, description="API key")
    username: str | None = Field(default=None, description="Basic auth user")
    password: str | None = Field(
        default=None, description="Basic auth password"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class RepositoryConfig(BaseModel):
    """Local mirror layout."""

    manifest: str | None = Field(
        default=None, description="Manifest file path"
    )
    objects_dir: str | None = Field(
        default=None, description="Directory of per-object files"
    )
    keep_temp: bool = Field(
        default=False, description="Keep staging directories after a run"
    )

    model_config = {"frozen": True}


class SummarizerConfig(BaseModel):
    """Chat-completion endpoint used by ``kibana-sync diff``."""

    url: str | None = Field(default=None, description="Chat completions URL")
    api_key: str | None = Field(default=None, description="Bearer token")
    model: str | None = Field(default=None, description="Model name")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    chunk_lines: int = Field(
        default=300,
        ge=1,
        le=100_000,
        description="Lines of diff sent per summarization request",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json`` (one JSON object per record).
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log record format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has sensible defaults, so ``UnifiedConfig()`` (zero-config)
    is always valid.
    """

    kibana: KibanaConfig = Field(default_factory=KibanaConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into ``load_config()`` fallback keys.

    ``None`` values are dropped so they never mask a built-in default.
    """
    flat: dict[str, Any] = dict(unified.kibana.model_dump())
    flat.update(unified.repository.model_dump())
    flat.update(
        {
            "llm_url": unified.summarizer.url,
            "llm_api_key": unified.summarizer.api_key,
            "llm_model": unified.summarizer.model,
            "llm_temperature": unified.summarizer.temperature,
            "diff_chunk_lines": unified.summarizer.chunk_lines,
        }
    )
    return {k: v for k, v in flat.items() if v is not None}
