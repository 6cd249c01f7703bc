"""
Ripple Configuration

Settings are read once at startup from the process environment, with an
optional `.env` file supplying values the environment does not set. Every
value is parsed into its declared type and the whole configuration is then
checked against a fixed battery of rules. A `Config` instance therefore
always satisfies every rule; invalid input raises a `ConfigurationError`.

Parsing
-------
- Absent variables take their documented default
- Present but malformed values raise `ParseError` (no fallback to default)
- An empty string counts as present

Validation order
----------------
RIPPLE_PORT, METRICS_PORT, SIMILARITY_THRESHOLD, CACHE_TTL_HOURS,
RIPPLE_WORKERS, MAX_CACHE_SIZE, EMBEDDING_DIMENSION, QDRANT_URL, LOG_LEVEL,
LOG_FORMAT, QDRANT_COLLECTION_NAME. The first failing rule is raised.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import Field, SecretStr, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.errors import (
    ConfigurationError,
    InvalidFormatError,
    InvalidRangeError,
    MissingFieldError,
    ParseError,
)


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

MIN_PORT = 1024
MAX_PORT = 65535
MAX_WORKERS = 128
MAX_EMBEDDING_DIMENSION = 4096

VALID_LOG_LEVELS: Tuple[str, ...] = ("trace", "debug", "info", "warn", "error")
VALID_LOG_FORMATS: Tuple[str, ...] = ("text", "json")

COLLECTION_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

DEFAULT_ENV_FILE = ".env"

SECRET_FIELDS: Tuple[str, ...] = (
    "qdrant_api_key",
    "openai_api_key",
    "anthropic_api_key",
    "exa_api_key",
)


def _default_workers() -> int:
    return os.cpu_count() or 4


# ---------------------------------------------------------------------
# Config Model
# ---------------------------------------------------------------------

class Config(BaseSettings):
    # Server
    host: str = Field(default="0.0.0.0", validation_alias="RIPPLE_HOST")
    port: int = Field(default=8080, ge=0, le=MAX_PORT, validation_alias="RIPPLE_PORT")
    workers: int = Field(
        default_factory=_default_workers, ge=0, validation_alias="RIPPLE_WORKERS"
    )

    # Qdrant
    qdrant_url: str = Field(default="http://localhost:6333", validation_alias="QDRANT_URL")
    qdrant_collection_name: str = Field(
        default="cache_vectors", validation_alias="QDRANT_COLLECTION_NAME"
    )
    qdrant_api_key: Optional[SecretStr] = Field(default=None, validation_alias="QDRANT_API_KEY")

    # Embedding model (consumed by the embedding engine, validated here)
    embedding_model_path: str = Field(
        default="./models/nomic-embed-text.onnx", validation_alias="EMBEDDING_MODEL_PATH"
    )
    embedding_dimension: int = Field(default=768, ge=0, validation_alias="EMBEDDING_DIMENSION")
    embedding_batch_size: int = Field(default=10, ge=0, validation_alias="EMBEDDING_BATCH_SIZE")
    embedding_cache_size: int = Field(default=10_000, ge=0, validation_alias="EMBEDDING_CACHE_SIZE")

    # Cache policy
    similarity_threshold: float = Field(default=0.85, validation_alias="SIMILARITY_THRESHOLD")
    cache_ttl_hours: int = Field(default=168, ge=0, validation_alias="CACHE_TTL_HOURS")
    max_cache_size: int = Field(default=10_000_000, ge=0, validation_alias="MAX_CACHE_SIZE")
    enable_l1_cache: bool = Field(default=True, validation_alias="ENABLE_L1_CACHE")
    l1_cache_size: int = Field(default=10_000, ge=0, validation_alias="L1_CACHE_SIZE")

    # Upstream provider credentials
    openai_api_key: Optional[SecretStr] = Field(default=None, validation_alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    exa_api_key: Optional[SecretStr] = Field(default=None, validation_alias="EXA_API_KEY")

    # Logging
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="text", validation_alias="LOG_FORMAT")
    log_file_path: Optional[str] = Field(default=None, validation_alias="LOG_FILE_PATH")

    # Metrics
    metrics_enabled: bool = Field(default=True, validation_alias="METRICS_ENABLED")
    metrics_port: int = Field(default=9090, ge=0, le=MAX_PORT, validation_alias="METRICS_PORT")

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def _run_validation_rules(self) -> "Config":
        # ConfigurationError is not a ValueError and propagates unwrapped.
        validate_config(self)
        return self

    @property
    def listen_address(self) -> str:
        return f"{self.host}:{self.port}"

    def redacted(self) -> Dict[str, Any]:
        """
        Return the configuration as a dict that is safe to log.

        Credentials are reported as booleans (set / not set).
        """
        data = self.model_dump()
        for name in SECRET_FIELDS:
            data[name] = data[name] is not None
        return data


# ---------------------------------------------------------------------
# Validation Rules
# ---------------------------------------------------------------------

def _check_port(port: int, field: str) -> None:
    if port < MIN_PORT:
        raise InvalidRangeError(field=field, value=port, min=MIN_PORT, max=MAX_PORT)


def _check_similarity_threshold(value: float) -> None:
    # Written positively so NaN fails as well.
    if not (0.0 <= value <= 1.0):
        raise InvalidRangeError(
            field="SIMILARITY_THRESHOLD", value=value, min="0.0", max="1.0"
        )


def _check_ttl(hours: int) -> None:
    if hours == 0:
        raise InvalidRangeError(field="CACHE_TTL_HOURS", value=hours, min=1, max="unlimited")


def _check_workers(workers: int) -> None:
    if workers == 0 or workers > MAX_WORKERS:
        raise InvalidRangeError(field="RIPPLE_WORKERS", value=workers, min=1, max=MAX_WORKERS)


def _check_cache_size(size: int) -> None:
    if size == 0:
        raise InvalidRangeError(field="MAX_CACHE_SIZE", value=size, min=1, max="unlimited")


def _check_embedding_dimension(dimension: int) -> None:
    if dimension == 0 or dimension > MAX_EMBEDDING_DIMENSION:
        raise InvalidRangeError(
            field="EMBEDDING_DIMENSION",
            value=dimension,
            min=1,
            max=MAX_EMBEDDING_DIMENSION,
        )


def _check_url(url: str, field: str) -> None:
    if not url.startswith(("http://", "https://")):
        raise InvalidFormatError(
            field=field,
            value=url,
            expected="URL starting with http:// or https://",
        )


def _check_log_level(level: str) -> None:
    if level.lower() not in VALID_LOG_LEVELS:
        raise InvalidFormatError(
            field="LOG_LEVEL",
            value=level,
            expected="One of: " + ", ".join(VALID_LOG_LEVELS),
        )


def _check_log_format(fmt: str) -> None:
    if fmt.lower() not in VALID_LOG_FORMATS:
        raise InvalidFormatError(
            field="LOG_FORMAT",
            value=fmt,
            expected="One of: " + ", ".join(VALID_LOG_FORMATS),
        )


def _check_collection_name(name: str) -> None:
    if not name:
        raise MissingFieldError(field="QDRANT_COLLECTION_NAME")
    if not COLLECTION_NAME_PATTERN.fullmatch(name):
        raise InvalidFormatError(
            field="QDRANT_COLLECTION_NAME",
            value=name,
            expected="Alphanumeric characters, underscores, and hyphens only",
        )


def validate_config(config: Config) -> None:
    """
    Run every validation rule against `config` in canonical order.

    Raises
    ------
    ConfigurationError
        The first rule that fails.
    """
    _check_port(config.port, "RIPPLE_PORT")
    _check_port(config.metrics_port, "METRICS_PORT")
    _check_similarity_threshold(config.similarity_threshold)
    _check_ttl(config.cache_ttl_hours)
    _check_workers(config.workers)
    _check_cache_size(config.max_cache_size)
    _check_embedding_dimension(config.embedding_dimension)
    _check_url(config.qdrant_url, "QDRANT_URL")
    _check_log_level(config.log_level)
    _check_log_format(config.log_format)
    _check_collection_name(config.qdrant_collection_name)


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------

_TYPE_NAMES = {int: "integer", float: "float", bool: "boolean"}


def _describe_field(loc_name: str) -> Tuple[str, str]:
    """Map a pydantic error location to (env var name, expected type name)."""
    for name, info in Config.model_fields.items():
        if loc_name in (name, info.validation_alias):
            return str(info.validation_alias or name), _TYPE_NAMES.get(info.annotation, "string")
    return loc_name, "value"


def _to_parse_error(exc: PydanticValidationError) -> ParseError:
    first = exc.errors()[0]
    loc_name = str(first["loc"][0]) if first["loc"] else "<config>"
    field, expected_type = _describe_field(loc_name)
    return ParseError(
        field=field,
        value=first.get("input"),
        expected_type=expected_type,
        details=first["msg"],
    )


def load_config(env_file: Optional[Union[str, Path]] = DEFAULT_ENV_FILE) -> Config:
    """
    Load and validate the configuration.

    Parameters
    ----------
    env_file : str | Path | None
        Optional `KEY=VALUE` file read before the environment. A missing
        file is ignored. Real environment variables take precedence.
        Pass None to read the environment only.

    Raises
    ------
    ParseError
        A variable is present but cannot be parsed into its type.
    ConfigurationError
        A validation rule failed.
    """
    try:
        return Config(_env_file=env_file)
    except PydanticValidationError as exc:
        raise _to_parse_error(exc) from exc


__all__ = [
    "Config",
    "ConfigurationError",
    "load_config",
    "validate_config",
    "VALID_LOG_LEVELS",
    "VALID_LOG_FORMATS",
]
