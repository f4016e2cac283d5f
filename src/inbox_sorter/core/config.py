"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator


class ImapSettings(BaseModel):
    """Settings controlling IMAP connectivity."""

    host: str = Field(default="imap.gmail.com", description="IMAP hostname")
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    username: str | None = Field(default=None, description="Account username")
    password: str | None = Field(default=None, description="Account or app password")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")
    connect_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Socket timeout for connect and login"
    )
    source_folder: str = Field(
        default="INBOX", description="Folder sorted when no folder is given"
    )


class LlmProvider(str, Enum):
    """Supported text classification backends."""

    OLLAMA = "ollama"
    OPENAI = "openai"


class LlmSettings(BaseModel):
    """Settings for the classification model provider."""

    provider: LlmProvider = Field(
        default=LlmProvider.OLLAMA, description="Backend used for completions"
    )
    base_url: str = Field(
        default="http://localhost:11434", description="Provider base URL"
    )
    model: str = Field(default="gpt-oss:20b", description="Model identifier")
    api_key: str | None = Field(
        default=None, description="Bearer token for hosted providers"
    )
    timeout_seconds: int = Field(
        default=30, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for LLM completions",
    )
    max_output_tokens: int | None = Field(
        default=50,
        ge=1,
        description="Maximum tokens to request for a classification answer",
    )
    max_retries: int = Field(
        default=3, ge=1, description="Attempts per request before giving up"
    )


class CategorySource(str, Enum):
    """Where the category taxonomy comes from."""

    FOLDERS = "folders"
    FIXED = "fixed"


class SortingSettings(BaseModel):
    """Settings for classification and folder reconciliation."""

    fallback_category: str = Field(
        default="Autre", description="Catch-all category for unmatched mail"
    )
    category_source: CategorySource = Field(
        default=CategorySource.FOLDERS,
        description="Derive categories from folders or use the fixed list",
    )
    categories: list[str] = Field(
        default_factory=list, description="Explicit category list override"
    )
    excerpt_chars: int = Field(
        default=1000,
        ge=200,
        le=1500,
        description="Body characters sent to the classifier",
    )
    classify_batch_size: int = Field(
        default=5, ge=1, description="Concurrent classification calls per batch"
    )
    classify_batch_delay_seconds: float = Field(
        default=2.0, ge=0.0, description="Pause between classification batches"
    )
    fetch_batch_size: int = Field(
        default=25, ge=1, description="Messages requested per IMAP FETCH"
    )
    limit: int | None = Field(
        default=None, ge=1, description="Cap on messages fetched per folder"
    )
    timezone: str | None = Field(
        default=None, description="IANA zone used to decide what 'today' is"
    )
    invoice_category: str = Field(
        default="Factures", description="Category holding invoice mail"
    )

    @field_validator("categories", mode="before")
    @classmethod
    def _split_categories(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    imap: ImapSettings = Field(default_factory=ImapSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    sorting: SortingSettings = Field(default_factory=SortingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "INBOX_SORTER_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _coerce_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value == "":
        return None
    lowercase_value = value.lower()
    if lowercase_value == "true":
        return True
    if lowercase_value == "false":
        return False
    return value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _coerce_value(value))

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides.

    Overrides use the same ``section__field`` shape as environment keys,
    e.g. ``load_app_settings(imap__host="imap.example.com")``.
    """
    collected = _collect_env_values(
        env_file, include_environment=include_environment
    )
    for key, value in overrides.items():
        path = _normalize_key(key)
        if path:
            _merge_into_tree(collected, path, value)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "CategorySource",
    "ImapSettings",
    "LlmProvider",
    "LlmSettings",
    "LoggingSettings",
    "SortingSettings",
    "load_app_settings",
]
