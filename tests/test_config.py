"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from inbox_sorter.core.config import CategorySource, LlmProvider, load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.imap.host == "imap.gmail.com"
    assert settings.imap.source_folder == "INBOX"
    assert settings.llm.provider is LlmProvider.OLLAMA
    assert settings.llm.temperature == 0.3
    assert settings.llm.max_output_tokens == 50
    assert settings.sorting.fallback_category == "Autre"
    assert settings.sorting.category_source is CategorySource.FOLDERS
    assert settings.sorting.excerpt_chars == 1000
    assert settings.sorting.classify_batch_size == 5
    assert settings.sorting.limit is None


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "\n".join(
            [
                "INBOX_SORTER_IMAP__HOST=imap.example.com",
                "INBOX_SORTER_IMAP__USE_SSL=false",
                "INBOX_SORTER_LLM__PROVIDER=openai",
                "INBOX_SORTER_SORTING__CATEGORY_SOURCE=fixed",
                "INBOX_SORTER_SORTING__CATEGORIES=Factures, Newsletter,,Spam",
                "UNRELATED=value",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.imap.host == "imap.example.com"
    assert settings.imap.use_ssl is False
    assert settings.llm.provider is LlmProvider.OPENAI
    assert settings.sorting.category_source is CategorySource.FIXED
    assert settings.sorting.categories == ["Factures", "Newsletter", "Spam"]


def test_environment_wins_over_file_and_overrides_win_over_both(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / "test.env"
    env_file.write_text(
        "INBOX_SORTER_IMAP__HOST=file.example.com\n"
        "INBOX_SORTER_IMAP__PORT=1143\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("INBOX_SORTER_IMAP__HOST", "env.example.com")

    settings = load_app_settings(env_file=env_file)
    assert settings.imap.host == "env.example.com"
    assert settings.imap.port == 1143

    load_app_settings.cache_clear()
    overridden = load_app_settings(env_file=env_file, imap__host="kw.example.com")
    assert overridden.imap.host == "kw.example.com"


def test_excerpt_bounds_are_validated() -> None:
    with pytest.raises(ValueError):
        load_app_settings(include_environment=False, sorting__excerpt_chars=50)
