"""Tests for services/settings.py."""

from __future__ import annotations

import json

import pytest

from turnstile.services.settings import (
    BudgetSettings,
    ExperimentalSettings,
    SecretVault,
    Settings,
    SettingsStore,
    redact_secret,
)

_ENV_NAMES = (
    "TURNSTILE_API_KEY",
    "TURNSTILE_BASE_URL",
    "TURNSTILE_MODEL",
    "TURNSTILE_CACHE_STRATEGY",
    "TURNSTILE_DEBUG_LOGGING",
    "TURNSTILE_REQUEST_TIMEOUT",
    "TURNSTILE_TEMPERATURE",
    "TURNSTILE_MAX_TOOL_ITERATIONS",
    "TURNSTILE_DEDUPLICATE_FILE_READS",
    "TURNSTILE_LOG_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(tmp_path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")


def test_defaults() -> None:
    settings = Settings()

    assert settings.max_tool_iterations == 25
    assert settings.cache_strategy == "auto"
    assert settings.budget == BudgetSettings()
    assert settings.budget.max_messages == 120
    assert settings.budget.safety_margin_pct == 0.1
    assert settings.experimental.deduplicate_file_reads is False


def test_load_missing_file_returns_defaults(store: SettingsStore) -> None:
    assert store.load() == Settings()


def test_round_trip_encrypts_api_key(store: SettingsStore) -> None:
    settings = Settings(
        api_key="sk-secret-value",
        model="openai/gpt-4o",
        budget=BudgetSettings(max_messages=40),
        experimental=ExperimentalSettings(deduplicate_file_reads=True),
    )

    store.save(settings)
    raw = json.loads(store.path.read_text(encoding="utf-8"))
    loaded = store.load()

    assert "api_key" not in raw
    assert raw["api_key_ciphertext"].startswith("fernet:")
    assert "sk-secret-value" not in store.path.read_text(encoding="utf-8")
    assert loaded == settings


def test_invalid_json_falls_back_to_defaults(store: SettingsStore) -> None:
    store.path.write_text("{not json", encoding="utf-8")

    assert store.load() == Settings()


def test_unknown_fields_are_ignored(store: SettingsStore) -> None:
    store.path.write_text(
        json.dumps({"model": "x/y", "legacy_option": True, "budget": {"bogus": 1}}),
        encoding="utf-8",
    )

    settings = store.load()

    assert settings.model == "x/y"
    assert settings.budget == BudgetSettings()


def test_undecryptable_key_is_dropped(store: SettingsStore, tmp_path) -> None:
    store.save(Settings(api_key="sk-one"))
    other = SettingsStore(store.path, vault=SecretVault(key_path=tmp_path / "other.key"))

    assert other.load().api_key == ""


def test_cli_overrides(store: SettingsStore) -> None:
    settings = store.load(overrides={"model": "google/gemini-2.5-pro", "unknown": 1, "api_key": None})

    assert settings.model == "google/gemini-2.5-pro"
    assert settings.api_key == ""


def test_environment_overrides(store: SettingsStore, monkeypatch) -> None:
    monkeypatch.setenv("TURNSTILE_API_KEY", "env-key")
    monkeypatch.setenv("TURNSTILE_MODEL", "deepseek/deepseek-chat")
    monkeypatch.setenv("TURNSTILE_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("TURNSTILE_REQUEST_TIMEOUT", "12.5")
    monkeypatch.setenv("TURNSTILE_MAX_TOOL_ITERATIONS", "7")
    monkeypatch.setenv("TURNSTILE_DEDUPLICATE_FILE_READS", "1")

    settings = store.load()

    assert settings.api_key == "env-key"
    assert settings.model == "deepseek/deepseek-chat"
    assert settings.debug_logging is True
    assert settings.request_timeout == 12.5
    assert settings.max_tool_iterations == 7
    assert settings.experimental.deduplicate_file_reads is True


def test_invalid_numeric_environment_is_ignored(store: SettingsStore, monkeypatch) -> None:
    monkeypatch.setenv("TURNSTILE_MAX_TOOL_ITERATIONS", "many")
    monkeypatch.setenv("TURNSTILE_TEMPERATURE", "warm")

    settings = store.load()

    assert settings.max_tool_iterations == 25
    assert settings.temperature == 0.2


def test_vault_rejects_unknown_prefix(tmp_path) -> None:
    vault = SecretVault(key_path=tmp_path / "vault.key")

    assert vault.decrypt("plain:abc") == ""
    assert vault.decrypt(vault.encrypt("value")) == "value"
    assert vault.encrypt("") == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected
