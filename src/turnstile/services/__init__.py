"""Application-level services: settings persistence and configuration."""

from .settings import (
    BudgetSettings,
    ExperimentalSettings,
    SecretVault,
    Settings,
    SettingsStore,
    redact_secret,
)

__all__ = [
    "BudgetSettings",
    "ExperimentalSettings",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "redact_secret",
]
