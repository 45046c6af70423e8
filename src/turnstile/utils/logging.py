"""Logging configuration for Turnstile sessions.

Handlers are attached to the ``turnstile`` package logger instead of the root
logger, so an application embedding the orchestrator keeps its own logging
setup. Every handler installed here masks the configured API key before a
record is written.
"""

from __future__ import annotations

import logging
import logging.handlers
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ..services.settings import Settings, redact_secret

__all__ = [
    "LoggingConfig",
    "SecretRedactingFilter",
    "configure_logging",
    "configure_from_settings",
    "get_log_path",
]

PACKAGE_LOGGER = "turnstile"
LOG_FILE_NAME = "turnstile.log"
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai")
_MIN_SECRET_LENGTH = 8
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_MANAGED_HANDLERS: list[logging.Handler] = []
_LOG_PATH: Path | None = None


class SecretRedactingFilter(logging.Filter):
    """Replaces known secrets in a record's rendered message."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        # Short values would match ordinary text.
        stripped = (secret.strip() for secret in secrets if secret)
        self._secrets = tuple(secret for secret in stripped if len(secret) >= _MIN_SECRET_LENGTH)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            if secret in masked:
                masked = masked.replace(secret, redact_secret(secret))
        if masked != message:
            record.msg = masked
            record.args = None
        return True


@dataclass(slots=True, frozen=True)
class LoggingConfig:
    """Handler layout for the ``turnstile`` logger.

    Attributes:
        level: Level applied to the package logger and its handlers.
        log_dir: Directory for the rotating log file; ``None`` disables it.
        console: Whether to echo records to ``stderr``.
        max_bytes: Rotation threshold for the log file.
        backup_count: Rotated files kept next to the active one.
        secrets: Values masked in every emitted record.
    """

    level: int = logging.INFO
    log_dir: Path | None = None
    console: bool = False
    max_bytes: int = 1_000_000
    backup_count: int = 3
    secrets: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings, *, console: bool = False) -> LoggingConfig:
        return cls(
            level=logging.DEBUG if settings.debug_logging else logging.INFO,
            log_dir=Path(settings.log_dir).expanduser() if settings.log_dir else None,
            console=console,
            secrets=(settings.api_key,) if settings.api_key else (),
        )


def configure_logging(config: LoggingConfig) -> Path | None:
    """Install the handlers described by *config*, replacing earlier ones.

    Returns the active log file path, or ``None`` when file logging is off.
    """

    global _LOG_PATH
    logger = logging.getLogger(PACKAGE_LOGGER)
    _remove_managed_handlers(logger)
    logger.setLevel(config.level)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)
    redactor = SecretRedactingFilter(config.secrets)
    handlers: list[logging.Handler] = []
    log_path: Path | None = None

    if config.log_dir is not None:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        log_path = config.log_dir / LOG_FILE_NAME
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    if config.console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(config.level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        logger.addHandler(handler)
        _MANAGED_HANDLERS.append(handler)

    _quiet_external_loggers(config.level)
    _LOG_PATH = log_path
    logger.debug(
        "Logging configured (level=%s, file=%s, console=%s)",
        logging.getLevelName(config.level),
        log_path,
        config.console,
    )
    return log_path


def configure_from_settings(settings: Settings, *, console: bool = False) -> Path | None:
    """Apply ``debug_logging``, ``log_dir`` and API-key masking from *settings*."""

    return configure_logging(LoggingConfig.from_settings(settings, console=console))


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH


def _remove_managed_handlers(logger: logging.Logger) -> None:
    while _MANAGED_HANDLERS:
        handler = _MANAGED_HANDLERS.pop()
        logger.removeHandler(handler)
        handler.close()


def _quiet_external_loggers(level: int) -> None:
    quiet_level = logging.WARNING if level < logging.WARNING else level
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
