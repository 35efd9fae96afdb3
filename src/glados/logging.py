"""Logging configuration for GLaDOS.

structlog renders through stdlib handlers:

* console: colored key/value output in development, JSON otherwise;
* ``<prefix>.log``: every record at the configured level, JSON, rotated;
* ``<prefix>-moderation.log``: forensic moderation records only, JSON,
  rotated, kept apart so safety reviewers never need the full app log.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from glados.config import Settings, get_settings

FORENSICS_LOGGER = "glados.moderation.forensics"

# Handler names let setup_logging() be called again without stacking handlers.
_CONSOLE_HANDLER = "glados-console"
_FILE_HANDLER = "glados-file"
_MODERATION_HANDLER = "glados-moderation"

_SHARED_PROCESSORS: list[structlog.typing.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def setup_logging() -> None:
    """Install the console, application-file and moderation-file handlers."""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    forensics = logging.getLogger(FORENSICS_LOGGER)
    for logger in (root, forensics):
        _remove_own_handlers(logger)

    console = logging.StreamHandler(sys.stdout)
    console.set_name(_CONSOLE_HANDLER)
    console.setLevel(level)
    console.setFormatter(_formatter(json=not settings.is_development))
    root.addHandler(console)

    if settings.log_to_file and _ensure_log_directory(settings):
        app_file = _rotating_handler(settings, settings.log_file_path, _FILE_HANDLER, level)
        if app_file is not None:
            root.addHandler(app_file)
        moderation_file = _rotating_handler(
            settings, settings.moderation_log_path, _MODERATION_HANDLER, logging.WARNING
        )
        if moderation_file is not None:
            forensics.addHandler(moderation_file)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in settings.log_quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def _formatter(*, json: bool) -> structlog.stdlib.ProcessorFormatter:
    renderer: structlog.typing.Processor = (
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=True)
    )
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_SHARED_PROCESSORS,
    )


def _ensure_log_directory(settings: Settings) -> bool:
    try:
        Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Warning: Could not create log directory: {e}", file=sys.stderr)
        return False
    return True


def _rotating_handler(
    settings: Settings, path: str, name: str, level: int
) -> RotatingFileHandler | None:
    try:
        handler = RotatingFileHandler(
            filename=path,
            maxBytes=settings.log_file_max_bytes,
            backupCount=settings.log_file_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        print(f"Warning: Could not open log file {path}: {e}", file=sys.stderr)
        return None
    handler.set_name(name)
    handler.setLevel(level)
    handler.setFormatter(_formatter(json=True))
    return handler


def _remove_own_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if handler.get_name() in (_CONSOLE_HANDLER, _FILE_HANDLER, _MODERATION_HANDLER):
            logger.removeHandler(handler)
            handler.close()
