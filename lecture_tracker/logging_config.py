from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog
from structlog.typing import EventDict, Processor

from lecture_tracker.config import AppSettings

LOG_FILE_NAME = "lecture-tracker.log"
TELEMETRY_LOG_FILE_NAME = "lecture-tracker-telemetry.log"

# contextvar name -> rendered key
_CONTEXT_KEYS = {
    "http_request_id": "request_id",
    "library_scope": "scope",
}
# Console lines keep only the request id; the JSON log keeps the route.
_CONSOLE_DROPPED_KEYS = ("http_method", "http_path")


def configure_application_logging(settings: AppSettings) -> Path:
    """Route ``lecture_tracker.*`` records to the console and a JSON log file.

    Telemetry events go to their own file so the application log stays
    readable. Calling this again replaces the handlers it installed.
    """
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    telemetry_log_file = log_dir / TELEMETRY_LOG_FILE_NAME

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    app_logger = _isolated_logger("lecture_tracker", logging.DEBUG)
    console_stream = sys.stdout
    app_logger.addHandler(
        _handler(
            logging.StreamHandler(stream=console_stream),
            level=_resolve_log_level(settings.log_level),
            formatter=_console_formatter(enable_colors=_stream_supports_color(console_stream)),
        )
    )
    app_logger.addHandler(
        _handler(
            logging.FileHandler(log_file, encoding="utf-8"),
            level=logging.DEBUG,
            formatter=_json_formatter(with_callsite=True),
        )
    )

    telemetry_logger = _isolated_logger("lecture_tracker.telemetry", logging.INFO)
    telemetry_logger.addHandler(
        _handler(
            logging.FileHandler(telemetry_log_file, encoding="utf-8"),
            level=logging.INFO,
            formatter=_json_formatter(with_callsite=False),
        )
    )

    app_logger.info(
        "logging configured console_level=%s path=%s telemetry_path=%s",
        settings.log_level.upper(),
        log_file,
        telemetry_log_file,
    )
    return log_file


def _resolve_log_level(raw_level: str) -> int:
    resolved = getattr(logging, raw_level.strip().upper(), None)
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _isolated_logger(name: str, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    return logger


def _handler(
    handler: logging.Handler,
    *,
    level: int,
    formatter: logging.Formatter,
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _console_formatter(*, enable_colors: bool) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(),
        processors=[
            _drop_console_noise,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=enable_colors),
        ],
    )


def _json_formatter(*, with_callsite: bool) -> structlog.stdlib.ProcessorFormatter:
    processors: list[Processor] = []
    if with_callsite:
        processors.append(_add_callsite)
    processors.extend(
        [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    )
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(),
        processors=processors,
    )


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _rename_request_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _rename_request_context(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    for context_key, rendered_key in _CONTEXT_KEYS.items():
        value = event_dict.pop(context_key, None)
        if value is not None:
            event_dict[rendered_key] = value
    return event_dict


def _drop_console_noise(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    for key in _CONSOLE_DROPPED_KEYS:
        event_dict.pop(key, None)
    return event_dict


def _add_callsite(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
        event_dict["func_name"] = record.funcName
    return event_dict


def _stream_supports_color(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    if callable(isatty):
        try:
            return bool(isatty())
        except (OSError, ValueError):
            return False
    return False
