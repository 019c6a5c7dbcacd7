"""Central logging utilities for the transfer enrichment pipeline.

- One place to configure logging for the CLI, the API service and ad-hoc scripts.
- Structured JSON output (LOG_FORMAT=json) or human-readable console output (default).
- Level and format come from ``Settings`` when passed, otherwise from the environment:
    LOG_LEVEL=INFO|DEBUG|... (default: INFO)
    LOG_FORMAT=console|json (default: console)
    LOG_NO_COLOR=1 disables colors on the console format.
- ``RunLoggerAdapter`` stamps every record of an enrichment run with ``run_id`` and ``season``.

Usage:
    from src.common.logging_utils import configure_logging, get_logger
    configure_logging(service="enrichment")  # idempotent
    logger = get_logger(__name__)
"""
from __future__ import annotations

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CONFIG_LOCK = threading.Lock()
_ALREADY_CONFIGURED = False

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class ColorFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\x1b[38;5;245m",
        "INFO": "\x1b[38;5;39m",
        "WARNING": "\x1b[38;5;214m",
        "ERROR": "\x1b[38;5;196m",
        "CRITICAL": "\x1b[48;5;196m\x1b[38;5;231m",
    }
    RESET = "\x1b[0m"

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).astimezone()
        context = _context_suffix(record)
        base = (
            f"{ts:%Y-%m-%d %H:%M:%S} | {record.levelname:<8} | {record.name} | "
            f"{record.getMessage()}{context}"
        )
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        color = self.COLORS.get(record.levelname, "")
        return f"{color}{base}{self.RESET}" if color else base


class JsonFormatter(logging.Formatter):
    """Eine JSON-Zeile pro Record, inklusive aller ``extra`` Felder."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in _extra_fields(record).items():
            try:
                json.dumps(value)
                payload[key] = value
            except (TypeError, ValueError):
                payload[key] = repr(value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: v
        for k, v in record.__dict__.items()
        if k not in _STANDARD_ATTRS and not k.startswith("_")
    }


def _context_suffix(record: logging.LogRecord) -> str:
    extras = _extra_fields(record)
    if not extras:
        return ""
    return " [" + " ".join(f"{k}={v}" for k, v in sorted(extras.items())) + "]"


def configure_logging(
    service: str | None = None,
    *,
    level: str | None = None,
    fmt: str | None = None,
    force: bool = False,
) -> None:
    """Configure root logging once.

    Parameters
    ----------
    service: Optional logical service name, attached to every record as ``service``.
    level / fmt: Override LOG_LEVEL / LOG_FORMAT (usually taken from Settings).
    force: Reconfigure even if already configured.
    """
    global _ALREADY_CONFIGURED
    with _CONFIG_LOCK:
        if _ALREADY_CONFIGURED and not force:
            return

        log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
        log_format = (fmt or os.getenv("LOG_FORMAT", "console")).lower()
        no_color = os.getenv("LOG_NO_COLOR") == "1"

        root = logging.getLogger()
        for h in list(root.handlers):
            root.removeHandler(h)

        if log_format == "json":
            formatter: logging.Formatter = JsonFormatter()
        elif sys.stderr.isatty() and not no_color:
            formatter = ColorFormatter()
        else:
            formatter = logging.Formatter(
                fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(getattr(logging, log_level, logging.INFO))

        _ServiceLoggerAdapter.BASE_SERVICE = service
        _ALREADY_CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    base = logging.getLogger(name)
    if _ServiceLoggerAdapter.BASE_SERVICE:
        return _ServiceLoggerAdapter(base, {"service": _ServiceLoggerAdapter.BASE_SERVICE})
    return base


class _ServiceLoggerAdapter(logging.LoggerAdapter):
    BASE_SERVICE: Optional[str] = None

    def process(self, msg: Any, kwargs: Dict[str, Any]):  # noqa: D401
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


class RunLoggerAdapter(logging.LoggerAdapter):
    """Hängt run_id und season an jeden Log-Eintrag eines Pipeline-Laufs."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter, run_id: str, season: int | None):
        super().__init__(logger, {"run_id": run_id, "season": season})

    def process(self, msg: Any, kwargs: Dict[str, Any]):  # noqa: D401
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


__all__ = [
    "configure_logging",
    "get_logger",
    "RunLoggerAdapter",
    "JsonFormatter",
]
