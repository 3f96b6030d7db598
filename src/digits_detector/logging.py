from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Final, Literal

_LOGGER_NAME: Final[str] = "digits_detector"

# Numeric fields carried by the detector's log lines:
#   model_loaded bytes=  classify digit= latency_ms=
#   class_score index= score=  preprocess_done elapsed_ms=
_INT_FIELDS: Final[frozenset[str]] = frozenset(
    {"bytes", "digit", "latency_ms", "index", "elapsed_ms"}
)
_FLOAT_FIELDS: Final[frozenset[str]] = frozenset({"score"})
_TIMING_FIELDS: Final[frozenset[str]] = frozenset({"latency_ms", "elapsed_ms"})


def _parse_line(msg: str) -> tuple[str | None, dict[str, object], str]:
    """Split ``event k=v ...`` or ``EVT event=name k=v ...`` into its parts."""
    body = msg[4:] if msg.startswith("EVT ") else msg
    event: str | None = None
    fields: dict[str, object] = {}
    tail: list[str] = []
    for tok in body.split():
        key, sep, raw = tok.partition("=")
        if not sep:
            if event is None and not fields and not tail:
                event = tok
            else:
                tail.append(tok)
            continue
        if key == "event":
            event = raw
        elif key:
            fields[key] = _coerce(key, raw)
    return event, fields, " ".join(tail)


def _coerce(key: str, raw: str) -> object:
    try:
        if key in _INT_FIELDS:
            return int(raw)
        if key in _FLOAT_FIELDS:
            return float(raw)
    except ValueError:
        return raw
    if raw in {"true", "false"}:
        return raw == "true"
    return raw


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        payload: dict[str, object] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": msg,
        }
        if msg.startswith("EVT "):
            event, fields, _ = _parse_line(msg)
            if event is not None:
                payload["message"] = event
            payload.update(fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _ConsoleFormatter(logging.Formatter):
    """Terminal formatter: ``[time] LEVEL event key=value ...``."""

    _RESET = "\x1b[0m"
    _BOLD = "\x1b[1m"
    _LEVEL_COLORS: Final[dict[int, str]] = {
        logging.DEBUG: "\x1b[90m",
        logging.INFO: "\x1b[36m",
        logging.WARNING: "\x1b[93m",
        logging.ERROR: "\x1b[91m",
    }
    _TIMING = "\x1b[95m"
    _NUMBER = "\x1b[92m"

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(UTC).strftime("%H:%M:%S")
        level = min(max(record.levelno, logging.DEBUG), logging.ERROR)
        level -= level % 10
        color = self._LEVEL_COLORS.get(level, "")
        event, fields, tail = _parse_line(record.getMessage())

        parts = [f"[{ts}]", f"{self._BOLD}{color}{record.levelname}{self._RESET}"]
        if event:
            parts.append(f"{self._BOLD}{event}{self._RESET}")
        for k, v in fields.items():
            if k in _TIMING_FIELDS:
                parts.append(f"{k}={self._TIMING}{v}{self._RESET}")
            elif k in _INT_FIELDS or k in _FLOAT_FIELDS:
                parts.append(f"{k}={self._NUMBER}{v}{self._RESET}")
            else:
                parts.append(f"{k}={v}")
        if tail:
            parts.append(tail)
        out = " ".join(parts)
        if record.exc_info:
            out += "\n" + self.formatException(record.exc_info)
        return out


def log_event(event: str, fields: Mapping[str, object] | None = None) -> None:
    """Emit a structured ``EVT`` line at INFO; values containing spaces are dropped."""
    parts: list[str] = [f"event={event}"]
    for k, v in (fields or {}).items():
        if isinstance(v, bool):
            parts.append(f"{k}={'true' if v else 'false'}")
        elif isinstance(v, int | float) or (isinstance(v, str) and v and " " not in v):
            parts.append(f"{k}={v}")
    get_logger().info("EVT " + " ".join(parts))


LogStyle = Literal["json", "pretty", "auto"]


def init_logging(style: LogStyle = "auto") -> logging.Logger:
    """Bind one stdout handler to the package logger, replacing earlier ones.

    Level comes from ``DIGITS_LOG_LEVEL`` (default INFO). In ``auto`` style,
    ``DIGITS_LOG_JSON`` forces JSON, ``DIGITS_LOG_PRETTY`` forces the console
    format, and otherwise a terminal gets the console format.
    """
    logger = get_logger()
    name = os.environ.get("DIGITS_LOG_LEVEL", "INFO").strip().upper()
    lvl = logging.getLevelNamesMapping().get(name, logging.INFO)
    logger.setLevel(lvl)
    logger.propagate = _flag("DIGITS_LOG_PROPAGATE")

    for h in list(logger.handlers):
        if isinstance(h, logging.StreamHandler):
            logger.removeHandler(h)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(_formatter_for(style))
    handler.setLevel(lvl)
    logger.addHandler(handler)
    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(_LOGGER_NAME)


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _formatter_for(style: LogStyle) -> logging.Formatter:
    if style == "auto":
        isatty = getattr(sys.stdout, "isatty", None)
        tty = bool(isatty()) if callable(isatty) else False
        pretty = not _flag("DIGITS_LOG_JSON") and (_flag("DIGITS_LOG_PRETTY") or tty)
        style = "pretty" if pretty else "json"
    return _ConsoleFormatter() if style == "pretty" else _JsonFormatter()
