import atexit
import json
import logging
import os
import re
import sys

# Expanded redaction pattern
REDACT = re.compile(
    r"(?i)[\"']?\b(pass(word)?|token|apikey|api_key|secret|bearer)\b[\"']?\s*[:=]\s*[\"']?([^\"',\s]+)[\"']?"
)


def redact(s: str) -> str:
    return REDACT.sub(lambda m: f"{m.group(1)}=***REDACTED***", s)


_traceback_formatter = logging.Formatter()


class JsonRedactingHandler(logging.StreamHandler):
    """Render dict messages as one JSON line, mask secrets, write to stderr."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = record.msg
            if isinstance(msg, dict):
                line = json.dumps(msg, default=str)
            else:
                line = record.getMessage()
            if record.exc_info:
                line = line + "\n" + _traceback_formatter.formatException(record.exc_info)
            line = redact(line)
            stream = self.stream if hasattr(self, "stream") else sys.stderr
            stream.write(line + "\n")
            self.flush()
        except Exception:
            self.handleError(record)


LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Package-qualified names so module loggers (carwings_mqtt.*) share the handler
logger = logging.getLogger("carwings_mqtt")
bridge_logger = logging.getLogger("carwings_mqtt.bridge")
bus_logger = logging.getLogger("carwings_mqtt.bus")


def _get_log_level(override: str | None = None) -> int:
    """Resolve log level from an override or the environment.

    Checks, in order: LOG_LEVEL, LOGGING_LEVEL, CARWINGS_LOG_LEVEL and falls
    back to logging.INFO for invalid or missing values.
    """
    if override:
        return LOG_LEVEL_MAP.get(str(override).upper(), logging.INFO)
    lvl = (
        os.environ.get("LOG_LEVEL")
        or os.environ.get("LOGGING_LEVEL")
        or os.environ.get("CARWINGS_LOG_LEVEL")
    )
    if not lvl:
        return logging.INFO
    return LOG_LEVEL_MAP.get(str(lvl).upper(), logging.INFO)


def get_log_level(override: str | None = None) -> int:
    return _get_log_level(override=override)


handler = JsonRedactingHandler(sys.stderr)
logger.setLevel(_get_log_level())
logger.handlers.clear()  # Deduplicate handlers on re-import
logger.addHandler(handler)
logger.propagate = False


def setup_logging(level: str | int | None = None) -> int:
    """(Re)apply the log level to the package logger.

    `level` may be a level name, a numeric level, or None to re-read the
    environment. Returns the numeric level applied.
    """
    if isinstance(level, int):
        numeric_level = level
    else:
        numeric_level = get_log_level(level)
    logger.setLevel(numeric_level)
    if handler not in logger.handlers:
        logger.addHandler(handler)
    return numeric_level


def _flush_all_log_handlers() -> None:
    """Flush package handlers, skipping streams that are already closed."""
    for h in list(logger.handlers):
        stream = getattr(h, "stream", None)
        closed = getattr(stream, "closed", False)
        if isinstance(closed, bool) and closed:
            continue
        try:
            h.flush()
        except (OSError, ValueError):
            continue


atexit.register(_flush_all_log_handlers)


# Structured event emitters
def log_command_received(command: str, topic: str, payload: str) -> None:
    bridge_logger.info(
        {
            "event": "command_received",
            "topic": topic,
            "command": command,
            "payload": payload,
        }
    )


def log_remote_call_failed(call: str, topic: str, error: BaseException) -> None:
    bridge_logger.error(
        {
            "event": "remote_call_failed",
            "call": call,
            "topic": topic,
            "error": repr(error),
        }
    )


def log_facts_published(topic: str, count: int) -> None:
    bridge_logger.info(
        {
            "event": "facts_published",
            "topic": topic,
            "count": count,
        }
    )


__all__ = [
    "LOG_LEVEL_MAP",
    "JsonRedactingHandler",
    "_flush_all_log_handlers",
    "bridge_logger",
    "bus_logger",
    "get_log_level",
    "log_command_received",
    "log_facts_published",
    "log_remote_call_failed",
    "logger",
    "redact",
    "setup_logging",
]
