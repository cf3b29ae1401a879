"""qrstudio structured logging: audit events and traced render stages.

Every pipeline stage reports what it did as an AUDIT record with a dotted
event tag and a flat context dict, e.g. ``qr.encoded`` (version, ecc, mask),
``pixels.rasterized``, ``transform.perspective``, ``effect.crystalize``,
``logo.composited`` and ``scan.verified``. ``@trace`` wraps the public
stage functions and logs their timing; images, states and symbols are
summarized by shape rather than dumped.
"""

import functools
import json
import logging
import os
import sys
import time
import traceback
from datetime import datetime, timezone

# Custom AUDIT level (between WARNING=30 and ERROR=40)
AUDIT = 35
logging.addLevelName(AUDIT, "AUDIT")

ENV_LOG_LEVEL = "QRSTUDIO_LOG_LEVEL"


def _truncate(value: object, max_len: int = 80) -> str:
    """Truncate a string for safe logging."""
    s = str(value)
    if len(s) > max_len:
        return s[:max_len] + "..."
    return s


def describe(value: object) -> str | None:
    """One-line summary of a render object, or None for anything else.

    PIL images report size and mode, symbols their version and ECC, states
    the style knobs that most change the output.
    """
    name = type(value).__name__
    if hasattr(value, "size") and hasattr(value, "mode"):
        w, h = value.size
        return f"<Image {w}x{h} {value.mode}>"
    if name == "EncodedSymbol":
        return f"<EncodedSymbol v{value.version} {value.size}x{value.size} ecc={value.ecc}>"
    if name == "GeneratorState":
        return f"<GeneratorState style={value.pixel_style} marker={value.marker_shape} effect={value.effect} seed={value.seed}>"
    if name == "GenerateResult":
        return f"<GenerateResult v{value.qrcode.version} {value.info.width}x{value.info.height}>"
    if name == "ScanResult":
        return f"<ScanResult {value.decoder} ok={value.success}>"
    if name in ("RenderContext", "Canvas"):
        return f"<{name}>"
    return None


def _summarize_arg(value: object) -> str:
    """Short, log-safe representation of a traced argument."""
    summary = describe(value)
    if summary is not None:
        return summary
    s = repr(value)
    if len(s) > 100:
        return f"<{type(value).__name__}>"
    return _truncate(s, 80)


def _summarize_result(result: object) -> str:
    summary = describe(result)
    if summary is not None:
        return summary
    if isinstance(result, (str, int, float, bool)):
        return _truncate(repr(result), 80)
    if isinstance(result, (list, tuple)):
        # render() returns (image, GenerateResult)
        if 0 < len(result) <= 3 and all(describe(r) for r in result):
            return "(" + ", ".join(describe(r) for r in result) + ")"
        return f"{type(result).__name__}[{len(result)}]"
    if isinstance(result, dict):
        return f"dict[{len(result)} keys]"
    return type(result).__name__


class JsonFormatter(logging.Formatter):
    """Outputs one JSON object per line for machine parsing."""

    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "src": record.name,
        }
        if hasattr(record, "event"):
            entry["event"] = record.event
        if hasattr(record, "duration_ms"):
            entry["duration_ms"] = round(record.duration_ms, 2)
        if hasattr(record, "ctx"):
            entry["ctx"] = record.ctx
        if record.getMessage() and not hasattr(record, "event"):
            entry["msg"] = record.getMessage()
        if record.exc_info and record.exc_info[1]:
            entry["traceback"] = traceback.format_exception(*record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable colored console output."""

    COLORS = {
        "DEBUG": "\033[36m",    # cyan
        "INFO": "\033[32m",     # green
        "AUDIT": "\033[35m",    # magenta
        "WARNING": "\033[33m",  # yellow
        "ERROR": "\033[31m",    # red
    }
    RESET = "\033[0m"

    def format(self, record):
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.COLORS.get(record.levelname, "")
        parts = [ts, f"{color}{record.levelname:5s}{self.RESET}", f"[{record.name}]"]

        if hasattr(record, "event"):
            parts.append(record.event)

        if hasattr(record, "duration_ms"):
            parts.append(f"({record.duration_ms:.1f}ms)")

        if hasattr(record, "ctx") and record.ctx:
            parts.append(" ".join(f"{k}={_truncate(v)}" for k, v in record.ctx.items()))
        elif record.getMessage() and not hasattr(record, "event"):
            parts.append(record.getMessage())

        if record.exc_info and record.exc_info[1]:
            parts.append(f"\n{''.join(traceback.format_exception(*record.exc_info))}")

        return " ".join(parts)


def default_level() -> str:
    """Log level from the environment, INFO when unset."""
    return os.environ.get(ENV_LOG_LEVEL, "INFO")


def setup_logging(level: str | None = None, log_file: str | None = None, json_format: bool = False):
    """Configure the root qrstudio logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, AUDIT).
            Falls back to ``$QRSTUDIO_LOG_LEVEL`` and then INFO.
        log_file: If set, write JSON logs to this file path.
        json_format: If True, use JSON format on console too.
    """
    level = (level or default_level()).upper()
    root = logging.getLogger("qrstudio")
    root.setLevel(AUDIT if level == "AUDIT" else getattr(logging, level, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if json_format else ConsoleFormatter())
    root.addHandler(console)

    # File handler (always JSON)
    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(JsonFormatter())
        root.addHandler(fh)


def get_logger(module_name: str) -> logging.Logger:
    """Get a logger scoped under the qrstudio namespace."""
    return logging.getLogger(f"qrstudio.{module_name}")


def _emit(log: logging.Logger, level: int, event: str, ctx: dict, duration_ms: float | None = None,
          exc_info=None):
    record = log.makeRecord(
        name=log.name, level=level, fn="", lno=0,
        msg="", args=(), exc_info=exc_info,
    )
    record.event = event
    record.ctx = ctx
    if duration_ms is not None:
        record.duration_ms = duration_ms
    log.handle(record)


def audit(event: str, logger: logging.Logger | None = None, **context):
    """Emit an AUDIT-level structured log entry.

    Args:
        event: Machine-readable event tag (e.g., "qr.encoded").
        logger: Logger to use. Defaults to qrstudio root.
        **context: Key-value pairs for the event context.
    """
    log = logger or logging.getLogger("qrstudio")
    if not log.isEnabledFor(AUDIT):
        return
    _emit(log, AUDIT, event, context)


def trace(func=None, *, logger_name: str | None = None):
    """Decorator that auto-logs function entry/exit with timing.

    - DEBUG on entry with arguments
    - INFO on exit with duration
    - ERROR on exception with traceback and duration
    """
    def decorator(fn):
        _logger_name = logger_name or fn.__module__.replace("qrstudio.", "")
        log = get_logger(_logger_name)

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            fn_name = fn.__name__

            # Skip arg formatting unless DEBUG is on; pixel lists are large
            if log.isEnabledFor(logging.DEBUG):
                _emit(log, logging.DEBUG, f"{fn_name}.enter", {
                    "args": [_summarize_arg(a) for a in args],
                    "kwargs": {k: _summarize_arg(v) for k, v in kwargs.items()},
                })

            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception:
                elapsed = (time.perf_counter() - start) * 1000
                _emit(log, logging.ERROR, f"{fn_name}.error", {"function": fn_name},
                      duration_ms=elapsed, exc_info=sys.exc_info())
                raise

            elapsed = (time.perf_counter() - start) * 1000
            if log.isEnabledFor(logging.INFO):
                _emit(log, logging.INFO, f"{fn_name}.done", {"result": _summarize_result(result)}, duration_ms=elapsed)

            return result

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
