"""
Logging setup for the ingestion CLI and app.

Two output shapes share one set of import context fields:
    ReadableFormatter  coloured single line, used with DEBUG=True
    JSONFormatter      one JSON object per line, used otherwise

LOG_LEVEL overrides the level; LOG_FORMAT ("json" / "readable") overrides
the shape. Services pass context with ``extra=``:

    logger.info("Imported %d rows", n, extra={"project_id": 3, "import_kind": "defects"})
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("project_id", "test_run_id", "import_kind", "row", "method_name")

QUIET_LOGGERS = ("sqlalchemy.engine", "alembic")


class _ContextFormatter(logging.Formatter):
    def context_of(self, record):
        found = {}
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                found[name] = value
        return found

    def traceback_of(self, record):
        if not record.exc_info or record.exc_info[0] is None:
            return None
        return self.formatException(record.exc_info)


class JSONFormatter(_ContextFormatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
            **self.context_of(record),
        }
        tb = self.traceback_of(record)
        if tb:
            payload["exc"] = tb
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(_ContextFormatter):
    LEVEL_COLOURS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def format(self, record: logging.LogRecord) -> str:
        code = self.LEVEL_COLOURS.get(record.levelno, "0")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"\033[{code}m{clock} {record.levelname:<8}\033[0m {record.name}: {record.getMessage()}"
        ctx = self.context_of(record)
        if ctx:
            line += " (" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + ")"
        tb = self.traceback_of(record)
        return f"{line}\n{tb}" if tb else line


def _pick_formatter(debug):
    shape = os.getenv("LOG_FORMAT", "").lower()
    if shape == "json" or (not shape and not debug):
        return JSONFormatter()
    return ReadableFormatter()


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    Under TESTING only levels are touched so pytest's log capture keeps its
    own handlers.
    """
    debug = bool(app.config.get("DEBUG"))
    testing = bool(app.config.get("TESTING"))

    level_name = os.getenv("LOG_LEVEL") or ("DEBUG" if debug or testing else "INFO")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if testing:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_pick_formatter(debug))
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.debug("Logging ready: level=%s formatter=%s", level_name, type(handler.formatter).__name__)
