"""Structured runtime diagnostics log (JSON lines beside the local store).

Every record carries ``timestamp_utc``, an upper-case ``level``, ``event``,
``message`` and ``context``; records written with an exception also carry its
type, message and traceback. Writing never raises.
"""

from __future__ import annotations

import json
import os
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from streamlit.runtime.scriptrunner import get_script_run_ctx

from tally.config import STORAGE_ENV_VAR, expand_storage_root


LOG_FILE_NAME = "runtime_events.jsonl"
LOG_DIR = Path(".local_store")
RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_EXCEPTION_HOOK_INSTALLED = False


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_fallback(value: Any):
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value, key=str) if isinstance(value, (set, frozenset)) else list(value)
    return str(value)


def _level_rank(level: Any) -> int:
    text = str(level or "").upper()
    return LEVELS.index(text) if text in LEVELS else len(LEVELS)


def configure_log_root(path_value: str | Path | None) -> Path:
    """Point the log at ``<path_value>/runtime_events.jsonl``."""
    global LOG_DIR, RUNTIME_EVENTS_LOG_FILE
    LOG_DIR = expand_storage_root(path_value)
    RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME
    return LOG_DIR


def runtime_log_path() -> str:
    return str(RUNTIME_EVENTS_LOG_FILE.resolve())


def _event_record(
    level: str,
    event: str,
    message: str,
    context: dict[str, Any] | None,
    exc: BaseException | None,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "timestamp_utc": _now_iso(),
        "level": str(level).upper(),
        "event": str(event),
        "message": str(message),
        "context": dict(context or {}),
    }
    if exc is None:
        return record
    record["exception_type"] = type(exc).__name__
    record["exception_message"] = str(exc)
    if exc.__traceback__ is not None:
        record["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return record


def append_runtime_event(
    level: str,
    event: str,
    message: str,
    context: dict[str, Any] | None = None,
    exc: BaseException | None = None,
) -> None:
    """Append one event record; failures to write are ignored."""
    try:
        line = json.dumps(_event_record(level, event, message, context, exc), default=_json_fallback, ensure_ascii=False)
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        with RUNTIME_EVENTS_LOG_FILE.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
    except Exception:
        pass


def _parse_line(line: str) -> dict[str, Any]:
    try:
        parsed = json.loads(line)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    return {
        "timestamp_utc": _now_iso(),
        "level": "ERROR",
        "event": "log_parse_error",
        "message": "Malformed log line encountered.",
        "context": {"line": line},
    }


def read_runtime_events(
    limit: int = 200,
    min_level: str | None = None,
    events: Iterable[str] | None = None,
) -> list[dict[str, Any]]:
    """Return up to ``limit`` of the most recent records, oldest first.

    ``min_level`` and ``events`` filter the tail after malformed lines have been
    turned into ``log_parse_error`` records.
    """
    if limit <= 0 or not RUNTIME_EVENTS_LOG_FILE.exists():
        return []
    try:
        lines = RUNTIME_EVENTS_LOG_FILE.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []
    records = [_parse_line(line) for line in lines[-int(limit) :] if line.strip()]
    if min_level is not None:
        floor = _level_rank(min_level)
        records = [r for r in records if _level_rank(r.get("level")) >= floor]
    if events is not None:
        wanted = set(events)
        records = [r for r in records if r.get("event") in wanted]
    return records


def clear_runtime_events() -> bool:
    try:
        RUNTIME_EVENTS_LOG_FILE.unlink()
    except FileNotFoundError:
        return True
    except OSError as exc:
        append_runtime_event(
            level="ERROR",
            event="runtime_log_clear_failed",
            message="Failed to clear runtime log file.",
            context={"path": str(RUNTIME_EVENTS_LOG_FILE)},
            exc=exc,
        )
        return False
    return True


def _log_uncaught(exc_type, exc, exc_tb) -> None:
    append_runtime_event(
        level="ERROR",
        event="uncaught_exception",
        message=str(exc),
        context={"traceback": "".join(traceback.format_exception(exc_type, exc, exc_tb))},
        exc=exc,
    )


def install_global_exception_logging() -> None:
    """Record uncaught exceptions raised inside a Streamlit script run, then defer to the previous hook."""
    global _EXCEPTION_HOOK_INSTALLED
    if _EXCEPTION_HOOK_INSTALLED:
        return
    previous_hook = sys.excepthook

    def _hook(exc_type, exc, exc_tb):
        if get_script_run_ctx() is not None:
            _log_uncaught(exc_type, exc, exc_tb)
        previous_hook(exc_type, exc, exc_tb)

    sys.excepthook = _hook
    _EXCEPTION_HOOK_INSTALLED = True


configure_log_root(os.getenv(STORAGE_ENV_VAR, ""))
