"""Structured runtime event log for calculation diagnostics.

Events are appended as one JSON object per line to
``<storage root>/runtime_events.jsonl``. Engine code logs degraded results
(rejected formulas, unknown calculators, store fallbacks, unallocated costs)
here instead of raising, so a broken template never takes a preview down.
"""

from __future__ import annotations

import json
import os
import sys
import traceback
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from streamlit.runtime.scriptrunner import get_script_run_ctx


LOG_DIR = Path(".local_store")
RUNTIME_EVENTS_LOG_FILE = LOG_DIR / "runtime_events.jsonl"

_DEFAULT_LOG_DIR = Path(".local_store")
_STORAGE_ENV_VAR = "DEAL_CALC_STORAGE_ROOT"
_LOG_FILE_NAME = "runtime_events.jsonl"

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_EXCEPTION_HOOK_INSTALLED = False


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_default(value: Any):
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def configure_log_root(path_value: str | Path | None) -> Path:
    """Point the event log at ``<path_value>/runtime_events.jsonl``; blank means ``.local_store``."""
    global LOG_DIR, RUNTIME_EVENTS_LOG_FILE
    text = "" if path_value is None else str(path_value).strip()
    LOG_DIR = Path(os.path.expandvars(os.path.expanduser(text))) if text else _DEFAULT_LOG_DIR
    RUNTIME_EVENTS_LOG_FILE = LOG_DIR / _LOG_FILE_NAME
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
        "context": context or {},
    }
    if exc is not None:
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
    """Append a structured runtime event record to disk."""
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        line = json.dumps(_event_record(level, event, message, context, exc), default=_json_default, ensure_ascii=False)
        with RUNTIME_EVENTS_LOG_FILE.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
    except Exception:
        # Logging failures never propagate into a calculation.
        pass


def _parse_line(line: str) -> dict[str, Any]:
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        record = None
    if not isinstance(record, dict):
        return {
            "timestamp_utc": _now_iso(),
            "level": "ERROR",
            "event": "log_parse_error",
            "message": "Malformed log line encountered.",
            "context": {"line": line},
        }
    return record


def read_runtime_events(
    limit: int = 200,
    event: str | None = None,
    min_level: str | None = None,
) -> list[dict[str, Any]]:
    """Most recent ``limit`` events, oldest first, optionally filtered by name and level."""
    if limit <= 0 or not RUNTIME_EVENTS_LOG_FILE.exists():
        return []
    try:
        lines = RUNTIME_EVENTS_LOG_FILE.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []
    floor = LEVELS.index(min_level.upper()) if min_level and min_level.upper() in LEVELS else 0
    out: list[dict[str, Any]] = []
    for line in lines:
        if not line.strip():
            continue
        record = _parse_line(line)
        if event is not None and record.get("event") != event:
            continue
        level = str(record.get("level", "")).upper()
        if floor and (level not in LEVELS or LEVELS.index(level) < floor):
            continue
        out.append(record)
    return out[-int(limit) :]


def summarize_runtime_events(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Count events by (event, level), most frequent first."""
    counts = Counter((str(e.get("event", "")), str(e.get("level", ""))) for e in events)
    last_seen: dict[tuple[str, str], str] = {}
    for e in events:
        last_seen[(str(e.get("event", "")), str(e.get("level", "")))] = str(e.get("timestamp_utc", ""))
    return [
        {"event": name, "level": level, "count": count, "last_seen_utc": last_seen[(name, level)]}
        for (name, level), count in counts.most_common()
    ]


def install_global_exception_logging() -> None:
    """Record uncaught exceptions raised during a Streamlit script run."""
    global _EXCEPTION_HOOK_INSTALLED
    if _EXCEPTION_HOOK_INSTALLED:
        return
    previous_hook = sys.excepthook

    def _hook(exc_type, exc, exc_tb):
        try:
            if get_script_run_ctx() is not None:
                append_runtime_event(level="ERROR", event="uncaught_exception", message=str(exc), exc=exc)
        except Exception:
            pass
        previous_hook(exc_type, exc, exc_tb)

    sys.excepthook = _hook
    _EXCEPTION_HOOK_INSTALLED = True


configure_log_root(os.getenv(_STORAGE_ENV_VAR, ""))
