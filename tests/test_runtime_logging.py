from __future__ import annotations

import deal_calc.runtime_logging as runtime_logging


def test_append_and_read():
    runtime_logging.append_runtime_event(
        level="warning",
        event="test_event",
        message="Test warning.",
        context={"case": "append_and_read", "ids": {"b"}},
    )
    events = runtime_logging.read_runtime_events(limit=10)
    assert len(events) == 1
    assert events[0]["event"] == "test_event"
    assert events[0]["level"] == "WARNING"
    assert events[0]["context"] == {"case": "append_and_read", "ids": ["b"]}


def test_exception_details_are_recorded():
    try:
        raise ZeroDivisionError("division by zero")
    except ZeroDivisionError as exc:
        runtime_logging.append_runtime_event("ERROR", "calc_failed", "boom", exc=exc)
    record = runtime_logging.read_runtime_events()[0]
    assert record["exception_type"] == "ZeroDivisionError"
    assert record["exception_message"] == "division by zero"
    assert "Traceback" in record["traceback"]


def test_malformed_lines_become_parse_errors():
    log_file = runtime_logging.RUNTIME_EVENTS_LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.write_text(
        '{"event":"ok","level":"INFO","timestamp_utc":"2026-01-01T00:00:00+00:00","message":"ok","context":{}}\n'
        "not-json\n"
        "\n"
        "[1, 2]\n",
        encoding="utf-8",
    )
    events = runtime_logging.read_runtime_events(limit=10)
    assert [e["event"] for e in events] == ["ok", "log_parse_error", "log_parse_error"]


def test_filters_and_limit():
    for i in range(5):
        runtime_logging.append_runtime_event("INFO", "tick", f"tick {i}")
    runtime_logging.append_runtime_event("WARNING", "slow", "slow")
    runtime_logging.append_runtime_event("ERROR", "broken", "broken")

    assert [e["message"] for e in runtime_logging.read_runtime_events(limit=2, event="tick")] == ["tick 3", "tick 4"]
    assert [e["event"] for e in runtime_logging.read_runtime_events(min_level="warning")] == ["slow", "broken"]
    assert len(runtime_logging.read_runtime_events(min_level="nonsense")) == 7
    assert runtime_logging.read_runtime_events(limit=0) == []


def test_missing_log_reads_empty():
    assert runtime_logging.read_runtime_events() == []


def test_summarize_counts_by_event_and_level():
    events = [
        {"event": "a", "level": "INFO", "timestamp_utc": "t1"},
        {"event": "b", "level": "ERROR", "timestamp_utc": "t2"},
        {"event": "a", "level": "INFO", "timestamp_utc": "t3"},
    ]
    assert runtime_logging.summarize_runtime_events(events) == [
        {"event": "a", "level": "INFO", "count": 2, "last_seen_utc": "t3"},
        {"event": "b", "level": "ERROR", "count": 1, "last_seen_utc": "t2"},
    ]


def test_configure_log_root(tmp_path, monkeypatch):
    monkeypatch.setattr(runtime_logging, "LOG_DIR", runtime_logging.LOG_DIR)
    monkeypatch.setattr(runtime_logging, "RUNTIME_EVENTS_LOG_FILE", runtime_logging.RUNTIME_EVENTS_LOG_FILE)
    root = runtime_logging.configure_log_root(tmp_path / "logs")
    runtime_logging.append_runtime_event("INFO", "moved", "moved")
    assert (root / "runtime_events.jsonl").exists()
    assert runtime_logging.runtime_log_path().endswith("runtime_events.jsonl")
