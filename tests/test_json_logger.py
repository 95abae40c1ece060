import io
import json

import pytest

from intermediator.json_logger import JsonLogger, log_event, timed_event


def _events(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_bound_logger_shares_output_and_adds_context(tmp_path) -> None:
    stream = io.StringIO()
    log_path = tmp_path / "logs" / "run.jsonl"
    root = JsonLogger(run_id="run-1", stream=stream, log_file_path=str(log_path))

    log_event(logger=root.bind(command="sync-orders"), phase="cli", message="command started")
    root.close()
    log_event(logger=root, phase="cli", message="after close")

    [event] = _events(stream)
    assert event["run_id"] == "run-1"
    assert event["command"] == "sync-orders"
    assert event["status"] == "ok"
    assert json.loads(log_path.read_text(encoding="utf-8")) == event


def test_credentials_are_masked() -> None:
    stream = io.StringIO()
    logger = JsonLogger(run_id="run-1", stream=stream)

    log_event(
        logger=logger,
        phase="platform_api",
        message="request",
        params={"email": "ops@plus.example.com", "senha": "s3cret"},
        headers=[{"x-Secret": "plus-secret"}],
    )

    [event] = _events(stream)
    assert event["params"] == {"email": "ops@plus.example.com", "senha": "***"}
    assert event["headers"] == [{"x-Secret": "***"}]


def test_timed_event_logs_failures_and_reraises() -> None:
    stream = io.StringIO()
    logger = JsonLogger(run_id="run-1", stream=stream)

    with pytest.raises(ValueError):
        with timed_event(logger=logger, phase="cli", message="command finished"):
            raise ValueError("boom")

    [event] = _events(stream)
    assert event["status"] == "error"
    assert event["message"] == "command finished failed: boom"
    assert "duration_ms" in event


def test_warn_and_error_set_status() -> None:
    stream = io.StringIO()
    logger = JsonLogger(run_id="run-1", stream=stream).bind(command="send-orders")

    logger.warn(phase="send_orders", message="order not found", order_id="Z9")
    logger.error(phase="send_orders", message="store write failed")

    events = _events(stream)
    assert [(event["status"], event["message"]) for event in events] == [
        ("warn", "order not found"),
        ("error", "store write failed"),
    ]
    assert events[0]["order_id"] == "Z9"
    assert events[0]["command"] == "send-orders"
