# tests/test_logging.py
import json
import logging

from restaurant_ledger.core.logging import JsonFormatter, bind_request_id, reset_request_id


def _record(**extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "restaurant_ledger.rewards", "levelname": "INFO", "msg": "Points redeemed"})
    record.__dict__.update(extra)
    return record


def test_ledger_identifiers_are_top_level_fields() -> None:
    line = json.loads(
        JsonFormatter().format(_record(customer_id="9845011111", redemption_id="till-7", points=7))
    )

    assert line["message"] == "Points redeemed"
    assert (line["customer_id"], line["redemption_id"]) == ("9845011111", "till-7")
    assert line["extra"] == {"points": 7}


def test_bound_request_id_tags_every_line() -> None:
    token = bind_request_id("req-123")
    try:
        line = json.loads(JsonFormatter().format(_record()))
    finally:
        reset_request_id(token)

    assert line["request_id"] == "req-123"
    assert "request_id" not in json.loads(JsonFormatter().format(_record()))
    assert "extra" not in line
