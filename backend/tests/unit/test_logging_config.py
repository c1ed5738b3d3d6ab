"""Unit tests for structured log formatting"""

import json
import logging

from observability.logging_config import JSONFormatter, RequestIDFilter
from observability.request_id import request_id_var


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("pricing.sync", logging.INFO, __file__, 10, "imported %d items", (3,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_line_includes_context_fields():
    token = request_id_var.set("req-42")
    try:
        record = _record(org_id="org-1", job_id=None, price_list_id="pl-1")
        RequestIDFilter().filter(record)
        payload = json.loads(JSONFormatter().format(record))
    finally:
        request_id_var.reset(token)

    assert payload["message"] == "imported 3 items"
    assert payload["service"] == "pricing"
    assert payload["request_id"] == "req-42"
    assert payload["org_id"] == "org-1"
    assert payload["price_list_id"] == "pl-1"
    assert "job_id" not in payload


def test_request_id_outside_request():
    record = _record()
    RequestIDFilter().filter(record)
    assert record.request_id == "no-request-id"
