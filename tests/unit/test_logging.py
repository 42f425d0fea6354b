import logging

from usage_metrics.core.logging import RequestIdFilter, current_request_id


def make_record(**extra):
    record = logging.LogRecord("usage_metrics.collector", logging.WARNING, __file__, 1, "msg", (), None)
    record.__dict__.update(extra)
    return record


def test_filter_defaults_outside_a_request():
    record = make_record()
    assert RequestIdFilter().filter(record)
    assert record.request_id == "-"


def test_filter_uses_active_request_id():
    token = current_request_id.set("rid-7")
    try:
        record = make_record()
        RequestIdFilter().filter(record)
    finally:
        current_request_id.reset(token)
    assert record.request_id == "rid-7"


def test_filter_keeps_explicit_request_id():
    record = make_record(request_id="rid-explicit")
    RequestIdFilter().filter(record)
    assert record.request_id == "rid-explicit"
