import json
import logging

from botfleet.logging_utils import EndpointFilter, JsonFormatter


def _record(msg: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("botfleet.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_known_extras() -> None:
    line = JsonFormatter().format(_record("worker_exited", tenant_id="t1", slot="bot1", returncode=-15, color="red"))
    payload = json.loads(line)

    assert payload["msg"] == "worker_exited"
    assert payload["logger"] == "botfleet.test"
    assert payload["tenant_id"] == "t1"
    assert payload["returncode"] == -15
    assert "color" not in payload


def test_endpoint_filter_drops_polled_path() -> None:
    flt = EndpointFilter("/api/status")
    assert flt.filter(_record('127.0.0.1 - "GET /api/status HTTP/1.1" 200')) is False
    assert flt.filter(_record('127.0.0.1 - "POST /api/bot/start/bot1 HTTP/1.1" 200')) is True
