from __future__ import annotations

import json
import logging
import sys
from typing import Any

_EXTRA_KEYS = ("tenant_id", "slot", "pid", "returncode", "path", "count", "action")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class EndpointFilter(logging.Filter):
    """Drop access-log lines for a polled endpoint."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = path

    def filter(self, record: logging.LogRecord) -> bool:
        return self._path not in record.getMessage()


def configure_logging(level: str) -> None:
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    # Dashboards poll these; keep them out of the access log.
    access = logging.getLogger("uvicorn.access")
    access.addFilter(EndpointFilter("/api/status"))
    access.addFilter(EndpointFilter("/api/heartbeat"))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
