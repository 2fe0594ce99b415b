from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

CONTEXT_FIELDS = (
    "role",
    "service",
    "run_id",
    "mode",
    "operation",
    "reference_id",
    "content_id",
    "owner_id",
    "actor_id",
    "event",
    "from_status",
    "to_status",
    "expected_status",
    "actual_status",
    "status",
    "reason",
    "error",
    "error_code",
    "retry_classification",
    "filename",
    "scanned",
    "findings",
    "repaired",
    "failed",
    "unresolved",
    "found",
    "dry_run",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(level: int = logging.INFO) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
