from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Optional


DEBUG_SESSION_ID = os.getenv("DEBUG_SESSION_ID", "debug-session")
DEBUG_RUN_ID = os.getenv("DEBUG_RUN_ID") or uuid.uuid4().hex[:8]

LOGGER_NAMES = ("snowcone", "views")

_CONFIGURED = False


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record, keyed like the debug log payloads."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "sessionId": DEBUG_SESSION_ID,
            "runId": DEBUG_RUN_ID,
            "location": f"{record.module}.py:{record.funcName}",
            "level": record.levelname,
            "message": record.getMessage(),
            "data": getattr(record, "data", {}),
            "timestamp": int(record.created * 1000),
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", debug_log_path: Optional[str] = None) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    stream = logging.StreamHandler()
    stream.setLevel(level)
    stream.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    file_handler = None
    if debug_log_path:
        file_handler = logging.FileHandler(debug_log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLinesFormatter())

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG if file_handler else level)
        logger.addHandler(stream)
        if file_handler:
            logger.addHandler(file_handler)

    _CONFIGURED = True
