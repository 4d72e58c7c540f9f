from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_fields"):
            payload.update(getattr(record, "extra_fields"))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(log_dir: str = "data/logs", level: int = logging.INFO, console: bool = True) -> None:
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    logfile = path / "jobrelay.log"
    handler = logging.FileHandler(logfile, encoding="utf-8")
    handler.setFormatter(JsonFormatter())
    handlers: list[logging.Handler] = [handler]
    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(JsonFormatter())
        handlers.append(stream)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = handlers
    logging.getLogger("httpx").setLevel(logging.WARNING)
