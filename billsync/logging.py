import json
import logging
import sys
from datetime import datetime, timezone

# promoted out of extra_data so one delivery can be followed across log lines
CORRELATION_FIELDS = ("event_id", "event_type")

class JSONFormatter(logging.Formatter):
    """One JSON object per line; structured fields go in ``extra={"extra_data": {...}}``."""

    def __init__(self, service: str = "billsync", env: str | None = None):
        super().__init__()
        self.service = service
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.env:
            entry["env"] = self.env

        data = getattr(record, "extra_data", None)
        if isinstance(data, dict):
            data = dict(data)
            for key in CORRELATION_FIELDS:
                if key in data:
                    entry[key] = data.pop(key)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[0]:
            entry["error_type"] = record.exc_info[0].__name__
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)

class TextFormatter(logging.Formatter):
    """Human readable lines for local runs and the replay CLI."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        data = getattr(record, "extra_data", None)
        if data:
            line += " " + " ".join(f"{k}={v}" for k, v in data.items())
        return line

def setup_logging(level: str = "INFO", json_logs: bool = True, env: str | None = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(env=env) if json_logs else TextFormatter())

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()
    root.addHandler(handler)

    # the stripe sdk logs every request at info
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
