import json
import logging
from datetime import UTC, datetime

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes passed through ``extra=`` that are promoted to top-level JSON keys
_EXTRA_FIELDS = ("service", "request_id", "provider", "memory_id", "duration_ms")


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per record for log shippers.
    """

    def __init__(self, service_name: str = ""):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if self.service_name:
            log_obj["service"] = self.service_name

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        return json.dumps(log_obj, default=str)


def setup_structured_logging(service_name: str, level: str = "INFO") -> None:
    """
    Configure the root logger to use JSON formatting
    """
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Replace uvicorn/basicConfig handlers so every line is JSON
    if root_logger.handlers:
        root_logger.handlers = []

    root_logger.addHandler(handler)


def configure_logging(service_name: str, level: str = "INFO", structured: bool = False) -> None:
    """Configure process logging once at startup."""
    if structured:
        setup_structured_logging(service_name, level)
        return
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=DEFAULT_FORMAT)
