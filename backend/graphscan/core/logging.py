# backend/graphscan/core/logging.py
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Any, TextIO
from pythonjsonlogger import jsonlogger

from graphscan.core.config import settings

CONTEXT_FIELDS = ("workspace_id", "scan_run_id", "idempotency_key", "request_id")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter for structured logging"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if record.name:
            log_record["logger"] = record.name

        log_record["level"] = record.levelname

        # Ingestion context passed through `extra=`
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_record[field] = str(getattr(record, field))


def setup_logging(level: str = "INFO", stream: TextIO = sys.stdout) -> logging.Logger:
    """Configure structured JSON logging; calling again replaces the handler"""
    logger = logging.getLogger("graphscan")
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    # CLI tools pass stderr so stdout stays reserved for their output
    console_handler = logging.StreamHandler(stream)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(logger)s %(message)s"
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


# Initialize logger
logger = setup_logging(settings.LOG_LEVEL)
