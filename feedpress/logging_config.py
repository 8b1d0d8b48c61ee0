"""
Structured JSON logging for pipeline observability.

Provides structured logging with trace IDs for correlating logs across
pipeline stages, plus a context manager for outbound service calls
(generation, image and CMS requests).
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variables for trace correlation
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
stage_var: ContextVar[str | None] = ContextVar("stage", default=None)

# Extra record attributes copied into the JSON payload
EXTRA_FIELDS = (
    "event",
    "stage",
    "duration_ms",
    "items_processed",
    "items_failed",
    "service",
    "operation",
    "status_code",
    "source_id",
    "feed_item_id",
    "monitor_id",
    "article_id",
    "image_id",
    "publication_id",
    "rule_id",
    "site_id",
)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "trace_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = trace_id_var.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        stage = stage_var.get()
        if stage:
            log_data["stage"] = stage

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure logging for hosted or local development.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def log_stage(stage: str, trace_id: str | None = None):
    """
    Context manager for stage-level logging.

    Logs stage start and end with duration, automatically tracks timing.

    Usage:
        with log_stage("auto_publish", trace_id=run_id):
            # ... stage logic ...
    """
    if trace_id:
        trace_id_var.set(trace_id)
    stage_var.set(stage)

    start_time = time.time()
    logger = logging.getLogger("pipeline")

    logger.info(f"Stage {stage} started", extra={"event": "stage_start", "stage": stage})

    try:
        yield
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Stage {stage} completed",
            extra={
                "event": "stage_complete",
                "stage": stage,
                "duration_ms": duration_ms,
            },
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.error(
            f"Stage {stage} failed: {e}",
            extra={
                "event": "stage_failed",
                "stage": stage,
                "duration_ms": duration_ms,
            },
            exc_info=True,
        )
        raise
    finally:
        stage_var.set(None)


@contextmanager
def log_service_call(service: str, operation: str):
    """
    Context manager for outbound service call instrumentation.

    Usage:
        with log_service_call("wordpress", "create_post") as metrics:
            response = client.post(...)
            metrics["status_code"] = response.status_code
    """
    start_time = time.time()
    logger = logging.getLogger("pipeline.http")
    metrics: dict = {"status_code": None}

    try:
        yield metrics

        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"{service} {operation} completed ({metrics['status_code']}, {duration_ms}ms)",
            extra={
                "event": f"{service}_{operation}_complete",
                "service": service,
                "operation": operation,
                "status_code": metrics["status_code"],
                "duration_ms": duration_ms,
            },
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.error(
            f"{service} {operation} failed: {e}",
            extra={
                "event": f"{service}_{operation}_failed",
                "service": service,
                "operation": operation,
                "status_code": metrics["status_code"],
                "duration_ms": duration_ms,
            },
        )
        raise
