"""Structured log entries for the import pipeline.

Every stage reports what it did through log_operation(), which puts the
operation name, its outcome and any counts on the LogRecord itself so a
handler or caplog can read them as attributes:

    logger = get_service_logger(__name__)
    log_operation(logger, "commit_import", "success", business_id="b1", created_count=12)

Context keys must not collide with LogRecord's own attributes
("created", "filename", "module", ...); logging raises KeyError for those.
"""

import logging
from typing import Any

LOGGER_PREFIX = "menu_catalog.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Logger for a service module, named under menu_catalog.services.

    Only the last dotted component of `name` is kept, so
    "src.services.menu_import_service" becomes
    "menu_catalog.services.menu_import_service".
    """
    return logging.getLogger(f"{LOGGER_PREFIX}.{name.rpartition('.')[2]}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Emit "<operation>: <outcome>" with the context attached as record extras.

    Args:
        logger: Logger from get_service_logger()
        operation: What ran ("parse_upload", "validate_graph", "commit_step", ...)
        outcome: How it ended ("success", "validation_failed", "error", ...)
        level: DEBUG for per-step entries, WARNING/ERROR for failures
        **context: business_id, step, upload_name, counts and the like
    """
    extra = {"operation": operation, "outcome": outcome, **context}
    logger.log(level, f"{operation}: {outcome}", extra=extra)
