"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across versioning and restore operations.

Usage:
    from recipe_ledger.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="restore_version",
        outcome="success",
        recipe_id=45,
        version_number=3,
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named 'recipe_ledger.services.<module>'

    Example:
        >>> get_service_logger("recipe_ledger.services.version_ledger").name
        'recipe_ledger.services.version_ledger'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"recipe_ledger.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The message is "<operation>: <outcome>"; the context fields travel in
    the record's ``extra`` so handlers can emit them as structured data.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "append_version", "restore_version")
        outcome: Outcome description (e.g., "success", "corrupt_snapshot")
        level: Log level (default: INFO)
        **context: Additional context fields. Common fields:
            - recipe_id: Recipe being changed
            - version_id / version_number: Ledger entry involved
            - error: Error message if the outcome is a failure
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
