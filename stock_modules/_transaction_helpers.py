"""
Shared transaction helpers for module services.

Used by stock_modules/*/service.py so every public operation owns its
transaction boundary the same way: commit on success, rollback on any
failure, and database failures surfaced as StorageFailureError.

Architecture: Modules layer.  Imports only from stock_kernel.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_kernel.exceptions import StorageFailureError
from stock_kernel.logging_config import get_logger

logger = get_logger("modules.transaction")

T = TypeVar("T")


def run_in_transaction(session: Session, operation: str, work: Callable[[], T]) -> T:
    """Run ``work`` and commit, or roll back and re-raise.

    A SQLAlchemyError (lost connection, failed flush, failed commit) is
    logged at CRITICAL and re-raised as StorageFailureError.  Domain errors
    propagate unchanged.  Nothing is retried.
    """
    try:
        result = work()
        session.commit()
        return result
    except SQLAlchemyError as exc:
        session.rollback()
        logger.critical(
            "storage_failure",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "detail": str(exc),
            },
        )
        raise StorageFailureError(operation, str(exc)) from exc
    except Exception:
        session.rollback()
        raise


def run_read(session: Session, work: Callable[[], T]) -> T:
    """Run a read and end its transaction.

    On SQLite every transaction holds the write lock from BEGIN, so reads
    must not leave one open.
    """
    try:
        return work()
    finally:
        session.rollback()
