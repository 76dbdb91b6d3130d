"""
ORM-Level Immutability Enforcement for stock history.

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement log must reconstruct every ledger quantity.  That only holds
if history is append-only: a movement, once written, never changes, and a
finalized count session never changes either (its correction was applied
exactly once and the counts are the evidence for it).

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
The listeners here intercept those events and raise
ImmutabilityViolationError, aborting the flush before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() ---------/

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable                  | Why
----------------|---------------------------------|--------------------------------
StockMovement   | ALWAYS (from creation)          | History is append-only
StockRecord     | DELETE always blocked           | Quantity may hit 0, row stays
OpnameSession   | After status = FINALIZED        | Correction applied exactly once
OpnameItem      | When parent session FINALIZED   | Counts are part of the session

===============================================================================
USAGE
===============================================================================

Called once at application startup, after models are imported:

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.domain.values import OpnameStatus
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Audit metadata that may change even on frozen rows.
_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_movement_immutability(mapper, connection, target):
    """Movements are append-only: no field may ever change."""
    from stock_kernel.models.stock import StockMovement

    if not isinstance(target, StockMovement):
        return

    raise _blocked(
        "StockMovement",
        target.id,
        "UPDATE",
        "Stock movements are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    from stock_kernel.models.stock import StockMovement

    if not isinstance(target, StockMovement):
        return

    raise _blocked(
        "StockMovement",
        target.id,
        "DELETE",
        "Stock movements are append-only and cannot be deleted",
    )


def _check_stock_record_delete(mapper, connection, target):
    """Ledger rows persist indefinitely; a zero quantity is still a row."""
    from stock_kernel.models.stock import StockRecord

    if not isinstance(target, StockRecord):
        return

    raise _blocked(
        "StockRecord",
        target.id,
        "DELETE",
        "Stock records are never deleted; adjust quantity to 0 instead",
    )


def _was_finalized_before(target) -> bool:
    """
    Was the session FINALIZED before this flush started?

    The finalize itself flips status to FINALIZED and must be allowed
    through; anything after that transition is blocked.
        1. status changing FROM finalized: was finalized
        2. status unchanged and currently finalized: was finalized
        3. status changing TO finalized: this IS the finalize
    """
    status_history = get_history(target, "status")

    if status_history.deleted:
        return status_history.deleted[0] == OpnameStatus.FINALIZED
    if not status_history.added:
        return target.status == OpnameStatus.FINALIZED
    return False


def _check_opname_session_immutability(mapper, connection, target):
    from stock_kernel.models.opname import OpnameSession

    if not isinstance(target, OpnameSession):
        return

    if not _was_finalized_before(target):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "OpnameSession",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on finalized opname session",
                field=attr.key,
            )


def _check_opname_session_delete(mapper, connection, target):
    from stock_kernel.models.opname import OpnameSession

    if not isinstance(target, OpnameSession):
        return

    if target.status == OpnameStatus.FINALIZED:
        raise _blocked(
            "OpnameSession",
            target.id,
            "DELETE",
            "Finalized opname sessions cannot be deleted",
        )


def _check_opname_item_immutability(mapper, connection, target):
    from stock_kernel.models.opname import OpnameItem

    if not isinstance(target, OpnameItem):
        return

    if target.session is not None and target.session.status == OpnameStatus.FINALIZED:
        raise _blocked(
            "OpnameItem",
            target.id,
            "UPDATE",
            "Opname items cannot be modified after the session is finalized",
        )


def _check_opname_item_delete(mapper, connection, target):
    from stock_kernel.models.opname import OpnameItem

    if not isinstance(target, OpnameItem):
        return

    if target.session is not None and target.session.status == OpnameStatus.FINALIZED:
        raise _blocked(
            "OpnameItem",
            target.id,
            "DELETE",
            "Opname items cannot be deleted after the session is finalized",
        )


def _listeners():
    from stock_kernel.models.opname import OpnameItem, OpnameSession
    from stock_kernel.models.stock import StockMovement, StockRecord

    return (
        (StockMovement, "before_update", _check_movement_immutability),
        (StockMovement, "before_delete", _check_movement_delete),
        (StockRecord, "before_delete", _check_stock_record_delete),
        (OpnameSession, "before_update", _check_opname_session_immutability),
        (OpnameSession, "before_delete", _check_opname_session_delete),
        (OpnameItem, "before_update", _check_opname_item_immutability),
        (OpnameItem, "before_delete", _check_opname_item_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener already registered is not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
