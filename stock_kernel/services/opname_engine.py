"""
OpnameEngine -- physical stock count (opname) sessions.

Responsibility:
    Snapshots a warehouse's system quantities, records physical counts and
    per-item differences, and on finalize converts every non-zero
    difference into an AdjustmentEngine ``set``.  Finalize is the only
    point where a session writes to the ledger.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Depends on
    AdjustmentEngine; has no ledger write path of its own.

Invariants enforced:
    - Lifecycle draft -> counting -> finalized via OPNAME_WORKFLOW; no
      backward transition, finalized is terminal.
    - ``difference == physical_qty - system_qty`` on every counted item.
    - Exactly-once finalize: the session row is locked FOR UPDATE and its
      status re-read under the lock; a finalized session raises
      AlreadyFinalizedError and writes nothing.  Adjustments and the
      status flip commit together in the caller's transaction.
    - Lock order: session row, then stock rows (sorted), then counters.

Failure modes:
    - OpnameNotFoundError: unknown or soft-deleted session.
    - OpnameItemNotFoundError: count for a product/item not in the session.
    - AlreadyFinalizedError: any write to a finalized session.
    - IncompleteCountError: finalize while items are uncounted.
"""

from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import (
    DEFAULT_QUARANTINE_REASONS,
    OPNAME_ADJUSTMENT_REASON,
    OpnameCountUpdate,
    OpnameItemDTO,
    OpnameSessionDTO,
    OpnameStatus,
    OpnameSummary,
)
from stock_kernel.domain.workflow import OPNAME_WORKFLOW
from stock_kernel.exceptions import (
    AlreadyFinalizedError,
    IncompleteCountError,
    OpnameItemNotFoundError,
    OpnameNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.opname import OpnameItem, OpnameSession
from stock_kernel.models.stock import StockRecord
from stock_kernel.services.adjustment_engine import AdjustmentEngine
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.validation import validate_notes, validate_quantity
from stock_kernel.services.warehouse_directory import WarehouseDirectory

logger = get_logger("services.opname_engine")


class OpnameEngine(BaseService[OpnameSession]):
    """
    Session-scoped count reconciliation.

    Contract:
        Writes to items are allowed only while the session is draft or
        counting.  ``finalize`` returns the fold of the quantity changes it
        actually applied.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
        reference_prefix: str = "OP",
        adjustment_reason: str = OPNAME_ADJUSTMENT_REASON,
        quarantine_reasons: tuple[str, ...] = DEFAULT_QUARANTINE_REASONS,
        quarantine_enabled: bool = True,
        adjustment_reference_prefix: str = "ADJ",
    ):
        super().__init__(session)
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._reference_prefix = reference_prefix
        self._adjustment_reason = adjustment_reason
        self._sequences = SequenceService(session)
        self._warehouses = WarehouseDirectory(session)
        self._ledger = StockLedger(session, actor_id)
        self._adjustments = AdjustmentEngine(
            session,
            actor_id,
            self._clock,
            quarantine_reasons=quarantine_reasons,
            quarantine_enabled=quarantine_enabled,
            reference_prefix=adjustment_reference_prefix,
        )

    # -- loading ------------------------------------------------------------

    def _load(self, session_id: UUID, lock: bool = False) -> OpnameSession:
        stmt = select(OpnameSession).where(
            OpnameSession.id == session_id,
            OpnameSession.is_active.is_(True),
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        opname = self.session.execute(stmt).scalar_one_or_none()
        if opname is None:
            raise OpnameNotFoundError(str(session_id))
        return opname

    def _items(self, opname: OpnameSession) -> list[OpnameItem]:
        """Re-read the items of a locked session, overwriting stale identity-map state."""
        return list(
            self.session.execute(
                select(OpnameItem)
                .where(OpnameItem.session_id == opname.id)
                .order_by(OpnameItem.position)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def _require_transition(self, opname: OpnameSession, action: str):
        transition = OPNAME_WORKFLOW.transition_for(opname.status, action)
        if transition is None:
            # Only the terminal state lacks record_count/finalize transitions.
            raise AlreadyFinalizedError(str(opname.id), number=opname.number)
        return transition

    # -- create ---------------------------------------------------------------

    def create_session(
        self,
        warehouse_id: UUID,
        notes: str | None = None,
        product_ids: Iterable[UUID] = (),
    ) -> OpnameSessionDTO:
        """
        Open a session and snapshot system quantities.

        Every product with a stock record in the warehouse is included (zero
        quantities too).  ``product_ids`` adds products that have never
        moved in this warehouse; they snapshot at 0.
        """
        validate_notes(notes)
        warehouse = self._warehouses.require_active(warehouse_id)

        records = self.session.execute(
            select(StockRecord.product_id, StockRecord.quantity)
            .where(StockRecord.warehouse_id == warehouse.id)
            .order_by(StockRecord.product_id)
        ).all()
        snapshot: dict[UUID, int] = {row.product_id: row.quantity for row in records}
        for product_id in product_ids:
            snapshot.setdefault(product_id, 0)

        now = self._clock.now()
        number = self._sequences.next_daily_reference(
            SequenceService.OPNAME_REF, self._reference_prefix, now.strftime("%Y%m%d"),
        )

        opname = OpnameSession(
            number=number,
            warehouse_id=warehouse.id,
            status=OpnameStatus.DRAFT.value,
            notes=notes,
            total_items=len(snapshot),
            is_active=True,
            created_at=now,
            updated_at=now,
            created_by_id=self._actor_id,
            items=[
                OpnameItem(position=position, product_id=product_id, system_qty=system_qty)
                for position, (product_id, system_qty) in enumerate(snapshot.items())
            ],
        )
        self.session.add(opname)
        self.session.flush()

        logger.info(
            "opname_created",
            extra={
                "opname_id": str(opname.id),
                "number": number,
                "warehouse_id": str(warehouse.id),
                "total_items": opname.total_items,
            },
        )
        return OpnameSessionDTO.from_model(opname)

    # -- counting -------------------------------------------------------------

    def _count(self, item: OpnameItem, physical_qty: int, notes: str | None) -> None:
        item.physical_qty = physical_qty
        item.difference = physical_qty - item.system_qty
        if notes is not None:
            item.notes = notes
        item.counted_at = self._clock.now()
        item.counted_by_id = self._actor_id

    def record_count(
        self,
        session_id: UUID,
        product_id: UUID,
        physical_qty: int,
        notes: str | None = None,
    ) -> OpnameItemDTO:
        """Record the physical count for one product.  Recounting overwrites."""
        validate_quantity(physical_qty, minimum=0)
        validate_notes(notes)

        opname = self._load(session_id, lock=True)
        transition = self._require_transition(opname, "record_count")

        item = next((i for i in self._items(opname) if i.product_id == product_id), None)
        if item is None:
            raise OpnameItemNotFoundError(str(session_id), str(product_id))

        self._count(item, physical_qty, notes)
        opname.status = transition.to_state
        opname.updated_by_id = self._actor_id
        self.session.flush()

        logger.info(
            "opname_count_recorded",
            extra={
                "opname_id": str(opname.id),
                "product_id": str(product_id),
                "system_qty": item.system_qty,
                "physical_qty": physical_qty,
                "difference": item.difference,
            },
        )
        return OpnameItemDTO.from_model(item)

    def update_items(
        self,
        session_id: UUID,
        updates: Sequence[OpnameCountUpdate],
    ) -> OpnameSessionDTO:
        """
        Record counts for several items at once.

        Every entry is validated before any item changes, so an unknown item
        id or a bad quantity leaves the session untouched.
        """
        for update in updates:
            validate_quantity(update.physical_qty, minimum=0)
            validate_notes(update.notes)

        opname = self._load(session_id, lock=True)
        transition = self._require_transition(opname, "record_count")

        by_id = {item.id: item for item in self._items(opname)}
        for update in updates:
            if update.item_id not in by_id:
                raise OpnameItemNotFoundError(str(session_id), str(update.item_id))

        for update in updates:
            self._count(by_id[update.item_id], update.physical_qty, update.notes)

        if updates:
            opname.status = transition.to_state
            opname.updated_by_id = self._actor_id
        self.session.flush()

        logger.info(
            "opname_items_updated",
            extra={"opname_id": str(opname.id), "updated": len(updates)},
        )
        return OpnameSessionDTO.from_model(opname)

    # -- finalize -------------------------------------------------------------

    def finalize(self, session_id: UUID) -> OpnameSummary:
        """
        Apply the count as ledger corrections, exactly once.

        Postconditions: for every item with a non-zero difference the ledger
            quantity equals physical_qty; status is FINALIZED.
        """
        opname = self._load(session_id, lock=True)

        if opname.status == OpnameStatus.FINALIZED:
            logger.warning(
                "opname_finalize_rejected_already_finalized",
                extra={"opname_id": str(opname.id), "number": opname.number},
            )
            raise AlreadyFinalizedError(str(opname.id), number=opname.number)

        transition = self._require_transition(opname, "finalize")

        items = self._items(opname)
        uncounted = [i for i in items if i.physical_qty is None]
        if uncounted:
            raise IncompleteCountError(
                str(opname.id), uncounted=len(uncounted), total=len(items),
            )

        to_adjust = [i for i in items if i.difference]
        self._ledger.lock((i.product_id, opname.warehouse_id) for i in to_adjust)

        changes: list[int] = []
        for item in to_adjust:
            outcome = self._adjustments.set(
                item.product_id,
                opname.warehouse_id,
                item.physical_qty,
                reason=self._adjustment_reason,
                notes=f"{opname.number} ({item.difference:+d})",
                reference_number=opname.number,
                reference_id=opname.id,
            )
            changes.append(outcome.movement.quantity_change)

        opname.status = transition.to_state
        opname.finalized_at = self._clock.now()
        opname.finalized_by_id = self._actor_id
        opname.updated_by_id = self._actor_id
        self.session.flush()

        summary = OpnameSummary.from_changes(changes)
        logger.info(
            "opname_finalized",
            extra={
                "opname_id": str(opname.id),
                "number": opname.number,
                "warehouse_id": str(opname.warehouse_id),
                "adjusted_items": summary.adjusted_items,
                "total_added": summary.total_added,
                "total_subtracted": summary.total_subtracted,
            },
        )
        return summary

    # -- delete ---------------------------------------------------------------

    def delete_session(self, session_id: UUID) -> None:
        """Soft-delete a session that has not been finalized."""
        opname = self._load(session_id, lock=True)
        if opname.status == OpnameStatus.FINALIZED:
            raise AlreadyFinalizedError(str(opname.id), number=opname.number)

        opname.is_active = False
        opname.updated_by_id = self._actor_id
        self.session.flush()

        logger.info(
            "opname_deleted",
            extra={"opname_id": str(opname.id), "number": opname.number},
        )
