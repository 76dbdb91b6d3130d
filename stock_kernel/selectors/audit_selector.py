"""
Module: stock_kernel.selectors.audit_selector
Responsibility: Replay the movement log and prove it agrees with the stock
    ledger.
Architecture position: Kernel > Selectors.

For every (product, warehouse) the movements, taken in seq order, must form
an unbroken chain: each movement's quantity_before equals the previous
movement's quantity_after (the first one is free), every quantity_after
equals quantity_before + quantity_change, and the final quantity_after
equals the StockRecord quantity.  A record with no movements must hold 0.

Discrepancy kinds:
    - ``arithmetic``: after != before + change on a single movement
    - ``chain_break``: before does not match the previous after
    - ``ledger_mismatch``: last after does not match the stock record
    - ``missing_record``: movements exist but no stock record does
    - ``untracked_quantity``: a record holds units no movement explains

Audit relevance:
    This is the check ``scripts/verify_ledger.py`` runs.  It reads only; it
    never repairs.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.values import LedgerAuditReport, LedgerDiscrepancy
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockMovement, StockRecord
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.audit")


class LedgerAuditSelector(BaseSelector[StockMovement]):
    """Replays the movement log against stock_records."""

    def audit(self, warehouse_id: UUID | None = None) -> LedgerAuditReport:
        movement_stmt = (
            select(StockMovement)
            .order_by(StockMovement.seq)
            .execution_options(populate_existing=True)
        )
        record_stmt = select(StockRecord).execution_options(populate_existing=True)
        if warehouse_id is not None:
            movement_stmt = movement_stmt.where(StockMovement.warehouse_id == warehouse_id)
            record_stmt = record_stmt.where(StockRecord.warehouse_id == warehouse_id)

        last_after: dict[tuple[UUID, UUID], int] = {}
        discrepancies: list[LedgerDiscrepancy] = []
        replayed = 0

        for m in self.session.execute(movement_stmt).scalars():
            replayed += 1
            key = (m.product_id, m.warehouse_id)
            if m.quantity_after != m.quantity_before + m.quantity_change:
                discrepancies.append(LedgerDiscrepancy(
                    product_id=m.product_id,
                    warehouse_id=m.warehouse_id,
                    kind="arithmetic",
                    expected=m.quantity_before + m.quantity_change,
                    actual=m.quantity_after,
                    movement_id=m.id,
                ))
            previous = last_after.get(key)
            if previous is not None and m.quantity_before != previous:
                discrepancies.append(LedgerDiscrepancy(
                    product_id=m.product_id,
                    warehouse_id=m.warehouse_id,
                    kind="chain_break",
                    expected=previous,
                    actual=m.quantity_before,
                    movement_id=m.id,
                ))
            last_after[key] = m.quantity_after

        records = {
            (r.product_id, r.warehouse_id): r.quantity
            for r in self.session.execute(record_stmt).scalars()
        }

        for key, quantity in records.items():
            expected = last_after.get(key)
            if expected is None:
                if quantity != 0:
                    discrepancies.append(LedgerDiscrepancy(
                        product_id=key[0],
                        warehouse_id=key[1],
                        kind="untracked_quantity",
                        expected=0,
                        actual=quantity,
                    ))
            elif expected != quantity:
                discrepancies.append(LedgerDiscrepancy(
                    product_id=key[0],
                    warehouse_id=key[1],
                    kind="ledger_mismatch",
                    expected=expected,
                    actual=quantity,
                ))

        for key in last_after.keys() - records.keys():
            discrepancies.append(LedgerDiscrepancy(
                product_id=key[0],
                warehouse_id=key[1],
                kind="missing_record",
                expected=last_after[key],
                actual=None,
            ))

        by_kind: dict[str, int] = defaultdict(int)
        for d in discrepancies:
            by_kind[d.kind] += 1

        report = LedgerAuditReport(
            records_checked=len(records),
            movements_replayed=replayed,
            discrepancies=tuple(discrepancies),
        )
        log = logger.info if report.is_consistent else logger.error
        log(
            "ledger_audit_completed",
            extra={
                "records_checked": report.records_checked,
                "movements_replayed": replayed,
                "discrepancies": dict(by_kind),
            },
        )
        return report
