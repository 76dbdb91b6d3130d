"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only access to the movement log: filtered listing,
    single lookup, and aggregate counters.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Results are ordered newest first (seq descending), matching how the
      log is browsed.  ``for_key`` returns oldest first for replay.

Failure modes:
    - MovementNotFoundError from ``get`` when the id does not exist.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, func, or_, select

from stock_kernel.domain.values import (
    MovementDTO,
    MovementFilter,
    MovementStats,
    MovementType,
)
from stock_kernel.exceptions import MovementNotFoundError
from stock_kernel.models.stock import StockMovement
from stock_kernel.selectors.base import BaseSelector


def _filter_criteria(f: MovementFilter) -> list:
    criteria = []
    if f.product_id is not None:
        criteria.append(StockMovement.product_id == f.product_id)
    if f.warehouse_id is not None:
        criteria.append(StockMovement.warehouse_id == f.warehouse_id)
    if f.movement_type is not None:
        criteria.append(StockMovement.movement_type == MovementType(f.movement_type).value)
    if f.reference_type is not None:
        criteria.append(StockMovement.reference_type == f.reference_type.value)
    if f.reference_number is not None:
        criteria.append(StockMovement.reference_number == f.reference_number)
    if f.start is not None:
        criteria.append(StockMovement.created_at >= f.start)
    if f.end is not None:
        criteria.append(StockMovement.created_at <= f.end)
    if f.search:
        pattern = f"%{f.search.lower()}%"
        criteria.append(
            or_(
                func.lower(StockMovement.reference_number).like(pattern),
                func.lower(StockMovement.notes).like(pattern),
            )
        )
    return criteria


class MovementSelector(BaseSelector[StockMovement]):
    """Movement log queries.  ``list`` and ``count`` take the same filter."""

    def list(self, movement_filter: MovementFilter | None = None) -> list[MovementDTO]:
        f = movement_filter or MovementFilter()
        stmt = (
            select(StockMovement)
            .where(*_filter_criteria(f))
            .order_by(StockMovement.seq.desc())
            .offset(f.offset)
        )
        if f.limit is not None:
            stmt = stmt.limit(f.limit)
        return [MovementDTO.from_model(m) for m in self.session.execute(stmt).scalars()]

    def count(self, movement_filter: MovementFilter | None = None) -> int:
        f = movement_filter or MovementFilter()
        return self.session.execute(
            select(func.count(StockMovement.id)).where(*_filter_criteria(f))
        ).scalar_one()

    def get(self, movement_id: UUID) -> MovementDTO:
        movement = self.session.get(StockMovement, movement_id)
        if movement is None:
            raise MovementNotFoundError(str(movement_id))
        return MovementDTO.from_model(movement)

    def by_reference(self, reference_number: str) -> list[MovementDTO]:
        """All movements sharing a reference number, in write order."""
        stmt = (
            select(StockMovement)
            .where(StockMovement.reference_number == reference_number)
            .order_by(StockMovement.seq)
        )
        return [MovementDTO.from_model(m) for m in self.session.execute(stmt).scalars()]

    def for_key(self, product_id: UUID, warehouse_id: UUID) -> list[MovementDTO]:
        """Chain of movements for one (product, warehouse), oldest first."""
        stmt = (
            select(StockMovement)
            .where(
                StockMovement.product_id == product_id,
                StockMovement.warehouse_id == warehouse_id,
            )
            .order_by(StockMovement.seq)
        )
        return [MovementDTO.from_model(m) for m in self.session.execute(stmt).scalars()]

    def stats(self, warehouse_id: UUID | None = None, since: datetime | None = None) -> MovementStats:
        """
        Aggregate counters: units in, units out, number of adjustment
        movements, and their net.
        """
        criteria = []
        if warehouse_id is not None:
            criteria.append(StockMovement.warehouse_id == warehouse_id)
        if since is not None:
            criteria.append(StockMovement.created_at >= since)

        kind = StockMovement.movement_type
        row = self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((kind == MovementType.IN.value, StockMovement.quantity_change), else_=0)), 0
                ),
                func.coalesce(
                    func.sum(case((kind == MovementType.OUT.value, -StockMovement.quantity_change), else_=0)), 0
                ),
                func.coalesce(
                    func.sum(case((kind == MovementType.ADJUSTMENT.value, 1), else_=0)), 0
                ),
                func.count(StockMovement.id),
            ).where(*criteria)
        ).one()

        total_in, total_out, adjustments, count = (int(v) for v in row)
        return MovementStats(
            total_in=total_in,
            total_out=total_out,
            total_adjustments=adjustments,
            net_change=total_in - total_out,
            movement_count=count,
        )
