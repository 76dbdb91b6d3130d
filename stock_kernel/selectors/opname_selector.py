"""
Module: stock_kernel.selectors.opname_selector
Responsibility: Read-only access to opname sessions: one session with its
    items, and a paginated listing with derived counters.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Soft-deleted sessions (is_active=False) are never returned.
    - counted_items and items_with_difference are derived from the items on
      every read, never stored.

Failure modes:
    - OpnameNotFoundError from ``get`` for unknown or soft-deleted sessions.
"""

from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.orm import selectinload

from stock_kernel.domain.values import OpnamePage, OpnameSessionDTO, OpnameStatus
from stock_kernel.exceptions import OpnameNotFoundError
from stock_kernel.models.opname import OpnameItem, OpnameSession
from stock_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


class OpnameSelector(BaseSelector[OpnameSession]):
    """Opname session lookups and paged listing.  Soft-deleted sessions are hidden."""

    def __init__(self, session, max_page_size: int = MAX_PAGE_SIZE):
        super().__init__(session)
        self.max_page_size = max_page_size

    def get(self, session_id: UUID) -> OpnameSessionDTO:
        opname = self.session.execute(
            select(OpnameSession)
            .options(selectinload(OpnameSession.items))
            .where(OpnameSession.id == session_id, OpnameSession.is_active.is_(True))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if opname is None:
            raise OpnameNotFoundError(str(session_id))
        return OpnameSessionDTO.from_model(opname)

    def get_by_number(self, number: str) -> OpnameSessionDTO:
        opname = self.session.execute(
            select(OpnameSession)
            .options(selectinload(OpnameSession.items))
            .where(OpnameSession.number == number, OpnameSession.is_active.is_(True))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if opname is None:
            raise OpnameNotFoundError(number)
        return OpnameSessionDTO.from_model(opname)

    def list(
        self,
        warehouse_id: UUID | None = None,
        status: OpnameStatus | str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> OpnamePage:
        """
        Newest first.  ``page`` is 1-based and floored at 1; ``limit`` is
        clamped to [1, max_page_size].  Items are not included.
        """
        page = max(1, page)
        limit = min(max(1, limit), self.max_page_size)

        criteria = [OpnameSession.is_active.is_(True)]
        if warehouse_id is not None:
            criteria.append(OpnameSession.warehouse_id == warehouse_id)
        if status is not None:
            criteria.append(OpnameSession.status == OpnameStatus(status).value)

        total = self.session.execute(
            select(func.count(OpnameSession.id)).where(*criteria)
        ).scalar_one()

        counted = (
            select(func.count(OpnameItem.id))
            .where(
                OpnameItem.session_id == OpnameSession.id,
                OpnameItem.physical_qty.is_not(None),
            )
            .correlate(OpnameSession)
            .scalar_subquery()
        )
        with_difference = (
            select(func.count(OpnameItem.id))
            .where(
                and_(
                    OpnameItem.session_id == OpnameSession.id,
                    OpnameItem.difference.is_not(None),
                    OpnameItem.difference != 0,
                )
            )
            .correlate(OpnameSession)
            .scalar_subquery()
        )

        rows = self.session.execute(
            select(OpnameSession, counted, with_difference)
            .where(*criteria)
            .order_by(OpnameSession.created_at.desc(), OpnameSession.number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        ).all()

        sessions = tuple(
            OpnameSessionDTO.from_model(
                opname,
                include_items=False,
                counted_items=n_counted,
                items_with_difference=n_diff,
            )
            for opname, n_counted, n_diff in rows
        )
        return OpnamePage(sessions=sessions, page=page, limit=limit, total=total)
