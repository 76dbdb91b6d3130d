"""
WarehouseDirectory -- read-only warehouse lookups used by the engines.

Warehouses are owned by an administrative collaborator.  The engines only
need to know whether a warehouse exists, whether it may take movements,
and which warehouses play the "rejected" (quarantine) and "default
sellable" roles.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.values import WarehouseType
from stock_kernel.exceptions import (
    WarehouseConfigurationError,
    WarehouseInactiveError,
    WarehouseNotFoundError,
)
from stock_kernel.models.warehouse import Warehouse


class WarehouseDirectory:
    """Lookups by id and by role.  Never writes."""

    def __init__(self, session: Session):
        self._session = session

    def get(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self._session.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise WarehouseNotFoundError(str(warehouse_id))
        return warehouse

    def require_active(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self.get(warehouse_id)
        if not warehouse.is_active:
            raise WarehouseInactiveError(str(warehouse_id), code=warehouse.code)
        return warehouse

    def _single(self, role: str, *criteria) -> Warehouse:
        found = list(
            self._session.execute(
                select(Warehouse)
                .where(Warehouse.is_active.is_(True), *criteria)
                .order_by(Warehouse.code)
            ).scalars()
        )
        if len(found) != 1:
            raise WarehouseConfigurationError(role=role, found=len(found))
        return found[0]

    def get_rejected(self) -> Warehouse:
        """The active quarantine warehouse.  Exactly one must exist."""
        return self._single("rejected", Warehouse.type == WarehouseType.REJECTED.value)

    def get_default(self) -> Warehouse:
        """The active default sellable warehouse.  Exactly one must exist."""
        return self._single(
            "default sellable",
            Warehouse.type == WarehouseType.SELLABLE.value,
            Warehouse.is_default.is_(True),
        )
