"""
Inventory Request Models (``stock_modules.inventory.models``).

Responsibility
--------------
Boundary converters between loosely-typed caller payloads (dicts decoded
from JSON, CSV rows) and the frozen kernel request objects.  The service
accepts either form; everything below the service sees kernel types only.

Failure Modes
-------------
- A payload that is not a mapping raises ``ValidationError``.  So does a
  missing required key or an unparsable id, naming the offending field.
"""

from typing import Any, Mapping
from uuid import UUID

from stock_kernel.domain.values import (
    AdjustmentRequest,
    AdjustmentType,
    OpnameCountUpdate,
)
from stock_kernel.exceptions import ValidationError


def _uuid(data: Mapping[str, Any], key: str) -> UUID:
    if key not in data or data[key] is None:
        raise ValidationError(key, "is required")
    value = data[key]
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(key, f"is not a valid id: {value!r}") from None


def _required(data: Mapping[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        raise ValidationError(key, "is required")
    return data[key]


def _mapping(item: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(item, Mapping):
        raise ValidationError("item", f"expected a mapping or {kind}, got {type(item).__name__}")
    return item


def as_adjustment_request(item: AdjustmentRequest | Mapping[str, Any]) -> AdjustmentRequest:
    """Accept a kernel request as-is, or build one from a mapping."""
    if isinstance(item, AdjustmentRequest):
        return item
    item = _mapping(item, "AdjustmentRequest")
    raw_type = _required(item, "adjustment_type")
    try:
        adjustment_type = AdjustmentType(raw_type)
    except ValueError:
        raise ValidationError(
            "adjustment_type", f"must be one of add, subtract, set, got {raw_type!r}"
        ) from None
    return AdjustmentRequest(
        product_id=_uuid(item, "product_id"),
        warehouse_id=_uuid(item, "warehouse_id"),
        adjustment_type=adjustment_type,
        quantity=_required(item, "quantity"),
        reason=_required(item, "reason"),
        notes=item.get("notes"),
    )


def as_count_update(item: OpnameCountUpdate | Mapping[str, Any]) -> OpnameCountUpdate:
    """Accept a kernel count update as-is, or build one from a mapping."""
    if isinstance(item, OpnameCountUpdate):
        return item
    item = _mapping(item, "OpnameCountUpdate")
    return OpnameCountUpdate(
        item_id=_uuid(item, "item_id"),
        physical_qty=_required(item, "physical_qty"),
        notes=item.get("notes"),
    )
