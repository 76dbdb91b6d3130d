"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the stock core (POS terminals, stock clerks, count screens) must
react to failures precisely.  Parsing messages is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way:
    try:
        service.transfer_stock(...)
    except InsufficientStockError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- SameWarehouseTransferError
    |   +-- InvalidReferenceTypeError
    |
    +-- InsufficientStockError
    |
    +-- WarehouseError
    |   +-- WarehouseNotFoundError
    |   +-- WarehouseInactiveError
    |   +-- WarehouseConfigurationError
    |
    +-- OpnameError
    |   +-- OpnameNotFoundError
    |   +-- OpnameItemNotFoundError
    |   +-- IncompleteCountError
    |   +-- AlreadyFinalizedError
    |
    +-- BatchAdjustmentError
    +-- MovementNotFoundError
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- StorageFailureError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                         | When Raised
--------------|------------------------------|------------------------------------
Validation    | VALIDATION_ERROR             | Missing / malformed input
              | INVALID_QUANTITY             | Quantity not an int or out of range
              | SAME_WAREHOUSE_TRANSFER      | Source == destination
              | INVALID_REFERENCE_TYPE       | Reference type not allowed here
--------------|------------------------------|------------------------------------
Stock         | INSUFFICIENT_STOCK           | Change would drive quantity < 0
--------------|------------------------------|------------------------------------
Warehouse     | WAREHOUSE_NOT_FOUND          | Warehouse ID doesn't exist
              | WAREHOUSE_INACTIVE           | Warehouse deactivated
              | WAREHOUSE_CONFIGURATION      | Missing/duplicate default or
              |                              | rejected warehouse
--------------|------------------------------|------------------------------------
Opname        | OPNAME_NOT_FOUND             | Session missing or deleted
              | OPNAME_ITEM_NOT_FOUND        | Item not part of the session
              | INCOMPLETE_COUNT             | Finalize with uncounted items
              | ALREADY_FINALIZED            | Session already finalized
--------------|------------------------------|------------------------------------
Batch         | BATCH_ADJUSTMENT_FAILED      | Atomic batch aborted
Movement      | MOVEMENT_NOT_FOUND           | Movement ID doesn't exist
Immutability  | IMMUTABILITY_VIOLATION       | Modifying append-only history
Storage       | STORAGE_FAILURE              | Database failed mid-operation

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation and stock errors are rejected before any write.  The caller
   may resubmit corrected input.

2. StorageFailureError is fatal and needs operator visibility.  The
   transaction was rolled back, so no half-applied transfer exists, but
   nothing is retried automatically.

3. AlreadyFinalizedError on finalize means the correction was already
   applied exactly once.  Do NOT re-submit the counts to a new session
   without re-counting.

===============================================================================
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation


class ValidationError(StockKernelError):
    """Input is missing or out of range.  Rejected before any write."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidQuantityError(ValidationError):
    """Quantity is not an integer or outside the allowed range."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object, reason: str):
        self.quantity = quantity
        super().__init__("quantity", f"{reason} (got {quantity!r})")


class SameWarehouseTransferError(ValidationError):
    """Transfer source and destination are the same warehouse."""

    code: str = "SAME_WAREHOUSE_TRANSFER"

    def __init__(self, warehouse_id: str):
        self.warehouse_id = warehouse_id
        super().__init__(
            "to_warehouse_id",
            f"cannot transfer to the same warehouse {warehouse_id}",
        )


class InvalidReferenceTypeError(ValidationError):
    """Reference type is not permitted for this operation."""

    code: str = "INVALID_REFERENCE_TYPE"

    def __init__(self, reference_type: str, allowed: list[str]):
        self.reference_type = reference_type
        self.allowed = allowed
        super().__init__(
            "reference_type",
            f"'{reference_type}' not allowed, expected one of {allowed}",
        )


# Stock


class InsufficientStockError(StockKernelError):
    """Applying the change would drive on-hand quantity below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        warehouse_id: str,
        available: int,
        requested: int,
    ):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse "
            f"{warehouse_id}: available={available}, requested={requested}"
        )


# Warehouse


class WarehouseError(StockKernelError):
    """Base exception for warehouse lookups."""

    code: str = "WAREHOUSE_ERROR"


class WarehouseNotFoundError(WarehouseError):
    """Warehouse with given ID was not found."""

    code: str = "WAREHOUSE_NOT_FOUND"

    def __init__(self, warehouse_id: str):
        self.warehouse_id = warehouse_id
        super().__init__(f"Warehouse not found: {warehouse_id}")


class WarehouseInactiveError(WarehouseError):
    """Warehouse is deactivated and cannot take stock movements."""

    code: str = "WAREHOUSE_INACTIVE"

    def __init__(self, warehouse_id: str, code: str | None = None):
        self.warehouse_id = warehouse_id
        self.warehouse_code = code
        super().__init__(f"Warehouse {code or warehouse_id} is inactive")


class WarehouseConfigurationError(WarehouseError):
    """The default sellable or the rejected warehouse is missing or ambiguous."""

    code: str = "WAREHOUSE_CONFIGURATION"

    def __init__(self, role: str, found: int):
        self.role = role
        self.found = found
        super().__init__(
            f"Expected exactly one active {role} warehouse, found {found}"
        )


# Opname


class OpnameError(StockKernelError):
    """Base exception for physical count sessions."""

    code: str = "OPNAME_ERROR"


class OpnameNotFoundError(OpnameError):
    """Opname session does not exist or was deleted."""

    code: str = "OPNAME_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Opname session not found: {session_id}")


class OpnameItemNotFoundError(OpnameError):
    """Item (or product) is not part of the opname session."""

    code: str = "OPNAME_ITEM_NOT_FOUND"

    def __init__(self, session_id: str, item_ref: str):
        self.session_id = session_id
        self.item_ref = item_ref
        super().__init__(
            f"Item {item_ref} is not part of opname session {session_id}"
        )


class IncompleteCountError(OpnameError):
    """Finalize attempted while some items have no physical count."""

    code: str = "INCOMPLETE_COUNT"

    def __init__(self, session_id: str, uncounted: int, total: int):
        self.session_id = session_id
        self.uncounted = uncounted
        self.total = total
        super().__init__(
            f"Opname session {session_id}: {uncounted} of {total} item(s) "
            f"not counted yet, count every item before finalizing"
        )


class AlreadyFinalizedError(OpnameError):
    """Session is finalized; its correction has already been applied."""

    code: str = "ALREADY_FINALIZED"

    def __init__(self, session_id: str, number: str | None = None):
        self.session_id = session_id
        self.number = number
        super().__init__(
            f"Opname session {number or session_id} is already finalized"
        )


# Batch


class BatchAdjustmentError(StockKernelError):
    """An all-or-nothing batch was aborted by one failing item."""

    code: str = "BATCH_ADJUSTMENT_FAILED"

    def __init__(self, index: int, cause: StockKernelError):
        self.index = index
        self.cause_code = cause.code
        self.cause_message = str(cause)
        super().__init__(
            f"Batch aborted at item {index}: [{cause.code}] {cause}"
        )


# Movement


class MovementNotFoundError(StockKernelError):
    """Movement with given ID was not found."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


# Immutability


class ImmutabilityError(StockKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted modification of immutable stock history.

    Movements are append-only.  Finalized opname sessions and their items
    are frozen.  Stock records are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Storage


class StorageFailureError(StockKernelError):
    """
    The ledger or movement log write failed mid-operation.

    The enclosing transaction has been rolled back.  Requires operator
    attention; never retried automatically.
    """

    code: str = "STORAGE_FAILURE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")
