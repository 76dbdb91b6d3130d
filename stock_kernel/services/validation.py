"""Input checks shared by the engines.  Every check runs before any write."""

from stock_kernel.exceptions import InvalidQuantityError, ValidationError

MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 1000


def validate_quantity(quantity: object, minimum: int) -> int:
    """Quantity must be a real int (bool is rejected) and ``>= minimum``."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(quantity, "quantity must be an integer")
    if quantity < minimum:
        if minimum == 1:
            raise InvalidQuantityError(quantity, "quantity must be positive")
        raise InvalidQuantityError(quantity, f"quantity must be at least {minimum}")
    return quantity


def validate_reason(reason: object) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason", "reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError("reason", f"at most {MAX_REASON_LENGTH} characters")
    return reason


def validate_notes(notes: object) -> str | None:
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError("notes", "notes must be text")
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError("notes", f"at most {MAX_NOTES_LENGTH} characters")
    return notes
