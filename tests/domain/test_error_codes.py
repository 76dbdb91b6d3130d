"""Every kernel exception carries a stable, unique machine-readable code."""

import inspect

from stock_kernel import exceptions
from stock_kernel.exceptions import (
    BatchAdjustmentError,
    InvalidReferenceTypeError,
    StockKernelError,
    ValidationError,
)


def _error_classes():
    return [
        cls for _, cls in inspect.getmembers(exceptions, inspect.isclass)
        if issubclass(cls, StockKernelError)
    ]


def test_codes_unique():
    codes = [cls.code for cls in _error_classes()]
    assert len(codes) == len(set(codes))


def test_codes_are_upper_snake_case():
    for cls in _error_classes():
        assert cls.code == cls.code.upper(), cls.__name__
        assert " " not in cls.code


def test_validation_error_names_field():
    err = ValidationError("reason", "cannot be blank")
    assert err.code == "VALIDATION_ERROR"
    assert (err.field, err.reason) == ("reason", "cannot be blank")


def test_invalid_reference_type_lists_allowed():
    err = InvalidReferenceTypeError("adjustment", ["purchase", "return", "sale"])
    assert err.allowed == ["purchase", "return", "sale"]
    assert isinstance(err, ValidationError)


def test_batch_error_wraps_cause():
    cause = ValidationError("quantity", "must be >= 1")
    err = BatchAdjustmentError(3, cause)
    assert err.index == 3
    assert err.cause_code == "VALIDATION_ERROR"
    assert "must be >= 1" in err.cause_message
