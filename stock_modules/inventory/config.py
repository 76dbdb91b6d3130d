"""
Inventory Configuration Schema.

Defines the structure and defaults for stock reconciliation settings.
Values can be overridden from a dict (database row, request payload) or a
YAML file.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Self

import yaml

from stock_kernel.domain.values import (
    DEFAULT_QUARANTINE_REASONS,
    DISPOSAL_REASON,
    OPNAME_ADJUSTMENT_REASON,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.opname_selector import MAX_PAGE_SIZE

logger = get_logger("modules.inventory.config")


@dataclass
class ReferencePrefixes:
    """Prefixes of generated reference numbers."""
    adjustment: str = "ADJ"
    transfer: str = "TRF"
    opname: str = "OP"

    def __post_init__(self):
        for name in ("adjustment", "transfer", "opname"):
            value = getattr(self, name)
            if not value or not value.isalnum() or not value.isupper():
                raise ValueError(f"{name} prefix must be non-empty uppercase alphanumerics, got '{value}'")


@dataclass
class InventoryConfig:
    """
    Configuration schema for the inventory module.

        config = InventoryConfig(
            quarantine_reasons=("Damaged Goods", "Expired", "Recalled"),
            opname_page_size_max=25,
        )
    """

    # Quarantine
    quarantine_reasons: tuple[str, ...] = DEFAULT_QUARANTINE_REASONS
    quarantine_enabled: bool = True

    # Reasons written on generated movements
    opname_adjustment_reason: str = OPNAME_ADJUSTMENT_REASON
    disposal_reason: str = DISPOSAL_REASON

    reference_prefixes: ReferencePrefixes = field(default_factory=ReferencePrefixes)

    # Reads
    opname_page_size_max: int = MAX_PAGE_SIZE

    # Batch adjustments run one transaction per item unless atomic
    batch_atomic_default: bool = False

    def __post_init__(self):
        if isinstance(self.quarantine_reasons, str):
            raise ValueError("quarantine_reasons must be a sequence of strings, not a string")
        self.quarantine_reasons = tuple(self.quarantine_reasons)
        if any(not isinstance(r, str) or not r.strip() for r in self.quarantine_reasons):
            raise ValueError("quarantine_reasons cannot contain blank entries")

        if isinstance(self.reference_prefixes, dict):
            self.reference_prefixes = ReferencePrefixes(**self.reference_prefixes)

        if not self.opname_adjustment_reason.strip():
            raise ValueError("opname_adjustment_reason cannot be blank")
        if not self.disposal_reason.strip():
            raise ValueError("disposal_reason cannot be blank")
        if self.disposal_reason in self.quarantine_reasons:
            # A disposal would otherwise be rerouted back into quarantine.
            raise ValueError("disposal_reason cannot also be a quarantine reason")

        if not 1 <= self.opname_page_size_max <= MAX_PAGE_SIZE:
            raise ValueError(
                f"opname_page_size_max must be between 1 and {MAX_PAGE_SIZE}, "
                f"got {self.opname_page_size_max}"
            )

        logger.info(
            "inventory_config_initialized",
            extra={
                "quarantine_reasons": list(self.quarantine_reasons),
                "quarantine_enabled": self.quarantine_enabled,
                "opname_page_size_max": self.opname_page_size_max,
                "batch_atomic_default": self.batch_atomic_default,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("inventory_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary.  Unknown keys are rejected."""
        logger.info(
            "inventory_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown inventory config keys: {unknown}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """
        Load config from a YAML file.  The settings may sit at the top level
        or under an ``inventory:`` key.

        Raises:
            FileNotFoundError: if the file does not exist.
            yaml.YAMLError: if the file contains invalid YAML.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        if "inventory" in data:
            data = data["inventory"] or {}
        return cls.from_dict(data)
