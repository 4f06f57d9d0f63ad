from __future__ import annotations

from decimal import Decimal
from typing import Any


class PricingError(ValueError):
    """Base class for every typed failure raised by the pricing engine."""


class InvalidRate(PricingError):
    def __init__(self, name: str, value: Any) -> None:
        super().__init__(f"{name} must be a positive number, got {value!r}")
        self.name = name
        self.value = value


class InvalidMargin(PricingError):
    def __init__(self, margin_percent: Decimal) -> None:
        super().__init__(f"margin must be below 100%, got {margin_percent}")
        self.margin_percent = margin_percent


class InvalidQuantity(PricingError):
    def __init__(self, quantity: Any) -> None:
        super().__init__(f"quantity must be greater than 0, got {quantity!r}")
        self.quantity = quantity


class InvalidPrice(PricingError):
    def __init__(self, price: Any) -> None:
        super().__init__(f"unit price must be greater than 0, got {price!r}")
        self.price = price


class SnapshotUnavailable(PricingError):
    """A catalog reference could not be resolved into a price snapshot."""

    def __init__(self, kind: str, reference_id: str, reason: str = "not found") -> None:
        super().__init__(f"{kind} {reference_id!r} is unavailable: {reason}")
        self.kind = kind
        self.reference_id = reference_id
        self.reason = reason


class StaleVersion(PricingError):
    """The stored quotation changed since the caller loaded it."""

    def __init__(
        self,
        quotation_id: str,
        version: int,
        *,
        expected_revision: int | None,
        actual_revision: int | None,
    ) -> None:
        super().__init__(
            f"quotation {quotation_id} v{version} is at revision {actual_revision}, "
            f"expected {expected_revision}"
        )
        self.quotation_id = quotation_id
        self.version = version
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision


class ItemNotFound(PricingError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"item {item_id!r} not found")
        self.item_id = item_id


class SystemNotFound(PricingError):
    def __init__(self, system_id: str) -> None:
        super().__init__(f"system {system_id!r} not found")
        self.system_id = system_id


class CounterUnavailable(PricingError):
    def __init__(self, scope: str, sequence_type: str, reason: str) -> None:
        super().__init__(f"counter {scope}/{sequence_type} unavailable: {reason}")
        self.scope = scope
        self.sequence_type = sequence_type
        self.reason = reason


class IncompleteAssembly(UserWarning):
    """Attached to roll-ups of assemblies whose members no longer resolve. Never raised."""

    def __init__(self, assembly_id: str, missing_component_count: int) -> None:
        super().__init__(
            f"assembly {assembly_id!r} has {missing_component_count} missing component(s)"
        )
        self.assembly_id = assembly_id
        self.missing_component_count = missing_component_count


__all__ = [
    "PricingError",
    "InvalidRate",
    "InvalidMargin",
    "InvalidQuantity",
    "InvalidPrice",
    "SnapshotUnavailable",
    "StaleVersion",
    "ItemNotFound",
    "SystemNotFound",
    "CounterUnavailable",
    "IncompleteAssembly",
]
