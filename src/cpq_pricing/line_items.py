from __future__ import annotations

import logging
from decimal import Decimal
from typing import Sequence

from .catalog import ItemSnapshot
from .currency import Number, convert_exact, convert_to_all, convert_to_all_exact, round_money, to_decimal
from .errors import InvalidQuantity
from .models.catalog import MsrpData
from .models.money import ZERO, Currency, CurrencyAmounts
from .models.quotation import (
    AssemblyItem,
    ComponentItem,
    CustomItem,
    ItemType,
    LaborItem,
    PricingMode,
    QuotationItem,
    QuotationParameters,
)
from .pricing import effective_margin, msrp_margin, price_from_margin, resolve_pricing_mode

logger = logging.getLogger(__name__)


def derive_item(item: QuotationItem, parameters: QuotationParameters) -> QuotationItem:
    """Recompute every derived field of ``item`` from its own inputs.

    Costs are always converted from ``origin_cost``, never from a previously
    converted value.
    """
    rates = parameters.rates
    exact_cost = convert_to_all_exact(item.origin_cost, item.origin_currency, rates)
    unit_cost = CurrencyAmounts(**{c.name: round_money(v) for c, v in exact_cost.items()})

    if resolve_pricing_mode(item, parameters) is PricingMode.msrp:
        msrp = item.msrp
        unit_price = convert_to_all(msrp.price, msrp.currency, rates)
        cost_in_msrp_currency = convert_exact(item.origin_cost, item.origin_currency, msrp.currency, rates)
        margin = msrp_margin(cost_in_msrp_currency, msrp.price)
    else:
        margin = effective_margin(item, parameters)
        unit_price = CurrencyAmounts(
            **{c.name: price_from_margin(v, margin) for c, v in exact_cost.items()}
        )
        if item.origin_cost == 0:
            margin = ZERO

    derived = item.model_copy(
        update={"unit_cost": unit_cost, "unit_price": unit_price, "margin_percent": margin}
    )
    return retotal_item(derived)


def retotal_item(item: QuotationItem) -> QuotationItem:
    """Recompute totals from the current unit values only."""
    return item.model_copy(
        update={
            "total_cost": _times(item.unit_cost, item.quantity),
            "total_price": _times(item.unit_price, item.quantity),
        }
    )


def _times(amounts: CurrencyAmounts, quantity: Decimal) -> CurrencyAmounts:
    return CurrencyAmounts(
        ils=round_money(amounts.ils * quantity),
        usd=round_money(amounts.usd * quantity),
        eur=round_money(amounts.eur * quantity),
    )


def check_quantity(quantity: Number) -> Decimal:
    quantity = to_decimal(quantity)
    if quantity <= 0:
        raise InvalidQuantity(quantity)
    return quantity


def item_from_snapshot(
    snapshot: ItemSnapshot,
    parameters: QuotationParameters,
    *,
    margin_override: Number | None = None,
    notes: str | None = None,
) -> QuotationItem:
    common = dict(
        name=snapshot.name,
        quantity=check_quantity(snapshot.quantity),
        origin_currency=snapshot.origin_currency,
        origin_cost=snapshot.origin_cost,
        msrp=snapshot.msrp,
        margin_override=to_decimal(margin_override) if margin_override is not None else None,
        notes=notes,
    )
    reference = snapshot.reference
    if snapshot.item_type is ItemType.component:
        item = ComponentItem(
            component_id=reference.id,
            manufacturer=snapshot.manufacturer,
            manufacturer_part_number=snapshot.manufacturer_part_number,
            component_type=snapshot.component_type,
            **common,
        )
    elif snapshot.item_type is ItemType.assembly:
        item = AssemblyItem(assembly_id=reference.id, component_count=snapshot.component_count, **common)
    elif snapshot.item_type is ItemType.labor:
        item = LaborItem(
            labor_type_id=reference.id,
            labor_subtype=snapshot.labor_subtype,
            is_internal_labor=snapshot.is_internal_labor,
            **common,
        )
    else:
        item = CustomItem(source_kind=reference.kind, source_id=reference.id, **common)
    return derive_item(item, parameters)


def custom_item(
    name: str,
    unit_cost: Number,
    currency: Currency,
    parameters: QuotationParameters,
    *,
    quantity: Number = 1,
    msrp: MsrpData | None = None,
    margin_override: Number | None = None,
    placeholder: bool = False,
    source_kind: str | None = None,
    source_id: str | None = None,
    notes: str | None = None,
) -> CustomItem:
    item = CustomItem(
        name=name,
        quantity=check_quantity(quantity),
        origin_currency=Currency(currency),
        origin_cost=to_decimal(unit_cost),
        msrp=msrp,
        margin_override=to_decimal(margin_override) if margin_override is not None else None,
        is_placeholder=placeholder,
        source_kind=source_kind,
        source_id=source_id,
        notes=notes,
    )
    return derive_item(item, parameters)


def renumber_items(items: Sequence[QuotationItem]) -> list[QuotationItem]:
    """Dense 1-based display order, keeping the given sequence."""
    return [
        item if item.display_order == index else item.model_copy(update={"display_order": index})
        for index, item in enumerate(items, start=1)
    ]


def display_number(system_order: int, item_order: int) -> str:
    return f"{system_order}.{item_order}"


def validate_item(item: QuotationItem) -> list[str]:
    problems: list[str] = []
    if not item.name or not item.name.strip():
        problems.append("Item name is required")
    if item.quantity <= 0:
        problems.append("Quantity must be greater than 0")
    if item.origin_cost < 0:
        problems.append("Unit cost must be non-negative")
    if item.margin_override is not None and item.margin_override >= 100:
        problems.append("Margin must be below 100%")
    if isinstance(item, LaborItem) and item.is_internal_labor and item.origin_currency is not Currency.ils:
        problems.append("Internal labor is priced in ILS")
    return problems


def is_internal_labor(item: QuotationItem) -> bool:
    return isinstance(item, LaborItem) and item.is_internal_labor


__all__ = [
    "check_quantity",
    "custom_item",
    "derive_item",
    "display_number",
    "is_internal_labor",
    "item_from_snapshot",
    "renumber_items",
    "retotal_item",
    "validate_item",
]
