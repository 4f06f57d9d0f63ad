"""Recalculation triggered by quotation-level parameter changes.

Each trigger re-derives only the items whose price formula reads the changed
parameter, then rebuilds system and quotation totals from the items. Applying
a trigger twice with the same value returns an identical tree.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from .currency import Number, round_money, to_decimal, validate_rates
from .errors import InvalidRate
from .line_items import derive_item, is_internal_labor
from .models.money import ZERO, CurrencyAmounts, ExchangeRates
from .models.quotation import (
    LaborItem,
    PricingMode,
    Quotation,
    QuotationItem,
    QuotationParameters,
    QuotationSystem,
    QuotationTotals,
)
from .pricing import HUNDRED, check_margin, resolve_pricing_mode

logger = logging.getLogger(__name__)

ItemPredicate = Callable[[QuotationItem], bool]


class Trigger(str, Enum):
    exchange_rates = "exchange_rates"
    margin = "margin"
    msrp_mode = "msrp_mode"
    day_work_cost = "day_work_cost"


@dataclass(frozen=True)
class ParameterChange:
    field: str
    old_value: Any
    new_value: Any


@dataclass
class ParameterUpdate:
    quotation: Quotation
    changes: list[ParameterChange] = field(default_factory=list)
    triggers: list[Trigger] = field(default_factory=list)


def recalculate_totals(quotation: Quotation) -> Quotation:
    """Rebuild system and quotation totals bottom-up from the items."""
    systems = [
        system.model_copy(
            update={
                "total_cost": CurrencyAmounts.total(item.total_cost for item in system.items),
                "total_price": CurrencyAmounts.total(item.total_price for item in system.items),
            }
        )
        for system in quotation.systems
    ]
    totals = _quotation_totals(systems, quotation.parameters)
    return quotation.model_copy(update={"systems": systems, "totals": totals})


def _quotation_totals(systems: list[QuotationSystem], parameters: QuotationParameters) -> QuotationTotals:
    total_cost = CurrencyAmounts.total(system.total_cost for system in systems)
    total_price = CurrencyAmounts.total(system.total_price for system in systems)

    by_type: dict[str, Decimal] = {}
    by_labor: dict[str, Decimal] = {}
    for system in systems:
        for item in system.items:
            by_type[item.item_type] = by_type.get(item.item_type, ZERO) + item.total_price.ils
            if isinstance(item, LaborItem):
                subtype = item.labor_subtype.value
                by_labor[subtype] = by_labor.get(subtype, ZERO) + item.total_price.ils

    profit = total_price.ils - total_cost.ils
    risk = round_money(total_price.ils * parameters.risk_percent / HUNDRED)
    before_vat = total_price.ils + risk
    vat = round_money(before_vat * parameters.vat_rate / HUNDRED) if parameters.include_vat else ZERO
    margin = (profit + risk) / before_vat * HUNDRED if before_vat > 0 else ZERO

    return QuotationTotals(
        total_cost=total_cost,
        total_price=total_price,
        price_by_item_type=by_type,
        price_by_labor_subtype=by_labor,
        profit_ils=profit,
        risk_addition_ils=risk,
        total_before_vat_ils=before_vat,
        vat_ils=vat,
        final_total_ils=before_vat + vat,
        profit_margin_percent=margin,
    )


def _rederive(
    quotation: Quotation,
    parameters: QuotationParameters,
    in_scope: ItemPredicate,
    trigger: Trigger,
) -> Quotation:
    touched = 0
    systems: list[QuotationSystem] = []
    for system in quotation.systems:
        items: list[QuotationItem] = []
        for item in system.items:
            if in_scope(item):
                touched += 1
                item = derive_item(item, parameters)
                logger.debug(
                    "Re-derived item",
                    extra={"item_id": item.id, "trigger": trigger.value, "unit_price_ils": str(item.unit_price.ils)},
                )
            items.append(item)
        systems.append(system.model_copy(update={"items": items}))

    logger.info(
        "Recalculated quotation",
        extra={"quotation_id": quotation.id, "trigger": trigger.value, "items_rederived": touched},
    )
    updated = quotation.model_copy(update={"parameters": parameters, "systems": systems})
    return recalculate_totals(updated)


def on_exchange_rates_changed(
    quotation: Quotation,
    *,
    usd_to_ils: Number | None,
    eur_to_ils: Number | None,
) -> Quotation:
    """Every item's converted fields, recomputed from its origin-currency cost."""
    rates = ExchangeRates(
        usd_to_ils=to_decimal(_required_rate("usd_to_ils", usd_to_ils)),
        eur_to_ils=to_decimal(_required_rate("eur_to_ils", eur_to_ils)),
    )
    if rates.usd_to_ils <= 0:
        raise InvalidRate("usd_to_ils", rates.usd_to_ils)
    if rates.eur_to_ils <= 0:
        raise InvalidRate("eur_to_ils", rates.eur_to_ils)
    parameters = quotation.parameters.model_copy(
        update={"usd_to_ils_rate": rates.usd_to_ils, "eur_to_ils_rate": rates.eur_to_ils}
    )
    return _rederive(quotation, parameters, lambda item: True, Trigger.exchange_rates)


def on_margin_changed(quotation: Quotation, margin_percent: Number) -> Quotation:
    """Margin-mode items that follow the quotation default margin."""
    margin = check_margin(margin_percent)
    parameters = quotation.parameters.model_copy(update={"margin_percent": margin})

    def in_scope(item: QuotationItem) -> bool:
        return item.margin_override is None and resolve_pricing_mode(item, parameters) is PricingMode.margin

    return _rederive(quotation, parameters, in_scope, Trigger.margin)


def on_msrp_mode_changed(quotation: Quotation, use_msrp_pricing: bool) -> Quotation:
    """Items carrying MSRP data that have not pinned their own pricing mode."""
    parameters = quotation.parameters.model_copy(update={"use_msrp_pricing": bool(use_msrp_pricing)})

    def in_scope(item: QuotationItem) -> bool:
        return item.msrp is not None and item.msrp_override is None

    return _rederive(quotation, parameters, in_scope, Trigger.msrp_mode)


def on_day_work_cost_changed(quotation: Quotation, day_work_cost: Number) -> Quotation:
    """Internal labor only; external labor keeps the rate it was added with."""
    day_rate = round_money(day_work_cost)
    if day_rate < 0:
        raise InvalidRate("day_work_cost", day_rate)
    parameters = quotation.parameters.model_copy(update={"day_work_cost": day_rate})
    systems = [
        system.model_copy(
            update={
                "items": [
                    item.model_copy(update={"origin_cost": day_rate}) if is_internal_labor(item) else item
                    for item in system.items
                ]
            }
        )
        for system in quotation.systems
    ]
    staged = quotation.model_copy(update={"systems": systems})
    return _rederive(staged, parameters, is_internal_labor, Trigger.day_work_cost)


_TRACKED_FIELDS = (
    "usd_to_ils_rate",
    "eur_to_ils_rate",
    "margin_percent",
    "day_work_cost",
    "use_msrp_pricing",
    "risk_percent",
    "include_vat",
    "vat_rate",
)


def apply_parameters(quotation: Quotation, new_parameters: QuotationParameters) -> ParameterUpdate:
    """Diff the parameters and run each affected trigger.

    Order is fixed: rates, day rate, MSRP toggle, margin. Risk and VAT edits
    only change the commercial totals.
    """
    old = quotation.parameters
    changes = [
        ParameterChange(field=name, old_value=getattr(old, name), new_value=getattr(new_parameters, name))
        for name in _TRACKED_FIELDS
        if getattr(old, name) != getattr(new_parameters, name)
    ]
    changed = {change.field for change in changes}
    triggers: list[Trigger] = []
    updated = quotation

    if changed & {"usd_to_ils_rate", "eur_to_ils_rate"}:
        updated = on_exchange_rates_changed(
            updated,
            usd_to_ils=new_parameters.usd_to_ils_rate,
            eur_to_ils=new_parameters.eur_to_ils_rate,
        )
        triggers.append(Trigger.exchange_rates)
    if "day_work_cost" in changed:
        updated = on_day_work_cost_changed(updated, new_parameters.day_work_cost)
        triggers.append(Trigger.day_work_cost)
    if "use_msrp_pricing" in changed:
        updated = on_msrp_mode_changed(updated, new_parameters.use_msrp_pricing)
        triggers.append(Trigger.msrp_mode)
    if "margin_percent" in changed:
        updated = on_margin_changed(updated, new_parameters.margin_percent)
        triggers.append(Trigger.margin)

    commercial = {"risk_percent", "include_vat", "vat_rate"} & changed
    if commercial:
        updated = recalculate_totals(
            updated.model_copy(
                update={
                    "parameters": updated.parameters.model_copy(
                        update={name: getattr(new_parameters, name) for name in commercial}
                    )
                }
            )
        )

    return ParameterUpdate(quotation=updated, changes=changes, triggers=triggers)


def _required_rate(name: str, value: Number | None) -> Number:
    if value is None:
        raise InvalidRate(name, value)
    return value


def validate_parameters(parameters: QuotationParameters) -> list[str]:
    problems = validate_rates(parameters.rates)
    if parameters.margin_percent >= HUNDRED:
        problems.append("Margin must be below 100%")
    if parameters.day_work_cost < 0:
        problems.append("Day work cost cannot be negative")
    if parameters.risk_percent < 0:
        problems.append("Risk percent cannot be negative")
    if parameters.vat_rate < 0:
        problems.append("VAT rate cannot be negative")
    return problems


__all__ = [
    "ParameterChange",
    "ParameterUpdate",
    "Trigger",
    "apply_parameters",
    "on_day_work_cost_changed",
    "on_exchange_rates_changed",
    "on_margin_changed",
    "on_msrp_mode_changed",
    "recalculate_totals",
    "validate_parameters",
]
