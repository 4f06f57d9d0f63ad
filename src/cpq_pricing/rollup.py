from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Mapping, Sequence

from .currency import convert_exact, round_money
from .errors import IncompleteAssembly
from .models.catalog import Assembly, AssemblyMember, Component
from .models.money import ZERO, Currency, CurrencyAmounts, ExchangeRates

logger = logging.getLogger(__name__)

ComponentLookup = Callable[[str], "Component | None"]


@dataclass(frozen=True)
class CurrencyBreakdown:
    count: int = 0
    total: Decimal = ZERO


@dataclass(frozen=True)
class AssemblyRollup:
    assembly_id: str
    currency: Currency
    unit_cost: Decimal
    unit_cost_by_currency: CurrencyAmounts
    component_count: int
    missing_component_count: int
    breakdown: Mapping[Currency, CurrencyBreakdown] = field(default_factory=dict)
    warnings: tuple[IncompleteAssembly, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.missing_component_count == 0


def rollup_assembly(
    assembly: Assembly,
    get_component: ComponentLookup,
    rates: ExchangeRates,
    *,
    currency: Currency | None = None,
) -> AssemblyRollup:
    """Sum member cost x quantity, each member converted from its own currency.

    Members whose component is gone or inactive are counted as missing and
    contribute nothing; the roll-up still returns a value.
    """
    target = Currency(currency or assembly.currency)
    exact_totals = {c: ZERO for c in Currency}
    by_origin: dict[Currency, list[Decimal]] = {c: [] for c in Currency}
    component_count = 0
    missing = 0

    for member in assembly.members:
        component = _resolve_member(member, get_component)
        if component is None:
            missing += 1
            continue
        component_count += 1
        line_total = component.cost * member.quantity
        by_origin[component.currency].append(line_total)
        for c in Currency:
            exact_totals[c] += convert_exact(line_total, component.currency, c, rates)

    by_currency = CurrencyAmounts(**{c.name: round_money(v) for c, v in exact_totals.items()})
    breakdown = {
        c: CurrencyBreakdown(count=len(totals), total=round_money(sum(totals, ZERO)))
        for c, totals in by_origin.items()
    }
    warnings: tuple[IncompleteAssembly, ...] = ()
    if missing:
        warnings = (IncompleteAssembly(assembly.id, missing),)
        logger.warning(
            "Assembly has missing components",
            extra={"assembly_id": assembly.id, "missing_component_count": missing},
        )

    return AssemblyRollup(
        assembly_id=assembly.id,
        currency=target,
        unit_cost=by_currency.get(target),
        unit_cost_by_currency=by_currency,
        component_count=component_count,
        missing_component_count=missing,
        breakdown=breakdown,
        warnings=warnings,
    )


def _resolve_member(member: AssemblyMember, get_component: ComponentLookup) -> Component | None:
    if member.component_id is None:
        return None
    component = get_component(member.component_id)
    if component is None or not component.is_active:
        return None
    return component


def validate_assembly(name: str, members: Sequence[AssemblyMember]) -> list[str]:
    problems: list[str] = []
    if not name or not name.strip():
        problems.append("Assembly name is required")
    if not members:
        problems.append("Assembly must contain at least one component")
    if any(member.quantity <= 0 for member in members):
        problems.append("Component quantities must be greater than 0")
    return problems


__all__ = ["AssemblyRollup", "CurrencyBreakdown", "rollup_assembly", "validate_assembly"]
