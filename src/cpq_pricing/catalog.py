from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Protocol

from .currency import Number, convert_to_all, round_money, to_decimal
from .errors import IncompleteAssembly, InvalidQuantity, SnapshotUnavailable
from .models.catalog import Assembly, Component, ComponentType, LaborSubtype, LaborType, MsrpData
from .models.money import Currency, CurrencyAmounts
from .models.quotation import ItemType, PricingMode, QuotationParameters
from .rollup import AssemblyRollup, rollup_assembly

logger = logging.getLogger(__name__)

ReferenceKind = Literal["component", "assembly", "labor"]


class CatalogLookup(Protocol):
    def get_component(self, component_id: str) -> Component | None:
        ...

    def get_assembly(self, assembly_id: str) -> Assembly | None:
        ...

    def get_labor_type(self, labor_type_id: str) -> LaborType | None:
        ...


class InMemoryCatalog:
    """Dictionary-backed catalog for tests and local runs."""

    def __init__(
        self,
        *,
        components=(),
        assemblies=(),
        labor_types=(),
    ) -> None:
        self._components: dict[str, Component] = {c.id: c for c in components}
        self._assemblies: dict[str, Assembly] = {a.id: a for a in assemblies}
        self._labor_types: dict[str, LaborType] = {t.id: t for t in labor_types}

    def get_component(self, component_id: str) -> Component | None:
        return self._components.get(component_id)

    def get_assembly(self, assembly_id: str) -> Assembly | None:
        return self._assemblies.get(assembly_id)

    def get_labor_type(self, labor_type_id: str) -> LaborType | None:
        return self._labor_types.get(labor_type_id)

    def add_component(self, component: Component) -> None:
        self._components[component.id] = component

    def add_assembly(self, assembly: Assembly) -> None:
        self._assemblies[assembly.id] = assembly

    def add_labor_type(self, labor_type: LaborType) -> None:
        self._labor_types[labor_type.id] = labor_type

    def delete_component(self, component_id: str) -> None:
        self._components.pop(component_id, None)


@dataclass(frozen=True)
class CatalogReference:
    kind: ReferenceKind
    id: str


@dataclass(frozen=True)
class ItemSnapshot:
    """Catalog pricing copied into a line item at the moment it is added.

    ``origin_currency`` and ``origin_cost`` are what the item keeps. ``unit_cost``
    is a preview for callers; the item re-derives its own per-currency values
    from ``origin_cost``, and those are the authoritative ones. For assemblies
    the preview sums members exactly per currency and can differ from the
    item by a cent.
    """

    reference: CatalogReference
    item_type: ItemType
    name: str
    quantity: Decimal
    unit_cost: CurrencyAmounts
    origin_currency: Currency
    origin_cost: Decimal
    default_pricing_mode: PricingMode
    msrp: MsrpData | None = None
    partner_discount_percent: Decimal | None = None
    manufacturer: str | None = None
    manufacturer_part_number: str | None = None
    component_type: ComponentType | None = None
    labor_subtype: LaborSubtype | None = None
    is_internal_labor: bool = False
    component_count: int = 0
    is_complete: bool = True
    warnings: tuple[IncompleteAssembly, ...] = ()


class SnapshotResolver:
    def __init__(self, catalog: CatalogLookup) -> None:
        self._catalog = catalog

    def resolve(
        self,
        reference: CatalogReference,
        quantity: Number,
        parameters: QuotationParameters,
    ) -> ItemSnapshot:
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise InvalidQuantity(quantity)
        if reference.kind == "component":
            return self._component_snapshot(reference, quantity, parameters)
        if reference.kind == "assembly":
            return self._assembly_snapshot(reference, quantity, parameters)
        if reference.kind == "labor":
            return self._labor_snapshot(reference, quantity, parameters)
        raise SnapshotUnavailable(reference.kind, reference.id, reason="unknown reference kind")

    def rollup(self, assembly: Assembly, parameters: QuotationParameters) -> AssemblyRollup:
        return rollup_assembly(assembly, self._catalog.get_component, parameters.rates)

    def _component_snapshot(
        self,
        reference: CatalogReference,
        quantity: Decimal,
        parameters: QuotationParameters,
    ) -> ItemSnapshot:
        component = self._catalog.get_component(reference.id)
        if component is None:
            raise SnapshotUnavailable("component", reference.id)
        if not component.is_active:
            raise SnapshotUnavailable("component", reference.id, reason="inactive")
        mode = PricingMode.msrp if component.msrp and parameters.use_msrp_pricing else PricingMode.margin
        return ItemSnapshot(
            reference=reference,
            item_type=ItemType.component,
            name=component.name,
            quantity=quantity,
            unit_cost=convert_to_all(component.cost, component.currency, parameters.rates),
            origin_currency=component.currency,
            origin_cost=component.cost,
            default_pricing_mode=mode,
            msrp=component.msrp,
            partner_discount_percent=component.msrp.partner_discount_percent if component.msrp else None,
            manufacturer=component.manufacturer,
            manufacturer_part_number=component.manufacturer_part_number,
            component_type=component.component_type,
        )

    def _assembly_snapshot(
        self,
        reference: CatalogReference,
        quantity: Decimal,
        parameters: QuotationParameters,
    ) -> ItemSnapshot:
        assembly = self._catalog.get_assembly(reference.id)
        if assembly is None:
            raise SnapshotUnavailable("assembly", reference.id)
        rollup = self.rollup(assembly, parameters)
        # Incomplete assemblies are frozen into custom items.
        item_type = ItemType.assembly if rollup.is_complete else ItemType.custom
        return ItemSnapshot(
            reference=reference,
            item_type=item_type,
            name=assembly.name,
            quantity=quantity,
            unit_cost=rollup.unit_cost_by_currency,
            origin_currency=rollup.currency,
            origin_cost=rollup.unit_cost,
            default_pricing_mode=PricingMode.margin,
            component_count=rollup.component_count,
            is_complete=rollup.is_complete,
            warnings=rollup.warnings,
        )

    def _labor_snapshot(
        self,
        reference: CatalogReference,
        quantity: Decimal,
        parameters: QuotationParameters,
    ) -> ItemSnapshot:
        labor_type = self._catalog.get_labor_type(reference.id)
        if labor_type is None:
            raise SnapshotUnavailable("labor", reference.id)
        if not labor_type.is_active:
            raise SnapshotUnavailable("labor", reference.id, reason="inactive")
        if labor_type.is_internal_labor:
            day_rate = parameters.day_work_cost
        else:
            day_rate = labor_type.external_rate
        day_rate = round_money(day_rate)
        return ItemSnapshot(
            reference=reference,
            item_type=ItemType.labor,
            name=labor_type.name,
            quantity=quantity,
            unit_cost=convert_to_all(day_rate, Currency.ils, parameters.rates),
            origin_currency=Currency.ils,
            origin_cost=day_rate,
            default_pricing_mode=PricingMode.margin,
            labor_subtype=labor_type.labor_subtype,
            is_internal_labor=labor_type.is_internal_labor,
        )


__all__ = [
    "CatalogLookup",
    "CatalogReference",
    "InMemoryCatalog",
    "ItemSnapshot",
    "SnapshotResolver",
]
