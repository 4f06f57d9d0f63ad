"""Structural edits on a quotation tree.

Every function returns a new tree with dense display order and fresh totals;
the input tree is left untouched.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from .catalog import CatalogReference, SnapshotResolver
from .currency import Number, to_decimal
from .errors import InvalidPrice, ItemNotFound, SnapshotUnavailable, SystemNotFound
from .line_items import check_quantity, custom_item, derive_item, item_from_snapshot, renumber_items, retotal_item
from .models.money import Currency
from .models.quotation import PricingMode, Quotation, QuotationItem, QuotationStatus, QuotationSystem
from .pricing import check_margin, margin_from_price, resolve_pricing_mode
from .recalculation import recalculate_totals

logger = logging.getLogger(__name__)


def _renumber_systems(systems: list[QuotationSystem]) -> list[QuotationSystem]:
    return [
        system.model_copy(update={"order": index, "items": renumber_items(system.items)})
        for index, system in enumerate(systems, start=1)
    ]


def _finish(quotation: Quotation, systems: list[QuotationSystem]) -> Quotation:
    return recalculate_totals(quotation.model_copy(update={"systems": _renumber_systems(systems)}))


def _system_index(quotation: Quotation, system_id: str) -> int:
    for index, system in enumerate(quotation.systems):
        if system.id == system_id:
            return index
    raise SystemNotFound(system_id)


def find_item(quotation: Quotation, item_id: str) -> tuple[QuotationSystem, QuotationItem]:
    for system, item in quotation.iter_items():
        if item.id == item_id:
            return system, item
    raise ItemNotFound(item_id)


def _clamp(position: int | None, length: int) -> int:
    if position is None:
        return length
    return max(0, min(position - 1, length))


# Systems


def add_system(
    quotation: Quotation,
    name: str,
    *,
    description: str | None = None,
    position: int | None = None,
) -> Quotation:
    systems = list(quotation.systems)
    systems.insert(_clamp(position, len(systems)), QuotationSystem(name=name, description=description))
    return _finish(quotation, systems)


def remove_system(quotation: Quotation, system_id: str) -> Quotation:
    index = _system_index(quotation, system_id)
    systems = list(quotation.systems)
    del systems[index]
    return _finish(quotation, systems)


def rename_system(quotation: Quotation, system_id: str, name: str) -> Quotation:
    index = _system_index(quotation, system_id)
    systems = list(quotation.systems)
    systems[index] = systems[index].model_copy(update={"name": name})
    return quotation.model_copy(update={"systems": systems})


def move_system(quotation: Quotation, system_id: str, position: int) -> Quotation:
    index = _system_index(quotation, system_id)
    systems = list(quotation.systems)
    system = systems.pop(index)
    systems.insert(_clamp(position, len(systems)), system)
    return _finish(quotation, systems)


# Items


def add_item(
    quotation: Quotation,
    system_id: str,
    item: QuotationItem,
    *,
    position: int | None = None,
) -> Quotation:
    index = _system_index(quotation, system_id)
    systems = list(quotation.systems)
    items = list(systems[index].items)
    items.insert(_clamp(position, len(items)), item)
    systems[index] = systems[index].model_copy(update={"items": items})
    return _finish(quotation, systems)


def add_catalog_item(
    quotation: Quotation,
    system_id: str,
    reference: CatalogReference,
    quantity: Number,
    resolver: SnapshotResolver,
    *,
    placeholder_cost: Number | None = None,
    placeholder_currency: Currency = Currency.ils,
    position: int | None = None,
) -> Quotation:
    """Snapshot a catalog entry into ``system_id``.

    When the reference cannot be resolved the call fails, unless the caller
    supplies ``placeholder_cost``; the line then becomes a custom placeholder
    item carrying that visible cost.
    """
    parameters = quotation.parameters
    try:
        snapshot = resolver.resolve(reference, quantity, parameters)
    except SnapshotUnavailable as exc:
        if placeholder_cost is None:
            raise
        logger.warning(
            "Catalog reference unavailable, adding placeholder item",
            extra={"quotation_id": quotation.id, "kind": exc.kind, "reference_id": exc.reference_id},
        )
        item = custom_item(
            f"{reference.kind} {reference.id}",
            placeholder_cost,
            placeholder_currency,
            parameters,
            quantity=quantity,
            placeholder=True,
            source_kind=reference.kind,
            source_id=reference.id,
        )
    else:
        item = item_from_snapshot(snapshot, parameters)
    return add_item(quotation, system_id, item, position=position)


def remove_item(quotation: Quotation, item_id: str) -> Quotation:
    system, _ = find_item(quotation, item_id)
    return _replace_items(quotation, system.id, lambda items: [i for i in items if i.id != item_id])


def move_item(
    quotation: Quotation,
    item_id: str,
    position: int,
    *,
    to_system_id: str | None = None,
) -> Quotation:
    source, item = find_item(quotation, item_id)
    target_id = to_system_id or source.id
    target_index = _system_index(quotation, target_id)
    systems = list(quotation.systems)
    for index, system in enumerate(systems):
        if system.id == source.id:
            systems[index] = system.model_copy(update={"items": [i for i in system.items if i.id != item_id]})
    target_items = list(systems[target_index].items)
    target_items.insert(_clamp(position, len(target_items)), item)
    systems[target_index] = systems[target_index].model_copy(update={"items": target_items})
    return _finish(quotation, systems)


def _replace_items(
    quotation: Quotation,
    system_id: str,
    change: Callable[[list[QuotationItem]], list[QuotationItem]],
) -> Quotation:
    index = _system_index(quotation, system_id)
    systems = list(quotation.systems)
    systems[index] = systems[index].model_copy(update={"items": change(list(systems[index].items))})
    return _finish(quotation, systems)


def _update_item(
    quotation: Quotation,
    item_id: str,
    change: Callable[[QuotationItem], QuotationItem],
) -> Quotation:
    system, _ = find_item(quotation, item_id)
    return _replace_items(
        quotation,
        system.id,
        lambda items: [change(i) if i.id == item_id else i for i in items],
    )


def set_quantity(quotation: Quotation, item_id: str, quantity: Number) -> Quotation:
    """Totals only; unit cost and price stay as they are."""
    quantity = check_quantity(quantity)
    return _update_item(
        quotation,
        item_id,
        lambda item: retotal_item(item.model_copy(update={"quantity": quantity})),
    )


def set_item_margin(quotation: Quotation, item_id: str, margin_percent: Number | None) -> Quotation:
    """Pin an item-level margin, or pass ``None`` to follow the quotation default again."""
    margin = check_margin(margin_percent) if margin_percent is not None else None
    parameters = quotation.parameters
    return _update_item(
        quotation,
        item_id,
        lambda item: derive_item(item.model_copy(update={"margin_override": margin}), parameters),
    )


def set_item_pricing_mode(quotation: Quotation, item_id: str, mode: PricingMode | None) -> Quotation:
    """Pin MSRP or margin pricing on one item; ``None`` follows the quotation toggle."""
    override = None if mode is None else PricingMode(mode) is PricingMode.msrp
    parameters = quotation.parameters
    return _update_item(
        quotation,
        item_id,
        lambda item: derive_item(item.model_copy(update={"msrp_override": override}), parameters),
    )


def set_unit_price(quotation: Quotation, item_id: str, unit_price: Number) -> Quotation:
    """Edit the selling price in the item's origin currency.

    The margin is back-derived and stored as an item-level override, and the
    item leaves MSRP pricing. The price must be positive. A zero-cost item has
    no margin that yields a positive price, so the edit raises
    :class:`~cpq_pricing.errors.InvalidMargin`.
    """
    price = to_decimal(unit_price)
    if price <= 0:
        raise InvalidPrice(price)
    parameters = quotation.parameters

    def change(item: QuotationItem) -> QuotationItem:
        margin = check_margin(margin_from_price(item.origin_cost, price))
        override = False if resolve_pricing_mode(item, parameters) is PricingMode.msrp else item.msrp_override
        return derive_item(
            item.model_copy(update={"margin_override": margin, "msrp_override": override}),
            parameters,
        )

    return _update_item(quotation, item_id, change)


def new_version(quotation: Quotation) -> Quotation:
    """Copy the whole tree as the next version; the source stays as it was."""
    systems = [
        system.model_copy(
            update={
                "id": uuid.uuid4().hex,
                "items": [item.model_copy(update={"id": uuid.uuid4().hex}) for item in system.items],
            },
            deep=True,
        )
        for system in quotation.systems
    ]
    now = datetime.now(timezone.utc)
    copy = quotation.model_copy(
        update={
            "version": quotation.version + 1,
            "revision": 0,
            "status": QuotationStatus.draft,
            "created_at": now,
            "updated_at": now,
            "systems": systems,
        },
        deep=True,
    )
    logger.info(
        "Created quotation version",
        extra={"quotation_id": quotation.id, "from_version": quotation.version, "to_version": copy.version},
    )
    return copy


__all__ = [
    "add_catalog_item",
    "add_item",
    "add_system",
    "find_item",
    "move_item",
    "move_system",
    "new_version",
    "remove_item",
    "remove_system",
    "rename_system",
    "set_item_margin",
    "set_item_pricing_mode",
    "set_quantity",
    "set_unit_price",
]
