from decimal import Decimal

import pytest

from cpq_pricing.catalog import CatalogReference
from cpq_pricing.editor import (
    add_catalog_item,
    add_item,
    add_system,
    find_item,
    move_item,
    move_system,
    new_version,
    remove_item,
    remove_system,
    rename_system,
    set_item_margin,
    set_item_pricing_mode,
    set_quantity,
    set_unit_price,
)
from cpq_pricing.errors import (
    InvalidMargin,
    InvalidPrice,
    InvalidQuantity,
    ItemNotFound,
    SnapshotUnavailable,
    SystemNotFound,
)
from cpq_pricing.line_items import custom_item
from cpq_pricing.models.money import Currency, CurrencyAmounts
from cpq_pricing.models.quotation import CustomItem, PricingMode
from cpq_pricing.recalculation import on_margin_changed


def item_named(quotation, name):
    return next(item for _, item in quotation.iter_items() if item.name == name)


def _orders(quotation):
    return [[item.display_order for item in system.items] for system in quotation.systems]


def _assert_conserved(quotation):
    items = [item for _, item in quotation.iter_items()]
    assert quotation.totals.total_cost == CurrencyAmounts.total(item.total_cost for item in items)
    assert quotation.totals.total_price == CurrencyAmounts.total(item.total_price for item in items)
    for system in quotation.systems:
        assert system.total_price == CurrencyAmounts.total(item.total_price for item in system.items)


def test_display_order_is_dense_after_every_edit(mixed_quotation):
    assert _orders(mixed_quotation) == [[1, 2, 3, 4, 5, 6, 7], [1]]
    assert [system.order for system in mixed_quotation.systems] == [1, 2]

    removed = remove_item(mixed_quotation, item_named(mixed_quotation, "HMI panel").id)
    assert _orders(removed) == [[1, 2, 3, 4, 5, 6], [1]]
    _assert_conserved(removed)


def test_move_item_within_system(mixed_quotation):
    moved = move_item(mixed_quotation, item_named(mixed_quotation, "Site survey").id, 1)

    assert moved.systems[0].items[0].name == "Site survey"
    assert moved.systems[0].items[1].name == "PLC controller"
    assert _orders(moved) == [[1, 2, 3, 4, 5, 6, 7], [1]]


def test_move_item_between_systems(mixed_quotation):
    target = mixed_quotation.systems[0].id
    moved = move_item(mixed_quotation, item_named(mixed_quotation, "I/O card").id, 2, to_system_id=target)

    assert moved.systems[0].items[1].name == "I/O card"
    assert moved.systems[1].items == []
    assert _orders(moved) == [[1, 2, 3, 4, 5, 6, 7, 8], []]
    assert moved.totals == mixed_quotation.totals


def test_system_edits(mixed_quotation):
    first, second = mixed_quotation.systems

    renamed = rename_system(mixed_quotation, first.id, "PLC cabinet")
    assert renamed.systems[0].name == "PLC cabinet"

    swapped = move_system(mixed_quotation, second.id, 1)
    assert [system.name for system in swapped.systems] == ["Spare parts", "Control system"]
    assert [system.order for system in swapped.systems] == [1, 2]

    inserted = add_system(mixed_quotation, "Networking", position=2)
    assert [system.name for system in inserted.systems] == ["Control system", "Networking", "Spare parts"]

    dropped = remove_system(mixed_quotation, first.id)
    assert [system.name for system in dropped.systems] == ["Spare parts"]
    assert dropped.totals.total_price == second.total_price
    _assert_conserved(dropped)


def test_quantity_change_keeps_unit_values(mixed_quotation):
    item = item_named(mixed_quotation, "PLC controller")
    updated = set_quantity(mixed_quotation, item.id, 3)
    changed = item_named(updated, "PLC controller")

    assert changed.unit_price == item.unit_price
    assert changed.unit_cost == item.unit_cost
    assert changed.total_cost.usd == Decimal("300.00")
    assert changed.total_price.usd == Decimal("399.99")
    _assert_conserved(updated)


def test_quantity_must_be_positive(mixed_quotation):
    with pytest.raises(InvalidQuantity):
        set_quantity(mixed_quotation, item_named(mixed_quotation, "PLC controller").id, 0)


def test_unknown_ids(mixed_quotation, parameters):
    with pytest.raises(ItemNotFound):
        remove_item(mixed_quotation, "nope")
    with pytest.raises(ItemNotFound):
        find_item(mixed_quotation, "nope")
    with pytest.raises(SystemNotFound):
        add_item(mixed_quotation, "nope", custom_item("x", 1, Currency.ils, parameters))


def test_unavailable_reference_fails_without_placeholder(quotation, resolver):
    with pytest.raises(SnapshotUnavailable):
        add_catalog_item(quotation, quotation.systems[0].id, CatalogReference("component", "cmp-gone"), 1, resolver)


def test_unavailable_reference_becomes_placeholder(quotation, resolver):
    updated = add_catalog_item(
        quotation,
        quotation.systems[0].id,
        CatalogReference("component", "cmp-gone"),
        2,
        resolver,
        placeholder_cost=Decimal("500"),
    )
    item = updated.systems[0].items[0]

    assert isinstance(item, CustomItem)
    assert item.is_placeholder
    assert item.source_id == "cmp-gone"
    assert item.unit_cost.ils == Decimal("500.00")
    assert item.total_cost.ils == Decimal("1000.00")


def test_unit_price_edit_pins_back_derived_margin(mixed_quotation):
    item = item_named(mixed_quotation, "PLC controller")
    updated = set_unit_price(mixed_quotation, item.id, Decimal("150"))
    changed = item_named(updated, "PLC controller")

    assert changed.unit_price.usd == Decimal("150.00")
    assert changed.margin_override is not None
    assert round(changed.margin_override, 2) == Decimal("33.33")

    after_margin_change = item_named(on_margin_changed(updated, 30), "PLC controller")
    assert after_margin_change.unit_price.usd == Decimal("150.00")


def test_unit_price_edit_leaves_msrp_mode(mixed_quotation):
    enabled = set_item_pricing_mode(mixed_quotation, item_named(mixed_quotation, "HMI panel").id, PricingMode.msrp)
    item = item_named(enabled, "HMI panel")
    assert item.unit_price.usd == Decimal("500.00")

    repriced = item_named(set_unit_price(enabled, item.id, Decimal("480")), "HMI panel")
    assert repriced.msrp_override is False
    assert repriced.unit_price.usd == Decimal("480.00")


@pytest.mark.parametrize("price", [0, "-5"])
def test_unit_price_must_be_positive(mixed_quotation, price):
    item = item_named(mixed_quotation, "PLC controller")

    with pytest.raises(InvalidPrice):
        set_unit_price(mixed_quotation, item.id, price)


def test_unit_price_edit_on_zero_cost_item_is_rejected(quotation):
    free = custom_item("Free training", Decimal("0"), Currency.ils, quotation.parameters)
    updated = add_item(quotation, quotation.systems[0].id, free)

    with pytest.raises(InvalidMargin):
        set_unit_price(updated, free.id, Decimal("50"))


def test_item_margin_override_and_reset(mixed_quotation):
    item_id = item_named(mixed_quotation, "PLC controller").id

    pinned = set_item_margin(mixed_quotation, item_id, 40)
    assert item_named(pinned, "PLC controller").unit_price.usd == Decimal("166.67")

    reset = set_item_margin(pinned, item_id, None)
    assert item_named(reset, "PLC controller").unit_price.usd == Decimal("133.33")

    with pytest.raises(InvalidMargin):
        set_item_margin(mixed_quotation, item_id, 100)


def test_new_version_copies_the_tree(mixed_quotation):
    original = mixed_quotation.model_copy(update={"revision": 4}, deep=True)
    copy = new_version(original)

    assert copy.id == original.id
    assert copy.version == original.version + 1
    assert copy.revision == 0
    assert copy.totals == original.totals
    assert [item.name for _, item in copy.iter_items()] == [item.name for _, item in original.iter_items()]
    original_ids = {item.id for _, item in original.iter_items()}
    assert original_ids.isdisjoint(item.id for _, item in copy.iter_items())
    assert original.version == 1
    assert original.revision == 4
