from decimal import Decimal

import pytest

from cpq_pricing.currency import round_money
from cpq_pricing.editor import add_item, set_item_pricing_mode
from cpq_pricing.errors import InvalidMargin, InvalidRate
from cpq_pricing.line_items import custom_item
from cpq_pricing.models.money import Currency, CurrencyAmounts
from cpq_pricing.models.quotation import PricingMode, QuotationParameters
from cpq_pricing.recalculation import (
    Trigger,
    apply_parameters,
    on_day_work_cost_changed,
    on_exchange_rates_changed,
    on_margin_changed,
    on_msrp_mode_changed,
    validate_parameters,
)

TRIGGERS = {
    "margin": lambda q: on_margin_changed(q, 30),
    "day_rate": lambda q: on_day_work_cost_changed(q, 1500),
    "rates": lambda q: on_exchange_rates_changed(q, usd_to_ils="3.85", eur_to_ils="4.10"),
    "msrp_on": lambda q: on_msrp_mode_changed(q, True),
}


def item_named(quotation, name):
    return next(item for _, item in quotation.iter_items() if item.name == name)


def test_margin_change_reprices_default_margin_items_only(mixed_quotation):
    assert item_named(mixed_quotation, "PLC controller").unit_price.usd == Decimal("133.33")

    updated = on_margin_changed(mixed_quotation, 30)

    assert updated.parameters.margin_percent == Decimal("30")
    assert item_named(updated, "PLC controller").unit_price.usd == Decimal("142.86")
    assert item_named(updated, "Engineering").unit_price.ils == Decimal("1714.29")
    pinned_before = item_named(mixed_quotation, "Site survey")
    pinned_after = item_named(updated, "Site survey")
    assert pinned_after.unit_price.usd == Decimal("125.00")
    assert pinned_after.model_dump() == pinned_before.model_dump()


def test_day_rate_change_reprices_internal_labor_only(mixed_quotation):
    assert item_named(mixed_quotation, "Engineering").total_cost.ils == Decimal("2400.00")

    updated = on_day_work_cost_changed(mixed_quotation, 1500)

    engineering = item_named(updated, "Engineering")
    assert engineering.origin_cost == Decimal("1500.00")
    assert engineering.total_cost.ils == Decimal("3000.00")
    assert updated.parameters.day_work_cost == Decimal("1500.00")
    for name in ("Commissioning contractor", "PLC controller", "Control kit", "Site survey"):
        assert item_named(updated, name).model_dump_json() == item_named(mixed_quotation, name).model_dump_json()


@pytest.mark.parametrize("day_rate", [0, 800, "1500", "1234.56"])
def test_day_rate_change_never_touches_other_items(mixed_quotation, day_rate):
    updated = on_day_work_cost_changed(mixed_quotation, day_rate)

    for (_, before), (_, after) in zip(mixed_quotation.iter_items(), updated.iter_items()):
        if before.name == "Engineering":
            assert after.origin_cost == round_money(day_rate)
        else:
            assert after.model_dump_json() == before.model_dump_json()


def test_negative_day_rate_is_rejected(mixed_quotation):
    with pytest.raises(InvalidRate):
        on_day_work_cost_changed(mixed_quotation, -1)


def test_rate_change_recomputes_from_origin_cost(mixed_quotation):
    updated = on_exchange_rates_changed(mixed_quotation, usd_to_ils="3.80", eur_to_ils="4.00")

    plc = item_named(updated, "PLC controller")
    assert plc.unit_cost == CurrencyAmounts(ils=Decimal("380.00"), usd=Decimal("100.00"), eur=Decimal("95.00"))
    cabinet = item_named(updated, "Cabinet")
    assert cabinet.unit_cost.ils == Decimal("740.00")
    assert cabinet.unit_cost.usd == Decimal("194.74")

    restored = on_exchange_rates_changed(updated, usd_to_ils="3.70", eur_to_ils="4.00")
    assert item_named(restored, "Cabinet").unit_cost.usd == Decimal("200.00")
    assert restored.model_dump_json() == mixed_quotation.model_dump_json()


@pytest.mark.parametrize("usd,eur", [(0, "4.00"), ("3.70", 0), ("-1", "4.00"), (None, "4.00"), ("3.70", None)])
def test_rate_change_rejects_non_positive_rates(mixed_quotation, usd, eur):
    with pytest.raises(InvalidRate):
        on_exchange_rates_changed(mixed_quotation, usd_to_ils=usd, eur_to_ils=eur)


def test_msrp_toggle_reprices_items_with_msrp_only(mixed_quotation):
    updated = on_msrp_mode_changed(mixed_quotation, True)

    assert item_named(updated, "HMI panel").unit_price.usd == Decimal("500.00")
    assert item_named(updated, "HMI panel").margin_percent == Decimal("20")
    assert item_named(updated, "PLC controller").model_dump() == item_named(mixed_quotation, "PLC controller").model_dump()

    # MSRP-priced items ignore the quotation margin.
    remargined = on_margin_changed(updated, 35)
    assert item_named(remargined, "HMI panel").unit_price.usd == Decimal("500.00")


def test_msrp_toggle_skips_items_with_pinned_mode(mixed_quotation):
    hmi_id = item_named(mixed_quotation, "HMI panel").id
    pinned = set_item_pricing_mode(mixed_quotation, hmi_id, PricingMode.margin)

    updated = on_msrp_mode_changed(pinned, True)

    assert item_named(updated, "HMI panel").unit_price.usd == Decimal("533.33")


def test_margin_of_100_percent_is_rejected(mixed_quotation):
    with pytest.raises(InvalidMargin):
        on_margin_changed(mixed_quotation, 100)


@pytest.mark.parametrize("trigger", sorted(TRIGGERS))
def test_triggers_are_idempotent(mixed_quotation, trigger):
    run = TRIGGERS[trigger]
    once = run(mixed_quotation)
    twice = run(once)

    assert twice.model_dump_json() == once.model_dump_json()


@pytest.mark.parametrize("trigger", sorted(TRIGGERS))
def test_totals_equal_sum_of_items_after_trigger(mixed_quotation, trigger):
    updated = TRIGGERS[trigger](mixed_quotation)
    items = [item for _, item in updated.iter_items()]

    assert updated.totals.total_cost == CurrencyAmounts.total(item.total_cost for item in items)
    assert updated.totals.total_price == CurrencyAmounts.total(item.total_price for item in items)
    assert updated.totals.total_price == CurrencyAmounts.total(system.total_price for system in updated.systems)


def test_apply_parameters_runs_only_affected_triggers(mixed_quotation):
    new_parameters = mixed_quotation.parameters.model_copy(
        update={"margin_percent": Decimal("30"), "day_work_cost": Decimal("1500"), "risk_percent": Decimal("15")}
    )

    update = apply_parameters(mixed_quotation, new_parameters)

    assert update.triggers == [Trigger.day_work_cost, Trigger.margin]
    assert {change.field for change in update.changes} == {"margin_percent", "day_work_cost", "risk_percent"}
    quotation = update.quotation
    assert quotation.parameters.risk_percent == Decimal("15")
    assert item_named(quotation, "PLC controller").unit_price.usd == Decimal("142.86")
    assert item_named(quotation, "Engineering").unit_price.ils == Decimal("2142.86")


def test_apply_parameters_without_changes_is_a_no_op(mixed_quotation):
    update = apply_parameters(mixed_quotation, mixed_quotation.parameters.model_copy())

    assert update.changes == []
    assert update.triggers == []
    assert update.quotation.model_dump_json() == mixed_quotation.model_dump_json()


def test_risk_change_only_updates_commercial_totals(mixed_quotation):
    new_parameters = mixed_quotation.parameters.model_copy(update={"risk_percent": Decimal("15")})

    update = apply_parameters(mixed_quotation, new_parameters)

    assert update.triggers == []
    assert [s.model_dump() for s in update.quotation.systems] == [s.model_dump() for s in mixed_quotation.systems]
    price = mixed_quotation.totals.total_price.ils
    assert update.quotation.totals.risk_addition_ils == round_money(price * Decimal("0.15"))


def test_apply_parameters_rejects_missing_rate(mixed_quotation):
    new_parameters = mixed_quotation.parameters.model_copy(update={"usd_to_ils_rate": None})

    with pytest.raises(InvalidRate):
        apply_parameters(mixed_quotation, new_parameters)


def test_commercial_totals(quotation):
    item = custom_item("Control panel", Decimal("1000"), Currency.ils, quotation.parameters)
    totals = add_item(quotation, quotation.systems[0].id, item).totals

    assert totals.total_price.ils == Decimal("1333.33")
    assert totals.profit_ils == Decimal("333.33")
    assert totals.risk_addition_ils == Decimal("133.33")
    assert totals.total_before_vat_ils == Decimal("1466.66")
    assert totals.vat_ils == Decimal("249.33")
    assert totals.final_total_ils == Decimal("1715.99")
    assert round_money(totals.profit_margin_percent) == Decimal("31.82")
    assert totals.price_by_item_type == {"custom": Decimal("1333.33")}


def test_vat_can_be_excluded(quotation):
    no_vat = quotation.model_copy(
        update={"parameters": quotation.parameters.model_copy(update={"include_vat": False})}
    )
    item = custom_item("Control panel", Decimal("1000"), Currency.ils, no_vat.parameters)
    totals = add_item(no_vat, no_vat.systems[0].id, item).totals

    assert totals.vat_ils == 0
    assert totals.final_total_ils == totals.total_before_vat_ils


def test_price_breakdowns(mixed_quotation):
    totals = mixed_quotation.totals

    assert set(totals.price_by_item_type) == {"component", "assembly", "labor", "custom"}
    assert set(totals.price_by_labor_subtype) == {"engineering", "commissioning"}
    assert sum(totals.price_by_item_type.values()) == totals.total_price.ils


def test_validate_parameters():
    assert validate_parameters(QuotationParameters()) == []
    problems = validate_parameters(QuotationParameters(margin_percent=Decimal("100"), usd_to_ils_rate=None))
    assert problems == ["USD to ILS exchange rate must be positive", "Margin must be below 100%"]
