from __future__ import annotations

from decimal import Decimal

from .currency import Number, round_money, to_decimal
from .errors import InvalidMargin
from .models.money import ZERO
from .models.quotation import PricingMode, QuotationParameters

HUNDRED = Decimal("100")


def check_margin(margin_percent: Number) -> Decimal:
    margin = to_decimal(margin_percent)
    if margin >= HUNDRED:
        raise InvalidMargin(margin)
    return margin


def price_from_margin_exact(cost: Number, margin_percent: Number) -> Decimal:
    margin = check_margin(margin_percent)
    return to_decimal(cost) / (1 - margin / HUNDRED)


def price_from_margin(cost: Number, margin_percent: Number) -> Decimal:
    """Selling price for ``cost`` when margin is a share of the selling price.

    >>> price_from_margin(100, 25)
    Decimal('133.33')
    """
    return round_money(price_from_margin_exact(cost, margin_percent))


def margin_from_price(cost: Number, price: Number) -> Decimal:
    """Inverse of :func:`price_from_margin`; 0 when the price is 0."""
    cost = to_decimal(cost)
    price = to_decimal(price)
    if price == 0:
        return ZERO
    return (price - cost) / price * HUNDRED


def msrp_margin(cost: Number, msrp_price: Number) -> Decimal:
    return margin_from_price(cost, msrp_price)


def partner_cost_from_msrp(msrp_price: Number, discount_percent: Number) -> Decimal:
    return round_money(to_decimal(msrp_price) * (1 - to_decimal(discount_percent) / HUNDRED))


def discount_from_msrp(msrp_price: Number, partner_cost: Number) -> Decimal:
    msrp_price = to_decimal(msrp_price)
    if msrp_price == 0:
        return ZERO
    return (msrp_price - to_decimal(partner_cost)) / msrp_price * HUNDRED


def resolve_pricing_mode(item, parameters: QuotationParameters) -> PricingMode:
    """Item override, else the quotation default; margin when no MSRP is known.

    Resolved on every read so a later change of the quotation default is
    picked up by every item that has not pinned its own mode.
    """
    if item.msrp is None:
        return PricingMode.margin
    if item.msrp_override is not None:
        return PricingMode.msrp if item.msrp_override else PricingMode.margin
    return PricingMode.msrp if parameters.use_msrp_pricing else PricingMode.margin


def effective_margin(item, parameters: QuotationParameters) -> Decimal:
    if item.margin_override is not None:
        return item.margin_override
    return parameters.margin_percent


__all__ = [
    "check_margin",
    "discount_from_msrp",
    "effective_margin",
    "margin_from_price",
    "msrp_margin",
    "partner_cost_from_msrp",
    "price_from_margin",
    "price_from_margin_exact",
    "resolve_pricing_mode",
]
