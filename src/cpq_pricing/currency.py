from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from .errors import InvalidRate
from .models.money import ZERO, Currency, CurrencyAmounts, ExchangeRates

Number = Union[Decimal, int, str, float]

CENT = Decimal("0.01")
ONE = Decimal("1")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(amount: Number) -> Decimal:
    """Round to cents, half away from zero."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def ils_rate(currency: Currency, rates: ExchangeRates) -> Decimal:
    """Return how many ILS one unit of ``currency`` is worth."""
    currency = Currency(currency)
    if currency is Currency.ils:
        return ONE
    if currency is Currency.usd:
        name, value = "usd_to_ils", rates.usd_to_ils
    else:
        name, value = "eur_to_ils", rates.eur_to_ils
    if value is None or value <= 0:
        raise InvalidRate(name, value)
    return value


def convert_exact(
    amount: Number,
    from_currency: Currency,
    to_currency: Currency,
    rates: ExchangeRates,
) -> Decimal:
    """Convert without rounding, pivoting through ILS."""
    amount = to_decimal(amount)
    from_currency = Currency(from_currency)
    to_currency = Currency(to_currency)
    if from_currency is to_currency:
        return amount
    amount_ils = amount * ils_rate(from_currency, rates)
    return amount_ils / ils_rate(to_currency, rates)


def convert(
    amount: Number,
    from_currency: Currency,
    to_currency: Currency,
    rates: ExchangeRates,
) -> Decimal:
    return round_money(convert_exact(amount, from_currency, to_currency, rates))


def convert_to_all_exact(amount: Number, origin: Currency, rates: ExchangeRates) -> dict[Currency, Decimal]:
    return {currency: convert_exact(amount, origin, currency, rates) for currency in Currency}


def convert_to_all(amount: Number, origin: Currency, rates: ExchangeRates) -> CurrencyAmounts:
    exact = convert_to_all_exact(amount, origin, rates)
    return CurrencyAmounts(**{currency.name: round_money(value) for currency, value in exact.items()})


def detect_origin_currency(
    amounts: CurrencyAmounts,
    declared: Currency | None = None,
) -> tuple[Currency, Decimal]:
    """Guess the currency a legacy price was entered in.

    A declared currency with a positive amount wins; otherwise the first
    positive amount in ILS, USD, EUR order; otherwise ILS with zero.
    """
    if declared is not None:
        declared = Currency(declared)
        value = amounts.get(declared)
        if value > 0:
            return declared, value
    for currency in Currency:
        value = amounts.get(currency)
        if value > 0:
            return currency, value
    return Currency.ils, ZERO


def validate_rates(rates: ExchangeRates) -> list[str]:
    problems: list[str] = []
    if rates.usd_to_ils is None or rates.usd_to_ils <= 0:
        problems.append("USD to ILS exchange rate must be positive")
    if rates.eur_to_ils is None or rates.eur_to_ils <= 0:
        problems.append("EUR to ILS exchange rate must be positive")
    return problems


__all__ = [
    "CENT",
    "convert",
    "convert_exact",
    "convert_to_all",
    "convert_to_all_exact",
    "detect_origin_currency",
    "ils_rate",
    "round_money",
    "to_decimal",
    "validate_rates",
]
