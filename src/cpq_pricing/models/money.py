from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Currency(str, Enum):
    ils = "ILS"
    usd = "USD"
    eur = "EUR"

    @classmethod
    def _missing_(cls, value: object) -> "Currency | None":
        if not isinstance(value, str):
            return None
        normalized = value.strip().upper()
        # Older records store shekel amounts under "NIS".
        if normalized == "NIS":
            return cls.ils
        for member in cls:
            if member.value == normalized:
                return member
        return None


ZERO = Decimal("0")


class CurrencyAmounts(BaseModel):
    """One monetary value expressed in each of the three supported currencies."""

    model_config = ConfigDict(frozen=True)

    ils: Decimal = ZERO
    usd: Decimal = ZERO
    eur: Decimal = ZERO

    def get(self, currency: Currency) -> Decimal:
        return getattr(self, Currency(currency).name)

    def plus(self, other: "CurrencyAmounts") -> "CurrencyAmounts":
        return CurrencyAmounts(
            ils=self.ils + other.ils,
            usd=self.usd + other.usd,
            eur=self.eur + other.eur,
        )

    @classmethod
    def total(cls, amounts) -> "CurrencyAmounts":
        result = cls()
        for amount in amounts:
            result = result.plus(amount)
        return result


class ExchangeRates(BaseModel):
    """ILS per one unit of foreign currency, frozen on the quotation.

    Missing or non-positive rates are accepted here and rejected by the
    conversion functions, so a quotation with a bad rate can still be loaded
    and corrected.
    """

    model_config = ConfigDict(frozen=True)

    usd_to_ils: Decimal | None = None
    eur_to_ils: Decimal | None = None


__all__ = ["Currency", "CurrencyAmounts", "ExchangeRates", "ZERO"]
