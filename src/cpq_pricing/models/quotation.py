from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .catalog import ComponentType, LaborSubtype, MsrpData
from .money import ZERO, Currency, CurrencyAmounts, ExchangeRates


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotationStatus(str, Enum):
    draft = "draft"
    sent = "sent"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"


class ItemType(str, Enum):
    component = "component"
    assembly = "assembly"
    labor = "labor"
    custom = "custom"


class PricingMode(str, Enum):
    margin = "margin"
    msrp = "msrp"


class QuotationParameters(BaseModel):
    usd_to_ils_rate: Decimal | None = Decimal("3.7")
    eur_to_ils_rate: Decimal | None = Decimal("4.0")
    margin_percent: Decimal = Decimal("25")
    day_work_cost: Decimal = Field(default=Decimal("1200"), description="ILS per internal labor day")
    use_msrp_pricing: bool = False
    risk_percent: Decimal = Decimal("10")
    include_vat: bool = True
    vat_rate: Decimal = Decimal("17")

    @property
    def rates(self) -> ExchangeRates:
        return ExchangeRates(usd_to_ils=self.usd_to_ils_rate, eur_to_ils=self.eur_to_ils_rate)


class _ItemBase(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    display_order: int = 0
    quantity: Decimal = Decimal("1")
    origin_currency: Currency = Currency.ils
    origin_cost: Decimal = Field(default=ZERO, description="Unit cost in origin_currency, never converted")
    msrp: MsrpData | None = None
    margin_override: Decimal | None = None
    msrp_override: bool | None = None
    notes: str | None = None

    # Derived; rewritten by the engine, never edited directly.
    unit_cost: CurrencyAmounts = Field(default_factory=CurrencyAmounts)
    unit_price: CurrencyAmounts = Field(default_factory=CurrencyAmounts)
    total_cost: CurrencyAmounts = Field(default_factory=CurrencyAmounts)
    total_price: CurrencyAmounts = Field(default_factory=CurrencyAmounts)
    margin_percent: Decimal = ZERO


class ComponentItem(_ItemBase):
    item_type: Literal["component"] = "component"
    component_id: str
    manufacturer: str | None = None
    manufacturer_part_number: str | None = None
    component_type: ComponentType = ComponentType.hardware


class AssemblyItem(_ItemBase):
    item_type: Literal["assembly"] = "assembly"
    assembly_id: str
    component_count: int = 0


class LaborItem(_ItemBase):
    item_type: Literal["labor"] = "labor"
    labor_type_id: str | None = None
    labor_subtype: LaborSubtype
    is_internal_labor: bool


class CustomItem(_ItemBase):
    item_type: Literal["custom"] = "custom"
    is_placeholder: bool = False
    source_kind: str | None = None
    source_id: str | None = None


QuotationItem = Annotated[
    Union[ComponentItem, AssemblyItem, LaborItem, CustomItem],
    Field(discriminator="item_type"),
]


class QuotationSystem(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str | None = None
    order: int = 0
    items: list[QuotationItem] = Field(default_factory=list)
    total_cost: CurrencyAmounts = Field(default_factory=CurrencyAmounts)
    total_price: CurrencyAmounts = Field(default_factory=CurrencyAmounts)


class QuotationTotals(BaseModel):
    total_cost: CurrencyAmounts = Field(default_factory=CurrencyAmounts)
    total_price: CurrencyAmounts = Field(default_factory=CurrencyAmounts)
    price_by_item_type: dict[str, Decimal] = Field(default_factory=dict)
    price_by_labor_subtype: dict[str, Decimal] = Field(default_factory=dict)
    profit_ils: Decimal = ZERO
    risk_addition_ils: Decimal = ZERO
    total_before_vat_ils: Decimal = ZERO
    vat_ils: Decimal = ZERO
    final_total_ils: Decimal = ZERO
    profit_margin_percent: Decimal = ZERO


class Quotation(BaseModel):
    id: str = Field(default_factory=_new_id)
    number: str | None = None
    version: int = 1
    revision: int = Field(default=0, description="Storage revision used for optimistic concurrency")
    scope: str | None = None
    project_number: str | None = None
    name: str
    customer_name: str | None = None
    status: QuotationStatus = QuotationStatus.draft
    parameters: QuotationParameters = Field(default_factory=QuotationParameters)
    systems: list[QuotationSystem] = Field(default_factory=list)
    totals: QuotationTotals = Field(default_factory=QuotationTotals)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def iter_items(self):
        for system in self.systems:
            for item in system.items:
                yield system, item


__all__ = [
    "AssemblyItem",
    "ComponentItem",
    "CustomItem",
    "ItemType",
    "LaborItem",
    "PricingMode",
    "Quotation",
    "QuotationItem",
    "QuotationParameters",
    "QuotationStatus",
    "QuotationSystem",
    "QuotationTotals",
]
