from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .money import Currency


class ComponentType(str, Enum):
    hardware = "hardware"
    software = "software"


class LaborSubtype(str, Enum):
    engineering = "engineering"
    integration = "integration"
    development = "development"
    testing = "testing"
    commissioning = "commissioning"
    support_and_training = "support_and_training"


class MsrpData(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(gt=0)
    currency: Currency
    partner_discount_percent: Decimal | None = Field(default=None, ge=0, lt=100)


class Component(BaseModel):
    id: str
    name: str
    manufacturer: str | None = None
    manufacturer_part_number: str | None = None
    category: str | None = None
    component_type: ComponentType = ComponentType.hardware
    cost: Decimal = Field(ge=0, description="Unit cost in the original quote currency")
    currency: Currency = Currency.ils
    msrp: MsrpData | None = None
    is_active: bool = True


class AssemblyMember(BaseModel):
    # None once the referenced component has been deleted from the library.
    component_id: str | None
    component_name: str
    quantity: Decimal = Field(gt=0)
    sort_order: int = 0


class Assembly(BaseModel):
    id: str
    name: str
    description: str | None = None
    currency: Currency = Currency.usd
    members: Sequence[AssemblyMember] = Field(default_factory=list)


class LaborType(BaseModel):
    id: str
    name: str
    labor_subtype: LaborSubtype
    is_internal_labor: bool
    external_rate: Decimal | None = Field(default=None, ge=0, description="ILS per day")
    description: str | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def _external_labor_needs_rate(self) -> "LaborType":
        if not self.is_internal_labor and self.external_rate is None:
            raise ValueError("external labor types must define external_rate")
        return self


__all__ = [
    "Assembly",
    "AssemblyMember",
    "Component",
    "ComponentType",
    "LaborSubtype",
    "LaborType",
    "MsrpData",
]
