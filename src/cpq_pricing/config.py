from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache
from typing import Mapping

from pydantic import BaseModel

from .models.quotation import QuotationParameters
from .numbering import CounterStore, InMemoryCounterStore, NumberingConfig
from .quotation_store import InMemoryQuotationStore, QuotationStore


class EngineSettings(BaseModel):
    environment: str = "dev"
    project_id: str | None = None

    default_usd_to_ils_rate: Decimal = Decimal("3.7")
    default_eur_to_ils_rate: Decimal = Decimal("4.0")
    default_margin_percent: Decimal = Decimal("25")
    default_day_work_cost: Decimal = Decimal("1200")
    default_risk_percent: Decimal = Decimal("10")
    default_vat_rate: Decimal = Decimal("17")
    default_include_vat: bool = True
    default_use_msrp_pricing: bool = False

    numbering_project_prefix: str = "PRJ"
    numbering_quotation_prefix: str = "QT"
    numbering_padding: int = 4
    numbering_separator: str = "-"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(name.upper())
            if raw is None:
                continue
            values[name] = raw
        return cls.model_validate(values)

    def default_parameters(self) -> QuotationParameters:
        return QuotationParameters(
            usd_to_ils_rate=self.default_usd_to_ils_rate,
            eur_to_ils_rate=self.default_eur_to_ils_rate,
            margin_percent=self.default_margin_percent,
            day_work_cost=self.default_day_work_cost,
            use_msrp_pricing=self.default_use_msrp_pricing,
            risk_percent=self.default_risk_percent,
            include_vat=self.default_include_vat,
            vat_rate=self.default_vat_rate,
        )

    def numbering_config(self) -> NumberingConfig:
        return NumberingConfig(
            project_prefix=self.numbering_project_prefix,
            quotation_prefix=self.numbering_quotation_prefix,
            padding=self.numbering_padding,
            separator=self.numbering_separator,
        )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings.from_env()


def build_stores(settings: EngineSettings) -> tuple[QuotationStore, CounterStore]:
    """In-memory stores for dev, Firestore everywhere else."""
    if settings.environment == "dev":
        return InMemoryQuotationStore(), InMemoryCounterStore()

    from .firestore_store import FirestoreCounterStore, FirestoreQuotationStore

    return (
        FirestoreQuotationStore(project_id=settings.project_id),
        FirestoreCounterStore(project_id=settings.project_id),
    )


__all__ = ["EngineSettings", "build_stores", "get_settings"]
