from decimal import Decimal

import pytest

from cpq_pricing.catalog import CatalogReference, InMemoryCatalog, SnapshotResolver
from cpq_pricing.editor import add_catalog_item, add_item, add_system
from cpq_pricing.line_items import custom_item
from cpq_pricing.models.catalog import (
    Assembly,
    AssemblyMember,
    Component,
    LaborSubtype,
    LaborType,
    MsrpData,
)
from cpq_pricing.models.money import Currency
from cpq_pricing.models.quotation import Quotation, QuotationParameters


@pytest.fixture
def parameters() -> QuotationParameters:
    return QuotationParameters(
        usd_to_ils_rate=Decimal("3.70"),
        eur_to_ils_rate=Decimal("4.00"),
        margin_percent=Decimal("25"),
        day_work_cost=Decimal("1200"),
        risk_percent=Decimal("10"),
        vat_rate=Decimal("17"),
    )


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog(
        components=[
            Component(id="cmp-a", name="PLC controller", manufacturer="Siemens", cost=Decimal("100"), currency=Currency.usd),
            Component(id="cmp-b", name="I/O card", cost=Decimal("50"), currency=Currency.usd),
            Component(
                id="cmp-hmi",
                name="HMI panel",
                cost=Decimal("400"),
                currency=Currency.usd,
                msrp=MsrpData(price=Decimal("500"), currency=Currency.usd, partner_discount_percent=Decimal("20")),
            ),
            Component(id="cmp-cabinet", name="Cabinet", cost=Decimal("740"), currency=Currency.ils),
        ],
        assemblies=[
            Assembly(
                id="asm-kit",
                name="Control kit",
                members=[
                    AssemblyMember(component_id="cmp-a", component_name="PLC controller", quantity=Decimal("2")),
                    AssemblyMember(component_id="cmp-b", component_name="I/O card", quantity=Decimal("1")),
                ],
            )
        ],
        labor_types=[
            LaborType(
                id="lab-eng",
                name="Engineering",
                labor_subtype=LaborSubtype.engineering,
                is_internal_labor=True,
            ),
            LaborType(
                id="lab-ext",
                name="Commissioning contractor",
                labor_subtype=LaborSubtype.commissioning,
                is_internal_labor=False,
                external_rate=Decimal("2000"),
            ),
        ],
    )


@pytest.fixture
def resolver(catalog) -> SnapshotResolver:
    return SnapshotResolver(catalog)


@pytest.fixture
def quotation(parameters) -> Quotation:
    return add_system(Quotation(name="Water treatment plant", parameters=parameters), "Control system")


@pytest.fixture
def mixed_quotation(quotation, resolver) -> Quotation:
    """One system holding every item variant."""
    system_id = quotation.systems[0].id
    q = quotation
    for kind, ref_id, qty in (
        ("component", "cmp-a", 1),
        ("component", "cmp-hmi", 1),
        ("component", "cmp-cabinet", 2),
        ("assembly", "asm-kit", 1),
        ("labor", "lab-eng", 2),
        ("labor", "lab-ext", 3),
    ):
        q = add_catalog_item(q, system_id, CatalogReference(kind, ref_id), qty, resolver)
    pinned = custom_item(
        "Site survey",
        Decimal("100"),
        Currency.usd,
        q.parameters,
        margin_override=Decimal("20"),
    )
    q = add_item(q, system_id, pinned)
    q = add_system(q, "Spare parts")
    q = add_catalog_item(q, q.systems[1].id, CatalogReference("component", "cmp-b"), 4, resolver)
    return q

