from __future__ import annotations

import logging
import uuid
from typing import Callable

from .catalog import CatalogReference, SnapshotResolver
from .config import EngineSettings, get_settings
from .currency import Number
from .editor import add_catalog_item, add_item, add_system, new_version, remove_item, set_quantity
from .line_items import custom_item
from .logging_config import set_correlation_id
from .models.money import Currency
from .models.quotation import Quotation, QuotationParameters
from .numbering import NumberSequencer
from .quotation_store import QuotationStore
from .recalculation import ParameterUpdate, apply_parameters, recalculate_totals

logger = logging.getLogger(__name__)


class QuotationNotFound(LookupError):
    def __init__(self, quotation_id: str, version: int | None) -> None:
        super().__init__(f"quotation {quotation_id} v{version} not found")
        self.quotation_id = quotation_id
        self.version = version


class QuotationService:
    """Load, edit and conditionally save quotation trees.

    Each edit is applied to the tree as loaded and saved only if nobody else
    wrote in between; a :class:`~cpq_pricing.errors.StaleVersion` is left for
    the caller to handle by reloading.
    """

    def __init__(
        self,
        *,
        store: QuotationStore,
        sequencer: NumberSequencer,
        resolver: SnapshotResolver,
        settings: EngineSettings | None = None,
    ) -> None:
        self._store = store
        self._sequencer = sequencer
        self._resolver = resolver
        self._settings = settings or get_settings()

    def create_quotation(
        self,
        *,
        scope: str,
        name: str,
        customer_name: str | None = None,
        project_number: str | None = None,
        parameters: QuotationParameters | None = None,
    ) -> Quotation:
        number = self._sequencer.next_quotation_number(scope, project_number)
        quotation = recalculate_totals(
            Quotation(
                number=number,
                scope=scope,
                project_number=project_number,
                name=name,
                customer_name=customer_name,
                parameters=parameters or self._settings.default_parameters(),
            )
        )
        stored = self._store.save(quotation, expected_revision=None)
        logger.info(
            "Created quotation",
            extra={"quotation_id": stored.id, "number": number, "scope": scope},
        )
        return stored

    def get(self, quotation_id: str, version: int | None = None) -> Quotation:
        if version is None:
            version = self._store.latest_version(quotation_id)
        quotation = self._store.get(quotation_id, version) if version is not None else None
        if quotation is None:
            raise QuotationNotFound(quotation_id, version)
        return quotation

    def add_system(self, quotation_id: str, version: int, name: str, *, description: str | None = None) -> Quotation:
        return self._edit(quotation_id, version, lambda q: add_system(q, name, description=description))

    def add_catalog_item(
        self,
        quotation_id: str,
        version: int,
        system_id: str,
        reference: CatalogReference,
        quantity: Number = 1,
        *,
        placeholder_cost: Number | None = None,
    ) -> Quotation:
        return self._edit(
            quotation_id,
            version,
            lambda q: add_catalog_item(
                q, system_id, reference, quantity, self._resolver, placeholder_cost=placeholder_cost
            ),
        )

    def add_custom_item(
        self,
        quotation_id: str,
        version: int,
        system_id: str,
        *,
        name: str,
        unit_cost: Number,
        currency: Currency = Currency.ils,
        quantity: Number = 1,
    ) -> Quotation:
        def change(q: Quotation) -> Quotation:
            item = custom_item(name, unit_cost, currency, q.parameters, quantity=quantity)
            return add_item(q, system_id, item)

        return self._edit(quotation_id, version, change)

    def set_quantity(self, quotation_id: str, version: int, item_id: str, quantity: Number) -> Quotation:
        return self._edit(quotation_id, version, lambda q: set_quantity(q, item_id, quantity))

    def remove_item(self, quotation_id: str, version: int, item_id: str) -> Quotation:
        return self._edit(quotation_id, version, lambda q: remove_item(q, item_id))

    def update_parameters(
        self,
        quotation_id: str,
        version: int,
        parameters: QuotationParameters,
        *,
        expected_revision: int | None = None,
    ) -> ParameterUpdate:
        """Recalculate with new parameters; pass the revision the caller edited from to detect lost updates."""
        result: list[ParameterUpdate] = []

        def change(q: Quotation) -> Quotation:
            update = apply_parameters(q, parameters)
            result.append(update)
            return update.quotation

        stored = self._edit(quotation_id, version, change, expected_revision=expected_revision)
        update = result[0]
        return ParameterUpdate(quotation=stored, changes=update.changes, triggers=update.triggers)

    def create_new_version(self, quotation_id: str) -> Quotation:
        source = self.get(quotation_id)
        stored = self._store.save(new_version(source), expected_revision=None)
        return stored

    def _edit(
        self,
        quotation_id: str,
        version: int,
        change: Callable[[Quotation], Quotation],
        *,
        expected_revision: int | None = None,
    ) -> Quotation:
        set_correlation_id(uuid.uuid4().hex)
        try:
            loaded = self.get(quotation_id, version)
            if expected_revision is None:
                expected_revision = loaded.revision
            return self._store.save(change(loaded), expected_revision=expected_revision)
        finally:
            set_correlation_id(None)


__all__ = ["QuotationNotFound", "QuotationService"]
