from __future__ import annotations

import logging
from datetime import datetime, timezone

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .errors import CounterUnavailable, StaleVersion
from .models.quotation import Quotation

logger = logging.getLogger(__name__)


class FirestoreQuotationStore:
    """Firestore-backed quotation store for production use.

    One document per quotation version; writes are compare-and-set on the
    stored ``revision`` inside a transaction.
    """

    COLLECTION_NAME = "quotations"

    def __init__(self, project_id: str | None = None, *, client: firestore.Client | None = None) -> None:
        self._db = client or firestore.Client(project=project_id)
        self._collection = self._db.collection(self.COLLECTION_NAME)

    def get(self, quotation_id: str, version: int) -> Quotation | None:
        doc = self._collection.document(self._document_id(quotation_id, version)).get()
        if not doc.exists:
            return None
        return self._from_firestore_dict(doc.to_dict())

    def latest_version(self, quotation_id: str) -> int | None:
        query = (
            self._collection.where(filter=FieldFilter("id", "==", quotation_id))
            .order_by("version", direction=firestore.Query.DESCENDING)
            .limit(1)
        )
        for doc in query.stream():
            return int(doc.to_dict()["version"])
        return None

    def save(self, quotation: Quotation, *, expected_revision: int | None) -> Quotation:
        doc_ref = self._collection.document(self._document_id(quotation.id, quotation.version))
        transaction = self._db.transaction()
        stored = _compare_and_set(transaction, doc_ref, quotation, expected_revision)
        logger.info(
            "Saved quotation",
            extra={"quotation_id": quotation.id, "version": quotation.version, "revision": stored.revision},
        )
        return stored

    @staticmethod
    def _document_id(quotation_id: str, version: int) -> str:
        return f"{quotation_id}_v{version}"

    @staticmethod
    def _to_firestore_dict(quotation: Quotation) -> dict:
        # JSON mode keeps Decimal amounts as exact strings.
        return quotation.model_dump(mode="json")

    @staticmethod
    def _from_firestore_dict(data: dict) -> Quotation:
        return Quotation.model_validate(data)


@firestore.transactional
def _compare_and_set(transaction, doc_ref, quotation: Quotation, expected_revision: int | None) -> Quotation:
    snapshot = doc_ref.get(transaction=transaction)
    actual = snapshot.to_dict().get("revision") if snapshot.exists else None
    if actual != expected_revision:
        logger.warning(
            "Rejected stale quotation write",
            extra={
                "quotation_id": quotation.id,
                "version": quotation.version,
                "expected_revision": expected_revision,
                "actual_revision": actual,
            },
        )
        raise StaleVersion(
            quotation.id,
            quotation.version,
            expected_revision=expected_revision,
            actual_revision=actual,
        )
    stored = quotation.model_copy(
        update={"revision": (actual or 0) + 1, "updated_at": datetime.now(timezone.utc)}
    )
    transaction.set(doc_ref, FirestoreQuotationStore._to_firestore_dict(stored))
    return stored


class FirestoreCounterStore:
    """Numbering counters, one document per scope and sequence type."""

    COLLECTION_NAME = "numbering_sequences"

    def __init__(self, project_id: str | None = None, *, client: firestore.Client | None = None) -> None:
        self._db = client or firestore.Client(project=project_id)
        self._collection = self._db.collection(self.COLLECTION_NAME)

    def increment(self, scope: str, sequence_type: str) -> int:
        doc_ref = self._collection.document(f"{scope.replace('/', ':')}__{sequence_type}")
        try:
            return _increment(self._db.transaction(), doc_ref, scope, sequence_type)
        except (google_exceptions.GoogleAPIError, ValueError) as exc:
            # ValueError: the transaction ran out of commit attempts under contention.
            raise CounterUnavailable(scope, sequence_type, str(exc)) from exc


@firestore.transactional
def _increment(transaction, doc_ref, scope: str, sequence_type: str) -> int:
    snapshot = doc_ref.get(transaction=transaction)
    current = int(snapshot.to_dict().get("current_value", 0)) if snapshot.exists else 0
    value = current + 1
    transaction.set(
        doc_ref,
        {
            "scope": scope,
            "sequence_type": sequence_type,
            "current_value": value,
            "updated_at": firestore.SERVER_TIMESTAMP,
        },
    )
    return value


__all__ = ["FirestoreCounterStore", "FirestoreQuotationStore"]
