from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Protocol

from .errors import StaleVersion
from .models.quotation import Quotation

logger = logging.getLogger(__name__)


class QuotationStore(Protocol):
    def get(self, quotation_id: str, version: int) -> Quotation | None:
        ...

    def latest_version(self, quotation_id: str) -> int | None:
        ...

    def save(self, quotation: Quotation, *, expected_revision: int | None) -> Quotation:
        """Write ``quotation`` if the stored revision still equals ``expected_revision``.

        ``None`` means the record must not exist yet. Returns the stored tree
        with its revision advanced by one; raises :class:`StaleVersion` otherwise.
        """
        ...


class InMemoryQuotationStore:
    def __init__(self) -> None:
        self._records: Dict[tuple[str, int], Quotation] = {}
        self._lock = threading.Lock()

    def get(self, quotation_id: str, version: int) -> Quotation | None:
        with self._lock:
            record = self._records.get((quotation_id, version))
            return record.model_copy(deep=True) if record else None

    def latest_version(self, quotation_id: str) -> int | None:
        with self._lock:
            versions = [version for (qid, version) in self._records if qid == quotation_id]
            return max(versions) if versions else None

    def save(self, quotation: Quotation, *, expected_revision: int | None) -> Quotation:
        key = (quotation.id, quotation.version)
        with self._lock:
            current = self._records.get(key)
            actual = current.revision if current else None
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
                update={"revision": (actual or 0) + 1, "updated_at": datetime.now(timezone.utc)},
                deep=True,
            )
            self._records[key] = stored
            return stored.model_copy(deep=True)


__all__ = ["InMemoryQuotationStore", "QuotationStore"]
