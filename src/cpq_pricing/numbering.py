from __future__ import annotations

import logging
import re
import threading
import time
from enum import Enum
from typing import Callable, Dict, Protocol

from pydantic import BaseModel, Field

from .errors import CounterUnavailable

logger = logging.getLogger(__name__)

_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


class SequenceType(str, Enum):
    project = "project"
    quotation = "quotation"


class NumberingConfig(BaseModel):
    project_prefix: str = "PRJ"
    quotation_prefix: str = "QT"
    padding: int = Field(default=4, ge=1, le=10)
    separator: str = "-"


class CounterStore(Protocol):
    def increment(self, scope: str, sequence_type: str) -> int:
        """Atomically add one to the counter and return the new value."""
        ...


class InMemoryCounterStore:
    def __init__(self) -> None:
        self._counters: Dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def increment(self, scope: str, sequence_type: str) -> int:
        with self._lock:
            key = (scope, sequence_type)
            value = self._counters.get(key, 0) + 1
            self._counters[key] = value
            return value


class NumberSequencer:
    """Formats counter values into project and quotation numbers.

    Numbering is best effort: when the counter store is unavailable a
    timestamp-based number is returned instead of failing.
    """

    def __init__(
        self,
        store: CounterStore,
        config: NumberingConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config or NumberingConfig()
        self._clock = clock

    @property
    def config(self) -> NumberingConfig:
        return self._config

    def next(self, scope: str, sequence_type: SequenceType | str, *, project_number: str | None = None) -> str:
        sequence_type = SequenceType(sequence_type)
        if sequence_type is SequenceType.project:
            return self.next_project_number(scope)
        return self.next_quotation_number(scope, project_number)

    def next_project_number(self, scope: str) -> str:
        prefix = self._config.project_prefix
        return self._allocate(scope, SequenceType.project.value, prefix)

    def next_quotation_number(self, scope: str, project_number: str | None = None) -> str:
        cfg = self._config
        if project_number:
            # Quotation counters run per project.
            counter_scope = f"{scope}/{project_number}"
            prefix = f"{project_number}{cfg.separator}{cfg.quotation_prefix}"
        else:
            counter_scope = scope
            prefix = cfg.quotation_prefix
        return self._allocate(counter_scope, SequenceType.quotation.value, prefix)

    def _allocate(self, scope: str, sequence_type: str, prefix: str) -> str:
        cfg = self._config
        try:
            value = self._store.increment(scope, sequence_type)
        except Exception as exc:
            # Any backing store failure degrades to a fallback number.
            fallback = f"{prefix}{cfg.separator}{int(self._clock() * 1000)}"
            logger.warning(
                "Counter unavailable, using fallback number",
                extra={"scope": scope, "sequence_type": sequence_type, "number": fallback, "error": str(exc)},
                exc_info=not isinstance(exc, CounterUnavailable),
            )
            return fallback
        number = f"{prefix}{cfg.separator}{value:0{cfg.padding}d}"
        logger.info("Allocated number", extra={"scope": scope, "sequence_type": sequence_type, "number": number})
        return number


def validate_numbering_config(config: NumberingConfig) -> list[str]:
    problems: list[str] = []
    if not config.project_prefix:
        problems.append("Project prefix cannot be empty")
    elif not _PREFIX_PATTERN.match(config.project_prefix):
        problems.append("Project prefix can only contain letters and numbers")
    if not config.quotation_prefix:
        problems.append("Quotation prefix cannot be empty")
    elif not _PREFIX_PATTERN.match(config.quotation_prefix):
        problems.append("Quotation prefix can only contain letters and numbers")
    if not 1 <= config.padding <= 10:
        problems.append("Padding must be between 1 and 10 digits")
    return problems


def preview_numbers(config: NumberingConfig) -> dict[str, str]:
    first = "1".zfill(config.padding)
    project = f"{config.project_prefix}{config.separator}{first}"
    quotation = f"{project}{config.separator}{config.quotation_prefix}{config.separator}{first}"
    return {"project": project, "quotation": quotation}


__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "NumberSequencer",
    "NumberingConfig",
    "SequenceType",
    "preview_numbers",
    "validate_numbering_config",
]
