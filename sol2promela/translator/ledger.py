"""Abstraction ledger — append-only record of every approximation.

The ledger is an explicit accumulator: every stage receives it as an
argument and hands it back. Nothing in the engine keeps one in module
state.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterator

from sol2promela.core.types import AbstractionCategory, AbstractionRecord, Location

logger = logging.getLogger(__name__)


class AbstractionLedger:
    """Ordered, append-only sequence of ``AbstractionRecord``."""

    def __init__(self) -> None:
        self._records: list[AbstractionRecord] = []

    def append(
        self,
        location: Location,
        category: AbstractionCategory,
        description: str,
    ) -> AbstractionRecord:
        record = AbstractionRecord(
            source_location=location,
            category=category,
            description=description,
        )
        self._records.append(record)
        logger.debug(
            "abstraction %s at %s: %s",
            category.value, location, description,
            extra={"category": category.value, "ledger_size": len(self._records)},
        )
        return record

    @property
    def records(self) -> tuple[AbstractionRecord, ...]:
        return tuple(self._records)

    def by_category(self, category: AbstractionCategory) -> list[AbstractionRecord]:
        return [r for r in self._records if r.category == category]

    def counts(self) -> dict[str, int]:
        return dict(Counter(r.category.value for r in self._records))

    def to_report(self) -> list[dict[str, Any]]:
        """Ordered report for an external renderer."""
        return [
            {
                "source_location": str(r.source_location),
                "category": r.category.value,
                "description": r.description,
            }
            for r in self._records
        ]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AbstractionRecord]:
        return iter(tuple(self._records))

    def __bool__(self) -> bool:
        # An empty ledger is still a ledger
        return True
