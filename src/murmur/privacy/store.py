# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Participation storage for aggregation units.

The production system persists units in the web backend's database (and
encrypts content at rest there). The gate only needs the small
``ParticipationStore`` protocol; ``InMemoryParticipationStore`` is the
reference implementation used by tests and single-process deployments.

A contribution write and the read that follows it must agree: a submission
that pushes a unit to k is visible to the very next read. The in-memory
store guarantees this by updating and returning the unit under one lock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Protocol, runtime_checkable

from ..core.exceptions import NotFoundError, ValidationException
from .types import AggregationUnit, ContentItem, UnitKind


@dataclass(frozen=True)
class Contribution:
    """Result of recording one contribution.

    ``previous_count`` is read under the same lock as the write, so exactly
    one contribution ever sees a unit cross its threshold.
    """

    unit: AggregationUnit
    previous_count: int

    @property
    def crossed_threshold(self) -> bool:
        return self.previous_count < self.unit.k_threshold <= self.unit.participant_count


@runtime_checkable
class ParticipationStore(Protocol):
    """Protocol for aggregation unit storage."""

    def create_unit(
        self,
        unit_id: str,
        org_id: str,
        k_threshold: int,
        kind: UnitKind = UnitKind.THREAD,
        topic: str | None = None,
    ) -> AggregationUnit:
        """Create an empty unit, or return the existing one."""
        ...

    def get_unit(self, unit_id: str) -> AggregationUnit:
        """Get a unit by id.

        Raises:
            NotFoundError: If the unit doesn't exist.
        """
        ...

    def record_contribution(self, unit_id: str, item: ContentItem) -> Contribution:
        """Store a sanitized item and return the updated unit with its previous count."""
        ...

    def get_items(self, unit_id: str) -> list[ContentItem]:
        """Get the sanitized items of a unit, oldest first."""
        ...

    def list_units(self, org_id: str | None = None) -> list[AggregationUnit]:
        """List units, optionally for one org."""
        ...

    def distinct_handles(self, org_id: str) -> int:
        """Count distinct handles across every unit of an org."""
        ...


class InMemoryParticipationStore:
    """In-memory participation store.

    Thread-safe but not persistent - data lost on restart. Participant
    counts are the number of distinct handles per unit and never decrease.
    """

    def __init__(self) -> None:
        self._units: dict[str, AggregationUnit] = {}
        self._handles: dict[str, set[str]] = {}
        self._items: dict[str, list[ContentItem]] = {}
        self._lock = threading.Lock()

    def create_unit(
        self,
        unit_id: str,
        org_id: str,
        k_threshold: int,
        kind: UnitKind = UnitKind.THREAD,
        topic: str | None = None,
    ) -> AggregationUnit:
        if not unit_id:
            raise ValidationException("unit_id is required", field="unit_id")
        with self._lock:
            existing = self._units.get(unit_id)
            if existing is not None:
                if existing.org_id != org_id:
                    raise ValidationException("unit belongs to another org", field="unit_id", value=unit_id)
                return existing
            unit = AggregationUnit(
                id=unit_id,
                org_id=org_id,
                kind=kind,
                k_threshold=k_threshold,
                topic=topic,
            )
            self._units[unit_id] = unit
            self._handles[unit_id] = set()
            self._items[unit_id] = []
            return unit

    def get_unit(self, unit_id: str) -> AggregationUnit:
        with self._lock:
            unit = self._units.get(unit_id)
        if unit is None:
            raise NotFoundError("AggregationUnit", unit_id)
        return unit

    def record_contribution(self, unit_id: str, item: ContentItem) -> Contribution:
        with self._lock:
            unit = self._units.get(unit_id)
            if unit is None:
                raise NotFoundError("AggregationUnit", unit_id)
            previous = unit.participant_count
            handles = self._handles[unit_id]
            handles.add(item.handle)
            if item.topic is None and unit.topic is not None:
                item = replace(item, topic=unit.topic)
            self._items[unit_id].append(item)
            if len(handles) != unit.participant_count:
                unit = unit.with_participant_count(len(handles))
                self._units[unit_id] = unit
            return Contribution(unit=unit, previous_count=previous)

    def get_items(self, unit_id: str) -> list[ContentItem]:
        with self._lock:
            if unit_id not in self._items:
                raise NotFoundError("AggregationUnit", unit_id)
            return list(self._items[unit_id])

    def list_units(self, org_id: str | None = None) -> list[AggregationUnit]:
        with self._lock:
            units = list(self._units.values())
        if org_id is None:
            return units
        return [unit for unit in units if unit.org_id == org_id]

    def distinct_handles(self, org_id: str) -> int:
        with self._lock:
            seen: set[str] = set()
            for unit_id, unit in self._units.items():
                if unit.org_id == org_id:
                    seen |= self._handles[unit_id]
            return len(seen)
