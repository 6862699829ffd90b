"""Diff types produced by one reconciliation cycle."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from carechain.domain.model import EMERGENCY_COUNTER

if TYPE_CHECKING:
    from enum import StrEnum

    from carechain.domain.model import Address, CollectionKind, Entity


@dataclass(frozen=True, slots=True)
class StatusTransition:
    """An entity observed in both snapshots whose status changed."""

    entity_id: Hashable
    previous: StrEnum
    current: StrEnum
    subject: Entity


@dataclass(frozen=True, slots=True)
class Arrival:
    """An entity whose identity was absent from the previous snapshot."""

    entity_id: Hashable
    subject: Entity


@dataclass(frozen=True, slots=True)
class CountIncrease:
    counter: str
    previous: int
    current: int

    @property
    def delta(self) -> int:
        return self.current - self.previous


@dataclass(frozen=True, slots=True, kw_only=True)
class CollectionDiff:
    """Changes between the stored snapshot and a fresh fetch.

    ``baseline`` marks the first successful fetch: no prior state existed, so the
    diff carries no transitions, arrivals or count increases.
    """

    kind: CollectionKind
    owner: Address
    baseline: bool = False
    transitions: tuple[StatusTransition, ...] = ()
    arrivals: tuple[Arrival, ...] = ()
    count_increases: tuple[CountIncrease, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.transitions or self.arrivals or self.count_increases)
