"""Per-batch memo tables shared by the resolvers."""

from __future__ import annotations

from collections.abc import Hashable
from typing import Generic, TypeVar

from ticket_importer.models.ticket import Ticket

T = TypeVar("T")


class InsertOnceCache(Generic[T]):
    """Write-once mapping: the first value stored for a key wins."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, T] = {}

    def get(self, key: Hashable) -> T | None:
        return self._entries.get(key)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def insert_if_absent(self, key: Hashable, value: T) -> T:
        return self._entries.setdefault(key, value)


class ReferenceCache(InsertOnceCache[object]):
    """(reference kind, lookup key) -> resolved store identity."""


class UniqueValueCache(InsertOnceCache[Ticket]):
    """Unique-field value as written in the row -> ticket produced this batch."""
