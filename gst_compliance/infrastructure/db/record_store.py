# gst_compliance/infrastructure/db/record_store.py
"""
Generic record store consumed by the engine.

The engine never assumes a storage technology; it needs only
get / create / update / query plus a compare-and-set used for counters.
Stores that can increment a field server-side also implement
``AtomicIncrementStore``. ``InMemoryRecordStore`` is the reference
implementation used in tests and sandbox runs.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from gst_compliance.core.errors import DuplicateRecordError

Record = dict[str, Any]
Filter = dict[str, Any]


class RecordStore(Protocol):
    async def get(self, collection: str, record_id: str) -> Record | None: ...

    async def create(self, collection: str, record: Record) -> Record: ...

    async def update(self, collection: str, record_id: str, partial: Record) -> Record: ...

    async def query(
        self,
        collection: str,
        filter: Filter | None = None,
        sort: str | None = None,
    ) -> list[Record]: ...

    async def compare_and_set(
        self,
        collection: str,
        record_id: str,
        field: str,
        expected: Any,
        new: Any,
    ) -> bool: ...


@runtime_checkable
class AtomicIncrementStore(Protocol):
    async def increment(
        self,
        collection: str,
        match: Filter,
        field: str,
        defaults: Record | None = None,
    ) -> int:
        """Add 1 to ``field`` of the record matching ``match`` in one step,
        creating it at 1 (with ``defaults``) if absent. Returns the new value."""
        ...


def _matches(record: Record, flt: Filter) -> bool:
    """
    Filter keys are ``field`` (equality) or ``field__op`` with op in
    ``gte``, ``lte``, ``in``.
    """
    for key, expected in flt.items():
        name, _, op = key.partition("__")
        value = record.get(name)
        if op == "":
            if value != expected:
                return False
        elif op == "gte":
            if value is None or value < expected:
                return False
        elif op == "lte":
            if value is None or value > expected:
                return False
        elif op == "in":
            if value not in expected:
                return False
        else:
            raise ValueError(f"unsupported filter operator: {op}")
    return True


def _sort_key(field: str) -> Callable[[Record], Any]:
    return lambda r: (r.get(field) is None, r.get(field))


class InMemoryRecordStore:
    """
    Dict-backed store. Every operation yields to the event loop first so
    that concurrent callers interleave the way they would against a real
    network store. ``increment`` runs under an ``asyncio.Lock``.
    """

    def __init__(self, unique_keys: dict[str, str] | None = None) -> None:
        self._data: dict[str, dict[str, Record]] = {}
        self._unique_keys = unique_keys or {"number_sequences": "name"}
        self._lock = asyncio.Lock()

    def _collection(self, name: str) -> dict[str, Record]:
        return self._data.setdefault(name, {})

    async def get(self, collection: str, record_id: str) -> Record | None:
        await asyncio.sleep(0)
        record = self._collection(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def create(self, collection: str, record: Record) -> Record:
        await asyncio.sleep(0)
        rows = self._collection(collection)
        unique = self._unique_keys.get(collection)
        if unique is not None:
            if any(r.get(unique) == record.get(unique) for r in rows.values()):
                raise DuplicateRecordError(
                    f"{collection}.{unique}={record.get(unique)!r} already exists"
                )
        stored = copy.deepcopy(record)
        stored.setdefault("id", uuid.uuid4().hex)
        rows[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def update(self, collection: str, record_id: str, partial: Record) -> Record:
        await asyncio.sleep(0)
        rows = self._collection(collection)
        if record_id not in rows:
            raise KeyError(f"{collection}/{record_id} not found")
        rows[record_id].update(copy.deepcopy(partial))
        return copy.deepcopy(rows[record_id])

    async def query(
        self,
        collection: str,
        filter: Filter | None = None,
        sort: str | None = None,
    ) -> list[Record]:
        await asyncio.sleep(0)
        rows: Iterable[Record] = self._collection(collection).values()
        found = [copy.deepcopy(r) for r in rows if _matches(r, filter or {})]
        if sort:
            descending = sort.startswith("-")
            found.sort(key=_sort_key(sort.lstrip("-")), reverse=descending)
        return found

    async def compare_and_set(
        self,
        collection: str,
        record_id: str,
        field: str,
        expected: Any,
        new: Any,
    ) -> bool:
        await asyncio.sleep(0)
        # No await between the check and the write: atomic on the event loop.
        record = self._collection(collection).get(record_id)
        if record is None or record.get(field) != expected:
            return False
        record[field] = new
        return True

    async def increment(
        self,
        collection: str,
        match: Filter,
        field: str,
        defaults: Record | None = None,
    ) -> int:
        async with self._lock:
            await asyncio.sleep(0)
            rows = self._collection(collection)
            for record in rows.values():
                if _matches(record, match):
                    record[field] = int(record.get(field) or 0) + 1
                    return record[field]
            stored = {**copy.deepcopy(defaults or {}), **copy.deepcopy(match), field: 1}
            stored.setdefault("id", uuid.uuid4().hex)
            rows[stored["id"]] = stored
            return 1
