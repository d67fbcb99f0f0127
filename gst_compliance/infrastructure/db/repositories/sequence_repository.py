# gst_compliance/infrastructure/db/repositories/sequence_repository.py
"""Atomic counters behind the document sequencer."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gst_compliance.core.errors import DuplicateRecordError, StoreUnavailableError
from gst_compliance.infrastructure.db.models import NumberSequence
from gst_compliance.infrastructure.db.record_store import AtomicIncrementStore, RecordStore

logger = logging.getLogger("sequence_repository")

SEQUENCES_COLLECTION = "number_sequences"


class SequenceRepository:
    """
    PostgreSQL counter. The whole read-increment-write is a single
    upsert statement, so concurrent callers can never observe the same value.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def increment(self, name: str, *, prefix: str, padding: int) -> int:
        stmt = (
            insert(NumberSequence)
            .values(name=name, prefix=prefix, current_value=1, padding=padding)
            .on_conflict_do_update(
                index_elements=[NumberSequence.name],
                set_={
                    "current_value": NumberSequence.current_value + 1,
                    "updated_at": func.now(),
                },
            )
            .returning(NumberSequence.current_value)
        )
        try:
            result = await self.db.execute(stmt)
            value = result.scalar_one()
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StoreUnavailableError(f"counter {name} unavailable: {exc}") from exc
        return int(value)


class RecordStoreCounter:
    """
    Counter over a generic ``RecordStore``.

    Stores offering an atomic ``increment`` are used directly. Otherwise the
    counter falls back to compare-and-set: a lost race sleeps for a jittered,
    growing delay and retries against the fresh value. Only after
    ``max_attempts`` consecutive losses is the store reported unavailable.
    """

    def __init__(
        self,
        store: RecordStore,
        max_attempts: int = 100,
        backoff_seconds: float = 0.001,
        max_backoff_seconds: float = 0.05,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._sleep = sleep

    async def increment(self, name: str, *, prefix: str, padding: int) -> int:
        try:
            if isinstance(self.store, AtomicIncrementStore):
                return await self.store.increment(
                    SEQUENCES_COLLECTION,
                    {"name": name},
                    "current_value",
                    {"prefix": prefix, "padding": padding},
                )
            return await self._compare_and_set_loop(name, prefix=prefix, padding=padding)
        except StoreUnavailableError:
            raise
        except (ConnectionError, TimeoutError, OSError) as exc:
            raise StoreUnavailableError(f"counter {name} unavailable: {exc}") from exc

    async def _compare_and_set_loop(self, name: str, *, prefix: str, padding: int) -> int:
        for attempt in range(1, self.max_attempts + 1):
            rows = await self.store.query(SEQUENCES_COLLECTION, {"name": name})
            if not rows:
                try:
                    await self.store.create(
                        SEQUENCES_COLLECTION,
                        {"name": name, "prefix": prefix, "current_value": 1, "padding": padding},
                    )
                    return 1
                except DuplicateRecordError:
                    # Someone else created the row first; increment it instead.
                    continue

            row = rows[0]
            current = int(row.get("current_value") or 0)
            swapped = await self.store.compare_and_set(
                SEQUENCES_COLLECTION, row["id"], "current_value", row.get("current_value"), current + 1
            )
            if swapped:
                return current + 1
            logger.debug("counter %s conflict on attempt %d", name, attempt)
            await self._sleep(self._backoff(attempt))

        raise StoreUnavailableError(
            f"counter {name} made no progress after {self.max_attempts} attempts"
        )

    def _backoff(self, attempt: int) -> float:
        ceiling = min(self.max_backoff_seconds, self.backoff_seconds * (2 ** min(attempt, 10)))
        return random.uniform(0, ceiling)
