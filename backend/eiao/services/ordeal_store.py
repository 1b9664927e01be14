"""
Everything Is An Ordeal: Ordeal Store
========================================

What:  Persistence interface for ordeals plus its two implementations.
How:   `OrdealStore` defines the contract; `SqlOrdealStore` runs each
       operation as one transaction on async SQLAlchemy; `InMemoryOrdealStore`
       keeps rows in a list for tests and local experiments.
Who:   Injected into OrdealService and HitCounter by the application factory.

Contract shared by all implementations:
    - No operation spans more than one transaction.
    - Paths are not unique. When several rows share a path, the oldest one
      (first inserted) is the one found, incremented and deleted.
    - Every backing-store failure surfaces as DatabaseError.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

from sqlalchemy import func, select, update

from eiao.database import Database
from eiao.exceptions import DatabaseError, OrdealError
from eiao.models.ordeal import Ordeal
from eiao.schemas.ordeal import OrdealRecord

logger = logging.getLogger(__name__)


class OrdealStore(ABC):
    """
    Abstract interface for ordeal persistence.

    Implementations:
        - SqlOrdealStore: PostgreSQL or SQLite through async SQLAlchemy
        - InMemoryOrdealStore: process-local list, no durability
    """

    @abstractmethod
    async def find_by_path(self, key: str) -> Optional[OrdealRecord]:
        """Return the oldest ordeal stored under `key`, or None."""
        ...

    @abstractmethod
    async def insert(self, key: str, image_name: str) -> OrdealRecord:
        """
        Store a new ordeal with hits = 0.

        Does not look for an existing ordeal at `key`; a second insert for the
        same key creates a second row, which lookups never reach.
        """
        ...

    @abstractmethod
    async def increment_hits(self, key: str, current_hits: int) -> None:
        """
        Write `current_hits + 1` as the hit count of the ordeal at `key`.

        This is a blind write of a value computed from an earlier read, not an
        atomic increment: two callers holding the same `current_hits` both
        write the same value.
        """
        ...

    @abstractmethod
    async def delete_by_path(self, key: str) -> Optional[OrdealRecord]:
        """Remove the ordeal at `key` and return it, or None if there was none."""
        ...

    @abstractmethod
    async def list_all(self) -> List[OrdealRecord]:
        """Every ordeal, in insertion order."""
        ...

    @abstractmethod
    async def list_top_by_hits(self, n: int) -> List[OrdealRecord]:
        """At most `n` ordeals, hits descending, ties in insertion order."""
        ...

    @abstractmethod
    async def sum_all_hits(self) -> int:
        """Sum of hits over all ordeals; 0 when there are none."""
        ...

    async def ping(self) -> None:
        """Raise if the backing store is unreachable."""
        return None

    async def close(self) -> None:
        """Release resources held by the store."""
        return None


# ══════════════════════════════════════════════════════════════════════════
# SQL implementation
# ══════════════════════════════════════════════════════════════════════════

class SqlOrdealStore(OrdealStore):
    """
    OrdealStore backed by async SQLAlchemy.

    Each public method opens its own session through Database.session(), so
    each is exactly one transaction. Failures are logged with the operation
    name and re-raised as DatabaseError.
    """

    def __init__(self, database: Database):
        self.database = database

    @asynccontextmanager
    async def _operation(self, name: str, key: Optional[str] = None) -> AsyncGenerator:
        try:
            async with self.database.session() as session:
                yield session
        except OrdealError:
            raise
        except Exception as e:
            logger.error("Store operation %s failed (key=%r): %s", name, key, str(e))
            raise DatabaseError(
                context={"operation": name, "key": key, "error_type": type(e).__name__},
            ) from e

    @staticmethod
    def _first_for_path(key: str):
        return select(Ordeal).where(Ordeal.path == key).order_by(Ordeal.id).limit(1)

    async def find_by_path(self, key: str) -> Optional[OrdealRecord]:
        async with self._operation("find_by_path", key) as session:
            result = await session.execute(self._first_for_path(key))
            row = result.scalar_one_or_none()
            return OrdealRecord.model_validate(row) if row is not None else None

    async def insert(self, key: str, image_name: str) -> OrdealRecord:
        async with self._operation("insert", key) as session:
            row = Ordeal(path=key, image_name=image_name, hits=0)
            session.add(row)
            await session.flush()
            logger.info("Ordeal inserted: %r (id=%s)", key, row.id)
            return OrdealRecord.model_validate(row)

    async def increment_hits(self, key: str, current_hits: int) -> None:
        async with self._operation("increment_hits", key) as session:
            first_id = self._first_for_path(key).with_only_columns(Ordeal.id).scalar_subquery()
            await session.execute(
                update(Ordeal)
                .where(Ordeal.id == first_id)
                .values(hits=current_hits + 1)
                .execution_options(synchronize_session=False)
            )

    async def delete_by_path(self, key: str) -> Optional[OrdealRecord]:
        async with self._operation("delete_by_path", key) as session:
            result = await session.execute(self._first_for_path(key))
            row = result.scalar_one_or_none()
            if row is None:
                return None
            record = OrdealRecord.model_validate(row)
            await session.delete(row)
            return record

    async def list_all(self) -> List[OrdealRecord]:
        async with self._operation("list_all") as session:
            result = await session.execute(select(Ordeal).order_by(Ordeal.id))
            return [OrdealRecord.model_validate(row) for row in result.scalars().all()]

    async def list_top_by_hits(self, n: int) -> List[OrdealRecord]:
        async with self._operation("list_top_by_hits") as session:
            result = await session.execute(
                select(Ordeal).order_by(Ordeal.hits.desc(), Ordeal.id).limit(n)
            )
            return [OrdealRecord.model_validate(row) for row in result.scalars().all()]

    async def sum_all_hits(self) -> int:
        async with self._operation("sum_all_hits") as session:
            result = await session.execute(select(func.coalesce(func.sum(Ordeal.hits), 0)))
            return int(result.scalar() or 0)

    async def ping(self) -> None:
        await self.database.ping()

    async def close(self) -> None:
        await self.database.dispose()


# ══════════════════════════════════════════════════════════════════════════
# In-memory implementation
# ══════════════════════════════════════════════════════════════════════════

class InMemoryOrdealStore(OrdealStore):
    """
    OrdealStore holding records in a Python list (insertion order).

    Follows the same duplicate and ordering rules as SqlOrdealStore. Records
    are copied on the way in and out so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._rows: List[OrdealRecord] = []

    def _first_index(self, key: str) -> Optional[int]:
        for index, row in enumerate(self._rows):
            if row.path == key:
                return index
        return None

    async def find_by_path(self, key: str) -> Optional[OrdealRecord]:
        index = self._first_index(key)
        return self._rows[index].model_copy() if index is not None else None

    async def insert(self, key: str, image_name: str) -> OrdealRecord:
        record = OrdealRecord(path=key, image_name=image_name, hits=0)
        self._rows.append(record)
        return record.model_copy()

    async def increment_hits(self, key: str, current_hits: int) -> None:
        index = self._first_index(key)
        if index is not None:
            self._rows[index] = self._rows[index].model_copy(update={"hits": current_hits + 1})

    async def delete_by_path(self, key: str) -> Optional[OrdealRecord]:
        index = self._first_index(key)
        if index is None:
            return None
        return self._rows.pop(index)

    async def list_all(self) -> List[OrdealRecord]:
        return [row.model_copy() for row in self._rows]

    async def list_top_by_hits(self, n: int) -> List[OrdealRecord]:
        # sorted() is stable, so ties keep insertion order
        ranked = sorted(self._rows, key=lambda row: row.hits, reverse=True)
        return [row.model_copy() for row in ranked[:n]]

    async def sum_all_hits(self) -> int:
        return sum(row.hits for row in self._rows)
