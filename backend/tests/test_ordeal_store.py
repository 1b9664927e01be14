"""
Everything Is An Ordeal: Ordeal Store Tests
==============================================

What:  Runs the same behavioural checks against both OrdealStore backends.
How:   The `store` fixture is parametrized over InMemoryOrdealStore and a
       SqlOrdealStore on a temporary SQLite file (aiosqlite).

What we test:
    ✅ Insert starts at 0 hits; find returns it
    ✅ Duplicate keys resolve to the oldest row for every operation
    ✅ increment_hits writes captured value + 1 (not a relative +1)
    ✅ Delete returns the removed record, and None for a missing key
    ✅ Leaderboard ordering, ties, and limit
    ✅ Sum of hits (0 for an empty store)
    ✅ SQL failures surface as DatabaseError
"""

import pytest
import pytest_asyncio

from eiao.database import Database
from eiao.exceptions import DatabaseError
from eiao.services.ordeal_store import InMemoryOrdealStore, SqlOrdealStore


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryOrdealStore()
        return
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await database.create_all()
    sql = SqlOrdealStore(database)
    yield sql
    await sql.close()


class TestInsertAndFind:

    @pytest.mark.asyncio
    async def test_insert_starts_at_zero(self, store):
        record = await store.insert("cats", "p-cats1.png")
        assert record.path == "cats"
        assert record.image_name == "p-cats1.png"
        assert record.hits == 0

        found = await store.find_by_path("cats")
        assert found == record

    @pytest.mark.asyncio
    async def test_find_missing(self, store):
        assert await store.find_by_path("nothing") is None

    @pytest.mark.asyncio
    async def test_empty_key_is_a_key(self, store):
        await store.insert("", "p-blank1.png")
        found = await store.find_by_path("")
        assert found is not None
        assert found.image_name == "p-blank1.png"

    @pytest.mark.asyncio
    async def test_duplicates_resolve_to_oldest(self, store):
        await store.insert("dup", "p-first.png")
        await store.insert("dup", "p-second.png")

        assert (await store.find_by_path("dup")).image_name == "p-first.png"

        await store.increment_hits("dup", 0)
        rows = await store.list_all()
        assert [(r.image_name, r.hits) for r in rows] == [("p-first.png", 1), ("p-second.png", 0)]

        removed = await store.delete_by_path("dup")
        assert removed.image_name == "p-first.png"
        assert (await store.find_by_path("dup")).image_name == "p-second.png"


class TestIncrement:

    @pytest.mark.asyncio
    async def test_writes_captured_plus_one(self, store):
        await store.insert("cats", "p-cats.png")
        await store.increment_hits("cats", 0)
        await store.increment_hits("cats", 0)
        # Both writers saw 0: the second overwrites with the same value
        assert (await store.find_by_path("cats")).hits == 1

        await store.increment_hits("cats", 41)
        assert (await store.find_by_path("cats")).hits == 42

    @pytest.mark.asyncio
    async def test_missing_key_is_a_no_op(self, store):
        await store.increment_hits("ghost", 3)
        assert await store.find_by_path("ghost") is None


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_returns_record(self, store):
        await store.insert("cats", "p-cats.png")
        removed = await store.delete_by_path("cats")
        assert removed.path == "cats"
        assert removed.image_name == "p-cats.png"
        assert await store.find_by_path("cats") is None

    @pytest.mark.asyncio
    async def test_delete_missing_returns_none(self, store):
        assert await store.delete_by_path("ghost") is None


class TestAggregates:

    @pytest.mark.asyncio
    async def test_sum_of_empty_store_is_zero(self, store):
        assert await store.sum_all_hits() == 0

    @pytest.mark.asyncio
    async def test_sum_and_leaderboard(self, store):
        for i in range(12):
            await store.insert(f"o{i}", f"p-o{i}.png")
            await store.increment_hits(f"o{i}", i - 1)  # hits = i

        assert await store.sum_all_hits() == sum(range(12))

        top = await store.list_top_by_hits(10)
        assert len(top) == 10
        assert [r.hits for r in top] == list(range(11, 1, -1))

    @pytest.mark.asyncio
    async def test_leaderboard_ties_keep_insertion_order(self, store):
        await store.insert("a", "p-a.png")
        await store.insert("b", "p-b.png")
        await store.insert("c", "p-c.png")
        await store.increment_hits("c", 4)

        top = await store.list_top_by_hits(10)
        assert [r.path for r in top] == ["c", "a", "b"]

    @pytest.mark.asyncio
    async def test_list_all_in_insertion_order(self, store):
        for key in ("x", "y", "z"):
            await store.insert(key, f"p-{key}.png")
        assert [r.path for r in await store.list_all()] == ["x", "y", "z"]


class TestSqlFailures:

    @pytest.mark.asyncio
    async def test_missing_table_raises_database_error(self, tmp_path):
        """No create_all(): every query fails and is wrapped."""
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        store = SqlOrdealStore(database)
        try:
            with pytest.raises(DatabaseError) as exc_info:
                await store.find_by_path("cats")
            assert exc_info.value.context["operation"] == "find_by_path"
            assert exc_info.value.context["key"] == "cats"
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_ping(self, sql_store):
        await sql_store.ping()
