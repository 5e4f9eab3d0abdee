"""Tests for the atomic counter store."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pymongo.errors import (
    AutoReconnect,
    DuplicateKeyError,
    ExecutionTimeout,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from autocount.core.modules.counter.models import make_counter_id, split_counter_id
from autocount.errors import StoreUnavailableError

USER_ID = make_counter_id("User", "_id")


class RivalInsertCollection:
    """Collection whose insert_one loses to a concurrent creator.

    The document is written (as the other caller would) and then the
    duplicate key error that caller's win produces is raised.
    """

    def __init__(self, collection):
        self._collection = collection

    def __getattr__(self, name):
        return getattr(self._collection, name)

    async def insert_one(self, document):
        await self._collection.insert_one(document)
        raise DuplicateKeyError("E11000 duplicate key error")


class TestCounterIds:
    """Tests for counter id derivation."""

    def test_id_combines_entity_and_field(self):
        assert make_counter_id("User", "_id") == "User:_id"
        assert make_counter_id("User", "userId") == "User:userId"

    def test_split_restores_parts(self):
        assert split_counter_id("User:userId") == ("User", "userId")

    def test_split_keeps_colons_in_entity(self):
        assert split_counter_id("billing:Invoice:number") == ("billing:Invoice", "number")


class TestIncrementAndGet:
    """Tests for atomic allocation."""

    @pytest.mark.asyncio
    async def test_first_call_returns_start_at(self, counter_service):
        """Test that a fresh counter hands out start_at, not start_at + step."""
        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 0

    @pytest.mark.asyncio
    async def test_sequential_calls(self, counter_service):
        values = [await counter_service.increment_and_get(USER_ID, 1, 0) for _ in range(3)]
        assert values == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_custom_start_and_step(self, counter_service):
        values = [await counter_service.increment_and_get(USER_ID, 5, 3) for _ in range(3)]
        assert values == [3, 8, 13]

    @pytest.mark.asyncio
    async def test_negative_step_counts_down(self, counter_service):
        values = [await counter_service.increment_and_get(USER_ID, -1, 10) for _ in range(3)]
        assert values == [10, 9, 8]

    @pytest.mark.asyncio
    async def test_counters_are_independent(self, counter_service):
        other = make_counter_id("User", "userId")
        await counter_service.increment_and_get(USER_ID, 1, 0)
        await counter_service.increment_and_get(USER_ID, 1, 0)

        assert await counter_service.increment_and_get(other, 1, 0) == 0
        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_return_exact_set(self, counter_service):
        """Test that concurrent allocations produce every value exactly once.

        The in-memory store completes each operation without yielding, so this
        checks the gathered result set; the creation race is covered below.
        """
        values = await asyncio.gather(*(counter_service.increment_and_get(USER_ID, 2, 7) for _ in range(50)))

        assert len(set(values)) == 50
        assert sorted(values) == [7 + 2 * i for i in range(50)]

    @pytest.mark.asyncio
    async def test_lost_creation_race_increments_winner(self, counter_service, monkeypatch):
        """Test that losing the insert race falls back to incrementing the existing counter."""
        # Another process creates the counter between our increment attempt and our insert
        await counter_service.increment_and_get(USER_ID, 1, 0)
        original = counter_service._increment_existing
        calls = []

        async def racing_increment(counter_id, increment_by):
            calls.append(counter_id)
            if len(calls) == 1:
                return None
            return await original(counter_id, increment_by)

        monkeypatch.setattr(counter_service, "_increment_existing", racing_increment)

        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 1
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_duplicate_insert_increments_existing(self, counter_service):
        """Test that a DuplicateKeyError from insert_one is resolved by incrementing the rival's counter."""
        counter_service._collection = RivalInsertCollection(counter_service._collection)

        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 1

        record = await counter_service.get_record(USER_ID)
        assert record is not None
        assert record.value == 1

    @pytest.mark.asyncio
    async def test_record_is_persisted(self, counter_service):
        await counter_service.increment_and_get(USER_ID, 1, 4)
        await counter_service.increment_and_get(USER_ID, 1, 4)

        record = await counter_service.get_record(USER_ID)
        assert record is not None
        assert record.entity == "User"
        assert record.field == "_id"
        assert record.value == 5


class TestPeek:
    """Tests for previewing the next value."""

    @pytest.mark.asyncio
    async def test_absent_counter_returns_start_at(self, counter_service):
        assert await counter_service.peek(USER_ID, 1, 3) == 3
        assert await counter_service.get_record(USER_ID) is None

    @pytest.mark.asyncio
    async def test_peek_matches_next_allocation(self, counter_service):
        await counter_service.increment_and_get(USER_ID, 5, 0)
        preview = await counter_service.peek(USER_ID, 5, 0)

        assert preview == 5
        assert await counter_service.increment_and_get(USER_ID, 5, 0) == preview

    @pytest.mark.asyncio
    async def test_peek_does_not_consume(self, counter_service):
        await counter_service.increment_and_get(USER_ID, 1, 0)
        await counter_service.peek(USER_ID, 1, 0)
        await counter_service.peek(USER_ID, 1, 0)

        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 1


class TestReset:
    """Tests for rewinding counters."""

    @pytest.mark.asyncio
    async def test_reset_returns_start_at(self, counter_service):
        assert await counter_service.reset(USER_ID, 1, 3) == 3

    @pytest.mark.asyncio
    async def test_next_allocation_after_reset_is_start_at(self, counter_service):
        for _ in range(4):
            await counter_service.increment_and_get(USER_ID, 1, 3)

        await counter_service.reset(USER_ID, 1, 3)

        assert await counter_service.peek(USER_ID, 1, 3) == 3
        assert await counter_service.increment_and_get(USER_ID, 1, 3) == 3
        assert await counter_service.increment_and_get(USER_ID, 1, 3) == 4

    @pytest.mark.asyncio
    async def test_reset_creates_absent_counter(self, counter_service):
        await counter_service.reset(USER_ID, 2, 10)

        record = await counter_service.get_record(USER_ID)
        assert record is not None
        assert record.value == 8
        assert await counter_service.increment_and_get(USER_ID, 2, 10) == 10

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self, counter_service):
        await counter_service.increment_and_get(USER_ID, 1, 0)
        await counter_service.reset(USER_ID, 1, 0)
        once = await counter_service.get_record(USER_ID)
        await counter_service.reset(USER_ID, 1, 0)
        twice = await counter_service.get_record(USER_ID)

        assert once == twice
        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 0


class TestObserve:
    """Tests for moving counters past manually assigned values."""

    @pytest.mark.asyncio
    async def test_higher_value_raises_counter(self, counter_service):
        await counter_service.increment_and_get(USER_ID, 1, 0)

        assert await counter_service.observe(USER_ID, 41, 1, 0) == 41
        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 42

    @pytest.mark.asyncio
    async def test_lower_value_leaves_counter(self, counter_service):
        for _ in range(5):
            await counter_service.increment_and_get(USER_ID, 1, 0)

        assert await counter_service.observe(USER_ID, 2, 1, 0) == 4
        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 5

    @pytest.mark.asyncio
    async def test_descending_counter_uses_min(self, counter_service):
        await counter_service.increment_and_get(USER_ID, -1, 100)

        assert await counter_service.observe(USER_ID, 50, -1, 100) == 50
        assert await counter_service.increment_and_get(USER_ID, -1, 100) == 49

    @pytest.mark.asyncio
    async def test_absent_counter_is_created(self, counter_service):
        assert await counter_service.observe(USER_ID, 9, 1, 0) == 9

        record = await counter_service.get_record(USER_ID)
        assert record is not None
        assert record.entity == "User"
        assert await counter_service.increment_and_get(USER_ID, 1, 0) == 10

    @pytest.mark.asyncio
    async def test_absent_counter_below_start_keeps_start(self, counter_service):
        """Test that a manual value below start_at does not pull the first allocation down."""
        assert await counter_service.observe(USER_ID, 5, 1, 1000) == 999

        assert await counter_service.peek(USER_ID, 1, 1000) == 1000
        assert await counter_service.increment_and_get(USER_ID, 1, 1000) == 1000

    @pytest.mark.asyncio
    async def test_absent_descending_counter_above_start_keeps_start(self, counter_service):
        assert await counter_service.observe(USER_ID, 500, -10, 100) == 110
        assert await counter_service.increment_and_get(USER_ID, -10, 100) == 100

    @pytest.mark.asyncio
    async def test_absent_counter_above_start_skips_past_value(self, counter_service):
        assert await counter_service.observe(USER_ID, 1500, 1, 1000) == 1500
        assert await counter_service.increment_and_get(USER_ID, 1, 1000) == 1501


class TestAdministration:
    """Tests for listing and deleting counters."""

    @pytest.mark.asyncio
    async def test_list_records_filters_by_entity(self, counter_service):
        await counter_service.increment_and_get(make_counter_id("User", "_id"), 1, 0)
        await counter_service.increment_and_get(make_counter_id("User", "userId"), 1, 0)
        await counter_service.increment_and_get(make_counter_id("Order", "_id"), 1, 0)

        assert [r.id for r in await counter_service.list_records()] == ["Order:_id", "User:_id", "User:userId"]
        assert [r.id for r in await counter_service.list_records("User")] == ["User:_id", "User:userId"]

    @pytest.mark.asyncio
    async def test_delete_counters_by_entity(self, counter_service):
        await counter_service.increment_and_get(make_counter_id("User", "_id"), 1, 0)
        await counter_service.increment_and_get(make_counter_id("User", "userId"), 1, 0)
        await counter_service.increment_and_get(make_counter_id("Order", "_id"), 1, 0)

        assert await counter_service.delete_counters_by_entity("User") == 2
        assert [r.id for r in await counter_service.list_records()] == ["Order:_id"]


class TestStoreUnavailable:
    """Tests for connectivity failures."""

    @pytest.fixture
    def broken_collection(self, counter_service):
        collection = AsyncMock()
        counter_service._collection = collection
        return collection

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ServerSelectionTimeoutError("no servers"), AutoReconnect("reset"), ExecutionTimeout("slow")])
    async def test_increment_raises_store_unavailable(self, counter_service, broken_collection, error):
        broken_collection.find_one_and_update.side_effect = error

        with pytest.raises(StoreUnavailableError) as exc_info:
            await counter_service.increment_and_get(USER_ID, 1, 0)
        assert exc_info.value.__cause__ is error
        broken_collection.insert_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_peek_raises_store_unavailable(self, counter_service, broken_collection):
        broken_collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(StoreUnavailableError):
            await counter_service.peek(USER_ID, 1, 0)

    @pytest.mark.asyncio
    async def test_reset_raises_store_unavailable(self, counter_service, broken_collection):
        broken_collection.find_one_and_update.side_effect = AutoReconnect("reset")

        with pytest.raises(StoreUnavailableError):
            await counter_service.reset(USER_ID, 1, 0)

    @pytest.mark.asyncio
    async def test_other_driver_errors_propagate(self, counter_service, broken_collection):
        """Test that non-connectivity errors are not disguised as StoreUnavailableError."""
        broken_collection.find_one_and_update.side_effect = OperationFailure("bad update")

        with pytest.raises(OperationFailure):
            await counter_service.increment_and_get(USER_ID, 1, 0)
