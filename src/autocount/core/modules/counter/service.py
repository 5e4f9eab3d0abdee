from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ExecutionTimeout

from autocount.config import Config
from autocount.core.core import Service
from autocount.core.modules.counter.models import CounterRecord, split_counter_id
from autocount.errors import StoreUnavailableError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def store_errors(operation: str, counter_id: str | None = None) -> AsyncIterator[None]:
    """Translate driver connectivity failures into StoreUnavailableError."""
    try:
        yield
    except (ConnectionFailure, ExecutionTimeout) as exc:
        logger.warning("counter_store_unavailable", operation=operation, counter_id=counter_id, error=str(exc))
        raise StoreUnavailableError from exc


class CounterService(Service):
    """Durable named counters updated only through atomic MongoDB operations."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]], config: Config) -> None:
        super().__init__(database, config)
        self._collection = database.get_collection(config.counters_collection)

    async def on_start(self) -> None:
        """Create indexes on startup."""
        async with store_errors("create_index"):
            await self._collection.create_index([("entity", 1), ("field", 1)])

    async def increment_and_get(self, counter_id: str, increment_by: int, start_at: int) -> int:
        """Atomically allocate the next value of a counter.

        The first call for a counter creates it and returns `start_at`. Later
        calls add `increment_by` and return the new stored value. Each call
        commits exactly one atomic write, so concurrent callers always see
        distinct values.
        """
        async with store_errors("increment_and_get", counter_id):
            value = await self._increment_existing(counter_id, increment_by)
            if value is None:
                entity, field = split_counter_id(counter_id)
                record = CounterRecord(id=counter_id, entity=entity, field=field, value=start_at)
                try:
                    await self._collection.insert_one(record.to_mongo())
                    value = start_at
                    logger.info("counter_created", counter_id=counter_id, value=value)
                except DuplicateKeyError:
                    # Another caller created the counter first; increment theirs
                    value = await self._increment_existing(counter_id, increment_by)
                    if value is None:
                        raise RuntimeError(f"Counter '{counter_id}' vanished during allocation") from None

        logger.debug("counter_allocated", counter_id=counter_id, value=value)
        return value

    async def peek(self, counter_id: str, increment_by: int, start_at: int) -> int:
        """Return the value the next allocation would produce, without consuming it."""
        async with store_errors("peek", counter_id):
            doc = await self._collection.find_one({"_id": counter_id}, projection={"value": 1})
        if doc is None:
            return start_at
        return int(doc["value"]) + increment_by

    async def reset(self, counter_id: str, increment_by: int, start_at: int) -> int:
        """Rewind a counter so the next allocation returns `start_at` again."""
        entity, field = split_counter_id(counter_id)
        async with store_errors("reset", counter_id):
            await self._collection.find_one_and_update(
                {"_id": counter_id},
                {"$set": {"entity": entity, "field": field, "value": start_at - increment_by}},
                upsert=True,
            )
        logger.info("counter_reset", counter_id=counter_id, start_at=start_at)
        return start_at

    async def observe(self, counter_id: str, value: int, increment_by: int, start_at: int) -> int:
        """Move a counter past a manually assigned value.

        An absent counter is first created at `start_at - increment_by`, as if
        freshly reset, so a value below `start_at` does not drag the sequence
        down. Then `$max` (ascending) or `$min` (descending) moves the stored
        value only in the direction of the sequence. Both steps are single
        atomic updates.
        """
        entity, field = split_counter_id(counter_id)
        operator = "$max" if increment_by > 0 else "$min"
        async with store_errors("observe", counter_id):
            await self._collection.update_one(
                {"_id": counter_id},
                {"$setOnInsert": {"entity": entity, "field": field, "value": start_at - increment_by}},
                upsert=True,
            )
            doc = await self._collection.find_one_and_update(
                {"_id": counter_id},
                {operator: {"value": value}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                raise RuntimeError(f"Counter '{counter_id}' vanished during observe")
        stored = int(doc["value"])
        logger.debug("counter_observed", counter_id=counter_id, observed=value, value=stored)
        return stored

    async def get_record(self, counter_id: str) -> CounterRecord | None:
        async with store_errors("get_record", counter_id):
            doc = await self._collection.find_one({"_id": counter_id})
        return CounterRecord.model_validate(doc) if doc else None

    async def list_records(self, entity: str | None = None) -> list[CounterRecord]:
        """List stored counters, optionally for a single entity."""
        query: dict[str, Any] = {} if entity is None else {"entity": entity}
        async with store_errors("list_records"):
            cursor = self._collection.find(query, sort=[("_id", 1)])
            return [CounterRecord.model_validate(doc) async for doc in cursor]

    async def delete_counters_by_entity(self, entity: str) -> int:
        """Delete all counters of an entity and return count of deleted counters."""
        async with store_errors("delete_counters_by_entity"):
            result = await self._collection.delete_many({"entity": entity})
        logger.info("counters_deleted", entity=entity, count=result.deleted_count)
        return result.deleted_count

    async def _increment_existing(self, counter_id: str, increment_by: int) -> int | None:
        doc = await self._collection.find_one_and_update(
            {"_id": counter_id},
            {"$inc": {"value": increment_by}},
            projection={"value": 1},
            return_document=ReturnDocument.AFTER,
        )
        return None if doc is None else int(doc["value"])
