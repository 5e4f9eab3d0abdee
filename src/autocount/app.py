from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from pymongo.asynchronous.database import AsyncDatabase

from autocount.config import Config
from autocount.core.core import Core
from autocount.core.modules.binding.models import BindingConfig
from autocount.core.modules.binding.service import BoundCounter
from autocount.core.modules.counter.models import CounterRecord


class App:
    """Facade for counter operations used by the web layer and embedding code."""

    def __init__(self, config: Config, database: AsyncDatabase[dict[str, Any]] | None = None) -> None:
        self._core = Core(config, database)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    def register(self, options: str | Mapping[str, Any]) -> BindingConfig:
        """Register an entity/field counter binding."""
        return self._core.services.binding.register(options)

    def get_bindings(self) -> list[BindingConfig]:
        return self._core.services.binding.list_configs()

    def bind(self, entity: str, field: str | None = None) -> BoundCounter:
        """Get the per-record counter operations for a registered pair."""
        return self._core.services.binding.bind(entity, field)

    async def allocate(self, entity: str, field: str | None = None) -> int:
        return await self._core.services.binding.allocate(entity, field)

    async def next_count(self, entity: str, field: str | None = None) -> int:
        return await self._core.services.binding.next_count(entity, field)

    async def reset_count(self, entity: str, field: str | None = None) -> int:
        return await self._core.services.binding.reset_count(entity, field)

    async def get_counters(self, entity: str | None = None) -> list[CounterRecord]:
        """List stored counter documents."""
        return await self._core.services.counter.list_records(entity)
