from collections.abc import Mapping, MutableMapping
from typing import Any

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from autocount.config import Config
from autocount.core.core import Service
from autocount.core.modules.binding.models import DEFAULT_FIELD, BindingConfig
from autocount.errors import ConfigNotFoundError, DuplicateBindingError

logger = structlog.get_logger(__name__)


class BoundCounter:
    """Counter operations resolved to a single registered entity/field pair.

    Record-creation code holds one of these and calls `allocate()` (or
    `assign(document)`) before inserting the record.
    """

    def __init__(self, service: "BindingService", config: BindingConfig) -> None:
        self._service = service
        self.config = config

    @property
    def entity(self) -> str:
        return self.config.entity

    @property
    def field(self) -> str:
        return self.config.field

    async def allocate(self) -> int:
        return await self._service.allocate(self.entity, self.field)

    async def next_count(self) -> int:
        return await self._service.next_count(self.entity, self.field)

    async def reset_count(self) -> int:
        return await self._service.reset_count(self.entity, self.field)

    async def assign(self, document: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        return await self._service.assign(self.entity, document, self.field)


class BindingService(Service):
    """Maps entity/field pairs to counters and applies their configuration.

    Bindings live in memory only; counter values live in the counter store.
    Re-registering an identical config is a no-op, a conflicting one raises
    DuplicateBindingError.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]], config: Config) -> None:
        super().__init__(database, config)
        self._bindings: dict[tuple[str, str], BindingConfig] = {}

    async def on_start(self) -> None:
        """Register bindings declared in configuration."""
        for options in self.config.bindings:
            self.register(options)

    async def on_stop(self) -> None:
        self.clear()

    def register(
        self,
        options: str | Mapping[str, Any],
        *,
        field: str | None = None,
        start_at: int | None = None,
        increment_by: int | None = None,
    ) -> BindingConfig:
        """Register a binding from a model name or an options mapping."""
        binding = BindingConfig.from_options(options, field=field, start_at=start_at, increment_by=increment_by)
        key = (binding.entity, binding.field)

        existing = self._bindings.get(key)
        if existing is not None:
            if existing == binding:
                return existing
            raise DuplicateBindingError(
                f"Binding '{binding.counter_id}' is already registered with a different configuration"
            )

        self._bindings[key] = binding
        logger.info(
            "binding_registered",
            counter_id=binding.counter_id,
            start_at=binding.start_at,
            increment_by=binding.increment_by,
        )
        return binding

    def unregister(self, entity: str, field: str | None = None) -> None:
        binding = self.get_config(entity, field)
        del self._bindings[(binding.entity, binding.field)]
        logger.info("binding_unregistered", counter_id=binding.counter_id)

    def clear(self) -> None:
        self._bindings.clear()

    def get_config(self, entity: str, field: str | None = None) -> BindingConfig:
        """Get binding for an entity/field pair, defaulting to the identifier field."""
        key = (entity, field or DEFAULT_FIELD)
        if key not in self._bindings:
            raise ConfigNotFoundError(f"No counter registered for '{key[0]}.{key[1]}'")
        return self._bindings[key]

    def has_binding(self, entity: str, field: str | None = None) -> bool:
        return (entity, field or DEFAULT_FIELD) in self._bindings

    def list_configs(self) -> list[BindingConfig]:
        return list(self._bindings.values())

    def bind(self, entity: str, field: str | None = None) -> BoundCounter:
        return BoundCounter(self, self.get_config(entity, field))

    async def allocate(self, entity: str, field: str | None = None) -> int:
        """Consume the next value of the pair's counter.

        The counter advances even if the caller never persists the record.
        """
        binding = self.get_config(entity, field)
        return await self.core.services.counter.increment_and_get(
            binding.counter_id, binding.increment_by, binding.start_at
        )

    async def next_count(self, entity: str, field: str | None = None) -> int:
        """Preview the value the next allocate would return. Not a reservation."""
        binding = self.get_config(entity, field)
        return await self.core.services.counter.peek(binding.counter_id, binding.increment_by, binding.start_at)

    async def reset_count(self, entity: str, field: str | None = None) -> int:
        binding = self.get_config(entity, field)
        return await self.core.services.counter.reset(binding.counter_id, binding.increment_by, binding.start_at)

    async def assign(
        self, entity: str, document: MutableMapping[str, Any], field: str | None = None
    ) -> MutableMapping[str, Any]:
        """Fill the bound field of a new document before it is inserted.

        A document that already carries an int in the field keeps it, and the
        counter is moved past that value instead of being consumed. Any other
        value (None, str, float, bool) is overwritten with a fresh allocation.
        """
        binding = self.get_config(entity, field)
        current = document.get(binding.field)
        if isinstance(current, int) and not isinstance(current, bool):
            await self.core.services.counter.observe(
                binding.counter_id, current, binding.increment_by, binding.start_at
            )
        else:
            document[binding.field] = await self.allocate(binding.entity, binding.field)
        return document
