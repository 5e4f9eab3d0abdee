from __future__ import annotations

import importlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, cast
from urllib.parse import urlparse

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from autocount.config import Config

if TYPE_CHECKING:
    from autocount.core.modules.binding.service import BindingService
    from autocount.core.modules.counter.service import CounterService


class Service:
    """Base class for services with direct database access."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]], config: Config) -> None:
        self.database = database
        self.config = config
        self._core: Core | None = None

    async def on_start(self) -> None:
        """Initialize service on application startup."""

    async def on_stop(self) -> None:
        """Cleanup service on application shutdown."""

    @property
    def core(self) -> Core:
        """Get the core application context."""
        if self._core is None:
            raise RuntimeError("Core not set for service")
        return self._core

    def set_core(self, core: Core) -> None:
        """Set the core application context."""
        self._core = core


class Services:
    """Service registry that initializes services in dependency order."""

    counter: CounterService
    binding: BindingService

    def __init__(self, database: AsyncDatabase[dict[str, Any]], config: Config) -> None:
        self._services: list[Service] = []

        # (attribute_name, module_path, class_name)
        # Counter store must start before bindings, which use it
        service_configs = [
            ("counter", "autocount.core.modules.counter.service", "CounterService"),
            ("binding", "autocount.core.modules.binding.service", "BindingService"),
        ]

        for attr_name, module_path, class_name in service_configs:
            module = importlib.import_module(module_path)
            service_class = cast(type[Service], getattr(module, class_name))
            service_instance = service_class(database, config)
            setattr(self, attr_name, service_instance)
            self._services.append(service_instance)

    def set_core(self, core: Core) -> None:
        """Set core reference for all services."""
        for service in self._services:
            service.set_core(core)

    async def start_all(self) -> None:
        for service in self._services:
            await service.on_start()

    async def stop_all(self) -> None:
        for service in reversed(self._services):
            await service.on_stop()


class Core:
    """Container providing config, database, and all service instances.

    A database may be passed in to share an existing connection; in that case
    Core does not own (and will not close) the client.
    """

    config: Config
    mongo_client: AsyncMongoClient[dict[str, Any]] | None
    database: AsyncDatabase[dict[str, Any]]
    services: Services

    def __init__(self, config: Config, database: AsyncDatabase[dict[str, Any]] | None = None) -> None:
        self.config = config
        if database is None:
            self.mongo_client = AsyncMongoClient(
                config.database_url,
                uuidRepresentation="standard",
                serverSelectionTimeoutMS=config.server_selection_timeout_ms,
            )
            self.database = self.mongo_client.get_database(urlparse(config.database_url).path[1:] or "autocount")
        else:
            self.mongo_client = None
            self.database = database
        self.services = Services(self.database, config)
        self.services.set_core(self)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage application lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        await self.services.start_all()

    async def on_stop(self) -> None:
        """Stop services and close the MongoDB connection if owned."""
        await self.services.stop_all()
        if self.mongo_client is not None:
            await self.mongo_client.aclose()
