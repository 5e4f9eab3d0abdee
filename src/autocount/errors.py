from abc import ABC


class CounterError(ABC, Exception):
    """Base class for counter errors.

    Messages of CounterError subclasses are returned to API clients as-is,
    so they must not contain connection strings or other secrets.
    """


class InvalidConfigError(CounterError):
    """Raised when a binding is registered with missing or invalid parameters."""


class ConfigNotFoundError(CounterError):
    """Raised when a counter operation targets an unregistered entity/field pair."""

    def __init__(self, message: str = "Binding not found") -> None:
        super().__init__(message)


class DuplicateBindingError(CounterError):
    """Raised when an entity/field pair is registered again with a different config."""


class StoreUnavailableError(CounterError):
    """Raised when the counter store cannot be reached or times out."""

    def __init__(self, message: str = "Counter store is unavailable") -> None:
        super().__init__(message)
