from typing import Any

from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = "mongodb://localhost:27017/autocount"
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    counters_collection: str = "counters"
    server_selection_timeout_ms: int = 5000  # Fail fast with StoreUnavailableError when MongoDB is down
    cors_origins: list[str] = []
    # Bindings registered on startup, e.g. [{"model": "User", "startAt": 1}]
    bindings: list[dict[str, Any]] = []

    model_config = {
        "env_file": [".env"],
        "env_prefix": "AUTOCOUNT_",
        "extra": "ignore",
    }
