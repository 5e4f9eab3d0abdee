from autocount.web.routers.bindings import router as bindings_router
from autocount.web.routers.counters import router as counters_router

__all__ = [
    "bindings_router",
    "counters_router",
]
