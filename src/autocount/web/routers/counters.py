from fastapi import APIRouter

from autocount.core.modules.counter.models import CounterRecord
from autocount.web.deps import AppDep
from autocount.web.openapi import CountResponse, ErrorResponse

router = APIRouter(tags=["counters"])

NOT_REGISTERED = {"model": ErrorResponse, "description": "Entity/field pair not registered"}
STORE_DOWN = {"model": ErrorResponse, "description": "Counter store unavailable"}


@router.get(
    "/counters",
    summary="List stored counters",
    description="Get stored counter documents, optionally filtered by entity.",
    operation_id="listCounters",
    responses={200: {"description": "Stored counters"}, 503: STORE_DOWN},
)
async def list_counters(app: AppDep, entity: str | None = None) -> list[CounterRecord]:
    return await app.get_counters(entity)


@router.get(
    "/counters/{entity}/next",
    summary="Preview next value",
    description="Get the value the next allocation would return. Does not reserve it.",
    operation_id="nextCount",
    responses={200: {"description": "Next value"}, 404: NOT_REGISTERED, 503: STORE_DOWN},
)
async def next_count(entity: str, app: AppDep, field: str | None = None) -> CountResponse:
    return CountResponse(value=await app.next_count(entity, field))


@router.post(
    "/counters/{entity}/allocate",
    summary="Allocate value",
    description="Consume the next value of the counter.",
    operation_id="allocateCount",
    responses={200: {"description": "Allocated value"}, 404: NOT_REGISTERED, 503: STORE_DOWN},
)
async def allocate(entity: str, app: AppDep, field: str | None = None) -> CountResponse:
    return CountResponse(value=await app.allocate(entity, field))


@router.post(
    "/counters/{entity}/reset",
    summary="Reset counter",
    description="Rewind the counter so the next allocation returns its start value.",
    operation_id="resetCount",
    responses={200: {"description": "Start value"}, 404: NOT_REGISTERED, 503: STORE_DOWN},
)
async def reset_count(entity: str, app: AppDep, field: str | None = None) -> CountResponse:
    return CountResponse(value=await app.reset_count(entity, field))
