from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from autocount.core.modules.binding.models import BindingView
from autocount.web.deps import AppDep
from autocount.web.openapi import ErrorResponse

router = APIRouter(tags=["bindings"])


class RegisterBindingRequest(BaseModel):
    """Request to register a counter binding.

    Only shapes the request; missing models and unknown keys are rejected by
    the binding config itself so HTTP and in-process registration agree.
    """

    model: str | None = Field(None, description="Entity name (required)")
    field: str | None = Field(None, description="Field to number (defaults to _id)")
    start_at: int | None = Field(None, alias="startAt", description="First value handed out")
    increment_by: int | None = Field(None, alias="incrementBy", description="Step between values")

    model_config = ConfigDict(populate_by_name=True, strict=True, extra="allow")


@router.get(
    "/bindings",
    summary="List bindings",
    description="Get all entity/field pairs registered in this process.",
    operation_id="listBindings",
    responses={200: {"description": "Registered bindings"}},
)
async def list_bindings(app: AppDep) -> list[BindingView]:
    return [BindingView.from_domain(binding) for binding in app.get_bindings()]


@router.post(
    "/bindings",
    summary="Register binding",
    description="Register a counter for an entity/field pair. Registering an identical binding again is a no-op.",
    operation_id="registerBinding",
    responses={
        201: {"description": "Binding registered"},
        400: {"model": ErrorResponse, "description": "Invalid binding configuration"},
        409: {"model": ErrorResponse, "description": "Pair already registered with a different configuration"},
    },
    status_code=201,
)
async def register_binding(request: RegisterBindingRequest, app: AppDep) -> BindingView:
    options = request.model_dump(by_alias=True, exclude_none=True)
    return BindingView.from_domain(app.register(options))
