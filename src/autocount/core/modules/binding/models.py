"""Entity/field bindings to counters."""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from autocount.core.modules.counter.models import make_counter_id
from autocount.errors import InvalidConfigError

DEFAULT_FIELD = "_id"  # Primary identifier field of a MongoDB document


class BindingConfig(BaseModel):
    """Counter configuration for one entity/field pair.

    Accepts both the wire keys (`model`, `startAt`, `incrementBy`) and the
    Python field names.
    """

    entity: str = Field(alias="model", min_length=1)
    field: str = Field(default=DEFAULT_FIELD, min_length=1)
    start_at: int = Field(default=0, alias="startAt")
    increment_by: int = Field(default=1, alias="incrementBy")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid", strict=True)

    @field_validator("field")
    @classmethod
    def _field_has_no_separator(cls, value: str) -> str:
        if ":" in value:
            raise ValueError("field name must not contain ':'")
        return value

    @field_validator("increment_by")
    @classmethod
    def _increment_not_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("incrementBy must not be 0")
        return value

    @property
    def counter_id(self) -> str:
        return make_counter_id(self.entity, self.field)

    @classmethod
    def from_options(cls, options: str | Mapping[str, Any], **overrides: Any) -> "BindingConfig":
        """Build a config from a bare entity name or an options mapping.

        Keyword overrides that are None are ignored. Pydantic errors are
        re-raised as InvalidConfigError.
        """
        if isinstance(options, str):
            data: dict[str, Any] = {"model": options}
        elif isinstance(options, Mapping):
            data = dict(options)
        else:
            raise InvalidConfigError(f"Binding options must be a model name or a mapping, got {type(options).__name__}")

        if "entity" in data and "model" not in data:
            data["model"] = data.pop("entity")
        data.update({key: value for key, value in overrides.items() if value is not None})

        if not data.get("model"):
            raise InvalidConfigError("Binding requires a model name")

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
            raise InvalidConfigError(f"Invalid binding for '{data.get('model')}': {errors}") from exc


class BindingView(BaseModel):
    """Binding information (API representation)."""

    model: str = Field(..., description="Entity name")
    field: str = Field(..., description="Field that receives allocated values")
    start_at: int = Field(..., alias="startAt", description="First value handed out")
    increment_by: int = Field(..., alias="incrementBy", description="Step between values")
    counter_id: str = Field(..., alias="counterId", description="Stored counter id")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_domain(cls, config: BindingConfig) -> "BindingView":
        return cls(
            model=config.entity,
            field=config.field,
            start_at=config.start_at,
            increment_by=config.increment_by,
            counter_id=config.counter_id,
        )
