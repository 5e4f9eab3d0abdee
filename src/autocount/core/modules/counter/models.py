"""Durable counter documents."""

from pydantic import BaseModel, ConfigDict, Field


class CounterRecord(BaseModel):
    """One stored counter sequence.

    `value` is the last number handed out. A freshly reset counter stores
    `start_at - increment_by` so that the next allocation yields `start_at`.
    """

    id: str = Field(alias="_id", serialization_alias="id")
    entity: str
    field: str
    value: int

    model_config = ConfigDict(populate_by_name=True)

    def to_mongo(self) -> dict[str, object]:
        """Convert the record to a MongoDB document with _id field."""
        data = self.model_dump()
        data["_id"] = data.pop("id")
        return data


def make_counter_id(entity: str, field: str) -> str:
    """Stable counter id for an entity/field pair."""
    return f"{entity}:{field}"


def split_counter_id(counter_id: str) -> tuple[str, str]:
    entity, sep, field = counter_id.rpartition(":")
    if not sep:
        return counter_id, ""
    return entity, field
