import uuid

from pydantic import BaseModel, Field

from keystone.models.enums import RelationshipType
from keystone.models.task import MAX_SPAN_DAYS


class RelationshipCreate(BaseModel):
    """Schema for creating a relationship between two tasks."""
    predecessor_id: uuid.UUID
    successor_id: uuid.UUID
    type: RelationshipType = RelationshipType.FINISH_TO_START
    lag_days: int = Field(default=0, ge=-MAX_SPAN_DAYS, le=MAX_SPAN_DAYS)  # Negative = lead


class RelationshipUpdate(BaseModel):
    type: RelationshipType | None = None
    lag_days: int | None = Field(default=None, ge=-MAX_SPAN_DAYS, le=MAX_SPAN_DAYS)


class RelationshipRead(BaseModel):
    predecessor_id: uuid.UUID
    successor_id: uuid.UUID
    type: RelationshipType
    lag_days: int

    model_config = {"from_attributes": True}
