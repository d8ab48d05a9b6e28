import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field

from keystone.schemas.relationship import RelationshipRead
from keystone.schemas.task import TaskRead


class AssignmentCreate(BaseModel):
    resource_id: uuid.UUID
    allocation: float = Field(default=1.0, ge=0.0, le=1.0)


class AssignmentRead(BaseModel):
    task_id: uuid.UUID
    resource_id: uuid.UUID
    allocation: float

    model_config = {"from_attributes": True}


class FloatPathRead(BaseModel):
    sequence: int
    task_ids: list[uuid.UUID]
    total_float: int

    model_config = {"from_attributes": True}


class ScheduleLoopRead(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID | None
    task_ids: list[uuid.UUID]
    detected_at: datetime

    model_config = {"from_attributes": True}


class ScheduleSettingsRead(BaseModel):
    anchor_date: date | None
    default_calendar_id: uuid.UUID | None

    model_config = {"from_attributes": True}


class ScheduleRead(BaseModel):
    """The live schedule of one project."""
    project_id: uuid.UUID
    version: int
    settings: ScheduleSettingsRead
    project_finish: date | None
    tasks: list[TaskRead]
    relationships: list[RelationshipRead]
    float_paths: list[FloatPathRead]
