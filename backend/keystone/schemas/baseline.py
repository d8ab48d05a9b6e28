import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field


class BaselineCreate(BaseModel):
    project_id: uuid.UUID
    name: str = Field(min_length=1)


class BaselineEntryRead(BaseModel):
    task_id: uuid.UUID
    start_date: date | None
    end_date: date | None
    duration_days: int

    model_config = {"from_attributes": True}


class BaselineRead(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    captured_at: datetime
    entries: list[BaselineEntryRead]

    model_config = {"from_attributes": True}


class TaskVarianceRead(BaseModel):
    task_id: uuid.UUID
    name: str
    baseline_start: date | None
    baseline_end: date | None
    live_start: date | None
    live_end: date | None
    schedule_variance_days: int | None
    start_variance_days: int | None
    duration_variance_days: int

    model_config = {"from_attributes": True}


class VarianceReportRead(BaseModel):
    baseline_id: uuid.UUID
    baseline_name: str
    captured_at: datetime
    variances: list[TaskVarianceRead]
    added: list[uuid.UUID]
    removed: list[uuid.UUID]

    model_config = {"from_attributes": True}
