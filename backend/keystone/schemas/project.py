import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field

from keystone.models.enums import ProjectStatus


class ProjectCreate(BaseModel):
    """Schema for creating a new project."""
    name: str = Field(min_length=1)
    description: str | None = None
    project_type: str | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    anchor_date: date | None = None  # Defaults to today if not provided
    default_calendar_id: uuid.UUID | None = None


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Anchor or calendar changes reschedule it."""
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    project_type: str | None = None
    status: ProjectStatus | None = None
    anchor_date: date | None = None
    default_calendar_id: uuid.UUID | None = None


class ProjectRead(BaseModel):
    """Schema for reading a project."""
    id: uuid.UUID
    name: str
    description: str | None
    project_type: str | None
    status: ProjectStatus
    anchor_date: date | None
    default_calendar_id: uuid.UUID | None
    schedule_version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
