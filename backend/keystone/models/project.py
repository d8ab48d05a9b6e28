import uuid
from datetime import date, datetime

from sqlmodel import SQLModel, Field

from keystone.models.enums import ProjectStatus


class Project(SQLModel, table=True):
    """
    Project model - groups tasks together and owns the schedule settings.

    Key fields:
    - status: Lifecycle stage; informational, never changes the schedule
    - anchor_date: Earliest date any task may start
    - default_calendar_id: Calendar used by tasks without an override
    - schedule_version: Concurrency guard - bumped on every committed mutation
    """

    __tablename__ = "projects"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    project_type: str | None = Field(default=None)
    status: ProjectStatus = Field(default=ProjectStatus.PLANNING)
    anchor_date: date | None = Field(default=None)
    default_calendar_id: uuid.UUID | None = Field(default=None, foreign_key="calendars.id")
    schedule_version: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
