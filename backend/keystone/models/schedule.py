import uuid
from datetime import datetime

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class ResourceAssignment(SQLModel, table=True):
    __tablename__ = "resource_assignments"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True)
    resource_id: uuid.UUID = Field(primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    allocation: float = Field(default=1.0, ge=0.0, le=1.0)


class FloatPathEntry(SQLModel, table=True):
    """Cached minimum-float path; replaced wholesale on every recompute."""

    __tablename__ = "float_paths"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    sequence: int
    total_float: int
    task_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))


class ScheduleLoopEntry(SQLModel, table=True):
    """Rejection log: the task chain a refused relationship would have closed."""

    __tablename__ = "schedule_loops"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    task_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    detected_at: datetime = Field(default_factory=datetime.utcnow)
