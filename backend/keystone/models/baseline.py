import uuid
from datetime import date, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Baseline(SQLModel, table=True):
    """Named, immutable capture of a project's task dates."""

    __tablename__ = "baselines"
    __table_args__ = (UniqueConstraint("project_id", "name"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    name: str
    captured_at: datetime = Field(default_factory=datetime.utcnow)


class BaselineTask(SQLModel, table=True):
    """
    One task's dates inside a baseline.

    task_id has no foreign key so entries survive task deletion.
    """

    __tablename__ = "baseline_tasks"

    baseline_id: uuid.UUID = Field(foreign_key="baselines.id", primary_key=True)
    task_id: uuid.UUID = Field(primary_key=True)
    start_date: date | None = Field(default=None)
    end_date: date | None = Field(default=None)
    duration_days: int = Field(default=0)
