import uuid
from datetime import date, datetime

from sqlmodel import SQLModel, Field

from keystone.models.enums import RelationshipType, TaskPriority, TaskStatus

# Longest duration or lag, in working days, the scheduler accepts (about a century)
MAX_SPAN_DAYS = 36500


class Task(SQLModel, table=True):
    """
    Task model: a node in both the WBS tree and the dependency graph.

    Key fields:
    - wbs_code: Dotted position in the WBS ("1.2.3"), unique per project
    - duration_days: Working days (0 = milestone)
    - early_* / late_* / floats / is_critical: Written only by the CPM scheduler
    """

    __tablename__ = "tasks"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    wbs_code: str
    level: int = Field(default=1, ge=1)
    duration_days: int = Field(default=1, ge=0, le=MAX_SPAN_DAYS)  # 0 = milestone
    status: TaskStatus = Field(default=TaskStatus.NOT_STARTED)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    assigned_to: str | None = Field(default=None)

    # Foreign keys
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    parent_task_id: uuid.UUID | None = Field(default=None, foreign_key="tasks.id", index=True)
    calendar_id: uuid.UUID | None = Field(default=None, foreign_key="calendars.id")

    # Scheduled dates
    start_date: date | None = Field(default=None)
    end_date: date | None = Field(default=None)
    early_start: date | None = Field(default=None)
    early_finish: date | None = Field(default=None)
    late_start: date | None = Field(default=None)
    late_finish: date | None = Field(default=None)
    total_float: int | None = Field(default=None)
    free_float: int | None = Field(default=None)
    is_critical: bool = Field(default=False)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class TaskRelationship(SQLModel, table=True):
    """
    Directed edge in the task DAG.

    predecessor_id -> successor_id with a type (FS/SS/FF/SF) and a lag in
    working days. Negative lag is a lead.
    """

    __tablename__ = "task_relationships"

    # Composite primary key
    predecessor_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True)
    successor_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True)

    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    type: RelationshipType = Field(default=RelationshipType.FINISH_TO_START)
    lag_days: int = Field(default=0, ge=-MAX_SPAN_DAYS, le=MAX_SPAN_DAYS)
    created_at: datetime = Field(default_factory=datetime.utcnow)
