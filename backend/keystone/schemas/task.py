import uuid
from datetime import date

from pydantic import BaseModel, Field

from keystone.models.enums import TaskPriority, TaskStatus
from keystone.models.task import MAX_SPAN_DAYS


class TaskCreate(BaseModel):
    """
    Schema for creating a task.

    Used for manual entry and for generated WBS candidates alike; candidates
    usually carry only name, wbs_code, level, duration_days and description, and
    get their parent from the code.
    """
    name: str = Field(min_length=1)
    wbs_code: str
    level: int | None = Field(default=None, ge=1)
    duration_days: int = Field(default=1, ge=0, le=MAX_SPAN_DAYS)  # 0 = milestone
    description: str | None = None
    parent_task_id: uuid.UUID | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: str | None = None
    calendar_id: uuid.UUID | None = None


class TaskCreateRequest(TaskCreate):
    """A single task posted to the API."""
    project_id: uuid.UUID


class TaskBulkCreate(BaseModel):
    """A batch inserted all-or-nothing."""
    project_id: uuid.UUID
    tasks: list[TaskCreate] = Field(min_length=1)


class TaskUpdate(BaseModel):
    """Schema for updating a task. WBS placement changes go through TaskMove."""
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    duration_days: int | None = Field(default=None, ge=0, le=MAX_SPAN_DAYS)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to: str | None = None
    calendar_id: uuid.UUID | None = None


class TaskMove(BaseModel):
    """Re-parent a task; None moves it to the top level."""
    new_parent_id: uuid.UUID | None = None


class TaskRead(BaseModel):
    """Schema for reading a task with its CPM results."""
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    description: str | None
    wbs_code: str
    level: int
    parent_task_id: uuid.UUID | None
    duration_days: int
    status: TaskStatus
    priority: TaskPriority
    assigned_to: str | None
    calendar_id: uuid.UUID | None
    start_date: date | None
    end_date: date | None
    early_start: date | None
    early_finish: date | None
    late_start: date | None
    late_finish: date | None
    total_float: int | None
    free_float: int | None
    is_critical: bool

    model_config = {"from_attributes": True}
