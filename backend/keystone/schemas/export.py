import uuid
from datetime import datetime

from pydantic import BaseModel

from keystone.schemas.baseline import BaselineRead
from keystone.schemas.calendar import CalendarRead
from keystone.schemas.project import ProjectRead
from keystone.schemas.relationship import RelationshipRead
from keystone.schemas.schedule import (
    AssignmentRead,
    FloatPathRead,
    ScheduleLoopRead,
    ScheduleSettingsRead,
)
from keystone.schemas.task import TaskRead


class ExportEntities(BaseModel):
    projects: list[ProjectRead]
    tasks: list[TaskRead]
    task_relationships: list[RelationshipRead]
    calendars: list[CalendarRead]
    baselines: list[BaselineRead]
    resource_assignments: list[AssignmentRead]
    schedule_settings: ScheduleSettingsRead
    float_paths: list[FloatPathRead]
    schedule_loops: list[ScheduleLoopRead]


class ScheduleExport(BaseModel):
    """Flat, fully-resolved archive of one project's schedule."""
    exported_at: datetime
    app_name: str
    app_version: str
    project_id: uuid.UUID
    schedule_version: int
    entities: ExportEntities
    summary: dict[str, int]
