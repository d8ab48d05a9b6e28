from keystone.models.enums import ProjectStatus, RelationshipType, TaskPriority, TaskStatus
from keystone.models.project import Project
from keystone.models.calendar import Calendar, CalendarException
from keystone.models.task import Task, TaskRelationship
from keystone.models.baseline import Baseline, BaselineTask
from keystone.models.schedule import FloatPathEntry, ResourceAssignment, ScheduleLoopEntry

__all__ = [
    "ProjectStatus",
    "RelationshipType",
    "TaskPriority",
    "TaskStatus",
    "Project",
    "Calendar",
    "CalendarException",
    "Task",
    "TaskRelationship",
    "Baseline",
    "BaselineTask",
    "FloatPathEntry",
    "ResourceAssignment",
    "ScheduleLoopEntry",
]
