from keystone.schemas.project import ProjectCreate, ProjectUpdate, ProjectRead
from keystone.schemas.task import (
    TaskCreate,
    TaskCreateRequest,
    TaskBulkCreate,
    TaskUpdate,
    TaskMove,
    TaskRead,
)
from keystone.schemas.relationship import RelationshipCreate, RelationshipUpdate, RelationshipRead
from keystone.schemas.calendar import CalendarCreate, CalendarExceptionIn, CalendarRead
from keystone.schemas.baseline import BaselineCreate, BaselineRead, VarianceReportRead
from keystone.schemas.schedule import (
    AssignmentCreate,
    AssignmentRead,
    FloatPathRead,
    ScheduleLoopRead,
    ScheduleRead,
)
from keystone.schemas.export import ScheduleExport

__all__ = [
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectRead",
    "TaskCreate",
    "TaskCreateRequest",
    "TaskBulkCreate",
    "TaskUpdate",
    "TaskMove",
    "TaskRead",
    "RelationshipCreate",
    "RelationshipUpdate",
    "RelationshipRead",
    "CalendarCreate",
    "CalendarExceptionIn",
    "CalendarRead",
    "BaselineCreate",
    "BaselineRead",
    "VarianceReportRead",
    "AssignmentCreate",
    "AssignmentRead",
    "FloatPathRead",
    "ScheduleLoopRead",
    "ScheduleRead",
    "ScheduleExport",
]
