"""
In-memory schedule entities.

The engine never keeps state between calls: every operation receives a
ScheduleSnapshot and hands back a new one. Persistence maps these records to and
from the SQL tables in keystone.models.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime

from keystone.config import get_settings
from keystone.models.enums import RelationshipType, TaskPriority, TaskStatus
from keystone.services.calendar import WorkCalendar


def wbs_segments(wbs_code: str) -> tuple[int, ...]:
    """'1.10.2' -> (1, 10, 2); sorts numerically rather than as text."""
    return tuple(int(part) for part in wbs_code.split("."))


@dataclass
class TaskRecord:
    """A WBS task and its CPM-derived dates."""
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    wbs_code: str
    duration_days: int = 1  # 0 = milestone
    description: str | None = None
    parent_task_id: uuid.UUID | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: str | None = None
    calendar_id: uuid.UUID | None = None
    start_date: date | None = None
    end_date: date | None = None
    # Owned by the CPM scheduler
    early_start: date | None = None
    early_finish: date | None = None
    late_start: date | None = None
    late_finish: date | None = None
    total_float: int | None = None
    free_float: int | None = None
    is_critical: bool = False

    @property
    def level(self) -> int:
        return len(self.wbs_code.split("."))

    @property
    def sort_key(self) -> tuple[int, ...]:
        return wbs_segments(self.wbs_code)


@dataclass
class RelationshipRecord:
    """Directed precedence edge predecessor -> successor."""
    predecessor_id: uuid.UUID
    successor_id: uuid.UUID
    type: RelationshipType = RelationshipType.FINISH_TO_START
    lag_days: int = 0  # negative = lead

    @property
    def key(self) -> tuple[uuid.UUID, uuid.UUID]:
        return (self.predecessor_id, self.successor_id)


@dataclass
class AssignmentRecord:
    task_id: uuid.UUID
    resource_id: uuid.UUID
    allocation: float = 1.0


@dataclass(frozen=True)
class BaselineEntry:
    task_id: uuid.UUID
    start_date: date | None
    end_date: date | None
    duration_days: int


@dataclass(frozen=True)
class BaselineRecord:
    """Immutable snapshot of every task's dates at capture time."""
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    captured_at: datetime
    entries: tuple[BaselineEntry, ...] = ()

    def entry_for(self, task_id: uuid.UUID) -> BaselineEntry | None:
        for entry in self.entries:
            if entry.task_id == task_id:
                return entry
        return None


@dataclass
class FloatPath:
    """Chain of minimum-float tasks; rebuilt on every recompute."""
    sequence: int
    task_ids: list[uuid.UUID]
    total_float: int


@dataclass
class ScheduleLoop:
    """Task ids whose edges would close a loop; reported by rejected mutations."""
    id: uuid.UUID
    project_id: uuid.UUID
    task_ids: list[uuid.UUID]
    detected_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ScheduleSettings:
    anchor_date: date | None = None
    default_calendar_id: uuid.UUID | None = None


@dataclass
class ScheduleSnapshot:
    """Everything the engine needs to validate and schedule one project."""
    project_id: uuid.UUID
    settings: ScheduleSettings = field(default_factory=ScheduleSettings)
    calendars: dict[uuid.UUID, WorkCalendar] = field(default_factory=dict)
    tasks: dict[uuid.UUID, TaskRecord] = field(default_factory=dict)
    relationships: dict[tuple[uuid.UUID, uuid.UUID], RelationshipRecord] = field(default_factory=dict)
    assignments: dict[tuple[uuid.UUID, uuid.UUID], AssignmentRecord] = field(default_factory=dict)
    baselines: dict[uuid.UUID, BaselineRecord] = field(default_factory=dict)
    float_paths: list[FloatPath] = field(default_factory=list)
    schedule_loops: list[ScheduleLoop] = field(default_factory=list)
    project_finish: date | None = None
    version: int = 0

    def clone(self) -> "ScheduleSnapshot":
        """Deep copy used as the working set of a mutation."""
        return copy.deepcopy(self)

    def calendar_for(self, task: TaskRecord | None = None) -> WorkCalendar:
        """Task override, then project default, then the standard calendar."""
        if task is not None and task.calendar_id in self.calendars:
            return self.calendars[task.calendar_id]
        if self.settings.default_calendar_id in self.calendars:
            return self.calendars[self.settings.default_calendar_id]
        return WorkCalendar.standard(get_settings().default_working_weekdays)

    def ordered_tasks(self) -> list[TaskRecord]:
        return sorted(self.tasks.values(), key=lambda t: t.sort_key)
