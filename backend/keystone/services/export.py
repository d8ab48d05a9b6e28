"""
Export of a project's full schedule as one flat document.

Fields are copied as stored; nothing is rescheduled on the way out, so an export
of a stale snapshot shows exactly what was persisted.
"""

from datetime import datetime

from keystone.config import get_settings
from keystone.logging_config import get_logger
from keystone.models import Project
from keystone.schemas.baseline import BaselineEntryRead, BaselineRead
from keystone.schemas.calendar import CalendarRead
from keystone.schemas.export import ExportEntities, ScheduleExport
from keystone.schemas.project import ProjectRead
from keystone.schemas.relationship import RelationshipRead
from keystone.schemas.schedule import (
    AssignmentRead,
    FloatPathRead,
    ScheduleLoopRead,
    ScheduleRead,
    ScheduleSettingsRead,
)
from keystone.schemas.task import TaskRead
from keystone.services.snapshot import ScheduleSnapshot

logger = get_logger(__name__)


def build_export(
    snapshot: ScheduleSnapshot,
    project: Project,
    exported_at: datetime | None = None,
) -> ScheduleExport:
    """Archive of ``snapshot`` together with the project record that owns it."""
    settings = get_settings()

    entities = ExportEntities(
        projects=[ProjectRead.model_validate(project)],
        tasks=[TaskRead.model_validate(task) for task in snapshot.ordered_tasks()],
        task_relationships=[
            RelationshipRead.model_validate(rel)
            for rel in sorted(snapshot.relationships.values(), key=lambda r: (str(r.predecessor_id), str(r.successor_id)))
        ],
        calendars=[
            CalendarRead.from_calendar(calendar)
            for calendar in sorted(snapshot.calendars.values(), key=lambda c: c.name)
        ],
        baselines=[
            BaselineRead(
                id=baseline.id,
                project_id=baseline.project_id,
                name=baseline.name,
                captured_at=baseline.captured_at,
                entries=[BaselineEntryRead.model_validate(entry) for entry in baseline.entries],
            )
            for baseline in sorted(snapshot.baselines.values(), key=lambda b: b.captured_at)
        ],
        resource_assignments=[
            AssignmentRead.model_validate(assignment) for assignment in snapshot.assignments.values()
        ],
        schedule_settings=ScheduleSettingsRead.model_validate(snapshot.settings),
        float_paths=[FloatPathRead.model_validate(path) for path in snapshot.float_paths],
        schedule_loops=[ScheduleLoopRead.model_validate(loop) for loop in snapshot.schedule_loops],
    )

    summary = {
        name: len(value)
        for name, value in entities
        if isinstance(value, list)
    }

    logger.info(f"Exported project {snapshot.project_id}: {summary}")

    return ScheduleExport(
        exported_at=exported_at or datetime.utcnow(),
        app_name=settings.app_name,
        app_version=settings.app_version,
        project_id=snapshot.project_id,
        schedule_version=snapshot.version,
        entities=entities,
        summary=summary,
    )


def build_schedule_view(snapshot: ScheduleSnapshot) -> ScheduleRead:
    """The live schedule as returned by GET /projects/{id}/schedule."""
    return ScheduleRead(
        project_id=snapshot.project_id,
        version=snapshot.version,
        settings=ScheduleSettingsRead.model_validate(snapshot.settings),
        project_finish=snapshot.project_finish,
        tasks=[TaskRead.model_validate(task) for task in snapshot.ordered_tasks()],
        relationships=[RelationshipRead.model_validate(rel) for rel in snapshot.relationships.values()],
        float_paths=[FloatPathRead.model_validate(path) for path in snapshot.float_paths],
    )
