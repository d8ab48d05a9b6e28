"""
SQL persistence for schedule snapshots.

Maps the engine's in-memory records (keystone.services.snapshot) to and from the
SQLModel tables. All writes go through one AsyncSession; the caller owns the
transaction and commits via commit() once a save has succeeded.
"""

import uuid
from datetime import datetime

from fastapi import Depends
from sqlalchemy import delete, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from keystone.database import get_session
from keystone.exceptions import NotFoundError, StaleRecomputeError
from keystone.logging_config import get_logger
from keystone.models import (
    Baseline,
    BaselineTask,
    Calendar,
    CalendarException,
    FloatPathEntry,
    Project,
    ResourceAssignment,
    ScheduleLoopEntry,
    Task,
    TaskRelationship,
)
from keystone.services.calendar import WorkCalendar
from keystone.services.snapshot import (
    AssignmentRecord,
    BaselineEntry,
    BaselineRecord,
    FloatPath,
    RelationshipRecord,
    ScheduleLoop,
    ScheduleSettings,
    ScheduleSnapshot,
    TaskRecord,
)

logger = get_logger(__name__)

# Columns copied one-to-one between Task rows and TaskRecords
TASK_FIELDS = (
    "name",
    "description",
    "wbs_code",
    "duration_days",
    "status",
    "priority",
    "assigned_to",
    "parent_task_id",
    "calendar_id",
    "start_date",
    "end_date",
    "early_start",
    "early_finish",
    "late_start",
    "late_finish",
    "total_float",
    "free_float",
    "is_critical",
)


class SqlScheduleRepository:
    """Loads and saves one project's schedule at a time."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    # =========================================================================
    # Loading
    # =========================================================================

    async def get_project(self, project_id: uuid.UUID) -> Project:
        project = await self.session.get(Project, project_id)
        if not project:
            raise NotFoundError("Project", str(project_id))
        return project

    async def load_tasks(self, project_id: uuid.UUID) -> dict[uuid.UUID, TaskRecord]:
        result = await self.session.execute(select(Task).where(Task.project_id == project_id))
        return {row.id: task_record_from_row(row) for row in result.scalars().all()}

    async def load_relationships(
        self, project_id: uuid.UUID
    ) -> dict[tuple[uuid.UUID, uuid.UUID], RelationshipRecord]:
        result = await self.session.execute(
            select(TaskRelationship).where(TaskRelationship.project_id == project_id)
        )
        relationships = {}
        for row in result.scalars().all():
            rel = RelationshipRecord(
                predecessor_id=row.predecessor_id,
                successor_id=row.successor_id,
                type=row.type,
                lag_days=row.lag_days,
            )
            relationships[rel.key] = rel
        return relationships

    async def load_calendar(self, calendar_id: uuid.UUID) -> WorkCalendar:
        calendar = await self.session.get(Calendar, calendar_id)
        if not calendar:
            raise NotFoundError("Calendar", str(calendar_id))
        calendars = await self._build_calendars([calendar])
        return calendars[calendar_id]

    async def load_calendars(self, project_id: uuid.UUID) -> dict[uuid.UUID, WorkCalendar]:
        """Project-owned calendars plus the shared ones."""
        result = await self.session.execute(
            select(Calendar).where(
                or_(Calendar.project_id == project_id, Calendar.project_id.is_(None))
            )
        )
        return await self._build_calendars(list(result.scalars().all()))

    async def _build_calendars(self, rows: list[Calendar]) -> dict[uuid.UUID, WorkCalendar]:
        if not rows:
            return {}
        result = await self.session.execute(
            select(CalendarException).where(
                CalendarException.calendar_id.in_([row.id for row in rows])
            )
        )
        exceptions: dict[uuid.UUID, dict] = {row.id: {} for row in rows}
        for exc in result.scalars().all():
            exceptions[exc.calendar_id][exc.date] = exc.is_working

        return {
            row.id: WorkCalendar(
                id=row.id,
                name=row.name,
                working_weekdays=frozenset(row.working_weekdays),
                exceptions=exceptions[row.id],
            )
            for row in rows
        }

    async def load_baselines(self, project_id: uuid.UUID) -> dict[uuid.UUID, BaselineRecord]:
        result = await self.session.execute(
            select(Baseline).where(Baseline.project_id == project_id).order_by(Baseline.captured_at)
        )
        rows = list(result.scalars().all())
        if not rows:
            return {}

        entries_result = await self.session.execute(
            select(BaselineTask).where(BaselineTask.baseline_id.in_([row.id for row in rows]))
        )
        entries: dict[uuid.UUID, list[BaselineEntry]] = {row.id: [] for row in rows}
        for entry in entries_result.scalars().all():
            entries[entry.baseline_id].append(BaselineEntry(
                task_id=entry.task_id,
                start_date=entry.start_date,
                end_date=entry.end_date,
                duration_days=entry.duration_days,
            ))

        return {
            row.id: BaselineRecord(
                id=row.id,
                project_id=row.project_id,
                name=row.name,
                captured_at=row.captured_at,
                entries=tuple(entries[row.id]),
            )
            for row in rows
        }

    async def load_snapshot(self, project_id: uuid.UUID) -> ScheduleSnapshot:
        """Everything needed to validate and schedule a project."""
        project = await self.get_project(project_id)
        tasks = await self.load_tasks(project_id)

        assignments_result = await self.session.execute(
            select(ResourceAssignment).where(ResourceAssignment.project_id == project_id)
        )
        assignments = {
            (row.task_id, row.resource_id): AssignmentRecord(
                task_id=row.task_id,
                resource_id=row.resource_id,
                allocation=row.allocation,
            )
            for row in assignments_result.scalars().all()
        }

        paths_result = await self.session.execute(
            select(FloatPathEntry)
            .where(FloatPathEntry.project_id == project_id)
            .order_by(FloatPathEntry.sequence)
        )
        float_paths = [
            FloatPath(
                sequence=row.sequence,
                task_ids=[uuid.UUID(t) for t in row.task_ids],
                total_float=row.total_float,
            )
            for row in paths_result.scalars().all()
        ]

        loops_result = await self.session.execute(
            select(ScheduleLoopEntry)
            .where(ScheduleLoopEntry.project_id == project_id)
            .order_by(ScheduleLoopEntry.detected_at)
        )
        schedule_loops = [
            ScheduleLoop(
                id=row.id,
                project_id=row.project_id,
                task_ids=[uuid.UUID(t) for t in row.task_ids],
                detected_at=row.detected_at,
            )
            for row in loops_result.scalars().all()
        ]

        finishes = [t.end_date for t in tasks.values() if t.end_date is not None]

        return ScheduleSnapshot(
            project_id=project_id,
            settings=ScheduleSettings(
                anchor_date=project.anchor_date,
                default_calendar_id=project.default_calendar_id,
            ),
            calendars=await self.load_calendars(project_id),
            tasks=tasks,
            relationships=await self.load_relationships(project_id),
            assignments=assignments,
            baselines=await self.load_baselines(project_id),
            float_paths=float_paths,
            schedule_loops=schedule_loops,
            project_finish=max(finishes) if finishes else None,
            version=project.schedule_version,
        )

    # =========================================================================
    # Saving
    # =========================================================================

    async def save_tasks(self, project_id: uuid.UUID, tasks: dict[uuid.UUID, TaskRecord]) -> None:
        """
        Make the project's task rows match ``tasks``.

        Relationships and assignments touching removed tasks must already be
        gone; save_snapshot deletes them first.
        """
        result = await self.session.execute(select(Task.id).where(Task.project_id == project_id))
        stored_ids = set(result.scalars().all())

        removed = stored_ids - tasks.keys()
        if removed:
            # One statement so parent/child rows go together
            await self.session.execute(delete(Task).where(Task.id.in_(list(removed))))

        existing: dict[uuid.UUID, Task] = {}
        kept = list(stored_ids - removed)
        if kept:
            rows = await self.session.execute(select(Task).where(Task.id.in_(kept)))
            existing = {row.id: row for row in rows.scalars().all()}

        now = datetime.utcnow()
        # Parents before children for the parent_task_id foreign key
        for record in sorted(tasks.values(), key=lambda t: t.sort_key):
            row = existing.get(record.id)
            if row is None:
                row = Task(id=record.id, project_id=project_id, created_at=now)
            for field in TASK_FIELDS:
                setattr(row, field, getattr(record, field))
            row.level = record.level
            row.updated_at = now
            self.session.add(row)
        await self.session.flush()

        logger.debug(f"Saved {len(tasks)} task(s) for project {project_id} ({len(removed)} removed)")

    async def save_relationships(
        self,
        project_id: uuid.UUID,
        relationships: dict[tuple[uuid.UUID, uuid.UUID], RelationshipRecord],
    ) -> None:
        await self.session.execute(
            delete(TaskRelationship).where(TaskRelationship.project_id == project_id)
        )
        for rel in relationships.values():
            self.session.add(TaskRelationship(
                predecessor_id=rel.predecessor_id,
                successor_id=rel.successor_id,
                project_id=project_id,
                type=rel.type,
                lag_days=rel.lag_days,
            ))
        await self.session.flush()

    async def save_assignments(
        self,
        project_id: uuid.UUID,
        assignments: dict[tuple[uuid.UUID, uuid.UUID], AssignmentRecord],
    ) -> None:
        await self.session.execute(
            delete(ResourceAssignment).where(ResourceAssignment.project_id == project_id)
        )
        for assignment in assignments.values():
            self.session.add(ResourceAssignment(
                task_id=assignment.task_id,
                resource_id=assignment.resource_id,
                project_id=project_id,
                allocation=assignment.allocation,
            ))
        await self.session.flush()

    async def save_float_paths(self, project_id: uuid.UUID, float_paths: list[FloatPath]) -> None:
        await self.session.execute(
            delete(FloatPathEntry).where(FloatPathEntry.project_id == project_id)
        )
        for path in float_paths:
            self.session.add(FloatPathEntry(
                project_id=project_id,
                sequence=path.sequence,
                total_float=path.total_float,
                task_ids=[str(t) for t in path.task_ids],
            ))
        await self.session.flush()

    async def save_baseline(self, baseline: BaselineRecord) -> None:
        self.session.add(Baseline(
            id=baseline.id,
            project_id=baseline.project_id,
            name=baseline.name,
            captured_at=baseline.captured_at,
        ))
        await self.session.flush()
        for entry in baseline.entries:
            self.session.add(BaselineTask(
                baseline_id=baseline.id,
                task_id=entry.task_id,
                start_date=entry.start_date,
                end_date=entry.end_date,
                duration_days=entry.duration_days,
            ))
        await self.session.flush()

    async def save_schedule_loop(self, loop: ScheduleLoop) -> None:
        self.session.add(ScheduleLoopEntry(
            id=loop.id,
            project_id=loop.project_id,
            task_ids=[str(t) for t in loop.task_ids],
            detected_at=loop.detected_at,
        ))
        await self.session.flush()

    async def save_calendar(
        self, calendar: WorkCalendar, project_id: uuid.UUID | None = None
    ) -> None:
        self.session.add(Calendar(
            id=calendar.id,
            name=calendar.name,
            project_id=project_id,
            working_weekdays=sorted(calendar.working_weekdays),
        ))
        await self.session.flush()
        for day, is_working in calendar.exceptions.items():
            self.session.add(CalendarException(calendar_id=calendar.id, date=day, is_working=is_working))
        await self.session.flush()

    async def save_snapshot(self, snapshot: ScheduleSnapshot, expected_version: int) -> None:
        """
        Persist a mutated snapshot if nobody else saved in the meantime.

        The version check is a conditional UPDATE on the project row: when the
        stored version is no longer ``expected_version`` no row matches and
        StaleRecomputeError is raised before anything else is written.
        """
        result = await self.session.execute(
            update(Project)
            .where(
                Project.id == snapshot.project_id,
                Project.schedule_version == expected_version,
            )
            .values(
                schedule_version=snapshot.version,
                anchor_date=snapshot.settings.anchor_date,
                default_calendar_id=snapshot.settings.default_calendar_id,
                updated_at=datetime.utcnow(),
            )
        )
        if result.rowcount == 0:
            project = await self.get_project(snapshot.project_id)
            await self.session.refresh(project)
            raise StaleRecomputeError(
                str(snapshot.project_id),
                expected_version,
                project.schedule_version,
            )

        # Edges and assignments first: they reference tasks that may be removed
        await self.session.execute(
            delete(TaskRelationship).where(TaskRelationship.project_id == snapshot.project_id)
        )
        await self.session.execute(
            delete(ResourceAssignment).where(ResourceAssignment.project_id == snapshot.project_id)
        )
        await self.save_tasks(snapshot.project_id, snapshot.tasks)
        await self.save_relationships(snapshot.project_id, snapshot.relationships)
        await self.save_assignments(snapshot.project_id, snapshot.assignments)
        await self.save_float_paths(snapshot.project_id, snapshot.float_paths)

        logger.info(
            f"Saved schedule for project {snapshot.project_id}: "
            f"version {expected_version} -> {snapshot.version}"
        )

    async def delete_project(self, project_id: uuid.UUID) -> None:
        """Remove a project and everything that belongs to it."""
        project = await self.get_project(project_id)

        baseline_ids = select(Baseline.id).where(Baseline.project_id == project_id)
        await self.session.execute(delete(BaselineTask).where(BaselineTask.baseline_id.in_(baseline_ids)))
        for model in (Baseline, FloatPathEntry, ScheduleLoopEntry, ResourceAssignment, TaskRelationship, Task):
            await self.session.execute(delete(model).where(model.project_id == project_id))
        await self.session.delete(project)
        await self.session.flush()

        calendar_ids = select(Calendar.id).where(Calendar.project_id == project_id)
        await self.session.execute(
            delete(CalendarException).where(CalendarException.calendar_id.in_(calendar_ids))
        )
        await self.session.execute(delete(Calendar).where(Calendar.project_id == project_id))
        logger.info(f"Deleted project {project_id}")


def task_record_from_row(row: Task) -> TaskRecord:
    return TaskRecord(
        id=row.id,
        project_id=row.project_id,
        **{field: getattr(row, field) for field in TASK_FIELDS},
    )


async def get_repository(session: AsyncSession = Depends(get_session)) -> SqlScheduleRepository:
    """FastAPI dependency: a repository bound to the request's session."""
    return SqlScheduleRepository(session)
