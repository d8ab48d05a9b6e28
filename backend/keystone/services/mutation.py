"""
Schedule mutation service.

The single entry point for edits to tasks, relationships, resource assignments
and schedule settings. Every operation:

1. Clones the incoming snapshot (the caller's copy is never touched)
2. Validates and applies the change against the WBS hierarchy and dependency graph
3. Recomputes CPM dates for the whole project
4. Bumps the schedule version and returns the new snapshot

A rejected change raises before anything is returned, so the caller still holds
the unchanged original.
"""

import uuid
from typing import Any, Iterable

from keystone.exceptions import NotFoundError
from keystone.logging_config import get_logger
from keystone.schemas.relationship import RelationshipCreate, RelationshipUpdate
from keystone.schemas.schedule import AssignmentCreate
from keystone.schemas.task import TaskCreate, TaskUpdate
from keystone.services.critical_path import schedule_snapshot
from keystone.services.graph import DependencyGraph
from keystone.services.snapshot import AssignmentRecord, ScheduleSnapshot, TaskRecord
from keystone.services.wbs import WbsHierarchy

logger = get_logger(__name__)

SETTINGS_FIELDS = {"anchor_date", "default_calendar_id"}
NULLABLE_TASK_FIELDS = {"description", "assigned_to", "calendar_id"}


class ScheduleMutationService:
    """Stateless: all state lives in the snapshots passed in and out."""

    # =========================================================================
    # Tasks
    # =========================================================================

    def create_task(self, snapshot: ScheduleSnapshot, data: TaskCreate) -> ScheduleSnapshot:
        working = snapshot.clone()
        task = self._add_task(working, data)
        logger.info(f"Created task {task.wbs_code} '{task.name}' in project {working.project_id}")
        return self._finish(working)

    def create_tasks(self, snapshot: ScheduleSnapshot, items: Iterable[TaskCreate]) -> ScheduleSnapshot:
        """
        Insert a batch, all or nothing.

        Items are applied parents first so a batch may contain both a parent and
        its children (the usual shape of a generated WBS).
        """
        working = snapshot.clone()
        ordered = sorted(items, key=lambda item: item.wbs_code.count("."))
        for item in ordered:
            self._add_task(working, item)
        logger.info(f"Created {len(ordered)} task(s) in project {working.project_id}")
        return self._finish(working)

    def update_task(
        self,
        snapshot: ScheduleSnapshot,
        task_id: uuid.UUID,
        data: TaskUpdate,
    ) -> ScheduleSnapshot:
        working = snapshot.clone()
        task = WbsHierarchy(working.tasks).get(task_id)
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key in NULLABLE_TASK_FIELDS
        }
        if changes.get("calendar_id") is not None:
            self._require_calendar(working, changes["calendar_id"])
        for key, value in changes.items():
            setattr(task, key, value)
        logger.info(f"Updated task {task.wbs_code}: {sorted(changes)}")
        return self._finish(working)

    def move_task(
        self,
        snapshot: ScheduleSnapshot,
        task_id: uuid.UUID,
        new_parent_id: uuid.UUID | None,
    ) -> ScheduleSnapshot:
        working = snapshot.clone()
        WbsHierarchy(working.tasks).move_task(task_id, new_parent_id)
        return self._finish(working)

    def delete_task(
        self,
        snapshot: ScheduleSnapshot,
        task_id: uuid.UUID,
        cascade: bool = False,
    ) -> ScheduleSnapshot:
        """Delete a task (and with cascade its subtree) plus every edge and assignment touching it."""
        working = snapshot.clone()
        graph = DependencyGraph.from_snapshot(working)
        doomed, removed_edges = WbsHierarchy(working.tasks).delete_task(task_id, cascade, graph)

        for rel in removed_edges:
            del working.relationships[rel.key]
        doomed_ids = set(doomed)
        working.assignments = {
            key: a for key, a in working.assignments.items() if a.task_id not in doomed_ids
        }
        return self._finish(working, graph)

    # =========================================================================
    # Relationships
    # =========================================================================

    def add_relationship(self, snapshot: ScheduleSnapshot, data: RelationshipCreate) -> ScheduleSnapshot:
        working = snapshot.clone()
        graph = DependencyGraph.from_snapshot(working)
        rel = graph.add_edge(data.predecessor_id, data.successor_id, data.type, data.lag_days)
        working.relationships[rel.key] = rel
        logger.info(f"Added {rel.type.value} {rel.predecessor_id} -> {rel.successor_id} (lag {rel.lag_days})")
        return self._finish(working, graph)

    def update_relationship(
        self,
        snapshot: ScheduleSnapshot,
        predecessor_id: uuid.UUID,
        successor_id: uuid.UUID,
        data: RelationshipUpdate,
    ) -> ScheduleSnapshot:
        working = snapshot.clone()
        graph = DependencyGraph.from_snapshot(working)
        # Graph edges share the snapshot's records, so this edits them in place
        graph.update_edge(predecessor_id, successor_id, data.type, data.lag_days)
        return self._finish(working, graph)

    def remove_relationship(
        self,
        snapshot: ScheduleSnapshot,
        predecessor_id: uuid.UUID,
        successor_id: uuid.UUID,
    ) -> ScheduleSnapshot:
        working = snapshot.clone()
        graph = DependencyGraph.from_snapshot(working)
        rel = graph.remove_edge(predecessor_id, successor_id)
        del working.relationships[rel.key]
        logger.info(f"Removed relationship {predecessor_id} -> {successor_id}")
        return self._finish(working, graph)

    # =========================================================================
    # Resource assignments
    # =========================================================================

    def assign_resource(
        self,
        snapshot: ScheduleSnapshot,
        task_id: uuid.UUID,
        data: AssignmentCreate,
    ) -> ScheduleSnapshot:
        """Assign (or re-allocate) a resource to a task."""
        working = snapshot.clone()
        WbsHierarchy(working.tasks).get(task_id)
        assignment = AssignmentRecord(
            task_id=task_id,
            resource_id=data.resource_id,
            allocation=data.allocation,
        )
        working.assignments[(task_id, data.resource_id)] = assignment
        return self._finish(working)

    def unassign_resource(
        self,
        snapshot: ScheduleSnapshot,
        task_id: uuid.UUID,
        resource_id: uuid.UUID,
    ) -> ScheduleSnapshot:
        working = snapshot.clone()
        if working.assignments.pop((task_id, resource_id), None) is None:
            raise NotFoundError("Resource assignment", f"{task_id}/{resource_id}")
        return self._finish(working)

    # =========================================================================
    # Settings / recompute
    # =========================================================================

    def update_settings(self, snapshot: ScheduleSnapshot, changes: dict[str, Any]) -> ScheduleSnapshot:
        """Change the anchor date and/or default calendar; unknown keys are ignored."""
        working = snapshot.clone()
        changes = {k: v for k, v in changes.items() if k in SETTINGS_FIELDS}
        if changes.get("default_calendar_id") is not None:
            self._require_calendar(working, changes["default_calendar_id"])
        for key, value in changes.items():
            setattr(working.settings, key, value)
        return self._finish(working)

    def recompute(self, snapshot: ScheduleSnapshot) -> ScheduleSnapshot:
        """Reschedule without any edit (e.g. after a calendar change)."""
        return self._finish(snapshot.clone())

    # =========================================================================
    # Helpers
    # =========================================================================

    def _add_task(self, working: ScheduleSnapshot, data: TaskCreate) -> TaskRecord:
        if data.calendar_id is not None:
            self._require_calendar(working, data.calendar_id)

        task = TaskRecord(
            id=uuid.uuid4(),
            project_id=working.project_id,
            name=data.name,
            wbs_code=data.wbs_code,
            duration_days=data.duration_days,
            description=data.description,
            parent_task_id=data.parent_task_id,
            status=data.status,
            priority=data.priority,
            assigned_to=data.assigned_to,
            calendar_id=data.calendar_id,
        )
        return WbsHierarchy(working.tasks).add_task(task, data.level)

    def _require_calendar(self, working: ScheduleSnapshot, calendar_id: uuid.UUID) -> None:
        if calendar_id not in working.calendars:
            raise NotFoundError("Calendar", str(calendar_id))

    def _finish(self, working: ScheduleSnapshot, graph: DependencyGraph | None = None) -> ScheduleSnapshot:
        """Recompute (when there is anything to schedule) and bump the version."""
        if working.tasks:
            schedule_snapshot(working, graph)
        else:
            working.float_paths = []
            working.project_finish = None
        working.version += 1
        return working


mutation_service = ScheduleMutationService()
