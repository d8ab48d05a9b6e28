"""
Work Breakdown Structure hierarchy.

The WBS is a tree encoded twice: by ``parent_task_id`` and by dotted codes where
a child's code is its parent's code plus one segment ("1.2" -> "1.2.3"). This
module keeps the two encodings in agreement when tasks are added, moved or
deleted. It is independent of the dependency graph except for cascading deletes,
which must also drop every relationship touching the removed subtree.
"""

import re
import uuid

from keystone.exceptions import (
    DuplicateWbsCodeError,
    HasChildrenError,
    InvalidHierarchyError,
    NotFoundError,
)
from keystone.logging_config import get_logger
from keystone.services.graph import DependencyGraph
from keystone.services.snapshot import RelationshipRecord, TaskRecord, wbs_segments

logger = get_logger(__name__)

WBS_CODE_PATTERN = re.compile(r"^[1-9]\d*(\.[1-9]\d*)*$")


def parent_code(wbs_code: str) -> str | None:
    """'1.2.3' -> '1.2'; top-level codes have no parent."""
    if "." not in wbs_code:
        return None
    return wbs_code.rsplit(".", 1)[0]


class WbsHierarchy:
    """View over a project's task dict that enforces WBS invariants."""

    def __init__(self, tasks: dict[uuid.UUID, TaskRecord]):
        self.tasks = tasks

    def get(self, task_id: uuid.UUID) -> TaskRecord:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", str(task_id))
        return task

    def by_code(self) -> dict[str, TaskRecord]:
        return {task.wbs_code: task for task in self.tasks.values()}

    def children_of(self, task_id: uuid.UUID | None) -> list[TaskRecord]:
        """Direct children in WBS order; None lists the top-level tasks."""
        children = [t for t in self.tasks.values() if t.parent_task_id == task_id]
        return sorted(children, key=lambda t: t.sort_key)

    def descendants_of(self, task_id: uuid.UUID) -> list[TaskRecord]:
        """All tasks below task_id, depth-first in WBS order."""
        result = []
        stack = list(reversed(self.children_of(task_id)))
        while stack:
            task = stack.pop()
            result.append(task)
            stack.extend(reversed(self.children_of(task.id)))
        return result

    def next_child_code(self, parent_id: uuid.UUID | None) -> str:
        siblings = self.children_of(parent_id)
        next_segment = max((t.sort_key[-1] for t in siblings), default=0) + 1
        if parent_id is None:
            return str(next_segment)
        return f"{self.get(parent_id).wbs_code}.{next_segment}"

    # =========================================================================
    # Validation
    # =========================================================================

    def resolve_parent(
        self,
        wbs_code: str,
        parent_task_id: uuid.UUID | None = None,
        level: int | None = None,
    ) -> uuid.UUID | None:
        """
        Validate a new task's placement and return its parent id.

        When parent_task_id is omitted the parent is found by code, which is how
        generated WBS candidates (code + level only) get attached.
        """
        if not WBS_CODE_PATTERN.match(wbs_code):
            raise InvalidHierarchyError(
                f"WBS code '{wbs_code}' must be dot-separated positive integers such as 1.2.3"
            )

        segments = len(wbs_segments(wbs_code))
        if level is not None and level != segments:
            raise InvalidHierarchyError(
                f"WBS code '{wbs_code}' has {segments} level(s) but level {level} was given"
            )

        codes = self.by_code()
        if wbs_code in codes:
            raise DuplicateWbsCodeError(wbs_code)

        expected_parent = parent_code(wbs_code)

        if parent_task_id is not None:
            parent = self.get(parent_task_id)
            if parent.wbs_code != expected_parent:
                raise InvalidHierarchyError(
                    f"Parent code '{parent.wbs_code}' is not the prefix of '{wbs_code}'",
                    str(parent_task_id),
                )
            return parent.id

        if expected_parent is None:
            return None
        parent = codes.get(expected_parent)
        if parent is None:
            raise InvalidHierarchyError(
                f"No parent task with WBS code '{expected_parent}' for '{wbs_code}'"
            )
        return parent.id

    def add_task(self, task: TaskRecord, level: int | None = None) -> TaskRecord:
        task.parent_task_id = self.resolve_parent(task.wbs_code, task.parent_task_id, level)
        self.tasks[task.id] = task
        return task

    # =========================================================================
    # Mutations
    # =========================================================================

    def move_task(self, task_id: uuid.UUID, new_parent_id: uuid.UUID | None) -> list[TaskRecord]:
        """
        Re-parent a task, recoding it and its whole subtree.

        The task takes the next free code under its new parent; descendants keep
        their suffix so their relative order is preserved. Returns the recoded
        tasks (empty when the parent does not change).
        """
        task = self.get(task_id)
        if new_parent_id == task.parent_task_id:
            return []

        subtree = self.descendants_of(task_id)
        if new_parent_id is not None:
            self.get(new_parent_id)
            if new_parent_id == task_id or new_parent_id in {t.id for t in subtree}:
                raise InvalidHierarchyError(
                    f"Task {task_id} cannot move under itself or one of its descendants",
                    str(task_id),
                )

        old_prefix = task.wbs_code
        new_prefix = self.next_child_code(new_parent_id)

        task.parent_task_id = new_parent_id
        moved = [task] + subtree
        for item in moved:
            item.wbs_code = new_prefix + item.wbs_code[len(old_prefix):]

        logger.info(f"Moved task {task_id}: {old_prefix} -> {new_prefix} ({len(moved)} task(s) recoded)")
        return moved

    def delete_task(
        self,
        task_id: uuid.UUID,
        cascade: bool,
        graph: DependencyGraph,
    ) -> tuple[list[uuid.UUID], list[RelationshipRecord]]:
        """
        Delete a task, and with cascade its whole subtree.

        Everything is checked before anything is removed, so the task dict and
        the graph either both lose the subtree and its edges or are unchanged.
        Returns (removed task ids, removed relationships).
        """
        self.get(task_id)
        children = self.children_of(task_id)
        if children and not cascade:
            raise HasChildrenError(str(task_id), len(children))

        doomed = [task_id] + [t.id for t in self.descendants_of(task_id)]
        removed_edges = graph.remove_tasks(doomed)
        for doomed_id in doomed:
            del self.tasks[doomed_id]

        logger.info(
            f"Deleted task {task_id} with {len(doomed) - 1} descendant(s) "
            f"and {len(removed_edges)} relationship(s)"
        )
        return doomed, removed_edges
