"""
Task routes for the Keystone API.

Every write goes through the schedule coordinator, so the response already
carries freshly computed CPM dates.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import select

from keystone.exceptions import NotFoundError
from keystone.logging_config import get_logger
from keystone.models import Task
from keystone.repository import SqlScheduleRepository, get_repository
from keystone.schemas import (
    AssignmentCreate,
    AssignmentRead,
    TaskBulkCreate,
    TaskCreateRequest,
    TaskMove,
    TaskRead,
    TaskUpdate,
)
from keystone.services.coordinator import ScheduleCoordinator, get_coordinator
from keystone.services.snapshot import ScheduleSnapshot

logger = get_logger(__name__)

router = APIRouter()


async def get_task_row(repo: SqlScheduleRepository, task_id: uuid.UUID) -> Task:
    task = await repo.session.get(Task, task_id)
    if not task:
        raise NotFoundError("Task", str(task_id))
    return task


def find_by_code(snapshot: ScheduleSnapshot, wbs_code: str) -> TaskRead:
    for task in snapshot.tasks.values():
        if task.wbs_code == wbs_code:
            return TaskRead.model_validate(task)
    raise NotFoundError("Task", wbs_code)


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreateRequest,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> TaskRead:
    """
    Create a new task.

    The parent is inferred from the WBS code when parent_task_id is omitted.
    """
    snapshot = await coordinator.mutate(
        repo,
        task_in.project_id,
        lambda service, current: service.create_task(current, task_in),
    )

    return find_by_code(snapshot, task_in.wbs_code)


@router.post("/bulk", response_model=list[TaskRead], status_code=status.HTTP_201_CREATED)
async def create_tasks(
    batch: TaskBulkCreate,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> list[TaskRead]:
    """
    Create many tasks at once (e.g. a generated WBS).

    Either every task is inserted or, on the first invalid one, none are.
    """
    snapshot = await coordinator.mutate(
        repo,
        batch.project_id,
        lambda service, current: service.create_tasks(current, batch.tasks),
    )
    return [find_by_code(snapshot, item.wbs_code) for item in batch.tasks]


@router.get("/", response_model=list[TaskRead])
async def list_tasks(
    project_id: uuid.UUID | None = None,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> list[Task]:
    """
    List tasks in WBS order.

    Optionally filter by project_id.
    """
    query = select(Task)
    if project_id:
        query = query.where(Task.project_id == project_id)

    result = await repo.session.execute(query)
    tasks = sorted(result.scalars().all(), key=lambda t: [int(s) for s in t.wbs_code.split(".")])

    logger.debug(f"Listed {len(tasks)} tasks" + (f" for project={project_id}" if project_id else ""))

    return tasks


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> Task:
    """Get a task by ID."""
    return await get_task_row(repo, task_id)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> TaskRead:
    """Update a task and reschedule its project."""
    row = await get_task_row(repo, task_id)
    snapshot = await coordinator.mutate(
        repo,
        row.project_id,
        lambda service, current: service.update_task(current, task_id, task_in),
    )
    return TaskRead.model_validate(snapshot.tasks[task_id])


@router.post("/{task_id}/move", response_model=list[TaskRead])
async def move_task(
    task_id: uuid.UUID,
    move_in: TaskMove,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> list[TaskRead]:
    """
    Move a task (with its subtree) under a new parent.

    Returns the moved task followed by its recoded descendants.
    """
    row = await get_task_row(repo, task_id)
    snapshot = await coordinator.mutate(
        repo,
        row.project_id,
        lambda service, current: service.move_task(current, task_id, move_in.new_parent_id),
    )
    prefix = snapshot.tasks[task_id].wbs_code
    moved = [
        task for task in snapshot.ordered_tasks()
        if task.wbs_code == prefix or task.wbs_code.startswith(prefix + ".")
    ]
    return [TaskRead.model_validate(task) for task in moved]


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: uuid.UUID,
    cascade: bool = False,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> None:
    """
    Delete a task.

    A task with children is only deleted with cascade=true, which removes the
    whole subtree together with every relationship and assignment touching it.
    """
    row = await get_task_row(repo, task_id)
    logger.info(f"Deleting task {task_id}: '{row.name}' (cascade={cascade})")

    await coordinator.mutate(
        repo,
        row.project_id,
        lambda service, current: service.delete_task(current, task_id, cascade=cascade),
    )


# =============================================================================
# Resource assignments
# =============================================================================

@router.get("/{task_id}/assignments", response_model=list[AssignmentRead])
async def list_assignments(
    task_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> list[AssignmentRead]:
    row = await get_task_row(repo, task_id)
    snapshot = await repo.load_snapshot(row.project_id)
    return [
        AssignmentRead.model_validate(a) for a in snapshot.assignments.values() if a.task_id == task_id
    ]


@router.post("/{task_id}/assignments", response_model=AssignmentRead, status_code=status.HTTP_201_CREATED)
async def assign_resource(
    task_id: uuid.UUID,
    assignment_in: AssignmentCreate,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> AssignmentRead:
    row = await get_task_row(repo, task_id)
    snapshot = await coordinator.mutate(
        repo,
        row.project_id,
        lambda service, current: service.assign_resource(current, task_id, assignment_in),
    )
    return AssignmentRead.model_validate(snapshot.assignments[(task_id, assignment_in.resource_id)])


@router.delete("/{task_id}/assignments/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_resource(
    task_id: uuid.UUID,
    resource_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> None:
    row = await get_task_row(repo, task_id)
    await coordinator.mutate(
        repo,
        row.project_id,
        lambda service, current: service.unassign_resource(current, task_id, resource_id),
    )
