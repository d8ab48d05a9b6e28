"""
Relationship routes for the Keystone API.

Manages the typed, lagged edges of each project's task DAG. Adding an edge
that would close a loop is rejected with 400 and logged as a schedule loop.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import select

from keystone.logging_config import get_logger
from keystone.models import TaskRelationship
from keystone.repository import SqlScheduleRepository, get_repository
from keystone.routes.tasks import get_task_row
from keystone.schemas import RelationshipCreate, RelationshipRead, RelationshipUpdate
from keystone.services.coordinator import ScheduleCoordinator, get_coordinator

logger = get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=RelationshipRead, status_code=status.HTTP_201_CREATED)
async def create_relationship(
    rel_in: RelationshipCreate,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> RelationshipRead:
    """
    Create a relationship between two tasks of the same project.

    Validates:
    - Both tasks exist (and share a project)
    - Not a self-reference
    - Relationship doesn't already exist
    - Won't create a cycle
    """
    predecessor = await get_task_row(repo, rel_in.predecessor_id)
    snapshot = await coordinator.mutate(
        repo,
        predecessor.project_id,
        lambda service, current: service.add_relationship(current, rel_in),
    )
    return RelationshipRead.model_validate(
        snapshot.relationships[(rel_in.predecessor_id, rel_in.successor_id)]
    )


@router.get("/", response_model=list[RelationshipRead])
async def list_relationships(
    project_id: uuid.UUID | None = None,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> list[TaskRelationship]:
    """List relationships, optionally for one project."""
    query = select(TaskRelationship)
    if project_id:
        query = query.where(TaskRelationship.project_id == project_id)

    result = await repo.session.execute(query)
    relationships = list(result.scalars().all())

    logger.debug(f"Listed {len(relationships)} relationships")

    return relationships


@router.patch("/{predecessor_id}/{successor_id}", response_model=RelationshipRead)
async def update_relationship(
    predecessor_id: uuid.UUID,
    successor_id: uuid.UUID,
    rel_in: RelationshipUpdate,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> RelationshipRead:
    """Change a relationship's type or lag."""
    predecessor = await get_task_row(repo, predecessor_id)
    snapshot = await coordinator.mutate(
        repo,
        predecessor.project_id,
        lambda service, current: service.update_relationship(current, predecessor_id, successor_id, rel_in),
    )
    return RelationshipRead.model_validate(snapshot.relationships[(predecessor_id, successor_id)])


@router.delete("/{predecessor_id}/{successor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_relationship(
    predecessor_id: uuid.UUID,
    successor_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> None:
    """Delete a relationship; the successor may start earlier afterwards."""
    predecessor = await get_task_row(repo, predecessor_id)

    logger.info(f"Deleting relationship: {predecessor_id} -> {successor_id}")

    await coordinator.mutate(
        repo,
        predecessor.project_id,
        lambda service, current: service.remove_relationship(current, predecessor_id, successor_id),
    )
