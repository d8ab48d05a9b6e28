"""
Project routes for the Keystone API.
"""

import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, status
from sqlmodel import select

from keystone.exceptions import NotFoundError
from keystone.logging_config import get_logger
from keystone.models import Calendar, Project
from keystone.repository import SqlScheduleRepository, get_repository
from keystone.schemas import (
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
    ScheduleExport,
    ScheduleLoopRead,
    ScheduleRead,
)
from keystone.services.coordinator import ScheduleCoordinator, get_coordinator
from keystone.services.export import build_export, build_schedule_view
from keystone.services.mutation import SETTINGS_FIELDS
from keystone.worker import enqueue_recompute

logger = get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectCreate,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> Project:
    """
    Create a new project.

    If anchor_date is not provided, defaults to today.
    """
    project_data = project_in.model_dump()
    if project_data["anchor_date"] is None:
        project_data["anchor_date"] = date.today()
    if project_data["default_calendar_id"] is not None:
        if not await repo.session.get(Calendar, project_data["default_calendar_id"]):
            raise NotFoundError("Calendar", str(project_data["default_calendar_id"]))

    project = Project(**project_data)
    repo.session.add(project)
    await repo.session.flush()
    await repo.session.refresh(project)

    logger.info(f"Created project: id={project.id} name='{project.name}'")

    return project


@router.get("/", response_model=list[ProjectRead])
async def list_projects(
    repo: SqlScheduleRepository = Depends(get_repository),
) -> list[Project]:
    """List all projects."""
    result = await repo.session.execute(select(Project).order_by(Project.created_at))
    projects = list(result.scalars().all())

    logger.debug(f"Listed {len(projects)} projects")

    return projects


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> Project:
    """Get a project by ID."""
    return await repo.get_project(project_id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    project_in: ProjectUpdate,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> Project:
    """
    Update a project.

    Changing the anchor date or default calendar reschedules every task.
    """
    project = await repo.get_project(project_id)
    update_data = project_in.model_dump(exclude_unset=True)

    logger.info(f"Updating project {project_id}: {update_data}")

    settings_changes = {k: v for k, v in update_data.items() if k in SETTINGS_FIELDS}
    for field, value in update_data.items():
        if field in SETTINGS_FIELDS or (value is None and field in ("name", "status")):
            continue
        setattr(project, field, value)
    project.updated_at = datetime.utcnow()
    await repo.session.flush()

    if settings_changes:
        await coordinator.mutate(
            repo,
            project_id,
            lambda service, snapshot: service.update_settings(snapshot, settings_changes),
        )
    else:
        await repo.commit()

    await repo.session.refresh(project)
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> None:
    """Delete a project with its tasks, relationships, baselines and calendars."""
    await repo.delete_project(project_id)


# =============================================================================
# Schedule
# =============================================================================

@router.get("/{project_id}/schedule", response_model=ScheduleRead)
async def get_schedule(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> ScheduleRead:
    """Tasks with CPM dates, relationships and the current float paths."""
    snapshot = await repo.load_snapshot(project_id)
    return build_schedule_view(snapshot)


@router.post("/{project_id}/recompute", response_model=ScheduleRead)
async def recompute_schedule(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> ScheduleRead:
    """Recompute now, e.g. after calendar exceptions changed."""
    snapshot = await coordinator.recompute(repo, project_id)
    return build_schedule_view(snapshot)


@router.post("/{project_id}/recompute/enqueue", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_schedule_recompute(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> dict:
    """
    Queue a background recompute.

    The job carries the current schedule version and is dropped if another
    mutation lands before it runs.
    """
    project = await repo.get_project(project_id)
    job_id = await enqueue_recompute(str(project_id), project.schedule_version)
    return {"job_id": job_id, "version": project.schedule_version}


@router.get("/{project_id}/export", response_model=ScheduleExport)
async def export_project(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> ScheduleExport:
    project = await repo.get_project(project_id)
    snapshot = await repo.load_snapshot(project_id)
    return build_export(snapshot, project)


@router.get("/{project_id}/loops", response_model=list[ScheduleLoopRead])
async def list_schedule_loops(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> list[ScheduleLoopRead]:
    """Relationships rejected for closing a loop, oldest first."""
    snapshot = await repo.load_snapshot(project_id)
    return [ScheduleLoopRead.model_validate(loop) for loop in snapshot.schedule_loops]
