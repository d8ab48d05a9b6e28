"""
Baseline routes for the Keystone API.
"""

import uuid

from fastapi import APIRouter, Depends, status

from keystone.exceptions import NotFoundError
from keystone.logging_config import get_logger
from keystone.models import Baseline
from keystone.repository import SqlScheduleRepository, get_repository
from keystone.schemas import BaselineCreate, BaselineRead, VarianceReportRead
from keystone.services.coordinator import ScheduleCoordinator, get_coordinator

logger = get_logger(__name__)

router = APIRouter()


def baseline_read(baseline) -> BaselineRead:
    return BaselineRead.model_validate(baseline)


@router.post("/", response_model=BaselineRead, status_code=status.HTTP_201_CREATED)
async def capture_baseline(
    baseline_in: BaselineCreate,
    wait: bool = True,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> BaselineRead:
    """
    Capture the current schedule under a name.

    While a mutation is in flight the request waits for it (up to the configured
    timeout) or, with wait=false, fails at once with 423 schedule_busy.
    """
    await repo.get_project(baseline_in.project_id)
    baseline = await coordinator.capture_baseline(
        repo, baseline_in.project_id, baseline_in.name, wait=wait,
    )
    return baseline_read(baseline)


@router.get("/", response_model=list[BaselineRead])
async def list_baselines(
    project_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> list[BaselineRead]:
    """Baselines of a project, oldest first."""
    await repo.get_project(project_id)
    baselines = await repo.load_baselines(project_id)
    return [baseline_read(b) for b in baselines.values()]


@router.get("/{baseline_id}/variance", response_model=VarianceReportRead)
async def get_variance(
    baseline_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
    coordinator: ScheduleCoordinator = Depends(get_coordinator),
) -> VarianceReportRead:
    """Compare a baseline with the live schedule (positive variance = slipped)."""
    baseline = await repo.session.get(Baseline, baseline_id)
    if not baseline:
        raise NotFoundError("Baseline", str(baseline_id))

    report = await coordinator.compare_baseline(repo, baseline.project_id, baseline_id)
    logger.debug(f"Variance for baseline {baseline_id}: {len(report.slipped)} slipped task(s)")
    return VarianceReportRead.model_validate(report)
