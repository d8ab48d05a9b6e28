"""
Background recompute of a project's schedule.

Enqueued with the schedule_version the project had at request time. If another
mutation lands first, the job finds a newer version and drops itself instead of
overwriting fresher dates.
"""

import uuid

from keystone.database import get_session_context
from keystone.exceptions import NotFoundError, StaleRecomputeError
from keystone.logging_config import get_logger
from keystone.repository import SqlScheduleRepository
from keystone.services.coordinator import get_coordinator

logger = get_logger(__name__)


async def recompute_project(ctx: dict, project_id: str, version: int) -> str:
    """
    ARQ job: full CPM recompute for one project.

    Args:
        ctx: ARQ context
        project_id: Project to reschedule
        version: The schedule_version at time of enqueueing

    Returns:
        Status message
    """
    coordinator = get_coordinator()

    async with get_session_context() as session:
        repo = SqlScheduleRepository(session)
        try:
            snapshot = await coordinator.recompute(repo, uuid.UUID(project_id), expected_version=version)
        except NotFoundError:
            return f"Project {project_id} not found - may have been deleted"
        except StaleRecomputeError as exc:
            logger.info(exc.message)
            return f"Stale job: version mismatch (expected {version}, got {exc.current_version})"

    logger.info(f"Recomputed project {project_id}: version {snapshot.version}, finish {snapshot.project_finish}")
    return f"Recomputed {len(snapshot.tasks)} tasks"
