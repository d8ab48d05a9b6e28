"""
ARQ worker for background schedule recomputes.

Run with:
    arq keystone.worker.WorkerSettings

The API enqueues ``recompute_project`` through enqueue_recompute(); each job
carries the schedule version it was requested against.
"""

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from keystone.config import get_settings
from keystone.logging_config import get_logger, setup_logging
from keystone.services.recalc import recompute_project

setup_logging()
logger = get_logger(__name__)

settings = get_settings()

redis_settings = RedisSettings.from_dsn(settings.redis_url)


async def startup(ctx: dict) -> None:
    logger.info(f"Keystone worker started, jobs: {[f.__name__ for f in WorkerSettings.functions]}")


async def shutdown(ctx: dict) -> None:
    logger.info("Keystone worker stopped")


class WorkerSettings:
    functions = [recompute_project]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = redis_settings
    max_jobs = 10
    job_timeout = 300  # seconds


_arq_pool: ArqRedis | None = None


async def get_arq_pool() -> ArqRedis:
    """Lazily created pool shared by every enqueue from this process."""
    global _arq_pool
    if _arq_pool is None:
        logger.debug(f"Connecting to Redis at {settings.redis_url}")
        _arq_pool = await create_pool(redis_settings)
    return _arq_pool


async def enqueue_recompute(project_id: str, version: int) -> str | None:
    """Queue a full recompute of ``project_id`` at ``version``; returns the job id."""
    pool = await get_arq_pool()
    job = await pool.enqueue_job("recompute_project", project_id, version)
    if job is None:
        logger.warning(f"Recompute for project {project_id} was not enqueued")
        return None
    logger.info(f"Enqueued recompute {job.job_id} for project {project_id} at version {version}")
    return job.job_id
