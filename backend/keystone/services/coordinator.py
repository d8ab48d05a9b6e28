"""
Per-project serialization of schedule writes.

One asyncio.Lock per project makes every load -> mutate -> save cycle for that
project run alone, while different projects proceed in parallel. Saves are also
guarded by the project's schedule_version, so a writer outside this process (or
a background recompute enqueued earlier) can never overwrite a newer schedule.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Protocol

from keystone.config import get_settings
from keystone.exceptions import CycleDetectedError, ScheduleBusyError, StaleRecomputeError
from keystone.logging_config import get_logger
from keystone.services.baseline import VarianceReport, capture_baseline, compare_to_baseline
from keystone.services.mutation import ScheduleMutationService, mutation_service
from keystone.services.snapshot import BaselineRecord, ScheduleLoop, ScheduleSnapshot

logger = get_logger(__name__)

Operation = Callable[[ScheduleMutationService, ScheduleSnapshot], ScheduleSnapshot]


class ScheduleRepository(Protocol):
    """What the coordinator needs from persistence (see SqlScheduleRepository)."""

    async def load_snapshot(self, project_id: uuid.UUID) -> ScheduleSnapshot: ...

    async def save_snapshot(self, snapshot: ScheduleSnapshot, expected_version: int) -> None: ...

    async def save_baseline(self, baseline: BaselineRecord) -> None: ...

    async def save_schedule_loop(self, loop: ScheduleLoop) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class ScheduleCoordinator:
    """Owns the write path of every project's schedule."""

    def __init__(
        self,
        service: ScheduleMutationService | None = None,
        busy_timeout: float | None = None,
    ):
        self.service = service or mutation_service
        self.busy_timeout = busy_timeout if busy_timeout is not None else get_settings().schedule_busy_timeout
        # Entries live only while someone holds or waits for the lock
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._holders: dict[uuid.UUID, int] = {}

    def is_busy(self, project_id: uuid.UUID) -> bool:
        lock = self._locks.get(project_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def _project_lock(self, project_id: uuid.UUID, timeout: float | None = None) -> AsyncIterator[None]:
        """
        Hold the project's lock.

        timeout=None waits indefinitely; 0 fails at once when the project is
        busy; anything else waits that many seconds before ScheduleBusyError.
        """
        lock = self._locks.setdefault(project_id, asyncio.Lock())
        self._holders[project_id] = self._holders.get(project_id, 0) + 1
        try:
            if timeout is None or not lock.locked():
                await lock.acquire()
            elif timeout == 0:
                raise ScheduleBusyError(str(project_id))
            else:
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"Project {project_id} still busy after {timeout}s")
                    raise ScheduleBusyError(str(project_id))
            try:
                yield
            finally:
                lock.release()
        finally:
            self._holders[project_id] -= 1
            if not self._holders[project_id]:
                del self._holders[project_id]
                del self._locks[project_id]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def mutate(
        self,
        repo: ScheduleRepository,
        project_id: uuid.UUID,
        operation: Operation,
    ) -> ScheduleSnapshot:
        """
        Load, apply ``operation`` and save, all under the project lock.

        A rejected cycle is written to the loop log before the error reaches the
        caller; any other failure rolls the session back and propagates.
        """
        async with self._project_lock(project_id):
            snapshot = await repo.load_snapshot(project_id)
            try:
                updated = operation(self.service, snapshot)
            except CycleDetectedError as exc:
                await repo.rollback()
                if exc.loop is not None:
                    await repo.save_schedule_loop(exc.loop)
                    await repo.commit()
                raise

            try:
                await repo.save_snapshot(updated, expected_version=snapshot.version)
                await repo.commit()
            except Exception:
                await repo.rollback()
                raise

            logger.debug(f"Project {project_id} now at schedule version {updated.version}")
            return updated

    async def recompute(
        self,
        repo: ScheduleRepository,
        project_id: uuid.UUID,
        expected_version: int | None = None,
    ) -> ScheduleSnapshot:
        """
        Full reschedule of a project.

        With expected_version the request is dropped as stale if the project has
        moved on since it was issued (the background-job path).
        """
        async with self._project_lock(project_id):
            snapshot = await repo.load_snapshot(project_id)
            if expected_version is not None and snapshot.version != expected_version:
                raise StaleRecomputeError(str(project_id), expected_version, snapshot.version)

            updated = self.service.recompute(snapshot)
            try:
                await repo.save_snapshot(updated, expected_version=snapshot.version)
                await repo.commit()
            except Exception:
                await repo.rollback()
                raise
            return updated

    # =========================================================================
    # Baselines
    # =========================================================================

    async def capture_baseline(
        self,
        repo: ScheduleRepository,
        project_id: uuid.UUID,
        name: str,
        wait: bool = True,
    ) -> BaselineRecord:
        """
        Capture a baseline once no mutation is in flight.

        wait=False rejects immediately with ScheduleBusyError instead of
        waiting up to busy_timeout seconds.
        """
        timeout = self.busy_timeout if wait else 0
        async with self._project_lock(project_id, timeout=timeout):
            snapshot = await repo.load_snapshot(project_id)
            baseline = capture_baseline(snapshot, name)
            try:
                await repo.save_baseline(baseline)
                await repo.commit()
            except Exception:
                await repo.rollback()
                raise
            return baseline

    async def compare_baseline(
        self,
        repo: ScheduleRepository,
        project_id: uuid.UUID,
        baseline_id: uuid.UUID,
    ) -> VarianceReport:
        """Read-only; never waits for the lock."""
        snapshot = await repo.load_snapshot(project_id)
        return compare_to_baseline(snapshot, baseline_id)


coordinator = ScheduleCoordinator()


def get_coordinator() -> ScheduleCoordinator:
    """FastAPI dependency (overridable in tests)."""
    return coordinator
