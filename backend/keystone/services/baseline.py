"""
Baselines and variance.

A baseline freezes every task's start, end and duration at one moment. Comparing
a baseline with the live schedule reports, per task, how many working days the
finish has slipped (positive) or gained (negative), and which tasks were added or
removed since the capture.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime

from keystone.exceptions import DuplicateBaselineNameError, NotFoundError
from keystone.logging_config import get_logger
from keystone.services.snapshot import BaselineEntry, BaselineRecord, ScheduleSnapshot

logger = get_logger(__name__)


@dataclass
class TaskVariance:
    """Baseline vs live dates for one task."""
    task_id: uuid.UUID
    name: str
    baseline_start: date | None
    baseline_end: date | None
    live_start: date | None
    live_end: date | None
    schedule_variance_days: int | None  # Positive = slipped
    start_variance_days: int | None
    duration_variance_days: int


@dataclass
class VarianceReport:
    baseline_id: uuid.UUID
    baseline_name: str
    captured_at: datetime
    variances: list[TaskVariance] = field(default_factory=list)
    added: list[uuid.UUID] = field(default_factory=list)
    removed: list[uuid.UUID] = field(default_factory=list)

    @property
    def slipped(self) -> list[TaskVariance]:
        return [v for v in self.variances if (v.schedule_variance_days or 0) > 0]


def capture_baseline(
    snapshot: ScheduleSnapshot,
    name: str,
    captured_at: datetime | None = None,
) -> BaselineRecord:
    """
    Freeze the current task dates under a name unique within the project.

    The snapshot is not modified; the caller stores the returned record.
    """
    name = name.strip()
    if any(b.name == name for b in snapshot.baselines.values()):
        raise DuplicateBaselineNameError(name)

    entries = tuple(
        BaselineEntry(
            task_id=task.id,
            start_date=task.start_date,
            end_date=task.end_date,
            duration_days=task.duration_days,
        )
        for task in snapshot.ordered_tasks()
    )
    baseline = BaselineRecord(
        id=uuid.uuid4(),
        project_id=snapshot.project_id,
        name=name,
        captured_at=captured_at or datetime.utcnow(),
        entries=entries,
    )
    logger.info(f"Captured baseline '{name}' for project {snapshot.project_id} ({len(entries)} task(s))")
    return baseline


def compare_to_baseline(snapshot: ScheduleSnapshot, baseline_id: uuid.UUID) -> VarianceReport:
    """Variance of the live schedule against a stored baseline."""
    baseline = snapshot.baselines.get(baseline_id)
    if baseline is None:
        raise NotFoundError("Baseline", str(baseline_id))

    report = VarianceReport(
        baseline_id=baseline.id,
        baseline_name=baseline.name,
        captured_at=baseline.captured_at,
    )

    for task in snapshot.ordered_tasks():
        entry = baseline.entry_for(task.id)
        if entry is None:
            report.added.append(task.id)
            continue

        calendar = snapshot.calendar_for(task)
        schedule_variance = None
        if entry.end_date is not None and task.end_date is not None:
            schedule_variance = calendar.working_days_between(entry.end_date, task.end_date)
        start_variance = None
        if entry.start_date is not None and task.start_date is not None:
            start_variance = calendar.working_days_between(entry.start_date, task.start_date)

        report.variances.append(TaskVariance(
            task_id=task.id,
            name=task.name,
            baseline_start=entry.start_date,
            baseline_end=entry.end_date,
            live_start=task.start_date,
            live_end=task.end_date,
            schedule_variance_days=schedule_variance,
            start_variance_days=start_variance,
            duration_variance_days=task.duration_days - entry.duration_days,
        ))

    report.removed = [
        entry.task_id for entry in baseline.entries if entry.task_id not in snapshot.tasks
    ]
    logger.debug(
        f"Baseline '{baseline.name}': {len(report.variances)} compared, "
        f"{len(report.added)} added, {len(report.removed)} removed"
    )
    return report
