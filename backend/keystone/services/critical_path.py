"""
Critical Path Method (CPM) implementation.

Calculates:
- Forward pass: Earliest Start (ES), Earliest Finish (EF)
- Backward pass: Latest Start (LS), Latest Finish (LF)
- Total float: working days between ES and LS
- Free float: slack before any immediate successor moves
- Float paths: chains of tasks carrying the project's minimum float

All date arithmetic goes through the task's WorkCalendar. Durations use the
task's own calendar; relationship lags use the successor's calendar.
"""

import uuid
from dataclasses import dataclass
from datetime import date

import networkx as nx

from keystone.exceptions import UnscheduledGraphError
from keystone.logging_config import get_logger
from keystone.models.enums import RelationshipType
from keystone.services.calendar import WorkCalendar
from keystone.services.graph import DependencyGraph
from keystone.services.snapshot import (
    FloatPath,
    RelationshipRecord,
    ScheduleSnapshot,
    TaskRecord,
)

logger = get_logger(__name__)


@dataclass
class TaskAnalysis:
    """Analysis results for a single task."""
    task_id: uuid.UUID
    name: str
    duration_days: int
    # Forward pass results
    earliest_start: date
    earliest_finish: date
    # Backward pass results
    latest_start: date
    latest_finish: date
    # Float
    total_float: int  # Working days (0 = critical)
    free_float: int
    is_critical: bool


@dataclass
class ProjectAnalysis:
    """Complete CPM analysis for a project."""
    project_id: uuid.UUID
    anchor_date: date
    project_finish: date  # Latest early finish
    task_analyses: dict[uuid.UUID, TaskAnalysis]
    calculation_order: list[uuid.UUID]
    minimum_float: int
    float_paths: list[FloatPath]

    @property
    def critical_path_task_ids(self) -> list[uuid.UUID]:
        return [t for t in self.calculation_order if self.task_analyses[t].is_critical]


def analyze_critical_path(
    snapshot: ScheduleSnapshot,
    graph: DependencyGraph | None = None,
) -> ProjectAnalysis:
    """
    Perform complete CPM analysis on a project snapshot.

    The snapshot is not modified; see apply_analysis.
    """
    if graph is None:
        graph = DependencyGraph.from_snapshot(snapshot)

    if not snapshot.tasks or not graph.anchors():
        raise UnscheduledGraphError(str(snapshot.project_id))

    anchor_date = snapshot.settings.anchor_date
    if anchor_date is None:
        anchor_date = date.today()
        logger.warning(f"Project {snapshot.project_id} has no anchor date; using {anchor_date}")

    return _calculate_cpm(snapshot, graph, anchor_date)


def _calculate_cpm(
    snapshot: ScheduleSnapshot,
    graph: DependencyGraph,
    anchor_date: date,
) -> ProjectAnalysis:
    """
    Calculate CPM forward and backward passes.

    Topological order is taken once and ties are broken by WBS code, so two runs
    over the same snapshot produce identical results.
    """
    tasks = snapshot.tasks
    order = graph.topological_order(key=lambda task_id: tasks[task_id].sort_key)
    calendars = {task_id: snapshot.calendar_for(tasks[task_id]) for task_id in order}

    # =========================================================================
    # Forward Pass: Calculate ES and EF
    # =========================================================================
    early: dict[uuid.UUID, tuple[date, date]] = {}

    for task_id in order:
        task = tasks[task_id]
        calendar = calendars[task_id]

        # Nothing starts before the project anchor
        es = calendar.next_working_day(anchor_date)
        for rel in graph.predecessors_of(task_id):
            pred_es, pred_ef = early[rel.predecessor_id]
            driven = _driven_early_start(rel, pred_es, pred_ef, task, calendar)
            if driven > es:
                es = driven

        es = calendar.next_working_day(es)
        ef = calendar.add_working_days(es, task.duration_days)
        early[task_id] = (es, ef)

    project_finish = max(ef for _, ef in early.values())

    # =========================================================================
    # Backward Pass: Calculate LF and LS
    # =========================================================================
    late: dict[uuid.UUID, tuple[date, date]] = {}

    for task_id in reversed(order):
        task = tasks[task_id]
        calendar = calendars[task_id]

        lf = project_finish
        for rel in graph.successors_of(task_id):
            succ_ls, succ_lf = late[rel.successor_id]
            driven = _driven_late_finish(
                rel, succ_ls, succ_lf, task, tasks[rel.successor_id],
                calendar, calendars[rel.successor_id], project_finish,
            )
            if driven < lf:
                lf = driven

        ls = calendar.add_working_days(lf, -task.duration_days)
        late[task_id] = (ls, lf)

    # =========================================================================
    # Calculate Float and Identify Critical Tasks
    # =========================================================================
    analyses: dict[uuid.UUID, TaskAnalysis] = {}

    for task_id in order:
        task = tasks[task_id]
        calendar = calendars[task_id]
        es, ef = early[task_id]
        ls, lf = late[task_id]

        total_float = calendar.working_days_between(es, ls)

        successors = graph.successors_of(task_id)
        if successors:
            free_float = min(
                _successor_slack(rel, es, ef, early[rel.successor_id], calendars[rel.successor_id])
                for rel in successors
            )
        else:
            free_float = calendar.working_days_between(ef, project_finish)
        free_float = max(0, min(free_float, total_float))

        analyses[task_id] = TaskAnalysis(
            task_id=task_id,
            name=task.name,
            duration_days=task.duration_days,
            earliest_start=es,
            earliest_finish=ef,
            latest_start=ls,
            latest_finish=lf,
            total_float=total_float,
            free_float=free_float,
            is_critical=total_float == 0,
        )

    minimum_float = min(a.total_float for a in analyses.values())
    float_paths = find_float_paths(graph, analyses, order, minimum_float)

    logger.debug(
        f"CPM for project {snapshot.project_id}: {len(order)} task(s), "
        f"finish {project_finish}, {len(float_paths)} float path(s) at {minimum_float} day(s)"
    )

    return ProjectAnalysis(
        project_id=snapshot.project_id,
        anchor_date=anchor_date,
        project_finish=project_finish,
        task_analyses=analyses,
        calculation_order=order,
        minimum_float=minimum_float,
        float_paths=float_paths,
    )


def _driven_early_start(
    rel: RelationshipRecord,
    pred_es: date,
    pred_ef: date,
    succ: TaskRecord,
    calendar: WorkCalendar,
) -> date:
    """Earliest start the relationship allows the successor."""
    lag = rel.lag_days

    if rel.type == RelationshipType.FINISH_TO_START:
        return calendar.add_working_days(pred_ef, lag)

    if rel.type == RelationshipType.START_TO_START:
        return calendar.add_working_days(pred_es, lag)

    if rel.type == RelationshipType.FINISH_TO_FINISH:
        # Successor may finish no earlier than predecessor finish + lag
        target_finish = calendar.add_working_days(pred_ef, lag)
        return calendar.add_working_days(target_finish, -succ.duration_days)

    # START_TO_FINISH: successor may finish no earlier than predecessor start + lag
    target_finish = calendar.add_working_days(pred_es, lag)
    return calendar.add_working_days(target_finish, -succ.duration_days)


def _driven_late_finish(
    rel: RelationshipRecord,
    succ_ls: date,
    succ_lf: date,
    pred: TaskRecord,
    succ: TaskRecord,
    calendar: WorkCalendar,
    succ_calendar: WorkCalendar,
    project_finish: date,
) -> date:
    """
    Latest finish the relationship allows the predecessor.

    The mirrored formulas below are exact on a shared calendar. When the two
    calendars differ they can land on a day the forward rule treats differently,
    so the estimate is then walked along the predecessor's calendar to the
    latest finish whose forward-driven successor start still fits before the
    successor's late start.
    """
    lag = rel.lag_days

    if rel.type == RelationshipType.FINISH_TO_START:
        estimate = succ_calendar.add_working_days(succ_ls, -lag)
    elif rel.type == RelationshipType.START_TO_START:
        latest_start = succ_calendar.add_working_days(succ_ls, -lag)
        estimate = calendar.add_working_days(latest_start, pred.duration_days)
    elif rel.type == RelationshipType.FINISH_TO_FINISH:
        estimate = succ_calendar.add_working_days(succ_lf, -lag)
    else:
        # START_TO_FINISH
        latest_start = succ_calendar.add_working_days(succ_lf, -lag)
        estimate = calendar.add_working_days(latest_start, pred.duration_days)

    def allows(finish: date) -> bool:
        start = calendar.add_working_days(finish, -pred.duration_days)
        return _driven_early_start(rel, start, finish, succ, succ_calendar) <= succ_ls

    lf = estimate
    while not allows(lf):
        lf = calendar.add_working_days(lf, -1)
    while lf < project_finish:
        later = calendar.add_working_days(lf, 1)
        if later > project_finish or not allows(later):
            break
        lf = later
    return lf


def _successor_slack(
    rel: RelationshipRecord,
    es: date,
    ef: date,
    succ_early: tuple[date, date],
    succ_calendar: WorkCalendar,
) -> int:
    """Working days this task can slip before the successor's early dates move."""
    succ_es, succ_ef = succ_early
    lag = rel.lag_days

    if rel.type == RelationshipType.FINISH_TO_START:
        return succ_calendar.working_days_between(succ_calendar.add_working_days(ef, lag), succ_es)
    if rel.type == RelationshipType.START_TO_START:
        return succ_calendar.working_days_between(succ_calendar.add_working_days(es, lag), succ_es)
    if rel.type == RelationshipType.FINISH_TO_FINISH:
        return succ_calendar.working_days_between(succ_calendar.add_working_days(ef, lag), succ_ef)
    return succ_calendar.working_days_between(succ_calendar.add_working_days(es, lag), succ_ef)


def find_float_paths(
    graph: DependencyGraph,
    analyses: dict[uuid.UUID, TaskAnalysis],
    order: list[uuid.UUID],
    minimum_float: int,
) -> list[FloatPath]:
    """
    Every maximal chain of minimum-float tasks joined by relationships.

    Ties are all reported. Paths are ordered by the position of their tasks in
    the calculation order.
    """
    position = {task_id: i for i, task_id in enumerate(order)}
    members = [t for t in order if analyses[t].total_float == minimum_float]
    subgraph = graph.nx_graph.subgraph(members)

    sources = [t for t in members if subgraph.in_degree(t) == 0]
    sinks = [t for t in members if subgraph.out_degree(t) == 0]

    paths: list[list[uuid.UUID]] = []
    for source in sources:
        if subgraph.out_degree(source) == 0:
            paths.append([source])
            continue
        paths.extend(nx.all_simple_paths(subgraph, source, sinks))

    paths.sort(key=lambda path: [position[t] for t in path])
    return [
        FloatPath(sequence=i + 1, task_ids=path, total_float=minimum_float)
        for i, path in enumerate(paths)
    ]


def apply_analysis(snapshot: ScheduleSnapshot, analysis: ProjectAnalysis) -> ScheduleSnapshot:
    """
    Write CPM results into the snapshot's tasks.

    start_date / end_date track the early dates; float paths are replaced.
    """
    for task_id, result in analysis.task_analyses.items():
        task = snapshot.tasks[task_id]
        task.early_start = result.earliest_start
        task.early_finish = result.earliest_finish
        task.late_start = result.latest_start
        task.late_finish = result.latest_finish
        task.total_float = result.total_float
        task.free_float = result.free_float
        task.is_critical = result.is_critical
        task.start_date = result.earliest_start
        task.end_date = result.earliest_finish

    snapshot.float_paths = analysis.float_paths
    snapshot.project_finish = analysis.project_finish
    return snapshot


def schedule_snapshot(snapshot: ScheduleSnapshot, graph: DependencyGraph | None = None) -> ProjectAnalysis:
    """Recompute and apply in one step; the snapshot is updated in place."""
    analysis = analyze_critical_path(snapshot, graph)
    apply_analysis(snapshot, analysis)
    return analysis
