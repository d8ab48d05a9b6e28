"""
CPM scheduler tests.

All schedules are anchored on Monday 2024-01-01 with the standard
Monday-Friday calendar unless stated otherwise. Finish dates are boundaries: a
5-day task starting Monday Jan 1 finishes Monday Jan 8, the first day an FS
successor may start.
"""

import random
import uuid
from datetime import date

import pytest

from keystone.exceptions import CycleDetectedError, UnscheduledGraphError
from keystone.models.enums import RelationshipType
from keystone.services.calendar import WorkCalendar
from keystone.services.critical_path import analyze_critical_path, schedule_snapshot
from keystone.services.snapshot import FloatPath

from tests.conftest import ScheduleBuilder


class TestWorkedExamples:

    def test_single_chain_is_critical(self, schedule):
        """
        A (5d) -> FS -> B (3d), anchor on a working day.
        Expected: A 0..5, B 5..8, both critical.
        """
        schedule.task("1", duration=5, name="A")
        schedule.task("2", duration=3, name="B")
        schedule.link("1", "2")

        schedule_snapshot(schedule.snapshot)
        a, b = schedule.get("1"), schedule.get("2")

        assert (a.early_start, a.early_finish) == (date(2024, 1, 1), date(2024, 1, 8))
        assert (b.early_start, b.early_finish) == (date(2024, 1, 8), date(2024, 1, 11))
        assert a.total_float == 0 and a.is_critical
        assert b.total_float == 0 and b.is_critical
        assert schedule.snapshot.project_finish == date(2024, 1, 11)

    def test_parallel_task_carries_float(self, example_schedule):
        """
        Add C (2d) starting at the anchor with no successors.
        Expected: C.LF = project finish (day 8), C.LS = day 6, TF = 6; FloatPath = [A, B].
        """
        analysis = schedule_snapshot(example_schedule.snapshot)
        c = example_schedule.get("3")

        assert c.early_start == date(2024, 1, 1)
        assert c.early_finish == date(2024, 1, 3)
        assert c.late_finish == date(2024, 1, 11)
        assert c.late_start == date(2024, 1, 9)
        assert c.total_float == 6
        assert c.free_float == 6
        assert not c.is_critical

        assert example_schedule.snapshot.float_paths == [
            FloatPath(sequence=1, task_ids=[example_schedule["1"], example_schedule["2"]], total_float=0),
        ]
        assert analysis.critical_path_task_ids == [example_schedule["1"], example_schedule["2"]]

    def test_start_and_end_dates_follow_early_dates(self, example_schedule):
        schedule_snapshot(example_schedule.snapshot)
        for task in example_schedule.snapshot.tasks.values():
            assert task.start_date == task.early_start
            assert task.end_date == task.early_finish


class TestRelationshipTypes:

    def build(self, type, lag=0, pred_duration=5, succ_duration=3) -> ScheduleBuilder:
        schedule = ScheduleBuilder()
        schedule.task("1", duration=pred_duration)
        schedule.task("2", duration=succ_duration)
        schedule.link("1", "2", type, lag)
        schedule_snapshot(schedule.snapshot)
        return schedule

    def test_finish_to_start_with_lag(self):
        schedule = self.build(RelationshipType.FINISH_TO_START, lag=2)
        # Pred finishes Mon Jan 8; + 2 working days = Wed Jan 10
        assert schedule.get("2").early_start == date(2024, 1, 10)

    def test_finish_to_start_with_lead(self):
        schedule = self.build(RelationshipType.FINISH_TO_START, lag=-2)
        # Mon Jan 8 - 2 working days = Thu Jan 4
        assert schedule.get("2").early_start == date(2024, 1, 4)

    def test_start_to_start(self):
        schedule = self.build(RelationshipType.START_TO_START, lag=1)
        assert schedule.get("2").early_start == date(2024, 1, 2)
        assert schedule.get("2").early_finish == date(2024, 1, 5)

    def test_finish_to_finish(self):
        schedule = self.build(RelationshipType.FINISH_TO_FINISH)
        # Successor finishes with predecessor (Jan 8) so starts 3 days earlier
        assert schedule.get("2").early_finish == date(2024, 1, 8)
        assert schedule.get("2").early_start == date(2024, 1, 3)

    def test_start_to_finish(self):
        schedule = self.build(RelationshipType.START_TO_FINISH, lag=4, succ_duration=2)
        # Successor may finish no earlier than pred start + 4 = Fri Jan 5
        assert schedule.get("2").early_finish == date(2024, 1, 5)
        assert schedule.get("2").early_start == date(2024, 1, 3)

    def test_successor_never_starts_before_anchor(self):
        schedule = self.build(RelationshipType.FINISH_TO_FINISH, pred_duration=1, succ_duration=5)
        # FF would pull the successor before the anchor; it is held at the anchor
        assert schedule.get("2").early_start == date(2024, 1, 1)

    def test_diamond_waits_for_longest_branch(self):
        """
            A (3d)
           /     \\
          B (2d)  C (4d)
           \\     /
            D (1d)
        """
        schedule = ScheduleBuilder()
        for code, duration in (("1", 3), ("2", 2), ("3", 4), ("4", 1)):
            schedule.task(code, duration=duration)
        schedule.link("1", "2")
        schedule.link("1", "3")
        schedule.link("2", "4")
        schedule.link("3", "4")
        schedule_snapshot(schedule.snapshot)

        # A: Jan 1-4, C: Jan 4-10, D starts Jan 10
        assert schedule.get("4").early_start == date(2024, 1, 10)
        assert schedule.get("2").total_float == 2
        assert schedule.get("2").free_float == 2
        assert [t for t in schedule.snapshot.float_paths[0].task_ids] == [
            schedule["1"], schedule["3"], schedule["4"],
        ]

    def test_milestone_has_zero_duration(self):
        schedule = ScheduleBuilder()
        schedule.task("1", duration=3)
        schedule.task("2", duration=0, name="Handover")
        schedule.link("1", "2")
        schedule_snapshot(schedule.snapshot)

        milestone = schedule.get("2")
        assert milestone.early_start == milestone.early_finish == date(2024, 1, 4)


class TestCalendars:

    def test_anchor_on_weekend_rolls_forward(self):
        schedule = ScheduleBuilder(anchor_date=date(2024, 1, 6))
        schedule.task("1", duration=1)
        schedule_snapshot(schedule.snapshot)
        assert schedule.get("1").early_start == date(2024, 1, 8)

    def test_holiday_extends_duration(self, schedule):
        holidays = WorkCalendar(id=uuid.uuid4(), name="Holidays", exceptions={date(2024, 1, 3): False})
        schedule.snapshot.calendars[holidays.id] = holidays
        schedule.snapshot.settings.default_calendar_id = holidays.id
        schedule.task("1", duration=5)
        schedule_snapshot(schedule.snapshot)
        assert schedule.get("1").early_finish == date(2024, 1, 9)

    def test_task_calendar_override(self, schedule):
        seven_day = WorkCalendar(id=uuid.uuid4(), name="Seven day", working_weekdays=frozenset(range(7)))
        schedule.snapshot.calendars[seven_day.id] = seven_day
        schedule.task("1", duration=5)
        schedule.task("2", duration=5, calendar_id=seven_day.id)
        schedule_snapshot(schedule.snapshot)

        assert schedule.get("1").early_finish == date(2024, 1, 8)
        assert schedule.get("2").early_finish == date(2024, 1, 6)

    def test_predecessor_finishing_on_successor_day_off(self, schedule):
        """
        A (7-day, 5d) finishes Saturday Jan 6; B (Mon-Fri) cannot start before
        Monday Jan 8 anyway, so A may slip to Sunday without moving B.
        """
        seven_day = WorkCalendar(id=uuid.uuid4(), name="Seven day", working_weekdays=frozenset(range(7)))
        schedule.snapshot.calendars[seven_day.id] = seven_day
        schedule.task("1", duration=5, calendar_id=seven_day.id)
        schedule.task("2", duration=1)
        schedule.link("1", "2", lag=1)
        schedule_snapshot(schedule.snapshot)

        a, b = schedule.get("1"), schedule.get("2")
        assert (a.early_start, a.early_finish) == (date(2024, 1, 1), date(2024, 1, 6))
        assert (a.late_start, a.late_finish) == (date(2024, 1, 2), date(2024, 1, 7))
        assert a.total_float == 1
        assert a.free_float == 0
        assert (b.early_start, b.early_finish) == (date(2024, 1, 8), date(2024, 1, 9))
        assert b.is_critical
        assert [p.task_ids for p in schedule.snapshot.float_paths] == [[schedule["2"]]]

    def test_mixed_calendar_chain_stays_critical(self, schedule):
        """Five-day A feeds seven-day B with no slack; both stay critical."""
        seven_day = WorkCalendar(id=uuid.uuid4(), name="Seven day", working_weekdays=frozenset(range(7)))
        schedule.snapshot.calendars[seven_day.id] = seven_day
        schedule.task("1", duration=5)
        schedule.task("2", duration=2, calendar_id=seven_day.id)
        schedule.link("1", "2")
        schedule_snapshot(schedule.snapshot)

        a, b = schedule.get("1"), schedule.get("2")
        assert a.early_finish == a.late_finish == date(2024, 1, 8)
        assert b.early_finish == date(2024, 1, 10)
        assert a.is_critical and b.is_critical

    def test_missing_anchor_defaults_to_today(self):
        schedule = ScheduleBuilder(anchor_date=None)
        schedule.task("1")
        analysis = analyze_critical_path(schedule.snapshot)
        assert analysis.anchor_date == date.today()


class TestFloatPaths:

    def test_all_tied_paths_reported(self, schedule):
        """Two equal-length chains both carry zero float: 1->2 and 3->4."""
        for code in ("1", "2", "3", "4"):
            schedule.task(code, duration=2)
        schedule.link("1", "2")
        schedule.link("3", "4")
        schedule_snapshot(schedule.snapshot)

        assert [p.task_ids for p in schedule.snapshot.float_paths] == [
            [schedule["1"], schedule["2"]],
            [schedule["3"], schedule["4"]],
        ]
        assert [p.sequence for p in schedule.snapshot.float_paths] == [1, 2]

    def test_branching_path(self, schedule):
        """1 feeds two equally long successors; both branches are minimum float."""
        for code in ("1", "2", "3"):
            schedule.task(code, duration=2)
        schedule.link("1", "2")
        schedule.link("1", "3")
        schedule_snapshot(schedule.snapshot)

        assert len(schedule.snapshot.float_paths) == 2
        assert all(p.task_ids[0] == schedule["1"] for p in schedule.snapshot.float_paths)


class TestFailures:

    def test_empty_project_is_unscheduled(self, schedule):
        with pytest.raises(UnscheduledGraphError):
            analyze_critical_path(schedule.snapshot)

    def test_stored_cycle_raises(self, schedule):
        schedule.task("1")
        schedule.task("2")
        schedule.task("3")
        schedule.link("1", "2")
        schedule.link("2", "3")
        schedule.link("3", "2")
        with pytest.raises(CycleDetectedError):
            analyze_critical_path(schedule.snapshot)


def mixed_calendars() -> list[WorkCalendar]:
    return [
        WorkCalendar(id=uuid.uuid4(), name="Seven day", working_weekdays=frozenset(range(7))),
        WorkCalendar(id=uuid.uuid4(), name="Four day", working_weekdays=frozenset({0, 1, 2, 3})),
        WorkCalendar(id=uuid.uuid4(), name="Weekend crew", working_weekdays=frozenset({4, 5, 6})),
        WorkCalendar(
            id=uuid.uuid4(),
            name="Holidays",
            exceptions={date(2024, 1, 5): False, date(2024, 1, 9): False, date(2024, 1, 13): True},
        ),
    ]


def random_schedule(seed: int, size: int = 40, mixed: bool = False) -> ScheduleBuilder:
    """
    Random DAG: edges only go from lower to higher index.

    With mixed=True every task picks one of several calendars (or the project
    default) and lags range over -3..3.
    """
    rng = random.Random(seed)
    schedule = ScheduleBuilder(anchor_date=date(2024, 1, 3))
    calendar_ids: list[uuid.UUID | None] = [None]
    if mixed:
        for calendar in mixed_calendars():
            schedule.snapshot.calendars[calendar.id] = calendar
            calendar_ids.append(calendar.id)

    codes = [str(i + 1) for i in range(size)]
    for code in codes:
        schedule.task(code, duration=rng.randint(0, 8), calendar_id=rng.choice(calendar_ids))

    lags = (-3, 3) if mixed else (-2, 3)
    for _ in range(size * 2):
        a, b = sorted(rng.sample(range(size), 2))
        if (schedule[codes[a]], schedule[codes[b]]) in schedule.snapshot.relationships:
            continue
        schedule.link(codes[a], codes[b], rng.choice(list(RelationshipType)), rng.randint(*lags))
    return schedule


def assert_consistent_floats(snapshot):
    for task in snapshot.tasks.values():
        assert task.early_start <= task.late_start
        assert task.early_finish <= task.late_finish
        assert task.total_float >= 0
        assert 0 <= task.free_float <= task.total_float
        assert task.is_critical == (task.total_float == 0)


class TestProperties:

    @pytest.mark.parametrize("seed", range(10))
    def test_early_dates_never_after_late_dates(self, seed):
        schedule = random_schedule(seed)
        schedule_snapshot(schedule.snapshot)
        assert_consistent_floats(schedule.snapshot)

    @pytest.mark.parametrize("seed", range(40))
    def test_early_dates_never_after_late_dates_across_calendars(self, seed):
        schedule = random_schedule(seed, mixed=True)
        schedule_snapshot(schedule.snapshot)
        assert_consistent_floats(schedule.snapshot)

    @pytest.mark.parametrize("seed", range(5))
    def test_recompute_is_idempotent(self, seed):
        schedule = random_schedule(seed)
        schedule_snapshot(schedule.snapshot)
        first = schedule.snapshot.clone()

        schedule_snapshot(schedule.snapshot)

        assert schedule.snapshot.tasks == first.tasks
        assert schedule.snapshot.float_paths == first.float_paths
        assert schedule.snapshot.project_finish == first.project_finish

    @pytest.mark.parametrize("seed", range(5))
    def test_float_paths_are_connected(self, seed):
        schedule = random_schedule(seed)
        schedule_snapshot(schedule.snapshot)
        relationships = schedule.snapshot.relationships
        minimum = min(t.total_float for t in schedule.snapshot.tasks.values())

        assert schedule.snapshot.float_paths
        for path in schedule.snapshot.float_paths:
            assert path.total_float == minimum
            for a, b in zip(path.task_ids, path.task_ids[1:]):
                assert (a, b) in relationships
