"""
Working-day calendar arithmetic.

A calendar is a weekly pattern of working weekdays (0 = Monday ... 6 = Sunday)
plus exception dates that override the pattern in either direction (a holiday on a
Monday, or a Saturday worked to catch up).

Durations and lags are whole working days. Dates produced by the scheduler are
boundaries: a 5-day task starting Monday finishes on the following Monday, which
is also the first day a finish-to-start successor can begin.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from keystone.exceptions import DateOutOfRangeError, InvalidCalendarConfigError

ONE_DAY = timedelta(days=1)

STANDARD_CALENDAR_ID = uuid.UUID(int=0)


@dataclass
class WorkCalendar:
    """Weekly working pattern with dated exceptions."""
    id: uuid.UUID
    name: str
    working_weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    # date -> True (worked) / False (holiday)
    exceptions: dict[date, bool] = field(default_factory=dict)

    def __post_init__(self):
        self.working_weekdays = frozenset(self.working_weekdays)
        invalid = [d for d in self.working_weekdays if not 0 <= d <= 6]
        if invalid:
            raise InvalidCalendarConfigError(
                f"Calendar '{self.name}' has invalid weekdays {sorted(invalid)}; use 0 (Mon) to 6 (Sun)",
                str(self.id),
            )
        if not self.working_weekdays:
            raise InvalidCalendarConfigError(
                f"Calendar '{self.name}' has no working weekdays and can never schedule work",
                str(self.id),
            )

    @classmethod
    def standard(cls, working_weekdays: Iterable[int] = (0, 1, 2, 3, 4)) -> "WorkCalendar":
        """Monday to Friday with no holidays."""
        return cls(
            id=STANDARD_CALENDAR_ID,
            name="Standard",
            working_weekdays=frozenset(working_weekdays),
        )

    def is_working_day(self, day: date) -> bool:
        if day in self.exceptions:
            return self.exceptions[day]
        return day.weekday() in self.working_weekdays

    def next_working_day(self, day: date) -> date:
        """The day itself when it is worked, otherwise the next worked day."""
        start = day
        try:
            while not self.is_working_day(day):
                day += ONE_DAY
        except OverflowError:
            raise DateOutOfRangeError(start, 1) from None
        return day

    def previous_working_day(self, day: date) -> date:
        start = day
        try:
            while not self.is_working_day(day):
                day -= ONE_DAY
        except OverflowError:
            raise DateOutOfRangeError(start, -1) from None
        return day

    def add_working_days(self, start: date, days: int) -> date:
        """
        Move ``days`` working days away from ``start``.

        Positive counts step forward, negative counts step backward, and only
        working days are counted. Zero returns ``start`` unchanged. Raises
        DateOutOfRangeError rather than stepping past date.min or date.max.
        """
        step = ONE_DAY if days > 0 else -ONE_DAY
        remaining = abs(days)
        current = start
        try:
            while remaining:
                current += step
                if self.is_working_day(current):
                    remaining -= 1
        except OverflowError:
            raise DateOutOfRangeError(start, days) from None
        return current

    def working_days_between(self, start: date, end: date) -> int:
        """
        Signed working-day distance from ``start`` to ``end``.

        Counts working days in the half-open interval (start, end], negated when
        ``end`` precedes ``start``. For working dates this is the inverse of
        add_working_days: add_working_days(a, working_days_between(a, b)) == b.
        """
        if end == start:
            return 0
        sign = 1
        if end < start:
            start, end = end, start
            sign = -1

        count = 0
        current = start
        while current < end:
            current += ONE_DAY
            if self.is_working_day(current):
                count += 1
        return sign * count
