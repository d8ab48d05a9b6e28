import uuid
from datetime import date

from pydantic import BaseModel, Field

from keystone.services.calendar import WorkCalendar


class CalendarExceptionIn(BaseModel):
    """A dated override: a holiday (is_working=False) or an extra work day."""
    date: date
    is_working: bool = False


class CalendarCreate(BaseModel):
    name: str = Field(min_length=1)
    working_weekdays: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    exceptions: list[CalendarExceptionIn] = Field(default_factory=list)
    project_id: uuid.UUID | None = None


class CalendarRead(BaseModel):
    id: uuid.UUID
    name: str
    working_weekdays: list[int]
    exceptions: list[CalendarExceptionIn]

    @classmethod
    def from_calendar(cls, calendar: WorkCalendar) -> "CalendarRead":
        return cls(
            id=calendar.id,
            name=calendar.name,
            working_weekdays=sorted(calendar.working_weekdays),
            exceptions=[
                CalendarExceptionIn(date=day, is_working=is_working)
                for day, is_working in sorted(calendar.exceptions.items())
            ],
        )
