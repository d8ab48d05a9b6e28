import datetime as dt
import uuid
from datetime import date, datetime

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class Calendar(SQLModel, table=True):
    """
    Working-time calendar.

    project_id is NULL for calendars shared by every project.
    working_weekdays holds 0 (Monday) .. 6 (Sunday).
    """

    __tablename__ = "calendars"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    project_id: uuid.UUID | None = Field(default=None, index=True)
    working_weekdays: list[int] = Field(
        default_factory=lambda: [0, 1, 2, 3, 4],
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)


class CalendarException(SQLModel, table=True):
    """A dated override of the weekly pattern (holiday or extra working day)."""

    __tablename__ = "calendar_exceptions"

    calendar_id: uuid.UUID = Field(foreign_key="calendars.id", primary_key=True)
    date: dt.date = Field(primary_key=True)
    is_working: bool = Field(default=False)
