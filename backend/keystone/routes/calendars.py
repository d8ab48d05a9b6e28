"""
Calendar routes for the Keystone API.

A calendar is created once with its weekly pattern and exception dates. Tasks
and projects reference it by id.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import select

from keystone.logging_config import get_logger
from keystone.models import Calendar
from keystone.repository import SqlScheduleRepository, get_repository
from keystone.schemas import CalendarCreate, CalendarRead
from keystone.services.calendar import WorkCalendar

logger = get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=CalendarRead, status_code=status.HTTP_201_CREATED)
async def create_calendar(
    calendar_in: CalendarCreate,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> CalendarRead:
    """Create a calendar, shared by all projects when project_id is omitted."""
    if calendar_in.project_id is not None:
        await repo.get_project(calendar_in.project_id)

    calendar = WorkCalendar(
        id=uuid.uuid4(),
        name=calendar_in.name,
        working_weekdays=frozenset(calendar_in.working_weekdays),
        exceptions={exc.date: exc.is_working for exc in calendar_in.exceptions},
    )
    await repo.save_calendar(calendar, calendar_in.project_id)

    logger.info(f"Created calendar: id={calendar.id} name='{calendar.name}'")

    return CalendarRead.from_calendar(calendar)


@router.get("/", response_model=list[CalendarRead])
async def list_calendars(
    project_id: uuid.UUID | None = None,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> list[CalendarRead]:
    """Shared calendars, plus the project's own when project_id is given."""
    if project_id is not None:
        calendars = await repo.load_calendars(project_id)
    else:
        result = await repo.session.execute(select(Calendar.id).where(Calendar.project_id.is_(None)))
        calendars = {cid: await repo.load_calendar(cid) for cid in result.scalars().all()}
    return [CalendarRead.from_calendar(c) for c in sorted(calendars.values(), key=lambda c: c.name)]


@router.get("/{calendar_id}", response_model=CalendarRead)
async def get_calendar(
    calendar_id: uuid.UUID,
    repo: SqlScheduleRepository = Depends(get_repository),
) -> CalendarRead:
    return CalendarRead.from_calendar(await repo.load_calendar(calendar_id))
