"""
Keystone - CPM scheduling engine for WBS-structured projects.

Run with:
    uvicorn keystone.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from keystone.config import get_settings
from keystone.database import init_db
from keystone.exceptions import register_exception_handlers
from keystone.logging_config import get_logger, setup_logging
from keystone.routes import baselines, calendars, projects, relationships, tasks

setup_logging()
logger = get_logger(__name__)

settings = get_settings()

ROUTERS = [
    (projects.router, "/projects", "Projects"),
    (calendars.router, "/calendars", "Calendars"),
    (tasks.router, "/tasks", "Tasks"),
    (relationships.router, "/relationships", "Relationships"),
    (baselines.router, "/baselines", "Baselines"),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info(f"{settings.app_name} {settings.app_version} ready")
    yield
    logger.info(f"{settings.app_name} shutting down")


app = FastAPI(
    title=settings.app_name,
    description="Critical Path Method scheduling over a WBS task hierarchy",
    version=settings.app_version,
    lifespan=lifespan,
)

register_exception_handlers(app)

for router, prefix, tag in ROUTERS:
    app.include_router(router, prefix=prefix, tags=[tag])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
