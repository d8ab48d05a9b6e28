"""
Structured exceptions and error responses for Keystone.

Three families sit under KeystoneException:
- ScheduleValidationError: the request violates a graph, hierarchy or calendar
  invariant; the caller can fix the input.
- ConcurrencyError: another mutation got there first; safe to retry.
- StructuralError: the project cannot be scheduled in its current shape.

Every exception carries an error code and an HTTP status so the API layer can
render it without knowing the concrete type.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from keystone.logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a single error."""
    loc: Optional[List[str]] = None
    msg: str
    type: str


class ErrorResponse(BaseModel):
    """Structured error response format."""
    error: str  # Error code (e.g., "not_found", "cycle_detected")
    message: str
    details: Optional[List[ErrorDetail]] = None
    retryable: bool = False


# =============================================================================
# Base Exceptions
# =============================================================================

class KeystoneException(Exception):
    """Base exception for all Keystone errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(KeystoneException):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} with ID {resource_id} not found",
            error_code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
        )
        self.resource = resource
        self.resource_id = resource_id


class ScheduleValidationError(KeystoneException):
    """Input violates a schedule invariant."""

    def __init__(
        self,
        message: str,
        error_code: str = "validation_error",
        status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, error_code, status_code, details)


class ConcurrencyError(KeystoneException):
    """Conflicting concurrent work on the same project schedule."""

    retryable = True


class StructuralError(KeystoneException):
    """The project graph cannot be scheduled as it stands."""


# =============================================================================
# Validation Errors
# =============================================================================

class CycleDetectedError(ScheduleValidationError):
    """Adding a relationship would close a loop in the dependency graph."""

    def __init__(self, predecessor_id: str, successor_id: str, path: list, loop=None):
        super().__init__(
            message="Adding this relationship would create a cycle in the task graph",
            error_code="cycle_detected",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=[{
                "loc": ["body"],
                "msg": (
                    f"Relationship {predecessor_id} -> {successor_id} closes the loop "
                    + " -> ".join(str(task_id) for task_id in path)
                ),
                "type": "cycle_error",
            }],
        )
        self.predecessor_id = predecessor_id
        self.successor_id = successor_id
        self.path = path
        self.loop = loop


class SelfLoopError(ScheduleValidationError):
    """Task cannot depend on itself."""

    def __init__(self, task_id: str):
        super().__init__(
            message="A task cannot depend on itself",
            error_code="self_loop",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
        self.task_id = task_id


class DuplicateEdgeError(ScheduleValidationError):
    """Relationship between the pair already exists."""

    def __init__(self, predecessor_id: str, successor_id: str):
        super().__init__(
            message="This relationship already exists; update it instead",
            error_code="duplicate_edge",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.predecessor_id = predecessor_id
        self.successor_id = successor_id


class InvalidHierarchyError(ScheduleValidationError):
    """WBS tree would become inconsistent."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="invalid_hierarchy",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
        self.task_id = task_id


class HasChildrenError(ScheduleValidationError):
    """Non-cascading delete of a task that still owns sub-tasks."""

    def __init__(self, task_id: str, child_count: int):
        super().__init__(
            message=f"Task {task_id} has {child_count} sub-task(s); delete with cascade",
            error_code="has_children",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.task_id = task_id
        self.child_count = child_count


class DuplicateWbsCodeError(ScheduleValidationError):
    """WBS code already used in the project."""

    def __init__(self, wbs_code: str):
        super().__init__(
            message=f"WBS code {wbs_code} is already used in this project",
            error_code="duplicate_wbs_code",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.wbs_code = wbs_code


class InvalidCalendarConfigError(ScheduleValidationError):
    """Calendar can never schedule anything."""

    def __init__(self, message: str, calendar_id: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="invalid_calendar_config",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
        self.calendar_id = calendar_id


class DateOutOfRangeError(ScheduleValidationError):
    """Working-day arithmetic stepped outside the representable date range."""

    def __init__(self, start: date, days: int):
        super().__init__(
            message=f"Moving {days} working days from {start.isoformat()} leaves the supported date range",
            error_code="date_out_of_range",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
        self.start = start
        self.days = days


class DuplicateBaselineNameError(ScheduleValidationError):
    """Baseline names are unique per project."""

    def __init__(self, name: str):
        super().__init__(
            message=f"A baseline named '{name}' already exists for this project",
            error_code="duplicate_baseline_name",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.name = name


# =============================================================================
# Concurrency and Structural Errors
# =============================================================================

class ScheduleBusyError(ConcurrencyError):
    """A mutation is in flight for the project."""

    def __init__(self, project_id: str):
        super().__init__(
            message=f"Schedule for project {project_id} is being modified; retry shortly",
            error_code="schedule_busy",
            status_code=status.HTTP_423_LOCKED,
        )
        self.project_id = project_id


class StaleRecomputeError(ConcurrencyError):
    """Result was computed from a schedule version that is no longer current."""

    def __init__(self, project_id: str, expected_version: int, current_version: Optional[int]):
        super().__init__(
            message=(
                f"Schedule for project {project_id} moved from version {expected_version} "
                f"to {current_version}; result discarded"
            ),
            error_code="stale_recompute",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.project_id = project_id
        self.expected_version = expected_version
        self.current_version = current_version


class UnscheduledGraphError(StructuralError):
    """No anchor task to start the forward pass from."""

    def __init__(self, project_id: str):
        super().__init__(
            message=f"Project {project_id} has no task without predecessors to anchor the schedule",
            error_code="unscheduled_graph",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
        self.project_id = project_id


# =============================================================================
# Exception Handlers
# =============================================================================

def render_error(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[List[Dict[str, Any]]] = None,
    retryable: bool = False,
) -> JSONResponse:
    body = ErrorResponse(error=error_code, message=message, details=details, retryable=retryable)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def keystone_exception_handler(request: Request, exc: KeystoneException) -> JSONResponse:
    """Render any KeystoneException with its own code and status."""
    if exc.retryable:
        logger.info(f"{request.method} {request.url.path} -> {exc.error_code}: {exc.message}")
    return render_error(exc.status_code, exc.error_code, exc.message, exc.details, exc.retryable)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback and hide it from the client."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return render_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_error",
        "An unexpected error occurred",
    )


def register_exception_handlers(app):
    app.add_exception_handler(KeystoneException, keystone_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
