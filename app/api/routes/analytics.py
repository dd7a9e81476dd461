from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict

from app.access.models import UserProfile
from app.access.permissions import AnalyticsScope, Operation, PermissionEngine
from app.core.errors import ForbiddenError, NotFoundError
from app.dependencies.auth import CurrentActor, UserServiceDep
from app.dependencies.services import AnalyzerDep, PermissionsDep, SLATrackerDep, TicketServiceDep
from app.sla.calendar import TimeWindow
from app.tickets.models import ResponseDirection

router = APIRouter(prefix="/analytics", tags=["analytics"])


class ResponseStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    mean: float | None
    median: float | None
    p90: float | None


class DepartmentPerformanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    department_code: str
    response: ResponseStatsResponse
    first_response: ResponseStatsResponse
    requester_replies: ResponseStatsResponse


class UserPerformanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    response: ResponseStatsResponse


class MilestoneComplianceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    met: int
    breached: int
    pending: int
    compliance_pct: float | None


class DepartmentComplianceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    department_code: str
    total_tickets: int
    first_response: MilestoneComplianceResponse
    resolution: MilestoneComplianceResponse


class TicketSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    open: int
    closed: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    by_department: dict[str, int]
    by_type: dict[str, int]


def _window(start: datetime | None, end: datetime | None) -> TimeWindow:
    return TimeWindow(start=start, end=end)


def _department_scope(actor: UserProfile, permissions: PermissionEngine, department: str | None) -> str | None:
    """Department an aggregate may cover; ``None`` means every department (admins only)."""

    if actor.is_admin and permissions.has_capability(actor, Operation.ANALYTICS_VIEW):
        return department
    scope = AnalyticsScope(department_code=department or actor.department_code)
    permissions.ensure(actor, Operation.ANALYTICS_VIEW, scope)
    return scope.department_code


@router.get("/response-time/users/{user_id}", response_model=ResponseStatsResponse)
async def user_response_time(
    user_id: str,
    analyzer: AnalyzerDep,
    users: UserServiceDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    direction: ResponseDirection | None = Query(default=None),
) -> ResponseStatsResponse:
    subject = await users.get_profile(user_id)
    if subject is None:
        raise NotFoundError.for_resource("User", user_id)
    permissions.ensure(
        actor,
        Operation.ANALYTICS_VIEW,
        AnalyticsScope(user_id=subject.id, department_code=subject.department_code),
    )
    stats = await analyzer.compute_user_stats(user_id, _window(start, end), direction=direction)
    return ResponseStatsResponse.model_validate(stats)


@router.get("/response-time/departments/{department_code}", response_model=ResponseStatsResponse)
async def department_response_time(
    department_code: str,
    analyzer: AnalyzerDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    direction: ResponseDirection | None = Query(default=ResponseDirection.TO_REQUESTER),
) -> ResponseStatsResponse:
    permissions.ensure(actor, Operation.ANALYTICS_VIEW, AnalyticsScope(department_code=department_code))
    stats = await analyzer.compute_department_stats(department_code, _window(start, end), direction=direction)
    return ResponseStatsResponse.model_validate(stats)


@router.get("/response-time/tickets/{ticket_id}", response_model=ResponseStatsResponse)
async def ticket_response_time(
    ticket_id: str,
    analyzer: AnalyzerDep,
    tickets: TicketServiceDep,
    actor: CurrentActor,
    direction: ResponseDirection | None = Query(default=None),
) -> ResponseStatsResponse:
    await tickets.get_ticket(actor, ticket_id)
    stats = await analyzer.compute_ticket_stats(ticket_id, direction=direction)
    return ResponseStatsResponse.model_validate(stats)


@router.get("/performance/departments", response_model=list[DepartmentPerformanceResponse])
async def department_performance(
    analyzer: AnalyzerDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
    department: str | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
) -> list[DepartmentPerformanceResponse]:
    scope = _department_scope(actor, permissions, department)
    rows = await analyzer.department_breakdown(_window(start, end))
    if scope is not None:
        rows = [row for row in rows if row.department_code == scope]
    return [DepartmentPerformanceResponse.model_validate(row) for row in rows]


@router.get("/performance/users", response_model=list[UserPerformanceResponse])
async def user_performance(
    analyzer: AnalyzerDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
    department: str | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
) -> list[UserPerformanceResponse]:
    if actor.is_staff:
        raise ForbiddenError("Staff can only view their own response times", details={"operation": "analytics.view"})
    scope = _department_scope(actor, permissions, department)
    rows = await analyzer.user_breakdown(_window(start, end), department_code=scope)
    return [UserPerformanceResponse.model_validate(row) for row in rows]


@router.get("/sla-compliance", response_model=list[DepartmentComplianceResponse])
async def sla_compliance(
    tracker: SLATrackerDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
    department: str | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
) -> list[DepartmentComplianceResponse]:
    scope = _department_scope(actor, permissions, department)
    report = await tracker.compliance_report(_window(start, end), department_code=scope)
    return [DepartmentComplianceResponse.model_validate(row) for row in report]


@router.get("/summary", response_model=TicketSummaryResponse)
async def ticket_summary(
    analyzer: AnalyzerDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
    department: str | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
) -> TicketSummaryResponse:
    if not permissions.has_capability(actor, Operation.ANALYTICS_VIEW):
        raise ForbiddenError("You do not have permission to view the dashboard", details={"operation": "analytics.view"})
    summary = await analyzer.summarize(_window(start, end), department, visible_to=actor)
    return TicketSummaryResponse.model_validate(summary)
