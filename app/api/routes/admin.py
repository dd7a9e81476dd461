from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.access.permissions import Operation
from app.access.roles import Role
from app.api.routes.tickets import AuditEntryResponse
from app.dependencies.auth import CurrentActor, UserServiceDep
from app.dependencies.services import AnalyzerDep, AuditLoggerDep, PermissionsDep

router = APIRouter(prefix="/admin", tags=["admin"])


class UserCreateRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    full_name: str = Field(..., min_length=1, max_length=255)
    role: Role
    department_code: str | None = Field(default=None, min_length=3, max_length=3)


class UserUpdateRequest(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    role: Role | None = None
    department_code: str | None = Field(default=None, min_length=3, max_length=3)
    is_active: bool | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str
    role: Role
    department_code: str | None
    is_active: bool
    created_at: datetime | None
    updated_at: datetime | None


class DepartmentUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    default_sla_hours: float | None = Field(default=None, gt=0)
    first_response_sla_hours: float | None = Field(default=None, gt=0)


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    default_sla_hours: float
    first_response_sla_hours: float


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    users: UserServiceDep,
    actor: CurrentActor,
    department: str | None = Query(default=None),
) -> list[UserResponse]:
    profiles = await users.list_users(actor, department_code=department)
    return [UserResponse.model_validate(profile) for profile in profiles]


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreateRequest, users: UserServiceDep, actor: CurrentActor) -> UserResponse:
    profile = await users.create_user(
        actor,
        email=payload.email,
        full_name=payload.full_name,
        role=payload.role,
        department_code=payload.department_code,
    )
    return UserResponse.model_validate(profile)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    users: UserServiceDep,
    actor: CurrentActor,
) -> UserResponse:
    changes = payload.model_dump(exclude_unset=True)
    profile = await users.update_user(actor, user_id, **changes)
    return UserResponse.model_validate(profile)


@router.get("/departments", response_model=list[DepartmentResponse])
async def list_departments(users: UserServiceDep, _: CurrentActor) -> list[DepartmentResponse]:
    departments = await users.list_departments()
    return [DepartmentResponse.model_validate(department) for department in departments]


@router.patch("/departments/{code}", response_model=DepartmentResponse)
async def update_department(
    code: str,
    payload: DepartmentUpdateRequest,
    users: UserServiceDep,
    actor: CurrentActor,
) -> DepartmentResponse:
    department = await users.update_department(actor, code.upper(), **payload.model_dump(exclude_unset=True))
    return DepartmentResponse.model_validate(department)


@router.get("/audit", response_model=list[AuditEntryResponse])
async def list_audit_entries(
    audit: AuditLoggerDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
    table_name: str | None = Query(default=None),
    record_id: str | None = Query(default=None),
    actor_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[AuditEntryResponse]:
    permissions.ensure(actor, Operation.USER_MANAGE)
    entries = await audit.list_entries(
        table_name=table_name, record_id=record_id, actor_id=actor_id, limit=limit, offset=offset
    )
    return [AuditEntryResponse.model_validate(entry) for entry in entries]


class BackfillResponse(BaseModel):
    ticket_id: str
    changed_events: int


@router.post("/tickets/{ticket_id}/response-times/backfill", response_model=BackfillResponse)
async def backfill_response_times(
    ticket_id: str,
    analyzer: AnalyzerDep,
    permissions: PermissionsDep,
    actor: CurrentActor,
) -> BackfillResponse:
    permissions.ensure(actor, Operation.USER_MANAGE)
    changed = await analyzer.backfill_ticket(ticket_id)
    return BackfillResponse(ticket_id=ticket_id, changed_events=changed)
