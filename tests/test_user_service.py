from __future__ import annotations

import pytest

from app.access.reference import DEFAULT_DEPARTMENTS, seed_departments
from app.access.roles import Role
from app.access.users import UserService
from app.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError


@pytest.fixture
def user_service(session_factory, audit, clock) -> UserService:
    return UserService(session_factory, audit=audit, clock=clock)


@pytest.mark.asyncio
async def test_departments_are_seeded_once(session_factory, user_service):
    assert await seed_departments(session_factory) == 0
    departments = await user_service.list_departments()
    assert [department.code for department in departments] == sorted(item.code for item in DEFAULT_DEPARTMENTS)


@pytest.mark.asyncio
async def test_create_user(user_service, audit, users):
    profile = await user_service.create_user(
        users["admin"], email=" Budi@Example.com ", full_name="Budi Santoso", role=Role.SALESPERSON,
        department_code="SAL",
    )
    assert profile.email == "budi@example.com"
    assert profile.is_staff

    stored = await user_service.get_profile(profile.id)
    assert stored.full_name == "Budi Santoso"
    assert stored.department_code == "SAL"

    trail = await audit.list_entries(table_name="users", record_id=profile.id)
    assert trail[0].after["email"] == "budi@example.com"


@pytest.mark.asyncio
async def test_create_user_rules(user_service, users):
    admin = users["admin"]
    with pytest.raises(ForbiddenError):
        await user_service.create_user(
            users["sales_manager"], email="x@example.com", full_name="X", role=Role.SALESPERSON,
            department_code="SAL",
        )
    with pytest.raises(ValidationError):
        await user_service.create_user(admin, email="not-an-email", full_name="X", role=Role.SALESPERSON,
                                       department_code="SAL")
    with pytest.raises(ValidationError):
        await user_service.create_user(admin, email="x@example.com", full_name="X", role=Role.SALESPERSON)
    with pytest.raises(NotFoundError):
        await user_service.create_user(admin, email="x@example.com", full_name="X", role=Role.SALESPERSON,
                                       department_code="ZZZ")
    with pytest.raises(ConflictError):
        await user_service.create_user(admin, email="salesperson@example.com", full_name="Dup",
                                       role=Role.SALESPERSON, department_code="SAL")


@pytest.mark.asyncio
async def test_update_user(user_service, users):
    admin = users["admin"]
    updated = await user_service.update_user(admin, "salesperson", role=Role.SALES_MANAGER, is_active=False)
    assert updated.role is Role.SALES_MANAGER
    assert not updated.is_active

    with pytest.raises(ValidationError):
        await user_service.update_user(admin, "admin", is_active=False)
    with pytest.raises(ValidationError):
        await user_service.update_user(admin, "salesperson-two", department_code=None)
    with pytest.raises(NotFoundError):
        await user_service.update_user(admin, "ghost", full_name="Ghost")


@pytest.mark.asyncio
async def test_update_department_sla(user_service, users):
    updated = await user_service.update_department(users["admin"], "EXI", default_sla_hours=24.0)
    assert updated.default_sla_hours == 24.0
    assert updated.first_response_sla_hours == 4.0

    with pytest.raises(ValidationError):
        await user_service.update_department(users["admin"], "EXI", first_response_sla_hours=0)
    with pytest.raises(ForbiddenError):
        await user_service.update_department(users["exim_manager"], "EXI", default_sla_hours=12.0)
    with pytest.raises(NotFoundError):
        await user_service.update_department(users["admin"], "ZZZ", name="Nowhere")
