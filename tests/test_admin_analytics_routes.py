from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.access.models import Department, UserProfile
from app.access.roles import Role
from app.analytics.service import DepartmentPerformance, UserPerformance
from app.analytics.stats import ResponseStats
from app.dependencies import auth as auth_deps
from app.dependencies import services as service_deps
from app.main import create_app
from app.sla.tracker import DepartmentCompliance

NOW = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def _profile(user_id: str, role: Role, department: str | None) -> UserProfile:
    return UserProfile(
        id=user_id,
        email=f"{user_id}@example.com",
        full_name=user_id,
        role=role,
        department_code=department,
        created_at=NOW,
        updated_at=NOW,
    )


ADMIN = _profile("admin", Role.SUPER_ADMIN, None)
SALES_MANAGER = _profile("sales-manager", Role.SALES_MANAGER, "SAL")
SALESPERSON = _profile("salesperson", Role.SALESPERSON, "SAL")


@pytest.fixture
def api():
    app = create_app()
    services = {
        "users": AsyncMock(),
        "analyzer": AsyncMock(),
        "tracker": AsyncMock(),
        "audit": AsyncMock(),
    }
    state = {"actor": ADMIN}

    async def override_users():
        return services["users"]

    async def override_analyzer():
        return services["analyzer"]

    async def override_tracker():
        return services["tracker"]

    async def override_audit():
        return services["audit"]

    app.dependency_overrides[auth_deps.get_user_service] = override_users
    app.dependency_overrides[auth_deps.get_current_actor] = lambda: state["actor"]
    app.dependency_overrides[service_deps.get_response_analyzer] = override_analyzer
    app.dependency_overrides[service_deps.get_sla_tracker] = override_tracker
    app.dependency_overrides[service_deps.get_audit_logger] = override_audit

    client = TestClient(app)
    try:
        yield client, services, state
    finally:
        app.dependency_overrides.clear()


def test_admin_creates_user(api):
    client, services, _ = api
    created = _profile("new-user", Role.SALESPERSON, "SAL")
    services["users"].create_user = AsyncMock(return_value=created)

    response = client.post(
        "/admin/users",
        json={"email": "new-user@example.com", "full_name": "New User", "role": "salesperson", "department_code": "SAL"},
    )

    assert response.status_code == 201
    assert response.json()["role"] == "salesperson"
    kwargs = services["users"].create_user.await_args.kwargs
    assert kwargs["role"] is Role.SALESPERSON


def test_update_user_only_sends_provided_fields(api):
    client, services, _ = api
    services["users"].update_user = AsyncMock(return_value=_profile("salesperson", Role.SALES_MANAGER, "SAL"))

    response = client.patch("/admin/users/salesperson", json={"role": "sales_manager"})

    assert response.status_code == 200
    services["users"].update_user.assert_awaited_with(ADMIN, "salesperson", role=Role.SALES_MANAGER)


def test_department_listing(api):
    client, services, _ = api
    services["users"].list_departments = AsyncMock(return_value=[Department("SAL", "Sales", 48.0, 4.0)])

    response = client.get("/admin/departments")

    assert response.status_code == 200
    assert response.json() == [
        {"code": "SAL", "name": "Sales", "default_sla_hours": 48.0, "first_response_sla_hours": 4.0}
    ]


def test_audit_log_is_admin_only(api):
    client, services, state = api
    services["audit"].list_entries = AsyncMock(return_value=[])

    assert client.get("/admin/audit").status_code == 200
    state["actor"] = SALES_MANAGER
    response = client.get("/admin/audit")
    assert response.status_code == 403
    assert response.json()["details"] == {"operation": "user.manage"}


def test_manager_department_performance_is_scoped(api):
    client, services, state = api
    state["actor"] = SALES_MANAGER
    empty = ResponseStats.empty()
    services["analyzer"].department_breakdown = AsyncMock(
        return_value=[
            DepartmentPerformance("MKT", empty, empty, empty),
            DepartmentPerformance("SAL", ResponseStats(2, 1800.0, 1800.0, 2400.0), empty, empty),
        ]
    )

    response = client.get("/analytics/performance/departments")

    assert response.status_code == 200
    body = response.json()
    assert [row["department_code"] for row in body] == ["SAL"]
    assert body[0]["response"]["p90"] == 2400.0

    assert client.get("/analytics/performance/departments", params={"department": "MKT"}).status_code == 403


def test_staff_analytics_limits(api):
    client, services, state = api
    state["actor"] = SALESPERSON
    services["users"].get_profile = AsyncMock(side_effect=lambda user_id: _profile(user_id, Role.SALESPERSON, "SAL"))
    services["analyzer"].compute_user_stats = AsyncMock(return_value=ResponseStats(1, 60.0, 60.0, 60.0))
    services["analyzer"].user_breakdown = AsyncMock(return_value=[UserPerformance("salesperson", ResponseStats.empty())])

    own = client.get("/analytics/response-time/users/salesperson")
    assert own.status_code == 200
    assert own.json()["count"] == 1

    assert client.get("/analytics/response-time/users/salesperson-two").status_code == 403
    assert client.get("/analytics/performance/users").status_code == 403
    assert client.get("/analytics/response-time/departments/SAL").status_code == 403


def test_sla_compliance_for_admin_covers_all_departments(api):
    client, services, _ = api
    services["tracker"].compliance_report = AsyncMock(return_value=[DepartmentCompliance("SAL", total_tickets=3)])

    response = client.get("/analytics/sla-compliance")

    assert response.status_code == 200
    assert response.json()[0]["total_tickets"] == 3
    assert services["tracker"].compliance_report.await_args.kwargs == {"department_code": None}


def test_backfill_is_admin_only(api):
    client, services, state = api
    services["analyzer"].backfill_ticket = AsyncMock(return_value=3)

    response = client.post("/admin/tickets/t-1/response-times/backfill")
    assert response.status_code == 200
    assert response.json() == {"ticket_id": "t-1", "changed_events": 3}
    services["analyzer"].backfill_ticket.assert_awaited_once_with("t-1")

    state["actor"] = SALES_MANAGER
    assert client.post("/admin/tickets/t-1/response-times/backfill").status_code == 403
