from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from app.access.permissions import PermissionEngine
from app.analytics.service import ResponseTimeAnalyzer
from app.audit.logger import AuditLogger
from app.sla.tracker import SLATracker
from app.tickets.service import TicketService


def _from_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} is not configured")
    return service


async def get_ticket_service(request: Request) -> TicketService:
    return _from_state(request, "ticket_service", "Ticket service")


async def get_sla_tracker(request: Request) -> SLATracker:
    return _from_state(request, "sla_tracker", "SLA tracker")


async def get_response_analyzer(request: Request) -> ResponseTimeAnalyzer:
    return _from_state(request, "response_analyzer", "Response analyzer")


async def get_audit_logger(request: Request) -> AuditLogger:
    return _from_state(request, "audit_logger", "Audit logger")


async def get_permission_engine(request: Request) -> PermissionEngine:
    return getattr(request.app.state, "permissions", None) or PermissionEngine()


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
SLATrackerDep = Annotated[SLATracker, Depends(get_sla_tracker)]
AnalyzerDep = Annotated[ResponseTimeAnalyzer, Depends(get_response_analyzer)]
AuditLoggerDep = Annotated[AuditLogger, Depends(get_audit_logger)]
PermissionsDep = Annotated[PermissionEngine, Depends(get_permission_engine)]
