from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.audit.logger import AuditAction
from app.core.errors import ValidationError
from app.dependencies.auth import CurrentActor
from app.dependencies.services import TicketServiceDep
from app.sla.tracker import SLAMilestone, SLAState
from app.tickets.models import (
    EventKind,
    GenData,
    QuoteStatus,
    ResponseDirection,
    RFQData,
    TicketPriority,
    TicketType,
)
from app.tickets.repository import TicketFilters
from app.tickets.state import CloseOutcome, LostReason, TicketStatus, TransitionPayload, normalize_status

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    ticket_type: TicketType
    subject: str = Field(..., min_length=1, max_length=255)
    department_code: str = Field(..., min_length=3, max_length=3)
    description: str | None = None
    priority: TicketPriority = TicketPriority.MEDIUM
    type_data: dict[str, Any] | None = None


class TicketUpdateRequest(BaseModel):
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    priority: TicketPriority | None = None
    type_data: dict[str, Any] | None = None

    def ensure_payload(self) -> None:
        if all(value is None for value in (self.subject, self.description, self.priority, self.type_data)):
            raise ValidationError("No fields provided for update", details={"body": ["No fields provided"]})


class TicketStatusChangeRequest(BaseModel):
    status: str
    close_outcome: CloseOutcome | None = None
    close_reason: LostReason | None = None
    project_date: date | None = None
    competitor_name: str | None = Field(default=None, max_length=255)
    competitor_cost: Decimal | None = None
    note: str | None = Field(default=None, max_length=2000)

    def to_payload(self) -> TransitionPayload:
        return TransitionPayload(
            close_outcome=self.close_outcome,
            close_reason=self.close_reason,
            project_date=self.project_date,
            competitor_name=self.competitor_name,
            competitor_cost=self.competitor_cost,
            note=self.note,
        )


class AssignRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1)
    notes: str | None = None


class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1)
    is_internal: bool = False


class QuoteCreateRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="IDR", min_length=3, max_length=3)
    valid_until: date
    terms: str | None = None


class QuoteStatusRequest(BaseModel):
    status: QuoteStatus


class AttachmentCreateRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., min_length=1)
    file_size: int = Field(..., gt=0)
    storage_key: str = Field(..., min_length=1)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    type: TicketType
    status: TicketStatus
    priority: TicketPriority
    subject: str
    description: str | None
    department_code: str
    created_by: str
    assigned_to: str | None
    type_data: RFQData | GenData | None
    close_outcome: CloseOutcome | None
    close_reason: LostReason | None
    project_date: date | None
    competitor_name: str | None
    competitor_cost: Decimal | None
    created_at: datetime
    updated_at: datetime
    first_response_at: datetime | None
    resolved_at: datetime | None
    closed_at: datetime | None


class TicketListResponse(BaseModel):
    items: list[TicketResponse]
    total: int
    limit: int
    offset: int


class TicketEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    author_id: str
    kind: EventKind
    content: str | None
    is_internal: bool
    from_status: TicketStatus | None
    to_status: TicketStatus | None
    response_direction: ResponseDirection | None
    response_time_seconds: float | None
    is_first_response: bool
    created_at: datetime


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    quote_number: str
    amount: Decimal
    currency: str
    valid_until: date
    terms: str | None
    status: QuoteStatus
    created_by: str
    created_at: datetime
    updated_at: datetime


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    file_name: str
    file_type: str
    file_size: int
    storage_key: str
    uploaded_by: str
    created_at: datetime


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    assigned_to: str
    assigned_by: str
    notes: str | None
    assigned_at: datetime


class SLARecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    first_response_target_hours: float
    first_response_met: bool | None
    first_response_hours: float | None
    resolution_target_hours: float
    resolution_met: bool | None
    resolution_hours: float | None


class TicketDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket: TicketResponse
    events: list[TicketEventResponse]
    quotes: list[QuoteResponse]
    attachments: list[AttachmentResponse]
    assignments: list[AssignmentResponse]
    sla: SLARecordResponse | None


class MilestoneStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    milestone: SLAMilestone
    target_hours: float
    elapsed_hours: float
    remaining_hours: float
    state: SLAState
    due_at: datetime
    completed_at: datetime | None


class TicketSLAResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: str
    first_response: MilestoneStatusResponse
    resolution: MilestoneStatusResponse


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    table_name: str
    record_id: str
    action: AuditAction
    actor_id: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    created_at: datetime


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    ticket = await service.create_ticket(
        actor,
        ticket_type=payload.ticket_type,
        subject=payload.subject,
        department_code=payload.department_code.upper(),
        description=payload.description,
        priority=payload.priority,
        type_data=payload.type_data,
    )
    return TicketResponse.model_validate(ticket)


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    service: TicketServiceDep,
    actor: CurrentActor,
    status_filter: str | None = Query(default=None, alias="status"),
    priority: TicketPriority | None = Query(default=None),
    ticket_type: TicketType | None = Query(default=None, alias="type"),
    department_code: str | None = Query(default=None, alias="department"),
    search: str | None = Query(default=None, max_length=255),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> TicketListResponse:
    filters = TicketFilters(
        status=normalize_status(status_filter) if status_filter else None,
        priority=priority,
        ticket_type=ticket_type,
        department_code=department_code,
        search=search,
        limit=limit,
        offset=offset,
    )
    tickets, total = await service.list_tickets(actor, filters)
    return TicketListResponse(
        items=[TicketResponse.model_validate(ticket) for ticket in tickets],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/by-code/{code}", response_model=TicketDetailResponse)
async def get_ticket_by_code(code: str, service: TicketServiceDep, actor: CurrentActor) -> TicketDetailResponse:
    aggregate = await service.get_ticket_by_code(actor, code)
    return TicketDetailResponse.model_validate(aggregate)


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> TicketDetailResponse:
    aggregate = await service.get_ticket(actor, ticket_id)
    return TicketDetailResponse.model_validate(aggregate)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    payload.ensure_payload()
    ticket = await service.update_ticket(
        actor,
        ticket_id,
        subject=payload.subject,
        description=payload.description,
        priority=payload.priority,
        type_data=payload.type_data,
    )
    return TicketResponse.model_validate(ticket)


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> None:
    await service.delete_ticket(actor, ticket_id)


@router.post("/{ticket_id}/status", response_model=TicketResponse)
async def change_ticket_status(
    ticket_id: str,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    ticket = await service.transition(actor, ticket_id, payload.status, payload.to_payload())
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: str,
    payload: AssignRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketResponse:
    ticket = await service.assign(actor, ticket_id, payload.assigned_to, notes=payload.notes)
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/comments", response_model=TicketEventResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    payload: CommentCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketEventResponse:
    event = await service.add_comment(actor, ticket_id, payload.content, is_internal=payload.is_internal)
    return TicketEventResponse.model_validate(event)


@router.post("/{ticket_id}/quotes", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def create_quote(
    ticket_id: str,
    payload: QuoteCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> QuoteResponse:
    quote = await service.create_quote(
        actor,
        ticket_id,
        amount=payload.amount,
        currency=payload.currency,
        valid_until=payload.valid_until,
        terms=payload.terms,
    )
    return QuoteResponse.model_validate(quote)


@router.patch("/{ticket_id}/quotes/{quote_id}", response_model=QuoteResponse)
async def update_quote_status(
    ticket_id: str,
    quote_id: str,
    payload: QuoteStatusRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> QuoteResponse:
    quote = await service.update_quote_status(actor, ticket_id, quote_id, payload.status)
    return QuoteResponse.model_validate(quote)


@router.post("/{ticket_id}/attachments", response_model=AttachmentResponse, status_code=status.HTTP_201_CREATED)
async def add_attachment(
    ticket_id: str,
    payload: AttachmentCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> AttachmentResponse:
    attachment = await service.add_attachment(
        actor,
        ticket_id,
        file_name=payload.file_name,
        file_type=payload.file_type,
        file_size=payload.file_size,
        storage_key=payload.storage_key,
    )
    return AttachmentResponse.model_validate(attachment)


@router.delete("/{ticket_id}/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attachment(
    ticket_id: str,
    attachment_id: str,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> None:
    await service.delete_attachment(actor, ticket_id, attachment_id)


@router.get("/{ticket_id}/sla", response_model=TicketSLAResponse)
async def get_ticket_sla(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> TicketSLAResponse:
    sla_status = await service.sla_status(actor, ticket_id)
    return TicketSLAResponse.model_validate(sla_status)


@router.get("/{ticket_id}/audit", response_model=list[AuditEntryResponse])
async def get_ticket_audit(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> list[AuditEntryResponse]:
    entries = await service.audit_trail(actor, ticket_id)
    return [AuditEntryResponse.model_validate(entry) for entry in entries]
