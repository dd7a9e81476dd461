from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, computed_field

from . import cargo
from .state import CloseOutcome, LostReason, TicketStatus


class TicketType(str, Enum):
    RFQ = "RFQ"
    GEN = "GEN"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class EventKind(str, Enum):
    COMMENT = "comment"
    QUOTE = "quote"
    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"


class ResponseDirection(str, Enum):
    TO_REQUESTER = "to_requester"
    TO_DEPARTMENT = "to_department"


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CargoCategory(str, Enum):
    DG = "DG"
    GENCO = "Genco"


class RFQData(BaseModel):
    """Request-for-quote details captured with an RFQ ticket."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["rfq"] = "rfq"
    customer_name: str = Field(min_length=1)
    customer_email: str | None = None
    customer_phone: str | None = None
    service_type: str = Field(min_length=1)
    cargo_category: CargoCategory
    cargo_description: str = Field(min_length=1)
    origin_address: str = Field(min_length=1)
    origin_city: str = Field(min_length=1)
    origin_country: str = Field(min_length=1)
    destination_address: str = Field(min_length=1)
    destination_city: str = Field(min_length=1)
    destination_country: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    unit_of_measure: str = Field(min_length=1)
    weight_per_unit: float = Field(gt=0)
    packaging_type: str | None = None
    weight_with_packaging: float | None = Field(default=None, ge=0)
    hs_code: str | None = None
    length: float = Field(gt=0, description="Length in cm")
    width: float = Field(gt=0, description="Width in cm")
    height: float = Field(gt=0, description="Height in cm")
    fleet_requirement: str | None = None
    scope_of_work: str = Field(min_length=1)
    additional_notes: str | None = None
    estimated_project_date: date | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def volume_per_unit(self) -> float:
        return cargo.volume_per_unit(self.length, self.width, self.height)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_volume(self) -> float:
        return cargo.total_volume(self.volume_per_unit, self.quantity)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_weight(self) -> float:
        return cargo.total_weight(self.weight_per_unit, self.quantity)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def chargeable_weight(self) -> float:
        return cargo.chargeable_weight(self.total_weight, self.total_volume)


class GenData(BaseModel):
    """Optional structured fields of a general inquiry."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["gen"] = "gen"
    category: str | None = None
    reference_number: str | None = None


TypeData = Annotated[Union[RFQData, GenData], Field(discriminator="kind")]

_TYPE_DATA_ADAPTER: TypeAdapter[RFQData | GenData] = TypeAdapter(TypeData)


def parse_type_data(raw: Any) -> RFQData | GenData | None:
    """Load the JSON column value; raises pydantic's ``ValidationError`` on bad input."""

    if raw is None:
        return None
    return _TYPE_DATA_ADAPTER.validate_python(raw)


def dump_type_data(data: RFQData | GenData | None) -> dict[str, Any] | None:
    if data is None:
        return None
    return data.model_dump(mode="json")


@dataclass(slots=True)
class Ticket:
    """Primary ticket record."""

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
    created_at: datetime
    updated_at: datetime
    close_outcome: CloseOutcome | None = None
    close_reason: LostReason | None = None
    project_date: date | None = None
    competitor_name: str | None = None
    competitor_cost: Decimal | None = None
    first_response_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None


@dataclass(slots=True)
class TicketEvent:
    """Entry of a ticket's append-only conversation and lifecycle history."""

    id: str
    ticket_id: str
    author_id: str
    kind: EventKind
    created_at: datetime
    content: str | None = None
    is_internal: bool = False
    from_status: TicketStatus | None = None
    to_status: TicketStatus | None = None
    response_direction: ResponseDirection | None = None
    response_time_seconds: float | None = None
    is_first_response: bool = False


@dataclass(slots=True)
class Quote:
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


@dataclass(slots=True)
class Attachment:
    id: str
    ticket_id: str
    file_name: str
    file_type: str
    file_size: int
    storage_key: str
    uploaded_by: str
    created_at: datetime


@dataclass(slots=True)
class Assignment:
    id: str
    ticket_id: str
    assigned_to: str
    assigned_by: str
    notes: str | None
    assigned_at: datetime


@dataclass(slots=True)
class SLARecord:
    """Targets and milestone outcomes for one ticket, in business hours."""

    ticket_id: str
    first_response_target_hours: float
    resolution_target_hours: float
    first_response_met: bool | None = None
    first_response_hours: float | None = None
    resolution_met: bool | None = None
    resolution_hours: float | None = None


@dataclass(slots=True)
class TicketAggregate:
    """Ticket bundled with its history and child records."""

    ticket: Ticket
    events: list[TicketEvent]
    quotes: list[Quote]
    attachments: list[Attachment]
    assignments: list[Assignment]
    sla: SLARecord | None
