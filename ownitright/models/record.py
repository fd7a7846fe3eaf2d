"""Record models - the domain entities every collection is made of."""

from datetime import datetime
from typing import Any, ClassVar, Iterable, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ownitright.models.status import (
    BookingStatus,
    Department,
    LeadPriority,
    LeadStatus,
    LeadTemperature,
    MemberStatus,
    PropertyStatus,
    PropertyType,
    ReportStatus,
    ReportType,
    TeamRole,
    Zone,
)
from ownitright.utils.errors import ValidationError


class Record(BaseModel):
    """Base for every domain record: immutable, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    # Free-text search whitelist for this record type
    search_fields: ClassVar[tuple[str, ...]] = ()

    id: str = Field(..., description="Unique record ID")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the REST API (camelCase, JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Property(Record):
    """Property listing."""
    search_fields: ClassVar[tuple[str, ...]] = ("name", "developer", "area", "address")

    kind: Literal["property"] = "property"
    name: str = Field(..., description="Project name")
    type: PropertyType = Field(..., description="apartment, villa or plot")
    developer: str = Field(..., description="Developer name")
    status: PropertyStatus = Field(..., description="Project status")
    area: str = Field(..., description="Locality")
    zone: Zone = Field(..., description="City zone")
    address: str = Field(..., description="Street address")
    price: float = Field(..., ge=0, description="Price in lakhs")
    built_up_area: Optional[int] = Field(None, description="Built-up area in sq ft")
    land_area: Optional[int] = Field(None, description="Land area in sq ft")
    bedrooms: Optional[str] = Field(None, description="1-bhk .. 5-bhk")
    possession_date: Optional[str] = Field(None, description="YYYY-MM")
    rera_number: Optional[str] = None
    rera_approved: bool = Field(default=False, description="RERA approval flag")
    tags: list[str] = Field(default_factory=list)


class Lead(Record):
    """CRM lead."""
    search_fields: ClassVar[tuple[str, ...]] = (
        "customer_name", "email", "phone", "lead_id", "property_name"
    )

    kind: Literal["lead"] = "lead"
    lead_id: Optional[str] = Field(None, description="Human facing lead reference")
    customer_name: str = Field(..., description="Customer name")
    phone: str = Field(default="", description="Phone number")
    email: str = Field(default="", description="Email address")
    property_name: Optional[str] = None
    status: LeadStatus = Field(default=LeadStatus.NEW)
    lead_type: Optional[LeadTemperature] = Field(None, description="hot, warm or cold")
    priority: LeadPriority = Field(default=LeadPriority.MEDIUM)
    source: Optional[str] = Field(None, description="site-visit, consultation, property-inquiry")
    lead_score: int = Field(default=0, ge=0, le=100)
    buyer_persona: Optional[str] = None
    urgency: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    has_pre_approval: bool = False
    wants_legal_support: bool = False
    preferred_areas: list[str] = Field(default_factory=list)
    smart_tags: list[str] = Field(default_factory=list)
    assigned_to: Optional[str] = None


class Booking(Record):
    """Site visit / consultation booking."""
    search_fields: ClassVar[tuple[str, ...]] = ("name", "email", "phone")

    kind: Literal["booking"] = "booking"
    name: str = Field(..., description="Customer name")
    phone: str = Field(default="")
    email: str = Field(default="")
    property_id: Optional[str] = None
    booking_type: Optional[str] = Field(None, description="site-visit, consultation, ...")
    status: BookingStatus = Field(default=BookingStatus.PENDING)
    preferred_date: Optional[str] = None


class Report(Record):
    """Valuation, civil/MEP or legal audit report."""
    search_fields: ClassVar[tuple[str, ...]] = ("property_name", "customer_name", "customer_email")

    kind: Literal["report"] = "report"
    report_type: ReportType = Field(..., description="Report family")
    property_name: str = Field(..., description="Property the report covers")
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    status: ReportStatus = Field(default=ReportStatus.DRAFT)
    risk_score: Optional[float] = Field(None, ge=0, le=10, description="0-10 engineering/legal risk score")


class TeamMember(Record):
    """Admin team member."""
    search_fields: ClassVar[tuple[str, ...]] = ("name", "email", "phone")

    kind: Literal["team_member"] = "team_member"
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    phone: Optional[str] = None
    role: TeamRole = Field(default=TeamRole.AGENT)
    department: Optional[Department] = None
    status: MemberStatus = Field(default=MemberStatus.ACTIVE)


def ensure_unique_ids(records: Iterable[Record]) -> list[Record]:
    """Return records as a list, raising ValidationError if any id repeats."""
    seen: set[str] = set()
    result = []
    for record in records:
        if record.id in seen:
            raise ValidationError(f"Duplicate record id {record.id!r} in collection", field="id")
        seen.add(record.id)
        result.append(record)
    return result
