"""Status, priority and classification enums shared by every view.

Each enum has a single display table (label + badge color) so list, detail
and dashboard views render the same value the same way.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from ownitright.utils.errors import ValidationError


class StepStatus(str, Enum):
    """Legal/engineering verification step status."""
    VERIFIED = "verified"
    PENDING = "pending"
    NOT_VERIFIED = "not-verified"


class StepPriority(str, Enum):
    """Importance of a verification step."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class RiskLevel(str, Enum):
    """Risk classification derived from a numeric score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationStatus(str, Enum):
    """Derived notification lifecycle state."""
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationCategory(str, Enum):
    PROPERTY = "property"
    REPORT = "report"
    BOOKING = "booking"
    PAYMENT = "payment"
    LEAD = "lead"
    SYSTEM = "system"
    PROMOTION = "promotion"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    REPORT = "report"
    BOOKING = "booking"
    PAYMENT = "payment"
    SYSTEM = "system"


class PropertyType(str, Enum):
    APARTMENT = "apartment"
    VILLA = "villa"
    PLOT = "plot"


class PropertyStatus(str, Enum):
    PRE_LAUNCH = "pre-launch"
    ACTIVE = "active"
    UNDER_CONSTRUCTION = "under-construction"
    COMPLETED = "completed"
    SOLD_OUT = "sold-out"


class Zone(str, Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"
    CENTRAL = "central"


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    DEMO_SCHEDULED = "demo-scheduled"
    CLOSED_WON = "closed-won"


class LeadTemperature(str, Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class LeadPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class ReportType(str, Enum):
    VALUATION = "valuation"
    CIVIL_MEP = "civil-mep"
    LEGAL_AUDIT = "legal-audit"


class ReportStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"


class TeamRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"
    ANALYST = "analyst"
    INTERN = "intern"


class Department(str, Enum):
    SALES = "sales"
    MARKETING = "marketing"
    OPERATIONS = "operations"
    LEGAL = "legal"
    FINANCE = "finance"
    HR = "hr"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class PropertyGrade(str, Enum):
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C_PLUS = "C+"
    C = "C"
    D = "D"


class RecommendationIntent(str, Enum):
    INVESTMENT = "investment"
    END_USE = "end-use"
    NONE = ""


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DisplayMeta(BaseModel):
    """How a status value is shown in badges and icons."""
    label: str = Field(..., description="Human readable label")
    color: str = Field(..., description="Badge color token")


def _meta(label: str, color: str) -> DisplayMeta:
    return DisplayMeta(label=label, color=color)


# Keyed by enum class first: str-valued members of different enums compare equal.
DISPLAY: dict[type[Enum], dict[Enum, DisplayMeta]] = {
    StepStatus: {
        StepStatus.VERIFIED: _meta("Verified", "green"),
        StepStatus.PENDING: _meta("Pending", "yellow"),
        StepStatus.NOT_VERIFIED: _meta("Not Verified", "red"),
    },
    StepPriority: {
        StepPriority.CRITICAL: _meta("Critical", "red"),
        StepPriority.HIGH: _meta("High", "orange"),
        StepPriority.MEDIUM: _meta("Medium", "gray"),
    },
    RiskLevel: {
        RiskLevel.LOW: _meta("Low Risk", "green"),
        RiskLevel.MEDIUM: _meta("Medium Risk", "yellow"),
        RiskLevel.HIGH: _meta("High Risk", "orange"),
        RiskLevel.CRITICAL: _meta("Critical Risk", "red"),
    },
    NotificationPriority: {
        NotificationPriority.LOW: _meta("Low", "gray"),
        NotificationPriority.MEDIUM: _meta("Medium", "blue"),
        NotificationPriority.HIGH: _meta("High", "orange"),
        NotificationPriority.URGENT: _meta("Urgent", "red"),
    },
    NotificationStatus: {
        NotificationStatus.UNREAD: _meta("Unread", "blue"),
        NotificationStatus.READ: _meta("Read", "gray"),
        NotificationStatus.ARCHIVED: _meta("Archived", "gray"),
    },
    LeadTemperature: {
        LeadTemperature.HOT: _meta("Hot", "red"),
        LeadTemperature.WARM: _meta("Warm", "orange"),
        LeadTemperature.COLD: _meta("Cold", "blue"),
    },
    BookingStatus: {
        BookingStatus.PENDING: _meta("Pending", "yellow"),
        BookingStatus.CONFIRMED: _meta("Confirmed", "green"),
        BookingStatus.RESCHEDULED: _meta("Rescheduled", "blue"),
        BookingStatus.COMPLETED: _meta("Completed", "green"),
        BookingStatus.CANCELLED: _meta("Cancelled", "red"),
        BookingStatus.NO_SHOW: _meta("No Show", "gray"),
    },
    PropertyGrade: {
        PropertyGrade.A_PLUS: _meta("Grade A+", "green"),
        PropertyGrade.A: _meta("Grade A", "green"),
        PropertyGrade.B_PLUS: _meta("Grade B+", "blue"),
        PropertyGrade.B: _meta("Grade B", "blue"),
        PropertyGrade.C_PLUS: _meta("Grade C+", "yellow"),
        PropertyGrade.C: _meta("Grade C", "yellow"),
        PropertyGrade.D: _meta("Grade D", "red"),
    },
}

DEFAULT_DISPLAY = DisplayMeta(label="Unknown", color="gray")


def display_for(value: Optional[Enum]) -> DisplayMeta:
    """Look up display metadata; enums without an entry get a title-cased label."""
    if value is None:
        return DEFAULT_DISPLAY
    meta = DISPLAY.get(type(value), {}).get(value)
    if meta is not None:
        return meta
    label = str(value.value).replace("-", " ").title()
    return DisplayMeta(label=label, color=DEFAULT_DISPLAY.color)


def parse_enum(enum_cls: type[Enum], value, field: Optional[str] = None) -> Enum:
    """Coerce a raw value into enum_cls, raising ValidationError on unknown values."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(member.value) for member in enum_cls)
        raise ValidationError(
            f"Invalid {field or enum_cls.__name__} value {value!r}; expected one of: {allowed}",
            field=field,
        )
