"""Progress and scoring aggregation.

Everything here is a pure function of its inputs. Tracker progress is
recomputed from the steps on every call; nothing is cached or stored.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from ownitright.models.record import Lead
from ownitright.models.status import PropertyGrade, RiskLevel, StepStatus, parse_enum
from ownitright.models.tracker import Step, Tracker, progress_percent
from ownitright.services.filter_engine import as_number, get_field
from ownitright.utils.errors import NotFoundError, ValidationError
from ownitright.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class ProgressSummary(BaseModel):
    """Step counts and the derived completion percentage."""
    model_config = ConfigDict(frozen=True)

    total: int = 0
    verified_count: int = 0
    pending_count: int = 0
    not_verified_count: int = 0
    overall_progress: int = Field(0, ge=0, le=100)


def aggregate(steps: Iterable[Step]) -> ProgressSummary:
    """Count steps by status; progress is round-half-up of verified / total."""
    counts = Counter(step.status for step in steps)
    total = sum(counts.values())
    verified = counts[StepStatus.VERIFIED]
    return ProgressSummary(
        total=total,
        verified_count=verified,
        pending_count=counts[StepStatus.PENDING],
        not_verified_count=counts[StepStatus.NOT_VERIFIED],
        overall_progress=progress_percent(verified, total),
    )


# Upper bound (inclusive) -> level; anything above the last bound is critical
RISK_THRESHOLDS: tuple[tuple[float, RiskLevel], ...] = (
    (3, RiskLevel.LOW),
    (6, RiskLevel.MEDIUM),
    (8, RiskLevel.HIGH),
)


def classify_risk(score: float,
                  thresholds: tuple[tuple[float, RiskLevel], ...] = RISK_THRESHOLDS) -> RiskLevel:
    """Map a 0-10 risk score onto a risk level."""
    if score is None:
        raise ValidationError("Risk score is required", field="risk_score")
    for upper, level in thresholds:
        if score <= upper:
            return level
    return RiskLevel.CRITICAL


def update_step_status(tracker: Tracker, step_id: str, new_status: Union[StepStatus, str],
                       now: Optional[datetime] = None, notes: Optional[str] = None) -> Tracker:
    """
    Return a copy of tracker with one step moved to new_status.

    Entering verified stamps date_verified; any other status clears it.

    Raises:
        ValidationError: new_status is not a step status
        NotFoundError: no step with step_id in this tracker
    """
    status = parse_enum(StepStatus, new_status, field="status")
    step_id = str(step_id)
    if tracker.find_step(step_id) is None:
        raise NotFoundError(f"Step {step_id} not found in tracker {tracker.id}", record_id=step_id)

    now = now or datetime.now(timezone.utc)
    steps = []
    for step in tracker.steps:
        if step.id == step_id:
            update: dict[str, Any] = {
                "status": status,
                "date_verified": now if status == StepStatus.VERIFIED else None,
            }
            if notes is not None:
                update["notes"] = notes
            step = step.model_copy(update=update)
        steps.append(step)

    updated = tracker.model_copy(update={"steps": tuple(steps), "last_updated": now})
    logger.debug(
        "Step status updated",
        tracker_id=tracker.id,
        step_id=step_id,
        status=status.value,
        overall_progress=updated.overall_progress
    )
    return updated


# --- Property scoring ---

# Category -> field -> max points; category totals are 25/20/20/15/10/10
PROPERTY_SCORE_FIELDS: dict[str, dict[str, int]] = {
    "location": {
        "transport_connectivity": 8,
        "infrastructure_development": 7,
        "social_infrastructure": 5,
        "employment_hubs": 5,
    },
    "amenities": {
        "basic_amenities": 8,
        "lifestyle_amenities": 7,
        "modern_features": 5,
    },
    "legal": {
        "rera_compliance": 8,
        "title_clarity": 7,
        "approvals": 5,
    },
    "value": {
        "price_competitiveness": 8,
        "appreciation_potential": 4,
        "rental_yield": 3,
    },
    "developer": {
        "track_record": 5,
        "financial_stability": 3,
        "customer_satisfaction": 2,
    },
    "construction": {
        "structural_quality": 5,
        "finishing_standards": 3,
        "maintenance_standards": 2,
    },
}

GRADE_THRESHOLDS: tuple[tuple[int, PropertyGrade], ...] = (
    (90, PropertyGrade.A_PLUS),
    (80, PropertyGrade.A),
    (70, PropertyGrade.B_PLUS),
    (60, PropertyGrade.B),
    (50, PropertyGrade.C_PLUS),
    (40, PropertyGrade.C),
)


class PropertyScore(BaseModel):
    """Category totals of a property score card."""
    model_config = ConfigDict(frozen=True)

    category_totals: dict[str, int]
    overall_score: int
    grade: PropertyGrade


def grade_property_score(total: float) -> PropertyGrade:
    for minimum, grade in GRADE_THRESHOLDS:
        if total >= minimum:
            return grade
    return PropertyGrade.D


def score_property(scores: Mapping[str, Any]) -> PropertyScore:
    """
    Sum a score card into category totals, overall score and grade.

    Missing fields count as 0. A field outside 0..max raises ValidationError.
    """
    totals = {}
    for category, fields in PROPERTY_SCORE_FIELDS.items():
        category_total = 0
        for field, maximum in fields.items():
            value = get_field(scores, field, 0) or 0
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"Score {field} must be a number", field=field)
            if value < 0 or value > maximum:
                raise ValidationError(f"Score {field}={value} outside 0..{maximum}", field=field)
            category_total += value
        totals[category] = int(category_total)

    overall = sum(totals.values())
    return PropertyScore(
        category_totals=totals,
        overall_score=overall,
        grade=grade_property_score(overall),
    )


# --- Lead scoring ---

PERSONA_POINTS = {
    "end-user-family": 25,
    "first-time-buyer": 20,
    "nri-investor": 15,
    "upgrader": 22,
    "investor": 18,
}

URGENCY_POINTS = {
    "immediate": 30,
    "3-6-months": 20,
    "6-12-months": 10,
}

BUDGET_POINTS = 15
PRE_APPROVAL_POINTS = 20
PREFERRED_AREA_POINTS = 10
MAX_LEAD_SCORE = 100
PREMIUM_BUDGET_LAKHS = 200


def score_lead(lead: Union[Lead, Mapping[str, Any]]) -> int:
    """Qualification score 0-100 from persona, urgency, budget and financing."""
    score = PERSONA_POINTS.get(get_field(lead, "buyer_persona"), 0)
    score += URGENCY_POINTS.get(get_field(lead, "urgency"), 0)
    if get_field(lead, "budget_min") and get_field(lead, "budget_max"):
        score += BUDGET_POINTS
    if get_field(lead, "has_pre_approval"):
        score += PRE_APPROVAL_POINTS
    if get_field(lead, "preferred_areas"):
        score += PREFERRED_AREA_POINTS
    return min(score, MAX_LEAD_SCORE)


def smart_tags(lead: Union[Lead, Mapping[str, Any]]) -> list[str]:
    """CRM badges derived from the qualification answers."""
    tags = []
    if get_field(lead, "urgency") == "immediate":
        tags.append("hot-lead")
    if get_field(lead, "buyer_persona") == "first-time-buyer":
        tags.append("first-time-buyer")
    if get_field(lead, "has_pre_approval"):
        tags.append("pre-approved")
    if get_field(lead, "wants_legal_support"):
        tags.append("needs-legal-support")
    budget_max = as_number(get_field(lead, "budget_max"))
    if budget_max is not None and budget_max > PREMIUM_BUDGET_LAKHS:
        tags.append("premium-budget")
    return tags


def status_counts(records: Iterable[Any], field: str = "status") -> dict[str, int]:
    """Count records per value of field (enum values unwrapped), for stat cards."""
    counts: Counter = Counter()
    for record in records:
        value = get_field(record, field)
        if value is None:
            continue
        counts[getattr(value, "value", value)] += 1
    return dict(counts)
