"""Legal due-diligence tracker models."""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from ownitright.models.record import Record
from ownitright.models.status import RiskLevel, StepPriority, StepStatus


def progress_percent(verified: int, total: int) -> int:
    """Round-half-up percentage of verified steps; 0 for an empty tracker."""
    if total <= 0:
        return 0
    return (200 * verified + total) // (2 * total)


class Step(BaseModel):
    """A single verification step inside a tracker."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        coerce_numbers_to_str=True,
    )

    id: str = Field(..., description="Step ID, unique within its tracker")
    title: str = Field(..., description="Step title")
    description: str = Field(default="")
    action: str = Field(default="", description="What the verifier must confirm")
    documents_needed: tuple[str, ...] = Field(default_factory=tuple)
    status: StepStatus = Field(default=StepStatus.NOT_VERIFIED)
    priority: StepPriority = Field(
        default=StepPriority.MEDIUM,
        validation_alias=AliasChoices("priority", "importance"),
    )
    risk_level: RiskLevel = Field(default=RiskLevel.LOW)
    date_verified: Optional[datetime] = None
    notes: Optional[str] = None


class Tracker(Record):
    """Legal tracker for one property; progress is always derived from steps."""
    # Stored progress from the server is dropped, never trusted
    model_config = ConfigDict(extra="ignore")

    kind: Literal["legal_tracker"] = "legal_tracker"
    property_id: str = Field(..., description="Tracked property ID")
    property_name: str = Field(default="")
    steps: tuple[Step, ...] = Field(default_factory=tuple)
    last_updated: Optional[datetime] = None

    @computed_field
    @property
    def overall_progress(self) -> int:
        verified = sum(1 for step in self.steps if step.status == StepStatus.VERIFIED)
        return progress_percent(verified, len(self.steps))

    def find_step(self, step_id: str) -> Optional[Step]:
        step_id = str(step_id)
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


def _step(step_id: int, title: str, priority: StepPriority, risk: RiskLevel,
          description: str, documents: tuple[str, ...]) -> Step:
    return Step(
        id=str(step_id),
        title=title,
        description=description,
        documents_needed=documents,
        priority=priority,
        risk_level=risk,
    )


LEGAL_STEP_TEMPLATE: tuple[Step, ...] = (
    _step(1, "Property Title Verification", StepPriority.CRITICAL, RiskLevel.HIGH,
          "Seller holds a clear and marketable title.",
          ("Title deed", "Previous sale deeds", "Chain of title documents")),
    _step(2, "Property Encumbrance Check", StepPriority.CRITICAL, RiskLevel.HIGH,
          "Property is not mortgaged or under legal dispute.",
          ("Encumbrance certificate (EC)", "Revenue records")),
    _step(3, "Zoning and Land Use Check", StepPriority.HIGH, RiskLevel.MEDIUM,
          "Land is zoned for the intended use.",
          ("Zoning certificate", "Land use approval", "Master plan documents")),
    _step(4, "Building Plan Approval", StepPriority.HIGH, RiskLevel.MEDIUM,
          "Construction matches the sanctioned plan.",
          ("Building approval plan", "Sanctioned building plan", "Deviation certificates")),
    _step(5, "Occupancy Certificate (OC)", StepPriority.CRITICAL, RiskLevel.HIGH,
          "Building is certified fit for occupation.",
          ("Occupancy certificate", "Completion certificate")),
    _step(6, "No Objection Certificates (NOCs)", StepPriority.HIGH, RiskLevel.MEDIUM,
          "Fire, water, electricity and sewerage NOCs are in place.",
          ("Fire NOC", "Water NOC", "Electricity NOC", "Sewerage NOC")),
    _step(7, "RERA Registration", StepPriority.CRITICAL, RiskLevel.MEDIUM,
          "Project is registered and compliant with RERA.",
          ("RERA registration number", "RERA certificate")),
    _step(8, "Tax Payment and Land Revenue Records", StepPriority.MEDIUM, RiskLevel.LOW,
          "Property taxes are paid with no arrears.",
          ("Property tax receipts", "Land revenue records", "No dues certificate")),
    _step(9, "Legal Title Verification of Developer", StepPriority.CRITICAL, RiskLevel.HIGH,
          "Developer has the right to build on and sell the land.",
          ("Developer's title deed", "Authorization from landowner", "Joint venture agreement")),
    _step(10, "Clearance from Other Authorities", StepPriority.HIGH, RiskLevel.MEDIUM,
          "No pending environmental or forest land restrictions.",
          ("Environmental clearance certificate", "Pollution control board NOC")),
    _step(11, "Legal Opinion", StepPriority.HIGH, RiskLevel.LOW,
          "Property lawyer confirms the property is free from litigation.",
          ("Lawyer's opinion letter", "Legal due diligence report")),
    _step(12, "Final Verification", StepPriority.HIGH, RiskLevel.LOW,
          "All due diligence steps are complete with no red flags.",
          ("Summary of verified documents", "Final clearance certificate")),
)


def new_legal_tracker(property_id: str, property_name: str,
                      tracker_id: Optional[str] = None) -> Tracker:
    """Seed a tracker from the fixed legal step template, every step not-verified."""
    return Tracker(
        id=tracker_id or uuid.uuid4().hex,
        property_id=property_id,
        property_name=property_name,
        steps=LEGAL_STEP_TEMPLATE,
        created_at=datetime.now(timezone.utc),
        last_updated=datetime.now(timezone.utc),
    )
