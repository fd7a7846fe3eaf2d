"""Discriminated record union and REST resource -> record type mapping."""

from typing import Annotated, Any, Mapping, Optional, Union
from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ownitright.models.notification import Notification
from ownitright.models.record import Booking, Lead, Property, Record, Report, TeamMember
from ownitright.models.tracker import Tracker
from ownitright.utils.errors import ValidationError


AnyRecord = Annotated[
    Union[Property, Lead, Booking, Report, TeamMember, Notification, Tracker],
    Field(discriminator="kind"),
]

_record_adapter: TypeAdapter = TypeAdapter(AnyRecord)

RESOURCE_KINDS: dict[str, str] = {
    "/api/properties": "property",
    "/api/leads": "lead",
    "/api/bookings": "booking",
    "/api/reports": "report",
    "/api/valuation-reports": "report",
    "/api/civil-mep-reports": "report",
    "/api/legal-audit-reports": "report",
    "/api/team-members": "team_member",
    "/api/notifications": "notification",
    "/api/legal-trackers": "legal_tracker",
}


def kind_for_path(path: str) -> Optional[str]:
    """Record kind served at a resource path, or None for untyped resources."""
    return RESOURCE_KINDS.get(path.rstrip("/"))


def parse_record(data: Union[Record, Mapping[str, Any]], kind: Optional[str] = None) -> Record:
    """Validate a raw JSON object into its record variant."""
    if isinstance(data, Record):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(f"Expected a JSON object, got {type(data).__name__}")

    payload = dict(data)
    if kind is not None:
        payload.setdefault("kind", kind)
    try:
        return _record_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {payload.get('kind', 'record')} payload: {e.error_count()} error(s)",
            field=str(e.errors()[0].get("loc")) if e.errors() else None,
        )
