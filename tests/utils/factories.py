"""Test data factories using Faker."""

from faker import Faker
from typing import Optional

fake = Faker()


def create_property_data(property_id: Optional[str] = None, **overrides) -> dict:
    """Create test property data (JSON shape, camelCase)."""
    data = {
        "id": property_id or fake.uuid4(),
        "name": f"{fake.last_name()} Residency",
        "type": "apartment",
        "developer": f"{fake.company()} Developers",
        "status": "active",
        "area": fake.city(),
        "zone": "north",
        "address": fake.street_address(),
        "price": fake.random_int(min=40, max=600),
        "bedrooms": "3-bhk",
        "reraApproved": True,
        "tags": ["gated-community"],
    }
    data.update(overrides)
    return data


def create_lead_data(lead_id: Optional[str] = None, **overrides) -> dict:
    """Create test lead data (JSON shape, camelCase)."""
    data = {
        "id": lead_id or fake.uuid4(),
        "leadId": f"LD{fake.random_int(min=1000, max=9999)}",
        "customerName": fake.name(),
        "phone": fake.msisdn()[:10],
        "email": fake.email(),
        "status": "new",
        "priority": "medium",
        "source": "property-inquiry",
        "leadScore": fake.random_int(min=0, max=100),
    }
    data.update(overrides)
    return data


def create_step_data(step_id: str = "1", status: str = "not-verified", **overrides) -> dict:
    """Create test tracker step data."""
    data = {
        "id": step_id,
        "title": fake.sentence(nb_words=3),
        "description": fake.sentence(),
        "documentsNeeded": ["Title deed"],
        "status": status,
        "priority": "high",
        "riskLevel": "medium",
    }
    data.update(overrides)
    return data


def create_tracker_data(tracker_id: Optional[str] = None, steps: Optional[list] = None,
                        **overrides) -> dict:
    """Create test legal tracker data as the API returns it."""
    data = {
        "id": tracker_id or fake.uuid4(),
        "propertyId": fake.uuid4(),
        "propertyName": f"{fake.last_name()} Heights",
        "steps": steps if steps is not None else [
            create_step_data(step_id=str(i)) for i in range(1, 4)
        ],
        "overallProgress": 0,
    }
    data.update(overrides)
    return data


def create_notification_data(notification_id: Optional[str] = None,
                             user_id: Optional[str] = "user-1", **overrides) -> dict:
    """Create test notification data; unread by default."""
    data = {
        "id": notification_id or fake.uuid4(),
        "userId": user_id,
        "userType": "user" if user_id else "all",
        "title": fake.sentence(nb_words=4),
        "message": fake.sentence(),
        "type": "info",
        "category": "property",
        "priority": "medium",
        "isRead": False,
        "isArchived": False,
    }
    data.update(overrides)
    return data
