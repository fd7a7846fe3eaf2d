"""Tests for the generic resource service."""

import pytest

from ownitright.models.record import Lead, Property
from ownitright.services.resources import ResourceService, unwrap_items
from ownitright.utils.errors import MutationError, NetworkError, NotFoundError
from tests.utils.assertions import assert_failed_with
from tests.utils.factories import create_lead_data, create_property_data
from tests.utils.helpers import request_json


@pytest.fixture
def leads_service(query_cache, rest_client):
    return ResourceService(query_cache, rest_client, "/api/leads")


@pytest.mark.unit
def test_unwrap_items_envelope():
    """Test bare lists and {items, totalCount} envelopes."""
    assert unwrap_items([1, 2]) == [1, 2]
    assert unwrap_items({"items": [1], "totalCount": 1}) == [1]
    assert unwrap_items(None) == []
    with pytest.raises(NetworkError):
        unwrap_items({"rows": []})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_parses_records(leads_service, transport):
    """Test that list responses become typed records."""
    transport.add("GET", "/api/leads", json={
        "items": [create_lead_data(lead_id="1"), create_lead_data(lead_id="2")],
        "totalCount": 2,
    })

    state = await leads_service.list()

    assert [lead.id for lead in state.data] == ["1", "2"]
    assert all(isinstance(lead, Lead) for lead in state.data)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_sends_active_criteria_as_params(query_cache, rest_client, transport):
    """Test that filter criteria become query params and part of the cache key."""
    service = ResourceService(query_cache, rest_client, "/api/properties")
    transport.add("GET", "/api/properties", json=[create_property_data(property_id="1", zone="south")])

    state = await service.list({"zone": "south", "type": "all", "price_range": "above-500"})

    params = transport.requests[0].url.params
    assert params["zone"] == "south"
    assert params["priceMin"] == "500.0"
    assert "type" not in params
    assert isinstance(state.data[0], Property)
    assert query_cache.get_query_data(service.list_key({"zone": "south", "priceMin": 500.0})) is state.data


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_with_duplicate_ids_is_an_error(leads_service, transport):
    """Test that a collection with repeated ids is rejected."""
    transport.add("GET", "/api/leads", json=[create_lead_data(lead_id="1"), create_lead_data(lead_id="1")])

    state = await leads_service.list()

    assert state.is_error is True
    assert isinstance(state.error, NetworkError)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_single_record(leads_service, transport):
    """Test fetching one record by id."""
    transport.add("GET", "/api/leads/7", json=create_lead_data(lead_id=7))

    state = await leads_service.get(7)

    assert state.data.id == "7"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_invalidates_collection(leads_service, transport, query_cache):
    """Test that a successful create invalidates every list of the resource."""
    transport.add("GET", "/api/leads", json=[])
    transport.add("POST", "/api/leads", status_code=201, json=create_lead_data(lead_id="9"))
    await leads_service.list()

    result = await leads_service.create({"customerName": "Anita Rao", "phone": "9000000001"})

    assert result.ok is True
    assert isinstance(result.data, Lead)
    assert request_json(transport.calls("POST", "/api/leads")[0])["customerName"] == "Anita Rao"
    assert query_cache.get_state(("/api/leads",)).is_stale is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rejected_update_does_not_invalidate(leads_service, transport, query_cache):
    """Test that a backend rejection leaves the cache untouched."""
    transport.add("GET", "/api/leads", json=[create_lead_data(lead_id="1")])
    transport.add("PATCH", "/api/leads/1", status_code=400, json={"message": "invalid status"})
    await leads_service.list()

    result = await leads_service.update("1", {"status": "bogus"})

    assert_failed_with(result, MutationError)
    assert query_cache.get_state(("/api/leads",)).is_stale is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replace_sends_whole_record(leads_service, transport):
    """Test PUT with a record model serialized in camelCase."""
    lead = Lead(**create_lead_data(lead_id="1", customerName="Meera Iyer"))
    transport.add("PUT", "/api/leads/1", json=lead.to_payload())

    result = await leads_service.replace("1", lead)

    assert result.ok is True
    body = request_json(transport.calls("PUT", "/api/leads/1")[0])
    assert body["customerName"] == "Meera Iyer"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_reports_unapplied_delete(leads_service, transport):
    """Test that {success: false} is a failed mutation."""
    transport.add("DELETE", "/api/leads/1", json={"success": False})

    result = await leads_service.delete("1")

    assert_failed_with(result, MutationError)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_missing_record(leads_service):
    """Test that deleting an unknown id reports NotFoundError."""
    result = await leads_service.delete("missing")

    assert_failed_with(result, NotFoundError)
