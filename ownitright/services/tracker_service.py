"""Legal tracker operations against the backend."""

from datetime import datetime, timezone
from typing import Optional, Union

from ownitright.models.result import OperationResult
from ownitright.models.status import StepStatus, parse_enum
from ownitright.models.tracker import Tracker, new_legal_tracker
from ownitright.services.progress import update_step_status
from ownitright.services.query_cache import QueryCache, QueryState
from ownitright.services.resources import ResourceService
from ownitright.services.rest_client import RestClient
from ownitright.utils.errors import OwnItRightError, ValidationError
from ownitright.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

TRACKERS_PATH = "/api/legal-trackers"


class TrackerService:
    """Tracker list plus step updates with optimistic progress."""

    def __init__(self, cache: QueryCache, client: RestClient):
        self.cache = cache
        self.client = client
        self.resources = ResourceService(cache, client, TRACKERS_PATH)

    async def list_trackers(self) -> QueryState:
        return await self.resources.list()

    def cached_tracker(self, tracker_id: str) -> Optional[Tracker]:
        trackers = self.cache.get_query_data((TRACKERS_PATH,)) or []
        for tracker in trackers:
            if tracker.id == str(tracker_id):
                return tracker
        return None

    async def update_step(self, tracker_id: str, step_id: str,
                          status: Union[StepStatus, str],
                          notes: Optional[str] = None) -> OperationResult:
        """
        Move one step to a new status.

        Unknown statuses and steps missing from the cached tracker are
        rejected before anything is sent. The cached tracker list shows the
        new progress immediately and is rolled back if the backend refuses.
        """
        tracker_id, step_id = str(tracker_id), str(step_id)
        now = datetime.now(timezone.utc)
        try:
            new_status = parse_enum(StepStatus, status, field="status")
            cached = self.cached_tracker(tracker_id)
            if cached is not None:
                # Validates the step id against the cached copy
                update_step_status(cached, step_id, new_status, now=now, notes=notes)
        except OwnItRightError as e:
            logger.warning(
                "Step update rejected locally",
                tracker_id=tracker_id,
                step_id=step_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return OperationResult.failure(e)

        def updater(trackers):
            if trackers is None:
                return trackers
            return [
                update_step_status(t, step_id, new_status, now=now, notes=notes)
                if t.id == tracker_id else t
                for t in trackers
            ]

        payload = {
            "status": new_status.value,
            "dateVerified": now.isoformat() if new_status == StepStatus.VERIFIED else None,
        }
        if notes is not None:
            payload["notes"] = notes

        async def send():
            return await self.client.patch(f"{TRACKERS_PATH}/{tracker_id}/steps/{step_id}", json=payload)

        result = await self.cache.mutate(
            send,
            invalidate=[(TRACKERS_PATH,)],
            optimistic=((TRACKERS_PATH,), updater),
        )
        logger.info(
            "Step update",
            tracker_id=tracker_id,
            step_id=step_id,
            status=new_status.value,
            success=result.ok
        )
        return result

    async def create_tracker(self, property_id: str, property_name: str) -> OperationResult:
        """Create a tracker seeded with the legal step template."""
        if not property_id:
            return OperationResult.failure(ValidationError("property_id is required", field="property_id"))
        tracker = new_legal_tracker(str(property_id), property_name)
        payload = tracker.to_payload()
        # Server assigns the id; progress is always derived locally
        payload.pop("id", None)
        payload.pop("overallProgress", None)
        payload.pop("kind", None)
        return await self.resources.create(payload)
