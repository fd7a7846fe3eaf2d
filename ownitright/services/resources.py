"""Generic REST resource service backed by the query cache."""

from typing import Any, Mapping, Optional, Union

from ownitright.models.criteria import FilterCriteria, to_query_params
from ownitright.models.record import Record, ensure_unique_ids
from ownitright.models.registry import kind_for_path, parse_record
from ownitright.models.result import OperationResult
from ownitright.services.query_cache import QueryCache, QueryState
from ownitright.services.rest_client import RestClient
from ownitright.utils.errors import MutationError, NetworkError, ValidationError
from ownitright.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def unwrap_items(body: Any) -> list:
    """Accept a bare list or an {items, totalCount} envelope."""
    if body is None:
        return []
    if isinstance(body, list):
        return body
    if isinstance(body, Mapping) and isinstance(body.get("items"), list):
        return body["items"]
    raise NetworkError("Expected a list or an {items, totalCount} response")


class ResourceService:
    """
    CRUD for one collection, e.g. ResourceService(cache, client, "/api/leads").

    Lists are cached under (path,) or (path, params); single records under
    (path, id). Every successful write invalidates everything under (path,).
    """

    def __init__(self, cache: QueryCache, client: RestClient, path: str):
        self.cache = cache
        self.client = client
        self.path = path.rstrip("/")
        self.kind = kind_for_path(self.path)

    def _parse(self, item: Any) -> Union[Record, Any]:
        if self.kind is None:
            return item
        try:
            return parse_record(item, kind=self.kind)
        except ValidationError as e:
            # A bad server payload is a transport problem, not a local input error
            raise NetworkError(f"Malformed {self.kind} in {self.path} response: {e}") from e

    def _parse_list(self, body: Any) -> list:
        items = [self._parse(item) for item in unwrap_items(body)]
        if self.kind is None:
            return items
        try:
            return ensure_unique_ids(items)
        except ValidationError as e:
            raise NetworkError(f"{self.path} returned duplicate ids: {e}") from e

    def list_key(self, params: Optional[Mapping[str, Any]] = None) -> tuple:
        if not params:
            return (self.path,)
        return (self.path, dict(params))

    async def list(self, criteria: Union[FilterCriteria, Mapping[str, Any], None] = None) -> QueryState:
        """Fetch the collection; active criteria become query params."""
        params = to_query_params(criteria) if criteria is not None else {}

        async def fetch() -> list:
            return self._parse_list(await self.client.get(self.path, params=params))

        return await self.cache.query(self.list_key(params), fetch)

    async def get(self, record_id: str) -> QueryState:
        record_id = str(record_id)

        async def fetch():
            return self._parse(await self.client.get(f"{self.path}/{record_id}"))

        return await self.cache.query((self.path, record_id), fetch)

    def _payload(self, data: Union[Record, Mapping[str, Any]]) -> dict:
        if isinstance(data, Record):
            return data.to_payload()
        if not isinstance(data, Mapping):
            raise ValidationError(f"Expected a record or mapping, got {type(data).__name__}")
        return dict(data)

    async def _write(self, operation: str, send, record_id: Optional[str] = None) -> OperationResult:
        async def run():
            body = await send()
            if operation == "delete" and isinstance(body, Mapping) and body.get("success") is False:
                raise MutationError(f"Delete of {self.path}/{record_id} was not applied")
            if operation == "delete" or body is None or self.kind is None:
                return body
            return self._parse(body)

        result = await self.cache.mutate(run, invalidate=[(self.path,)])
        logger.info(
            f"Resource {operation}",
            path=self.path,
            record_id=record_id,
            success=result.ok,
            error=result.error_message
        )
        return result

    async def create(self, data: Union[Record, Mapping[str, Any]]) -> OperationResult:
        try:
            payload = self._payload(data)
        except ValidationError as e:
            return OperationResult.failure(e)
        return await self._write("create", lambda: self.client.post(self.path, json=payload))

    async def update(self, record_id: str, changes: Mapping[str, Any]) -> OperationResult:
        """PATCH partial fields."""
        try:
            payload = self._payload(changes)
        except ValidationError as e:
            return OperationResult.failure(e)
        return await self._write(
            "update",
            lambda: self.client.patch(f"{self.path}/{record_id}", json=payload),
            record_id=str(record_id),
        )

    async def replace(self, record_id: str, data: Union[Record, Mapping[str, Any]]) -> OperationResult:
        """PUT the whole record."""
        try:
            payload = self._payload(data)
        except ValidationError as e:
            return OperationResult.failure(e)
        return await self._write(
            "replace",
            lambda: self.client.put(f"{self.path}/{record_id}", json=payload),
            record_id=str(record_id),
        )

    async def delete(self, record_id: str) -> OperationResult:
        return await self._write(
            "delete",
            lambda: self.client.delete(f"{self.path}/{record_id}"),
            record_id=str(record_id),
        )
