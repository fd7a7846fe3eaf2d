"""REST collaborator client with async context manager support."""

from typing import Any, Mapping, Optional

import httpx

from ownitright.models.criteria import is_unconstrained
from ownitright.utils.config import ClientConfig
from ownitright.utils.errors import MutationError, NetworkError, NotFoundError
from ownitright.utils.logging import (
    generate_correlation_id,
    get_correlation_id,
    get_structured_logger,
    log_timing,
)
from ownitright.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

READ_METHODS = ("GET", "HEAD")


def clean_params(params: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Drop unconstrained values ("all", "", None) and render booleans as JSON does."""
    if not params:
        return {}
    cleaned = {}
    for key, value in params.items():
        if is_unconstrained(value):
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif hasattr(value, "value"):
            value = value.value
        cleaned[key] = value
    return cleaned


def _error_message(response: httpx.Response) -> str:
    """Best-effort server error message."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class RestClient:
    """Thin JSON client for GET/POST/PATCH/PUT/DELETE /api/... endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or ClientConfig.API_BASE_URL
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else ClientConfig.API_TIMEOUT_SECONDS,
            headers=dict(headers or {}),
            transport=transport,
        )

    async def __aenter__(self) -> "RestClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None when empty)."""
        method = method.upper()
        correlation_id = get_correlation_id() or generate_correlation_id()
        headers = {LoggingConfig.LOG_CORRELATION_ID_HEADER: correlation_id}

        try:
            with log_timing("rest_request", logger=logger, method=method, path=path) as timing:
                response = await self._client.request(
                    method,
                    path,
                    params=clean_params(params),
                    json=json,
                    headers=headers,
                )
                timing["status_code"] = response.status_code
        except httpx.TimeoutException as e:
            logger.warning("REST request timed out", method=method, path=path, error=str(e))
            raise NetworkError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            logger.warning("REST request failed", method=method, path=path, error=str(e))
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"{method} {path}: not found")

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(
                "REST request rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                error=message,
            )
            if method in READ_METHODS:
                raise NetworkError(
                    f"{method} {path} returned {response.status_code}: {message}",
                    status_code=response.status_code,
                )
            raise MutationError(
                f"{method} {path} rejected ({response.status_code}): {message}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"{method} {path} returned invalid JSON") from e

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str) -> dict:
        body = await self.request("DELETE", path)
        if isinstance(body, dict) and "success" in body:
            return body
        return {"success": True}
