"""Test helper functions."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from ownitright.services.rest_client import RestClient

TEST_BASE_URL = "http://testserver"


class FakeClock:
    """Callable clock for QueryCache; only moves when advanced."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport(httpx.MockTransport):
    """Mock transport with per-route canned responses that records every request."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Dict[str, Any]] = {}
        super().__init__(self._handle)

    def add(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json: Any = None,
        content: Optional[bytes] = None,
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        self.routes[(method.upper(), path)] = {
            "status_code": status_code,
            "json": json,
            "content": content,
            "handler": handler,
        }

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if route["handler"] is not None:
            return route["handler"](request)
        if route["content"] is not None:
            return httpx.Response(route["status_code"], content=route["content"])
        if route["json"] is None:
            return httpx.Response(route["status_code"])
        return httpx.Response(route["status_code"], json=route["json"])


def make_rest_client(transport: httpx.AsyncBaseTransport) -> RestClient:
    """RestClient pointed at the test server through the given transport."""
    return RestClient(base_url=TEST_BASE_URL, transport=transport)


def request_json(request: httpx.Request) -> Any:
    """Decode a recorded request's JSON body."""
    return json.loads(request.content.decode("utf-8"))


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() holds."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout=timeout)
