"""Shared fixtures: a recording fake API served through httpx.MockTransport."""

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from apitool import client, config


class FakeAPI:
    """Routes requests by (method, path) and records every request seen.

    A route is either a callable taking the request and returning a
    response, or a JSON-serializable body returned with status 200.
    """

    def __init__(self, routes: dict[tuple[str, str], Any] | None = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def api_config() -> config.APIConfig:
    """Configuration for a fake API with a token endpoint at /auth."""
    return config.APIConfig(
        host="https://api.test",
        username="u",
        password="p",
        endpoints={"token": "/auth", "status": "/status", "user": "/user"},
    )


@pytest.fixture
def fake_api() -> FakeAPI:
    """Fake API whose token endpoint returns {"token": "abc123"}."""
    return FakeAPI(
        {
            ("POST", "/auth"): {"token": "abc123"},
            ("GET", "/status"): 0,
        },
    )


@pytest.fixture
def tool(api_config: config.APIConfig, fake_api: FakeAPI) -> client.APITool:
    """APITool wired to the fake API."""
    return client.APITool(api_config, transport=fake_api.transport)


@pytest.fixture
def run() -> Callable[..., Any]:
    """Run ``fn(tool)`` inside a fresh event loop, closing the tool afterwards."""

    def _run(tool: client.APITool, fn: Callable[[client.APITool], Any]) -> Any:
        async def scenario():
            async with tool:
                return await fn(tool)

        return asyncio.run(scenario())

    return _run
