"""Shared builders for HTTP doubles and OData pages."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import httpx

from exactpilot.client import ApiClient

BASE = "https://start.exactonline.nl/api"
NOW = 1_700_000_000


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def json_response(payload: Any, status: int = 200, method: str = "GET") -> httpx.Response:
    return httpx.Response(status, json=payload, request=httpx.Request(method, BASE))


def text_response(text: str, status: int = 200, method: str = "GET") -> httpx.Response:
    return httpx.Response(status, text=text, request=httpx.Request(method, BASE))


def mock_http_client() -> AsyncMock:
    client = AsyncMock()
    client.is_closed = False
    return client


def page(rows: list[dict[str, Any]], next_path: str | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {"results": rows}
    if next_path is not None:
        data["__next"] = f"{BASE}{next_path}"
    return {"d": data}


class StubApi:
    """Serves canned payloads by path and records every request."""

    base_url = BASE
    relative_path = ApiClient.relative_path

    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.calls: list[str] = []

    async def get(self, path: str) -> Any:
        self.calls.append(path)
        value = self.responses[path]
        if isinstance(value, Exception):
            raise value
        return value
