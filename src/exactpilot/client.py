"""
Authenticated GET requests against the Exact Online REST API.

The provider reports some failures as HTTP 200 with an ``error`` body,
so the decoded payload is checked as well as the status code.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exactpilot.auth.session import SessionState
from exactpilot.errors import ApiError, AuthError, DecodeError, TransportError, describe_provider_error

logger = logging.getLogger("exactpilot.client")


class ApiClient:
    """Issues bearer-authenticated GETs using the session's current token."""

    def __init__(self, session: SessionState) -> None:
        self.session = session
        self._http: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self.session.config.api

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable httpx client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.session.config.timeout,
                verify=self.session.config.verify_tls,
                headers={"Accept": "application/json"},
            )
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    def relative_path(self, url: str) -> str:
        """Turn an absolute next-page link back into a path under the API base.

        Raises:
            DecodeError: If the link points outside the API base.
        """
        if url.startswith(self.base_url):
            return url[len(self.base_url):]
        if url.startswith("/"):
            return url
        raise DecodeError(f"Next-page link is outside the API base: {url}")

    async def get(self, path: str) -> Any:
        """GET ``path`` (relative to the API base) and return the decoded JSON.

        Raises:
            AuthError: If the session cannot supply a valid token.
            TransportError: On connection or timeout failure.
            ApiError: On a non-2xx status or an ``error`` payload.
            DecodeError: If the body is not JSON.
        """
        await self.session.refresh_if_needed()
        token = self.session.access_token
        if not token:
            raise AuthError("Not authenticated")

        client = await self._get_client()
        url = f"{self.base_url}{path}"
        logger.debug("GET %s", path)

        try:
            resp = await client.get(
                url,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {token}",
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP request failed: {e}") from e

        if not resp.is_success:
            raise ApiError(
                f"API error ({resp.status_code}): {resp.text}",
                status=resp.status_code,
                body=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise DecodeError(f"Failed to parse JSON from {path}: {e}") from e

        if isinstance(data, dict) and "error" in data:
            message = describe_provider_error(data["error"])
            raise ApiError(f"API error: {message}", status=resp.status_code, body=resp.text)

        return data
