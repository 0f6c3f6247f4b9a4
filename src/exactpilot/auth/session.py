"""
Session state — holds the OAuth2 token pair and renews it before expiry.

Exact Online access tokens live for 600 seconds. Every issuance schedules
the next refresh 570 seconds out, and the refresh itself happens lazily
on the next API call rather than on a timer.

Usage::

    session = SessionState.create(config)
    print(session.authorization_url())
    await session.authenticate(code, api)
    await session.refresh_if_needed()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from exactpilot.auth.token_store import TokenRecord, TokenStore
from exactpilot.errors import AuthError, DecodeError, ExactPilotError, describe_provider_error

if TYPE_CHECKING:
    from exactpilot.client import ApiClient
    from exactpilot.config import ExactPilotConfig

logger = logging.getLogger("exactpilot.auth.session")

REFRESH_MARGIN = 570

_CURRENT_DIVISION_PATH = "/v1/current/Me?$select=CurrentDivision"


class SessionState:
    """In-memory credentials and tokens for the single authenticated session.

    Not safe for concurrent use on its own; callers serialize access
    (see :class:`exactpilot.pilot.ExactPilot`).
    """

    def __init__(
        self,
        config: ExactPilotConfig,
        store: TokenStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.store = store
        self._clock = clock
        self._http_client: httpx.AsyncClient | None = None

        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.refresh_at: int = 0
        self.current_division: int | None = None

        record = store.load()
        if record is not None:
            self._apply(record)
            logger.info("Loaded existing session from %s", store.path)

    @classmethod
    def create(cls, config: ExactPilotConfig, **kwargs: Any) -> SessionState:
        """Build a session over the config's per-user data directory.

        Raises:
            ConfigError: If the data directory cannot be resolved or created.
        """
        return cls(config, TokenStore(config.resolve_data_dir()), **kwargs)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _apply(self, record: TokenRecord) -> None:
        self.access_token = record.access_token
        self.refresh_token = record.refresh_token
        self.refresh_at = record.refresh_at
        self.current_division = record.current_division

    def _now(self) -> int:
        return int(self._clock())

    def to_record(self) -> TokenRecord:
        if not self.access_token or not self.refresh_token:
            raise AuthError("Not authenticated")
        return TokenRecord(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            refresh_at=self.refresh_at,
            current_division=self.current_division,
        )

    def is_authenticated(self) -> bool:
        """True if an access token is held. It may still be due for refresh."""
        return self.access_token is not None

    @property
    def token_url(self) -> str:
        return f"{self.config.api}/oauth2/token"

    def authorization_url(self) -> str:
        """Build the provider's authorization-code URL."""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
        }
        return f"{self.config.api}/oauth2/auth?{urlencode(params)}"

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable httpx client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.config.timeout,
                verify=self.config.verify_tls,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _request_tokens(self, payload: dict[str, str], action: str) -> dict[str, Any]:
        """POST a form to the token endpoint and return the decoded body."""
        client = await self._get_client()
        try:
            resp = await client.post(self.token_url, data=payload)
        except httpx.HTTPError as e:
            raise AuthError(f"Failed to {action}: {e}") from e

        logger.info("Token endpoint (%s) responded %d", payload["grant_type"], resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise AuthError(
                f"Failed to {action}: unreadable token response (HTTP {resp.status_code})"
            ) from e

        if not isinstance(data, dict):
            raise AuthError(f"Failed to {action}: unexpected token response")
        if "error" in data:
            raise AuthError(f"Failed to {action}: {describe_provider_error(data['error'])}")
        if resp.is_error:
            raise AuthError(f"Failed to {action}: HTTP {resp.status_code}")
        if not data.get("access_token"):
            raise AuthError(f"Failed to {action}: no access token in response")
        return data

    def _store_tokens(self, data: dict[str, Any]) -> None:
        self.access_token = str(data["access_token"])
        # Keep the previous refresh token if the provider did not rotate it
        if data.get("refresh_token"):
            self.refresh_token = str(data["refresh_token"])
        self.refresh_at = self._now() + REFRESH_MARGIN

    def _persist(self) -> None:
        self.store.save(self.to_record())

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def authenticate(self, code: str, api: ApiClient) -> None:
        """Exchange an authorization code for tokens and persist them.

        The current division is resolved afterwards on a best-effort basis;
        its failure is logged and does not fail authentication.

        Raises:
            AuthError: If the token exchange fails.
        """
        payload = {
            "grant_type": "authorization_code",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": self.config.redirect_uri,
            "code": code,
        }
        data = await self._request_tokens(payload, "authenticate")
        self._store_tokens(data)
        logger.info("Exchanged authorization code for tokens")

        try:
            self.current_division = await self.fetch_current_division(api)
        except ExactPilotError as e:
            logger.warning("Could not resolve current division: %s", e)

        self._persist()

    async def refresh_if_needed(self) -> None:
        """Renew the token pair when ``refresh_at`` has passed.

        Raises:
            AuthError: If no refresh token is held or the provider refuses.
        """
        if self.refresh_at > self._now():
            return

        if not self.refresh_token:
            raise AuthError("No refresh token available. Please authenticate first.")

        payload = {
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        data = await self._request_tokens(payload, "refresh token")
        self._store_tokens(data)
        self._persist()
        logger.info("Refreshed access token (next refresh in %ds)", REFRESH_MARGIN)

    async def fetch_current_division(self, api: ApiClient) -> int:
        """Ask the provider which division the user is working in.

        Raises:
            DecodeError: If the response carries no ``CurrentDivision``.
        """
        response = await api.get(_CURRENT_DIVISION_PATH)

        candidates: list[Any] = []
        if isinstance(response, dict):
            d = response.get("d")
            if isinstance(d, dict):
                results = d.get("results")
                if isinstance(results, list) and results and isinstance(results[0], dict):
                    candidates.append(results[0].get("CurrentDivision"))
                candidates.append(d.get("CurrentDivision"))
            candidates.append(response.get("CurrentDivision"))

        for value in candidates:
            if isinstance(value, int) and not isinstance(value, bool):
                logger.info("Found current division: %d", value)
                return value

        raise DecodeError("Could not find CurrentDivision in response")

    def logout(self) -> None:
        """Forget all tokens and delete the stored record. Idempotent."""
        self.access_token = None
        self.refresh_token = None
        self.refresh_at = 0
        self.current_division = None
        try:
            self.store.delete()
        except OSError as e:
            raise ExactPilotError(f"Failed to delete tokens file: {e}") from e
        logger.info("Logged out")
