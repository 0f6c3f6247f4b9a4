"""
ExactPilot — the commands an application shell invokes.

One :class:`ExactPilot` is created at startup and owns the single
authenticated session. Commands that touch the session hold its lock for
their whole duration, network I/O included, so concurrently dispatched
commands run one after another. ``cancel_operation`` is the exception: it
goes through the cancellation registry and never waits for the lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import parse_qs, quote, urlparse

from exactpilot.auth.session import SessionState
from exactpilot.cancellation import CancellationRegistry, CancellationToken
from exactpilot.client import ApiClient
from exactpilot.config import ExactPilotConfig
from exactpilot.errors import AuthError, Cancelled
from exactpilot.fetcher import PaginatedFetcher, ProgressCallback
from exactpilot.models.records import (
    Division,
    Transaction,
    decode_division_page,
    decode_transaction_page,
)

logger = logging.getLogger("exactpilot")

TRANSACTION_PROGRESS = "transaction-progress"
DIVISION_PROGRESS = "division-progress"

DIVISION_ATTRIBUTES = "Code,Customer,CustomerCode,CustomerName,Description"

# https://start.exactonline.nl/docs/HlpRestAPIResourcesDetails.aspx?name=BulkFinancialTransactionLines
TRANSACTION_ATTRIBUTES = ",".join([
    "AccountCode", "AccountName", "AmountDC", "AmountFC", "AmountVATBaseFC",
    "AmountVATFC", "AssetCode", "AssetDescription", "CostCenter",
    "CostCenterDescription", "CostUnit", "CostUnitDescription",
    "CreatorFullName", "Currency", "CustomField", "Description", "Division",
    "Document", "DocumentNumber", "DocumentSubject", "DueDate", "EntryNumber",
    "ExchangeRate", "ExternalLinkDescription", "ExternalLinkReference",
    "ExtraDutyAmountFC", "ExtraDutyPercentage", "FinancialPeriod",
    "FinancialYear", "GLAccountCode", "GLAccountDescription", "InvoiceNumber",
    "Item", "ItemCode", "ItemDescription", "JournalCode", "JournalDescription",
    "LineType", "Modified", "ModifierFullName", "Notes", "OrderNumber",
    "PaymentDiscountAmount", "PaymentReference", "Project", "ProjectCode",
    "ProjectDescription", "Quantity", "SerialNumber", "ShopOrder", "Status",
    "Subscription", "SubscriptionDescription", "TrackingNumber",
    "TrackingNumberDescription", "Type", "VATCode", "VATCodeDescription",
    "VATPercentage", "VATType", "YourRef",
])


def divisions_path(division: int) -> str:
    return f"/v1/{division}/system/Divisions?$select={DIVISION_ATTRIBUTES}"


def _filter_query(filter: str | None) -> str:
    if filter is None or not filter.strip():
        return ""
    return f"$filter={quote(filter, safe='')}"


def transactions_path(division: int, filter: str | None = None) -> str:
    path = f"/v1/{division}/bulk/Financial/TransactionLines?$select={TRANSACTION_ATTRIBUTES}"
    query = _filter_query(filter)
    return f"{path}&{query}" if query else path


def transactions_count_path(division: int, filter: str | None = None) -> str:
    path = f"/v1/{division}/bulk/Financial/TransactionLines/$count"
    query = _filter_query(filter)
    return f"{path}?{query}" if query else path


def extract_auth_code(value: str) -> str:
    """Return the authorization code from a bare code or a pasted redirect URL.

    Raises:
        AuthError: If no code can be found.
    """
    value = value.strip()
    if "://" in value or value.startswith("?"):
        codes = parse_qs(urlparse(value).query).get("code")
        if not codes:
            raise AuthError("No authorization code found in URL")
        return codes[0]
    if not value:
        raise AuthError("Authorization code is empty")
    return value


class ExactPilot:
    """Top-level entry point wiring the session, client, fetcher and registry.

    Usage::

        from exactpilot import ExactPilot

        pilot = ExactPilot.from_config("exactpilot.yaml")
        print(await pilot.get_auth_url())
        await pilot.authenticate_with_code(code)
        divisions = await pilot.get_divisions()
        lines = await pilot.get_transactions(divisions[0].code, "FinancialYear gt 2023")
    """

    def __init__(self, session: SessionState) -> None:
        self.session = session
        self.api = ApiClient(session)
        self.registry = CancellationRegistry()
        self.fetcher = PaginatedFetcher(self.api, self.registry)
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config_path: str | None = None, **overrides: Any) -> ExactPilot:
        """Create an ExactPilot instance from a config file or keyword arguments.

        Raises:
            ConfigError: On missing secrets or an unusable data directory.
        """
        config = ExactPilotConfig.load(config_path, **overrides)
        instance = cls(SessionState.create(config))
        logger.info("ExactPilot initialized for %s", config.api)
        return instance

    @property
    def config(self) -> ExactPilotConfig:
        return self.session.config

    async def close(self) -> None:
        await self.api.close()
        await self.session.close()

    async def __aenter__(self) -> ExactPilot:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def get_auth_url(self) -> str:
        return self.session.authorization_url()

    async def authenticate_with_code(self, code: str) -> None:
        """Exchange an authorization code (or pasted redirect URL) for tokens."""
        code = extract_auth_code(code)
        async with self._lock:
            await self.session.authenticate(code, self.api)

    async def is_authenticated(self) -> bool:
        async with self._lock:
            return self.session.is_authenticated()

    async def get_divisions(self, on_progress: ProgressCallback | None = None) -> list[Division]:
        """Fetch every division visible from the current one, sorted by customer.

        Raises:
            AuthError: If no current division is known.
            Cancelled: If :meth:`cancel_operation` is called mid-fetch.
        """
        async with self._lock:
            await self.session.refresh_if_needed()
            division = self.session.current_division
            if division is None:
                raise AuthError("No current division found. Please authenticate first.")

            divisions = await self.fetcher.fetch_all(
                divisions_path(division),
                decode_division_page,
                on_progress,
                label="divisions",
                event_name=DIVISION_PROGRESS,
            )

        divisions.sort(key=lambda d: d.sort_key)
        return divisions

    async def get_transactions(
        self,
        division: int,
        filter: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[Transaction]:
        """Fetch all transaction lines of a division.

        Args:
            division: Division code to query.
            filter: Optional OData ``$filter`` expression, e.g. ``FinancialYear gt 2023``.
            on_progress: Receives ``transaction-progress`` events.

        Raises:
            Cancelled: If :meth:`cancel_operation` is called mid-fetch.
        """
        async with self._lock:
            await self.session.refresh_if_needed()
            return await self._fetch_transactions(division, filter, on_progress)

    async def get_transactions_for_divisions(
        self,
        divisions: Sequence[int],
        filter: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[Transaction]:
        """Fetch transaction lines of several divisions into one list, in order.

        The session lock is held across all divisions. A cancel stops the run
        and discards what was fetched so far.

        Raises:
            Cancelled: If :meth:`cancel_operation` is called mid-fetch.
        """
        token = CancellationToken()
        lines: list[Transaction] = []
        async with self._lock:
            await self.session.refresh_if_needed()
            for i, division in enumerate(divisions, start=1):
                logger.info(
                    "Fetching transactions for division %s (%d/%d)", division, i, len(divisions)
                )
                lines.extend(await self._fetch_transactions(division, filter, on_progress, token))
                if token.cancelled:
                    raise Cancelled()
        logger.info("Fetched %d transactions from %d division(s)", len(lines), len(divisions))
        return lines

    async def _fetch_transactions(
        self,
        division: int,
        filter: str | None,
        on_progress: ProgressCallback | None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Transaction]:
        return await self.fetcher.fetch_all(
            transactions_path(division, filter),
            decode_transaction_page,
            on_progress,
            cancel_token,
            count_path=transactions_count_path(division, filter),
            label="transactions",
            event_name=TRANSACTION_PROGRESS,
        )

    async def cancel_operation(self) -> None:
        """Signal the running fetch, if any. Never blocks on the session lock."""
        self.registry.cancel()

    async def logout(self) -> None:
        async with self._lock:
            self.session.logout()
