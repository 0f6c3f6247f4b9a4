"""
Paginated bulk fetcher — follows ``__next`` links until the last page.

Each page is decoded by a caller-supplied decoder, accumulated in page
order, and reported through progress events. The cancellation token is
checked before and after every page, so a cancel request takes effect
within one page request.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from exactpilot.cancellation import CancellationRegistry, CancellationToken
from exactpilot.client import ApiClient
from exactpilot.errors import Cancelled, ExactPilotError
from exactpilot.models.records import PageEnvelope

logger = logging.getLogger("exactpilot.fetcher")

T = TypeVar("T")

UNKNOWN_TOTAL = -1


@dataclass(frozen=True)
class ProgressEvent:
    """Running count of fetched records, with the expected total if known."""

    current: int
    total: int
    message: str
    name: str = "progress"

    @property
    def total_known(self) -> bool:
        return self.total != UNKNOWN_TOTAL

    def to_dict(self) -> dict[str, Any]:
        return {"current": self.current, "total": self.total, "message": self.message}


ProgressCallback = Callable[[ProgressEvent], None]
PageDecoder = Callable[[Any], PageEnvelope[T]]


class PaginatedFetcher:
    """Drives multi-page retrieval through an :class:`ApiClient`."""

    def __init__(self, api: ApiClient, registry: CancellationRegistry) -> None:
        self.api = api
        self.registry = registry

    async def fetch_all(
        self,
        initial_path: str,
        decode_page: PageDecoder[T],
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
        *,
        count_path: str | None = None,
        label: str = "records",
        event_name: str = "progress",
    ) -> list[T]:
        """Fetch every page starting at ``initial_path``.

        Args:
            initial_path: Path of the first page, relative to the API base.
            decode_page: Turns a decoded JSON page into a :class:`PageEnvelope`.
            on_progress: Called after the count probe and after every page.
            cancel_token: Token to observe; a fresh one is created if omitted.
            count_path: Optional ``$count`` endpoint probed for the total.
            label: Record noun used in progress messages.
            event_name: Name carried by emitted progress events.

        Returns:
            All records, in page order.

        Raises:
            Cancelled: If the token is set during the fetch. Partial
                results are discarded.
            FetchInProgressError: If another fetch is registered.
        """
        token = cancel_token or CancellationToken()
        self.registry.register(token)
        try:
            return await self._fetch_pages(
                initial_path, decode_page, on_progress, token,
                count_path=count_path, label=label, event_name=event_name,
            )
        finally:
            self.registry.release(token)

    async def _fetch_pages(
        self,
        initial_path: str,
        decode_page: PageDecoder[T],
        on_progress: ProgressCallback | None,
        token: CancellationToken,
        *,
        count_path: str | None,
        label: str,
        event_name: str,
    ) -> list[T]:
        def emit(current: int, total: int, message: str) -> None:
            if on_progress is not None:
                on_progress(ProgressEvent(current, total, message, event_name))

        total: int | None = None
        if count_path is not None:
            total = await self.probe_count(count_path)
            if total is not None:
                emit(0, total, f"Found {total} {label}, starting fetch...")

        results: list[T] = []
        path: str | None = initial_path
        pages = 0

        while path is not None:
            _raise_if_cancelled(token)

            payload = await self.api.get(path)
            page = decode_page(payload)
            results.extend(page.results)
            pages += 1

            current = len(results)
            if total is not None:
                emit(current, total, f"Fetched {current} of {total} {label}...")
            else:
                emit(current, UNKNOWN_TOTAL, f"Fetched {current} {label} so far...")
            logger.debug("Page %d: %d %s (running total %d)", pages, len(page.results), label, current)

            _raise_if_cancelled(token)

            path = self.api.relative_path(page.next_cursor) if page.next_cursor else None

        logger.info("Fetched %d %s in %d pages", len(results), label, pages)
        return results

    async def probe_count(self, count_path: str) -> int | None:
        """Ask the ``$count`` endpoint for the total. Failure leaves it unknown."""
        try:
            value = await self.api.get(count_path)
        except ExactPilotError as e:
            logger.debug("Count probe %s failed: %s", count_path, e)
            return None
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None


def _raise_if_cancelled(token: CancellationToken) -> None:
    if token.cancelled:
        logger.info("Fetch cancelled")
        raise Cancelled()
