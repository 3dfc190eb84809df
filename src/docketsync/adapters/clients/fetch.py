"""Rate-limited request helpers for the Docketwise REST API.

Docketwise allows roughly 120 requests per minute and answers with 419 or 429
when a client goes over budget. ``RateLimitedFetcher`` issues one request at a
time, backs off exponentially on those two codes, and walks paginated
collection endpoints page by page.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import json
from typing import Any

import httpx
import loguru
from loguru import logger
from pydantic import BaseModel, ValidationError

from docketsync.adapters.clients.errors import DocketwiseAPIError, DocketwiseClientError

RATE_LIMIT_STATUS_CODES = frozenset({419, 429})
RATE_LIMIT_DELAY_SECONDS = 0.6
DEFAULT_MAX_RETRIES = 3
DEFAULT_PAGE_SIZE = 200
DEFAULT_MAX_PAGES = 500
PAGINATION_HEADER = "X-Pagination"

Sleep = Callable[[float], Awaitable[None]]


def backoff_seconds(attempt: int) -> float:
    """Wait before retry number ``attempt + 1`` (2s, 4s, 8s, ...)."""
    return float(2 ** (attempt + 1))


def bearer_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


class Pagination(BaseModel):
    """Parsed ``X-Pagination`` header."""

    total: int | None = None
    next_page: int | None = None
    previous_page: int | None = None
    total_pages: int | None = None


def parse_pagination_header(value: str | None) -> Pagination | None:
    """Return the pagination header as a model, or None if absent or malformed."""
    if not value:
        return None
    try:
        return Pagination.model_validate_json(value)
    except ValidationError:
        return None


@dataclass
class PageLoadResult:
    """Records accumulated by a paginated load plus how the loop ended."""

    records: list[dict[str, Any]]
    pages_fetched: int
    error_status: int | None = None
    error_body: str = ""

    @property
    def complete(self) -> bool:
        return self.error_status is None


class FetchLogger:
    """Handles all logging for RateLimitedFetcher."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def rate_limited(
        self, status_code: int, wait_seconds: float, attempt: int, max_retries: int
    ) -> None:
        self._logger.bind(
            status=status_code, wait=wait_seconds, attempt=attempt
        ).warning(
            "Rate limited ({}), waiting {}s before retry {}/{}",
            status_code,
            wait_seconds,
            attempt,
            max_retries,
        )

    def retries_exhausted(self, url: str, status_code: int, max_retries: int) -> None:
        self._logger.bind(url=url, status=status_code).error(
            "Still rate limited ({}) after {} retries: {}",
            status_code,
            max_retries,
            url,
        )

    def page_fetched(
        self, endpoint: str, page: int, count: int, total_so_far: int
    ) -> None:
        self._logger.bind(endpoint=endpoint, page=page, count=count).info(
            "Fetched {} page {}: {} records (total: {})",
            endpoint,
            page,
            count,
            total_so_far,
        )

    def page_failed(self, endpoint: str, page: int, status_code: int) -> None:
        self._logger.bind(endpoint=endpoint, page=page, status=status_code).error(
            "Failed to fetch {} page {}: {}", endpoint, page, status_code
        )

    def max_pages_reached(self, endpoint: str, max_pages: int) -> None:
        self._logger.bind(endpoint=endpoint).warning(
            "Reached max page limit of {} for {}", max_pages, endpoint
        )


class RateLimitedFetcher:
    """Sequential, rate-limit aware access to a Docketwise API host."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        rate_limit_delay: float = RATE_LIMIT_DELAY_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """
        Args:
            client: httpx client bound to the API base URL
            max_retries: Retries allowed on 419/429 responses
            rate_limit_delay: Seconds to wait between successive page fetches
            page_size: Full page size used by the short-page heuristic
            max_pages: Safety cap on pages fetched per collection
            sleep: Awaitable sleep, injectable for tests
        """
        self._client = client
        self._max_retries = max_retries
        self._rate_limit_delay = rate_limit_delay
        self._page_size = page_size
        self._max_pages = max_pages
        self._sleep = sleep
        self._logger = FetchLogger()

    @property
    def rate_limit_delay(self) -> float:
        return self._rate_limit_delay

    async def aclose(self) -> None:
        await self._client.aclose()

    async def pause(self) -> None:
        """Wait the fixed inter-request delay."""
        if self._rate_limit_delay > 0:
            await self._sleep(self._rate_limit_delay)

    async def fetch_with_retry(
        self,
        request: httpx.Request,
        max_retries: int | None = None,
    ) -> httpx.Response:
        """Send ``request``, retrying only on rate-limit responses.

        Returns the first response that is not rate limited, or the last
        rate-limited response once retries are exhausted. Network errors
        propagate to the caller.
        """
        retries = self._max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            response = await self._client.send(request)
            if response.status_code not in RATE_LIMIT_STATUS_CODES:
                return response
            if attempt >= retries:
                self._logger.retries_exhausted(
                    str(request.url), response.status_code, retries
                )
                return response

            wait_seconds = backoff_seconds(attempt)
            self._logger.rate_limited(
                response.status_code, wait_seconds, attempt + 1, retries
            )
            await response.aclose()
            await self._sleep(wait_seconds)
            attempt += 1

    async def get(self, endpoint: str, token: str, **params: Any) -> httpx.Response:
        request = self._client.build_request(
            "GET", endpoint, headers=bearer_headers(token), params=params or None
        )
        return await self.fetch_with_retry(request)

    async def load_pages(self, endpoint: str, token: str) -> PageLoadResult:
        """Fetch every page of ``endpoint`` in page order."""
        records: list[dict[str, Any]] = []
        page = 1
        pages_fetched = 0

        while page <= self._max_pages:
            if page > 1:
                await self.pause()

            response = await self.get(endpoint, token, page=page)
            if not response.is_success:
                self._logger.page_failed(endpoint, page, response.status_code)
                return PageLoadResult(
                    records=records,
                    pages_fetched=pages_fetched,
                    error_status=response.status_code,
                    error_body=response.text,
                )

            page_records = _records_from_body(response)
            pages_fetched += 1
            if not page_records:
                break

            records.extend(page_records)
            self._logger.page_fetched(endpoint, page, len(page_records), len(records))

            pagination = parse_pagination_header(
                response.headers.get(PAGINATION_HEADER)
            )
            if pagination is not None:
                if not pagination.next_page:
                    break
            elif len(page_records) < self._page_size:
                break

            page += 1
        else:
            self._logger.max_pages_reached(endpoint, self._max_pages)

        return PageLoadResult(records=records, pages_fetched=pages_fetched)

    async def load_all_pages(self, endpoint: str, token: str) -> list[dict[str, Any]]:
        """Return all records of a collection; a failing page ends the walk early."""
        result = await self.load_pages(endpoint, token)
        return result.records

    async def load_all_pages_checked(
        self, endpoint: str, token: str
    ) -> list[dict[str, Any]]:
        """Like ``load_all_pages`` but raise if a page came back non-2xx."""
        result = await self.load_pages(endpoint, token)
        if result.error_status is not None:
            raise DocketwiseAPIError(
                result.error_status, result.error_body, url=endpoint
            )
        return result.records


def _records_from_body(response: httpx.Response) -> list[dict[str, Any]]:
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DocketwiseClientError(
            f"Failed to parse Docketwise response as JSON: {e}: {response.text[:200]}"
        ) from e

    # Older endpoints wrap the array as {"data": [...], "pagination": {...}}.
    if isinstance(body, dict):
        body = body.get("data", [])
    if not isinstance(body, list):
        raise DocketwiseClientError(
            f"Expected a JSON array from {response.request.url}, got {type(body).__name__}"
        )
    return [item for item in body if isinstance(item, dict)]
