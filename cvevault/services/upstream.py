"""Upstream fetcher: paginated retrieval of the NVD CVE API 2.0 feed over httpx."""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from cvevault.schemas.records import VulnerabilityRecord
from cvevault.schemas.sync import RecordError
from cvevault.services.normalize import entry_identifier, normalize_entry

logger = logging.getLogger(__name__)

FetchErrorKind = Literal[
    "timeout",
    "network",
    "upstream_4xx",
    "upstream_5xx",
    "invalid_response",
]

DEFAULT_PAGE_SIZE = 2000
DEFAULT_TIMEOUT_SEC = 30.0


class UpstreamFetchError(Exception):
    """Raised when a page cannot be retrieved or parsed; kind classifies the failure."""

    def __init__(
        self,
        message: str,
        kind: FetchErrorKind,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.cause = cause
        super().__init__(message)


@dataclass
class UpstreamPage:
    """One normalized page of the feed."""

    records: list[VulnerabilityRecord]
    total_results: int
    start_index: int
    rejected: list[RecordError] = field(default_factory=list)


@dataclass
class FetchProgress:
    """Progress notification sent after each page of a chunked traversal."""

    current: int
    total: int
    percentage: int
    records: list[VulnerabilityRecord]
    rejected: list[RecordError] = field(default_factory=list)


ProgressCallback = Callable[[FetchProgress], None]


def _percentage(current: int, total: int) -> int:
    if total <= 0:
        return 100
    return max(0, min(100, round(current / total * 100)))


def _parse_page(body: Any, offset: int) -> UpstreamPage:
    """Validate the page envelope and normalize its entries, rejecting bad entries one by one."""
    if not isinstance(body, dict):
        raise UpstreamFetchError("Upstream response is not a JSON object.", "invalid_response")
    entries = body.get("vulnerabilities", [])
    if not isinstance(entries, list):
        raise UpstreamFetchError(
            "Upstream response field 'vulnerabilities' is not a list.", "invalid_response"
        )
    total_results = body.get("totalResults")
    if isinstance(total_results, bool) or not isinstance(total_results, int) or total_results < 0:
        raise UpstreamFetchError(
            "Upstream response is missing a valid 'totalResults'.", "invalid_response"
        )

    records: list[VulnerabilityRecord] = []
    rejected: list[RecordError] = []
    for entry in entries:
        try:
            records.append(normalize_entry(entry))
        except ValueError as e:
            # pydantic.ValidationError subclasses ValueError
            rejected.append(RecordError(external_id=entry_identifier(entry), message=str(e)[:500]))
    if rejected:
        logger.warning(
            "Rejected upstream entries",
            extra={"start_index": offset, "rejected_count": len(rejected)},
        )
    start_index = body.get("startIndex")
    if not isinstance(start_index, int):
        start_index = offset
    return UpstreamPage(
        records=records,
        total_results=total_results,
        start_index=start_index,
        rejected=rejected,
    )


class UpstreamFetcher:
    """
    Client for the paginated upstream feed.

    Pages are requested strictly one after another with startIndex/resultsPerPage.
    Every request carries a fixed timeout; there is no retry here, a failed page
    aborts the traversal with UpstreamFetchError.
    """

    def __init__(
        self,
        base_url: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        api_key: str | None = None,
        page_delay: float = 0.0,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.base_url = base_url
        self.page_size = page_size
        self.timeout = timeout
        self.api_key = api_key
        self.page_delay = page_delay

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apiKey"] = self.api_key
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), headers=self._headers())

    async def fetch_page(
        self,
        url: str | None,
        offset: int,
        limit: int,
        client: httpx.AsyncClient | None = None,
    ) -> UpstreamPage:
        """GET one page; non-2xx and transport failures raise a classified UpstreamFetchError."""
        if client is None:
            async with self._client() as own_client:
                return await self.fetch_page(url, offset, limit, client=own_client)

        target = url or self.base_url
        params = {"startIndex": offset, "resultsPerPage": limit}
        start = time.perf_counter()
        try:
            response = await client.get(target, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamFetchError(
                f"Upstream request timed out after {self.timeout}s (startIndex={offset}).",
                "timeout",
                cause=e,
            ) from e
        except httpx.ConnectError as e:
            raise UpstreamFetchError(
                "Upstream feed is unreachable. Check NVD_API_URL and network connectivity.",
                "network",
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamFetchError("Upstream request failed.", "network", cause=e) from e
        elapsed = time.perf_counter() - start

        if response.status_code >= 500:
            raise UpstreamFetchError(
                f"Upstream returned status {response.status_code}.",
                "upstream_5xx",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise UpstreamFetchError(
                f"Upstream returned status {response.status_code}.",
                "upstream_4xx",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise UpstreamFetchError(
                "Upstream response body is not valid JSON.",
                "invalid_response",
                status_code=response.status_code,
                cause=e,
            ) from e

        page = _parse_page(body, offset)
        logger.info(
            "Fetched upstream page",
            extra={
                "start_index": offset,
                "page_records": len(page.records),
                "total_results": page.total_results,
                "latency_seconds": elapsed,
            },
        )
        return page

    async def iter_pages(
        self,
        url: str | None = None,
        chunk_size: int | None = None,
    ) -> AsyncIterator[UpstreamPage]:
        """Yield pages in order until offset reaches the (latest reported) total."""
        limit = chunk_size or self.page_size
        offset = 0
        async with self._client() as client:
            while True:
                page = await self.fetch_page(url, offset, limit, client=client)
                yield page
                offset += limit
                if offset >= page.total_results:
                    break
                if self.page_delay > 0:
                    await asyncio.sleep(self.page_delay)

    async def fetch_all(
        self,
        url: str | None = None,
        rejected: list[RecordError] | None = None,
    ) -> list[VulnerabilityRecord]:
        """
        Fetch every page and return all records; any page error aborts with no partial result.

        Entries that could not be normalized are appended to `rejected` when given.
        """
        records: list[VulnerabilityRecord] = []
        async for page in self.iter_pages(url):
            records.extend(page.records)
            if rejected is not None:
                rejected.extend(page.rejected)
        return records

    async def fetch_all_chunked(
        self,
        url: str | None = None,
        chunk_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[VulnerabilityRecord]:
        """
        Same traversal as fetch_all, calling on_progress after every page.

        The callback receives only that page's records, so callers can start
        storing them while later pages are still being fetched.
        """
        records: list[VulnerabilityRecord] = []
        current = 0
        async for page in self.iter_pages(url, chunk_size):
            records.extend(page.records)
            current += len(page.records) + len(page.rejected)
            if on_progress is not None:
                total = max(page.total_results, current)
                on_progress(
                    FetchProgress(
                        current=current,
                        total=total,
                        percentage=_percentage(current, total),
                        records=page.records,
                        rejected=page.rejected,
                    )
                )
        return records
