"""Meta-search backend client: one page per call, with retry and backoff.

Robustness rules:
  - Each call targets a randomly chosen base URL from the configured pool
    (load distribution only; a failed endpoint is not remembered).
  - Network errors, non-2xx responses, undecodable JSON and malformed payloads
    are retried with exponential backoff. A single malformed result entry is
    skipped, not retried.
  - After the last retry the call returns ``SearchResponse(success=False)``
    with no partial data; it never raises for backend failures.
"""

import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from types import MappingProxyType, TracebackType
from typing import Any, Self

import httpx
from pydantic import ValidationError

from jobfeed.core.config import RetryConfig, SearchBackendConfig
from jobfeed.core.exceptions import RetryError, SearchBackendError
from jobfeed.core.retry import backoff_delay_ms, retry_with_backoff
from jobfeed.core.schemas import RawResult, SearchData, SearchQuery, SearchResponse
from jobfeed.search.extractor import normalize_results

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    ValueError,
    SearchBackendError,
)


class SearchClient:
    """Async client for a SearXNG-style JSON search API.

    Usage::

        async with SearchClient(settings.search, settings.retry) as client:
            response = await client.search("python developer", pageno=2)
            if response.success:
                jobs = response.data.results
    """

    HEADERS: MappingProxyType[str, str] = MappingProxyType({
        "Accept": "application/json",
        "User-Agent": "jobfeed/0.1",
    })

    def __init__(
        self,
        config: SearchBackendConfig,
        retry: RetryConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[object]] | None = None,
        choose: Callable[[Sequence[str]], str] = random.choice,
    ) -> None:
        self._config = config
        self._retry = retry or RetryConfig()
        self._transport = transport
        self._sleep = sleep
        self._choose = choose
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            headers=dict(self.HEADERS),
            follow_redirects=True,
            timeout=self._config.timeout_s,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_query(self, query: str, **options: Any) -> SearchQuery:
        """Merge configured defaults with per-call overrides."""
        params: dict[str, Any] = {
            "q": query,
            "time_range": self._config.time_range,
            "categories": self._config.categories,
            "language": self._config.language,
            "safesearch": self._config.safesearch,
        }
        params.update({k: v for k, v in options.items() if v is not None})
        return SearchQuery.model_validate(params)

    async def search(self, query: str, **options: Any) -> SearchResponse:
        """Fetch and normalize one page of results.

        Keyword options override request parameters, e.g. ``pageno=2`` or
        ``time_range="week"``.
        """
        if not self._client:
            raise RuntimeError("Use 'async with SearchClient(...) as client:' context manager.")

        request = self.build_query(query, **options)
        try:
            data = await retry_with_backoff(
                lambda: self._fetch_page(request),
                retries=self._retry.max_retries,
                retry_on=RETRYABLE_ERRORS,
                delay_ms=self._delay_ms,
                sleep=self._sleep,
                label=f"search '{request.q}' page {request.pageno}",
            )
        except RetryError as e:
            logger.error("Search '%s' page %d failed: %s", request.q, request.pageno, e.__cause__)
            return SearchResponse(success=False, error=str(e.__cause__ or e))

        logger.debug(
            "Search '%s' page %d: %d results (%d reported)",
            request.q, request.pageno, len(data.results), data.number_of_results,
        )
        return SearchResponse(success=True, data=data)

    async def _fetch_page(self, request: SearchQuery) -> SearchData:
        assert self._client is not None
        base_url = self._choose(self._config.base_urls)
        logger.debug("GET %s q=%r pageno=%d", base_url, request.q, request.pageno)

        resp = await self._client.get(base_url, params=request.to_params())
        resp.raise_for_status()
        payload = resp.json()
        return parse_payload(payload)

    def _delay_ms(self, attempt: int) -> int:
        return backoff_delay_ms(attempt, self._retry.base_delay_ms, self._retry.max_delay_ms)


def parse_payload(payload: Any) -> SearchData:
    """Validate a backend JSON document and normalize its results.

    Entries that do not look like a result are logged and skipped, the rest
    of the page is kept.

    Raises:
        SearchBackendError: the document is not a results object.
    """
    if not isinstance(payload, dict):
        msg = f"expected a JSON object, got {type(payload).__name__}"
        raise SearchBackendError(msg)

    raw_results = payload.get("results") or []
    if not isinstance(raw_results, list):
        msg = f"malformed results list: expected a list, got {type(raw_results).__name__}"
        raise SearchBackendError(msg)

    results: list[RawResult] = []
    for index, entry in enumerate(raw_results):
        try:
            results.append(RawResult.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping malformed result #%d: %d errors", index, e.error_count())

    jobs = normalize_results(results)
    reported = payload.get("number_of_results")
    if isinstance(reported, bool) or not isinstance(reported, (int, float)) or reported <= 0:
        reported = len(jobs)
    return SearchData(number_of_results=int(reported), results=jobs)
