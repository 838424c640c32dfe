from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

import httpx

from .errors import UpstreamDecodeError, UpstreamStatusError, UpstreamTransportError
from .logging_utils import log_json
from .models import CpeRecord, Page
from .windows import FetchWindow

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@dataclass
class ApiConfig:
    base_url: str
    timeout_seconds: float = 60
    results_per_page: int = 10000
    max_concurrency: int = 10
    rate_limit_per_minute: int = 50
    max_window_days: int = 119
    max_pages: Optional[int] = None
    retry: Dict[str, Any] = field(default_factory=dict)


class RateLimiter:
    """Grants at most ``max_calls`` permits in any rolling ``period`` seconds.

    Waiters queue on the lock, which asyncio hands over in FIFO order, so a
    caller blocked on a full window is served before anyone who arrives later.
    """

    def __init__(
        self,
        max_calls: int,
        period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_calls <= 0:
            raise ValueError("max_calls must be positive")
        if period <= 0:
            raise ValueError("period must be positive")
        self.max_calls = max_calls
        self.period = period
        self._clock = clock
        self._lock = asyncio.Lock()
        self._grants: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._grants and self._grants[0] <= now - self.period:
            self._grants.popleft()

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._grants)

    async def acquire(self) -> None:
        async with self._lock:
            now = self._clock()
            self._prune(now)
            while len(self._grants) >= self.max_calls:
                await asyncio.sleep(max(0.0, self._grants[0] + self.period - now))
                now = self._clock()
                self._prune(now)
            self._grants.append(now)


class ApiClient:
    def __init__(
        self,
        api_key: str,
        cfg: ApiConfig,
        rate_period: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self.limiter = RateLimiter(cfg.rate_limit_per_minute, period=rate_period)
        self._client = httpx.AsyncClient(
            timeout=cfg.timeout_seconds,
            headers={"apiKey": api_key},
            transport=transport,
        )
        self._logger = None

    def set_logger(self, logger) -> None:
        self._logger = logger

    async def close(self) -> None:
        await self._client.aclose()

    def _log(self, event: str, **extra: Any) -> None:
        if self._logger:
            log_json(self._logger, event, **extra)

    async def _get(self, params: Dict[str, Any]) -> httpx.Response:
        attempt = 0
        max_attempts = max(1, int(self.cfg.retry.get("max_attempts", 1)))
        base_delay = self.cfg.retry.get("base_delay_seconds", 1.0)
        max_delay = self.cfg.retry.get("max_delay_seconds", 30)
        while True:
            attempt += 1
            await self.limiter.acquire()
            self._log("http_request_start", params=params, attempt=attempt)
            try:
                resp = await self._client.get(self.cfg.base_url, params=params)
            except httpx.RequestError as exc:
                if attempt >= max_attempts:
                    raise UpstreamTransportError(f"request failed: {exc!r}") from exc
                delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
                self._log("http_retry", params=params, attempt=attempt, error=repr(exc), delay=delay)
                await asyncio.sleep(delay)
                continue
            if resp.status_code == 200:
                return resp
            if resp.status_code in RETRYABLE_STATUS and attempt < max_attempts:
                retry_after = resp.headers.get("Retry-After")
                try:
                    delay = min(max_delay, float(retry_after)) if retry_after else None
                except ValueError:
                    delay = None
                if delay is None:
                    delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
                self._log("http_retry", params=params, attempt=attempt, status=resp.status_code, delay=delay)
                await asyncio.sleep(delay)
                continue
            raise UpstreamStatusError(resp.status_code, str(resp.request.url))

    async def fetch_page(self, window: FetchWindow, start_index: int) -> Page:
        params: Dict[str, Any] = dict(window.params())
        params["resultsPerPage"] = self.cfg.results_per_page
        params["startIndex"] = start_index
        resp = await self._get(params)
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamDecodeError(f"response is not JSON: {exc}") from exc
        return parse_page(body)

    async def fetch_window(self, window: FetchWindow) -> List[CpeRecord]:
        records: List[CpeRecord] = []
        offset = 0
        pages = 0
        while True:
            page = await self.fetch_page(window, offset)
            records.extend(page.records)
            pages += 1
            offset += self.cfg.results_per_page
            if offset >= page.total_results:
                break
            if self.cfg.max_pages and pages >= self.cfg.max_pages:
                self._log("window_page_cap", window=window.label(), pages=pages, total=page.total_results)
                break
        return records


def parse_page(body: Any) -> Page:
    if not isinstance(body, dict):
        raise UpstreamDecodeError("response body is not a JSON object")
    total = body.get("totalResults")
    products = body.get("products")
    if not isinstance(total, int) or isinstance(total, bool):
        raise UpstreamDecodeError("totalResults missing or not an integer")
    if products is None:
        products = []
    if not isinstance(products, list):
        raise UpstreamDecodeError("products is not a list")
    return Page(total_results=total, records=[CpeRecord.from_api(p) for p in products])
