import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Dict, List, Sequence

import httpx

from tradearchive.core.config import settings
from tradearchive.core.exceptions import FetchError, TradeArchiveError
from tradearchive.services.trading_history.dates import FetchTarget

logger = logging.getLogger(__name__)

PageHandler = Callable[[FetchTarget, str], Awaitable[None]]

USER_AGENT = "tradearchive/0.1 (+historical price archive)"


@dataclass
class FetchOutcome:
    """What happened to each target of one fetch run."""
    fetched: List[date] = field(default_factory=list)
    failures: Dict[date, TradeArchiveError] = field(default_factory=dict)
    pending: List[date] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class ReportFetcher:
    """
    Fetch report pages through a fixed pool of workers against one host.

    Each worker waits at least request_delay_sec plus a random jitter between its
    own consecutive requests, and awaits the page handler before taking the next
    target, so a page's writes finish before that worker fetches again.
    A handler that raises TradeArchiveError marks its target failed the same way
    a FetchError does.
    """

    def __init__(
        self,
        worker_count: int | None = None,
        request_delay_sec: float | None = None,
        jitter_sec: float | None = None,
        timeout_sec: float | None = None,
        max_attempts: int | None = None,
        backoff_sec: float | None = None,
        queue_size: int | None = None,
        stop_on_error: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.worker_count = (
            settings.FETCH_WORKER_COUNT if worker_count is None else worker_count
        )
        self.request_delay_sec = (
            settings.FETCH_REQUEST_DELAY_SEC
            if request_delay_sec is None
            else request_delay_sec
        )
        self.jitter_sec = (
            settings.FETCH_REQUEST_JITTER_SEC if jitter_sec is None else jitter_sec
        )
        self.timeout_sec = (
            settings.FETCH_REQUEST_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )
        self.max_attempts = (
            settings.FETCH_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.backoff_sec = (
            settings.FETCH_RETRY_BACKOFF_SEC if backoff_sec is None else backoff_sec
        )
        self.queue_size = settings.FETCH_QUEUE_SIZE if queue_size is None else queue_size
        self.stop_on_error = stop_on_error
        self._client = client

        if self.worker_count < 1:
            raise ValueError(f"worker_count must be at least 1, got {self.worker_count}")

    async def run(self, targets: Sequence[FetchTarget], handle_page: PageHandler) -> FetchOutcome:
        """Fetch every target and hand each page body to handle_page."""
        if len(targets) > self.queue_size:
            raise ValueError(
                f"{len(targets)} targets exceed the fetch queue capacity of {self.queue_size}"
            )

        outcome = FetchOutcome()
        if not targets:
            return outcome

        queue: asyncio.Queue[FetchTarget] = asyncio.Queue(maxsize=self.queue_size)
        for target in targets:
            queue.put_nowait(target)

        stop = asyncio.Event()
        concurrency = min(self.worker_count, len(targets))

        if self._client is not None:
            await self._run_workers(self._client, queue, handle_page, stop, outcome, concurrency)
        else:
            limits = httpx.Limits(max_connections=concurrency, max_keepalive_connections=concurrency)
            async with httpx.AsyncClient(
                timeout=self.timeout_sec,
                limits=limits,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            ) as client:
                await self._run_workers(client, queue, handle_page, stop, outcome, concurrency)

        while not queue.empty():
            outcome.pending.append(queue.get_nowait().report_date)

        if outcome.pending:
            logger.warning("Fetching stopped early, %s targets never requested", len(outcome.pending))
        return outcome

    async def fetch(self, client: httpx.AsyncClient, target: FetchTarget) -> str:
        """Fetch one page, retrying transient failures with exponential backoff."""
        attempts = max(self.max_attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                resp = await client.get(target.url, timeout=self.timeout_sec)
                resp.raise_for_status()
                return resp.text
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                retryable = status >= 500 or status == 429
                if attempt >= attempts or not retryable:
                    raise FetchError(
                        f"HTTP {status} for {target.url} after {attempt} attempt(s)",
                        url=target.url,
                        report_date=target.report_date,
                        status_code=status,
                        attempts=attempt,
                    ) from exc
                logger.warning("HTTP %s for %s (attempt %s/%s)", status, target.url, attempt, attempts)
            except httpx.RequestError as exc:
                # Redirect loops and undecodable bodies will not improve on retry
                if attempt >= attempts or not isinstance(exc, httpx.TransportError):
                    raise FetchError(
                        f"{type(exc).__name__} for {target.url} after {attempt} attempt(s): {exc}",
                        url=target.url,
                        report_date=target.report_date,
                        attempts=attempt,
                    ) from exc
                logger.warning(
                    "%s for %s (attempt %s/%s): %s",
                    type(exc).__name__, target.url, attempt, attempts, exc,
                )
            await _sleep_with_backoff(self.backoff_sec, attempt)

        raise AssertionError("unreachable")

    async def _run_workers(
        self,
        client: httpx.AsyncClient,
        queue: "asyncio.Queue[FetchTarget]",
        handle_page: PageHandler,
        stop: asyncio.Event,
        outcome: FetchOutcome,
        concurrency: int,
    ) -> None:
        tasks = [
            asyncio.create_task(self._worker(n, client, queue, handle_page, stop, outcome))
            for n in range(concurrency)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            stop.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _worker(
        self,
        worker_id: int,
        client: httpx.AsyncClient,
        queue: "asyncio.Queue[FetchTarget]",
        handle_page: PageHandler,
        stop: asyncio.Event,
        outcome: FetchOutcome,
    ) -> None:
        limiter = _RateLimiter(self.request_delay_sec, self.jitter_sec)
        while not stop.is_set():
            try:
                target = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            await limiter.wait()
            if stop.is_set():
                outcome.pending.append(target.report_date)
                return
            try:
                body = await self.fetch(client, target)
            except FetchError as exc:
                logger.error("Fetch failed for %s: %s", target.report_date, exc)
                outcome.failures[target.report_date] = exc
                if self.stop_on_error:
                    stop.set()
                continue

            logger.info("Fetched %s (worker %s)", target.url, worker_id)
            outcome.fetched.append(target.report_date)
            try:
                await handle_page(target, body)
            except TradeArchiveError as exc:
                logger.error("Page for %s failed: %s", target.report_date, exc)
                outcome.failures[target.report_date] = exc
                if self.stop_on_error:
                    stop.set()


class _RateLimiter:
    def __init__(self, min_delay: float, jitter: float = 0.0) -> None:
        self.min_delay = min_delay
        self.jitter = jitter
        self._next_time = 0.0

    async def wait(self) -> None:
        if self.min_delay <= 0 and self.jitter <= 0:
            return

        now = time.monotonic()
        if now < self._next_time:
            await _sleep(self._next_time - now)
        self._next_time = time.monotonic() + self._delay()

    def _delay(self) -> float:
        extra = random.uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return max(self.min_delay, 0.0) + extra


async def _sleep(seconds: float) -> None:
    if seconds > 0:
        await asyncio.sleep(seconds)


async def _sleep_with_backoff(base: float, attempt: int) -> None:
    await _sleep(base * (2 ** (attempt - 1)))
