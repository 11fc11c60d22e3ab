"""Leaderboard sync job: page iteration, enrichment and batch upsert."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, Sequence

import httpx
from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from leetrank.db.session import create_engine_from_env
from leetrank.db.upsert import BatchUpsertSink, PersistenceError
from leetrank.ingest import build_clients
from leetrank.ingest.enrich import ConcurrentEnricher, EnrichmentResult
from leetrank.ingest.errors import LeetCodeError
from leetrank.ingest.extract import sorted_usernames
from leetrank.ingest.models import EnrichedRecord
from leetrank.ingest.schemas import LeaderboardPage
from leetrank.ingest.transport import GraphQLTransport
from leetrank.utils.dates import now_in_tz

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4
DEFAULT_DELAY = 0.8


class SyncAlreadyRunning(Exception):
    """A sync run is already in progress."""


class SyncAborted(Exception):
    """The first page could not be fetched, so the run had no page bound."""


class SyncPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"


class PageSource(Protocol):
    async def fetch_page(self, page_number: int) -> LeaderboardPage: ...


class Enricher(Protocol):
    async def enrich(self, usernames: Sequence[str], *, workers: int, delay: float) -> EnrichmentResult: ...


class BatchSink(Protocol):
    async def upsert_async(self, batch: Sequence[EnrichedRecord]) -> int: ...


@dataclass(slots=True)
class SyncOptions:
    start_page: int = 1
    pages: int | None = None
    workers: int = DEFAULT_WORKERS
    delay: float = DEFAULT_DELAY

    def normalized(self) -> SyncOptions:
        return SyncOptions(
            start_page=max(1, self.start_page),
            pages=self.pages if self.pages and self.pages > 0 else None,
            workers=max(1, self.workers),
            delay=self.delay if self.delay > 0 else DEFAULT_DELAY,
        )

    @classmethod
    def from_env(cls) -> SyncOptions:
        pages = int(os.environ.get("SYNC_PAGES", "0"))
        return cls(
            start_page=int(os.environ.get("SYNC_START_PAGE", "1")),
            pages=pages or None,
            workers=int(os.environ.get("SYNC_WORKERS", str(DEFAULT_WORKERS))),
            delay=int(os.environ.get("SYNC_DELAY_MS", str(int(DEFAULT_DELAY * 1000)))) / 1000,
        )


@dataclass(slots=True, frozen=True)
class SyncStatus:
    active: bool
    phase: SyncPhase
    current_page: int
    start_page: int
    end_page: int | None
    processed: int
    persisted: int
    failed_pages: int
    started_at: datetime | None
    finished_at: datetime | None

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data


@dataclass(slots=True)
class SyncSummary:
    start_page: int
    end_page: int
    processed: int = 0
    persisted: int = 0
    skipped: int = 0
    failed_pages: int = 0
    stopped: bool = False


class SyncState:
    """Run state shared between the run loop and start/stop/status callers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.phase = SyncPhase.IDLE
        self.options = SyncOptions()
        self.current_page = 0
        self.end_page: int | None = None
        self.processed = 0
        self.persisted = 0
        self.failed_pages = 0
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None

    def begin(self, options: SyncOptions) -> None:
        with self._lock:
            if self.phase is not SyncPhase.IDLE:
                raise SyncAlreadyRunning(f"sync already running at page {self.current_page}")
            self.phase = SyncPhase.RUNNING
            self.options = options
            self.current_page = options.start_page
            self.end_page = None
            self.processed = 0
            self.persisted = 0
            self.failed_pages = 0
            self.started_at = now_in_tz()
            self.finished_at = None

    def request_stop(self) -> bool:
        with self._lock:
            if self.phase is not SyncPhase.RUNNING:
                return False
            self.phase = SyncPhase.STOP_REQUESTED
            return True

    @property
    def stop_requested(self) -> bool:
        with self._lock:
            return self.phase is SyncPhase.STOP_REQUESTED

    def set_end_page(self, end_page: int) -> None:
        with self._lock:
            self.end_page = end_page

    def advance(self, page_number: int) -> None:
        with self._lock:
            self.current_page = page_number

    def record_page(self, *, processed: int, persisted: int, failed: bool = False) -> None:
        with self._lock:
            self.processed += processed
            self.persisted += persisted
            if failed:
                self.failed_pages += 1

    def finish(self) -> None:
        with self._lock:
            self.phase = SyncPhase.IDLE
            self.finished_at = now_in_tz()

    def snapshot(self) -> SyncStatus:
        with self._lock:
            return SyncStatus(
                active=self.phase is not SyncPhase.IDLE,
                phase=self.phase,
                current_page=self.current_page,
                start_page=self.options.start_page,
                end_page=self.end_page,
                processed=self.processed,
                persisted=self.persisted,
                failed_pages=self.failed_pages,
                started_at=self.started_at,
                finished_at=self.finished_at,
            )


class SyncController:
    """Drive one leaderboard sync at a time.

    Pages are processed strictly in order: fetch, extract, enrich with a
    bounded worker pool, then upsert the batch before the next page starts.
    A stop request is honoured at the top of the next page iteration.
    """

    def __init__(
        self,
        ranking: PageSource,
        enricher: Enricher,
        sink: BatchSink,
        *,
        state: SyncState | None = None,
        transport: GraphQLTransport | None = None,
    ) -> None:
        self.ranking = ranking
        self.enricher = enricher
        self.sink = sink
        self.state = state or SyncState()
        self.transport = transport
        self._task: asyncio.Task[SyncSummary] | None = None

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self.transport is not None:
            await self.transport.close()

    def start(self, options: SyncOptions | None = None) -> asyncio.Task[SyncSummary]:
        """Admit a run and schedule it on the running loop."""
        loop = asyncio.get_running_loop()
        options = (options or SyncOptions()).normalized()
        self.state.begin(options)
        task = loop.create_task(self._run_admitted(options))
        task.add_done_callback(_log_outcome)
        self._task = task
        return task

    async def run(self, options: SyncOptions | None = None) -> SyncSummary:
        options = (options or SyncOptions()).normalized()
        self.state.begin(options)
        return await self._run_admitted(options)

    def stop(self) -> bool:
        stopping = self.state.request_stop()
        if stopping:
            logger.info("sync: stop requested at page %s", self.state.current_page)
        return stopping

    def status(self) -> SyncStatus:
        return self.state.snapshot()

    async def _run_admitted(self, options: SyncOptions) -> SyncSummary:
        try:
            return await self._run_pages(options)
        finally:
            self.state.finish()

    async def _run_pages(self, options: SyncOptions) -> SyncSummary:
        logger.info(
            "sync: start=%s pages=%s workers=%s delay=%.3fs",
            options.start_page,
            options.pages or "all",
            options.workers,
            options.delay,
        )
        try:
            first = await self.ranking.fetch_page(options.start_page)
        except LeetCodeError as exc:
            logger.error("sync: fetch first page %s failed: %s", options.start_page, exc)
            raise SyncAborted(f"fetch first page {options.start_page}: {exc}") from exc

        end_page = first.total_pages
        if options.pages:
            end_page = min(end_page, options.start_page + options.pages - 1)
        self.state.set_end_page(end_page)
        summary = SyncSummary(start_page=options.start_page, end_page=end_page)

        for page_number in range(options.start_page, end_page + 1):
            if self.state.stop_requested:
                logger.info("sync: stopped before page %s", page_number)
                summary.stopped = True
                break
            self.state.advance(page_number)
            page = first if page_number == options.start_page else await self._fetch(page_number)
            if page is None:
                summary.failed_pages += 1
                self.state.record_page(processed=0, persisted=0, failed=True)
            else:
                await self._process_page(page_number, page, options, summary)
            if page_number < end_page:
                await asyncio.sleep(options.delay)

        logger.info(
            "sync: done through page %s/%s processed=%s persisted=%s skipped=%s failed_pages=%s",
            self.state.current_page,
            end_page,
            summary.processed,
            summary.persisted,
            summary.skipped,
            summary.failed_pages,
        )
        return summary

    async def _fetch(self, page_number: int) -> LeaderboardPage | None:
        try:
            return await self.ranking.fetch_page(page_number)
        except LeetCodeError as exc:
            logger.warning("sync: page %s failed: %s", page_number, exc)
            return None

    async def _process_page(
        self,
        page_number: int,
        page: LeaderboardPage,
        options: SyncOptions,
        summary: SyncSummary,
    ) -> None:
        usernames = sorted_usernames(page)
        logger.info("sync: page %s has %s users", page_number, len(usernames))
        result = await self.enricher.enrich(usernames, workers=options.workers, delay=options.delay)
        persisted = 0
        failed = False
        if result.records:
            try:
                persisted = await self.sink.upsert_async(result.records)
            except PersistenceError as exc:
                logger.error("sync: page %s upsert failed: %s", page_number, exc)
                failed = True
        summary.processed += len(usernames)
        summary.persisted += persisted
        summary.skipped += result.dropped
        if failed:
            summary.failed_pages += 1
        self.state.record_page(processed=len(usernames), persisted=persisted, failed=failed)


def _log_outcome(task: asyncio.Task[SyncSummary]) -> None:
    if task.cancelled():
        logger.warning("sync: run cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("sync: run failed: %s", exc)


def create_controller(engine: Engine, *, session: httpx.AsyncClient | None = None) -> SyncController:
    transport, ranking, identity = build_clients(session)
    return SyncController(
        ranking,
        ConcurrentEnricher(identity),
        BatchUpsertSink(engine),
        transport=transport,
    )


async def run_sync(options: SyncOptions | None = None) -> SyncSummary:
    load_dotenv()
    controller = create_controller(create_engine_from_env())
    try:
        return await controller.run(options or SyncOptions.from_env())
    finally:
        await controller.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(run_sync())
