"""Bounded-concurrency enrichment of usernames into stored records."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from leetrank.ingest.errors import IdentityNotAvailable, LeetCodeError, MissingAggregateStat
from leetrank.ingest.models import EnrichedRecord

logger = logging.getLogger(__name__)


class RecordFetcher(Protocol):
    async def fetch_record(self, username: str) -> EnrichedRecord: ...


@dataclass(slots=True)
class EnrichmentResult:
    records: list[EnrichedRecord] = field(default_factory=list)
    not_available: int = 0
    missing_stat: int = 0
    failed: int = 0

    @property
    def dropped(self) -> int:
        return self.not_available + self.missing_stat + self.failed


class ConcurrentEnricher:
    """Fan usernames out to a fixed pool of workers sharing one queue.

    Every worker sleeps ``delay`` seconds after each fetch, successful or
    not, so the outbound rate is bounded per worker (roughly
    ``workers / delay`` requests per second overall). Per-user failures are
    logged and counted; they never propagate to the caller.
    """

    def __init__(self, client: RecordFetcher) -> None:
        self.client = client

    async def enrich(
        self,
        usernames: Iterable[str],
        *,
        workers: int = 4,
        delay: float = 0.8,
    ) -> EnrichmentResult:
        queue: asyncio.Queue[str] = asyncio.Queue()
        for username in usernames:
            queue.put_nowait(username)
        result = EnrichmentResult()
        if queue.empty():
            return result

        pool_size = max(1, workers)
        await asyncio.gather(*(self._worker(queue, result, delay) for _ in range(pool_size)))
        logger.info(
            "Enriched %s users (not available=%s, missing stat=%s, failed=%s)",
            len(result.records),
            result.not_available,
            result.missing_stat,
            result.failed,
        )
        return result

    async def _worker(self, queue: asyncio.Queue[str], result: EnrichmentResult, delay: float) -> None:
        while True:
            try:
                username = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                record = await self.client.fetch_record(username)
            except IdentityNotAvailable:
                logger.warning("Skipping %s: user not available", username)
                result.not_available += 1
            except MissingAggregateStat:
                logger.warning("Skipping %s: no AC 'All' stat", username)
                result.missing_stat += 1
            except LeetCodeError as exc:
                logger.warning("Fetch failed for %s: %s", username, exc)
                result.failed += 1
            except Exception as exc:
                logger.exception("Unexpected error enriching %s: %s", username, exc)
                result.failed += 1
            else:
                logger.debug(
                    "Fetched %s solved=%s submissions=%s country=%s",
                    username,
                    record.total_problems_solved,
                    record.total_submissions,
                    record.country_code,
                )
                result.records.append(record)
            finally:
                queue.task_done()
            if delay > 0:
                await asyncio.sleep(delay)
