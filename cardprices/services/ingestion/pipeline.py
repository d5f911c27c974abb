"""
Fetch / normalize / aggregate pipeline shared by every scraper.

    WorkSource --> items queue --> N workers --> results queue --> Aggregator --> records

One producer task feeds the items queue and then enqueues one end-of-work
marker per worker. Workers run the scraper's process() async generator for
each item and forward every yielded ScrapeResult to the results queue; the
results queue is bounded, so a slow aggregator throttles the pool. A closer
task waits for every worker to return before enqueuing the end-of-results
marker, which means the aggregator has drained every emitted result by the
time it stops. The aggregator is the only writer of the records.

A failing work item is logged and skipped. Only errors raised before the
pool starts (work discovery) abort a scrape.
"""
import asyncio
import time
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from cardprices.core.config import settings
from cardprices.services.ingestion.records import (
    BuylistEntry,
    BuylistRecord,
    InventoryEntry,
    InventoryRecord,
    QuantityMerge,
    RecordError,
)

logger = structlog.get_logger()

T = TypeVar("T")

Printf = Callable[..., None]

_END = object()


def _silent(fmt: str, *args: Any) -> None:
    pass


class MergePolicy(str, Enum):
    """Which record operation the aggregator applies to a result."""
    PLAIN = "plain"
    STRICT = "strict"
    RELAXED = "relaxed"
    UNIQUE = "unique"


@dataclass(frozen=True)
class ScrapeResult:
    """One canonical offer produced by a worker."""
    card_id: str
    entry: InventoryEntry | BuylistEntry
    policy: MergePolicy = MergePolicy.PLAIN
    quantity_merge: QuantityMerge = QuantityMerge.SUM
    overwrite: bool = False


ProcessFunc = Callable[[T], AsyncIterator[ScrapeResult]]


class WorkSource(Generic[T]):
    """
    Finite, ordered list of work items, computed before the pool starts.

    Usage:
        source = WorkSource.offsets(total=1234, step=200)   # 0, 200, ..., 1200
        source = WorkSource(["Alpha", "Beta"], label="edition")
    """

    def __init__(
        self,
        items: Iterable[T],
        label: str = "item",
        include: Callable[[T], bool] | None = None,
    ):
        items = list(items)
        if include is not None:
            items = [item for item in items if include(item)]
        self._items: tuple[T, ...] = tuple(items)
        self.label = label

    @classmethod
    def offsets(cls, total: int, step: int, label: str = "offset") -> "WorkSource[int]":
        if step <= 0:
            raise ValueError("step must be positive")
        return cls(range(0, max(total, 0), step), label=label)

    @classmethod
    def pages(cls, last: int, first: int = 1, label: str = "page") -> "WorkSource[int]":
        return cls(range(first, last + 1), label=label)

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class PipelineStats:
    """Counters for one pipeline run."""
    dispatched_items: int = 0
    failed_items: int = 0
    emitted: int = 0
    merged: int = 0
    rejected: int = 0
    started_at: float = field(default_factory=time.monotonic)
    elapsed_seconds: float = 0.0

    @property
    def received(self) -> int:
        return self.merged + self.rejected


class ProgressReporter:
    """
    Liveness signal for long scrapes.

    After each successful merge the aggregator calls observe(); at most once
    per interval a line naming the most recent card is logged.
    """

    def __init__(
        self,
        printf: Printf,
        describe: Callable[[str], str] | None = None,
        interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._printf = printf
        self._describe = describe
        self._interval = settings.progress_interval_seconds if interval is None else interval
        self._clock = clock
        self._last = clock()
        self.reports = 0

    def observe(self, card_id: str) -> None:
        now = self._clock()
        if now - self._last <= self._interval:
            return
        label = card_id
        if self._describe is not None:
            try:
                label = self._describe(card_id)
            except Exception:
                # Display name is best effort
                label = card_id
        self._printf("Still going, last processed card: %s", label)
        self._last = now
        self.reports += 1


class Aggregator:
    """
    Single writer of a scraper's records.

    Inventory entries go to the inventory record and buylist entries to the
    buylist record, through the merge policy carried by each result.
    Rejections are logged and counted, never raised.
    """

    def __init__(
        self,
        inventory: InventoryRecord | None = None,
        buylist: BuylistRecord | None = None,
        printf: Printf | None = None,
        reporter: ProgressReporter | None = None,
    ):
        self.inventory = inventory
        self.buylist = buylist
        self._printf = printf or _silent
        self._reporter = reporter
        self.merged = 0
        self.rejected = 0

    def merge(self, result: ScrapeResult) -> bool:
        """Apply one result. Returns False when the record rejected it."""
        try:
            record = self._target(result)
            if result.policy == MergePolicy.STRICT:
                record.add_strict(result.card_id, result.entry)
            elif result.policy == MergePolicy.RELAXED:
                record.add_relaxed(result.card_id, result.entry, result.quantity_merge)
            elif result.policy == MergePolicy.UNIQUE:
                record.add_unique(result.card_id, result.entry, overwrite=result.overwrite)
            else:
                record.add(result.card_id, result.entry)
        except RecordError as e:
            self.rejected += 1
            self._printf("%s", e)
            return False

        self.merged += 1
        if self._reporter is not None:
            self._reporter.observe(result.card_id)
        return True

    def _target(self, result: ScrapeResult) -> InventoryRecord | BuylistRecord:
        if isinstance(result.entry, InventoryEntry):
            record = self.inventory
        else:
            record = self.buylist
        if record is None:
            raise RecordError(
                f"No record accepts {type(result.entry).__name__} for {result.card_id}"
            )
        return record


async def run_pipeline(
    source: Iterable[T],
    process: ProcessFunc,
    aggregator: Aggregator,
    max_concurrency: int | None = None,
    printf: Printf | None = None,
) -> PipelineStats:
    """
    Run every work item through process() and merge the results.

    Args:
        source: Work items; each is dispatched to exactly one worker, once.
        process: Async generator yielding the ScrapeResults of one item.
        aggregator: Owner of the records being filled.
        max_concurrency: Number of workers (default from settings).
        printf: Scraper log hook for per-item failures.

    Returns:
        Counters for the run.
    """
    if max_concurrency is None:
        max_concurrency = settings.default_max_concurrency
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be a positive integer")
    printf = printf or _silent

    stats = PipelineStats()
    items: asyncio.Queue = asyncio.Queue(maxsize=max_concurrency)
    results: asyncio.Queue = asyncio.Queue(maxsize=max_concurrency)

    merged_before = aggregator.merged
    rejected_before = aggregator.rejected

    async def release_workers() -> None:
        for _ in range(max_concurrency):
            await items.put(_END)

    async def produce() -> None:
        try:
            for item in source:
                await items.put(item)
                stats.dispatched_items += 1
        except Exception:
            await release_workers()
            raise
        await release_workers()

    async def work() -> None:
        while True:
            item = await items.get()
            if item is _END:
                return
            try:
                async for result in process(item):
                    stats.emitted += 1
                    await results.put(result)
            except Exception as e:
                stats.failed_items += 1
                printf("%s for %s", e, item)
                logger.debug("Work item failed", item=str(item), error=str(e))

    async def close_results(workers: list[asyncio.Task]) -> None:
        await asyncio.gather(*workers, return_exceptions=True)
        await results.put(_END)

    logger.debug("Pipeline started", workers=max_concurrency)

    producer = asyncio.create_task(produce())
    workers = [asyncio.create_task(work()) for _ in range(max_concurrency)]
    closer = asyncio.create_task(close_results(workers))

    try:
        while True:
            result = await results.get()
            if result is _END:
                break
            aggregator.merge(result)
        await producer
        await closer
    finally:
        pending = [task for task in (producer, closer, *workers) if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    stats.merged = aggregator.merged - merged_before
    stats.rejected = aggregator.rejected - rejected_before
    stats.elapsed_seconds = time.monotonic() - stats.started_at
    logger.debug(
        "Pipeline finished",
        items=stats.dispatched_items,
        failed=stats.failed_items,
        merged=stats.merged,
        rejected=stats.rejected,
    )
    return stats
