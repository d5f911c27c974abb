"""
Base classes for vendor scrapers.

Defines the interface that all scrapers implement: lazily loaded,
memoized inventory and buylist accessors, plus scraper metadata.
"""
import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx
import structlog
from bs4 import BeautifulSoup

from cardprices.core.config import settings
from cardprices.core.logging import LogCallback
from cardprices.services.ingestion.matcher import (
    CardMatcher,
    InputCard,
    MatchError,
    default_matcher,
    report_match_error,
)
from cardprices.services.ingestion.pipeline import (
    Aggregator,
    PipelineStats,
    ProcessFunc,
    ProgressReporter,
    WorkSource,
    run_pipeline,
)
from cardprices.services.ingestion.records import BuylistRecord, InventoryRecord
from cardprices.services.ingestion.scraper_utils import fetch_html, fetch_json

logger = structlog.get_logger()


class ScrapeError(Exception):
    """A scrape could not start, e.g. the work list could not be discovered."""


@dataclass
class ScraperConfig:
    """Configuration for a vendor scraper."""
    # Site root used for offer links
    base_url: str = ""
    timeout_seconds: float = field(default_factory=lambda: settings.http_timeout_seconds)
    max_retries: int = field(default_factory=lambda: settings.http_max_retries)
    backoff_factor: float = field(default_factory=lambda: settings.http_backoff_factor)
    user_agent: str = field(default_factory=lambda: settings.scraper_user_agent)
    max_concurrency: int = field(default_factory=lambda: settings.default_max_concurrency)

    # Affiliate code appended to offer URLs
    partner: str = ""

    disable_retail: bool = field(default_factory=lambda: settings.disable_retail)
    disable_buylist: bool = field(default_factory=lambda: settings.disable_buylist)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScraperInfo:
    """Scraper metadata."""
    name: str
    shorthand: str
    inventory_timestamp: datetime | None = None
    buylist_timestamp: datetime | None = None

    # Store credit paid per unit of cash offered
    credit_multiplier: float | None = None

    # Inventory quantities are not published
    no_quantity: bool = False


class LoadState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class LazyLoad:
    """
    Once-only async initializer.

    Concurrent callers share the load in flight. A failed load goes back to
    NOT_STARTED and re-raises, so the next call tries again; a completed
    load is never repeated.
    """

    def __init__(self, loader: Callable[[], Awaitable[None]]):
        self._loader = loader
        self._lock = asyncio.Lock()
        self.state = LoadState.NOT_STARTED

    async def ensure(self) -> None:
        if self.state == LoadState.DONE:
            return
        async with self._lock:
            if self.state == LoadState.DONE:
                return
            self.state = LoadState.IN_PROGRESS
            try:
                await self._loader()
            except BaseException:
                self.state = LoadState.NOT_STARTED
                raise
            self.state = LoadState.DONE


class BaseScraper:
    """
    Base class for vendor scrapers.

    Subclasses set is_seller / is_vendor and implement scrape_inventory()
    and/or scrape_buylist(). Scrapers whose source yields both sides in
    one pass set combined_load and implement scrape_all() instead.

    Usage:
        async with CardKingdomScraper(matcher=index) as ck:
            inventory = await ck.inventory()
            buylist = await ck.buylist()
    """

    name: str = "Base Type"
    shorthand: str = "BT"
    slug: str = "base"
    BASE_URL: str = ""

    is_seller: bool = False
    is_vendor: bool = False
    combined_load: bool = False
    credit_multiplier: float | None = None
    no_quantity: bool = False

    def __init__(
        self,
        config: ScraperConfig | None = None,
        matcher: CardMatcher | None = None,
        log_callback: LogCallback | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the scraper.

        Args:
            config: Scraper configuration; defaults come from settings.
            matcher: Card matcher; the catalogue from settings when omitted.
            log_callback: printf-style hook. Without one, scraper logs are dropped.
            client: Shared HTTP client. The scraper closes only clients it created.
        """
        self.config = config or self.default_config()
        self.log_callback = log_callback
        self._matcher = matcher
        self._client = client
        self._owns_client = client is None

        self._inventory = InventoryRecord()
        self._buylist = BuylistRecord()
        self.inventory_timestamp: datetime | None = None
        self.buylist_timestamp: datetime | None = None

        if self.combined_load:
            shared = LazyLoad(self._load_all)
            self._inventory_load = shared
            self._buylist_load = shared
        else:
            self._inventory_load = LazyLoad(self._load_inventory)
            self._buylist_load = LazyLoad(self._load_buylist)

    @classmethod
    def default_config(cls) -> ScraperConfig:
        return ScraperConfig(base_url=cls.BASE_URL)

    @property
    def base_url(self) -> str:
        """Site root for offer links; config overrides the class default."""
        return (self.config.base_url or self.BASE_URL).rstrip("/")

    @property
    def matcher(self) -> CardMatcher:
        if self._matcher is None:
            self._matcher = default_matcher()
        return self._matcher

    @property
    def wants_inventory(self) -> bool:
        return self.is_seller and not self.config.disable_retail

    @property
    def wants_buylist(self) -> bool:
        return self.is_vendor and not self.config.disable_buylist

    def printf(self, fmt: str, *args: Any) -> None:
        if self.log_callback is not None:
            self.log_callback(f"[{self.shorthand}] " + fmt, *args)

    def info(self) -> ScraperInfo:
        return ScraperInfo(
            name=self.name,
            shorthand=self.shorthand,
            inventory_timestamp=self.inventory_timestamp,
            buylist_timestamp=self.buylist_timestamp,
            credit_multiplier=self.credit_multiplier,
            no_quantity=self.no_quantity,
        )

    async def inventory(self) -> InventoryRecord:
        """
        Return the inventory, scraping it on first call.

        Raises:
            ScrapeError: If the scrape could not start.
        """
        if not self.is_seller:
            raise NotImplementedError(f"{self.name} does not sell cards")
        if self.config.disable_retail:
            return self._inventory.freeze()
        await self._inventory_load.ensure()
        return self._inventory

    async def buylist(self) -> BuylistRecord:
        """
        Return the buylist, scraping it on first call.

        Raises:
            ScrapeError: If the scrape could not start.
        """
        if not self.is_vendor:
            raise NotImplementedError(f"{self.name} does not buy cards")
        if self.config.disable_buylist:
            return self._buylist.freeze()
        await self._buylist_load.ensure()
        return self._buylist

    async def scrape_inventory(self) -> None:
        raise NotImplementedError

    async def scrape_buylist(self) -> None:
        raise NotImplementedError

    async def scrape_all(self) -> None:
        raise NotImplementedError

    async def _load_inventory(self) -> None:
        self._inventory = InventoryRecord()
        await self._guarded(self.scrape_inventory, "inventory")
        self._inventory.freeze()
        self.inventory_timestamp = datetime.now(timezone.utc)

    async def _load_buylist(self) -> None:
        self._buylist = BuylistRecord()
        await self._guarded(self.scrape_buylist, "buylist")
        self._buylist.freeze()
        self.buylist_timestamp = datetime.now(timezone.utc)

    async def _load_all(self) -> None:
        self._inventory = InventoryRecord()
        self._buylist = BuylistRecord()
        await self._guarded(self.scrape_all, "load")
        now = datetime.now(timezone.utc)
        self._inventory.freeze()
        self._buylist.freeze()
        if self.wants_inventory:
            self.inventory_timestamp = now
        if self.wants_buylist:
            self.buylist_timestamp = now

    async def _guarded(self, scrape: Callable[[], Awaitable[None]], phase: str) -> None:
        try:
            await scrape()
        except ScrapeError:
            raise
        except Exception as e:
            logger.warning("Scrape failed", scraper=self.shorthand, phase=phase, error=str(e))
            raise ScrapeError(f"{self.name} {phase} failed: {e}") from e

    def aggregator(self) -> Aggregator:
        """Aggregator writing to the sides this scraper is loading."""
        reporter = ProgressReporter(self.printf, describe=self._describe)
        return Aggregator(
            inventory=self._inventory if self.wants_inventory else None,
            buylist=self._buylist if self.wants_buylist else None,
            printf=self.printf,
            reporter=reporter,
        )

    async def run(
        self,
        source: WorkSource | Iterable,
        process: ProcessFunc,
        aggregator: Aggregator | None = None,
    ) -> PipelineStats:
        """Run the shared pipeline with this scraper's concurrency and log hook."""
        stats = await run_pipeline(
            source,
            process,
            aggregator or self.aggregator(),
            max_concurrency=self.config.max_concurrency,
            printf=self.printf,
        )
        self.printf("This operation took %.1fs", stats.elapsed_seconds)
        return stats

    def match(self, card: InputCard, *context: Any) -> str | None:
        """
        Match a card, logging failures per policy. Returns None on failure.
        """
        try:
            return self.matcher.match(card)
        except MatchError as e:
            report_match_error(self.printf, e, card, *context, describe=self._describe)
            return None

    def _describe(self, card_id: str) -> str:
        return self.matcher.describe(card_id)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers={"User-Agent": self.config.user_agent},
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        client = await self._get_client()
        return await fetch_json(
            client,
            url,
            max_retries=self.config.max_retries,
            backoff_factor=self.config.backoff_factor,
            **kwargs,
        )

    async def get_html(self, url: str, **kwargs: Any) -> BeautifulSoup:
        client = await self._get_client()
        return await fetch_html(
            client,
            url,
            max_retries=self.config.max_retries,
            backoff_factor=self.config.backoff_factor,
            **kwargs,
        )

    async def close(self) -> None:
        """Cleanup HTTP client."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BaseScraper":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
