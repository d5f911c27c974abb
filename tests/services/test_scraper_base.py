"""
Tests for the scraper base class and its lazy loading.
"""
import asyncio
from decimal import Decimal

import httpx
import pytest

from cardprices.services.ingestion.base import (
    BaseScraper,
    LazyLoad,
    LoadState,
    ScrapeError,
    ScraperConfig,
)
from cardprices.services.ingestion.matcher import InputCard
from cardprices.services.ingestion.pipeline import ScrapeResult, WorkSource
from cardprices.services.ingestion.records import BuylistEntry, InventoryEntry


class StubScraper(BaseScraper):
    """Scraper over a fixed list of pages."""

    name = "Stub Store"
    shorthand = "STUB"
    slug = "stub"
    is_seller = True
    is_vendor = True

    def __init__(self, *args, pages=5, failures=0, **kwargs):
        super().__init__(*args, **kwargs)
        self.pages = pages
        self.failures = failures
        self.inventory_calls = 0
        self.buylist_calls = 0

    async def scrape_inventory(self):
        self.inventory_calls += 1
        await asyncio.sleep(0)
        if self.failures:
            self.failures -= 1
            raise RuntimeError("upstream down")
        await self.run(WorkSource.pages(self.pages), self.sell_page)

    async def scrape_buylist(self):
        self.buylist_calls += 1
        await self.run(WorkSource.pages(self.pages), self.buy_page)

    async def sell_page(self, page):
        yield ScrapeResult(f"card-{page}", InventoryEntry(conditions="NM", price=Decimal("2.00")))

    async def buy_page(self, page):
        yield ScrapeResult(f"card-{page}", BuylistEntry(conditions="NM", buy_price=Decimal("1.00")))


class CombinedStub(StubScraper):
    shorthand = "COMB"
    combined_load = True

    async def scrape_all(self):
        self.inventory_calls += 1
        await self.run(WorkSource.pages(self.pages), self.both)

    async def both(self, page):
        async for result in self.sell_page(page):
            yield result
        async for result in self.buy_page(page):
            yield result


def stub_config(**kwargs):
    return ScraperConfig(max_concurrency=2, disable_retail=False, disable_buylist=False, **kwargs)


class TestLazyLoad:
    """Tests for the once-only initializer."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_load(self):
        calls = []

        async def loader():
            calls.append(1)
            await asyncio.sleep(0.01)

        lazy = LazyLoad(loader)
        await asyncio.gather(*(lazy.ensure() for _ in range(5)))

        assert len(calls) == 1
        assert lazy.state == LoadState.DONE

    @pytest.mark.asyncio
    async def test_failed_load_can_be_retried(self):
        attempts = []

        async def loader():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("boom")

        lazy = LazyLoad(loader)
        with pytest.raises(RuntimeError):
            await lazy.ensure()
        assert lazy.state == LoadState.NOT_STARTED

        await lazy.ensure()
        assert lazy.state == LoadState.DONE
        assert len(attempts) == 2


class TestBaseScraper:
    """Tests for the inventory/buylist accessors."""

    @pytest.mark.asyncio
    async def test_inventory_is_loaded_once(self):
        scraper = StubScraper(config=stub_config())

        first, second = await asyncio.gather(scraper.inventory(), scraper.inventory())
        third = await scraper.inventory()

        assert first is second is third
        assert scraper.inventory_calls == 1
        assert len(first) == 5
        assert first.frozen
        assert scraper.inventory_timestamp is not None

    @pytest.mark.asyncio
    async def test_sides_load_independently(self):
        scraper = StubScraper(config=stub_config())

        await scraper.buylist()

        assert scraper.buylist_calls == 1
        assert scraper.inventory_calls == 0
        assert scraper.inventory_timestamp is None

    @pytest.mark.asyncio
    async def test_combined_load_fills_both_sides(self):
        scraper = CombinedStub(config=stub_config())

        inventory = await scraper.inventory()
        buylist = await scraper.buylist()

        assert scraper.inventory_calls == 1
        assert len(inventory) == 5
        assert len(buylist) == 5

    @pytest.mark.asyncio
    async def test_combined_load_respects_disabled_side(self):
        scraper = CombinedStub(config=ScraperConfig(max_concurrency=2, disable_buylist=True))

        inventory = await scraper.inventory()
        buylist = await scraper.buylist()

        assert len(inventory) == 5
        assert len(buylist) == 0
        assert buylist.frozen

    @pytest.mark.asyncio
    async def test_failure_raises_scrape_error_and_allows_retry(self):
        scraper = StubScraper(config=stub_config(), failures=1)

        with pytest.raises(ScrapeError, match="upstream down"):
            await scraper.inventory()

        inventory = await scraper.inventory()
        assert len(inventory) == 5
        assert scraper.inventory_calls == 2

    @pytest.mark.asyncio
    async def test_disabled_side_returns_empty_record(self):
        scraper = StubScraper(config=ScraperConfig(disable_retail=True))

        inventory = await scraper.inventory()

        assert len(inventory) == 0
        assert inventory.frozen
        assert scraper.inventory_calls == 0

    @pytest.mark.asyncio
    async def test_missing_side_not_implemented(self):
        class SellerOnly(StubScraper):
            is_vendor = False

        with pytest.raises(NotImplementedError):
            await SellerOnly(config=stub_config()).buylist()

    def test_info(self):
        scraper = StubScraper(config=stub_config())
        info = scraper.info()
        assert info.name == "Stub Store"
        assert info.shorthand == "STUB"
        assert info.inventory_timestamp is None

    def test_printf_prefix(self, log_collector):
        scraper = StubScraper(config=stub_config(), log_callback=log_collector)
        scraper.printf("Found %d items", 3)
        assert log_collector.lines == ["[STUB] Found 3 items"]

    def test_printf_without_callback_is_silent(self):
        StubScraper(config=stub_config()).printf("nothing %s", "here")

    def test_match_failure_is_logged(self, card_index, log_collector):
        scraper = StubScraper(config=stub_config(), matcher=card_index, log_callback=log_collector)

        assert scraper.match(InputCard(name="Lightning Bolt", edition="Magic 2010")) == "c1"
        assert scraper.match(InputCard(name="Forest", edition="Unlimited")) is None
        assert log_collector.contains("aliasing detected")
        assert log_collector.contains("- Forest [Unlimited] #294")

    def test_unsupported_match_is_silent(self, card_index, log_collector):
        scraper = StubScraper(config=stub_config(), matcher=card_index, log_callback=log_collector)
        assert scraper.match(InputCard(name="Lightning Bolt", language="Japanese")) is None
        assert log_collector.lines == []

    @pytest.mark.asyncio
    async def test_shared_client_is_not_closed(self):
        async with httpx.AsyncClient() as client:
            async with StubScraper(config=stub_config(), client=client):
                pass
            assert not client.is_closed
