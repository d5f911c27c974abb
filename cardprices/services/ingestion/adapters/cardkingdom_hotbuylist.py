"""
Card Kingdom Hot Buylist Adapter.

The hot buylist endpoint serves a varying subset of the list on every call,
so it is queried several times concurrently and repeated sightings of a
card collapse to a single entry.
"""
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any

from cardprices.services.ingestion.base import BaseScraper, ScraperConfig
from cardprices.services.ingestion.matcher import InputCard, split_variants
from cardprices.services.ingestion.pipeline import MergePolicy, ScrapeResult, WorkSource
from cardprices.services.ingestion.records import BuylistEntry
from cardprices.services.ingestion.scraper_utils import parse_price, price_ratio, round_price

DEFAULT_CONCURRENCY = 8
DEFAULT_QUERIES = 12


class CardKingdomHotBuylistScraper(BaseScraper):
    """
    Card Kingdom hot buylist scraper.

    Set config.extra["total_queries"] to change how many times the list is
    sampled.
    """

    name = "Card Kingdom Hot Buylist"
    shorthand = "CKHot"
    slug = "cardkingdom_hotbuylist"
    BASE_URL = "https://www.cardkingdom.com"
    HOTBUY_URL = "https://api.cardkingdom.com/api/product/list/hotbuy"

    is_vendor = True
    credit_multiplier = 1.3

    @classmethod
    def default_config(cls) -> ScraperConfig:
        return ScraperConfig(
            base_url=cls.BASE_URL,
            max_concurrency=DEFAULT_CONCURRENCY,
            extra={"total_queries": DEFAULT_QUERIES},
        )

    @property
    def total_queries(self) -> int:
        return int(self.config.extra.get("total_queries", DEFAULT_QUERIES))

    async def scrape_buylist(self) -> None:
        source = WorkSource(range(self.total_queries), label="query")
        await self.run(source, self.process_query)

    async def process_query(self, query: int) -> AsyncIterator[ScrapeResult]:
        payload = await self.get_json(self.HOTBUY_URL)
        rows = payload.get("list", []) if isinstance(payload, dict) else payload
        for row in rows:
            result = self.parse_row(row)
            if result is not None:
                yield result

    def parse_row(self, row: dict[str, Any]) -> ScrapeResult | None:
        # "name" is "<edition>: <short name>"
        short_name = row.get("short_name", "")
        variants = split_variants(short_name)
        variant = variants[1] if len(variants) > 1 else ""
        edition = row.get("name", "").removesuffix(": " + short_name)

        card = InputCard(
            name=variants[0],
            edition=edition,
            variation=variant,
            foil="Foil" in variant,
        )
        card_id = self.match(card, row)
        if card_id is None:
            return None

        buy_price = parse_price(row.get("price_buy"))
        if buy_price is None or buy_price <= 0:
            self.printf("Invalid buy price %s for %s", row.get("price_buy"), card)
            return None

        entry = BuylistEntry(
            conditions="NM",
            buy_price=buy_price,
            trade_price=round_price(buy_price * Decimal(str(self.credit_multiplier))),
            price_ratio=price_ratio(buy_price, parse_price(row.get("price"))),
            quantity=int(row["qty_buying"]) if row.get("qty_buying") is not None else None,
        )
        return ScrapeResult(card_id=card_id, entry=entry, policy=MergePolicy.UNIQUE)
