"""
ABU Games Adapter.

ABU Games exposes its catalogue through a Solr endpoint. Every product
document carries both the retail and the buylist side, so a single pass
fills both records. Results are grouped by product and paginated by offset.
"""
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any

import httpx
import structlog

from cardprices.services.ingestion.base import BaseScraper, ScrapeError
from cardprices.services.ingestion.matcher import InputCard, UnsupportedError, split_variants
from cardprices.services.ingestion.pipeline import MergePolicy, ScrapeResult, WorkSource
from cardprices.services.ingestion.records import BuylistEntry, InventoryEntry
from cardprices.services.ingestion.scraper_utils import decorate_url, parse_price, price_ratio

logger = structlog.get_logger()

MAX_ENTRIES_PER_REQUEST = 200

SOLR_URL = "https://data.abugames.com/solr/nodes/select"
SOLR_PARAMS = {
    "q": "*:*",
    "fq": (
        '+category:"Magic the Gathering Singles" -buy_price:0 -buy_list_quantity:0 '
        '+language:("English") +display_title:*'
    ),
    "group": "true",
    "group.field": "product_id",
    "group.ngroups": "true",
    "group.limit": "10",
    "wt": "json",
}

CASH_VENDOR = "ABUGames"
CREDIT_VENDOR = "ABUGames Credit"

# Vendor condition -> (regular listing, unique "ID#" listing); None is skipped
CONDITION_MAP: dict[str, tuple[str | None, str | None]] = {
    "MINT": (None, "NM"),
    "NM": ("NM", "SP"),
    "PLD": ("SP", "MP"),
    "HP": ("MP", "HP"),
}

NON_SINGLE_LAYOUTS = {"Scheme", "Plane", "Phenomenon"}


def map_condition(condition: str, is_unique: bool) -> str | None:
    """
    Grade tag for an ABU condition, or None when the listing is not used.

    Unique listings are graded one step stricter than regular ones.

    Raises:
        ValueError: For conditions outside the known vocabulary.
    """
    if condition == "SP":
        return None
    if condition not in CONDITION_MAP:
        raise ValueError(f"Unknown '{condition}' condition")
    regular, unique = CONDITION_MAP[condition]
    return unique if is_unique else regular


def preprocess(doc: dict[str, Any]) -> InputCard:
    """
    Build matcher input from a product document.

    Display titles look like "Name (Variant) - Other - FOIL - Edition".

    Raises:
        UnsupportedError: For non-English and non-single products.
    """
    languages = doc.get("language") or []
    if languages and languages[0] != "English":
        raise UnsupportedError("non-English card")
    if doc.get("layout") in NON_SINGLE_LAYOUTS:
        raise UnsupportedError("non-single card")

    title = doc.get("display_title", "")
    edition = doc.get("magic_edition_sort", "")
    if "Oversized" in title:
        raise UnsupportedError("non-single card")

    lowered = title.lower()
    is_foil = " foil" in lowered or " - fol" in lowered

    parts = title.split(" - ")
    name = parts[0]
    extras = parts[1:]
    if extras and extras[-1] == edition:
        extras = extras[:-1]

    variants = split_variants(name)
    name = variants[0]
    variation = " ".join(variants[1:] + extras)
    variation = variation.replace("FOIL", "").replace("(", "").replace(")", "")
    variation = " ".join(variation.split())

    if doc.get("card_number") and not variation:
        variation = str(doc["card_number"])

    return InputCard(name=name, edition=edition, variation=variation, foil=is_foil)


class ABUGamesScraper(BaseScraper):
    """
    ABU Games retail and buylist scraper.

    Buy offers are recorded twice, once as cash and once as store credit,
    under distinct vendor names.
    """

    name = "ABU Games"
    shorthand = "ABU"
    slug = "abugames"
    BASE_URL = "https://abugames.com"

    is_seller = True
    is_vendor = True
    combined_load = True

    async def query(self, start: int, rows: int) -> dict[str, Any]:
        params = dict(SOLR_PARAMS, start=str(start), rows=str(rows))
        return await self.get_json(SOLR_URL, params=params)

    async def total_products(self) -> int:
        """
        Number of product groups to page through.

        Raises:
            ScrapeError: If the count cannot be read.
        """
        try:
            payload = await self.query(start=0, rows=0)
            return int(payload["grouped"]["product_id"]["ngroups"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise ScrapeError(f"ABU Games product count unavailable: {e}") from e

    async def scrape_all(self) -> None:
        total = await self.total_products()
        self.printf("Parsing %d entries", total)
        source = WorkSource.offsets(total, MAX_ENTRIES_PER_REQUEST)
        logger.info("ABU Games catalogue sized", products=total, pages=len(source))
        await self.run(source, self.process_page)

    async def process_page(self, start: int) -> AsyncIterator[ScrapeResult]:
        payload = await self.query(start=start, rows=MAX_ENTRIES_PER_REQUEST)
        groups = payload.get("grouped", {}).get("product_id", {}).get("groups", [])

        seen: set[str] = set()
        for group in groups:
            group_value = str(group.get("groupValue", ""))
            for doc in group.get("doclist", {}).get("docs", []):
                doc_id = str(doc.get("id", ""))
                if doc_id in seen:
                    self.printf(
                        "Skipping duplicate card: %s (%s)",
                        doc.get("display_title"),
                        doc.get("magic_edition_sort"),
                    )
                    continue

                for result in self.parse_doc(doc, group_value):
                    yield result
                seen.add(doc_id)

    def parse_doc(self, doc: dict[str, Any], group_value: str) -> list[ScrapeResult]:
        is_unique = doc.get("title", "").startswith("ID#")
        try:
            conditions = map_condition(doc.get("condition", ""), is_unique)
        except ValueError as e:
            self.printf("%s", e)
            return []
        if conditions is None:
            return []

        try:
            card = preprocess(doc)
        except UnsupportedError:
            return []
        card_id = self.match(card, doc.get("display_title", ""))
        if card_id is None:
            return []

        search = "&search=" + doc.get("simple_title", "")
        params = {
            "magic_edition": f'["{doc.get("magic_edition_sort", "")}"]',
            "card_style": '["Foil"]' if card.foil else '["Normal"]',
        }
        doc_id = str(doc.get("id", ""))

        sell_price = parse_price(doc.get("price")) or Decimal("0")
        sell_qty = int(doc.get("quantity") or 0)
        buy_price = parse_price(doc.get("buy_price")) or Decimal("0")
        trade_price = parse_price(doc.get("trade_price")) or Decimal("0")
        buy_qty = int(doc.get("buy_list_quantity") or 0)

        results = []
        if self.wants_inventory and sell_qty > 0 and sell_price > 0:
            link = decorate_url(self.base_url + "/magic-the-gathering/singles", params) + search
            results.append(ScrapeResult(
                card_id=card_id,
                entry=InventoryEntry(
                    conditions=conditions,
                    price=sell_price,
                    quantity=sell_qty,
                    url=link,
                    original_id=group_value,
                    instance_id=doc_id,
                ),
                policy=MergePolicy.RELAXED,
            ))

        if self.wants_buylist and buy_qty > 0 and buy_price > 0:
            link = decorate_url(self.base_url + "/buylist/magic-the-gathering/singles", params) + search
            offers = [(CASH_VENDOR, buy_price)]
            if trade_price > 0:
                offers.append((CREDIT_VENDOR, trade_price))
            for vendor, price in offers:
                results.append(ScrapeResult(
                    card_id=card_id,
                    entry=BuylistEntry(
                        conditions=conditions,
                        buy_price=price,
                        price_ratio=price_ratio(price, sell_price),
                        quantity=buy_qty,
                        url=link,
                        vendor_name=vendor,
                        original_id=group_value,
                        instance_id=doc_id,
                    ),
                    policy=MergePolicy.RELAXED,
                ))
        return results
