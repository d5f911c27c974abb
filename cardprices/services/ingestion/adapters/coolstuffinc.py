"""
Cool Stuff Inc Adapter.

Retail prices are scraped from the search pages, one "Item Set" category
at a time. The buylist is a static JSON file regenerated by CSI.
"""
import re
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any
from urllib.parse import urljoin

import httpx
import structlog
from bs4 import BeautifulSoup, Tag

from cardprices.core.config import settings
from cardprices.core.constants import DEFAULT_GRADE_TAGS
from cardprices.services.ingestion.base import BaseScraper, ScrapeError, ScraperConfig
from cardprices.services.ingestion.matcher import InputCard, UnsupportedError, split_variants
from cardprices.services.ingestion.pipeline import MergePolicy, ScrapeResult, WorkSource
from cardprices.services.ingestion.records import BuylistEntry, InventoryEntry
from cardprices.services.ingestion.scraper_utils import (
    decorate_url,
    parse_price,
    price_ratio,
    round_price,
)

logger = structlog.get_logger()

DEFAULT_CONCURRENCY = 8

# Applied to NM, SP and MP in order
DEDUCTIONS = (Decimal("1"), Decimal("1"), Decimal("0.75"))

SKIPPED_CATEGORIES = ("Bulk", "Random Lots", "Relic Token")

CONDITION_MAP = {
    "Near Mint": "NM",
    "Foil Near Mint": "NM",
    "Played": "MP",
    "Foil Played": "MP",
}
RELAXED_MARKERS = ("BGS", "Non-Foil", "Unique")

BUNDLE_TEXT = "Buy 1 get 3 free!"
BUNDLE_SIZE = 4


def parse_categories(soup: BeautifulSoup) -> list[str]:
    """Category names listed under the "Item Set" search facet, sorted."""
    names = []
    for fieldset in soup.find_all("fieldset"):
        title = fieldset.select_one("h2 b")
        if title is None or title.get_text(strip=True) != "Item Set":
            continue
        for checkbox in fieldset.select('li input[type="checkbox"]'):
            name = checkbox.get("value", "")
            if not name or name == "Magic":
                continue
            if any(marker in name for marker in SKIPPED_CATEGORIES):
                continue
            names.append(name)
    return sorted(names)


def next_page_url(soup: BeautifulSoup, current_url: str) -> str | None:
    link = soup.select_one("span#nextLink a")
    if link is None or not link.get("href"):
        return None
    return urljoin(current_url, link["href"])


def preprocess(card_name: str, edition: str, notes: str) -> InputCard:
    """
    Build matcher input from a search row.

    Raises:
        UnsupportedError: For signed cards.
    """
    if re.search(r"signed by", card_name, re.IGNORECASE):
        raise UnsupportedError(f"signed card {card_name}")

    variants = split_variants(card_name)
    name = variants[0]
    variation = " ".join(part for part in [notes.strip(), *variants[1:]] if part)

    is_foil = False
    if "FOIL" in name:
        name = name.replace(" FOIL", "", 1)
        is_foil = True
    if name.endswith("Promo"):
        name = name.removesuffix("Promo")

    return InputCard(
        name=name.strip(),
        edition=edition,
        variation=variation,
        foil=is_foil,
        etched="Foil-etched" in card_name,
    )


def parse_offer(offer: Tag) -> tuple[str, int, Decimal, bool] | None:
    """
    Read one offer line of a search row.

    Returns (condition text, quantity, unit price, bundle) or None when the
    offer is not available.

    Raises:
        ValueError: When quantity or price cannot be read.
    """
    full_row = offer.get_text(" ", strip=True)
    if "Out of Stock" in full_row or "not currently available" in full_row:
        return None

    qty_node = offer.select_one("span.card-qty")
    qty_text = qty_node.get_text(strip=True).rstrip("+").strip() if qty_node else ""
    qty = int(qty_text)

    bundle_node = offer.select_one("div.b1-gx-free")
    bundle_text = bundle_node.get_text(strip=True) if bundle_node else ""

    price_node = offer.select_one('b[itemprop="price"]')
    price = parse_price(price_node.get_text(strip=True) if price_node else None)
    if price is None:
        raise ValueError(f"no price in {full_row!r}")

    condition_node = offer.select_one("span.card-condition")
    if condition_node is not None:
        conditions = condition_node.get_text(" ", strip=True)
    else:
        conditions = full_row.removeprefix(qty_node.get_text(strip=True) if qty_node else "")
        conditions = conditions.split("$")[0]
    if bundle_text:
        conditions = conditions.replace(bundle_text, "")
    conditions = conditions.strip().removesuffix("Was").strip()

    bundle = bundle_text == BUNDLE_TEXT
    if bundle:
        price = round_price(price / BUNDLE_SIZE)
    return conditions, qty, price, bundle


class CoolStuffIncScraper(BaseScraper):
    """
    Cool Stuff Inc retail and buylist scraper.

    config.extra["target_edition"] restricts both sides to one category.
    """

    name = "Cool Stuff Inc"
    shorthand = "CSI"
    slug = "coolstuffinc"
    BASE_URL = "https://www.coolstuffinc.com"
    SEARCH_URL = "https://www.coolstuffinc.com/sq/"
    BUYLIST_URL = "https://www.coolstuffinc.com/GeneratedFiles/SellList/Section-mtg.json"
    BUYLIST_LINK = "https://www.coolstuffinc.com/main_selllist.php"

    is_seller = True
    is_vendor = True
    credit_multiplier = 1.25

    @classmethod
    def default_config(cls) -> ScraperConfig:
        return ScraperConfig(
            base_url=cls.BASE_URL,
            max_concurrency=DEFAULT_CONCURRENCY,
            partner=settings.coolstuffinc_partner,
        )

    @property
    def target_edition(self) -> str:
        return self.config.extra.get("target_edition", "")

    def _wanted(self, edition: str) -> bool:
        return not self.target_edition or edition == self.target_edition

    async def categories(self) -> list[str]:
        """
        Raises:
            ScrapeError: If the search index cannot be read.
        """
        try:
            soup = await self.get_html(self.SEARCH_URL, params={"s": "mtg"})
        except httpx.HTTPError as e:
            raise ScrapeError(f"CSI search index unavailable: {e}") from e
        names = parse_categories(soup)
        if not names:
            raise ScrapeError("CSI search index lists no categories")
        return names

    async def scrape_inventory(self) -> None:
        names = await self.categories()
        self.printf("Found %d items", len(names))
        source = WorkSource(names, label="category", include=self._wanted)
        await self.run(source, self.process_category)

    async def search(self, category: str) -> BeautifulSoup:
        form = {
            "f[ItemSet][]": category,
            "s": "mtg",
            "page": "1",
            "resultsPerPage": "50",
            "submit": "Search",
        }
        return await self.get_html(self.SEARCH_URL, method="POST", data=form)

    async def process_category(self, category: str) -> AsyncIterator[ScrapeResult]:
        self.printf("Processing %s", category)
        soup = await self.search(category)
        url = self.SEARCH_URL
        while True:
            for row in soup.select("div.product-search-row"):
                for result in self.parse_row(row, category):
                    yield result

            url = next_page_url(soup, url)
            if url is None:
                break
            soup = await self.get_html(url)

    def parse_row(self, row: Tag, edition: str) -> list[ScrapeResult]:
        name_node = row.select_one('span[itemprop="name"]')
        card_name = name_node.get_text(strip=True) if name_node else ""
        pid_node = row.select_one("span.rating-display")
        pid = pid_node.get("data-pid", "") if pid_node else ""
        notes_node = row.select_one("div.product-notes")
        notes = notes_node.get_text(strip=True).removeprefix("Notes:").strip() if notes_node else ""

        link = self.base_url + "/p/" + pid
        if self.config.partner:
            link = decorate_url(link, {"utm_referrer": self.config.partner})

        card_id: str | None = None
        matched = False
        results = []
        for offer in row.select('div[itemprop="offers"]'):
            try:
                parsed = parse_offer(offer)
            except ValueError as e:
                self.printf("%s %s %s", card_name, edition, e)
                continue
            if parsed is None:
                continue
            conditions, qty, price, _ = parsed

            relaxed = "Foil-etched" in card_name
            if any(marker in conditions for marker in RELAXED_MARKERS):
                conditions = "Near Mint"
                relaxed = True
            if conditions not in CONDITION_MAP:
                self.printf("Unsupported '%s' condition for %s", conditions, card_name)
                continue
            if qty == 0 or price <= 0:
                continue

            if not matched:
                matched = True
                try:
                    card = preprocess(card_name, edition, notes)
                except UnsupportedError:
                    return []
                card = InputCard(
                    name=card.name,
                    edition=card.edition,
                    variation=card.variation,
                    foil=card.foil or conditions.startswith("Foil"),
                    etched=card.etched,
                )
                card_id = self.match(card, f"'{card_name}' '{edition}' '{notes}'", f"- {link}")
            if card_id is None:
                return []

            results.append(ScrapeResult(
                card_id=card_id,
                entry=InventoryEntry(
                    conditions=CONDITION_MAP[conditions],
                    price=price,
                    quantity=qty,
                    url=link,
                    original_id=pid,
                ),
                policy=MergePolicy.RELAXED if relaxed else MergePolicy.PLAIN,
            ))
        return results

    async def scrape_buylist(self) -> None:
        # Ratios are computed against the retail side
        if self.wants_inventory:
            try:
                await self._inventory_load.ensure()
            except ScrapeError as e:
                logger.warning("CSI inventory unavailable for buylist ratios", error=str(e))
                self.printf("Inventory unavailable, skipping price ratios: %s", e)

        try:
            products = await self.get_json(self.BUYLIST_URL, headers={"Accept-Encoding": "identity"})
        except httpx.HTTPError as e:
            raise ScrapeError(f"CSI buylist unavailable: {e}") from e
        if not isinstance(products, list):
            raise ScrapeError("CSI buylist is not a list")
        self.printf("Found %d products", len(products))

        source = WorkSource(
            products,
            label="product",
            include=lambda product: product.get("RarityName") != "Box"
            and self._wanted(product.get("ItemSet", "")),
        )
        await self.run(source, self.process_product)

    async def process_product(self, product: dict[str, Any]) -> AsyncIterator[ScrapeResult]:
        for result in self.parse_product(product):
            yield result

    def parse_product(self, product: dict[str, Any]) -> list[ScrapeResult]:
        name = product.get("Name", "")
        is_foil = str(product.get("isFoil", "0")) == "1"
        link = decorate_url(self.BUYLIST_LINK, {
            "s": "mtg",
            "a": "1",
            "name": name,
            "f[]": "1" if is_foil else "0",
        })

        if re.search(r"signed by", name, re.IGNORECASE):
            return []
        number = str(product.get("Number") or "").lstrip("0")
        card = InputCard(
            name=name,
            edition=product.get("ItemSet", ""),
            variation=number or product.get("Notes", "").strip(),
            foil=is_foil,
        )
        card_id = self.match(card, f"original: {product!r}", f"link: {link}")
        if card_id is None:
            return []

        buy_price = parse_price(product.get("Price"))
        if buy_price is None or buy_price <= 0:
            self.printf("%s error: invalid price %r", name, product.get("Price"))
            return []
        credit_price = parse_price(product.get("CreditPrice"))

        sell_price = None
        if card_id in self._inventory:
            sell_price = self._inventory[card_id][0].price
        ratio = price_ratio(buy_price, sell_price)

        results = []
        for grade, deduction in zip(DEFAULT_GRADE_TAGS, DEDUCTIONS):
            trade_price = None
            if credit_price:
                trade_price = round_price(credit_price * deduction)
            results.append(ScrapeResult(
                card_id=card_id,
                entry=BuylistEntry(
                    conditions=grade,
                    buy_price=round_price(buy_price * deduction),
                    trade_price=trade_price,
                    price_ratio=ratio,
                    url=link,
                    original_id=str(product.get("PID", "")),
                ),
                policy=MergePolicy.PLAIN,
            ))
        return results
