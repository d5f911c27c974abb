"""
Card Kingdom Adapter.

Card Kingdom publishes a single price list covering both its retail
inventory and its buylist, so one fetch fills both records.

API: https://api.cardkingdom.com/api/v2/pricelist
"""
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any

import httpx
import structlog

from cardprices.core.config import settings
from cardprices.core.constants import DEFAULT_GRADE_TAGS
from cardprices.services.ingestion.base import BaseScraper, ScrapeError, ScraperConfig
from cardprices.services.ingestion.matcher import (
    InputCard,
    MatchError,
    UnsupportedError,
    report_match_error,
)
from cardprices.services.ingestion.pipeline import MergePolicy, ScrapeResult, WorkSource
from cardprices.services.ingestion.records import BuylistEntry, InventoryEntry
from cardprices.services.ingestion.scraper_utils import (
    decorate_url,
    parse_price,
    partner_params,
    price_ratio,
    round_price,
)

logger = structlog.get_logger()

# Grades the price list publishes, and the ones CK buys at
CK_GRADES = DEFAULT_GRADE_TAGS[:4]
CONDITION_FIELDS = ("nm", "ex", "vg", "g")

# Buylist deductions per grade, by tier
FOIL_GRADING = {"NM": "1", "SP": "0.75", "MP": "0.5", "HP": "0.3"}
VINTAGE_GRADING = {"NM": "1", "SP": "0.8", "MP": "0.6", "HP": "0.4"}
PRICE_TIER_GRADING = (
    # (upper bound, deductions); None is unbounded
    (Decimal("15"), {"NM": "1", "SP": "0.8", "MP": "0.7", "HP": "0.5"}),
    (Decimal("25"), {"NM": "1", "SP": "0.85", "MP": "0.7", "HP": "0.5"}),
    (Decimal("100"), {"NM": "1", "SP": "0.85", "MP": "0.75", "HP": "0.65"}),
    (None, {"NM": "1", "SP": "0.9", "MP": "0.8", "HP": "0.7"}),
)
VINTAGE_EDITIONS = {"Alpha", "Beta", "Unlimited"}

SKIPPED_VARIATIONS = ("Misprint", "Oversized")


def grading(edition: str, is_foil: bool, price: Decimal) -> dict[str, Decimal]:
    """
    Buylist multiplier for each grade.

    Vintage core sets have their own table regardless of finish or price.
    """
    if edition in VINTAGE_EDITIONS:
        table = VINTAGE_GRADING
    elif is_foil:
        table = FOIL_GRADING
    else:
        table = PRICE_TIER_GRADING[-1][1]
        for bound, tier in PRICE_TIER_GRADING:
            if bound is not None and price < bound:
                table = tier
                break
    return {grade: Decimal(factor) for grade, factor in table.items()}


def _is_true(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _quantity(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def preprocess(row: dict[str, Any]) -> InputCard:
    """
    Build matcher input from a price-list row.

    The collector number is taken from the SKU ("M10-146" -> "146").

    Raises:
        UnsupportedError: For oversized, misprinted and art series products.
    """
    name = row.get("name", "")
    variation = row.get("variation") or ""
    edition = row.get("edition") or ""
    sku = row.get("sku") or ""

    if any(marker in variation for marker in SKIPPED_VARIATIONS) or "Art Series" in edition:
        raise UnsupportedError(f"skipping {name} ({variation})")

    number = ""
    fields = sku.split("-", 1)
    if len(fields) > 1:
        number = fields[1].lstrip("0").lower()

    return InputCard(
        name=name,
        edition=edition,
        variation=" ".join(part for part in (number, variation) if part),
        foil=_is_true(row.get("is_foil")),
        etched="Etched" in variation,
    )


class CardKingdomScraper(BaseScraper):
    """
    Card Kingdom retail and buylist scraper.

    Usage:
        async with CardKingdomScraper(matcher=index) as ck:
            inventory = await ck.inventory()
            buylist = await ck.buylist()
    """

    name = "Card Kingdom"
    shorthand = "CK"
    slug = "cardkingdom"
    BASE_URL = "https://www.cardkingdom.com"
    PRICELIST_URL = "https://api.cardkingdom.com/api/v2/pricelist"
    BACKUP_URL = "https://mtgban.com/api/cardkingdom/pricelist.json"
    PURCHASING_URL = "https://www.cardkingdom.com/purchasing/mtg_singles"

    is_seller = True
    is_vendor = True
    combined_load = True
    credit_multiplier = 1.3

    @classmethod
    def default_config(cls) -> ScraperConfig:
        return ScraperConfig(base_url=cls.BASE_URL, partner=settings.cardkingdom_partner)

    async def fetch_pricelist(self) -> list[dict[str, Any]]:
        """
        Download the price list, falling back to the mirror when throttled.

        Raises:
            ScrapeError: If neither source answers with a usable list.
        """
        try:
            payload = await self.get_json(self.PRICELIST_URL)
        except httpx.HTTPStatusError as e:
            if e.response.status_code != 429:
                raise ScrapeError(f"Card Kingdom price list unavailable: {e}") from e
            logger.info("Card Kingdom throttled, using backup price list", url=self.BACKUP_URL)
            try:
                payload = await self.get_json(self.BACKUP_URL)
            except httpx.HTTPError as backup_error:
                raise ScrapeError(f"Card Kingdom backup price list unavailable: {backup_error}") from backup_error
        except httpx.HTTPError as e:
            raise ScrapeError(f"Card Kingdom price list unavailable: {e}") from e

        rows = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise ScrapeError("Card Kingdom price list has no data")
        return rows

    async def scrape_all(self) -> None:
        rows = await self.fetch_pricelist()
        self.printf("Found %d prices", len(rows))
        await self.run(WorkSource(rows, label="row"), self.process_row)

    async def process_row(self, row: dict[str, Any]) -> AsyncIterator[ScrapeResult]:
        card_id = self.match_row(row)
        if card_id is None:
            return

        if self.wants_inventory:
            for result in self.inventory_results(card_id, row):
                yield result
        if self.wants_buylist:
            for result in self.buylist_results(card_id, row):
                yield result

    def match_row(self, row: dict[str, Any]) -> str | None:
        """Match by name first, then by Scryfall id."""
        try:
            card = preprocess(row)
        except UnsupportedError:
            return None
        try:
            return self.matcher.match(card)
        except UnsupportedError:
            return None
        except MatchError as e:
            match_id = getattr(self.matcher, "match_id", None)
            scryfall_id = row.get("scryfall_id")
            if match_id is not None and scryfall_id:
                try:
                    return match_id(scryfall_id, foil=card.foil, etched=card.etched)
                except MatchError:
                    pass
            report_match_error(self.printf, e, card, row, describe=self._describe)
            return None

    def inventory_results(self, card_id: str, row: dict[str, Any]) -> list[ScrapeResult]:
        retail = parse_price(row.get("price_retail")) or Decimal("0")
        if _quantity(row.get("qty_retail")) <= 0 or retail <= 0:
            return []

        link = decorate_url(self.base_url + "/" + row.get("url", "").lstrip("/"), partner_params(self.config.partner))
        values = row.get("condition_values") or {}

        results = []
        for i, (grade, field) in enumerate(zip(CK_GRADES, CONDITION_FIELDS)):
            qty = _quantity(values.get(f"{field}_qty"))
            if qty == 0:
                continue
            price = parse_price(values.get(f"{field}_price")) or Decimal("0")
            if price <= 0:
                # Newly listed cards only carry the root price, valid for NM
                if i > 0:
                    continue
                price = retail
            results.append(ScrapeResult(
                card_id=card_id,
                entry=InventoryEntry(
                    conditions=grade,
                    price=price,
                    quantity=qty,
                    url=link,
                    original_id=str(row.get("id", "")),
                    instance_id=row.get("sku", ""),
                ),
                policy=MergePolicy.STRICT,
            ))
        return results

    def buylist_results(self, card_id: str, row: dict[str, Any]) -> list[ScrapeResult]:
        buy_price = parse_price(row.get("price_buy")) or Decimal("0")
        qty = _quantity(row.get("qty_buying"))
        if qty <= 0 or buy_price <= 0:
            return []

        edition = row.get("edition", "")
        is_foil = _is_true(row.get("is_foil"))
        card_name = row.get("name", "")
        if row.get("variation"):
            card_name = f"{card_name} ({row['variation']})"

        query = {
            "filter[search]": "mtg_advanced",
            "filter[name]": card_name,
            # Both finishes, the site filter is not accurate enough
            "filter[singles]": "1",
            "filter[foils]": "1",
        }
        # Edition slug comes from the product url, not the edition field
        url_paths = row.get("url", "").strip("/").split("/")
        if len(url_paths) > 2:
            query["filter[edition]"] = url_paths[1]
        query.update(partner_params(self.config.partner))
        link = decorate_url(self.PURCHASING_URL, query)

        ratio = price_ratio(buy_price, parse_price(row.get("price_retail")))
        deductions = grading(edition, is_foil, buy_price)

        results = []
        for grade in CK_GRADES:
            entry = BuylistEntry(
                conditions=grade,
                buy_price=round_price(buy_price * deductions[grade]),
                trade_price=round_price(buy_price * deductions[grade] * Decimal(str(self.credit_multiplier))),
                price_ratio=ratio,
                quantity=qty,
                url=link,
                original_id=str(row.get("id", "")),
                instance_id=row.get("sku", ""),
            )
            # CSV import columns
            if grade == "NM":
                entry.custom_fields = {
                    "CKTitle": card_name,
                    "CKEdition": edition,
                    "CKFoil": str(is_foil).lower(),
                    "CKSKU": row.get("sku", ""),
                    "CKID": str(row.get("id", "")),
                }
            results.append(ScrapeResult(card_id=card_id, entry=entry, policy=MergePolicy.PLAIN))
        return results
