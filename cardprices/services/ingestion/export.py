"""
Snapshot export and import.

JSON snapshots carry the scraper info plus both records:

    {"info": {...}, "inventory": {card_id: [entry, ...]}, "buylist": {...}}

Prices are written as strings so no precision is lost. A side with no
entries is dropped together with its timestamp.
"""
import csv
import json
from dataclasses import asdict, fields
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, TextIO

import structlog

from cardprices.services.ingestion.base import BaseScraper, ScraperConfig, ScraperInfo
from cardprices.services.ingestion.records import (
    BuylistEntry,
    BuylistRecord,
    InventoryEntry,
    InventoryRecord,
    Record,
)

logger = structlog.get_logger()

INVENTORY_HEADER = ["Key", "Card", "Conditions", "Price", "Quantity", "URL", "Seller"]
BUYLIST_HEADER = [
    "Key", "Card", "Conditions", "Buy Price", "Trade Price", "Quantity", "Price Ratio", "URL", "Vendor",
]

_DECIMAL_FIELDS = {"price", "buy_price", "trade_price"}


class StaticScraper(BaseScraper):
    """
    Scraper over records that are already loaded, e.g. read from a snapshot.
    """

    def __init__(
        self,
        info: ScraperInfo,
        inventory: InventoryRecord | None = None,
        buylist: BuylistRecord | None = None,
    ):
        super().__init__(config=ScraperConfig())
        self.name = info.name
        self.shorthand = info.shorthand
        self.credit_multiplier = info.credit_multiplier
        self.no_quantity = info.no_quantity
        self.is_seller = inventory is not None
        self.is_vendor = buylist is not None
        self.inventory_timestamp = info.inventory_timestamp
        self.buylist_timestamp = info.buylist_timestamp
        self._inventory = (inventory or InventoryRecord()).freeze()
        self._buylist = (buylist or BuylistRecord()).freeze()

    async def inventory(self) -> InventoryRecord:
        if not self.is_seller:
            raise NotImplementedError(f"{self.name} does not sell cards")
        return self._inventory

    async def buylist(self) -> BuylistRecord:
        if not self.is_vendor:
            raise NotImplementedError(f"{self.name} does not buy cards")
        return self._buylist


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dump_record(record: Record) -> dict[str, list[dict[str, Any]]]:
    return {card_id: [asdict(entry) for entry in entries] for card_id, entries in record.items()}


def dump_scraper(
    info: ScraperInfo,
    inventory: InventoryRecord | None = None,
    buylist: BuylistRecord | None = None,
) -> dict[str, Any]:
    """Snapshot as plain data, ready for json.dumps(default=...)."""
    info_data = asdict(info)
    data: dict[str, Any] = {"info": info_data}
    if inventory:
        data["inventory"] = _dump_record(inventory)
    else:
        info_data["inventory_timestamp"] = None
    if buylist:
        data["buylist"] = _dump_record(buylist)
    else:
        info_data["buylist_timestamp"] = None
    return data


async def write_scraper_json(
    scraper: BaseScraper,
    path: str | Path,
    inventory: bool = True,
    buylist: bool = True,
) -> Path:
    """
    Write a scraper snapshot, loading the requested sides if needed.

    Raises:
        ScrapeError: If a side fails to load.
    """
    inv = await scraper.inventory() if inventory and scraper.is_seller else None
    bl = await scraper.buylist() if buylist and scraper.is_vendor else None

    path = Path(path)
    path.write_text(
        json.dumps(dump_scraper(scraper.info(), inv, bl), default=_json_default),
        encoding="utf-8",
    )
    logger.info("Snapshot written", scraper=scraper.shorthand, path=str(path))
    return path


def _load_entry(entry_type: type, data: dict[str, Any]) -> Any:
    known = {f.name for f in fields(entry_type)}
    kwargs = {key: value for key, value in data.items() if key in known}
    for key in _DECIMAL_FIELDS & kwargs.keys():
        if kwargs[key] is not None:
            kwargs[key] = Decimal(str(kwargs[key]))
    return entry_type(**kwargs)


def _load_record(record: Record, entry_type: type, data: dict[str, list[dict[str, Any]]]) -> Record:
    for card_id, entries in data.items():
        for entry in entries:
            record.add(card_id, _load_entry(entry_type, entry))
    return record.freeze()


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def read_scraper_json(path: str | Path) -> StaticScraper:
    """
    Rebuild a scraper from a snapshot written by write_scraper_json().

    Raises:
        RecordError: If the snapshot holds entries no record would accept.
    """
    with open(path, encoding="utf-8") as fp:
        data = json.load(fp)

    info_data = data["info"]
    info = ScraperInfo(
        name=info_data["name"],
        shorthand=info_data["shorthand"],
        inventory_timestamp=_parse_timestamp(info_data.get("inventory_timestamp")),
        buylist_timestamp=_parse_timestamp(info_data.get("buylist_timestamp")),
        credit_multiplier=info_data.get("credit_multiplier"),
        no_quantity=info_data.get("no_quantity", False),
    )

    inventory = None
    if "inventory" in data:
        inventory = _load_record(InventoryRecord(), InventoryEntry, data["inventory"])
    buylist = None
    if "buylist" in data:
        buylist = _load_record(BuylistRecord(), BuylistEntry, data["buylist"])
    return StaticScraper(info, inventory, buylist)


def _label(describe: Callable[[str], str] | None, card_id: str) -> str:
    if describe is None:
        return ""
    try:
        return describe(card_id)
    except KeyError:
        return ""


def write_inventory_csv(
    record: InventoryRecord,
    fp: TextIO,
    describe: Callable[[str], str] | None = None,
) -> int:
    """Write one row per inventory entry. Returns the number of rows."""
    writer = csv.writer(fp)
    writer.writerow(INVENTORY_HEADER)
    rows = 0
    for card_id, entries in record.items():
        label = _label(describe, card_id)
        for entry in entries:
            writer.writerow([
                card_id,
                label,
                entry.conditions,
                entry.price,
                "" if entry.quantity is None else entry.quantity,
                entry.url,
                entry.seller_name,
            ])
            rows += 1
    return rows


def write_buylist_csv(
    record: BuylistRecord,
    fp: TextIO,
    describe: Callable[[str], str] | None = None,
) -> int:
    """Write one row per buylist entry. Returns the number of rows."""
    writer = csv.writer(fp)
    writer.writerow(BUYLIST_HEADER)
    rows = 0
    for card_id, entries in record.items():
        label = _label(describe, card_id)
        for entry in entries:
            writer.writerow([
                card_id,
                label,
                entry.conditions,
                entry.buy_price,
                "" if entry.trade_price is None else entry.trade_price,
                "" if entry.quantity is None else entry.quantity,
                "" if entry.price_ratio is None else f"{entry.price_ratio:.2f}",
                entry.url,
                entry.vendor_name,
            ])
            rows += 1
    return rows
