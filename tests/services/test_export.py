"""
Tests for snapshot export and import.
"""
import io
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from cardprices.services.ingestion.base import ScraperInfo
from cardprices.services.ingestion.export import (
    BUYLIST_HEADER,
    INVENTORY_HEADER,
    StaticScraper,
    dump_scraper,
    read_scraper_json,
    write_buylist_csv,
    write_inventory_csv,
    write_scraper_json,
)
from cardprices.services.ingestion.records import (
    BuylistEntry,
    BuylistRecord,
    InventoryEntry,
    InventoryRecord,
)

LOADED_AT = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def inventory() -> InventoryRecord:
    record = InventoryRecord()
    record.add("c1", InventoryEntry(conditions="NM", price=Decimal("2.99"), quantity=4, url="https://x/1"))
    record.add("c1", InventoryEntry(conditions="SP", price=Decimal("2.39"), quantity=3))
    record.add("zz", InventoryEntry(conditions="NM", price=Decimal("0.25")))
    return record.freeze()


@pytest.fixture
def buylist() -> BuylistRecord:
    record = BuylistRecord()
    record.add("c1", BuylistEntry(
        conditions="NM",
        buy_price=Decimal("1.50"),
        trade_price=Decimal("1.95"),
        price_ratio=50.1672,
        quantity=20,
        vendor_name="cash",
    ))
    return record.freeze()


def make_info(**kwargs) -> ScraperInfo:
    return ScraperInfo(
        name="Card Kingdom",
        shorthand="CK",
        inventory_timestamp=LOADED_AT,
        buylist_timestamp=LOADED_AT,
        credit_multiplier=1.3,
        **kwargs,
    )


class TestDumpScraper:
    """Tests for dump_scraper()."""

    def test_empty_side_is_dropped_with_its_timestamp(self, inventory):
        data = dump_scraper(make_info(), inventory, BuylistRecord())

        assert "buylist" not in data
        assert data["info"]["buylist_timestamp"] is None
        assert data["info"]["inventory_timestamp"] == LOADED_AT
        assert [e["conditions"] for e in data["inventory"]["c1"]] == ["NM", "SP"]


class TestJsonSnapshot:
    """Tests for write_scraper_json() / read_scraper_json()."""

    @pytest.mark.asyncio
    async def test_snapshot_restores_records(self, tmp_path, inventory, buylist):
        scraper = StaticScraper(make_info(), inventory, buylist)
        path = await write_scraper_json(scraper, tmp_path / "ck.json")

        raw = json.loads(path.read_text())
        assert raw["inventory"]["c1"][0]["price"] == "2.99"

        restored = read_scraper_json(path)
        assert restored.info() == scraper.info()

        restored_inventory = await restored.inventory()
        assert dict(restored_inventory) == dict(inventory)
        assert restored_inventory.frozen

        offer = (await restored.buylist())["c1"][0]
        assert offer.buy_price == Decimal("1.50")
        assert offer.trade_price == Decimal("1.95")
        assert offer.vendor_name == "cash"

    @pytest.mark.asyncio
    async def test_single_side_snapshot(self, tmp_path, inventory, buylist):
        scraper = StaticScraper(make_info(), inventory, buylist)
        path = await write_scraper_json(scraper, tmp_path / "ck.json", inventory=False)

        restored = read_scraper_json(path)

        assert restored.is_vendor
        assert not restored.is_seller
        assert restored.info().inventory_timestamp is None
        with pytest.raises(NotImplementedError):
            await restored.inventory()


class TestCsvExport:
    """Tests for the CSV writers."""

    def test_inventory_rows(self, inventory, card_index):
        out = io.StringIO()

        rows = write_inventory_csv(inventory, out, describe=card_index.describe)

        lines = out.getvalue().splitlines()
        assert rows == 3
        assert lines[0] == ",".join(INVENTORY_HEADER)
        assert lines[1].startswith("c1,Lightning Bolt [Magic 2010] #146,NM,2.99,4,")
        # Unknown identities keep an empty label
        assert lines[3].startswith("zz,,NM,0.25,,")

    def test_buylist_rows(self, buylist):
        out = io.StringIO()

        rows = write_buylist_csv(buylist, out)

        lines = out.getvalue().splitlines()
        assert rows == 1
        assert lines[0] == ",".join(BUYLIST_HEADER)
        assert lines[1] == "c1,,NM,1.50,1.95,20,50.17,,cash"
