"""
Tests for inventory and buylist records and their merge operations.
"""
from decimal import Decimal

import pytest

from cardprices.services.ingestion.records import (
    BuylistEntry,
    BuylistRecord,
    DuplicateEntryError,
    InvalidEntryError,
    InventoryEntry,
    InventoryRecord,
    QuantityMerge,
    RecordFrozenError,
)


def inv(conditions="NM", price="10", quantity=1, seller=""):
    return InventoryEntry(
        conditions=conditions,
        price=Decimal(price),
        quantity=quantity,
        seller_name=seller,
    )


def buy(conditions="NM", price="5", trade=None, ratio=None, vendor=""):
    return BuylistEntry(
        conditions=conditions,
        buy_price=Decimal(price),
        trade_price=Decimal(trade) if trade else None,
        price_ratio=ratio,
        vendor_name=vendor,
    )


class TestPlainAdd:
    """Tests for add()."""

    def test_distinct_conditions_are_kept(self):
        record = InventoryRecord()
        record.add("X", inv("NM"))
        record.add("X", inv("SP", price="8"))
        assert [e.conditions for e in record["X"]] == ["NM", "SP"]

    def test_duplicate_condition_and_seller_rejected(self):
        record = InventoryRecord()
        record.add("X", inv("NM", seller="alice"))

        with pytest.raises(DuplicateEntryError) as exc_info:
            record.add("X", inv("NM", price="12", seller="alice"))

        assert exc_info.value.key == ("NM", "alice")
        assert "X" in str(exc_info.value)
        assert record["X"][0].price == Decimal("10")

    def test_same_condition_other_seller_accepted(self):
        record = InventoryRecord()
        record.add("X", inv("NM", seller="alice"))
        record.add("X", inv("NM", price="11", seller="bob"))
        assert len(record["X"]) == 2

    def test_buylist_tolerates_same_offer_and_fills_ratio(self):
        record = BuylistRecord()
        record.add("X", buy(price="5", trade="6.5"))
        record.add("X", buy(price="5", trade="6.5", ratio=50.0))

        assert len(record["X"]) == 1
        assert record["X"][0].price_ratio == 50.0

    def test_buylist_rejects_different_price(self):
        record = BuylistRecord()
        record.add("X", buy(price="5"))
        with pytest.raises(DuplicateEntryError):
            record.add("X", buy(price="6"))


class TestStrictAdd:
    """Tests for add_strict()."""

    def test_duplicate_condition_rejected_first_kept(self):
        record = InventoryRecord()
        record.add_strict("X", inv("NM", price="10"))

        with pytest.raises(DuplicateEntryError):
            record.add_strict("X", inv("NM", price="12"))

        assert len(record["X"]) == 1
        assert record["X"][0].price == Decimal("10")

    def test_seller_does_not_matter(self):
        record = InventoryRecord()
        record.add_strict("X", inv("NM", seller="alice"))
        with pytest.raises(DuplicateEntryError):
            record.add_strict("X", inv("NM", seller="bob"))


class TestRelaxedAdd:
    """Tests for add_relaxed()."""

    def test_quantities_are_summed(self):
        record = InventoryRecord()
        record.add_relaxed("X", inv("NM", price="10", quantity=2))
        record.add_relaxed("X", inv("NM", price="11", quantity=3))

        entries = record["X"]
        assert len(entries) == 1
        assert entries[0].quantity == 5
        assert entries[0].price == Decimal("10")

    def test_keep_first_quantity(self):
        record = InventoryRecord()
        record.add_relaxed("X", inv("NM", quantity=2), QuantityMerge.KEEP_FIRST)
        record.add_relaxed("X", inv("NM", quantity=3), QuantityMerge.KEEP_FIRST)
        assert record["X"][0].quantity == 2

    def test_unknown_quantities_stay_unknown(self):
        record = InventoryRecord()
        record.add_relaxed("X", inv("NM", quantity=None))
        record.add_relaxed("X", inv("NM", quantity=None))
        assert record["X"][0].quantity is None

    def test_different_vendor_is_a_new_entry(self):
        record = BuylistRecord()
        record.add_relaxed("X", buy(vendor="cash"))
        record.add_relaxed("X", buy(price="6", vendor="credit"))
        assert len(record["X"]) == 2


class TestUniqueAdd:
    """Tests for add_unique()."""

    def test_single_entry_per_identity(self):
        record = InventoryRecord()
        for conditions in ("NM", "SP", "MP"):
            record.add_unique("X", inv(conditions))

        assert len(record["X"]) == 1
        assert record["X"][0].conditions == "NM"

    def test_overwrite_keeps_latest(self):
        record = BuylistRecord()
        record.add_unique("X", buy(price="5"))
        record.add_unique("X", buy(price="7"), overwrite=True)

        assert len(record["X"]) == 1
        assert record["X"][0].buy_price == Decimal("7")


class TestValidation:
    """Tests shared by every merge operation."""

    @pytest.mark.parametrize("method", ["add", "add_strict", "add_relaxed", "add_unique"])
    def test_non_positive_price_rejected(self, method):
        record = InventoryRecord()
        with pytest.raises(InvalidEntryError):
            getattr(record, method)("X", inv(price="0"))
        assert "X" not in record

    @pytest.mark.parametrize("card_id", ["", "   "])
    def test_empty_identity_rejected(self, card_id):
        with pytest.raises(InvalidEntryError):
            InventoryRecord().add(card_id, inv())

    def test_negative_quantity_rejected(self):
        with pytest.raises(InvalidEntryError):
            InventoryRecord().add("X", inv(quantity=-1))

    def test_wrong_entry_type_rejected(self):
        with pytest.raises(InvalidEntryError):
            InventoryRecord().add("X", buy())


class TestRecordMapping:
    """Tests for the read-only mapping behaviour."""

    def test_entries_sorted_by_grade_then_price(self):
        record = InventoryRecord()
        record.add("X", inv("MP", price="5"))
        record.add("X", inv("NM", price="9", seller="b"))
        record.add("X", inv("NM", price="8", seller="a"))

        entries = record["X"]
        assert [(e.conditions, e.price) for e in entries] == [
            ("NM", Decimal("8")),
            ("NM", Decimal("9")),
            ("MP", Decimal("5")),
        ]

    def test_stored_entries_are_copies(self):
        record = InventoryRecord()
        entry = inv(quantity=1)
        record.add("X", entry)
        entry.quantity = 99
        assert record["X"][0].quantity == 1

    def test_looked_up_entries_are_copies(self):
        record = InventoryRecord()
        record.add("X", InventoryEntry(
            conditions="NM", price=Decimal("10"), custom_fields={"sku": "A-1"},
        ))
        record.freeze()

        looked_up = record["X"][0]
        looked_up.price = Decimal("-1")
        looked_up.custom_fields["sku"] = "changed"

        assert record["X"][0].price == Decimal("10")
        assert record["X"][0].custom_fields == {"sku": "A-1"}

    def test_getitem_returns_tuple(self):
        record = InventoryRecord()
        record.add("X", inv())
        assert isinstance(record["X"], tuple)

    def test_sizes(self):
        record = InventoryRecord()
        record.add("X", inv("NM"))
        record.add("X", inv("SP"))
        record.add("Y", inv("NM"))
        assert len(record) == 2
        assert record.total_entries() == 3

    def test_frozen_record_rejects_adds(self):
        record = InventoryRecord()
        record.add("X", inv())
        assert record.freeze() is record

        with pytest.raises(RecordFrozenError):
            record.add("Y", inv())
        assert record.frozen
        assert "Y" not in record
