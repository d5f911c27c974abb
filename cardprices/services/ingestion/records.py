"""
Inventory and buylist records.

A record maps a canonical card identity to the offers one vendor makes for
it. Records are filled by a single writer (the pipeline aggregator) during
one scrape pass and frozen once the pass completes.

Four merge operations are available, chosen per call site according to
what the source is known to guarantee:

    add           duplicate (condition, seller) rejected; buylists tolerate
                  a re-observation that only adds a price ratio
    add_strict    duplicate condition rejected, whoever the seller is
    add_relaxed   duplicate (condition, seller) merged in place
    add_unique    one entry per card identity, condition ignored
"""
import bisect
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar

from cardprices.core.constants import grade_rank


class RecordError(Exception):
    """Base class for entries rejected by a record."""


class InvalidEntryError(RecordError):
    """Raised when an entry or card identity is structurally invalid."""


class RecordFrozenError(RecordError):
    """Raised when adding to a record after its scrape pass completed."""


class DuplicateEntryError(RecordError):
    """Raised when a merge policy rejects an entry colliding with a stored one."""

    def __init__(self, card_id: str, key: tuple[str, ...], new: object, existing: object):
        self.card_id = card_id
        self.key = key
        self.new = new
        self.existing = existing
        super().__init__(
            f"Attempted to add a duplicate entry for {card_id} {key}:\n"
            f"-new: {new!r}\n-old: {existing!r}"
        )


class QuantityMerge(str, Enum):
    """How add_relaxed combines the quantities of colliding entries."""
    SUM = "sum"
    KEEP_FIRST = "keep_first"


@dataclass
class InventoryEntry:
    """An offer to sell a card."""
    conditions: str
    price: Decimal

    # None for sources that do not publish stock levels
    quantity: int | None = None
    url: str = ""

    # Marketplaces only
    seller_name: str = ""

    # Source-specific correlation keys
    original_id: str = ""
    instance_id: str = ""
    custom_fields: dict[str, str] = field(default_factory=dict)

    @property
    def merge_key(self) -> tuple[str, str]:
        return (self.conditions, self.seller_name)


@dataclass
class BuylistEntry:
    """An offer to buy a card."""
    conditions: str
    buy_price: Decimal
    trade_price: Decimal | None = None

    # Buy price as a percentage of the vendor's own sell price
    price_ratio: float | None = None
    quantity: int | None = None
    url: str = ""
    vendor_name: str = ""

    original_id: str = ""
    instance_id: str = ""
    custom_fields: dict[str, str] = field(default_factory=dict)

    @property
    def price(self) -> Decimal:
        return self.buy_price

    @property
    def merge_key(self) -> tuple[str, str]:
        return (self.conditions, self.vendor_name)


E = TypeVar("E", InventoryEntry, BuylistEntry)


def _sort_key(entry: InventoryEntry | BuylistEntry) -> tuple[int, Decimal]:
    return (grade_rank(entry.conditions), entry.price)


def _copy(entry: E) -> E:
    return replace(entry, custom_fields=dict(entry.custom_fields))


def _sum_quantities(first: int | None, second: int | None) -> int | None:
    if first is None and second is None:
        return None
    return (first or 0) + (second or 0)


class Record(Mapping[str, tuple[E, ...]], Generic[E]):
    """
    Read-only mapping from card identity to entries, plus merge operations.

    Entries of one identity are kept ordered by grade, then price, so the
    final content does not depend on the order offers arrived in. Entries
    are copied on the way in and on the way out, so neither the caller's
    entry nor a looked-up one aliases the stored state.
    """

    entry_type: type = object

    def __init__(self):
        self._entries: dict[str, list[E]] = {}
        self._frozen = False

    def __getitem__(self, card_id: str) -> tuple[E, ...]:
        return tuple(_copy(entry) for entry in self._entries[card_id])

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"<{type(self).__name__} cards={len(self)} entries={self.total_entries()} {state}>"

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "Record[E]":
        """Make the record read-only. Returns the record itself."""
        self._frozen = True
        return self

    def total_entries(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def add(self, card_id: str, entry: E) -> None:
        """
        Plain-Add: reject an entry whose (condition, seller) is already present.

        Raises:
            DuplicateEntryError: Naming the colliding key.
            InvalidEntryError: On invalid identity or entry.
        """
        self._validate(card_id, entry)
        existing = self._find(card_id, lambda stored: stored.merge_key == entry.merge_key)
        if existing is not None:
            if self._tolerate(existing, entry):
                return
            raise DuplicateEntryError(card_id, entry.merge_key, entry, existing)
        self._insert(card_id, entry)

    def add_strict(self, card_id: str, entry: E) -> None:
        """
        Strict-Add: the source emits each card and condition at most once.

        Raises:
            DuplicateEntryError: If the condition is already present.
            InvalidEntryError: On invalid identity or entry.
        """
        self._validate(card_id, entry)
        existing = self._find(card_id, lambda stored: stored.conditions == entry.conditions)
        if existing is not None:
            raise DuplicateEntryError(card_id, (entry.conditions,), entry, existing)
        self._insert(card_id, entry)

    def add_relaxed(
        self,
        card_id: str,
        entry: E,
        quantity_merge: QuantityMerge = QuantityMerge.SUM,
    ) -> None:
        """
        Relaxed-Add: merge re-observed offers instead of failing.

        A colliding (condition, seller) entry keeps its first-seen price and
        url; quantities are combined according to quantity_merge.

        Raises:
            InvalidEntryError: On invalid identity or entry.
        """
        self._validate(card_id, entry)
        existing = self._find(card_id, lambda stored: stored.merge_key == entry.merge_key)
        if existing is None:
            self._insert(card_id, entry)
            return
        if quantity_merge == QuantityMerge.SUM:
            existing.quantity = _sum_quantities(existing.quantity, entry.quantity)

    def add_unique(self, card_id: str, entry: E, overwrite: bool = False) -> None:
        """
        Unique-Add: keep a single entry per card identity.

        The first write wins unless overwrite is set, in which case the
        latest write replaces whatever was stored.

        Raises:
            InvalidEntryError: On invalid identity or entry.
        """
        self._validate(card_id, entry)
        if card_id in self._entries:
            if overwrite:
                self._entries[card_id] = [_copy(entry)]
            return
        self._insert(card_id, entry)

    def _tolerate(self, existing: E, entry: E) -> bool:
        return False

    def _validate(self, card_id: str, entry: E) -> None:
        if self._frozen:
            raise RecordFrozenError(f"{type(self).__name__} is frozen, cannot add {card_id}")
        if not isinstance(card_id, str) or not card_id.strip():
            raise InvalidEntryError(f"Invalid card identity: {card_id!r}")
        if not isinstance(entry, self.entry_type):
            raise InvalidEntryError(
                f"{type(self).__name__} only accepts {self.entry_type.__name__}, got {type(entry).__name__}"
            )
        if entry.price is None or entry.price <= 0:
            raise InvalidEntryError(f"Invalid price {entry.price} for {card_id}")
        if entry.quantity is not None and entry.quantity < 0:
            raise InvalidEntryError(f"Invalid quantity {entry.quantity} for {card_id}")

    def _find(self, card_id: str, match: Callable[[E], bool]) -> E | None:
        for stored in self._entries.get(card_id, ()):
            if match(stored):
                return stored
        return None

    def _insert(self, card_id: str, entry: E) -> None:
        entries = self._entries.setdefault(card_id, [])
        bisect.insort_right(entries, _copy(entry), key=_sort_key)


class InventoryRecord(Record[InventoryEntry]):
    """Card identity to sell offers."""

    entry_type = InventoryEntry


class BuylistRecord(Record[BuylistEntry]):
    """Card identity to buy offers."""

    entry_type = BuylistEntry

    def _tolerate(self, existing: BuylistEntry, entry: BuylistEntry) -> bool:
        # Same offer seen again, possibly now with a ratio against the sell price
        if existing.buy_price != entry.buy_price or existing.trade_price != entry.trade_price:
            return False
        if existing.price_ratio is None and entry.price_ratio is not None:
            existing.price_ratio = entry.price_ratio
        return True
