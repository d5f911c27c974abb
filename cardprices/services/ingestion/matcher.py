"""
Card matching.

Scrapers hand free-text vendor fields to a matcher and get back an opaque
card identity, or one of the typed failures below:

    UnsupportedError    the product is out of scope, skip quietly
    AmbiguousError      several printings fit, candidates attached
    CardNotFoundError   nothing fits

CardIndex is a small matcher backed by a JSON dump of the card catalogue.
"""
import json
import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

import structlog

from cardprices.core.config import settings

logger = structlog.get_logger()

FOIL_SUFFIX = "_f"
ETCHED_SUFFIX = "_e"

SUPPORTED_LANGUAGES = {"english", "en", ""}

UNSUPPORTED_EDITION_MARKERS = (
    "art series",
    "oversized",
    "token",
    "world championship",
    "collectors edition",
)


class MatchError(Exception):
    """Base class for matcher failures."""


class UnsupportedError(MatchError):
    """The product is not something the catalogue tracks."""


class CardNotFoundError(MatchError):
    """No printing matches the given fields."""


class AmbiguousError(MatchError):
    """More than one printing matches; candidates lists their identities."""

    def __init__(self, message: str, candidates: Iterable[str]):
        super().__init__(message)
        self.candidates = tuple(candidates)


@dataclass
class InputCard:
    """Vendor fields describing one card, before matching."""
    name: str
    edition: str = ""
    variation: str = ""
    foil: bool = False
    etched: bool = False
    language: str = ""

    def __str__(self) -> str:
        parts = [self.name]
        if self.variation:
            parts.append(f"({self.variation})")
        if self.edition:
            parts.append(f"[{self.edition}]")
        if self.etched:
            parts.append("etched")
        elif self.foil:
            parts.append("foil")
        return " ".join(parts)


class CardMatcher(Protocol):
    """What scrapers need from a matcher."""

    def match(self, card: InputCard) -> str:
        ...

    def describe(self, card_id: str) -> str:
        ...


_REPLACEMENTS = (
    ("AEther", "Aether"),
    ("Æther", "Aether"),
    (" s ", "s "),
)
_STRIP = re.compile(r"[\"'’“”,:~®\-]")


def normalize(value: str) -> str:
    """
    Fold a card name or edition to a comparable form.

    Drops quotes and punctuation, strips accents and unifies the
    various spellings of Aether.
    """
    for old, new in _REPLACEMENTS:
        value = value.replace(old, new)
    value = _STRIP.sub("", value)
    value = unicodedata.normalize("NFKD", value)
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    return " ".join(value.split()).lower()


def split_variants(value: str) -> list[str]:
    """
    Split "Name (Variant) (Other)" into ["Name", "Variant", "Other"].
    """
    fields = value.split(" (")
    result = []
    for item in fields:
        pos = item.find(")")
        if pos > 0:
            item = item[:pos]
        result.append(item)
    return result


def extract_number(value: str) -> str:
    """Return the first collector-number-looking token, or an empty string."""
    match = re.search(r"\b(\d+[a-z★]?)\b", value, re.IGNORECASE)
    return match.group(1).lower() if match else ""


@dataclass
class IndexedCard:
    """One printing in the catalogue."""
    id: str
    name: str
    edition: str
    number: str = ""
    finishes: tuple[str, ...] = ("nonfoil",)
    scryfall_id: str = ""

    def __str__(self) -> str:
        return f"{self.name} [{self.edition}] #{self.number}"


class CardIndex:
    """
    Matcher over an in-memory card catalogue.

    Identities are the printing id, suffixed with _f for foil and _e for
    etched finishes.

    Usage:
        index = CardIndex.from_json("data/card_index.json")
        card_id = index.match(InputCard(name="Lightning Bolt", edition="Magic 2010"))
    """

    def __init__(self, cards: Iterable[IndexedCard]):
        self._by_id: dict[str, IndexedCard] = {}
        self._by_name: dict[str, list[IndexedCard]] = {}
        self._by_scryfall: dict[str, IndexedCard] = {}
        for card in cards:
            self._by_id[card.id] = card
            self._by_name.setdefault(normalize(card.name), []).append(card)
            if card.scryfall_id:
                self._by_scryfall[card.scryfall_id] = card

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]]) -> "CardIndex":
        cards = []
        for record in records:
            cards.append(IndexedCard(
                id=str(record["id"]),
                name=record["name"],
                edition=record.get("edition", ""),
                number=str(record.get("number", "")),
                finishes=tuple(record.get("finishes") or ("nonfoil",)),
                scryfall_id=record.get("scryfall_id", ""),
            ))
        return cls(cards)

    @classmethod
    def from_json(cls, path: str | Path) -> "CardIndex":
        """Load a catalogue from a JSON list (or {"data": [...]})."""
        with open(path, encoding="utf-8") as fp:
            payload = json.load(fp)
        if isinstance(payload, dict):
            payload = payload.get("data", [])
        index = cls.from_records(payload)
        logger.info("Card index loaded", path=str(path), cards=len(index))
        return index

    def __len__(self) -> int:
        return len(self._by_id)

    def match(self, card: InputCard) -> str:
        """
        Resolve vendor fields to a card identity.

        Raises:
            UnsupportedError: Non-English cards and out-of-scope editions.
            AmbiguousError: Several printings remain after filtering.
            CardNotFoundError: Nothing matches.
        """
        if normalize(card.language) not in SUPPORTED_LANGUAGES:
            raise UnsupportedError(f"unsupported language {card.language!r}")
        edition = normalize(card.edition)
        if any(marker in edition for marker in UNSUPPORTED_EDITION_MARKERS):
            raise UnsupportedError(f"unsupported edition {card.edition!r}")

        candidates = self._by_name.get(normalize(card.name), [])
        if not candidates:
            raise CardNotFoundError(f"card not found: {card}")

        if edition:
            candidates = [c for c in candidates if normalize(c.edition) == edition]
            if not candidates:
                raise CardNotFoundError(f"edition not found: {card}")

        number = extract_number(card.variation)
        if number and len(candidates) > 1:
            numbered = [c for c in candidates if c.number.lower() == number]
            if numbered:
                candidates = numbered

        finish = "etched" if card.etched else "foil" if card.foil else "nonfoil"
        candidates = [c for c in candidates if finish in c.finishes]
        if not candidates:
            raise CardNotFoundError(f"no {finish} printing for {card}")

        if len(candidates) > 1:
            ids = [self._identity(c, card.foil, card.etched) for c in candidates]
            raise AmbiguousError(f"aliasing detected for {card}", ids)

        return self._identity(candidates[0], card.foil, card.etched)

    def match_id(self, scryfall_id: str, foil: bool = False, etched: bool = False) -> str:
        """Resolve an external (Scryfall) id directly."""
        card = self._by_scryfall.get(scryfall_id)
        if card is None:
            raise CardNotFoundError(f"unknown scryfall id {scryfall_id!r}")
        finish = "etched" if etched else "foil" if foil else "nonfoil"
        if finish not in card.finishes:
            raise CardNotFoundError(f"no {finish} printing for {card}")
        return self._identity(card, foil, etched)

    def lookup(self, card_id: str) -> IndexedCard:
        base = card_id.removesuffix(FOIL_SUFFIX).removesuffix(ETCHED_SUFFIX)
        return self._by_id[base]

    def describe(self, card_id: str) -> str:
        card = self.lookup(card_id)
        if card_id.endswith(ETCHED_SUFFIX):
            return f"{card} etched"
        if card_id.endswith(FOIL_SUFFIX):
            return f"{card} foil"
        return str(card)

    @staticmethod
    def _identity(card: IndexedCard, foil: bool, etched: bool) -> str:
        if etched:
            return card.id + ETCHED_SUFFIX
        if foil:
            return card.id + FOIL_SUFFIX
        return card.id


def report_match_error(
    printf: Callable[..., None],
    err: MatchError,
    card: InputCard,
    *context: Any,
    describe: Callable[[str], str] | None = None,
) -> None:
    """
    Log a match failure the way every scraper does.

    Unsupported products are expected and stay silent. Other failures log
    the error, the input card and any extra context; ambiguous matches also
    list their candidates.
    """
    if isinstance(err, UnsupportedError):
        return
    printf("%s", err)
    printf("%s", card)
    for item in context:
        printf("%s", item)
    if isinstance(err, AmbiguousError):
        for candidate in err.candidates:
            try:
                label = describe(candidate) if describe else candidate
            except Exception:
                label = candidate
            printf("- %s", label)


@lru_cache()
def default_matcher() -> CardIndex:
    """Catalogue configured in settings, loaded once per process."""
    return CardIndex.from_json(settings.card_index_path)
