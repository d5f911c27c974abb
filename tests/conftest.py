"""
Pytest configuration and fixtures.

Provides fixtures for:
- A small in-memory card catalogue
- A log collector standing in for a scraper LogCallback
"""
import pytest

from cardprices.services.ingestion.matcher import CardIndex

CARD_RECORDS = [
    {
        "id": "c1",
        "name": "Lightning Bolt",
        "edition": "Magic 2010",
        "number": "146",
        "finishes": ["nonfoil", "foil"],
        "scryfall_id": "sf-bolt",
    },
    {"id": "c2", "name": "Counterspell", "edition": "Ice Age", "number": "64"},
    {"id": "c3", "name": "Black Lotus", "edition": "Alpha", "number": "232"},
    {"id": "c4", "name": "Forest", "edition": "Unlimited", "number": "294"},
    {"id": "c5", "name": "Forest", "edition": "Unlimited", "number": "295"},
    {
        "id": "c6",
        "name": "Sol Ring",
        "edition": "Commander Legends",
        "number": "472",
        "finishes": ["nonfoil", "foil", "etched"],
    },
    {"id": "c7", "name": "Æther Vial", "edition": "Darksteel", "number": "91"},
]


class LogCollector:
    """Records printf-style log lines."""

    def __init__(self):
        self.lines: list[str] = []

    def __call__(self, fmt: str, *args) -> None:
        self.lines.append(fmt % args if args else fmt)

    def contains(self, text: str) -> bool:
        return any(text in line for line in self.lines)


@pytest.fixture
def card_index() -> CardIndex:
    """Catalogue with a handful of printings, including an ambiguous pair."""
    return CardIndex.from_records(CARD_RECORDS)


@pytest.fixture
def log_collector() -> LogCollector:
    return LogCollector()
