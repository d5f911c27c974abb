"""
Tests for card matching.
"""
import json

import pytest

from cardprices.services.ingestion.matcher import (
    AmbiguousError,
    CardIndex,
    CardNotFoundError,
    InputCard,
    UnsupportedError,
    normalize,
    report_match_error,
    split_variants,
)


class TestNormalize:
    """Tests for name folding helpers."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Lightning Bolt", "lightning bolt"),
            ("Æther Vial", "aether vial"),
            ("Jace, the Mind Sculptor", "jace the mind sculptor"),
            ("Lim-Dûl's Vault", "limduls vault"),
            ("  Sol   Ring ", "sol ring"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize(raw) == expected

    def test_split_variants(self):
        assert split_variants("Forest (294) (Unlimited)") == ["Forest", "294", "Unlimited"]
        assert split_variants("Forest") == ["Forest"]


class TestCardIndex:
    """Tests for CardIndex.match() and friends."""

    def test_exact_match(self, card_index):
        assert card_index.match(InputCard(name="Lightning Bolt", edition="Magic 2010")) == "c1"

    def test_name_only(self, card_index):
        assert card_index.match(InputCard(name="counterspell")) == "c2"

    def test_foil_and_etched_suffixes(self, card_index):
        assert card_index.match(InputCard(name="Lightning Bolt", foil=True)) == "c1_f"
        assert card_index.match(InputCard(name="Sol Ring", etched=True)) == "c6_e"

    def test_missing_finish(self, card_index):
        with pytest.raises(CardNotFoundError):
            card_index.match(InputCard(name="Counterspell", foil=True))

    def test_accented_name(self, card_index):
        assert card_index.match(InputCard(name="Aether Vial")) == "c7"

    def test_ambiguous_lists_candidates(self, card_index):
        with pytest.raises(AmbiguousError) as exc_info:
            card_index.match(InputCard(name="Forest", edition="Unlimited"))
        assert set(exc_info.value.candidates) == {"c4", "c5"}

    def test_number_disambiguates(self, card_index):
        card = InputCard(name="Forest", edition="Unlimited", variation="295")
        assert card_index.match(card) == "c5"

    def test_unknown_card(self, card_index):
        with pytest.raises(CardNotFoundError):
            card_index.match(InputCard(name="Nonexistent Card"))

    def test_unknown_edition(self, card_index):
        with pytest.raises(CardNotFoundError):
            card_index.match(InputCard(name="Lightning Bolt", edition="Alpha"))

    @pytest.mark.parametrize(
        "card",
        [
            InputCard(name="Lightning Bolt", language="Japanese"),
            InputCard(name="Lightning Bolt", edition="Magic 2010 Art Series"),
            InputCard(name="Black Lotus", edition="Collectors' Edition"),
        ],
    )
    def test_unsupported(self, card_index, card):
        with pytest.raises(UnsupportedError):
            card_index.match(card)

    def test_match_id(self, card_index):
        assert card_index.match_id("sf-bolt", foil=True) == "c1_f"
        with pytest.raises(CardNotFoundError):
            card_index.match_id("sf-missing")

    def test_describe(self, card_index):
        assert card_index.describe("c1") == "Lightning Bolt [Magic 2010] #146"
        assert card_index.describe("c1_f") == "Lightning Bolt [Magic 2010] #146 foil"
        assert card_index.describe("c6_e").endswith("etched")

    def test_from_json(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"data": [{"id": "x1", "name": "Opt", "edition": "Ixalan"}]}))

        index = CardIndex.from_json(path)

        assert len(index) == 1
        assert index.match(InputCard(name="Opt")) == "x1"


class TestReportMatchError:
    """Tests for the shared match error logging policy."""

    def test_unsupported_is_silent(self, log_collector):
        report_match_error(log_collector, UnsupportedError("token"), InputCard(name="Goblin"))
        assert log_collector.lines == []

    def test_not_found_logs_card_and_context(self, log_collector):
        card = InputCard(name="Nonexistent Card", edition="Alpha")
        report_match_error(log_collector, CardNotFoundError("card not found"), card, "row 12")

        assert log_collector.lines == [
            "card not found",
            "Nonexistent Card [Alpha]",
            "row 12",
        ]

    def test_ambiguous_lists_described_candidates(self, card_index, log_collector):
        err = AmbiguousError("aliasing detected", ["c4", "missing"])
        report_match_error(log_collector, err, InputCard(name="Forest"), describe=card_index.describe)

        assert "- Forest [Unlimited] #294" in log_collector.lines
        assert "- missing" in log_collector.lines
