import pytest

from src.common.term_mapper import (
    UNKNOWN_NATIONALITY,
    TermMapper,
    map_nationality,
    map_position,
    normalize_text,
)


def test_default_position_mapper_accepts_api_values():
    mapper = TermMapper.default_position_mapper()
    for term in ["Goalkeeper", "Defender", "Midfielder", "Attacker"]:
        assert mapper.lookup(term) == term
    # normalisation is case-insensitive
    assert mapper.lookup("  goalkeeper ") == "Goalkeeper"


def test_map_position_most_common_wins():
    assert map_position(["Midfielder", "Attacker", "Midfielder"]) == "Midfielder"
    assert map_position([None, "Defender"]) == "Defender"


def test_map_position_tie_resolves_to_first_seen():
    assert map_position(["Attacker", "Defender"]) == "Attacker"


def test_unknown_position_returns_none():
    assert map_position([]) is None
    assert map_position([None, None]) is None
    assert map_position(["Unknown"]) is None


@pytest.mark.parametrize(
    "country,code",
    [
        ("England", "ENG"),
        ("Germany", "GER"),
        ("Spain", "ESP"),
        ("France", "FRA"),
        ("Brazil", "BRA"),
        ("United States", "USA"),
        ("USA", "USA"),
    ],
)
def test_map_nationality_known_countries(country, code):
    assert map_nationality(country) == code


def test_map_nationality_fallbacks():
    assert map_nationality("Testland") == "TES"
    assert map_nationality("Unknown") == UNKNOWN_NATIONALITY
    assert map_nationality(None) == UNKNOWN_NATIONALITY
    assert map_nationality("") == UNKNOWN_NATIONALITY
    assert map_nationality("Ab") == UNKNOWN_NATIONALITY


def test_normalize_text_strips_accents_and_punctuation():
    assert normalize_text("Côte d'Ivoire") == "cote d'ivoire"
    assert normalize_text("Bosnia-Herzegovina") == "bosnia herzegovina"


def test_runtime_registration():
    mapper = TermMapper.from_pairs({"Deutschland": "GER"}, label="test")
    mapper.register("AUT", "Österreich")
    assert mapper.lookup("deutschland") == "GER"
    assert mapper.lookup("Osterreich") == "AUT"
    assert mapper.lookup("AUT") == "AUT"
