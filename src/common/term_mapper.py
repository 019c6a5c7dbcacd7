"""Generic term mapping utilities.

`TermMapper` centralises synonym -> canonical value mappings used when
normalising API-Football player data:

 - Normalise input (case-fold, strip accents, collapse whitespace, remove punctuation)
 - O(1) lookup via a pre-built dictionary of normalised synonyms
 - Runtime extension (register / bulk update) without breaking existing mappings

Two default mappers are provided: broad playing positions (the four values the
API reports in ``statistics[].games.position``) and country name -> three-letter
nationality code.
"""

from __future__ import annotations

import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r"[\.,;:_/\\()+\-\[\]{}]+")

UNKNOWN_NATIONALITY = "UNK"


def _strip_accents(value: str) -> str:
    """Return *value* with accents removed (NFKD decomposition -> drop marks)."""
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def _base_normalize(value: str) -> str:
    """Lowercase, trim, strip accents, punctuation -> space, collapse whitespace."""
    v = value.lower().strip()
    v = _strip_accents(v)
    v = _PUNCT_RE.sub(" ", v)
    v = _WHITESPACE_RE.sub(" ", v).strip()
    return v


@dataclass
class TermMapper:
    """Generic normalising synonym mapper.

    Attributes
    -----------
    mappings: Dict[str, str]
        Normalised synonym -> canonical value.
    label: str
        Domain label (e.g. "positions") for easier debugging.
    """

    mappings: Dict[str, str] = field(default_factory=dict)
    label: str = ""

    @classmethod
    def from_groups(cls, groups: Mapping[str, Iterable[str]], label: str = "") -> "TermMapper":
        """Create a TermMapper from canonical -> iterable of synonyms."""
        inst = cls(label=label)
        inst.register_groups(groups)
        return inst

    @classmethod
    def from_pairs(cls, pairs: Mapping[str, str], label: str = "") -> "TermMapper":
        """Create a TermMapper from synonym -> canonical (one synonym per entry)."""
        inst = cls(label=label)
        for synonym, canonical in pairs.items():
            norm = _base_normalize(synonym)
            if norm:
                inst.mappings[norm] = canonical
        return inst

    def register(self, canonical: str, *synonyms: str) -> None:
        """Register synonyms for a canonical value (the canonical itself included)."""
        for term in list(synonyms) + [canonical]:
            norm = _base_normalize(term)
            if not norm:
                continue
            self.mappings[norm] = canonical

    def register_groups(self, groups: Mapping[str, Iterable[str]]) -> None:
        for canonical, syns in groups.items():
            self.register(canonical, *list(syns))

    def lookup(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return self.mappings.get(_base_normalize(value))

    def __contains__(self, value: str) -> bool:  # pragma: no cover - small convenience
        return self.lookup(value) is not None

    _DEFAULT_POSITION_INSTANCE: Optional["TermMapper"] = None  # type: ignore
    _DEFAULT_NATIONALITY_INSTANCE: Optional["TermMapper"] = None  # type: ignore

    @classmethod
    def default_position_mapper(cls) -> "TermMapper":
        """Broad playing positions as reported by API-Football.

        Only the four exact API values are mapped; anything else (e.g.
        "Unknown") is treated as missing.
        """
        if cls._DEFAULT_POSITION_INSTANCE is None:
            groups = {
                "Goalkeeper": [],
                "Defender": [],
                "Midfielder": [],
                "Attacker": [],
            }
            cls._DEFAULT_POSITION_INSTANCE = cls.from_groups(groups, label="positions")
        return cls._DEFAULT_POSITION_INSTANCE

    @classmethod
    def default_nationality_mapper(cls) -> "TermMapper":
        """Country name -> three-letter code (FIFA style for the home nations)."""
        if cls._DEFAULT_NATIONALITY_INSTANCE is None:
            cls._DEFAULT_NATIONALITY_INSTANCE = cls.from_pairs(
                _NATIONALITY_CODES, label="nationalities"
            )
        return cls._DEFAULT_NATIONALITY_INSTANCE


def normalize_text(value: str) -> str:
    """Public wrapper for consistent normalisation across modules."""
    return _base_normalize(value)


def map_position(positions: Iterable[Optional[str]]) -> Optional[str]:
    """Most frequent known position among *positions*, or None.

    Ties resolve to the position seen first.
    """
    present = [p for p in positions if p]
    if not present:
        return None
    most_common, _ = Counter(present).most_common(1)[0]
    return TermMapper.default_position_mapper().lookup(most_common)


def map_nationality(value: Optional[str]) -> str:
    """Map a country name to its three-letter code.

    Unknown names fall back to their first three letters upper-cased; names
    shorter than three characters (or missing) become ``UNK``.
    """
    if not value:
        return UNKNOWN_NATIONALITY
    mapped = TermMapper.default_nationality_mapper().lookup(value)
    if mapped:
        return mapped
    fallback = value.strip()[:3].upper()
    return fallback if len(fallback) == 3 else UNKNOWN_NATIONALITY


_NATIONALITY_CODES: Dict[str, str] = {
    "England": "ENG", "Spain": "ESP", "France": "FRA", "Germany": "GER",
    "Italy": "ITA", "Brazil": "BRA", "Argentina": "ARG", "Portugal": "POR",
    "Netherlands": "NED", "Belgium": "BEL", "Croatia": "HRV", "Denmark": "DNK",
    "Finland": "FIN", "Norway": "NOR", "Sweden": "SWE", "Switzerland": "CHE",
    "Austria": "AUT", "Poland": "POL", "Czech Republic": "CZE", "Hungary": "HUN",
    "Romania": "ROU", "Serbia": "SRB", "Greece": "GRC", "Turkey": "TUR",
    "Russia": "RUS", "Ukraine": "UKR", "Wales": "WLS", "Scotland": "SCO",
    "Northern Ireland": "NIR", "Republic of Ireland": "IRL", "United States": "USA",
    "USA": "USA", "Canada": "CAN", "Mexico": "MEX", "Uruguay": "URY", "Chile": "CHL",
    "Colombia": "COL", "Peru": "PER", "Ecuador": "ECU", "Venezuela": "VEN",
    "Bolivia": "BOL", "Paraguay": "PRY", "Japan": "JPN", "South Korea": "KOR",
    "Korea Republic": "KOR", "China": "CHN", "Australia": "AUS", "New Zealand": "NZL",
    "South Africa": "ZAF", "Morocco": "MAR", "Egypt": "EGY", "Nigeria": "NGA",
    "Ghana": "GHA", "Ivory Coast": "CIV", "Côte d'Ivoire": "CIV", "Senegal": "SEN",
    "Cameroon": "CMR", "Algeria": "DZA", "Tunisia": "TUN", "Gambia": "GMB",
    "Guinea": "GIN", "Mali": "MLI", "Burkina Faso": "BFA", "Niger": "NER",
    "Benin": "BEN", "Togo": "TGO", "Sierra Leone": "SLE", "Liberia": "LBR",
    "Guinea-Bissau": "GNB", "Cape Verde": "CPV", "São Tomé and Príncipe": "STP",
    "Equatorial Guinea": "GNQ", "Gabon": "GAB", "Congo": "COG", "DR Congo": "COD",
    "Central African Republic": "CAF", "Chad": "TCD", "Sudan": "SDN",
    "South Sudan": "SSD", "Eritrea": "ERI", "Djibouti": "DJI", "Somalia": "SOM",
    "Ethiopia": "ETH", "Kenya": "KEN", "Uganda": "UGA", "Rwanda": "RWA",
    "Burundi": "BDI", "Tanzania": "TZA", "Zambia": "ZMB", "Malawi": "MWI",
    "Mozambique": "MOZ", "Zimbabwe": "ZWE", "Botswana": "BWA", "Namibia": "NAM",
    "Lesotho": "LSO", "Eswatini": "SWZ", "Madagascar": "MDG", "Mauritius": "MUS",
    "Seychelles": "SYC", "Comoros": "COM", "Mauritania": "MRT", "Israel": "ISR",
    "Jordan": "JOR", "Lebanon": "LBN", "Syria": "SYR", "Iraq": "IRQ", "Iran": "IRN",
    "Afghanistan": "AFG", "Pakistan": "PAK", "India": "IND", "Bangladesh": "BGD",
    "Sri Lanka": "LKA", "Myanmar": "MMR", "Thailand": "THA", "Vietnam": "VNM",
    "Cambodia": "KHM", "Laos": "LAO", "Malaysia": "MYS", "Singapore": "SGP",
    "Indonesia": "IDN", "Philippines": "PHL", "Costa Rica": "CRI", "Panama": "PAN",
    "Nicaragua": "NIC", "Honduras": "HND", "El Salvador": "SLV", "Guatemala": "GTM",
    "Cuba": "CUB", "Jamaica": "JAM", "Haiti": "HTI", "Dominican Republic": "DOM",
    "Trinidad and Tobago": "TTO", "Albania": "ALB", "Bosnia and Herzegovina": "BIH",
    "Slovakia": "SVK", "Slovenia": "SVN", "Bulgaria": "BGR", "Georgia": "GEO",
    "Iceland": "ISL", "Kosovo": "KVX", "Montenegro": "MNE", "North Macedonia": "MKD",
}


__all__ = [
    "TermMapper",
    "UNKNOWN_NATIONALITY",
    "map_nationality",
    "map_position",
    "normalize_text",
]
