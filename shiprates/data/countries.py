from __future__ import annotations

import json

from ..config import settings

# ISO alpha-2 -> country name for the destinations carriers publish rates for.
_BUILTIN: dict[str, str] = {
    # Origin and neighbours
    "TR": "Turkey",
    "AZ": "Azerbaijan",
    "GE": "Georgia",
    "IL": "Israel",
    "IQ": "Iraq",

    # Europe
    "AT": "Austria",
    "BE": "Belgium",
    "BG": "Bulgaria",
    "HR": "Croatia",
    "CY": "Cyprus",
    "CZ": "Czechia",
    "DE": "Germany",
    "DK": "Denmark",
    "EE": "Estonia",
    "ES": "Spain",
    "FI": "Finland",
    "FR": "France",
    "GR": "Greece",
    "HU": "Hungary",
    "IE": "Ireland",
    "IT": "Italy",
    "LT": "Lithuania",
    "LU": "Luxembourg",
    "LV": "Latvia",
    "MT": "Malta",
    "NL": "Netherlands",
    "PL": "Poland",
    "PT": "Portugal",
    "RO": "Romania",
    "SE": "Sweden",
    "SI": "Slovenia",
    "SK": "Slovakia",
    "NO": "Norway",
    "IS": "Iceland",
    "CH": "Switzerland",
    "GB": "United Kingdom",
    "UA": "Ukraine",
    "RS": "Serbia",

    # Americas
    "US": "United States",
    "CA": "Canada",
    "MX": "Mexico",
    "BR": "Brazil",
    "AR": "Argentina",
    "CL": "Chile",
    "CO": "Colombia",
    "PE": "Peru",

    # Asia
    "CN": "China",
    "JP": "Japan",
    "KR": "South Korea",
    "TW": "Taiwan",
    "HK": "Hong Kong",
    "SG": "Singapore",
    "MY": "Malaysia",
    "TH": "Thailand",
    "VN": "Vietnam",
    "PH": "Philippines",
    "ID": "Indonesia",
    "IN": "India",
    "PK": "Pakistan",
    "KZ": "Kazakhstan",

    # Middle East
    "AE": "United Arab Emirates",
    "SA": "Saudi Arabia",
    "QA": "Qatar",
    "KW": "Kuwait",
    "BH": "Bahrain",
    "OM": "Oman",
    "JO": "Jordan",

    # Africa
    "ZA": "South Africa",
    "EG": "Egypt",
    "MA": "Morocco",
    "NG": "Nigeria",
    "KE": "Kenya",

    # Oceania
    "AU": "Australia",
    "NZ": "New Zealand",
}

# Spellings the scraper emits that are not the canonical English name
_ALIASES: dict[str, str] = {
    "USA": "US",
    "UNITED STATES OF AMERICA": "US",
    "UK": "GB",
    "GREAT BRITAIN": "GB",
    "ENGLAND": "GB",
    "TURKIYE": "TR",
    "TÜRKIYE": "TR",
    "UAE": "AE",
    "KOREA": "KR",
    "CZECH REPUBLIC": "CZ",
    "HOLLAND": "NL",
}

_JSON_PATH = settings.data_dir / "country_names.json"
_EXTRA: dict[str, str] = {}
if _JSON_PATH.exists():
    _EXTRA = json.loads(_JSON_PATH.read_text(encoding="utf-8")) or {}


def get_country_name(iso2: str) -> str | None:
    iso2 = (iso2 or "").upper()
    return _EXTRA.get(iso2) or _BUILTIN.get(iso2)


def normalize_country_code(value: str | None) -> str | None:
    """Return the ISO alpha-2 code for a code or country name, or None.

    Any two-letter alphabetic input is accepted as a code even when it has no
    known name, so new destinations do not need a table update.
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    upper = s.upper()
    if len(upper) == 2 and upper.isalpha():
        return upper
    if upper in _ALIASES:
        return _ALIASES[upper]
    for code, name in list(_EXTRA.items()) + list(_BUILTIN.items()):
        if name.upper() == upper:
            return code.upper()
    return None
