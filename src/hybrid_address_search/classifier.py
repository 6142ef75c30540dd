"""
Input classification for free-text address queries.

Assigns exactly one `InputCategory` to every trimmed query and extracts
the embedded postal code, if any.
"""

import re
from typing import Iterable, Optional

from .config import DEFAULT_REGION_RANGES, PostalRange
from .models import Classification, InputCategory, Query
from .normalizers import extract_postal_code

_LETTERS = "a-zA-ZäöüÄÖÜß"

_RE_POSTAL_ONLY = re.compile(r"\d{5}", re.ASCII)
_RE_DIGIT = re.compile(r"\d", re.ASCII)
_RE_LETTER = re.compile(rf"[{_LETTERS}]")
_RE_STREET_OR_CITY = re.compile(rf"[{_LETTERS}\s\-.]+")
_RE_INTEGER = re.compile(r"\s*([+-]?\d+)\s*", re.ASCII)


class InputClassifier:
    """
    Categorizes a raw query string.

    Rules, first match wins:
    - exactly five digits → postalcode_only
    - contains a standalone 5-digit run → with_postalcode (first run wins)
    - contains a digit and a letter → street_with_number
    - only letters, spaces, hyphens and periods → street_or_city
    - anything else → mixed
    """

    def __init__(self, region_ranges: Optional[Iterable[PostalRange]] = None):
        self.region_ranges = tuple(region_ranges) if region_ranges is not None else DEFAULT_REGION_RANGES

    def is_in_region(self, postal_code: str) -> bool:
        """True iff `postal_code` parses as an integer inside a configured range."""
        if postal_code is None:
            return False
        match = _RE_INTEGER.fullmatch(str(postal_code))
        if not match:
            return False
        value = int(match.group(1))
        return any(r.contains(value) for r in self.region_ranges)

    def classify(self, query: str) -> Classification:
        trimmed = (query or "").strip()

        if _RE_POSTAL_ONLY.fullmatch(trimmed):
            return Classification(
                category=InputCategory.POSTALCODE_ONLY,
                value=trimmed,
                postal_code=trimmed,
                in_region=self.is_in_region(trimmed),
            )

        postal_code = extract_postal_code(trimmed)
        if postal_code:
            return Classification(
                category=InputCategory.WITH_POSTALCODE,
                value=trimmed,
                postal_code=postal_code,
                in_region=self.is_in_region(postal_code),
            )

        if _RE_DIGIT.search(trimmed) and _RE_LETTER.search(trimmed):
            return Classification(category=InputCategory.STREET_WITH_NUMBER, value=trimmed)

        if _RE_STREET_OR_CITY.fullmatch(trimmed):
            return Classification(category=InputCategory.STREET_OR_CITY, value=trimmed)

        return Classification(category=InputCategory.MIXED, value=trimmed)

    def build_query(self, raw: str) -> Query:
        classification = self.classify(raw)
        return Query(raw=raw, text=classification.value, classification=classification)
