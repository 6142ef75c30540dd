"""
Street-name and label normalizers.

Provides the street-suffix abbreviator applied by provider adapters and
helpers for cleaning HTML labels returned by the regional geoservice.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .base import Normalizer
from .models import ParsedLabel

logger = logging.getLogger(__name__)

_RE_TAG = re.compile(r"<[^>]+>")
_RE_BOLD = re.compile(r"<b>([^<]+)</b>")
_RE_POSTAL = re.compile(r"\b(\d{5})\b", re.ASCII)
_RE_WS = re.compile(r"\s+")


@dataclass(frozen=True)
class AbbreviationRule:
    """A single pattern → replacement rewrite."""
    pattern: re.Pattern
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


# Each rule only fires on a suffix followed by whitespace or end of string,
# so "Straßenbahnweg" stays untouched. Outputs contain no rule pattern.
DEFAULT_ABBREVIATION_RULES: tuple[AbbreviationRule, ...] = (
    AbbreviationRule(re.compile(r"straße(?=\s|$)"), "str."),
    AbbreviationRule(re.compile(r"Straße(?=\s|$)"), "Str."),
    AbbreviationRule(re.compile(r"STRASSE(?=\s|$)"), "STR."),
)


class StreetAbbreviator(Normalizer):
    """
    Canonicalizes street-suffix spelling.

    Rules are applied once each, in order. A disabled abbreviator returns
    its input unchanged.
    """

    def __init__(self, rules: Optional[Sequence[AbbreviationRule]] = None, enabled: bool = True):
        self.rules = tuple(rules) if rules is not None else DEFAULT_ABBREVIATION_RULES
        self.enabled = enabled

    def normalize(self, value: str) -> str:
        if not self.enabled or not value:
            return value or ""

        result = value
        for rule in self.rules:
            result = rule.apply(result)

        if result != value:
            logger.debug(f'Abbreviated street name: "{value}" -> "{result}"')
        return result


def extract_postal_code(text: str) -> Optional[str]:
    """Return the first standalone 5-digit run in `text`, if any."""
    match = _RE_POSTAL.search(text)
    return match.group(1) if match else None


def parse_label(label: str) -> ParsedLabel:
    """
    Split an HTML label like "<b>Marienplatz</b> 1, 80331 München" into
    plain text, bold fragments and the first postal code.
    """
    plain_text = _RE_TAG.sub("", label)
    bold_texts = _RE_BOLD.findall(label)
    postal_code = extract_postal_code(plain_text) or ""
    return ParsedLabel(plain_text=plain_text, bold_texts=bold_texts, postal_code=postal_code)


def strip_postal_codes(text: str) -> str:
    """Remove 5-digit runs and commas, collapse whitespace and lowercase."""
    t = re.sub(r"\d{5}", "", text, flags=re.ASCII)
    t = t.replace(",", " ")
    t = _RE_WS.sub(" ", t)
    return t.strip().lower()
