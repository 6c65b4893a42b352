"""Date parsing for bank notification bodies.

Banks in the region write dates as 15/08/2025, 2025-08-15,
"15 de agosto de 2025", "Ago 1, 2025, 14:16" and so on. Spanish month
names are translated to English first so a single format table covers
both languages.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from dateutil import parser as dateutil_parser

from utils.logger import get_logger

logger = get_logger(__name__)

SPANISH_MONTHS = {
    "enero": "January",
    "febrero": "February",
    "marzo": "March",
    "abril": "April",
    "mayo": "May",
    "junio": "June",
    "julio": "July",
    "agosto": "August",
    "septiembre": "September",
    "setiembre": "September",
    "octubre": "October",
    "noviembre": "November",
    "diciembre": "December",
}

# Only the abbreviations that differ from English
SPANISH_MONTH_ABBREVIATIONS = {
    "ene": "Jan",
    "abr": "Apr",
    "ago": "Aug",
    "set": "Sep",
    "dic": "Dec",
}

_FULL_MONTH_RE = re.compile(r"\b(" + "|".join(SPANISH_MONTHS) + r")\b", re.IGNORECASE)
_ABBR_MONTH_RE = re.compile(
    r"\b(" + "|".join(SPANISH_MONTH_ABBREVIATIONS) + r")\b\.?", re.IGNORECASE
)

_DMY = r"\d{1,2}/\d{1,2}/\d{4}"
_DMY_DASH = r"\d{1,2}-\d{1,2}-\d{4}"
_YMD = r"\d{4}-\d{1,2}-\d{1,2}"
_HM = r"\s+\d{1,2}:\d{2}"
_HMS = r"\s+\d{1,2}:\d{2}:\d{2}"
_MONTH = r"[A-Za-z]+"

ENGLISH_MONTHS = (
    "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec",
)

# Month names and abbreviations in either language, longest first
_MONTH_WORD = "(?:" + "|".join(sorted(
    set(ENGLISH_MONTHS) | set(SPANISH_MONTHS) | set(SPANISH_MONTH_ABBREVIATIONS),
    key=len,
    reverse=True,
)) + ")"


@dataclass(frozen=True)
class DateFormat:
    """One entry of the format table: a shape check plus a strptime format."""
    shape: re.Pattern
    fmt: str

    def attempt(self, text: str) -> Optional[date]:
        if not self.shape.fullmatch(text):
            return None
        try:
            return datetime.strptime(text, self.fmt).date()
        except ValueError:
            # Right shape, impossible value such as 31/02/2025
            return None


def _fmt(shape: str, fmt: str) -> DateFormat:
    return DateFormat(re.compile(shape, re.IGNORECASE), fmt)


DATE_FORMATS: tuple[DateFormat, ...] = (
    _fmt(_DMY, "%d/%m/%Y"),
    _fmt(_DMY_DASH, "%d-%m-%Y"),
    _fmt(_YMD, "%Y-%m-%d"),
    _fmt(_DMY + _HM, "%d/%m/%Y %H:%M"),
    _fmt(_DMY_DASH + _HM, "%d-%m-%Y %H:%M"),
    _fmt(_YMD + _HM, "%Y-%m-%d %H:%M"),
    _fmt(_DMY + _HMS, "%d/%m/%Y %H:%M:%S"),
    _fmt(_DMY_DASH + _HMS, "%d-%m-%Y %H:%M:%S"),
    _fmt(_YMD + _HMS, "%Y-%m-%d %H:%M:%S"),
    _fmt(r"\d{1,2}\s+de\s+" + _MONTH + r"\s+de\s+\d{4}", "%d de %B de %Y"),
    _fmt(r"\d{1,2}\s+" + _MONTH + r"\s+\d{4}", "%d %B %Y"),
    _fmt(r"\d{1,2}\s+" + _MONTH + r"\s+\d{4}", "%d %b %Y"),
    _fmt(_MONTH + r"\s+\d{1,2},\s*\d{4},\s*\d{1,2}:\d{2}", "%b %d, %Y, %H:%M"),
    _fmt(_MONTH + r"\s+\d{1,2},\s*\d{4}", "%b %d, %Y"),
    _fmt(_MONTH + r"\s+\d{1,2},\s*\d{4}", "%B %d, %Y"),
)

# Where dates can sit inside free text, used to find the one nearest an amount
DATE_SEARCH_PATTERN = re.compile(
    r"\b\d{4}-\d{1,2}-\d{1,2}\b"
    r"|\b\d{1,2}[/-]\d{1,2}[/-]\d{4}\b"
    r"|(?<![\d.,])\b\d{1,2}\s+de\s+" + _MONTH_WORD + r"\s+de\s+\d{4}\b"
    r"|(?<![\d.,])\b\d{1,2}\s+" + _MONTH_WORD + r"\b\.?\s+\d{4}\b"
    r"|\b" + _MONTH_WORD + r"\b\.?\s+\d{1,2},\s*\d{4}\b",
    re.IGNORECASE,
)


def translate_spanish_months(text: str) -> str:
    """'15 de agosto de 2025' -> '15 de August de 2025', 'Ago 1' -> 'Aug 1'."""
    text = _FULL_MONTH_RE.sub(lambda m: SPANISH_MONTHS[m.group(1).lower()], text)
    return _ABBR_MONTH_RE.sub(lambda m: SPANISH_MONTH_ABBREVIATIONS[m.group(1).lower()], text)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", translate_spanish_months(text.strip()))


def _from_table(text: str) -> Optional[date]:
    for date_format in DATE_FORMATS:
        parsed = date_format.attempt(text)
        if parsed is not None:
            return parsed
    return None


# Two defaults that differ in day, month and year
_SENTINEL_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def _natural_language(text: str) -> Optional[date]:
    """Last resort: let dateutil have a go, reading day before month.

    dateutil fills whatever the text leaves out from a default, so "2025"
    or "Monday" would come back as some date. Parsing against two
    different defaults shows whether day, month and year all came from
    the text itself.
    """
    try:
        parsed = {
            dateutil_parser.parse(text, dayfirst=True, default=default).date()
            for default in _SENTINEL_DEFAULTS
        }
    except (ValueError, OverflowError):
        return None
    if len(parsed) != 1:
        return None
    return parsed.pop()


# Tried in order; the first attempt returning a date wins
PARSE_ATTEMPTS: tuple[Callable[[str], Optional[date]], ...] = (_from_table, _natural_language)


def parse_date(text: Optional[str]) -> Optional[date]:
    """Parse a date string in any of the supported formats.

    Returns None rather than raising when nothing matches.
    """
    if not text or not text.strip():
        return None
    normalized = _normalize(text)
    for attempt in PARSE_ATTEMPTS:
        parsed = attempt(normalized)
        if parsed is not None:
            return parsed
    logger.debug(f"Could not parse date '{text}'")
    return None


def find_nearest_date(text: str, position: int) -> Optional[date]:
    """The parseable date in text closest to the given character position."""
    candidates = []
    for match in DATE_SEARCH_PATTERN.finditer(text):
        if match.start() <= position < match.end():
            distance = 0
        else:
            distance = min(abs(match.start() - position), abs(match.end() - position))
        candidates.append((distance, match.start(), match.group(0)))

    for _, _, candidate in sorted(candidates):
        parsed = parse_date(candidate)
        if parsed is not None:
            return parsed
    return None
