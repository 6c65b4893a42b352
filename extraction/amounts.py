import re
from decimal import Decimal, InvalidOperation
from typing import Optional

# Currency markers removed before the number is read
_CURRENCY_NOISE = re.compile(r"[₡$€\s ]|\b(?:CRC|USD|EUR)\b", re.IGNORECASE)

# 25,500.00 / 1,234 -> comma groups thousands, dot is decimal
_US_FORMAT = re.compile(r"^-?\d{1,3}(,\d{3})*(\.\d+)?$")
# 25.500,00 / 1.234 -> dot groups thousands, comma is decimal
_EU_FORMAT = re.compile(r"^-?\d{1,3}(\.\d{3})*(,\d+)?$")
# What Decimal may see: no exponents, no NaN or Infinity
_PLAIN_NUMBER = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)$")

_CURRENCY_HINTS = (
    ("crc", re.compile(r"₡|colones|\bCRC\b", re.IGNORECASE)),
    ("usd", re.compile(r"\$|\bUSD\b|\bdollars?\b|\bd[oó]lares\b", re.IGNORECASE)),
    ("eur", re.compile(r"€|\bEUR\b|\beuros?\b", re.IGNORECASE)),
)


def parse_amount(text: str) -> Optional[Decimal]:
    """Turn an amount string such as '₡25,500.00' or '1.234,56' into a Decimal.

    Returns None when nothing numeric is left after cleaning.
    """
    if text is None:
        return None
    cleaned = _CURRENCY_NOISE.sub("", str(text))
    if not cleaned:
        return None

    if _US_FORMAT.match(cleaned):
        cleaned = cleaned.replace(",", "")
    elif _EU_FORMAT.match(cleaned):
        cleaned = cleaned.replace(".", "").replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")

    if not _PLAIN_NUMBER.match(cleaned):
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def detect_currency(match_text: str, full_text: str = "", window: int = 50) -> Optional[str]:
    """Guess crc/usd/eur from the matched amount, then from nearby text.

    Returns None when neither says anything, so the caller's default applies.
    """
    for code, pattern in _CURRENCY_HINTS:
        if pattern.search(match_text or ""):
            return code

    if full_text and match_text:
        index = full_text.find(match_text)
        if index >= 0:
            start = max(index - window, 0)
            end = min(index + len(match_text) + window, len(full_text))
            context = full_text[start:end]
            for code, pattern in _CURRENCY_HINTS:
                if pattern.search(context):
                    return code
    return None
