import re
from typing import Optional

from bs4 import BeautifulSoup

DESCRIPTION_WINDOW = 100
DESCRIPTION_MAX_LENGTH = 200

# Spanish/English label followed by the merchant on the same line
_LABEL_RE = re.compile(
    r"(?:comercio|establecimiento|merchant)\s*[:.]\s*([^\n,<]+)", re.IGNORECASE
)
# "... at WALMART on 14/08/2025" / "... at Uber Eats for $12.00"
_AT_RE = re.compile(r"\bat\s+([A-Z0-9][A-Za-z0-9&'.\-* ]*?)\s+(?:on|for)\b")
# A line that is nothing but capitals, e.g. "AUTOMERCADO ESCAZU"
_CAPS_LINE_RE = re.compile(r"^[A-Z0-9][A-Z0-9&'.\-* ]{2,}$")


def html_to_text(html: str) -> str:
    """Visible text of an HTML body, one block per line."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _nearest(matches: list[re.Match], position: Optional[int]) -> Optional[re.Match]:
    if not matches:
        return None
    if position is None:
        return matches[0]
    return min(matches, key=lambda m: abs(m.start() - position))


def extract_merchant(text: str, position: Optional[int] = None) -> Optional[str]:
    """Best guess at the merchant, preferring matches close to position.

    Tries, in order: a "Comercio:" / "Establecimiento:" label, English
    "at X on/for" phrasing, then the first all-caps line.
    """
    if not text:
        return None

    for pattern in (_LABEL_RE, _AT_RE):
        match = _nearest(list(pattern.finditer(text)), position)
        if match:
            merchant = normalize_whitespace(match.group(1))
            if merchant:
                return merchant

    for line in text.splitlines():
        line = line.strip()
        if _CAPS_LINE_RE.match(line) and any(c.isalpha() for c in line):
            return normalize_whitespace(line)
    return None


def describe_around(text: str, start: int, end: int) -> str:
    """Whitespace-normalized text surrounding an amount match, at most 200 chars."""
    window_start = max(start - DESCRIPTION_WINDOW, 0)
    window_end = min(end + DESCRIPTION_WINDOW, len(text))
    return truncate(normalize_whitespace(text[window_start:window_end]), DESCRIPTION_MAX_LENGTH)
