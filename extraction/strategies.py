import re
from abc import ABC, abstractmethod
from datetime import date
from typing import Callable, Optional

from extraction.amounts import detect_currency, parse_amount
from extraction.dates import find_nearest_date, parse_date
from extraction.heuristics import describe_around, extract_merchant, html_to_text
from models.data_models import CandidateTransaction, EmailRecord, ParsingRule
from utils.logger import get_logger

logger = get_logger(__name__)

_NUMBER = r"(\d[\d.,]*\d|\d)"

# Checked in this order; a later tier never re-reads text an earlier tier matched
FALLBACK_AMOUNT_PATTERNS: tuple[tuple[Optional[str], re.Pattern], ...] = (
    ("crc", re.compile(r"₡\s?" + _NUMBER)),
    ("usd", re.compile(r"\$\s?" + _NUMBER)),
    (None, re.compile(r"(?<![\d.,])(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})(?!\d|[.,]\d)")),
)


class ExtractionStrategy(ABC):
    """Turns one email into zero or more candidate transactions."""

    name: str = ""

    @abstractmethod
    def text_for(self, record: EmailRecord) -> str:
        """The body text this strategy reads."""
        ...

    @abstractmethod
    def extract(self, record: EmailRecord) -> list[CandidateTransaction]:
        ...


def _captured(match: re.Match) -> str:
    """Group 1 if the pattern has one and it matched, else the whole match."""
    if match.re.groups and match.group(1) is not None:
        return match.group(1)
    return match.group(0)


class BankPatternStrategy(ExtractionStrategy):
    """Applies a bank's ParsingRule.

    Amount and date are both required. If either is missing or unreadable
    the email yields nothing; there is no partial fallback to heuristics.
    """

    name = "bank_pattern"

    def __init__(self, rule: ParsingRule):
        self.rule = rule
        self.amount_re = self._compile(rule.amount_pattern, re.IGNORECASE)
        self.date_re = self._compile(rule.date_pattern, re.IGNORECASE)
        self.merchant_re = self._compile(rule.merchant_pattern, re.IGNORECASE | re.MULTILINE)
        self.description_re = self._compile(rule.description_pattern, re.IGNORECASE | re.MULTILINE)

    def _compile(self, pattern: Optional[str], flags: int) -> Optional[re.Pattern]:
        if not pattern:
            return None
        try:
            return re.compile(pattern, flags)
        except re.error as e:
            logger.warning(f"Invalid pattern for {self.rule.bank_name}: {pattern!r} ({e})")
            return None

    def text_for(self, record: EmailRecord) -> str:
        return record.body

    def extract(self, record: EmailRecord) -> list[CandidateTransaction]:
        text = self.text_for(record)
        if not text or self.amount_re is None or self.date_re is None:
            return []

        amount_match = self.amount_re.search(text)
        if not amount_match:
            logger.debug(f"[{self.rule.bank_name}] amount pattern did not match {record.message_id}")
            return []
        date_match = self.date_re.search(text)
        if not date_match:
            logger.debug(f"[{self.rule.bank_name}] date pattern did not match {record.message_id}")
            return []

        amount = parse_amount(_captured(amount_match))
        if amount is None:
            logger.debug(f"[{self.rule.bank_name}] unreadable amount '{_captured(amount_match)}'")
            return []
        transaction_date = parse_date(_captured(date_match))
        if transaction_date is None:
            logger.debug(f"[{self.rule.bank_name}] unreadable date '{_captured(date_match)}'")
            return []

        merchant = None
        if self.merchant_re is not None:
            match = self.merchant_re.search(text)
            if match:
                merchant = _captured(match).strip() or None

        description = None
        if self.description_re is not None:
            match = self.description_re.search(text)
            if match:
                description = _captured(match).strip() or None

        return [CandidateTransaction(
            amount=amount,
            transaction_date=transaction_date,
            currency=detect_currency(amount_match.group(0), text),
            merchant=merchant,
            description=description,
        )]


class FallbackStrategy(ExtractionStrategy):
    """Heuristics for banks without a ParsingRule.

    Every amount found becomes its own candidate, so an itemized notice
    gives several. A stated total shows up as one more candidate.
    """

    name = "fallback"

    def __init__(self, today: Callable[[], date] = date.today):
        self.today = today

    def text_for(self, record: EmailRecord) -> str:
        return record.text_body or html_to_text(record.html_body) or record.raw_body

    def extract(self, record: EmailRecord) -> list[CandidateTransaction]:
        text = self.text_for(record)
        if not text:
            return []

        candidates: list[CandidateTransaction] = []
        taken: list[tuple[int, int]] = []
        for currency, pattern in FALLBACK_AMOUNT_PATTERNS:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < t_end and t_start < end for t_start, t_end in taken):
                    continue
                taken.append((start, end))

                amount = parse_amount(match.group(1))
                if amount is None:
                    continue

                candidates.append(CandidateTransaction(
                    amount=amount,
                    transaction_date=self._date_near(text, start, record),
                    currency=currency or detect_currency(match.group(0), text),
                    merchant=extract_merchant(text, start),
                    description=describe_around(text, start, end),
                ))
        return candidates

    def _date_near(self, text: str, position: int, record: EmailRecord) -> date:
        found = find_nearest_date(text, position)
        if found is not None:
            return found
        if record.timestamp is not None:
            return record.timestamp.date()
        return self.today()
