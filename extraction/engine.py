from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Protocol

from extraction.strategies import BankPatternStrategy, ExtractionStrategy, FallbackStrategy
from models.data_models import CandidateTransaction, EmailRecord, MailAccount, ParsingRule
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_AMOUNT_CEILING = Decimal("1000000")
RAW_TEXT_LIMIT = 500


class RuleSource(Protocol):
    def active_rule_for(self, bank_name: str) -> Optional[ParsingRule]:
        ...


class ExtractionEngine:
    """Picks the strategy for an account and cleans up what it returns.

    Accounts whose bank has an active ParsingRule get BankPatternStrategy,
    everyone else gets FallbackStrategy. Never both.
    """

    def __init__(
        self,
        rules: RuleSource,
        amount_ceiling: Decimal = DEFAULT_AMOUNT_CEILING,
        today: Callable[[], date] = date.today,
    ):
        self.rules = rules
        self.amount_ceiling = amount_ceiling
        self.today = today

    def strategy_for(self, account: MailAccount) -> ExtractionStrategy:
        rule = self.rules.active_rule_for(account.bank_name)
        if rule is not None:
            return BankPatternStrategy(rule)
        return FallbackStrategy(today=self.today)

    def extract(self, record: EmailRecord, account: MailAccount) -> list[CandidateTransaction]:
        """All valid, de-duplicated candidates found in one email."""
        strategy = self.strategy_for(account)
        raw = strategy.extract(record)
        candidates = self.post_process(raw, strategy.text_for(record), record.message_id)
        logger.info(
            f"[{strategy.name}] {record.message_id}: {len(raw)} match(es), "
            f"{len(candidates)} candidate(s) kept"
        )
        return candidates

    def is_plausible(self, candidate: CandidateTransaction) -> bool:
        return candidate.amount is not None and Decimal("0") < candidate.amount < self.amount_ceiling

    def post_process(
        self,
        candidates: list[CandidateTransaction],
        text: str,
        message_id: str,
    ) -> list[CandidateTransaction]:
        """Drop implausible amounts, de-duplicate, attach excerpt and message id."""
        excerpt = (text or "")[:RAW_TEXT_LIMIT]
        seen: set[tuple] = set()
        kept: list[CandidateTransaction] = []
        for candidate in candidates:
            if not self.is_plausible(candidate):
                continue
            key = (candidate.amount, candidate.transaction_date, candidate.description)
            if key in seen:
                continue
            seen.add(key)
            kept.append(replace(candidate, raw_text=excerpt, message_id=message_id))
        return kept
