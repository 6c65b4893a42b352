import json
from typing import Optional

import anthropic

from agent.categorizer import Categorizer
from agent.prompts import CATEGORIZATION_PROMPT
from models.data_models import CategorizationResult, ExpenseRecord
from utils.logger import get_logger

logger = get_logger(__name__)


class ClaudeCategorizer(Categorizer):
    """Asks Claude which category an expense belongs to."""

    def __init__(self, api_key: str, model: str, client=None):
        self.client = client or anthropic.Anthropic(api_key=api_key)
        self.model = model

    def categorize(self, expense: ExpenseRecord) -> Optional[CategorizationResult]:
        """Categorize a single stored expense.

        Args:
            expense: The expense as stored, with merchant and description.

        Returns:
            CategorizationResult with method "llm", or None when the
            response could not be understood.
        """
        logger.info(f"Categorizing expense {expense.id} with {self.model}")

        prompt = CATEGORIZATION_PROMPT.format(
            merchant=expense.merchant_name or "unknown",
            description=expense.description or "none",
            amount=f"{expense.amount:.2f}",
            currency=expense.currency.upper(),
            bank=expense.bank_name,
        )

        response = self.client.messages.create(
            model=self.model,
            max_tokens=256,
            messages=[{"role": "user", "content": prompt}],
        )

        raw = response.content[0].text.strip().removeprefix("```json").removeprefix("```").removesuffix("```").strip()
        logger.debug(f"Categorizer raw response: {raw}")

        try:
            data = json.loads(raw)
            category = str(data["category"]).strip()
            confidence = float(data["confidence"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse categorizer response: {e} — raw: {raw}")
            return None

        if not category:
            logger.error(f"Categorizer returned an empty category — raw: {raw}")
            return None

        logger.info(
            f"Categorization result: category='{category}' confidence={confidence:.2f} "
            f"reason='{data.get('reason', '')}'"
        )
        return CategorizationResult(
            category=category,
            confidence=max(0.0, min(1.0, confidence)),
            method="llm",
        )
