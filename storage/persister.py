import sqlite3
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from agent.categorizer import Categorizer
from extraction.engine import DEFAULT_AMOUNT_CEILING
from mail.senders import PROMOTIONAL_SENDERS, is_promotional
from models.data_models import (
    CandidateTransaction,
    EmailRecord,
    ExpenseRecord,
    MailAccount,
    PersistResult,
)
from storage.database import Database
from utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_CURRENCIES = ("crc", "usd", "eur")
DEFAULT_CONFIDENCE_THRESHOLD = 0.7
RAW_CONTENT_LIMIT = 10_000
CENTS = Decimal("0.01")


class PersistenceError(Exception):
    """Storing the expenses of an email failed; nothing was written."""


class ExpenseValidationError(PersistenceError):
    """A candidate could not become a valid expense."""


class _AlreadyProcessed(Exception):
    """Another run wrote the ledger row first."""


def normalize_merchant(merchant: Optional[str]) -> Optional[str]:
    """Lower-case and collapse whitespace: '  WALMART   Escazu ' -> 'walmart escazu'."""
    if not merchant:
        return None
    return " ".join(merchant.lower().split()) or None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TransactionPersister:
    """Writes the expenses of one email together with its ledger row.

    Everything for an email happens in a single transaction: either every
    expense and the processed_emails row are stored, or none are, so a
    retry starts from a clean slate. The UNIQUE (account_id, message_id)
    constraint on processed_emails decides who wins when two runs race.
    """

    def __init__(
        self,
        db: Database,
        categorizer: Optional[Categorizer] = None,
        default_currency: str = "usd",
        amount_ceiling: Decimal = DEFAULT_AMOUNT_CEILING,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        promotional_senders: tuple[str, ...] = PROMOTIONAL_SENDERS,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.categorizer = categorizer
        self.default_currency = default_currency.lower()
        self.amount_ceiling = amount_ceiling
        self.confidence_threshold = confidence_threshold
        self.promotional_senders = promotional_senders
        self.today = today

    def persist(
        self,
        account: MailAccount,
        record: EmailRecord,
        candidates: list[CandidateTransaction],
    ) -> PersistResult:
        """Store the candidates of one email exactly once.

        Raises:
            ExpenseValidationError: a candidate is invalid; nothing was stored.
            PersistenceError: the database refused the write; nothing was stored.
        """
        if account.id is None:
            raise ValueError(f"Account {account.email} has not been registered")

        if is_promotional(record.sender, self.promotional_senders):
            logger.info(f"Skipping promotional email from {record.sender}: {record.message_id}")
            return PersistResult(skipped=True, reason="promotional sender")

        if not candidates:
            return PersistResult(skipped=True, reason="no transactions found")

        try:
            with self.db.transaction() as conn:
                if self._already_processed(conn, account.id, record.message_id):
                    logger.info(f"Already processed — skipping: {record.message_id}")
                    return PersistResult(skipped=True, reason="already processed")

                expense_ids = [
                    self._insert_expense(conn, account, candidate) for candidate in candidates
                ]

                try:
                    self._mark_processed(conn, account.id, record)
                except sqlite3.IntegrityError as e:
                    raise _AlreadyProcessed() from e
        except _AlreadyProcessed:
            logger.info(f"Processed concurrently by another run — skipping: {record.message_id}")
            return PersistResult(skipped=True, reason="already processed")
        except ExpenseValidationError as e:
            logger.warning(f"Rolled back {record.message_id}: {e}")
            raise
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not store expenses for {record.message_id}: {e}") from e

        logger.info(f"Stored {len(expense_ids)} expense(s) from {record.message_id}")

        if self.categorizer is not None:
            for expense_id in expense_ids:
                self._categorize(expense_id)

        return PersistResult(expense_ids=expense_ids)

    def _already_processed(self, conn: sqlite3.Connection, account_id: int, message_id: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM processed_emails WHERE account_id = ? AND message_id = ?",
            (account_id, message_id),
        ).fetchone()
        return row is not None

    def _insert_expense(
        self,
        conn: sqlite3.Connection,
        account: MailAccount,
        candidate: CandidateTransaction,
    ) -> int:
        amount = candidate.amount
        currency = (candidate.currency or self.default_currency).lower()
        transaction_date = candidate.transaction_date or self.today()

        if amount is None or amount <= 0:
            raise ExpenseValidationError(f"amount must be greater than 0, got {amount}")
        if amount >= self.amount_ceiling:
            raise ExpenseValidationError(f"amount {amount} is not below {self.amount_ceiling}")
        if currency not in SUPPORTED_CURRENCIES:
            raise ExpenseValidationError(f"unsupported currency '{currency}'")

        cursor = conn.execute(
            """
            INSERT INTO expenses
                (account_id, amount, currency, transaction_date, merchant_name,
                 merchant_normalized, description, status, bank_name,
                 raw_email_content, message_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?)
            """,
            (
                account.id,
                str(amount.quantize(CENTS, rounding=ROUND_HALF_UP)),
                currency,
                transaction_date.isoformat(),
                candidate.merchant,
                normalize_merchant(candidate.merchant),
                candidate.description,
                account.bank_name,
                (candidate.raw_text or "")[:RAW_CONTENT_LIMIT],
                candidate.message_id,
                _now(),
            ),
        )
        return cursor.lastrowid

    def _mark_processed(self, conn: sqlite3.Connection, account_id: int, record: EmailRecord) -> None:
        conn.execute(
            """
            INSERT INTO processed_emails
                (account_id, message_id, uid, subject, from_address, processed_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (account_id, record.message_id, record.uid, record.subject, record.sender, _now()),
        )

    def _load_expense(self, expense_id: int) -> ExpenseRecord:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM expenses WHERE id = ?", (expense_id,)).fetchone()
        return ExpenseRecord(
            id=row["id"],
            account_id=row["account_id"],
            amount=Decimal(row["amount"]),
            currency=row["currency"],
            transaction_date=date.fromisoformat(row["transaction_date"]),
            merchant_name=row["merchant_name"],
            description=row["description"],
            bank_name=row["bank_name"],
        )

    def _categorize(self, expense_id: int) -> None:
        """Best effort. Whatever happens here, the expense stays stored."""
        try:
            self._apply_category(expense_id)
        except Exception as e:
            logger.warning(f"Categorization failed for expense {expense_id}: {e}")

    def _apply_category(self, expense_id: int) -> None:
        expense = self._load_expense(expense_id)
        result = self.categorizer.categorize(expense)

        if result is None:
            logger.info(f"No category suggested for expense {expense_id}")
            return
        if result.confidence <= self.confidence_threshold:
            logger.info(
                f"Category '{result.category}' for expense {expense_id} has confidence "
                f"{result.confidence:.2f}, not above {self.confidence_threshold} — leaving uncategorized"
            )
            return

        with self.db.transaction() as conn:
            conn.execute("INSERT OR IGNORE INTO categories (name) VALUES (?)", (result.category,))
            category_id = conn.execute(
                "SELECT id FROM categories WHERE name = ?", (result.category,)
            ).fetchone()["id"]
            conn.execute(
                """
                UPDATE expenses
                SET category_id = ?, auto_categorized = 1, categorization_confidence = ?,
                    categorization_method = ?, categorized_at = ?
                WHERE id = ?
                """,
                (category_id, result.confidence, result.method, _now(), expense_id),
            )

        logger.info(
            f"Auto-categorized expense {expense_id} as '{result.category}' "
            f"({result.confidence:.2f}, {result.method})"
        )
