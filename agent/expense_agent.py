from datetime import date
from typing import Optional

from extraction.engine import ExtractionEngine
from mail.batch_fetcher import BatchFetcher
from mail.connection import ConnectionManager
from mail.errors import MailAuthenticationError, MailConnectionError
from mail.search_criteria import SearchCriteriaBuilder
from models.data_models import EmailOutcome, EmailRecord, MailAccount, SyncReport
from storage.persister import PersistenceError, TransactionPersister
from utils.logger import get_logger

logger = get_logger(__name__)


class ExpenseAgent:
    """Orchestrates one sync run for a single mail account:

    1. Connect, authenticate and EXAMINE the mailbox
    2. Search — one query per known sender and subject keyword
    3. Fetch — pull the matching messages in batches
    4. Disconnect
    5. Extract — candidate transactions per email
    6. Persist — expenses plus processed marker, one transaction per email
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        criteria_builder: SearchCriteriaBuilder,
        fetcher: BatchFetcher,
        engine: ExtractionEngine,
        persister: TransactionPersister,
    ):
        self.connections = connection_manager
        self.criteria = criteria_builder
        self.fetcher = fetcher
        self.engine = engine
        self.persister = persister

    def sync(
        self,
        account: MailAccount,
        since: date,
        until: Optional[date] = None,
        raise_fatal: bool = False,
    ) -> SyncReport:
        """Run the whole pipeline for one account and report what happened.

        Connection and authentication failures end the run; the report is
        returned with fatal_error set unless raise_fatal asks for the
        exception instead.
        """
        report = SyncReport(account_email=account.email)

        if not account.active:
            report.fatal_error = f"Account {account.email} is inactive"
            logger.warning(report.fatal_error)
            return report

        logger.info(f"Syncing {account.email} ({account.bank_name}) since {since}")

        # ── Steps 1–4: Search and fetch while the session is open ───────
        try:
            criteria = self.criteria.build(since, until)
            with self.connections.session(account) as client:
                uids = self.fetcher.search(client, criteria, report.warnings)
                records = self.fetcher.fetch(client, uids, report.warnings) if uids else []
        except (MailConnectionError, MailAuthenticationError) as e:
            report.fatal_error = str(e)
            logger.error(f"Sync aborted for {account.email}: {e}")
            if raise_fatal:
                raise
            return report

        report.emails_found = len(uids)

        # ── Steps 5–6: Extract and persist, connection already closed ───
        for record in records:
            report.outcomes.append(self.process(account, record))

        logger.info(
            f"Sync finished for {account.email}: {report.emails_processed} processed, "
            f"{report.emails_failed} failed, {report.expenses_created} expense(s) created, "
            f"{len(report.warnings)} warning(s)"
        )
        return report

    def process(self, account: MailAccount, record: EmailRecord) -> EmailOutcome:
        """Extract and store the transactions of a single email."""
        logger.info(f"Processing: '{record.subject}' from {record.sender}")

        candidates = self.engine.extract(record, account)
        try:
            result = self.persister.persist(account, record, candidates)
        except PersistenceError as e:
            logger.error(f"Failed to store '{record.subject}' ({record.message_id}): {e}")
            return EmailOutcome(
                message_id=record.message_id,
                subject=record.subject,
                success=False,
                error=str(e),
            )

        if result.skipped:
            logger.info(f"Nothing stored for '{record.subject}': {result.reason}")
        return EmailOutcome(
            message_id=record.message_id,
            subject=record.subject,
            success=True,
            expenses_created=result.created,
        )
