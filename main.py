"""
Bank alert expense tracker — entry point.

Registers every configured mail account and syncs each one in its own
thread: search the mailbox for bank notifications, extract the
transactions and store them as expenses exactly once.

Runs once by default. With SYNC_INTERVAL_MINUTES set it repeats until
stopped with Ctrl+C.
"""

import signal
import sys
import threading
import time
from datetime import date, timedelta

from agent.categorizer import Categorizer, KeywordCategorizer
from agent.classifier import ClaudeCategorizer
from agent.expense_agent import ExpenseAgent
from config import Settings, load_settings
from extraction.engine import ExtractionEngine
from google_services.auth import GoogleTokenProvider
from mail.batch_fetcher import BatchFetcher
from mail.connection import ConnectionManager
from mail.search_criteria import SearchCriteriaBuilder
from models.data_models import MailAccount
from storage.accounts import AccountStore
from storage.database import Database
from storage.persister import TransactionPersister
from storage.rules import ParsingRuleStore
from utils.logger import get_logger, setup_logging


def build_categorizer(settings: Settings) -> Categorizer | None:
    if settings.categorizer == "claude":
        return ClaudeCategorizer(api_key=settings.anthropic_api_key, model=settings.claude_model)
    if settings.categorizer == "keyword":
        return KeywordCategorizer()
    return None


def build_agent(settings: Settings, db: Database) -> ExpenseAgent:
    connections = ConnectionManager(
        token_provider=GoogleTokenProvider(),
        timeout=settings.imap_timeout_seconds,
        connect_attempts=settings.imap_connect_attempts,
        mailbox=settings.imap_mailbox,
    )
    persister = TransactionPersister(
        db,
        categorizer=build_categorizer(settings),
        default_currency=settings.default_currency,
        amount_ceiling=settings.amount_ceiling,
        confidence_threshold=settings.categorization_threshold,
    )
    return ExpenseAgent(
        connection_manager=connections,
        criteria_builder=SearchCriteriaBuilder(),
        fetcher=BatchFetcher(limit=settings.fetch_limit, batch_size=settings.fetch_batch_size),
        engine=ExtractionEngine(ParsingRuleStore(db), amount_ceiling=settings.amount_ceiling),
        persister=persister,
    )


def run_once(agent: ExpenseAgent, accounts: list[MailAccount], lookback_days: int) -> None:
    """Sync every account in parallel, one thread each, and wait for all."""
    logger = get_logger(__name__)
    since = date.today() - timedelta(days=lookback_days)

    def sync(account: MailAccount) -> None:
        try:
            report = agent.sync(account, since)
        except Exception as e:
            logger.error(f"Unhandled error syncing {account.email}: {e}", exc_info=True)
            return
        if not report.success:
            logger.error(f"Sync failed for {account.email}: {report.fatal_error}")
        for warning in report.warnings:
            logger.warning(f"[{account.email}] {warning}")

    threads = [
        threading.Thread(target=sync, args=(account,), daemon=True, name=f"sync-{account.email}")
        for account in accounts
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


def main() -> None:
    # ── 1. Load config from .env ─────────────────────────────────────────────
    settings = load_settings()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file or "")
    logger = get_logger(__name__)
    logger.info("Expense tracker starting…")

    # ── 2. Prepare the database and register accounts ────────────────────────
    db = Database(settings.database_path)
    db.initialize()
    store = AccountStore(db)
    configured = {store.register(account).email for account in settings.imap_accounts}
    accounts = [account for account in store.active_accounts() if account.email in configured]
    logger.info(f"{len(accounts)} active account(s) registered")

    # ── 3. Build the agent ───────────────────────────────────────────────────
    agent = build_agent(settings, db)

    def shutdown(sig, frame):
        logger.info("Shutting down…")
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    # ── 4. Sync, once or on an interval ──────────────────────────────────────
    while True:
        run_once(agent, accounts, settings.sync_lookback_days)
        if settings.sync_interval_minutes <= 0:
            break
        logger.info(f"Next sync in {settings.sync_interval_minutes} minute(s). Press Ctrl+C to stop.")
        time.sleep(settings.sync_interval_minutes * 60)

    logger.info("Done.")


if __name__ == "__main__":
    main()
