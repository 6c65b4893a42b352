import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS mail_accounts (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    email             TEXT NOT NULL UNIQUE,
    provider          TEXT NOT NULL,
    password          TEXT,
    oauth_token_file  TEXT,
    bank_name         TEXT NOT NULL,
    imap_host         TEXT,
    imap_port         INTEGER,
    active            INTEGER NOT NULL DEFAULT 1,
    created_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS parsing_rules (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    bank_name           TEXT NOT NULL,
    amount_pattern      TEXT NOT NULL,
    date_pattern        TEXT NOT NULL,
    merchant_pattern    TEXT,
    description_pattern TEXT,
    active              INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_parsing_rules_bank_active ON parsing_rules (bank_name, active);

CREATE TABLE IF NOT EXISTS processed_emails (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id    INTEGER NOT NULL REFERENCES mail_accounts (id),
    message_id    TEXT NOT NULL,
    uid           INTEGER,
    subject       TEXT,
    from_address  TEXT,
    processed_at  TEXT NOT NULL,
    UNIQUE (account_id, message_id)
);

CREATE TABLE IF NOT EXISTS categories (
    id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name  TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS expenses (
    id                         INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id                 INTEGER NOT NULL REFERENCES mail_accounts (id),
    amount                     TEXT NOT NULL CHECK (CAST(amount AS REAL) > 0),
    currency                   TEXT NOT NULL CHECK (currency IN ('crc', 'usd', 'eur')),
    transaction_date           TEXT NOT NULL,
    merchant_name              TEXT,
    merchant_normalized        TEXT,
    description                TEXT,
    status                     TEXT NOT NULL DEFAULT 'pending'
                               CHECK (status IN ('pending', 'processed', 'failed')),
    bank_name                  TEXT,
    raw_email_content          TEXT,
    message_id                 TEXT,
    category_id                INTEGER REFERENCES categories (id),
    auto_categorized           INTEGER NOT NULL DEFAULT 0,
    categorization_confidence  REAL,
    categorization_method      TEXT,
    categorized_at             TEXT,
    created_at                 TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_expenses_account_amount_date
    ON expenses (account_id, amount, transaction_date);
"""


class Database:
    """SQLite file holding accounts, parsing rules, the processed-email
    ledger and the expenses.

    Every call opens its own connection so separate threads (one per
    account) never share one.
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.db_path = db_path
        self.timeout = timeout

    def initialize(self) -> None:
        with self.connection() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Schema ready in {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: we issue BEGIN/COMMIT ourselves
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection for reads and single statements."""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolled back if the block raises.

        IMMEDIATE takes the write lock up front, so two runs handling the
        same email queue up instead of both reading "not processed yet".
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()
