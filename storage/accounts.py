import sqlite3
from dataclasses import replace
from datetime import datetime, timezone

from models.data_models import MailAccount, OAuthSettings
from storage.database import Database
from utils.logger import get_logger

logger = get_logger(__name__)


def _to_account(row: sqlite3.Row) -> MailAccount:
    oauth = OAuthSettings(token_file=row["oauth_token_file"]) if row["oauth_token_file"] else None
    return MailAccount(
        id=row["id"],
        email=row["email"],
        provider=row["provider"],
        password=row["password"],
        oauth=oauth,
        bank_name=row["bank_name"],
        imap_host=row["imap_host"],
        imap_port=row["imap_port"],
        active=bool(row["active"]),
    )


class AccountStore:
    """Mail accounts, keyed by email address.

    Accounts come from configuration; registering them here gives each a
    stable id for the processed-email ledger and the expenses.
    """

    def __init__(self, db: Database):
        self.db = db

    def register(self, account: MailAccount) -> MailAccount:
        """Insert or update the account by email and return it with its id."""
        token_file = account.oauth.token_file if account.oauth else None
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO mail_accounts
                    (email, provider, password, oauth_token_file, bank_name,
                     imap_host, imap_port, active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (email) DO UPDATE SET
                    provider = excluded.provider,
                    password = excluded.password,
                    oauth_token_file = excluded.oauth_token_file,
                    bank_name = excluded.bank_name,
                    imap_host = excluded.imap_host,
                    imap_port = excluded.imap_port,
                    active = excluded.active
                """,
                (
                    account.email,
                    account.provider,
                    account.password,
                    token_file,
                    account.bank_name,
                    account.imap_host,
                    account.imap_port,
                    int(account.active),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            row = conn.execute(
                "SELECT id FROM mail_accounts WHERE email = ?", (account.email,)
            ).fetchone()
        logger.debug(f"Registered account {account.email} as id {row['id']}")
        return replace(account, id=row["id"])

    def active_accounts(self) -> list[MailAccount]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM mail_accounts WHERE active = 1 ORDER BY id"
            ).fetchall()
        return [_to_account(row) for row in rows]
