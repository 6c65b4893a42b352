"""
Pytest configuration and shared fixtures.

IMAP is never contacted: tests that need a server monkeypatch
mail.connection.IMAPClient with FakeIMAPClient below.
"""

from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import format_datetime
from typing import Optional

import pytest

from models.data_models import MailAccount, ParsingRule
from storage.accounts import AccountStore
from storage.database import Database


class FakeIMAPClient:
    """Stands in for imapclient.IMAPClient.

    messages maps UID -> raw RFC822 bytes. search_results maps a criterion
    (as a tuple) to the UIDs it returns; unknown criteria return every UID.
    """

    def __init__(self, host, port=993, ssl=True, ssl_context=None, timeout=None):
        self.host = host
        self.port = port
        self.ssl = ssl
        self.timeout = timeout
        self.messages: dict[int, bytes] = {}
        self.search_results: dict[tuple, list[int]] = {}
        self.failing_criteria: set[tuple] = set()
        self.fail_login = False
        self.logged_in_as: Optional[str] = None
        self.oauth_token: Optional[str] = None
        self.selected: Optional[tuple[str, bool]] = None
        self.searches: list[tuple[list, Optional[str]]] = []
        self.fetches: list[list[int]] = []
        self.logged_out = False

    def login(self, username, password):
        if self.fail_login:
            raise Exception("[AUTHENTICATIONFAILED] Invalid credentials")
        self.logged_in_as = username

    def oauth2_login(self, user, access_token):
        if self.fail_login:
            raise Exception("[AUTHENTICATIONFAILED] Invalid token")
        self.logged_in_as = user
        self.oauth_token = access_token

    def select_folder(self, folder, readonly=False):
        self.selected = (folder, readonly)
        return {b"EXISTS": len(self.messages)}

    def search(self, criteria, charset=None):
        self.searches.append((criteria, charset))
        key = tuple(criteria)
        if key in self.failing_criteria:
            raise Exception("SEARCH failed")
        if key in self.search_results:
            return list(self.search_results[key])
        return list(self.messages)

    def fetch(self, uids, data):
        self.fetches.append(list(uids))
        return {uid: {b"RFC822": self.messages[uid]} for uid in uids if uid in self.messages}

    def logout(self):
        self.logged_out = True


@pytest.fixture
def fake_imap(monkeypatch):
    """Patch IMAPClient; returns the list of clients created, with a template
    client whose messages and behaviour every new connection copies."""
    template = FakeIMAPClient("template")
    created: list[FakeIMAPClient] = []

    def factory(host, **kwargs):
        client = FakeIMAPClient(host, **kwargs)
        client.messages = template.messages
        client.search_results = template.search_results
        client.failing_criteria = template.failing_criteria
        client.fail_login = template.fail_login
        created.append(client)
        return client

    monkeypatch.setattr("mail.connection.IMAPClient", factory)

    class Server:
        def __init__(self):
            self.template = template
            self.clients = created

        @property
        def messages(self):
            return template.messages

        def fail_logins(self):
            template.fail_login = True

    return Server()


def build_email(
    subject: str = "Notificación de transacción",
    sender: str = "notificacion@notificacionesbaccr.com",
    text: Optional[str] = None,
    html: Optional[str] = None,
    message_id: Optional[str] = "<tx-1@bank.example>",
    sent_at: datetime = datetime(2025, 8, 15, 14, 30, tzinfo=timezone.utc),
) -> bytes:
    """Raw RFC822 bytes for a notification with the given bodies."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = "me@gmail.com"
    msg["Date"] = format_datetime(sent_at)
    if message_id:
        msg["Message-ID"] = message_id

    if text is not None and html is not None:
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
    elif html is not None:
        msg.set_content(html, subtype="html")
    else:
        msg.set_content(text or "")
    return msg.as_bytes()


@pytest.fixture
def db(tmp_path) -> Database:
    database = Database(str(tmp_path / "data" / "expenses.db"))
    database.initialize()
    return database


@pytest.fixture
def account(db) -> MailAccount:
    """A registered BAC account with password login."""
    return AccountStore(db).register(MailAccount(
        email="me@gmail.com",
        bank_name="BAC",
        provider="gmail",
        password="app-password",
    ))


@pytest.fixture
def bac_rule() -> ParsingRule:
    return ParsingRule(
        bank_name="BAC",
        amount_pattern=r"Monto:\s*₡?\s*([\d,\.]+\d)",
        date_pattern=r"Fecha:\s*(\d{2}/\d{2}/\d{4})",
        merchant_pattern=r"Comercio:\s*(.+)$",
    )


def insert_rule(db: Database, rule: ParsingRule) -> None:
    with db.transaction() as conn:
        conn.execute(
            """
            INSERT INTO parsing_rules
                (bank_name, amount_pattern, date_pattern, merchant_pattern, description_pattern, active)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                rule.bank_name,
                rule.amount_pattern,
                rule.date_pattern,
                rule.merchant_pattern,
                rule.description_pattern,
                int(rule.active),
            ),
        )


def count_rows(db: Database, table: str) -> int:
    with db.connection() as conn:
        return conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]
