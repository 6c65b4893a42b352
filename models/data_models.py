from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class OAuthSettings:
    """Where the current XOAUTH2 access token for an account lives."""
    token_file: str
    provider: str = "google"


@dataclass(frozen=True)
class MailAccount:
    """A mailbox we pull bank notifications from."""
    email: str
    bank_name: str
    provider: str = "custom"
    password: Optional[str] = None
    oauth: Optional[OAuthSettings] = None
    imap_host: Optional[str] = None
    imap_port: Optional[int] = None
    active: bool = True
    id: Optional[int] = None

    @property
    def oauth_configured(self) -> bool:
        return self.oauth is not None

    @property
    def domain(self) -> str:
        return self.email.rsplit("@", 1)[-1].strip().lower()


@dataclass
class EmailRecord:
    """Parsed representation of a raw IMAP message. Lives only for one run."""
    uid: int
    message_id: str
    sender: str
    subject: str
    timestamp: Optional[datetime]
    text_body: str = ""
    html_body: str = ""
    raw_body: str = ""

    @property
    def body(self) -> str:
        """HTML part first, then the plain-text part, then the raw body."""
        return self.html_body or self.text_body or self.raw_body


@dataclass(frozen=True)
class ParsingRule:
    """Per-bank regex configuration. Administered outside this project."""
    bank_name: str
    amount_pattern: str
    date_pattern: str
    merchant_pattern: Optional[str] = None
    description_pattern: Optional[str] = None
    active: bool = True
    id: Optional[int] = None


@dataclass(frozen=True)
class CandidateTransaction:
    """One transaction pulled out of an email, not yet validated or stored."""
    amount: Decimal
    transaction_date: Optional[date]
    currency: Optional[str] = None
    merchant: Optional[str] = None
    description: Optional[str] = None
    raw_text: str = ""
    message_id: str = ""


@dataclass(frozen=True)
class ExpenseRecord:
    """A stored expense as handed to a categorizer."""
    id: int
    account_id: int
    amount: Decimal
    currency: str
    transaction_date: date
    merchant_name: Optional[str]
    description: Optional[str]
    bank_name: str


@dataclass(frozen=True)
class CategorizationResult:
    """What a categorizer returns for one expense."""
    category: str
    confidence: float     # 0.0 – 1.0
    method: str


@dataclass
class PersistResult:
    """Outcome of persisting the candidates of one email."""
    expense_ids: list[int] = field(default_factory=list)
    skipped: bool = False
    reason: str = ""

    @property
    def created(self) -> int:
        return len(self.expense_ids)


@dataclass
class EmailOutcome:
    """Per-email line of a sync report."""
    message_id: str
    subject: str
    success: bool
    expenses_created: int = 0
    error: str = ""


@dataclass
class SyncReport:
    """Summary of one sync run for one account."""
    account_email: str
    emails_found: int = 0
    outcomes: list[EmailOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    fatal_error: str = ""

    @property
    def success(self) -> bool:
        return not self.fatal_error

    @property
    def emails_processed(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def emails_failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def expenses_created(self) -> int:
        return sum(o.expenses_created for o in self.outcomes)
