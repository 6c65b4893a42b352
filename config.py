import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

from mail.server_resolver import provider_for_domain
from models.data_models import MailAccount, OAuthSettings

load_dotenv()

CATEGORIZERS = ("keyword", "claude", "none")


def _require(key: str) -> str:
    val = os.getenv(key)
    if not val:
        raise EnvironmentError(f"Missing required environment variable: {key}")
    return val


def _optional(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _int(key: str, default: int) -> int:
    raw = _optional(key, str(default))
    try:
        return int(raw)
    except ValueError:
        raise EnvironmentError(f"{key} must be an integer, got '{raw}'") from None


def _load_imap_accounts() -> list[MailAccount]:
    """Load one or more mail accounts from env vars.
    Account 1 uses plain keys (IMAP_EMAIL, etc.).
    Additional accounts use suffixed keys (IMAP_EMAIL_2, IMAP_EMAIL_3, etc.).
    """
    accounts = []
    for suffix in ["", "_2", "_3", "_4", "_5"]:
        email = os.getenv(f"IMAP_EMAIL{suffix}")
        if not email:
            continue

        token_file = os.getenv(f"IMAP_OAUTH_TOKEN_FILE{suffix}")
        password = os.getenv(f"IMAP_PASSWORD{suffix}")
        if not token_file and not password:
            raise EnvironmentError(
                f"Missing required environment variable: IMAP_PASSWORD{suffix} "
                f"(or IMAP_OAUTH_TOKEN_FILE{suffix})"
            )

        domain = email.rsplit("@", 1)[-1]
        port = os.getenv(f"IMAP_PORT{suffix}")
        accounts.append(MailAccount(
            email=email,
            bank_name=_require(f"IMAP_BANK{suffix}"),
            provider=os.getenv(f"IMAP_PROVIDER{suffix}") or provider_for_domain(domain),
            password=password or None,
            oauth=OAuthSettings(token_file=token_file) if token_file else None,
            imap_host=os.getenv(f"IMAP_HOST{suffix}") or None,
            imap_port=_int(f"IMAP_PORT{suffix}", 993) if port else None,
        ))
    if not accounts:
        raise EnvironmentError("No mail accounts configured. Set at least IMAP_EMAIL, IMAP_PASSWORD, IMAP_BANK.")
    return accounts


@dataclass
class Settings:
    # Email
    imap_accounts: list[MailAccount]
    imap_timeout_seconds: int
    imap_connect_attempts: int
    imap_mailbox: str
    fetch_limit: int
    fetch_batch_size: int

    # Sync
    sync_lookback_days: int
    sync_interval_minutes: int     # 0 = run once

    # Extraction / storage
    amount_ceiling: Decimal
    default_currency: str
    database_path: str

    # Categorization
    categorizer: str               # "keyword", "claude" or "none"
    categorization_threshold: float
    anthropic_api_key: str
    claude_model: str

    # Logging
    log_level: str
    log_file: str


def load_settings() -> Settings:
    categorizer = _optional("CATEGORIZER", "keyword").lower()
    if categorizer not in CATEGORIZERS:
        raise EnvironmentError(f"CATEGORIZER must be one of {', '.join(CATEGORIZERS)}, got '{categorizer}'")

    try:
        amount_ceiling = Decimal(_optional("AMOUNT_CEILING", "1000000"))
    except InvalidOperation:
        raise EnvironmentError("AMOUNT_CEILING must be a number") from None

    return Settings(
        imap_accounts=_load_imap_accounts(),
        imap_timeout_seconds=_int("IMAP_TIMEOUT_SECONDS", 60),
        imap_connect_attempts=_int("IMAP_CONNECT_ATTEMPTS", 3),
        imap_mailbox=_optional("IMAP_MAILBOX", "INBOX"),
        fetch_limit=_int("FETCH_LIMIT", 100),
        fetch_batch_size=_int("FETCH_BATCH_SIZE", 20),
        sync_lookback_days=_int("SYNC_LOOKBACK_DAYS", 7),
        sync_interval_minutes=_int("SYNC_INTERVAL_MINUTES", 0),
        amount_ceiling=amount_ceiling,
        default_currency=_optional("DEFAULT_CURRENCY", "usd").lower(),
        database_path=_optional("DATABASE_PATH", "data/expenses.db"),
        categorizer=categorizer,
        categorization_threshold=float(_optional("CATEGORIZATION_THRESHOLD", "0.7")),
        anthropic_api_key=_require("ANTHROPIC_API_KEY") if categorizer == "claude" else _optional("ANTHROPIC_API_KEY"),
        claude_model=_optional("CLAUDE_MODEL", "claude-opus-4-6"),
        log_level=_optional("LOG_LEVEL", "INFO"),
        log_file=_optional("LOG_FILE", ""),
    )
