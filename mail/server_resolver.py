from dataclasses import dataclass

from models.data_models import MailAccount

DEFAULT_IMAP_PORT = 993

# Public providers whose IMAP host is not simply imap.<domain>
KNOWN_SERVERS: dict[str, str] = {
    "gmail.com": "imap.gmail.com",
    "googlemail.com": "imap.gmail.com",
    "outlook.com": "outlook.office365.com",
    "hotmail.com": "outlook.office365.com",
    "live.com": "outlook.office365.com",
    "yahoo.com": "imap.mail.yahoo.com",
    "icloud.com": "imap.mail.me.com",
    "me.com": "imap.mail.me.com",
    "mac.com": "imap.mail.me.com",
}


@dataclass(frozen=True)
class ServerAddress:
    host: str
    port: int = DEFAULT_IMAP_PORT
    ssl: bool = True


def resolve_host(domain: str) -> str:
    """Map an email domain to its IMAP host, e.g. gmail.com -> imap.gmail.com."""
    domain = domain.strip().lower()
    return KNOWN_SERVERS.get(domain, f"imap.{domain}")


def resolve_server(account: MailAccount) -> ServerAddress:
    """Where to connect for this account.

    An explicit host or port on the account always wins over the lookup.
    """
    host = account.imap_host or resolve_host(account.domain)
    port = account.imap_port or DEFAULT_IMAP_PORT
    return ServerAddress(host=host, port=port, ssl=True)


def provider_for_domain(domain: str) -> str:
    """Short provider kind for a domain: gmail, outlook, yahoo, icloud or custom."""
    host = resolve_host(domain)
    if host == "imap.gmail.com":
        return "gmail"
    if host == "outlook.office365.com":
        return "outlook"
    if host == "imap.mail.yahoo.com":
        return "yahoo"
    if host == "imap.mail.me.com":
        return "icloud"
    return "custom"
