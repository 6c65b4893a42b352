class MailboxError(Exception):
    """Base class for everything that can go wrong talking to a mailbox."""


class MailConnectionError(MailboxError):
    """DNS, TLS, refused or timed-out connection. Fatal for the run."""


class MailAuthenticationError(MailboxError):
    """Login or XOAUTH2 rejected, or no usable token. Fatal for the run."""


class TokenUnavailableError(MailboxError):
    """The token provider has no current access token for the account."""


class MessageParseError(MailboxError):
    """A fetched message could not be turned into an EmailRecord."""
