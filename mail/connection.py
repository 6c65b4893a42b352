import ssl
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional, TypeVar

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from mail.errors import MailAuthenticationError, MailConnectionError, TokenUnavailableError
from mail.server_resolver import ServerAddress, resolve_server
from models.data_models import MailAccount
from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Worth another attempt; DNS and TLS failures are not
TRANSIENT_ERRORS = (TimeoutError, ConnectionRefusedError)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    IN_USE = "in_use"


class TokenProvider(ABC):
    """Supplies the current OAuth2 access token for an account.

    Refreshing tokens is the provider's business, not the mailbox code's.
    A stale token simply fails XOAUTH2 and surfaces as an authentication error.
    """

    @abstractmethod
    def access_token(self, account: MailAccount) -> str:
        ...


class ConnectionManager:
    """Opens and authenticates IMAP connections for mail accounts.

    Use session() / with_connection() rather than connect() directly so the
    connection is always logged out, whatever happens in between.
    """

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 60.0,
        connect_attempts: int = 3,
        mailbox: str = "INBOX",
        ssl_context: Optional[ssl.SSLContext] = None,
        retry_wait=None,
    ):
        self.token_provider = token_provider
        self.timeout = timeout
        self.connect_attempts = max(1, connect_attempts)
        self.mailbox = mailbox
        self.ssl_context = ssl_context
        self.retry_wait = retry_wait or wait_exponential(multiplier=2, min=4, max=60)

    def connect(self, account: MailAccount) -> IMAPClient:
        """Open a TLS connection to the account's server.

        Raises:
            MailConnectionError: on DNS, TLS, refused or timed-out connections.
        """
        server = resolve_server(account)
        logger.info(f"Connecting to {server.host}:{server.port} for {account.email}")
        retrying = Retrying(
            stop=stop_after_attempt(self.connect_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        )
        try:
            return retrying(self._open, server)
        except (OSError, IMAPClientError) as e:
            raise MailConnectionError(
                f"Failed to connect to IMAP server {server.host}:{server.port}: {e}"
            ) from e

    def _open(self, server: ServerAddress) -> IMAPClient:
        context = self.ssl_context or ssl.create_default_context()
        return IMAPClient(
            server.host,
            port=server.port,
            ssl=server.ssl,
            ssl_context=context,
            timeout=self.timeout,
        )

    def authenticate(self, client: IMAPClient, account: MailAccount) -> None:
        """Log in with XOAUTH2 when OAuth is configured, else with the password.

        Raises:
            MailAuthenticationError: wrapping whatever went wrong.
        """
        try:
            if account.oauth_configured:
                if self.token_provider is None:
                    raise TokenUnavailableError("no token provider configured")
                token = self.token_provider.access_token(account)
                client.oauth2_login(account.email, token)
                logger.info(f"Authenticated {account.email} with XOAUTH2")
            else:
                client.login(account.email, account.password or "")
                logger.info(f"Authenticated {account.email} with password")
        except Exception as e:
            raise MailAuthenticationError(
                f"IMAP authentication failed for {account.email}: {e}"
            ) from e

    def open_mailbox(self, client: IMAPClient) -> None:
        """EXAMINE the mailbox so nothing we do can change flags."""
        try:
            client.select_folder(self.mailbox, readonly=True)
        except (OSError, IMAPClientError) as e:
            raise MailConnectionError(f"Could not open mailbox {self.mailbox}: {e}") from e

    def disconnect(self, client: Optional[IMAPClient]) -> None:
        """Log out. Failures are logged, never raised."""
        if client is None:
            return
        try:
            client.logout()
            logger.debug("Disconnected from IMAP server")
        except Exception as e:
            logger.warning(f"Error during IMAP logout: {e}")

    def session(self, account: MailAccount) -> "MailboxSession":
        return MailboxSession(self, account)

    def with_connection(self, account: MailAccount, body: Callable[[IMAPClient], T]) -> T:
        """Connect, authenticate, run body(client) and always disconnect."""
        with self.session(account) as client:
            return body(client)

    def test_connection(self, account: MailAccount) -> tuple[bool, str]:
        """Check that the account can log in and open its mailbox."""
        try:
            self.with_connection(account, lambda client: None)
        except (MailConnectionError, MailAuthenticationError) as e:
            return False, str(e)
        return True, "Connection successful"


class MailboxSession:
    """Owns one IMAP connection from connect to logout.

    DISCONNECTED -> CONNECTED -> AUTHENTICATED -> IN_USE -> DISCONNECTED.
    Closing an already closed session does nothing.
    """

    def __init__(self, manager: ConnectionManager, account: MailAccount):
        self.manager = manager
        self.account = account
        self.client: Optional[IMAPClient] = None
        self.state = ConnectionState.DISCONNECTED

    def open(self) -> IMAPClient:
        if self.state is not ConnectionState.DISCONNECTED:
            raise RuntimeError(f"Session for {self.account.email} is already {self.state.value}")

        self.client = self.manager.connect(self.account)
        self.state = ConnectionState.CONNECTED
        try:
            self.manager.authenticate(self.client, self.account)
            self.state = ConnectionState.AUTHENTICATED
            self.manager.open_mailbox(self.client)
            self.state = ConnectionState.IN_USE
        except BaseException:
            self.close()
            raise
        return self.client

    def close(self) -> None:
        if self.state is ConnectionState.DISCONNECTED:
            return
        client, self.client = self.client, None
        self.state = ConnectionState.DISCONNECTED
        self.manager.disconnect(client)

    def __enter__(self) -> IMAPClient:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
