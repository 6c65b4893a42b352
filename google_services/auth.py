from pathlib import Path

from google.oauth2.credentials import Credentials

from mail.connection import TokenProvider
from mail.errors import TokenUnavailableError
from models.data_models import MailAccount
from utils.logger import get_logger

logger = get_logger(__name__)

# Full mailbox scope; Gmail accepts nothing narrower for IMAP
GMAIL_IMAP_SCOPES = ["https://mail.google.com/"]


class GoogleTokenProvider(TokenProvider):
    """Reads the access token from an account's saved Google token file.

    The token file is the authorized-user JSON written by whatever tool
    performed the OAuth consent. Refreshing it is that tool's job; an
    expired token is handed over as is and fails XOAUTH2 on the server.
    """

    def __init__(self, scopes: list[str] = GMAIL_IMAP_SCOPES):
        self.scopes = scopes

    def access_token(self, account: MailAccount) -> str:
        if account.oauth is None:
            raise TokenUnavailableError(f"No OAuth token file configured for {account.email}")

        token_file = Path(account.oauth.token_file)
        if not token_file.exists():
            raise TokenUnavailableError(f"Google token file not found: {token_file}")

        try:
            creds = Credentials.from_authorized_user_file(str(token_file), self.scopes)
        except ValueError as e:
            raise TokenUnavailableError(f"Invalid Google token file {token_file}: {e}") from e

        if not creds.token:
            raise TokenUnavailableError(f"No access token stored in {token_file}")

        if creds.expired:
            logger.warning(f"Google access token for {account.email} has expired")
        return creds.token
