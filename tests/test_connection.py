import socket

import pytest
from tenacity import wait_none

from mail.connection import ConnectionManager, ConnectionState, MailboxSession, TokenProvider
from mail.errors import MailAuthenticationError, MailConnectionError, TokenUnavailableError
from models.data_models import MailAccount, OAuthSettings


class StaticTokenProvider(TokenProvider):
    def __init__(self, token="ya29.token"):
        self.token = token
        self.calls = 0

    def access_token(self, account):
        self.calls += 1
        return self.token


class MissingTokenProvider(TokenProvider):
    def access_token(self, account):
        raise TokenUnavailableError(f"no token for {account.email}")


@pytest.fixture
def password_account():
    return MailAccount(email="me@gmail.com", bank_name="BAC", password="secret")


@pytest.fixture
def oauth_account():
    return MailAccount(
        email="me@gmail.com",
        bank_name="BAC",
        oauth=OAuthSettings(token_file="credentials/me.json"),
    )


class TestConnect:

    def test_opens_tls_connection_to_resolved_host(self, fake_imap, password_account):
        client = ConnectionManager(timeout=15).connect(password_account)
        assert client.host == "imap.gmail.com"
        assert client.port == 993
        assert client.ssl is True
        assert client.timeout == 15

    def test_retries_refused_connections(self, monkeypatch, password_account):
        attempts = []

        def flaky(host, **kwargs):
            attempts.append(host)
            if len(attempts) < 3:
                raise ConnectionRefusedError("refused")
            return "client"

        monkeypatch.setattr("mail.connection.IMAPClient", flaky)
        manager = ConnectionManager(connect_attempts=3, retry_wait=wait_none())
        assert manager.connect(password_account) == "client"
        assert len(attempts) == 3

    def test_gives_up_after_attempts(self, monkeypatch, password_account):
        def refused(host, **kwargs):
            raise TimeoutError("timed out")

        monkeypatch.setattr("mail.connection.IMAPClient", refused)
        manager = ConnectionManager(connect_attempts=2, retry_wait=wait_none())
        with pytest.raises(MailConnectionError, match="imap.gmail.com:993"):
            manager.connect(password_account)

    def test_dns_failure_not_retried(self, monkeypatch, password_account):
        attempts = []

        def unresolvable(host, **kwargs):
            attempts.append(host)
            raise socket.gaierror("Name or service not known")

        monkeypatch.setattr("mail.connection.IMAPClient", unresolvable)
        manager = ConnectionManager(connect_attempts=3, retry_wait=wait_none())
        with pytest.raises(MailConnectionError) as exc_info:
            manager.connect(password_account)
        assert len(attempts) == 1
        assert isinstance(exc_info.value.__cause__, socket.gaierror)


class TestAuthenticate:

    def test_password_login(self, fake_imap, password_account):
        manager = ConnectionManager()
        client = manager.connect(password_account)
        manager.authenticate(client, password_account)
        assert client.logged_in_as == "me@gmail.com"
        assert client.oauth_token is None

    def test_xoauth2_when_oauth_configured(self, fake_imap, oauth_account):
        provider = StaticTokenProvider()
        manager = ConnectionManager(token_provider=provider)
        client = manager.connect(oauth_account)
        manager.authenticate(client, oauth_account)
        assert client.oauth_token == "ya29.token"
        assert provider.calls == 1

    def test_rejected_credentials(self, fake_imap, password_account):
        fake_imap.fail_logins()
        manager = ConnectionManager()
        client = manager.connect(password_account)
        with pytest.raises(MailAuthenticationError, match="me@gmail.com"):
            manager.authenticate(client, password_account)

    def test_missing_token_is_authentication_error(self, fake_imap, oauth_account):
        manager = ConnectionManager(token_provider=MissingTokenProvider())
        client = manager.connect(oauth_account)
        with pytest.raises(MailAuthenticationError) as exc_info:
            manager.authenticate(client, oauth_account)
        assert isinstance(exc_info.value.__cause__, TokenUnavailableError)

    def test_oauth_without_provider(self, fake_imap, oauth_account):
        manager = ConnectionManager()
        client = manager.connect(oauth_account)
        with pytest.raises(MailAuthenticationError):
            manager.authenticate(client, oauth_account)


class TestMailboxSession:

    def test_examines_mailbox_and_logs_out(self, fake_imap, password_account):
        manager = ConnectionManager(mailbox="Bancos")
        with manager.session(password_account) as client:
            assert client.selected == ("Bancos", True)
        assert client.logged_out

    def test_state_transitions(self, fake_imap, password_account):
        session = MailboxSession(ConnectionManager(), password_account)
        assert session.state is ConnectionState.DISCONNECTED
        session.open()
        assert session.state is ConnectionState.IN_USE
        session.close()
        assert session.state is ConnectionState.DISCONNECTED
        assert session.client is None

    def test_close_twice_is_noop(self, fake_imap, password_account):
        session = MailboxSession(ConnectionManager(), password_account)
        session.open()
        session.close()
        session.close()
        assert fake_imap.clients[0].logged_out

    def test_cannot_open_twice(self, fake_imap, password_account):
        session = MailboxSession(ConnectionManager(), password_account)
        session.open()
        with pytest.raises(RuntimeError):
            session.open()
        session.close()

    def test_closed_when_authentication_fails(self, fake_imap, password_account):
        fake_imap.fail_logins()
        session = MailboxSession(ConnectionManager(), password_account)
        with pytest.raises(MailAuthenticationError):
            session.open()
        assert session.state is ConnectionState.DISCONNECTED
        assert fake_imap.clients[0].logged_out

    def test_closed_when_body_raises(self, fake_imap, password_account):
        manager = ConnectionManager()
        with pytest.raises(KeyError):
            with manager.session(password_account):
                raise KeyError("boom")
        assert fake_imap.clients[0].logged_out

    def test_logout_failure_is_swallowed(self, fake_imap, password_account):
        manager = ConnectionManager()
        with manager.session(password_account) as client:
            def broken_logout():
                raise OSError("socket closed")
            client.logout = broken_logout
        # no exception escaped

    def test_body_error_survives_failed_logout(self, fake_imap, password_account):
        manager = ConnectionManager()
        session = manager.session(password_account)
        with pytest.raises(KeyError, match="boom"):
            with session as client:
                def broken_logout():
                    raise OSError("socket closed")
                client.logout = broken_logout
                raise KeyError("boom")
        assert session.state is ConnectionState.DISCONNECTED


class TestWithConnection:

    def test_body_error_propagates_when_logout_fails(self, fake_imap, password_account):
        def broken_logout():
            raise OSError("socket closed")

        def body(client):
            client.logout = broken_logout
            raise ValueError("bad fetch")

        with pytest.raises(ValueError, match="bad fetch"):
            ConnectionManager().with_connection(password_account, body)

    def test_returns_body_result(self, fake_imap, password_account):
        result = ConnectionManager().with_connection(password_account, lambda client: client.host)
        assert result == "imap.gmail.com"
        assert fake_imap.clients[0].logged_out

    def test_test_connection_success(self, fake_imap, password_account):
        assert ConnectionManager().test_connection(password_account) == (True, "Connection successful")

    def test_test_connection_failure(self, fake_imap, password_account):
        fake_imap.fail_logins()
        ok, message = ConnectionManager().test_connection(password_account)
        assert ok is False
        assert "authentication failed" in message
