from __future__ import annotations

import smtplib

import pytest
from conftest import Factory, FakeSmtp

from mailcheck.services.mail.errors import AuthError, ConnectionTimeout, TransportError
from mailcheck.services.mail.smtp import SmtpAdapter, build_message, text_to_html
from mailcheck.services.mail.types import ConnectionParameters, ConnectionState, Endpoint

PARAMS = ConnectionParameters(
    email="someone@gmail.com",
    password="app-password",
    endpoint=Endpoint(host="smtp.gmail.com", port=587, secure=False),
)


def test_text_to_html_escapes_then_breaks_lines() -> None:
    assert text_to_html("a < b\nsecond\r\nthird") == "a &lt; b<br>second<br>third"


def test_build_message_has_plain_and_html_parts() -> None:
    msg = build_message(
        sender="someone@gmail.com", to="bob@example.com", subject="Hi", text="line1\nline2"
    )

    assert msg["To"] == "bob@example.com"
    assert msg["Message-ID"].endswith("@gmail.com>")
    assert msg.get_body(preferencelist=("plain",)).get_content().startswith("line1\nline2")
    assert "line1<br>line2" in msg.get_body(preferencelist=("html",)).get_content()


def test_verify_negotiates_starttls_and_never_sends(settings) -> None:
    client = FakeSmtp()
    factory = Factory(client)
    adapter = SmtpAdapter(settings, client_factory=factory)

    assert adapter.test_connection(PARAMS) is True

    assert factory.calls[0][1]["secure"] is False
    assert client.connected_to == ("smtp.gmail.com", 587)
    assert client.calls == ["ehlo", "starttls", "ehlo", "login"]
    assert client.sent == []
    assert client.quit_called is True
    assert client.sock.timeouts == [settings.SMTP_GREETING_TIMEOUT, settings.SMTP_SOCKET_TIMEOUT]


def test_implicit_tls_skips_starttls(settings) -> None:
    client = FakeSmtp()
    factory = Factory(client)
    adapter = SmtpAdapter(settings, client_factory=factory)
    params = ConnectionParameters(
        email="u@corp.example",
        password="pw",
        endpoint=Endpoint(host="smtp.corp.example", port=465, secure=True),
    )

    adapter.test_connection(params)

    assert factory.calls[0][1]["secure"] is True
    assert "starttls" not in client.calls


def test_send_returns_confirmation(settings) -> None:
    client = FakeSmtp()
    adapter = SmtpAdapter(settings, client_factory=Factory(client))

    confirmation = adapter.send_message(
        PARAMS, to="bob@example.com", subject="Status", text="All good\nBye"
    )

    assert len(client.sent) == 1
    sent = client.sent[0]
    assert sent["From"] == "someone@gmail.com"
    assert sent["Subject"] == "Status"
    assert confirmation.message_id == sent["Message-ID"]
    assert confirmation.accepted == ["bob@example.com"]
    assert confirmation.rejected == []
    assert adapter.last_lifecycle.state is ConnectionState.closed


def test_refused_recipient_is_transport_error(settings) -> None:
    refused = smtplib.SMTPRecipientsRefused({"bob@example.com": (550, b"No such user")})
    client = FakeSmtp(send_error=refused)
    adapter = SmtpAdapter(settings, client_factory=Factory(client))

    with pytest.raises(TransportError, match="bob@example.com"):
        adapter.send_message(PARAMS, to="bob@example.com", subject="x", text="y")
    assert client.quit_called is True


def test_rejected_login_is_auth_error(settings) -> None:
    client = FakeSmtp(
        login_error=smtplib.SMTPAuthenticationError(535, b"5.7.8 Credentials rejected")
    )
    adapter = SmtpAdapter(settings, client_factory=Factory(client))

    with pytest.raises(AuthError):
        adapter.test_connection(PARAMS)
    assert client.sent == []
    assert client.quit_called is True


def test_connection_refused_is_transport_error(settings) -> None:
    adapter = SmtpAdapter(
        settings, client_factory=Factory(error=ConnectionRefusedError(111, "Connection refused"))
    )

    with pytest.raises(TransportError) as excinfo:
        adapter.test_connection(PARAMS)
    assert str(excinfo.value).startswith("SMTP: ")


def test_failed_ehlo_still_releases_the_connection(settings) -> None:
    client = FakeSmtp(ehlo_error=TimeoutError("timed out"))
    adapter = SmtpAdapter(settings, client_factory=Factory(client))

    with pytest.raises(ConnectionTimeout):
        adapter.test_connection(PARAMS)
    assert client.calls == ["ehlo"]
    assert client.quit_called is True
    assert client.closed is True
    assert adapter.last_lifecycle.state is ConnectionState.failed


def test_failed_starttls_still_releases_the_connection(settings) -> None:
    client = FakeSmtp(starttls_error=smtplib.SMTPException("STARTTLS refused"))
    adapter = SmtpAdapter(settings, client_factory=Factory(client))

    with pytest.raises(TransportError, match="STARTTLS refused"):
        adapter.test_connection(PARAMS)
    assert "login" not in client.calls
    assert client.quit_called is True
    assert client.closed is True


def test_send_splits_accepted_and_rejected_recipients(settings) -> None:
    client = FakeSmtp(refused={"carol@example.com": (550, b"No such user")})
    adapter = SmtpAdapter(settings, client_factory=Factory(client))

    confirmation = adapter.send_message(
        PARAMS, to="bob@example.com, Carol <carol@example.com>", subject="x", text="y"
    )

    assert confirmation.accepted == ["bob@example.com"]
    assert confirmation.rejected == ["carol@example.com"]
