from __future__ import annotations

import logging

import pytest
from conftest import FakePop3, Factory, make_raw

from mailcheck.services.mail.errors import AuthError, UnsupportedOperation
from mailcheck.services.mail.pop3 import Pop3Adapter
from mailcheck.services.mail.types import ConnectionParameters, ConnectionState, Endpoint

PARAMS = ConnectionParameters(
    email="someone@yandex.ru",
    password="app-password",
    endpoint=Endpoint(host="pop.yandex.ru", port=995, secure=True),
)


def _messages() -> list[bytes]:
    return [
        make_raw(subject="one", date="Sun, 01 Mar 2026 09:00:00 +0000"),
        make_raw(subject="two", date="Mon, 02 Mar 2026 09:00:00 +0000"),
        make_raw(subject="three", date="Tue, 03 Mar 2026 09:00:00 +0000"),
    ]


def test_fetch_retrieves_first_indexes_and_sorts_newest_first(settings) -> None:
    client = FakePop3(_messages())
    factory = Factory(client)
    adapter = Pop3Adapter(settings, client_factory=factory)

    messages = adapter.fetch_messages(PARAMS, folder="INBOX", count=2)

    assert client.retrieved == [1, 2]
    assert [m.subject for m in messages] == ["two", "one"]
    assert [m.id for m in messages] == [2, 1]
    assert all(m.unread is None for m in messages)
    assert client.quit_called is True

    args, kwargs = factory.calls[0]
    assert args == ("pop.yandex.ru", 995)
    assert kwargs["secure"] is True
    assert kwargs["timeout"] == settings.POP3_CONNECTION_TIMEOUT
    assert client.sock.timeouts == [settings.POP3_AUTH_TIMEOUT, settings.POP3_SOCKET_TIMEOUT]


def test_every_index_is_attempted_once_despite_failures(settings, caplog) -> None:
    client = FakePop3(_messages(), fail_indexes=(2,))
    adapter = Pop3Adapter(settings, client_factory=Factory(client))

    with caplog.at_level(logging.INFO, logger="mailcheck.mail"):
        messages = adapter.fetch_messages(PARAMS, folder="INBOX", count=10)

    assert client.retrieved == [1, 2, 3]
    assert [m.subject for m in messages] == ["three", "one"]
    assert any("kept 2 of 3" in r.getMessage() for r in caplog.records)


def test_empty_mailbox_returns_nothing(settings) -> None:
    client = FakePop3([])
    adapter = Pop3Adapter(settings, client_factory=Factory(client))

    assert adapter.fetch_messages(PARAMS, folder="INBOX", count=10) == []
    assert client.retrieved == []


def test_rejected_login_is_auth_error(settings) -> None:
    client = FakePop3(reject_login=True)
    adapter = Pop3Adapter(settings, client_factory=Factory(client))

    with pytest.raises(AuthError) as excinfo:
        adapter.test_connection(PARAMS)

    assert str(excinfo.value).startswith("POP3: -ERR [AUTH]")
    assert client.quit_called is True
    assert adapter.last_lifecycle.state is ConnectionState.failed


def test_mark_read_is_unsupported_without_network(settings) -> None:
    factory = Factory(FakePop3())
    adapter = Pop3Adapter(settings, client_factory=factory)

    with pytest.raises(UnsupportedOperation) as excinfo:
        adapter.mark_read(PARAMS, message_ids=[1], folder="INBOX")

    assert excinfo.value.operation == "mark_read"
    assert factory.calls == []


def test_list_folders_is_empty_without_network(settings) -> None:
    factory = Factory(FakePop3())
    adapter = Pop3Adapter(settings, client_factory=factory)

    assert adapter.list_folders(PARAMS) == []
    assert factory.calls == []


def test_dropped_session_stops_the_batch(settings, caplog) -> None:
    client = FakePop3(_messages(), drop_at=2)
    adapter = Pop3Adapter(settings, client_factory=Factory(client))

    with caplog.at_level(logging.INFO, logger="mailcheck.mail"):
        messages = adapter.fetch_messages(PARAMS, folder="INBOX", count=3)

    assert client.retrieved == [1, 2]
    assert [m.subject for m in messages] == ["one"]
    lost = [r for r in caplog.records if "session lost" in r.getMessage()]
    assert len(lost) == 1
    assert any("kept 1 of 3" in r.getMessage() for r in caplog.records)
    assert client.closed is True
