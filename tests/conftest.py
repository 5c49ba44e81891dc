from __future__ import annotations

import poplib
from typing import Any

import pytest

from mailcheck.core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch) -> None:
    # Tests never talk to the real activity API.
    monkeypatch.setenv("LOG_TO_API", "false")
    monkeypatch.setenv("API_BASE_URL", "https://activity.test/api")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return get_settings()


def make_raw(
    *,
    subject: str | None = "Hello",
    sender: str = "Alice <alice@example.com>",
    to: str = "bob@example.com",
    date: str | None = "Mon, 02 Mar 2026 10:00:00 +0000",
    body: str = "Hi there",
) -> bytes:
    headers = [f"From: {sender}", f"To: {to}"]
    if subject is not None:
        headers.append(f"Subject: {subject}")
    if date is not None:
        headers.append(f"Date: {date}")
    return ("\r\n".join(headers) + "\r\n\r\n" + body + "\r\n").encode("utf-8")


class FakeSocket:
    def __init__(self) -> None:
        self.timeouts: list[float] = []

    def settimeout(self, value: float) -> None:
        self.timeouts.append(value)


class FakeImapClient:
    """In-memory stand-in for ``IMAPClient`` keyed by sequence number."""

    def __init__(
        self,
        *,
        messages: dict[int, tuple[int, bytes, tuple[bytes, ...]]] | None = None,
        folders: list[tuple[tuple[bytes, ...], bytes, str]] | None = None,
        login_error: Exception | None = None,
        select_error: Exception | None = None,
        starttls_error: Exception | None = None,
        capabilities: tuple[str, ...] = (),
    ) -> None:
        self.messages = messages or {}
        self.folders = folders or []
        self.login_error = login_error
        self.select_error = select_error
        self.starttls_error = starttls_error
        self.capabilities = capabilities
        self.sock = FakeSocket()
        self.use_uid = True
        self.calls: list[tuple[Any, ...]] = []
        self.logged_out = False

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    def starttls(self, ssl_context: Any = None) -> None:
        self.calls.append(("starttls",))
        if self.starttls_error is not None:
            raise self.starttls_error

    def login(self, username: str, password: str) -> None:
        self.calls.append(("login", username))
        if self.login_error is not None:
            raise self.login_error

    def socket(self) -> FakeSocket:
        return self.sock

    def select_folder(self, folder: str, readonly: bool = False) -> dict[bytes, Any]:
        self.calls.append(("select_folder", folder, readonly))
        if self.select_error is not None:
            raise self.select_error
        return {b"EXISTS": len(self.messages)}

    def fetch(self, messages: str, data: list[bytes]) -> dict[int, dict[bytes, Any]]:
        self.calls.append(("fetch", messages, self.use_uid))
        start, end = (int(x) for x in messages.split(":"))
        out: dict[int, dict[bytes, Any]] = {}
        for seq in range(start, end + 1):
            uid, raw, flags = self.messages[seq]
            out[seq] = {b"UID": uid, b"FLAGS": flags, b"BODY[]": raw, b"SEQ": seq}
        return out

    def add_flags(self, messages: list[int], flags: list[bytes]) -> None:
        self.calls.append(("add_flags", list(messages), list(flags)))

    def list_folders(self) -> list[tuple[tuple[bytes, ...], bytes, str]]:
        self.calls.append(("list_folders",))
        return self.folders

    def logout(self) -> None:
        self.logged_out = True


class FakePop3:
    def __init__(
        self,
        messages: list[bytes] | None = None,
        *,
        fail_indexes: tuple[int, ...] = (),
        drop_at: int | None = None,
        reject_login: bool = False,
    ) -> None:
        self.messages = messages or []
        self.fail_indexes = fail_indexes
        self.drop_at = drop_at
        self.reject_login = reject_login
        self.sock = FakeSocket()
        self.retrieved: list[int] = []
        self.quit_called = False
        self.closed = False

    def user(self, user: str) -> bytes:
        return b"+OK"

    def pass_(self, pswd: str) -> bytes:
        if self.reject_login:
            raise poplib.error_proto(b"-ERR [AUTH] Username and password not accepted.")
        return b"+OK"

    def stat(self) -> tuple[int, int]:
        return len(self.messages), sum(len(m) for m in self.messages)

    def retr(self, which: int) -> tuple[bytes, list[bytes], int]:
        self.retrieved.append(which)
        if which in self.fail_indexes:
            raise poplib.error_proto(b"-ERR no such message")
        if which == self.drop_at:
            raise ConnectionResetError(104, "Connection reset by peer")
        raw = self.messages[which - 1]
        return b"+OK", raw.split(b"\r\n"), len(raw)

    def quit(self) -> bytes:
        self.quit_called = True
        return b"+OK"

    def close(self) -> None:
        self.closed = True


class FakeSmtp:
    def __init__(
        self,
        *,
        extensions: tuple[str, ...] = ("starttls",),
        login_error: Exception | None = None,
        send_error: Exception | None = None,
        ehlo_error: Exception | None = None,
        starttls_error: Exception | None = None,
        refused: dict[str, tuple[int, bytes]] | None = None,
    ) -> None:
        self.extensions = extensions
        self.login_error = login_error
        self.send_error = send_error
        self.ehlo_error = ehlo_error
        self.starttls_error = starttls_error
        self.refused = refused or {}
        self.sock: FakeSocket | None = None
        self.connected_to: tuple[str, int] | None = None
        self.calls: list[str] = []
        self.sent: list[Any] = []
        self.quit_called = False
        self.closed = False

    def connect(self, host: str, port: int) -> tuple[int, bytes]:
        self.connected_to = (host, port)
        self.sock = FakeSocket()
        return 220, b"ready"

    def ehlo(self) -> tuple[int, bytes]:
        self.calls.append("ehlo")
        if self.ehlo_error is not None:
            raise self.ehlo_error
        return 250, b"hello"

    def has_extn(self, opt: str) -> bool:
        return opt.lower() in self.extensions

    def starttls(self, context: Any = None) -> tuple[int, bytes]:
        self.calls.append("starttls")
        if self.starttls_error is not None:
            raise self.starttls_error
        return 220, b"go ahead"

    def login(self, user: str, password: str) -> tuple[int, bytes]:
        self.calls.append("login")
        if self.login_error is not None:
            raise self.login_error
        return 235, b"ok"

    def send_message(self, msg: Any) -> dict[str, tuple[int, bytes]]:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(msg)
        return dict(self.refused)

    def quit(self) -> tuple[int, bytes]:
        self.quit_called = True
        return 221, b"bye"

    def close(self) -> None:
        self.closed = True


class Factory:
    """Client factory that hands out a prepared fake and records how it was called."""

    def __init__(self, client: Any = None, *, error: Exception | None = None) -> None:
        self.client = client
        self.error = error
        self.calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        return self.client


class ActivityRecorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, action: str, data: dict[str, Any]) -> None:
        self.events.append((action, data))

    @property
    def actions(self) -> list[str]:
        return [a for a, _ in self.events]
