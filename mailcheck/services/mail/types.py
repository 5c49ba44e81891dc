from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class Protocol(str, enum.Enum):
    imap = "imap"
    pop3 = "pop3"
    smtp = "smtp"


class ConnectionState(str, enum.Enum):
    idle = "idle"
    connecting = "connecting"
    authenticated = "authenticated"
    operating = "operating"
    closed = "closed"
    failed = "failed"


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int
    secure: bool


@dataclass(frozen=True)
class ConnectionParameters:
    email: str
    password: str = field(repr=False)
    endpoint: Endpoint


@dataclass(frozen=True)
class MessageSummary:
    id: int
    sender: str
    recipient: str | None
    subject: str
    date: str
    timestamp: datetime | None
    body: str | None
    unread: bool | None = None


@dataclass(frozen=True)
class MailboxNode:
    delimiter: str | None
    children: dict[str, MailboxNode] = field(default_factory=dict)


@dataclass(frozen=True)
class FolderNode:
    name: str
    delimiter: str | None
    children: list[str]


@dataclass(frozen=True)
class SendConfirmation:
    message_id: str
    accepted: list[str]
    rejected: list[str]


@dataclass(frozen=True)
class ConnectionTestResult:
    protocol: str
    receive_ok: bool
    send_ok: bool
    errors: list[str]

    @property
    def success(self) -> bool:
        return self.receive_ok and self.send_ok
