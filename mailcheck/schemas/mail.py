from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic.alias_generators import to_camel

from mailcheck.services.mail.types import FolderNode, MessageSummary, SendConfirmation
from mailcheck.services.orchestrator import HostOverrides


def _check_email(v: str) -> str:
    v = v.strip()
    local, sep, domain = v.rpartition("@")
    if not sep or not local or not domain or "." not in domain or " " in v:
        raise ValueError("Invalid email address")
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountRequest(CamelModel):
    email: str = Field(min_length=3, max_length=320)
    password: SecretStr
    receive_protocol: str = Field(
        default="imap",
        max_length=16,
        validation_alias=AliasChoices("fetchProtocol", "receiveProtocol", "receive_protocol"),
    )
    imap_host: str | None = Field(default=None, max_length=255)
    imap_port: int | None = Field(default=None, ge=1, le=65535)
    pop3_host: str | None = Field(default=None, max_length=255)
    pop3_port: int | None = Field(default=None, ge=1, le=65535)
    smtp_host: str | None = Field(default=None, max_length=255)
    smtp_port: int | None = Field(default=None, ge=1, le=65535)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("Password must not be empty")
        return v

    @property
    def overrides(self) -> HostOverrides:
        return HostOverrides(
            imap_host=self.imap_host,
            imap_port=self.imap_port,
            pop3_host=self.pop3_host,
            pop3_port=self.pop3_port,
            smtp_host=self.smtp_host,
            smtp_port=self.smtp_port,
        )


class ConnectionTestRequest(AccountRequest):
    pass


class FetchEmailsRequest(AccountRequest):
    folder: str = Field(default="INBOX", min_length=1, max_length=255)
    count: int = Field(default=10, ge=0, le=1000)


class SendEmailRequest(AccountRequest):
    to: str = Field(min_length=3, max_length=320)
    subject: str = Field(min_length=1, max_length=998)
    text: str = Field(
        min_length=1,
        max_length=100000,
        validation_alias=AliasChoices("text", "body"),
    )

    @field_validator("to")
    @classmethod
    def _validate_to(cls, v: str) -> str:
        return _check_email(v)


class MarkReadRequest(AccountRequest):
    message_ids: list[int] = Field(max_length=1000)
    folder: str = Field(default="INBOX", min_length=1, max_length=255)


class GetFoldersRequest(AccountRequest):
    pass


class CustomApiCallRequest(CamelModel):
    email: str = Field(min_length=3, max_length=320)
    action: str = Field(min_length=1, max_length=200)
    account_data: dict[str, Any] | None = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        return _check_email(v)


class MessageOut(CamelModel):
    id: int
    uid: int | None = None
    sender: str = Field(alias="from")
    recipient: str | None = Field(default=None, alias="to")
    subject: str
    date: str
    timestamp: str | None = None
    body: str | None = None
    unread: bool | None = None

    @classmethod
    def from_summary(cls, msg: MessageSummary, *, protocol: str) -> MessageOut:
        return cls(
            id=msg.id,
            uid=msg.id if protocol == "imap" else None,
            sender=msg.sender,
            recipient=msg.recipient,
            subject=msg.subject,
            date=msg.date,
            timestamp=msg.timestamp.isoformat() if msg.timestamp else None,
            body=msg.body,
            unread=msg.unread,
        )


class FolderOut(CamelModel):
    name: str
    delimiter: str | None
    children: list[str]

    @classmethod
    def from_node(cls, node: FolderNode) -> FolderOut:
        return cls(name=node.name, delimiter=node.delimiter, children=node.children)


class ConnectionTestResponse(CamelModel):
    success: bool
    protocol: str
    receive_ok: bool
    send_ok: bool
    smtp: bool
    errors: list[str]
    error: str | None


class FetchEmailsResponse(CamelModel):
    success: bool
    emails: list[MessageOut] = Field(default_factory=list)
    count: int = 0
    error: str | None = None


class SendEmailResponse(CamelModel):
    success: bool
    message: str | None = None
    message_id: str | None = None
    accepted: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)
    error: str | None = None

    @classmethod
    def from_confirmation(cls, confirmation: SendConfirmation) -> SendEmailResponse:
        return cls(
            success=True,
            message="Email sent successfully",
            message_id=confirmation.message_id,
            accepted=confirmation.accepted,
            rejected=confirmation.rejected,
        )


class MarkReadResponse(CamelModel):
    success: bool
    message: str | None = None
    error: str | None = None


class GetFoldersResponse(CamelModel):
    success: bool
    folders: list[FolderOut] = Field(default_factory=list)
    error: str | None = None


class CustomApiCallResponse(CamelModel):
    success: bool
    data: Any = None
    message: str | None = None
    error: str | None = None


class EndpointOut(CamelModel):
    host: str
    port: int
    secure: bool


class ProviderOut(CamelModel):
    key: str
    name: str
    imap: EndpointOut | None
    pop3: EndpointOut | None
    smtp: EndpointOut | None
    requires_app_password: bool
    help_url: str | None
