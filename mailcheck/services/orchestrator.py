from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from mailcheck.core.config import Settings
from mailcheck.core.metrics import observe_mail_operation
from mailcheck.services.activity import ReportActivity
from mailcheck.services.mail.base import MailAdapter
from mailcheck.services.mail.errors import MailError, UnsupportedOperation
from mailcheck.services.mail.imap import ImapAdapter
from mailcheck.services.mail.pop3 import Pop3Adapter
from mailcheck.services.mail.smtp import SmtpAdapter
from mailcheck.services.mail.types import (
    ConnectionParameters,
    ConnectionTestResult,
    FolderNode,
    MessageSummary,
    Protocol,
    SendConfirmation,
)
from mailcheck.services.providers import PROVIDERS, ProviderProfile, resolve

logger = logging.getLogger("mailcheck.mail")

RECEIVE_PROTOCOLS = (Protocol.imap, Protocol.pop3)


@dataclass(frozen=True)
class HostOverrides:
    imap_host: str | None = None
    imap_port: int | None = None
    pop3_host: str | None = None
    pop3_port: int | None = None
    smtp_host: str | None = None
    smtp_port: int | None = None

    def for_protocol(self, protocol: Protocol) -> tuple[str | None, int | None]:
        return (
            getattr(self, f"{protocol.value}_host"),
            getattr(self, f"{protocol.value}_port"),
        )


def _noop_report(action: str, data: dict[str, Any]) -> None:
    return None


def parse_receive_protocol(value: str | Protocol | None) -> Protocol:
    raw = value.value if isinstance(value, Protocol) else (value or "")
    try:
        protocol = Protocol(raw.strip().lower())
    except ValueError:
        raise MailError(f"Unknown receive protocol: {raw!r}") from None
    if protocol not in RECEIVE_PROTOCOLS:
        raise MailError(f"Unknown receive protocol: {raw!r}")
    return protocol


class MailOrchestrator:
    """Operation contracts behind the HTTP routes.

    Every operation resolves settings first, so unresolvable hosts and unsupported
    protocol operations fail before any adapter touches the network. Each adapter
    call is attempted exactly once.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        imap: MailAdapter | None = None,
        pop3: MailAdapter | None = None,
        smtp: SmtpAdapter | None = None,
        report: ReportActivity | None = None,
        providers: tuple[ProviderProfile, ...] = PROVIDERS,
    ) -> None:
        self.settings = settings
        self.imap = imap or ImapAdapter(settings)
        self.pop3 = pop3 or Pop3Adapter(settings)
        self.smtp = smtp or SmtpAdapter(settings)
        self.providers = providers
        self._report = report or _noop_report

    def _adapter(self, protocol: Protocol) -> MailAdapter:
        return {Protocol.imap: self.imap, Protocol.pop3: self.pop3, Protocol.smtp: self.smtp}[
            protocol
        ]

    def _params(
        self,
        *,
        email: str,
        password: str,
        protocol: Protocol,
        overrides: HostOverrides,
    ) -> ConnectionParameters:
        host, port = overrides.for_protocol(protocol)
        endpoint = resolve(email, protocol, host, port, providers=self.providers)
        return ConnectionParameters(email=email, password=password, endpoint=endpoint)

    @contextmanager
    def _observed(self, protocol: Protocol, operation: str) -> Iterator[None]:
        started = time.perf_counter()
        ok = False
        try:
            yield
            ok = True
        finally:
            observe_mail_operation(
                protocol=protocol.value,
                operation=operation,
                ok=ok,
                duration_seconds=time.perf_counter() - started,
            )

    def test_connection(
        self,
        *,
        email: str,
        password: str,
        receive_protocol: str | Protocol | None,
        overrides: HostOverrides = HostOverrides(),
    ) -> ConnectionTestResult:
        errors: list[str] = []
        receive_ok = False
        send_ok = False
        protocol_name = str(getattr(receive_protocol, "value", receive_protocol) or "")

        # Receive leg. A failure here never skips the send leg.
        try:
            protocol = parse_receive_protocol(receive_protocol)
            protocol_name = protocol.value
            params = self._params(
                email=email, password=password, protocol=protocol, overrides=overrides
            )
            with self._observed(protocol, "test_connection"):
                receive_ok = self._adapter(protocol).test_connection(params)
        except MailError as e:
            errors.append(str(e))
            logger.error("Receive check failed for %s: %s", email, e)

        # Send leg.
        try:
            params = self._params(
                email=email, password=password, protocol=Protocol.smtp, overrides=overrides
            )
            with self._observed(Protocol.smtp, "test_connection"):
                send_ok = self.smtp.test_connection(params)
        except MailError as e:
            errors.append(str(e))
            logger.error("SMTP check failed for %s: %s", email, e)

        result = ConnectionTestResult(
            protocol=protocol_name,
            receive_ok=receive_ok,
            send_ok=send_ok,
            errors=errors,
        )
        if result.success:
            logger.info("Connection for %s tested successfully", email)
            self._report(
                "connection_test_success",
                {"email": email, protocol_name: True, "smtp": True},
            )
        else:
            self._report(
                "connection_test_failed",
                {
                    "email": email,
                    protocol_name or "receive": receive_ok,
                    "smtp": send_ok,
                    "errors": ", ".join(errors),
                },
            )
        return result

    def fetch_messages(
        self,
        *,
        email: str,
        password: str,
        receive_protocol: str | Protocol | None,
        folder: str | None = None,
        count: int | None = None,
        overrides: HostOverrides = HostOverrides(),
    ) -> list[MessageSummary]:
        folder = folder or self.settings.DEFAULT_FETCH_FOLDER
        if count is None:
            count = self.settings.DEFAULT_FETCH_COUNT
        count = max(0, min(count, self.settings.MAX_FETCH_COUNT))

        try:
            protocol = parse_receive_protocol(receive_protocol)
            logger.info(
                "%s fetching up to %s messages via %s", email, count, protocol.value.upper()
            )
            params = self._params(
                email=email, password=password, protocol=protocol, overrides=overrides
            )
            with self._observed(protocol, "fetch_messages"):
                messages = self._adapter(protocol).fetch_messages(
                    params, folder=folder, count=count
                )
        except MailError as e:
            logger.error("Fetching messages failed for %s: %s", email, e)
            self._report(
                "emails_fetch_failed",
                {
                    "email": email,
                    "protocol": getattr(receive_protocol, "value", receive_protocol),
                    "error": str(e),
                },
            )
            raise

        logger.info(
            "Fetched %s messages for %s via %s", len(messages), email, protocol.value.upper()
        )
        self._report(
            "emails_fetched",
            {"email": email, "protocol": protocol.value, "count": len(messages)},
        )
        return messages

    def send_message(
        self,
        *,
        email: str,
        password: str,
        to: str,
        subject: str,
        text: str,
        overrides: HostOverrides = HostOverrides(),
    ) -> SendConfirmation:
        logger.info("%s sending a message to %s", email, to)
        try:
            params = self._params(
                email=email, password=password, protocol=Protocol.smtp, overrides=overrides
            )
            with self._observed(Protocol.smtp, "send_message"):
                confirmation = self.smtp.send_message(params, to=to, subject=subject, text=text)
        except MailError as e:
            logger.error("Sending from %s failed: %s", email, e)
            self._report(
                "email_sent_failed",
                {"email": email, "to": to, "subject": subject, "error": str(e)},
            )
            raise

        logger.info("Message from %s to %s sent", email, to)
        self._report("email_sent_success", {"email": email, "to": to, "subject": subject})
        return confirmation

    def mark_read(
        self,
        *,
        email: str,
        password: str,
        message_ids: list[int],
        receive_protocol: str | Protocol | None = Protocol.imap,
        folder: str | None = None,
        overrides: HostOverrides = HostOverrides(),
    ) -> bool:
        folder = folder or self.settings.DEFAULT_FETCH_FOLDER
        try:
            protocol = parse_receive_protocol(receive_protocol)
            if protocol is not Protocol.imap:
                # POP3 has no read state; it is never asked to connect.
                raise UnsupportedOperation("mark_read", protocol=protocol.value)
            params = self._params(
                email=email, password=password, protocol=protocol, overrides=overrides
            )
            with self._observed(protocol, "mark_read"):
                self.imap.mark_read(params, message_ids=message_ids, folder=folder)
        except MailError as e:
            logger.error("Marking messages read failed for %s: %s", email, e)
            self._report(
                "emails_mark_read_failed",
                {"email": email, "count": len(message_ids), "error": str(e)},
            )
            raise

        logger.info("Marked %s messages read for %s", len(message_ids), email)
        self._report("emails_marked_read", {"email": email, "count": len(message_ids)})
        return True

    def list_folders(
        self,
        *,
        email: str,
        password: str,
        receive_protocol: str | Protocol | None = Protocol.imap,
        overrides: HostOverrides = HostOverrides(),
    ) -> list[FolderNode]:
        try:
            protocol = parse_receive_protocol(receive_protocol)
            if protocol is Protocol.pop3:
                logger.info("Folder listing requested for POP3 account %s, returning none", email)
                return []
            params = self._params(
                email=email, password=password, protocol=protocol, overrides=overrides
            )
            with self._observed(protocol, "list_folders"):
                folders = self.imap.list_folders(params)
        except MailError as e:
            logger.error("Listing folders failed for %s: %s", email, e)
            self._report("folders_fetch_failed", {"email": email, "error": str(e)})
            raise

        logger.info("Listed %s folders for %s", len(folders), email)
        self._report("folders_fetched", {"email": email, "count": len(folders)})
        return folders
