from __future__ import annotations

import html
import smtplib
from collections.abc import Callable
from email.message import EmailMessage
from email.utils import formatdate, getaddresses, make_msgid
from typing import Any

from mailcheck.core.config import Settings
from mailcheck.core.tls import build_ssl_context
from mailcheck.services.mail.base import MailAdapter
from mailcheck.services.mail.errors import TransportError
from mailcheck.services.mail.types import ConnectionParameters, Protocol, SendConfirmation
from mailcheck.services.providers import email_domain


def _open_smtp(*, secure: bool, timeout: float, context: Any) -> smtplib.SMTP:
    if secure:
        return smtplib.SMTP_SSL(timeout=timeout, context=context)
    return smtplib.SMTP(timeout=timeout)


def text_to_html(text: str) -> str:
    return html.escape(text).replace("\r\n", "\n").replace("\n", "<br>")


def build_message(*, sender: str, to: str, subject: str, text: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=email_domain(sender))
    msg.set_content(text)
    msg.add_alternative(text_to_html(text), subtype="html")
    return msg


class SmtpAdapter(MailAdapter[smtplib.SMTP]):
    protocol = Protocol.smtp
    transport_errors = (OSError, smtplib.SMTPException)

    def __init__(
        self,
        settings: Settings,
        *,
        client_factory: Callable[..., Any] = _open_smtp,
    ) -> None:
        super().__init__(settings)
        self._client_factory = client_factory

    def _connect(self, params: ConnectionParameters) -> smtplib.SMTP:
        endpoint = params.endpoint
        context = build_ssl_context(self.settings)
        client = self._client_factory(
            secure=endpoint.secure,
            timeout=self.settings.SMTP_CONNECTION_TIMEOUT,
            context=context,
        )
        try:
            client.connect(endpoint.host, endpoint.port)
        except BaseException:
            client.close()
            raise
        return client

    def _handshake(self, client: smtplib.SMTP, params: ConnectionParameters) -> None:
        # The greeting has been read; EHLO, STARTTLS and AUTH run under the greeting bound.
        client.sock.settimeout(self.settings.SMTP_GREETING_TIMEOUT)
        client.ehlo()
        if not params.endpoint.secure and client.has_extn("starttls"):
            client.starttls(context=build_ssl_context(self.settings))
            client.ehlo()

    def _authenticate(self, client: smtplib.SMTP, params: ConnectionParameters) -> None:
        client.login(params.email, params.password)
        client.sock.settimeout(self.settings.SMTP_SOCKET_TIMEOUT)

    def _release(self, client: smtplib.SMTP) -> None:
        try:
            client.quit()
        finally:
            client.close()

    def _is_auth_failure(self, exc: BaseException) -> bool:
        return isinstance(exc, smtplib.SMTPAuthenticationError)

    def send_message(
        self, params: ConnectionParameters, *, to: str, subject: str, text: str
    ) -> SendConfirmation:
        msg = build_message(sender=params.email, to=to, subject=subject, text=text)
        with self.connection(params) as client:
            try:
                refused = client.send_message(msg)
            except smtplib.SMTPRecipientsRefused as e:
                raise TransportError(
                    f"all recipients were refused: {', '.join(e.recipients)}",
                    protocol=self.protocol.value,
                ) from e

        recipients = [addr for _name, addr in getaddresses([to]) if addr]
        return SendConfirmation(
            message_id=msg["Message-ID"],
            accepted=[addr for addr in recipients if addr not in refused],
            rejected=sorted(refused),
        )
