from __future__ import annotations

import logging
import poplib
from collections.abc import Callable
from typing import Any

from mailcheck.core.config import Settings
from mailcheck.core.tls import build_ssl_context
from mailcheck.services.mail.base import MailAdapter, describe_error
from mailcheck.services.mail.errors import AuthError, ParseError, UnsupportedOperation
from mailcheck.services.mail.parser import parse_message, sort_newest_first
from mailcheck.services.mail.types import (
    ConnectionParameters,
    FolderNode,
    MessageSummary,
    Protocol,
)

logger = logging.getLogger("mailcheck.mail")


def _open_pop3(host: str, port: int, *, secure: bool, timeout: float, context: Any) -> poplib.POP3:
    if secure:
        return poplib.POP3_SSL(host, port, timeout=timeout, context=context)
    return poplib.POP3(host, port, timeout=timeout)


class Pop3Adapter(MailAdapter[poplib.POP3]):
    """POP3 has no folders and no read state: messages are addressed by session sequence."""

    protocol = Protocol.pop3
    transport_errors = (OSError, poplib.error_proto)

    def __init__(
        self,
        settings: Settings,
        *,
        client_factory: Callable[..., Any] = _open_pop3,
    ) -> None:
        super().__init__(settings)
        self._client_factory = client_factory

    def _connect(self, params: ConnectionParameters) -> poplib.POP3:
        endpoint = params.endpoint
        # The server greeting is read inside the constructor, under the connection timeout.
        return self._client_factory(
            endpoint.host,
            endpoint.port,
            secure=endpoint.secure,
            timeout=self.settings.POP3_CONNECTION_TIMEOUT,
            context=build_ssl_context(self.settings),
        )

    def _authenticate(self, client: poplib.POP3, params: ConnectionParameters) -> None:
        client.sock.settimeout(self.settings.POP3_AUTH_TIMEOUT)
        try:
            client.user(params.email)
            client.pass_(params.password)
        except poplib.error_proto as e:
            raise AuthError(describe_error(e), protocol=self.protocol.value) from e
        client.sock.settimeout(self.settings.POP3_SOCKET_TIMEOUT)

    def _release(self, client: poplib.POP3) -> None:
        try:
            client.quit()
        finally:
            client.close()

    def fetch_messages(
        self, params: ConnectionParameters, *, folder: str, count: int
    ) -> list[MessageSummary]:
        with self.connection(params) as client:
            total, _size = client.stat()
            window = min(max(count, 0), int(total))
            if window == 0:
                return []

            # Every index is settled once; a failed message is counted, never fatal to the batch.
            messages: list[MessageSummary] = []
            failed = 0
            for index in range(1, window + 1):
                try:
                    _resp, lines, _octets = client.retr(index)
                except poplib.error_proto as e:
                    failed += 1
                    logger.warning("Skipping POP3 message %s: %s", index, e)
                    continue
                except OSError as e:
                    # A broken RETR leaves the session out of step; later replies are unusable.
                    remaining = window - index + 1
                    failed += remaining
                    logger.warning(
                        "POP3 session lost at message %s, %s message(s) not retrieved: %s",
                        index,
                        remaining,
                        e,
                    )
                    break
                try:
                    messages.append(
                        parse_message(
                            b"\r\n".join(lines),
                            message_id=index,
                            date_format=self.settings.DATE_DISPLAY_FORMAT,
                        )
                    )
                except ParseError as e:
                    failed += 1
                    logger.warning("Skipping POP3 message %s: %s", index, e)

        if failed:
            logger.info("POP3 fetch kept %s of %s messages", window - failed, window)
        return sort_newest_first(messages)

    def mark_read(
        self, params: ConnectionParameters, *, message_ids: list[int], folder: str = "INBOX"
    ) -> bool:
        raise UnsupportedOperation("mark_read", protocol=self.protocol.value)

    def list_folders(self, params: ConnectionParameters) -> list[FolderNode]:
        return []
