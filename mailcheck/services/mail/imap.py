from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from imapclient import SEEN, IMAPClient, SocketTimeout
from imapclient.exceptions import IMAPClientError, LoginError

from mailcheck.core.config import Settings
from mailcheck.core.tls import build_ssl_context
from mailcheck.services.mail.base import MailAdapter
from mailcheck.services.mail.errors import ParseError
from mailcheck.services.mail.folders import build_mailbox_tree, flatten_folders
from mailcheck.services.mail.parser import parse_message, sort_newest_first
from mailcheck.services.mail.types import (
    ConnectionParameters,
    FolderNode,
    MessageSummary,
    Protocol,
)

logger = logging.getLogger("mailcheck.mail")

FETCH_ITEMS = [b"BODY.PEEK[]", b"FLAGS", b"UID"]


class ImapAdapter(MailAdapter[IMAPClient]):
    protocol = Protocol.imap
    transport_errors = (OSError, IMAPClientError)

    def __init__(
        self,
        settings: Settings,
        *,
        client_factory: Callable[..., Any] = IMAPClient,
    ) -> None:
        super().__init__(settings)
        self._client_factory = client_factory

    def _connect(self, params: ConnectionParameters) -> IMAPClient:
        endpoint = params.endpoint
        return self._client_factory(
            endpoint.host,
            port=endpoint.port,
            ssl=endpoint.secure,
            ssl_context=build_ssl_context(self.settings),
            timeout=SocketTimeout(
                connect=self.settings.IMAP_CONNECTION_TIMEOUT,
                read=self.settings.IMAP_AUTH_TIMEOUT,
            ),
        )

    def _handshake(self, client: IMAPClient, params: ConnectionParameters) -> None:
        if not params.endpoint.secure and client.has_capability("STARTTLS"):
            client.starttls(ssl_context=build_ssl_context(self.settings))

    def _authenticate(self, client: IMAPClient, params: ConnectionParameters) -> None:
        client.login(params.email, params.password)
        client.socket().settimeout(self.settings.IMAP_SOCKET_TIMEOUT)

    def _release(self, client: IMAPClient) -> None:
        client.logout()

    def _is_auth_failure(self, exc: BaseException) -> bool:
        return isinstance(exc, LoginError)

    def fetch_messages(
        self, params: ConnectionParameters, *, folder: str, count: int
    ) -> list[MessageSummary]:
        with self.connection(params) as client:
            info = client.select_folder(folder, readonly=True)
            total = int(info.get(b"EXISTS", 0))
            window = min(max(count, 0), total)
            if window == 0:
                return []

            start = total - window + 1
            # The window is addressed by sequence number; identifiers come back as UIDs.
            client.use_uid = False
            response = client.fetch(f"{start}:{total}", FETCH_ITEMS)

        messages: list[MessageSummary] = []
        for seq in sorted(response):
            data = response[seq]
            uid = int(data.get(b"UID", seq))
            flags = data.get(b"FLAGS") or ()
            try:
                messages.append(
                    parse_message(
                        data.get(b"BODY[]"),
                        message_id=uid,
                        unread=SEEN not in flags,
                        date_format=self.settings.DATE_DISPLAY_FORMAT,
                    )
                )
            except ParseError as e:
                logger.warning("Skipping unparsable IMAP message uid=%s in %s: %s", uid, folder, e)

        return sort_newest_first(messages)

    def mark_read(
        self, params: ConnectionParameters, *, message_ids: list[int], folder: str = "INBOX"
    ) -> bool:
        if not message_ids:
            return True
        with self.connection(params) as client:
            client.select_folder(folder, readonly=False)
            client.add_flags(message_ids, [SEEN])
        return True

    def list_folders(self, params: ConnectionParameters) -> list[FolderNode]:
        with self.connection(params) as client:
            listing = client.list_folders()

        entries: list[tuple[str, str | None]] = []
        for _flags, delimiter, name in listing:
            if isinstance(delimiter, bytes):
                delimiter = delimiter.decode("ascii", errors="replace")
            if isinstance(name, bytes):
                name = name.decode("utf-8", errors="replace")
            entries.append((name, delimiter or None))
        return flatten_folders(build_mailbox_tree(entries))
