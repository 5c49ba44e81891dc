from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from typing import Any, Generic, TypeVar

from mailcheck.core.config import Settings
from mailcheck.services.mail.errors import (
    AuthError,
    ConnectionTimeout,
    MailError,
    TransportError,
    UnsupportedOperation,
)
from mailcheck.services.mail.types import (
    ConnectionParameters,
    ConnectionState,
    FolderNode,
    MessageSummary,
    Protocol,
)

logger = logging.getLogger("mailcheck.mail")

ClientT = TypeVar("ClientT")

_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.idle: frozenset({ConnectionState.connecting}),
    ConnectionState.connecting: frozenset({ConnectionState.authenticated, ConnectionState.failed}),
    ConnectionState.authenticated: frozenset({ConnectionState.operating, ConnectionState.failed}),
    ConnectionState.operating: frozenset({ConnectionState.closed, ConnectionState.failed}),
    ConnectionState.closed: frozenset(),
    ConnectionState.failed: frozenset(),
}


class ConnectionLifecycle:
    """Tracks one adapter call from idle through to closed or failed."""

    def __init__(self, protocol: Protocol) -> None:
        self.protocol = protocol
        self.state = ConnectionState.idle
        self.history: list[ConnectionState] = [ConnectionState.idle]

    def advance(self, state: ConnectionState) -> None:
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"{self.protocol.value}: illegal connection transition "
                f"{self.state.value} -> {state.value}"
            )
        self.state = state
        self.history.append(state)

    @property
    def finished(self) -> bool:
        return self.state in {ConnectionState.closed, ConnectionState.failed}


class MailAdapter(Generic[ClientT]):
    """One network protocol behind the common capability contract.

    Subclasses provide ``_connect``, ``_handshake``, ``_authenticate`` and ``_release``;
    every call that touches the network goes through ``connection`` so the client is
    released on every exit path once ``_connect`` has returned it. Only exceptions in
    ``transport_errors`` become ``MailError``; anything else propagates untouched.
    """

    protocol: Protocol
    transport_errors: tuple[type[BaseException], ...] = (OSError,)

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.last_lifecycle: ConnectionLifecycle | None = None

    def _connect(self, params: ConnectionParameters) -> ClientT:
        raise NotImplementedError

    def _handshake(self, client: ClientT, params: ConnectionParameters) -> None:
        return None

    def _authenticate(self, client: ClientT, params: ConnectionParameters) -> None:
        raise NotImplementedError

    def _release(self, client: ClientT) -> None:
        raise NotImplementedError

    def _is_auth_failure(self, exc: BaseException) -> bool:
        return False

    def _translate(self, exc: BaseException, *, state: ConnectionState) -> MailError:
        if isinstance(exc, TimeoutError):
            return ConnectionTimeout(
                f"timed out while {state.value}",
                protocol=self.protocol.value,
            )
        if state is ConnectionState.connecting and self._is_auth_failure(exc):
            return AuthError(describe_error(exc), protocol=self.protocol.value)
        return TransportError(describe_error(exc), protocol=self.protocol.value)

    @contextmanager
    def connection(self, params: ConnectionParameters) -> Iterator[ClientT]:
        lifecycle = ConnectionLifecycle(self.protocol)
        self.last_lifecycle = lifecycle
        client: ClientT | None = None
        # Authentication happens inside "connecting"; only a successful login moves on.
        lifecycle.advance(ConnectionState.connecting)
        try:
            client = self._connect(params)
            self._handshake(client, params)
            self._authenticate(client, params)
            lifecycle.advance(ConnectionState.authenticated)
            lifecycle.advance(ConnectionState.operating)
            yield client
        except MailError:
            lifecycle.advance(ConnectionState.failed)
            raise
        except self.transport_errors as e:
            failed_in = lifecycle.state
            lifecycle.advance(ConnectionState.failed)
            raise self._translate(e, state=failed_in) from e
        except Exception:
            lifecycle.advance(ConnectionState.failed)
            raise
        finally:
            if client is not None:
                with suppress(Exception):
                    self._release(client)
            if not lifecycle.finished:
                lifecycle.advance(
                    ConnectionState.closed
                    if lifecycle.state is ConnectionState.operating
                    else ConnectionState.failed
                )
            logger.debug(
                "%s connection to %s:%s finished as %s",
                self.protocol.value,
                params.endpoint.host,
                params.endpoint.port,
                lifecycle.state.value,
            )

    def test_connection(self, params: ConnectionParameters) -> bool:
        with self.connection(params):
            return True

    def fetch_messages(
        self, params: ConnectionParameters, *, folder: str, count: int
    ) -> list[MessageSummary]:
        raise UnsupportedOperation("fetch_messages", protocol=self.protocol.value)

    def mark_read(
        self, params: ConnectionParameters, *, message_ids: list[int], folder: str
    ) -> bool:
        raise UnsupportedOperation("mark_read", protocol=self.protocol.value)

    def list_folders(self, params: ConnectionParameters) -> list[FolderNode]:
        raise UnsupportedOperation("list_folders", protocol=self.protocol.value)


def describe_error(exc: BaseException) -> str:
    detail: Any = exc.args[0] if len(exc.args) == 1 else str(exc)
    if isinstance(detail, bytes):
        detail = detail.decode("utf-8", errors="replace")
    text = str(detail).strip()
    return text or exc.__class__.__name__
