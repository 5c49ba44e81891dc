from __future__ import annotations


class MailError(RuntimeError):
    """Base class for failures the HTTP layer reports as ``success: false``."""

    def __init__(self, message: str, *, protocol: str | None = None) -> None:
        super().__init__(message)
        self.protocol = protocol

    @property
    def leg(self) -> str:
        return (self.protocol or "mail").upper()

    def __str__(self) -> str:
        message = super().__str__() or self.__class__.__name__
        if self.protocol:
            return f"{self.leg}: {message}"
        return message


class SettingsUnresolved(MailError):
    def __init__(self, protocol: str, *, reason: str | None = None) -> None:
        message = reason or (
            f"Could not determine {protocol.upper()} server settings. "
            "Please provide host and port manually."
        )
        super().__init__(message, protocol=protocol)


class TransportError(MailError):
    pass


class ConnectionTimeout(TransportError):
    pass


class AuthError(MailError):
    pass


class ParseError(MailError):
    pass


class UnsupportedOperation(MailError):
    def __init__(self, operation: str, *, protocol: str) -> None:
        super().__init__(
            f"Operation '{operation}' is not supported by protocol {protocol.upper()}",
            protocol=protocol,
        )
        self.operation = operation
