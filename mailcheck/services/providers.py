from __future__ import annotations

from dataclasses import dataclass

from mailcheck.services.mail.errors import SettingsUnresolved
from mailcheck.services.mail.types import Endpoint, Protocol

# Implicit-TLS port for SMTP submission; every other SMTP port negotiates STARTTLS.
SMTPS_PORT = 465


@dataclass(frozen=True)
class ProviderProfile:
    key: str
    name: str
    imap: Endpoint | None
    pop3: Endpoint | None
    smtp: Endpoint | None
    requires_app_password: bool
    help_url: str | None

    def endpoint(self, protocol: Protocol) -> Endpoint | None:
        return getattr(self, protocol.value)

    def matches_domain(self, domain: str) -> bool:
        # Substring containment against the receive hosts, not domain equality:
        # "mail.com" also matches "imap.gmail.com".
        return (self.imap is not None and domain in self.imap.host) or (
            self.pop3 is not None and domain in self.pop3.host
        )


# Lookup order is significant: the first profile whose host contains the domain wins.
PROVIDERS: tuple[ProviderProfile, ...] = (
    ProviderProfile(
        key="gmail",
        name="Gmail",
        imap=Endpoint(host="imap.gmail.com", port=993, secure=True),
        pop3=Endpoint(host="pop.gmail.com", port=995, secure=True),
        smtp=Endpoint(host="smtp.gmail.com", port=587, secure=False),
        requires_app_password=True,
        help_url="https://myaccount.google.com/apppasswords",
    ),
    ProviderProfile(
        key="outlook",
        name="Outlook/Hotmail",
        imap=Endpoint(host="outlook.office365.com", port=993, secure=True),
        pop3=Endpoint(host="outlook.office365.com", port=995, secure=True),
        smtp=Endpoint(host="smtp-mail.outlook.com", port=587, secure=False),
        requires_app_password=True,
        help_url="https://account.microsoft.com/security/app-passwords",
    ),
    ProviderProfile(
        key="yandex",
        name="Yandex",
        imap=Endpoint(host="imap.yandex.ru", port=993, secure=True),
        pop3=Endpoint(host="pop.yandex.ru", port=995, secure=True),
        smtp=Endpoint(host="smtp.yandex.ru", port=587, secure=False),
        requires_app_password=True,
        help_url="https://passport.yandex.ru/profile/app-passwords",
    ),
    ProviderProfile(
        key="yahoo",
        name="Yahoo",
        imap=Endpoint(host="imap.mail.yahoo.com", port=993, secure=True),
        pop3=Endpoint(host="pop.mail.yahoo.com", port=995, secure=True),
        smtp=Endpoint(host="smtp.mail.yahoo.com", port=587, secure=False),
        requires_app_password=True,
        help_url="https://login.yahoo.com/account/security/app-passwords",
    ),
    ProviderProfile(
        key="custom",
        name="Custom Server",
        imap=None,
        pop3=None,
        smtp=None,
        requires_app_password=False,
        help_url=None,
    ),
)


def email_domain(email: str) -> str | None:
    if not email or "@" not in email:
        return None
    domain = email.rsplit("@", 1)[1].strip().lower()
    return domain or None


def find_provider(
    email: str, *, providers: tuple[ProviderProfile, ...] = PROVIDERS
) -> ProviderProfile | None:
    domain = email_domain(email)
    if domain is None:
        return None
    for profile in providers:
        if profile.matches_domain(domain):
            return profile
    return None


def resolve(
    email: str,
    protocol: Protocol | str,
    host: str | None = None,
    port: int | None = None,
    *,
    providers: tuple[ProviderProfile, ...] = PROVIDERS,
) -> Endpoint:
    proto = Protocol(protocol)
    if email_domain(email) is None:
        raise SettingsUnresolved(
            proto.value,
            reason=f"Cannot determine {proto.value.upper()} server settings: "
            "email address has no domain",
        )

    profile = find_provider(email, providers=providers)
    if profile is not None:
        endpoint = profile.endpoint(proto)
        if endpoint is not None:
            return endpoint

    host = (host or "").strip()
    if not host or not port:
        raise SettingsUnresolved(proto.value)

    if proto is Protocol.smtp:
        return Endpoint(host=host, port=int(port), secure=int(port) == SMTPS_PORT)
    return Endpoint(host=host, port=int(port), secure=True)
