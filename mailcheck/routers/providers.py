from __future__ import annotations

from fastapi import APIRouter

from mailcheck.schemas.mail import EndpointOut, ProviderOut
from mailcheck.services.mail.types import Endpoint
from mailcheck.services.providers import PROVIDERS

router = APIRouter(prefix="/api", tags=["providers"])


def _endpoint(endpoint: Endpoint | None) -> EndpointOut | None:
    if endpoint is None:
        return None
    return EndpointOut(host=endpoint.host, port=endpoint.port, secure=endpoint.secure)


@router.get("/providers", response_model=list[ProviderOut])
def providers_list() -> list[ProviderOut]:
    return [
        ProviderOut(
            key=p.key,
            name=p.name,
            imap=_endpoint(p.imap),
            pop3=_endpoint(p.pop3),
            smtp=_endpoint(p.smtp),
            requires_app_password=p.requires_app_password,
            help_url=p.help_url,
        )
        for p in PROVIDERS
    ]
