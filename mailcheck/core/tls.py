from __future__ import annotations

import ssl

from mailcheck.core.config import Settings


def build_ssl_context(settings: Settings) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not settings.TLS_VERIFY_CERTIFICATES:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx
