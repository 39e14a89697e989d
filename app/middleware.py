"""
Host allowlist and CORS for the HTTP boundary.
"""

from __future__ import annotations

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

import memgraph.config as config

# Clients authenticate with either header; both must survive preflight.
AUTH_HEADERS = ["Authorization", "X-API-Key"]


def configure_middleware(app) -> None:
    if config.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.TRUSTED_HOSTS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=[*AUTH_HEADERS, "Content-Type"],
        expose_headers=["Content-Disposition"],
    )
