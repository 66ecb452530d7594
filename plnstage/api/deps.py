"""FastAPI dependencies shared by the protocol routes."""

import hmac
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from plnstage.api.handler import IngestProtocolHandler
from plnstage.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings, loaded once per process."""
    return Settings()


def get_handler(request: Request) -> IngestProtocolHandler:
    """Protocol handler built by the app factory."""
    return request.app.state.handler


def fetch_header(request: Request, name: str) -> str | None:
    """Read ``name`` from the headers, then ``X-name``, then the query string."""
    value = request.headers.get(name)
    if value is None:
        value = request.headers.get(f"X-{name}")
    if value is None:
        value = request.query_params.get(name)
    return value


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def is_operator(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> bool:
    """True when the request carries the configured operator key."""
    if not settings.operator_api_key:
        return False
    presented = request.headers.get("X-Operator-Key")
    auth = request.headers.get("Authorization", "")
    if presented is None and auth.lower().startswith("bearer "):
        presented = auth[len("bearer ") :].strip()
    if not presented:
        return False
    return hmac.compare_digest(presented, settings.operator_api_key)


Handler = Annotated[IngestProtocolHandler, Depends(get_handler)]
Operator = Annotated[bool, Depends(is_operator)]
