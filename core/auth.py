"""Bearer-token gate for the dashboard API.

Identity is owned by the external auth service; this dependency only makes
sure a bearer token is present and, when ``API_AUTH_TOKEN`` is configured,
that it matches.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import HTTPException, Request, status

from config import get_api_auth_token

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    scheme, _, token = header_value.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_bearer_token(request: Request) -> str:
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise _unauthorized("Missing bearer token")

    expected = get_api_auth_token()
    if expected and not secrets.compare_digest(token, expected):
        logger.warning("Rejected bearer token for %s", request.url.path)
        raise _unauthorized("Invalid bearer token")

    return token
