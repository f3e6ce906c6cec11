"""Caller identification for rate limiting.

Callers authenticate with ``Authorization: Bearer <token>``. Tokens use the
local development format ``mock-token-<uid>-<timestamp>``; the uid may itself
contain dashes. When authentication is not required, callers without a token
are identified by their client address instead.

Identities are namespaced (``user:`` / ``ip:``) so a uid can never share a
rate limit budget with a network address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Header, Request

from app.core.errors import AuthenticationAppError
from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)

MOCK_TOKEN_PREFIX = "mock-token-"


@dataclass(frozen=True)
class CallerIdentity:
    """Who is making the request.

    Attributes:
        uid: Authenticated user id, or None for anonymous callers.
        client_host: Network address of the client ("unknown" if unavailable).
    """

    uid: str | None
    client_host: str

    @property
    def is_authenticated(self) -> bool:
        return self.uid is not None

    @property
    def rate_limit_identity(self) -> str:
        if self.uid:
            return f"user:{self.uid}"
        return f"ip:{self.client_host}"


def parse_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an Authorization header value.

    Examples:
        >>> parse_bearer_token("Bearer abc")
        'abc'
        >>> parse_bearer_token("Basic abc") is None
        True
        >>> parse_bearer_token(None) is None
        True
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def uid_from_token(token: str) -> str:
    """Resolve the user id carried by a token.

    Raises:
        AuthenticationAppError: If the token is not in the expected format.
    """
    if not token.startswith(MOCK_TOKEN_PREFIX):
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid or expired token",
        )

    uid, sep, issued_at = token[len(MOCK_TOKEN_PREFIX):].rpartition("-")
    if not sep or not uid or not issued_at.isdigit():
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid or expired token",
        )
    return uid


async def get_caller(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> CallerIdentity:
    """FastAPI dependency resolving the caller identity.

    Raises:
        AuthenticationAppError: 401 when a token is required but missing, or malformed.
    """
    client_host = request.client.host if request.client else "unknown"
    auth_required = request.app.state.settings.app.auth_required

    token = parse_bearer_token(authorization)
    if token is None:
        if auth_required:
            logger.warning("auth.missing_token", extra={"auth_required": True})
            raise AuthenticationAppError(
                code="missing_token",
                message="No valid authorization token provided",
            )
        logger.debug("auth.anonymous", extra={"client_hash": hash_for_log(client_host)})
        return CallerIdentity(uid=None, client_host=client_host)

    try:
        uid = uid_from_token(token)
    except AuthenticationAppError:
        logger.warning("auth.invalid_token", extra={"token_length": len(token)})
        raise

    return CallerIdentity(uid=uid, client_host=client_host)
