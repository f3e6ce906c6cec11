"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: the limiter is reached through AbstractRateLimiter.
- Isolated state: limiters are built per application in create_app() and
  live on ``app.state``, never in module globals.

Rate limiting strategy:
- Sliding window per (caller identity, project id) for AI task requests.
- Authenticated callers are keyed by uid, anonymous callers by client IP.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request

from app.adapters.rate_limit import AbstractRateLimiter, RateLimitDecision
from app.core.auth import CallerIdentity, get_caller
from app.core.errors import RateLimitAppError
from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)


def get_ai_task_limiter(request: Request) -> AbstractRateLimiter:
    """Return the AI task limiter owned by the running application."""
    return request.app.state.ai_task_limiter


async def enforce_ai_task_rate_limit(
    project_id: str,
    request: Request,
    caller: Annotated[CallerIdentity, Depends(get_caller)],
    limiter: Annotated[AbstractRateLimiter, Depends(get_ai_task_limiter)],
) -> RateLimitDecision | None:
    """FastAPI dependency enforcing the AI task limit.

    Records one request for the caller in ``project_id`` when admitted.

    Returns:
        The admission decision, or None when the limit is disabled.

    Raises:
        RateLimitAppError: 429 Too Many Requests when the window is full.
    """
    app_settings = request.app.state.settings.app
    if not app_settings.ai_task_rate_limit_enabled:
        return None

    identity = caller.rate_limit_identity
    key_type = "user" if caller.is_authenticated else "ip"
    decision = limiter.check(identity, project_id)

    log_extra = {
        "key_type": key_type,
        "key_hash": hash_for_log(identity),
        "project_id": project_id,
        "limit": decision.limit,
        "remaining": decision.remaining,
        "window_ms": app_settings.ai_task_rate_limit_window_ms,
    }

    if decision.allowed:
        logger.info("rate_limit.allowed", extra=log_extra)
        return decision

    logger.warning(
        "rate_limit.exceeded",
        extra={**log_extra, "retry_after_ms": decision.retry_after_ms},
    )
    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message="Rate limit exceeded",
        retry_after_ms=decision.retry_after_ms,
        limit=decision.limit,
    )
