"""Chat message quota service.

Students may send a limited number of chat messages per project within a
rolling window (7 per 24 hours by default). Counts come from the message
log, so the quota survives across limiter instances and reflects exactly
what was stored.

Check and append for one (project, sender) pair run under a per-pair
asyncio lock, so concurrent sends from the same student cannot both pass a
check that only one of them fits in. A pair's lock lives only while some
send holds or waits on it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from app.adapters.rate_limit import ExternalCountRateLimiter, RateLimitDecision, wall_clock_ms
from app.core.errors import RateLimitAppError, StorageAppError
from app.core.logging import hash_for_log
from app.schemas.projects import ChatMessage, MessageAccepted, QuotaStatus
from app.services.message_log import AbstractMessageLog

logger = logging.getLogger(__name__)


def build_quota_warning(remaining: int, threshold: int) -> str | None:
    """Return the low-quota warning for ``remaining`` messages, if any.

    Examples:
        >>> build_quota_warning(5, 2) is None
        True
        >>> build_quota_warning(2, 2)
        '2 messages remaining today'
        >>> build_quota_warning(1, 2)
        '1 message remaining today'
        >>> build_quota_warning(0, 2) is None
        True
    """
    if remaining > threshold or remaining <= 0:
        return None
    if remaining == 1:
        return "1 message remaining today"
    return f"{remaining} messages remaining today"


class MessageService:
    """Accepts chat messages under the rolling message quota."""

    def __init__(
        self,
        *,
        limiter: ExternalCountRateLimiter,
        message_log: AbstractMessageLog,
        warning_threshold: int = 2,
        enabled: bool = True,
        clock: Callable[[], int] = wall_clock_ms,
    ) -> None:
        self._limiter = limiter
        self._log = message_log
        self._warning_threshold = warning_threshold
        self._enabled = enabled
        self._clock = clock
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    @property
    def max_messages(self) -> int:
        return self._limiter.policy.max_requests

    @asynccontextmanager
    async def _pair_lock(self, project_id: str, sender_id: str) -> AsyncIterator[None]:
        key = (project_id, sender_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _check(self, project_id: str, sender_id: str, now: int) -> RateLimitDecision:
        return await self._limiter.check_async(
            sender_id,
            project_id,
            now_ms=now,
            count_fn=self._log.count_since,
            oldest_fn=self._log.oldest_since,
        )

    def _denied(self, project_id: str, sender_id: str, decision: RateLimitDecision) -> RateLimitAppError:
        logger.warning(
            "message_quota.exceeded",
            extra={
                "sender_hash": hash_for_log(sender_id),
                "project_id": project_id,
                "limit": decision.limit,
                "retry_after_ms": decision.retry_after_ms,
            },
        )
        return RateLimitAppError(
            code="daily_message_limit_reached",
            message=f"Daily message limit reached ({decision.limit} messages per day)",
            details={
                "messages_sent_today": decision.limit,
                "messages_left_today": 0,
                "max_messages_per_day": decision.limit,
            },
            retry_after_ms=decision.retry_after_ms,
            limit=decision.limit,
        )

    async def post_message(
        self,
        project_id: str,
        sender_id: str,
        content: str,
        *,
        now_ms: int | None = None,
    ) -> MessageAccepted:
        """Store a chat message if the sender still has quota in the project.

        Raises:
            RateLimitAppError: When the quota for the window is used up.
            StorageAppError: When the message could not be stored.
        """
        now = self._clock() if now_ms is None else now_ms

        async with self._pair_lock(project_id, sender_id):
            decision = None
            if self._enabled:
                decision = await self._check(project_id, sender_id, now)
                if not decision.allowed:
                    raise self._denied(project_id, sender_id, decision)

            message = ChatMessage(
                message_id=uuid.uuid4().hex,
                project_id=project_id,
                sender_id=sender_id,
                content=content,
                timestamp=now,
            )
            try:
                await self._log.append(message)
            except Exception as exc:
                logger.error(
                    "message_log.append_failed",
                    exc_info=True,
                    extra={"project_id": project_id, "error_type": type(exc).__name__},
                )
                raise StorageAppError(
                    code="message_store_unavailable",
                    message="The message could not be saved. Please try again later.",
                ) from exc

        if decision is None or decision.degraded:
            return MessageAccepted(message=message, max_messages_per_day=self.max_messages)

        warning = build_quota_warning(decision.remaining, self._warning_threshold)
        if warning:
            logger.info(
                "message_quota.warning",
                extra={
                    "sender_hash": hash_for_log(sender_id),
                    "project_id": project_id,
                    "remaining": decision.remaining,
                },
            )
        return MessageAccepted(
            message=message,
            messages_left_today=decision.remaining,
            max_messages_per_day=self.max_messages,
            quota_warning=warning,
        )

    async def quota(self, project_id: str, sender_id: str, *, now_ms: int | None = None) -> QuotaStatus:
        """Report quota usage without recording anything."""
        now = self._clock() if now_ms is None else now_ms
        decision = await self._check(project_id, sender_id, now)
        limit = decision.limit

        if decision.degraded:
            left = sent = None
        elif decision.allowed:
            # The decision already accounts for the hypothetical next message
            left = decision.remaining + 1
            sent = limit - left
        else:
            left, sent = 0, limit

        return QuotaStatus(
            project_id=project_id,
            messages_sent_today=sent,
            messages_left_today=left,
            max_messages_per_day=limit,
            window_ms=self._limiter.policy.window_ms,
            retry_after_ms=decision.retry_after_ms,
            degraded=decision.degraded,
        )
