from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Also reports how many caller/project keys the AI task limiter is tracking,
    which shows whether expired keys are being swept.

    Returns:
        dict: ``status`` ("ok") and ``ai_task_limiter_keys``.
    """

    limiter = request.app.state.ai_task_limiter
    return {"status": "ok", "ai_task_limiter_keys": len(limiter)}
