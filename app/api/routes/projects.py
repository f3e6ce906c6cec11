from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from app.adapters.rate_limit import RateLimitDecision
from app.core.auth import CallerIdentity, get_caller
from app.core.rate_limit import enforce_ai_task_rate_limit
from app.schemas.projects import (
    AITaskAccepted,
    AITaskRequest,
    MessageAccepted,
    MessageCreate,
    QuotaStatus,
)
from app.services.message_service import MessageService

router = APIRouter(tags=["Projects"])


def get_message_service(request: Request) -> MessageService:
    return request.app.state.message_service


@router.post(
    "/projects/{project_id}/ai-tasks",
    response_model=AITaskAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_ai_task(
    project_id: str,
    body: AITaskRequest,
    decision: Annotated[RateLimitDecision | None, Depends(enforce_ai_task_rate_limit)],
) -> AITaskAccepted:
    """Admit an AI task request for a project.

    The task is handed off to the AI teammates asynchronously; this endpoint
    only decides admission. Callers over their budget get 429 with
    ``retryAfterMs``.
    """
    return AITaskAccepted(
        task_id=uuid.uuid4().hex,
        project_id=project_id,
        task_type=body.task_type,
        teammate_id=body.teammate_id,
        remaining=decision.remaining if decision else None,
    )


@router.post(
    "/projects/{project_id}/messages",
    response_model=MessageAccepted,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    project_id: str,
    body: MessageCreate,
    caller: Annotated[CallerIdentity, Depends(get_caller)],
    service: Annotated[MessageService, Depends(get_message_service)],
) -> MessageAccepted:
    """Send a chat message, subject to the daily message quota."""
    return await service.post_message(project_id, caller.rate_limit_identity, body.content)


@router.get("/projects/{project_id}/quota", response_model=QuotaStatus)
async def get_quota(
    project_id: str,
    caller: Annotated[CallerIdentity, Depends(get_caller)],
    service: Annotated[MessageService, Depends(get_message_service)],
) -> QuotaStatus:
    return await service.quota(project_id, caller.rate_limit_identity)
