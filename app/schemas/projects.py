"""Request and response models for project endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AITaskRequest(BaseModel):
    """AI task submitted by a student to one of the project's AI teammates."""

    task_type: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Kind of AI assistance requested (e.g. summarize, proofread, generate)",
    )
    teammate_id: str | None = Field(
        None,
        description="AI teammate the task is addressed to, if any",
    )


class AITaskAccepted(BaseModel):
    """Acknowledgement of an admitted AI task request."""

    task_id: str
    project_id: str
    task_type: str
    teammate_id: str | None = None
    status: str = "accepted"
    remaining: int | None = Field(
        None,
        description="AI task requests left in the current window; null when throttling is disabled",
    )


class MessageCreate(BaseModel):
    """Chat message sent by the student."""

    content: str = Field(..., min_length=1, max_length=4000)


class ChatMessage(BaseModel):
    """Stored chat message."""

    message_id: str
    project_id: str
    sender_id: str
    content: str
    timestamp: int = Field(..., description="UNIX time in milliseconds")


class MessageAccepted(BaseModel):
    """Response for an accepted chat message."""

    message: ChatMessage
    messages_left_today: int | None = Field(
        None,
        description="Messages left in the quota window; null when unknown or quota disabled",
    )
    max_messages_per_day: int
    quota_warning: str | None = None


class QuotaStatus(BaseModel):
    """Current chat message quota for the caller in a project."""

    project_id: str
    messages_sent_today: int | None
    messages_left_today: int | None
    max_messages_per_day: int
    window_ms: int
    retry_after_ms: int = 0
    degraded: bool = False
