"""Application factory for the FastAPI app.

Centralizes app construction (settings, limiters, middleware, handlers,
routers) so tests can build isolated instances with their own settings and
limiter state.
"""

from __future__ import annotations

from fastapi import FastAPI

from app.adapters.rate_limit import ExternalCountRateLimiter, InMemorySlidingWindowRateLimiter
from app.api.routes import health_router, projects_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.message_log import AbstractMessageLog, InMemoryMessageLog
from app.services.message_service import MessageService


def build_ai_task_limiter(config: Settings) -> InMemorySlidingWindowRateLimiter:
    """Build the AI task limiter from settings."""
    return InMemorySlidingWindowRateLimiter(
        max_requests=config.app.ai_task_rate_limit_requests,
        window_ms=config.app.ai_task_rate_limit_window_ms,
        sweep_interval_ms=config.app.rate_limit_sweep_interval_ms,
    )


def build_message_service(config: Settings, message_log: AbstractMessageLog) -> MessageService:
    """Build the chat message quota service on top of ``message_log``."""
    limiter = ExternalCountRateLimiter(
        max_requests=config.app.message_quota_max,
        window_ms=config.app.message_quota_window_ms,
    )
    return MessageService(
        limiter=limiter,
        message_log=message_log,
        warning_threshold=config.app.message_quota_warning_threshold,
        enabled=config.app.message_quota_enabled,
    )


def create_app(
    config: Settings | None = None,
    *,
    message_log: AbstractMessageLog | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Settings to bind; defaults to the process-wide settings.
        message_log: Chat message store; defaults to an in-memory log.
        configure_logs: Whether to (re)configure the root logger.

    Returns:
        Configured FastAPI app with limiters, middleware, handlers and routers.
    """
    config = config or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(config.log)

    app = FastAPI(
        title="hAIra Throttle API",
        description=(
            "Throttles AI task requests and chat messages per student and project "
            "for the hAIra collaborative report workspace. Denied requests receive "
            "HTTP 429 with retryAfterMs."
        ),
        version="0.1.0",
        debug=config.app.debug,
    )

    # Limiter state is owned by this app instance
    app.state.settings = config
    app.state.ai_task_limiter = build_ai_task_limiter(config)
    app.state.message_log = message_log or InMemoryMessageLog()
    app.state.message_service = build_message_service(config, app.state.message_log)

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(projects_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
