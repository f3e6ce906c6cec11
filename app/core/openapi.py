"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- A bearer token security scheme with per-path overrides
- Tags metadata
- The shape of 429 responses on throttled endpoints

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

THROTTLED_RESPONSE = {
    "description": "Too many requests; retry after retryAfterMs milliseconds.",
    "content": {
        "application/json": {
            "schema": {
                "type": "object",
                "required": ["error", "retryAfterMs"],
                "properties": {
                    "error": {"type": "string"},
                    "code": {"type": "string"},
                    "retryAfterMs": {"type": "integer", "minimum": 0},
                    "request_id": {"type": "string", "nullable": True},
                    "details": {"type": "object"},
                },
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for bearer auth
    - Marks all operations as requiring a token by default, then exempts
      health endpoints by setting ``security: []``
    - Documents the 429 body on every POST under /projects
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "description": "Provide the session token via Authorization: Bearer <token>.",
            },
        )
        schema.setdefault("security", [{"BearerAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Projects",
                "description": "AI task requests and chat messages, throttled per student and project.",
            },
            {
                "name": "Health",
                "description": "Liveness and readiness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path, methods in paths.items():
            for method, method_obj in methods.items():
                if not isinstance(method_obj, dict):
                    continue
                if path.endswith("/health"):
                    method_obj["security"] = []
                elif "/projects/" in path and method == "post":
                    method_obj.setdefault("responses", {}).setdefault("429", THROTTLED_RESPONSE)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
