from __future__ import annotations

from typing import Any

from fastapi import Request

from formcraft.errors import FieldError, ValidationError


async def read_json_object(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise ValidationError(
            [FieldError(None, "Request body must be a JSON object")],
            message="Invalid request body",
        )
    return payload


def current_owner(request: Request) -> str:
    user_id, email = request.app.state.auth_provider.current_user(request)
    if email:
        request.app.state.storage.users.ensure_user(user_id, email)
    return user_id
