from __future__ import annotations

from typing import Protocol

from fastapi import Request

from formcraft.config import Settings
from formcraft.errors import Unauthorized

USER_HEADER = "X-User-Id"
EMAIL_HEADER = "X-User-Email"


class AuthProvider(Protocol):
    def current_user(self, request: Request) -> tuple[str, str | None]: ...


class HeaderAuthProvider:
    """Trusts the identity headers set by the upstream credential service."""

    def current_user(self, request: Request) -> tuple[str, str | None]:
        user_id = request.headers.get(USER_HEADER, "").strip()
        if not user_id:
            raise Unauthorized("Authentication required")
        email = request.headers.get(EMAIL_HEADER, "").strip() or None
        return user_id, email


class NoAuthProvider:
    def __init__(self, user_id: str) -> None:
        self._user_id = user_id

    def current_user(self, request: Request) -> tuple[str, str | None]:
        return self._user_id, None


def get_auth_provider(settings: Settings) -> AuthProvider:
    if settings.auth_mode == "none":
        return NoAuthProvider(settings.default_user_id)
    return HeaderAuthProvider()
