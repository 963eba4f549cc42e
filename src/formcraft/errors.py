"""Error taxonomy shared by the form model, the submission flow and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldError:
    """One rule violation, attached to a field id (``None`` for form-level problems)."""

    field_id: str | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"fieldId": self.field_id, "message": self.message}


class FormcraftError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


class ValidationError(FormcraftError):
    """A candidate form document failed structural validation at save time."""

    def __init__(self, errors: list[FieldError], message: str = "Form definition is invalid") -> None:
        super().__init__(message)
        self.errors = list(errors)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "errors": [error.to_dict() for error in self.errors]}


class NotFound(FormcraftError):
    status_code = 404


class Expired(FormcraftError):
    status_code = 403


class QuotaExceeded(FormcraftError):
    status_code = 403

    def __init__(self, message: str, limit_reached: bool = True) -> None:
        super().__init__(message)
        self.limit_reached = limit_reached

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.limit_reached:
            payload["limitReached"] = True
        return payload


class SlugUnavailable(FormcraftError):
    status_code = 409


class Unauthorized(FormcraftError):
    status_code = 401
