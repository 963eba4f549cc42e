from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from formcraft.errors import Expired, FieldError, NotFound
from formcraft.fields import FieldDefinition
from formcraft.plans import Capabilities
from formcraft.schema import FormDefinition
from formcraft.utils import coerce_number, now_utc

EMAIL_PATTERN = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]{6,20}$")

REQUIRED_MESSAGE = "This field is required"


@dataclass
class SubmissionResult:
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[FieldError] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return not self.errors


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _check_email(item: FieldDefinition, value: Any) -> tuple[Any, str | None]:
    if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
        return value, "Please enter a valid email address"
    return value.strip(), None


def _check_tel(item: FieldDefinition, value: Any) -> tuple[Any, str | None]:
    if not isinstance(value, str) or not PHONE_PATTERN.match(value.strip()):
        return value, "Please enter a valid phone number"
    return value.strip(), None


def _check_number(item: FieldDefinition, value: Any) -> tuple[Any, str | None]:
    try:
        number = coerce_number(value)
    except ValueError:
        return value, "Please enter a valid number"
    if item.min is not None and number < item.min:
        return number, f"Value must be at least {item.min}"
    if item.max is not None and number > item.max:
        return number, f"Value must be at most {item.max}"
    return number, None


def _check_checkbox(item: FieldDefinition, value: Any) -> tuple[Any, str | None]:
    if item.required and value is not True:
        return value, "This box must be checked"
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "on", "yes"}, None
    return bool(value), None


CHECKS: dict[str, Callable[[FieldDefinition, Any], tuple[Any, str | None]]] = {
    "email": _check_email,
    "tel": _check_tel,
    "number": _check_number,
    "checkbox": _check_checkbox,
}


class SubmissionValidator:
    """Validates a raw submission payload against a form definition.

    Pure with respect to the form: it never persists or counts anything. Structural
    problems (unpublished, expired, over quota) raise before any field is looked at;
    field problems are collected and returned together on the result.
    """

    def __init__(self, clock: Callable[[], datetime] = now_utc) -> None:
        self._clock = clock

    def check_available(self, form: FormDefinition) -> None:
        if not form.is_published:
            raise NotFound("Form not found")
        if form.is_expired(self._clock()):
            raise Expired("This form has expired")

    def check_gates(
        self,
        form: FormDefinition,
        capabilities: Capabilities,
        submission_count: int,
    ) -> None:
        self.check_available(form)
        capabilities.check_submission_quota(submission_count)

    def validate(
        self,
        form: FormDefinition,
        payload: dict[str, Any],
        capabilities: Capabilities,
        submission_count: int = 0,
    ) -> SubmissionResult:
        self.check_gates(form, capabilities, submission_count)
        settings = capabilities.effective_settings(form.settings)
        return self.validate_fields(form, payload, require_email=bool(settings.get("requireEmail")))

    def validate_fields(
        self,
        form: FormDefinition,
        payload: dict[str, Any],
        require_email: bool = False,
    ) -> SubmissionResult:
        result = SubmissionResult()
        for item in form.fields:
            value = payload.get(item.id)
            required = item.required or (require_email and item.kind == "email")

            if is_empty(value):
                if required:
                    result.errors.append(FieldError(item.id, REQUIRED_MESSAGE))
                continue

            check = CHECKS.get(item.kind)
            if check is None:
                result.data[item.id] = value
                continue
            normalized, message = check(item, value)
            if message:
                result.errors.append(FieldError(item.id, message))
            else:
                result.data[item.id] = normalized

        if result.errors:
            result.data = {}
        return result
