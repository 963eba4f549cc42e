"""Plan capabilities.

Every "is this owner on Pro?" decision goes through :class:`Capabilities`, evaluated
when a stored form is used (rendered, submitted to, created against a quota).
Stored settings are never rewritten when a plan changes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from formcraft.config import BASE_THEMES, Settings
from formcraft.errors import QuotaExceeded

PRO_ONLY_FLAGS = ("requireEmail", "enableCaptcha", "enableRedirect", "enableEmailNotifications")


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"

    @classmethod
    def resolve(cls, value: Any) -> "Plan":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.FREE


class Capabilities:
    def __init__(self, plan: Plan | str, form_limit: int = 3, submission_limit: int = 100) -> None:
        self.plan = Plan.resolve(plan)
        self.form_limit = form_limit
        self.submission_limit = submission_limit

    @classmethod
    def for_plan(cls, plan: Plan | str, settings: Settings) -> "Capabilities":
        return cls(plan, settings.free_form_limit, settings.free_submission_limit)

    @property
    def is_pro(self) -> bool:
        return self.plan is Plan.PRO

    def check_form_quota(self, owned_count: int) -> None:
        if not self.is_pro and owned_count >= self.form_limit:
            raise QuotaExceeded(
                f"Free plan users are limited to {self.form_limit} forms. Please upgrade to continue."
            )

    def check_submission_quota(self, submission_count: int) -> None:
        if not self.is_pro and submission_count >= self.submission_limit:
            raise QuotaExceeded(
                "This form has reached the maximum submissions limit for the free plan"
            )

    def effective_settings(self, settings: dict[str, Any]) -> dict[str, Any]:
        effective = dict(settings)
        if self.is_pro:
            return effective
        if effective.get("theme") not in BASE_THEMES:
            effective["theme"] = "light"
        for flag in PRO_ONLY_FLAGS:
            effective[flag] = False
        effective.pop("redirectUrl", None)
        return effective
