from __future__ import annotations

from typing import Any, Protocol


class FormRepository(Protocol):
    def list_forms_by_owner(self, owner_id: str) -> list[dict[str, Any]]: ...

    def count_forms_by_owner(self, owner_id: str) -> int: ...

    def get_form(self, form_id: str) -> dict[str, Any] | None: ...

    def get_form_by_slug(self, slug: str) -> dict[str, Any] | None: ...

    def slug_exists(self, slug: str) -> bool: ...

    def create_form(self, form: dict[str, Any]) -> None: ...

    def replace_form(self, form_id: str, form: dict[str, Any]) -> None: ...

    def delete_form(self, form_id: str) -> None: ...


class SubmissionRepository(Protocol):
    def list_submissions(self, form_id: str, limit: int | None = None) -> list[dict[str, Any]]: ...

    def count_submissions(self, form_id: str) -> int: ...

    def create_submission(self, submission: dict[str, Any]) -> None: ...


class AnalyticsRepository(Protocol):
    def get_counters(self, form_id: str) -> dict[str, Any] | None: ...

    def increment(self, form_id: str, views: int = 0, submissions: int = 0) -> dict[str, Any]: ...


class UserRepository(Protocol):
    def get_user(self, user_id: str) -> dict[str, Any] | None: ...

    def ensure_user(self, user_id: str, email: str | None = None) -> dict[str, Any]: ...

    def set_plan(self, user_id: str, plan: str) -> dict[str, Any]: ...


class Storage(Protocol):
    forms: FormRepository
    submissions: SubmissionRepository
    analytics: AnalyticsRepository
    users: UserRepository

    def close(self) -> None: ...
