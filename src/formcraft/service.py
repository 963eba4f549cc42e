from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from formcraft.analytics import AnalyticsAggregator
from formcraft.config import Settings
from formcraft.errors import NotFound
from formcraft.notifications import MailSender, build_submission_message
from formcraft.plans import Capabilities, Plan
from formcraft.protocols import Storage
from formcraft.registry import FieldTypeRegistry
from formcraft.schema import FormDefinition, assign_slug, derive_slug, validate_form
from formcraft.utils import new_ulid, now_utc, to_iso
from formcraft.validator import SubmissionResult, SubmissionValidator

logger = logging.getLogger(__name__)


def serialize_submission(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record["id"],
        "formId": record["form_id"],
        "data": record.get("data") or {},
        "ipAddress": record.get("ip_address"),
        "userAgent": record.get("user_agent"),
        "submittedAt": to_iso(record["submitted_at"]),
    }


def resolve_capabilities(storage: Storage, settings: Settings, owner_id: str) -> Capabilities:
    user = storage.users.get_user(owner_id)
    plan = user.get("plan") if user else Plan.FREE
    return Capabilities.for_plan(plan, settings)


class FormService:
    """Owner-side form lifecycle: create, edit, publish, delete and report."""

    def __init__(
        self,
        storage: Storage,
        settings: Settings,
        registry: FieldTypeRegistry,
        aggregator: AnalyticsAggregator,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._storage = storage
        self._settings = settings
        self._registry = registry
        self._aggregator = aggregator
        self._clock = clock

    def create_form(self, owner_id: str, document: dict[str, Any]) -> FormDefinition:
        capabilities = resolve_capabilities(self._storage, self._settings, owner_id)
        capabilities.check_form_quota(self._storage.forms.count_forms_by_owner(owner_id))

        title = document.get("title")
        form = validate_form(
            document,
            self._registry,
            form_id=new_ulid(),
            owner_id=owner_id,
            slug=derive_slug(title) if isinstance(title, str) else "form",
            now=self._clock(),
        )
        slug = assign_slug(form.slug, self._storage.forms.slug_exists, self._settings.slug_max_attempts)
        form = replace(form, slug=slug, is_published=False)
        self._storage.forms.create_form(form.to_record())
        logger.info("Form %s created by %s at /%s", form.id, owner_id, form.slug)
        return form

    def list_forms(self, owner_id: str) -> list[FormDefinition]:
        return [
            FormDefinition.from_record(record, self._registry)
            for record in self._storage.forms.list_forms_by_owner(owner_id)
        ]

    def get_form(self, owner_id: str, form_id: str) -> FormDefinition:
        record = self._storage.forms.get_form(form_id)
        if not record or record["owner_id"] != owner_id:
            raise NotFound("Form not found")
        return FormDefinition.from_record(record, self._registry)

    def update_form(self, owner_id: str, form_id: str, document: dict[str, Any]) -> FormDefinition:
        current = self.get_form(owner_id, form_id)
        merged = {**current.to_dict(), **document}
        if isinstance(document.get("settings"), dict):
            merged["settings"] = {**current.settings, **document["settings"]}
        updated = validate_form(
            merged,
            self._registry,
            form_id=current.id,
            owner_id=owner_id,
            slug=current.slug,
            created_at=current.created_at,
            now=self._clock(),
        )
        self._storage.forms.replace_form(form_id, updated.to_record())
        logger.info("Form %s saved by %s", form_id, owner_id)
        return updated

    def set_published(self, owner_id: str, form_id: str, published: bool) -> FormDefinition:
        current = self.get_form(owner_id, form_id)
        updated = replace(current, is_published=published, updated_at=self._clock())
        self._storage.forms.replace_form(form_id, updated.to_record())
        logger.info("Form %s %s", form_id, "published" if published else "unpublished")
        return updated

    def delete_form(self, owner_id: str, form_id: str) -> None:
        form = self.get_form(owner_id, form_id)
        self._storage.forms.delete_form(form.id)
        logger.info("Form %s deleted by %s", form_id, owner_id)

    def sample_size(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            limit = self._settings.completion_sample_size
        return min(limit, self._settings.completion_sample_max)

    def analytics_report(self, owner_id: str, form_id: str, limit: int | None = None) -> dict[str, Any]:
        form = self.get_form(owner_id, form_id)
        submissions = self._storage.submissions.list_submissions(form.id, self.sample_size(limit))
        return {
            "analytics": self._aggregator.get(form.id).to_dict(),
            "submissions": [serialize_submission(record) for record in submissions],
            "fieldCompletion": self._aggregator.derive_field_completion(
                submissions, [item.id for item in form.fields]
            ),
        }

    def list_submissions(self, owner_id: str, form_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        form = self.get_form(owner_id, form_id)
        records = self._storage.submissions.list_submissions(form.id, limit)
        return [serialize_submission(record) for record in records]


@dataclass
class SubmissionOutcome:
    result: SubmissionResult
    submission_id: str | None = None
    message: str = ""
    redirect_url: str | None = None

    @property
    def accepted(self) -> bool:
        return self.result.accepted

    def to_dict(self) -> dict[str, Any]:
        if not self.accepted:
            return {
                "message": "Please correct the errors below",
                "errors": [error.to_dict() for error in self.result.errors],
            }
        payload: dict[str, Any] = {"message": self.message, "submissionId": self.submission_id}
        if self.redirect_url:
            payload["redirectUrl"] = self.redirect_url
        return payload


class SubmissionService:
    """Public side: render a published form and accept submissions to it."""

    def __init__(
        self,
        storage: Storage,
        settings: Settings,
        registry: FieldTypeRegistry,
        aggregator: AnalyticsAggregator,
        validator: SubmissionValidator,
        mail_sender: MailSender,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._storage = storage
        self._settings = settings
        self._registry = registry
        self._aggregator = aggregator
        self._validator = validator
        self._mail_sender = mail_sender
        self._clock = clock

    def load(self, slug: str) -> FormDefinition:
        record = self._storage.forms.get_form_by_slug(slug)
        if not record:
            raise NotFound("Form not found")
        return FormDefinition.from_record(record, self._registry)

    def public_view(self, slug: str) -> dict[str, Any]:
        form = self.load(slug)
        self._validator.check_available(form)
        capabilities = resolve_capabilities(self._storage, self._settings, form.owner_id)
        try:
            self._aggregator.record_view(form.id)
        except Exception:
            logger.exception("Could not record view for form %s", form.id)
        return {
            "id": form.id,
            "title": form.title,
            "description": form.description,
            "fields": [item.to_dict() for item in form.fields],
            "settings": capabilities.effective_settings(form.settings),
        }

    async def submit(
        self,
        slug: str,
        payload: dict[str, Any],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SubmissionOutcome:
        form = self.load(slug)
        capabilities = resolve_capabilities(self._storage, self._settings, form.owner_id)
        counters = self._aggregator.get(form.id)
        result = self._validator.validate(form, payload, capabilities, counters.submissions)
        if not result.accepted:
            logger.info("Submission to form %s rejected with %s errors", form.id, len(result.errors))
            return SubmissionOutcome(result)

        submission = {
            "id": new_ulid(),
            "form_id": form.id,
            "data": result.data,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "submitted_at": self._clock(),
        }
        self._storage.submissions.create_submission(submission)
        self._aggregator.record_submission(form.id)
        logger.info("Submission %s accepted for form %s", submission["id"], form.id)

        settings = capabilities.effective_settings(form.settings)
        if settings.get("enableEmailNotifications"):
            try:
                await self.notify_owner(form, result.data)
            except Exception:
                logger.exception("Could not notify the owner of form %s", form.id)

        redirect_url = None
        if settings.get("enableRedirect") and settings.get("redirectUrl"):
            redirect_url = settings["redirectUrl"]
        return SubmissionOutcome(
            result,
            submission_id=submission["id"],
            message=settings.get("successMessage") or "",
            redirect_url=redirect_url,
        )

    async def notify_owner(self, form: FormDefinition, data: dict[str, Any]) -> bool:
        owner = self._storage.users.get_user(form.owner_id)
        email = owner.get("email") if owner else None
        if not email:
            logger.info("Owner of form %s has no email; skipping notification", form.id)
            return False
        subject, text = build_submission_message(form, data)
        return await self._mail_sender.send(email, subject, text)
