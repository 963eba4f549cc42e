from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from jsonschema import Draft7Validator

from formcraft.config import DEFAULT_SETTINGS, SLUG_PATTERN
from formcraft.errors import FieldError, SlugUnavailable, ValidationError
from formcraft.fields import FieldDefinition, field_from_record, parse_fields
from formcraft.registry import FieldTypeRegistry
from formcraft.utils import new_slug_suffix, now_utc, parse_dt, slugify, to_iso

FORM_DOCUMENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": ["string", "null"]},
        "fields": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string"},
                    "label": {"type": "string"},
                    "required": {"type": "boolean"},
                    "placeholder": {"type": ["string", "null"]},
                    "helpText": {"type": ["string", "null"]},
                    "accept": {"type": ["string", "null"]},
                    "rows": {"type": ["integer", "null"]},
                },
            },
        },
        "settings": {
            "type": "object",
            "properties": {
                "theme": {"type": "string"},
                "submitButtonText": {"type": "string"},
                "successMessage": {"type": "string"},
                "requireEmail": {"type": "boolean"},
                "enableCaptcha": {"type": "boolean"},
                "enableRedirect": {"type": "boolean"},
                "redirectUrl": {"type": ["string", "null"]},
                "enableEmailNotifications": {"type": "boolean"},
            },
        },
        "isPublished": {"type": "boolean"},
        "expiresAt": {"type": ["string", "null"]},
    },
    "required": ["title"],
}

_document_validator = Draft7Validator(FORM_DOCUMENT_SCHEMA)


@dataclass(frozen=True)
class FormDefinition:
    id: str
    owner_id: str
    title: str
    slug: str
    fields: tuple[FieldDefinition, ...] = ()
    settings: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SETTINGS))
    description: str | None = None
    is_published: bool = False
    expires_at: datetime | None = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def get_field(self, field_id: str) -> FieldDefinition | None:
        for item in self.fields:
            if item.id == field_id:
                return item
        return None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "description": self.description,
            "slug": self.slug,
            "isPublished": self.is_published,
            "expiresAt": to_iso(self.expires_at) if self.expires_at else None,
            "fields": [item.to_dict() for item in self.fields],
            "settings": dict(self.settings),
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "slug": self.slug,
            "is_published": self.is_published,
            "expires_at": self.expires_at,
            "fields": [item.to_dict() for item in self.fields],
            "settings": dict(self.settings),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], registry: FieldTypeRegistry) -> "FormDefinition":
        return cls(
            id=record["id"],
            owner_id=record["owner_id"],
            title=record["title"],
            slug=record["slug"],
            fields=tuple(field_from_record(item, registry) for item in record.get("fields") or []),
            settings={**DEFAULT_SETTINGS, **(record.get("settings") or {})},
            description=record.get("description"),
            is_published=bool(record.get("is_published")),
            expires_at=parse_dt(record.get("expires_at")),
            created_at=parse_dt(record.get("created_at")) or now_utc(),
            updated_at=parse_dt(record.get("updated_at")) or now_utc(),
        )


def _document_errors(candidate: Any) -> list[FieldError]:
    errors: list[FieldError] = []
    for error in sorted(_document_validator.iter_errors(candidate), key=lambda err: list(err.path)):
        location = ".".join(str(part) for part in error.path)
        message = f"{location}: {error.message}" if location else error.message
        errors.append(FieldError(None, message))
    return errors


def validate_form(
    candidate: dict[str, Any],
    registry: FieldTypeRegistry,
    *,
    form_id: str,
    owner_id: str,
    slug: str,
    created_at: datetime | None = None,
    now: datetime | None = None,
) -> FormDefinition:
    """Build a :class:`FormDefinition` from an editor document or raise :class:`ValidationError`.

    All problems are reported together: document shape, title, slug, expiry and every field.
    """
    errors = _document_errors(candidate)
    if errors:
        raise ValidationError(errors)

    title = candidate["title"].strip()
    if not title:
        errors.append(FieldError(None, "Title is required"))
    if not slug or not SLUG_PATTERN.match(slug):
        errors.append(FieldError(None, "Slug must contain only lowercase letters, digits and hyphens"))

    raw_expires = candidate.get("expiresAt")
    expires_at = parse_dt(raw_expires)
    if raw_expires and expires_at is None:
        errors.append(FieldError(None, "expiresAt must be an ISO-8601 timestamp"))

    fields, field_errors = parse_fields(candidate.get("fields") or [], registry)
    errors.extend(field_errors)
    if errors:
        raise ValidationError(errors)

    timestamp = now or now_utc()
    description = candidate.get("description")
    return FormDefinition(
        id=form_id,
        owner_id=owner_id,
        title=title,
        slug=slug,
        fields=tuple(fields),
        settings={**DEFAULT_SETTINGS, **(candidate.get("settings") or {})},
        description=description.strip() if isinstance(description, str) else None,
        is_published=bool(candidate.get("isPublished", False)),
        expires_at=expires_at,
        created_at=created_at or timestamp,
        updated_at=timestamp,
    )


def derive_slug(title: str) -> str:
    return slugify(title)


def assign_slug(base: str, exists: Callable[[str], bool], max_attempts: int = 5) -> str:
    """Return ``base`` or ``base-<suffix>``, whichever is free first.

    Gives up with :class:`SlugUnavailable` after ``max_attempts`` suffixed candidates.
    """
    if not exists(base):
        return base
    for _ in range(max_attempts):
        candidate = f"{base}-{new_slug_suffix()}"
        if not exists(candidate):
            return candidate
    raise SlugUnavailable(f"Could not find a free address for '{base}'")
