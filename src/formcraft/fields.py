from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from formcraft.errors import FieldError, NotFound
from formcraft.registry import FieldTypeDescriptor, FieldTypeRegistry
from formcraft.utils import coerce_number, generate_field_id

KNOWN_FIELD_KEYS = {
    "id",
    "type",
    "label",
    "required",
    "placeholder",
    "options",
    "helpText",
    "min",
    "max",
    "rows",
    "accept",
}


@dataclass(frozen=True)
class FieldOption:
    label: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "value": self.value}


@dataclass(frozen=True)
class FieldDefinition:
    """A field instance inside a form.

    Only the attributes declared by the kind's descriptor are populated; any other
    key that arrived with the field is kept verbatim in ``extra`` and written back
    unchanged by :meth:`to_dict`.
    """

    id: str
    kind: str
    label: str
    required: bool = False
    placeholder: str | None = None
    options: tuple[FieldOption, ...] | None = None
    help_text: str | None = None
    min: int | float | None = None
    max: int | float | None = None
    rows: int | None = None
    accept: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "type": self.kind,
                "label": self.label,
                "required": self.required,
            }
        )
        if self.placeholder is not None:
            payload["placeholder"] = self.placeholder
        if self.options is not None:
            payload["options"] = [option.to_dict() for option in self.options]
        if self.help_text is not None:
            payload["helpText"] = self.help_text
        if self.min is not None:
            payload["min"] = self.min
        if self.max is not None:
            payload["max"] = self.max
        if self.rows is not None:
            payload["rows"] = self.rows
        if self.accept is not None:
            payload["accept"] = self.accept
        return payload


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _parse_options(
    raw_options: Any, field_id: str, errors: list[FieldError]
) -> tuple[FieldOption, ...] | None:
    if not isinstance(raw_options, list) or not raw_options:
        errors.append(FieldError(field_id, "At least one option is required"))
        return None
    options: list[FieldOption] = []
    seen_values: set[str] = set()
    for index, raw in enumerate(raw_options, start=1):
        if isinstance(raw, str):
            label = value = raw.strip()
        elif isinstance(raw, dict):
            value = str(raw.get("value", "")).strip()
            label = str(raw.get("label", "")).strip() or value
        else:
            errors.append(FieldError(field_id, f"Option {index} must be a string or a label/value pair"))
            continue
        if not value:
            errors.append(FieldError(field_id, f"Option {index} has an empty value"))
            continue
        if value in seen_values:
            errors.append(FieldError(field_id, f"Duplicate option value: {value}"))
            continue
        seen_values.add(value)
        options.append(FieldOption(label=label, value=value))
    return tuple(options)


def _parse_bound(raw: Any, name: str, field_id: str, errors: list[FieldError]) -> int | float | None:
    if raw is None or raw == "":
        return None
    try:
        return coerce_number(raw)
    except ValueError:
        errors.append(FieldError(field_id, f"{name} must be a number"))
        return None


def parse_field(
    raw: dict[str, Any],
    descriptor: FieldTypeDescriptor,
    field_id: str,
    errors: list[FieldError],
) -> FieldDefinition:
    extra = {key: value for key, value in raw.items() if key not in KNOWN_FIELD_KEYS}

    def carry(key: str, declared: bool) -> Any:
        value = raw.get(key)
        if value is not None and not declared:
            extra[key] = value
            return None
        return value

    placeholder = _optional_text(carry("placeholder", descriptor.has_placeholder))

    options: tuple[FieldOption, ...] | None = None
    raw_options = raw.get("options")
    if descriptor.has_options:
        options = _parse_options(raw_options, field_id, errors)
    elif raw_options:
        errors.append(FieldError(field_id, f"Options are not allowed for {descriptor.kind} fields"))
    elif raw_options is not None:
        extra["options"] = raw_options

    min_value = _parse_bound(carry("min", descriptor.has_numeric_bounds), "min", field_id, errors)
    max_value = _parse_bound(carry("max", descriptor.has_numeric_bounds), "max", field_id, errors)
    if min_value is not None and max_value is not None and min_value > max_value:
        errors.append(FieldError(field_id, "min must be less than or equal to max"))

    rows = carry("rows", descriptor.has_rows)
    if rows is not None and (isinstance(rows, bool) or not isinstance(rows, int) or rows < 1):
        errors.append(FieldError(field_id, "rows must be a positive integer"))
        rows = None

    accept = _optional_text(carry("accept", descriptor.has_file_accept))
    if accept is not None:
        accept = ",".join(part.strip() for part in accept.split(",") if part.strip())

    return FieldDefinition(
        id=field_id,
        kind=descriptor.kind,
        label=str(raw.get("label") or "").strip() or descriptor.default_label,
        required=bool(raw.get("required")),
        placeholder=placeholder,
        options=options,
        help_text=_optional_text(raw.get("helpText")),
        min=min_value,
        max=max_value,
        rows=rows,
        accept=accept,
        extra=extra,
    )


def parse_fields(
    raw_fields: list[Any], registry: FieldTypeRegistry
) -> tuple[list[FieldDefinition], list[FieldError]]:
    """Parse the editor's field list, collecting every problem instead of stopping at the first."""
    errors: list[FieldError] = []
    fields: list[FieldDefinition] = []
    seen_ids: set[str] = set()

    for index, raw in enumerate(raw_fields, start=1):
        if not isinstance(raw, dict):
            errors.append(FieldError(None, f"Field {index} must be an object"))
            continue

        raw_id = raw.get("id")
        if raw_id is not None and (isinstance(raw_id, bool) or not isinstance(raw_id, (str, int))):
            errors.append(FieldError(None, f"Field {index} has an invalid id"))
            continue
        field_id = str(raw_id).strip() if raw_id is not None else ""
        if not field_id:
            field_id = generate_field_id(seen_ids)
        if field_id in seen_ids:
            errors.append(FieldError(field_id, f"Duplicate field id: {field_id}"))
            continue
        seen_ids.add(field_id)

        try:
            descriptor = registry.describe(raw.get("type"))
        except NotFound as exc:
            errors.append(FieldError(field_id, exc.message))
            continue

        fields.append(parse_field(raw, descriptor, field_id, errors))

    return fields, errors


def field_from_record(record: dict[str, Any], registry: FieldTypeRegistry) -> FieldDefinition:
    """Rebuild a stored field; stored documents were validated on save."""
    errors: list[FieldError] = []
    descriptor = registry.describe(record.get("type"))
    return parse_field(record, descriptor, str(record["id"]), errors)
