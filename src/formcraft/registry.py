from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from formcraft.errors import NotFound


@dataclass(frozen=True)
class FieldTypeDescriptor:
    kind: str
    default_label: str
    has_placeholder: bool = False
    has_options: bool = False
    has_numeric_bounds: bool = False
    has_file_accept: bool = False
    has_rows: bool = False


BUILTIN_FIELD_TYPES: tuple[FieldTypeDescriptor, ...] = (
    FieldTypeDescriptor("text", "Text Field", has_placeholder=True),
    FieldTypeDescriptor("email", "Email", has_placeholder=True),
    FieldTypeDescriptor("password", "Password", has_placeholder=True),
    FieldTypeDescriptor("number", "Number", has_placeholder=True, has_numeric_bounds=True),
    FieldTypeDescriptor("tel", "Phone Number", has_placeholder=True),
    FieldTypeDescriptor("textarea", "Text Area", has_placeholder=True, has_rows=True),
    FieldTypeDescriptor("checkbox", "Checkbox"),
    FieldTypeDescriptor("radio", "Radio Button Group", has_options=True),
    FieldTypeDescriptor("select", "Dropdown", has_placeholder=True, has_options=True),
    FieldTypeDescriptor("date", "Date"),
    FieldTypeDescriptor("file", "File Upload", has_file_accept=True),
)


class FieldTypeRegistry:
    """Read-only catalog of field kinds, keyed by ``kind``."""

    def __init__(self, descriptors: Iterable[FieldTypeDescriptor] = BUILTIN_FIELD_TYPES) -> None:
        catalog: dict[str, FieldTypeDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.kind in catalog:
                raise ValueError(f"duplicate field kind: {descriptor.kind}")
            catalog[descriptor.kind] = descriptor
        self._catalog = catalog

    def describe(self, kind: str) -> FieldTypeDescriptor:
        try:
            return self._catalog[kind]
        except (KeyError, TypeError):
            raise NotFound(f"Unknown field type: {kind}") from None

    def is_known(self, kind: str) -> bool:
        return isinstance(kind, str) and kind in self._catalog

    def kinds(self) -> list[str]:
        return list(self._catalog)

    def __len__(self) -> int:
        return len(self._catalog)
