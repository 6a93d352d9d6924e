"""
Document schema for typed, partitioned documents.

Every document handled by a DAO lives in the keyspace partition named by the
accessor's type, so its _id must start with "<type>:". Besides the identity
fields, documents carry four audit fields stamped by touch():

    c_by / c_at   creator and creation time (epoch seconds), set once
    m_by / m_at   last modifier and modification time, set on every touch

The schema is open: fields not listed here are allowed and never checked.

Example:
    >>> schema = DocumentSchema.for_type("WIDGET")
    >>> schema.required_fields
    ('_id', 'c_by', 'c_at', 'm_by', 'm_at')
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any


class FieldKind(Enum):
    """Value constraints understood by the validator."""

    NON_EMPTY_STRING = "non_empty_str"
    INTEGER = "int"
    DOCUMENT_ID = "document_id"


@dataclass(frozen=True)
class FieldDef:
    """A constrained document field.

    Attributes:
        name: Field name as it appears in the document
        kind: Value constraint
        required: Whether the field must be present
        pattern: Regex a DOCUMENT_ID value must match from its start
    """

    name: str
    kind: FieldKind
    required: bool = False
    pattern: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind == FieldKind.DOCUMENT_ID and not self.pattern:
            raise ValueError(f"pattern required for DOCUMENT_ID field '{self.name}'")

    def check(self, value: Any) -> str | None:
        """Check a present value. Returns an error message or None."""
        if self.kind == FieldKind.NON_EMPTY_STRING:
            if not isinstance(value, str):
                return f"is not of a type(s) string, got {type(value).__name__}"
            if not value:
                return "does not meet minimum length of 1"

        elif self.kind == FieldKind.INTEGER:
            # bool is an int subclass but not a JSON integer
            if not isinstance(value, int) or isinstance(value, bool):
                return f"is not of a type(s) integer, got {type(value).__name__}"

        elif self.kind == FieldKind.DOCUMENT_ID:
            if not isinstance(value, str):
                return f"is not of a type(s) string, got {type(value).__name__}"
            if not re.match(self.pattern or "", value):
                return f"does not match pattern '{self.pattern}'"

        return None


@dataclass(frozen=True)
class DocumentSchema:
    """Field constraints for the documents of one type.

    Attributes:
        type_name: Keyspace partition the documents belong to
        fields: Constrained fields, in validation order
        additional_properties: Whether unlisted fields are allowed
    """

    type_name: str
    fields: tuple[FieldDef, ...]
    additional_properties: bool = True

    @classmethod
    def for_type(cls, type_name: str) -> DocumentSchema:
        """Build the audit-field schema for documents of ``type_name``."""
        return cls(
            type_name=type_name,
            fields=(
                FieldDef(
                    "_id",
                    FieldKind.DOCUMENT_ID,
                    required=True,
                    pattern=f"^{re.escape(type_name)}:",
                ),
                FieldDef("_rev", FieldKind.NON_EMPTY_STRING),
                FieldDef("c_by", FieldKind.NON_EMPTY_STRING, required=True),
                FieldDef("c_at", FieldKind.INTEGER, required=True),
                FieldDef("m_by", FieldKind.NON_EMPTY_STRING, required=True),
                FieldDef("m_at", FieldKind.INTEGER, required=True),
            ),
        )

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.required)

    def get_field(self, name: str) -> FieldDef | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None
