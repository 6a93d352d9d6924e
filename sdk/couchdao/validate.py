"""
Document validation against a DocumentSchema.

Validation never raises for a bad document; it collects one issue per
missing or incorrect field so callers can report all problems at once.
validate_or_raise() is the strict form used before mutating store calls.

Invariants:
    - Issues are reported in schema field order
    - Unknown fields are ignored (open schema)
    - A missing required field yields exactly one issue
    - An optional field set to None counts as absent
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, List

from .errors import InvalidDocument
from .schema import DocumentSchema


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation failure.

    Attributes:
        field: Offending field name
        message: Human readable description
    """

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field} {self.message}"


@dataclass
class ValidationResult:
    """Outcome of validating one document."""

    errors: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.valid


def validate_document(schema: DocumentSchema, doc: Mapping[str, Any]) -> ValidationResult:
    """Validate a document against a schema.

    Args:
        schema: Schema to validate against
        doc: Document mapping

    Returns:
        ValidationResult listing every issue found
    """
    result = ValidationResult()

    for field_def in schema.fields:
        if field_def.name not in doc:
            if field_def.required:
                result.errors.append(
                    ValidationIssue(field_def.name, "is a required property")
                )
            continue

        value = doc[field_def.name]
        if value is None and not field_def.required:
            continue

        error = field_def.check(value)
        if error:
            result.errors.append(ValidationIssue(field_def.name, error))

    if not schema.additional_properties:
        known = {f.name for f in schema.fields}
        for name in doc:
            if name not in known:
                result.errors.append(
                    ValidationIssue(name, "is not an allowed additional property")
                )

    return result


def validate_or_raise(schema: DocumentSchema, doc: Mapping[str, Any]) -> None:
    """Validate a document and raise if invalid.

    Raises:
        InvalidDocument: If any field fails validation
    """
    result = validate_document(schema, doc)
    if not result.valid:
        raise InvalidDocument(
            f"invalid document: {'; '.join(str(e) for e in result.errors)}",
            errors=result.errors,
        )
