"""
Two-Stage Client Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (client name, family member names)
- Non-empty entries in every repeatable list
- Address tags limited to Permanent / Current / Temporary
- A failure here means NOTHING may be written

STAGE 2 - SEMANTIC CHECKS:
- Passport expiry unparseable or already past
- PAN not in the 10-character format
- The same phone number entered twice for one person
- These are warnings only - the advisor decides

IMPORTANT: Validation is pure. It never touches storage or the network,
and expected failures come back as a result, not as an exception.
Validation NEVER silently fixes issues either: it reports them so the
form can highlight the exact input.
"""

import re
from collections.abc import Mapping
from datetime import date
from typing import Any, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from clientverse.models.client import (
    MIN_CLIENT_NAME_LENGTH,
    ClientRecord,
    PersonDetails,
    ValidationIssue,
    ValidationResult,
)


PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")

ADDRESS_TYPES = "Permanent, Current, Temporary"

# (collection, leaf) -> message shown next to the offending input
_FIELD_MESSAGES = {
    (None, "clientName"): f"Client name must be at least {MIN_CLIENT_NAME_LENGTH} characters.",
    ("mobiles", "value"): "Cannot be empty",
    ("addresses", "value"): "Address cannot be empty",
    ("addresses", "type"): f"Address type must be one of {ADDRESS_TYPES}",
    ("customFields", "name"): "Field name cannot be empty",
    ("customFields", "value"): "Field value cannot be empty",
    ("familyMembers", "name"): "Name is required",
}


def _camel(segment: str) -> str:
    """snake_case -> camelCase; camelCase passes through untouched."""
    if "_" not in segment:
        return segment
    head, *rest = segment.split("_")
    return head + "".join(part.capitalize() for part in rest)


def format_field_path(loc: tuple) -> str:
    """
    Render a pydantic error location as a form field path.

    ('familyMembers', 2, 'mobiles', 0, 'value')
        -> 'familyMembers[2].mobiles[0].value'
    """
    path = ""
    for segment in loc:
        if isinstance(segment, int):
            path += f"[{segment}]"
        else:
            name = _camel(str(segment))
            path += f".{name}" if path else name
    return path or "record"


def _issue_type(error_type: str) -> str:
    if error_type == "missing":
        return "missing"
    if error_type in ("string_too_short", "too_short"):
        return "too_short"
    if error_type == "string_too_long":
        return "too_long"
    if error_type == "enum":
        return "invalid_choice"
    if error_type.endswith("_type"):
        return "invalid_type"
    return error_type


def _message_for(loc: tuple, error: dict) -> str:
    names = [_camel(str(s)) for s in loc if not isinstance(s, int)]
    leaf = names[-1] if names else None
    # The collection is the nearest named segment followed by an index
    collection = None
    for i in range(len(loc) - 1, 0, -1):
        if isinstance(loc[i], int) and not isinstance(loc[i - 1], int):
            collection = _camel(str(loc[i - 1]))
            break
    if collection is None and leaf == "clientName":
        return _FIELD_MESSAGES[(None, "clientName")]
    message = _FIELD_MESSAGES.get((collection, leaf))
    if message:
        return message
    if error["type"] == "missing":
        return "This field is required"
    return error["msg"]


class ClientValidator:
    """
    Validates candidate client records through a two-stage pipeline.

    Stage 1: Schema validation (pydantic model, errors block the write)
    Stage 2: Semantic checks (warnings only, run when stage 1 passes)
    """

    def validate(
        self,
        candidate: Union[Mapping[str, Any], BaseModel],
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Validate a candidate client.

        Args:
            candidate: Loosely-typed form data (camelCase or snake_case keys)
                       or an existing model
            today: Reference date for expiry checks (defaults to today)

        Returns:
            ValidationResult - valid with the normalized record, or invalid
            with one issue per violated constraint
        """
        record, issues = self._validate_schema(candidate)

        if record is None:
            return ValidationResult(is_valid=False, issues=issues)

        issues.extend(self._validate_semantic(record, today or date.today()))
        return ValidationResult(is_valid=True, record=record, issues=issues)

    def _validate_schema(
        self,
        candidate: Union[Mapping[str, Any], BaseModel],
    ) -> tuple[Optional[ClientRecord], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (normalized_record_or_None, list_of_issues)
        """
        if isinstance(candidate, BaseModel):
            candidate = candidate.model_dump(by_alias=True)

        if not isinstance(candidate, Mapping):
            return None, [ValidationIssue(
                field="record",
                issue_type="invalid_type",
                message="Client data must be an object of fields",
            )]

        try:
            return ClientRecord.model_validate(dict(candidate)), []
        except PydanticValidationError as e:
            issues = []
            for error in e.errors():
                loc = tuple(error["loc"])
                issues.append(ValidationIssue(
                    field=format_field_path(loc),
                    issue_type=_issue_type(error["type"]),
                    message=_message_for(loc, error),
                ))
            return None, issues

    def _validate_semantic(
        self,
        record: ClientRecord,
        today: date,
    ) -> list[ValidationIssue]:
        """
        Stage 2: Semantic checks on a schema-valid record.

        Returns: list of warning-level issues
        """
        issues = self._check_person(record, "", today)
        for index, member in enumerate(record.family_members):
            issues.extend(self._check_person(member, f"familyMembers[{index}].", today))
        return issues

    def _check_person(
        self,
        person: PersonDetails,
        prefix: str,
        today: date,
    ) -> list[ValidationIssue]:
        issues = []

        if person.passport_expiry_date:
            try:
                expiry = date.fromisoformat(person.passport_expiry_date)
            except ValueError:
                issues.append(ValidationIssue(
                    field=f"{prefix}passportExpiryDate",
                    issue_type="invalid_format",
                    message="Passport expiry should be a date (YYYY-MM-DD)",
                    severity="warning",
                ))
            else:
                if expiry < today:
                    issues.append(ValidationIssue(
                        field=f"{prefix}passportExpiryDate",
                        issue_type="expired",
                        message=f"Passport expired on {expiry.isoformat()}",
                        severity="warning",
                    ))

        if person.pan and not PAN_PATTERN.match(person.pan.upper()):
            issues.append(ValidationIssue(
                field=f"{prefix}pan",
                issue_type="invalid_format",
                message="PAN is usually 5 letters, 4 digits and a letter",
                severity="warning",
            ))

        seen: set[str] = set()
        for index, mobile in enumerate(person.mobiles):
            number = re.sub(r"[\s-]", "", mobile.value)
            if number in seen:
                issues.append(ValidationIssue(
                    field=f"{prefix}mobiles[{index}].value",
                    issue_type="duplicate",
                    message=f"{mobile.value} is already listed",
                    severity="warning",
                ))
            seen.add(number)

        return issues

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.issues:
            return "All details look good."

        lines = []
        if not result.is_valid:
            lines.append(f"Please fix {result.error_count} field(s) before saving:")
            for issue in result.errors:
                lines.append(f"- {issue.field}: {issue.message}")
        if result.warnings:
            lines.append("Please double-check:")
            for issue in result.warnings:
                lines.append(f"- {issue.field}: {issue.message}")
        return "\n".join(lines)
