"""
Core Data Models for ClientVerse

These models define the strict schemas for every client record that
flows through the system. They are designed to:
1. Enforce the record shape before anything is written
2. Provide field-level validation errors a form can highlight
3. Round-trip cleanly to and from the document store

DESIGN DECISION: Python attributes are snake_case, stored documents are
camelCase (the shape the web forms and the document store share). Every
model accepts both spellings on input and dumps camelCase for storage.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


MIN_CLIENT_NAME_LENGTH = 2


class ClientBaseModel(BaseModel):
    """Shared config: camelCase aliases, trimmed strings, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AddressType(str, Enum):
    """Address tags. Exactly these three are accepted."""
    PERMANENT = "Permanent"
    CURRENT = "Current"
    TEMPORARY = "Temporary"


# =============================================================================
# NESTED ENTRIES
# =============================================================================

class DynamicField(ClientBaseModel):
    """A single free-text entry in a repeatable list (phone numbers)."""

    value: str = Field(
        ...,
        min_length=1,
        description="Entry value (e.g. a phone number)"
    )


class Address(ClientBaseModel):
    """A tagged postal address."""

    type: AddressType = Field(
        ...,
        description="Permanent, Current or Temporary"
    )
    value: str = Field(
        ...,
        min_length=1,
        description="Full address text"
    )


class Policy(ClientBaseModel):
    """
    An insurance policy (health, vehicle or life).

    Policy number and company are required keys but may be blank while
    the advisor is still collecting details.
    """

    policy_no: str = Field(
        ...,
        description="Policy number"
    )
    company_name: str = Field(
        ...,
        description="Insurer name"
    )
    health_info: Optional[str] = Field(
        default=None,
        description="Free-text notes (health policies only in the form)"
    )


class MutualFundInvestment(ClientBaseModel):
    """
    A mutual-fund holding.

    DESIGN DECISION: Units, NAV and amount stay free text. Advisors copy
    them from statements in whatever format the fund house prints.
    """

    amc: str = Field(..., description="Fund house (asset management company)")
    folio: str = Field(..., description="Folio number")
    units: str = Field(..., description="Unit count")
    nav: str = Field(..., description="Net asset value")
    investment_amount: str = Field(..., description="Amount invested")


class CustomField(ClientBaseModel):
    """Advisor-defined key/value pair."""

    name: str = Field(
        ...,
        min_length=1,
        description="Field name"
    )
    value: str = Field(
        ...,
        min_length=1,
        description="Field value"
    )


# =============================================================================
# PEOPLE
# =============================================================================

class PersonDetails(ClientBaseModel):
    """
    Identification fields and collections shared by clients and family members.
    """

    # Identification (all optional, stored as "" when unknown)
    pan: str = Field(default="", description="Income-tax PAN")
    aadhar: str = Field(default="", description="Aadhaar number")
    aadhar_mobile: str = Field(default="", description="Aadhaar-linked mobile")
    passport_no: str = Field(default="", description="Passport number")
    passport_expiry_date: str = Field(
        default="",
        description="Passport expiry (YYYY-MM-DD as entered in the form)"
    )

    # Collections (order is entry order)
    mobiles: list[DynamicField] = Field(default_factory=list)
    addresses: list[Address] = Field(default_factory=list)
    health_policies: list[Policy] = Field(default_factory=list)
    car_bike_policies: list[Policy] = Field(default_factory=list)
    life_policies: list[Policy] = Field(default_factory=list)
    mutual_fund_investments: list[MutualFundInvestment] = Field(default_factory=list)
    custom_fields: list[CustomField] = Field(default_factory=list)

    @field_validator(
        'pan', 'aadhar', 'aadhar_mobile', 'passport_no', 'passport_expiry_date',
        mode='before',
    )
    @classmethod
    def none_as_blank(cls, v: Any) -> Any:
        """Forms and older documents send null for untouched inputs."""
        return "" if v is None else v


class FamilyMember(PersonDetails):
    """
    A relative of a client.

    Owned exclusively by one client; has no identity of its own and is
    stored, updated and deleted together with that client.
    """

    name: str = Field(
        ...,
        min_length=1,
        description="Family member's name"
    )
    relationship: str = Field(
        default="",
        description="Relationship to the client (free text)"
    )
    health_info: str = Field(
        default="",
        description="Health notes"
    )

    @field_validator('relationship', 'health_info', mode='before')
    @classmethod
    def none_as_blank_text(cls, v: Any) -> Any:
        return "" if v is None else v


class ClientRecord(PersonDetails):
    """
    The persistable payload of a client.

    CRITICAL: Only a ClientRecord that passed validation is ever handed
    to the repository. Identity and timestamps are NOT part of it - the
    repository owns those.
    """

    client_name: str = Field(
        ...,
        min_length=MIN_CLIENT_NAME_LENGTH,
        description="Display name (required)"
    )
    reference_name: str = Field(
        default="",
        description="Who referred this client"
    )
    income_tax_password: str = Field(
        default="",
        description="Income-tax portal password"
    )
    remarks: str = Field(
        default="",
        description="General remarks"
    )
    family_members: list[FamilyMember] = Field(default_factory=list)

    @field_validator('reference_name', 'income_tax_password', 'remarks', mode='before')
    @classmethod
    def none_as_blank_text(cls, v: Any) -> Any:
        return "" if v is None else v

    def to_document(self) -> dict[str, Any]:
        """
        Convert to the camelCase document written to storage.

        Every top-level field is present, so a merge write replaces each
        collection wholesale.
        """
        return self.model_dump(by_alias=True, mode="json")


class Client(ClientRecord):
    """
    A stored client as delivered by the repository.

    Adds the repository-owned identity and timestamps to the record.
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Repository-assigned identifier"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owning advisor's user identifier"
    )
    created_at: Optional[datetime] = Field(
        default=None,
        description="Server-assigned creation time"
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="Server-assigned time of the last write"
    )

    @classmethod
    def from_document(cls, client_id: str, data: dict[str, Any]) -> "Client":
        """Build a Client from a stored document and its key."""
        return cls.model_validate({**data, "id": client_id})

    def to_record(self) -> ClientRecord:
        """Strip identity and timestamps, e.g. to pre-fill an edit form."""
        return ClientRecord.model_validate(
            self.model_dump(exclude={"id", "user_id", "created_at", "updated_at"})
        )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue, attributable to one input field."""

    field: str = Field(
        ...,
        description="Field path, e.g. familyMembers[2].mobiles[0].value"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'too_short', 'invalid_choice')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Tagged result of validating a candidate client.

    Either valid with a normalized record, or invalid with a list of
    error issues - never both. Warnings may accompany either.
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    is_valid: bool
    record: Optional[ClientRecord] = None
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All issues found, errors and warnings"
    )

    @model_validator(mode='after')
    def check_tag(self) -> 'ValidationResult':
        if self.is_valid:
            if self.record is None:
                raise ValueError("A valid result must carry the normalized record")
            if self.has_errors:
                raise ValueError("A valid result cannot carry errors")
        else:
            if self.record is not None:
                raise ValueError("An invalid result cannot carry a record")
            if not self.has_errors:
                raise ValueError("An invalid result must carry at least one error")
        return self

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def field_errors(self) -> dict[str, str]:
        """Map of field path to first error message, for form highlighting."""
        messages: dict[str, str] = {}
        for issue in self.errors:
            messages.setdefault(issue.field, issue.message)
        return messages

    def raise_for_errors(self) -> ClientRecord:
        """Return the record, or raise ValidationError when invalid."""
        if not self.is_valid:
            raise ValidationError(self.errors)
        return self.record


class ValidationError(Exception):
    """Candidate client violated the schema."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(f"{i.field}: {i.message}" for i in issues[:5])
        super().__init__(f"Client record is invalid ({len(issues)} issues): {summary}")
