"""
Data Models Package

This package contains all Pydantic models used in ClientVerse.
Every client record written to storage must conform to these schemas.
"""

from clientverse.models.client import (
    MIN_CLIENT_NAME_LENGTH,
    Address,
    AddressType,
    Client,
    ClientRecord,
    CustomField,
    DynamicField,
    FamilyMember,
    MutualFundInvestment,
    PersonDetails,
    Policy,
    ValidationError,
    ValidationIssue,
    ValidationResult,
)
from clientverse.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
)

__all__ = [
    # Client models
    "MIN_CLIENT_NAME_LENGTH",
    "Address",
    "AddressType",
    "Client",
    "ClientRecord",
    "CustomField",
    "DynamicField",
    "FamilyMember",
    "MutualFundInvestment",
    "PersonDetails",
    "Policy",
    "ValidationError",
    "ValidationIssue",
    "ValidationResult",
    # Activity models
    "ActivityEvent",
    "ActivityEventBuilder",
    "ActivityEventType",
    "ActivitySeverity",
]
