"""
Tests for ClientVerse

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with in-memory storage and a stub model)
3. No real API calls in tests (use mocks)
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from clientverse.models.client import (
    Address,
    AddressType,
    Client,
    ClientRecord,
    FamilyMember,
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


class TestClientModels:
    """Tests for client-related Pydantic models."""

    def test_client_record_from_camel_case(self, candidate):
        """Test ClientRecord accepts the stored camelCase shape."""
        record = ClientRecord.model_validate(candidate)
        assert record.client_name == "Asha Rao"
        assert record.car_bike_policies[0].policy_no == ""
        assert record.mutual_fund_investments[0].investment_amount == "5000"
        assert record.family_members[0].mobiles[0].value == "9123456780"

    def test_client_record_from_snake_case(self):
        """Test field names are accepted as well as aliases."""
        record = ClientRecord(client_name="Asha", reference_name="Vikram")
        assert record.reference_name == "Vikram"

    def test_client_record_strips_whitespace(self):
        """Test that whitespace is stripped from the client name."""
        record = ClientRecord(client_name="  Asha  ")
        assert record.client_name == "Asha"

    def test_collections_default_to_empty(self):
        """Test every collection defaults to an empty list."""
        record = ClientRecord(client_name="Asha")
        assert record.mobiles == []
        assert record.addresses == []
        assert record.health_policies == []
        assert record.family_members == []
        assert record.pan == ""

    def test_null_identification_becomes_blank(self):
        """Test null identification fields from older documents load as blank."""
        record = ClientRecord.model_validate({"clientName": "Asha", "pan": None, "remarks": None})
        assert record.pan == ""
        assert record.remarks == ""

    def test_client_name_too_short(self):
        """Test client name must have at least two characters."""
        with pytest.raises(ValueError):
            ClientRecord(client_name=" A ")

    def test_long_client_name_accepted(self):
        """Test client name has no upper length limit."""
        name = "Asha " * 100
        assert ClientRecord(client_name=name).client_name == name.strip()

    def test_address_type_restricted(self):
        """Test only the three address tags are accepted."""
        assert Address(type="Current", value="x").type == AddressType.CURRENT
        with pytest.raises(ValueError):
            Address(type="Office", value="x")

    def test_policy_fields_may_be_blank(self):
        """Test policy number and company are required keys but may be blank."""
        policy = Policy(policy_no="", company_name="")
        assert policy.health_info is None
        with pytest.raises(ValueError):
            Policy.model_validate({"companyName": "LIC"})

    def test_family_member_requires_name(self):
        """Test family member name cannot be empty."""
        with pytest.raises(ValueError):
            FamilyMember(name="   ")

    def test_to_document_uses_camel_case(self, candidate):
        """Test the stored document shape."""
        document = ClientRecord.model_validate(candidate).to_document()
        assert document["clientName"] == "Asha Rao"
        assert document["carBikePolicies"] == [
            {"policyNo": "", "companyName": "", "healthInfo": None}
        ]
        assert document["addresses"][0] == {"type": "Current", "value": "12 MG Road, Bengaluru"}
        assert "client_name" not in document
        assert document["familyMembers"][0]["aadharMobile"] == ""

    def test_to_document_includes_every_collection(self):
        """Test omitted collections are written as empty lists."""
        document = ClientRecord(client_name="Asha").to_document()
        for key in (
            "mobiles", "addresses", "healthPolicies", "carBikePolicies",
            "lifePolicies", "mutualFundInvestments", "customFields", "familyMembers",
        ):
            assert document[key] == []

    def test_client_from_document(self, candidate):
        """Test building a stored client from its document."""
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        client = Client.from_document(
            "c1",
            {**candidate, "userId": "u1", "createdAt": created, "updatedAt": created},
        )
        assert client.id == "c1"
        assert client.user_id == "u1"
        assert client.created_at == created

    def test_client_to_record_drops_identity(self, candidate):
        """Test to_record strips repository-owned fields."""
        client = Client.from_document("c1", {**candidate, "userId": "u1"})
        record = client.to_record()
        assert type(record) is ClientRecord
        assert record == ClientRecord.model_validate(candidate)


class TestActivityModels:
    """Tests for activity logging models."""

    def test_activity_event_creation(self):
        """Test ActivityEvent model creation."""
        event = ActivityEvent(
            event_type=ActivityEventType.CLIENT_CREATED,
            description="Client created: Asha",
        )
        assert event.severity == ActivitySeverity.INFO
        assert event.event_id is not None

    def test_activity_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = ActivityEvent(
            event_type=ActivityEventType.CLIENT_DELETED,
            user_id="u1",
            client_id="c1",
            correlation_id=correlation_id,
            description="Client deleted",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "client_deleted"
        assert log_dict["user_id"] == "u1"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_activity_event_builder_client_created(self):
        """Test ActivityEventBuilder for client creation."""
        event = ActivityEventBuilder.client_created("u1", "c1", "Asha")
        assert event.event_type == ActivityEventType.CLIENT_CREATED
        assert "Asha" in event.description
        assert event.client_id == "c1"

    def test_activity_event_builder_ai_failed(self):
        """Test ActivityEventBuilder for AI failures."""
        event = ActivityEventBuilder.ai_request_failed("autofillData", "timeout")
        assert event.severity == ActivitySeverity.ERROR
        assert event.details == {"flow": "autofillData"}
        assert event.error_message == "timeout"

    def test_every_event_type_has_a_builder(self):
        """Test each event type is one the flows actually emit."""
        built = {
            ActivityEventBuilder.client_created("u1", "c1", "Asha").event_type,
            ActivityEventBuilder.client_updated("u1", "c1", "Asha").event_type,
            ActivityEventBuilder.client_deleted("u1", "c1").event_type,
            ActivityEventBuilder.validation_failed("u1", []).event_type,
            ActivityEventBuilder.subscription_opened("u1").event_type,
            ActivityEventBuilder.subscription_closed("u1").event_type,
            ActivityEventBuilder.ai_request_completed("autofillData").event_type,
            ActivityEventBuilder.ai_request_failed("autofillData", "x").event_type,
            ActivityEventBuilder.storage_error("create", "x").event_type,
        }
        assert built == set(ActivityEventType)
        assert not hasattr(ActivityEventBuilder, "system_error")


class TestValidationResult:
    """Tests for the tagged validation result."""

    def test_valid_result_requires_record(self):
        """Test a valid result without a record is rejected."""
        with pytest.raises(ValueError):
            ValidationResult(is_valid=True)

    def test_invalid_result_requires_an_error(self):
        """Test an invalid result must carry at least one error."""
        with pytest.raises(ValueError):
            ValidationResult(is_valid=False, issues=[])

    def test_invalid_result_cannot_carry_record(self):
        """Test an invalid result cannot also carry a record."""
        with pytest.raises(ValueError):
            ValidationResult(
                is_valid=False,
                record=ClientRecord(client_name="Asha"),
                issues=[ValidationIssue(field="pan", issue_type="x", message="bad")],
            )

    def test_valid_result_with_warnings(self):
        """Test warnings may accompany a valid result."""
        result = ValidationResult(
            is_valid=True,
            record=ClientRecord(client_name="Asha"),
            issues=[
                ValidationIssue(field="pan", issue_type="invalid_format", message="check", severity="warning"),
            ],
        )
        assert not result.has_errors
        assert len(result.warnings) == 1
        assert result.raise_for_errors().client_name == "Asha"

    def test_raise_for_errors(self):
        """Test raise_for_errors carries the issues."""
        issue = ValidationIssue(field="clientName", issue_type="missing", message="required")
        result = ValidationResult(is_valid=False, issues=[issue])
        assert result.error_count == 1
        assert result.field_errors() == {"clientName": "required"}
        with pytest.raises(ValidationError) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.issues == [issue]

    def test_issue_severity_restricted(self):
        """Test severity is error or warning."""
        with pytest.raises(ValueError):
            ValidationIssue(field="pan", issue_type="x", message="m", severity="fatal")
