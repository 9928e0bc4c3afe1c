"""Shared fixtures: sample client data and a stand-in for the Gemini model."""

from datetime import datetime, timedelta, timezone

import pytest

from clientverse.services.storage import InMemoryClientRepository


class StubResponse:
    def __init__(self, text):
        self.text = text


class StubModel:
    """Stands in for genai.GenerativeModel; records every prompt."""

    def __init__(self, text="{}", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return StubResponse(self.text)


class StepClock:
    """Deterministic clock: every call is one second later."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def make_model():
    return StubModel


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def repository(clock):
    return InMemoryClientRepository(clock=clock)


@pytest.fixture
def candidate():
    """A complete client as the form sends it (camelCase keys)."""
    return {
        "clientName": "Asha Rao",
        "referenceName": "Vikram",
        "pan": "ABCDE1234F",
        "incomeTaxPassword": "secret",
        "aadhar": "1234 5678 9012",
        "aadharMobile": "9876543210",
        "passportNo": "K1234567",
        "passportExpiryDate": "2031-05-01",
        "remarks": "Prefers email",
        "mobiles": [{"value": "9876543210"}],
        "addresses": [{"type": "Current", "value": "12 MG Road, Bengaluru"}],
        "healthPolicies": [
            {"policyNo": "H-1", "companyName": "Star Health", "healthInfo": "None"},
        ],
        "carBikePolicies": [{"policyNo": "", "companyName": ""}],
        "lifePolicies": [],
        "mutualFundInvestments": [
            {
                "amc": "HDFC",
                "folio": "F-99",
                "units": "120.5",
                "nav": "45.10",
                "investmentAmount": "5000",
            },
        ],
        "customFields": [{"name": "Birthday", "value": "12 March"}],
        "familyMembers": [
            {
                "name": "Ravi Rao",
                "relationship": "Spouse",
                "mobiles": [{"value": "9123456780"}],
            },
        ],
    }
