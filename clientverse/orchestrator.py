"""
Main Orchestrator for ClientVerse

This module ties together all the components and defines the
workflows behind the client management screens:
1. Save (form data → validate → create or update)
2. Delete and live listing (subscribe → search → render), with one
   shared subscription per user across UI sessions
3. AI helpers (record → product recommendations / autofill proposals)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written unless validation passed
- The UI only ever shows what the live subscription delivered
- AI proposals are applied to the form, never written directly
- Every write and AI call is logged

Storage and AI failures are logged and re-raised unchanged so the UI can
show its notification. There is no retry anywhere.
"""

import json
import threading
from collections import OrderedDict
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from clientverse.activity import ActivityLogger, create_correlation_id
from clientverse.agents import (
    AgentError,
    DataAutofillAgent,
    ProductRecommendationAgent,
    ProductRecommendations,
    parse_autofill_payload,
)
from clientverse.config import get_settings
from clientverse.models.client import (
    Client,
    ClientRecord,
    DynamicField,
    ValidationResult,
)
from clientverse.services.storage import (
    ClientRepository,
    ClientSubscription,
    InMemoryClientRepository,
    StorageError,
)
from clientverse.validation import ClientValidator


logger = structlog.get_logger(__name__)


# Scalar fields the autofill helper may propose, in form order
AUTOFILL_TEXT_FIELDS = (
    "referenceName",
    "pan",
    "aadhar",
    "aadharMobile",
    "passportNo",
    "passportExpiryDate",
)

# List fields the autofill helper may seed with a single entry
AUTOFILL_LIST_FIELDS = ("mobiles", "addresses")


class SaveOutcome(BaseModel):
    """Result of a save: the client id on success, the issues otherwise."""

    validation: ValidationResult
    client_id: Optional[str] = None
    created: bool = False

    @property
    def saved(self) -> bool:
        return self.client_id is not None

    @property
    def issues(self):
        return self.validation.issues


class ClientManagementFlow:
    """
    Orchestrates client management for one signed-in advisor at a time.

    The user identifier is passed to every call; the flow itself holds no
    per-user state.
    """

    def __init__(
        self,
        repository: ClientRepository,
        validator: Optional[ClientValidator] = None,
        recommendation_agent: Optional[ProductRecommendationAgent] = None,
        autofill_agent: Optional[DataAutofillAgent] = None,
        activity_logger: Optional[ActivityLogger] = None,
    ):
        self._repository = repository
        self._validator = validator or ClientValidator()
        # Agents need Gemini credentials, so they are built on first use
        self._recommendation_agent = recommendation_agent
        self._autofill_agent = autofill_agent
        self._activity_logger = activity_logger or ActivityLogger()

    @property
    def repository(self) -> ClientRepository:
        return self._repository

    @property
    def validator(self) -> ClientValidator:
        return self._validator

    def _get_recommendation_agent(self) -> ProductRecommendationAgent:
        if self._recommendation_agent is None:
            self._recommendation_agent = ProductRecommendationAgent()
        return self._recommendation_agent

    def _get_autofill_agent(self) -> DataAutofillAgent:
        if self._autofill_agent is None:
            self._autofill_agent = DataAutofillAgent()
        return self._autofill_agent

    # =========================================================================
    # RECORDS
    # =========================================================================

    async def save_client(
        self,
        user_id: str,
        candidate: Union[dict[str, Any], BaseModel],
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        """
        Validate form data, then create (no client_id) or update the client.

        Returns:
            SaveOutcome with the client id, or with the validation issues
            when nothing was written

        Raises:
            NotFoundError: If client_id does not exist
            WriteError: If the store refused or could not take the write
        """
        correlation_id = correlation_id or create_correlation_id()

        result = self._validator.validate(candidate)
        if not result.is_valid:
            self._activity_logger.log_validation_failed(
                user_id=user_id,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.errors
                ],
                client_id=client_id,
                correlation_id=correlation_id,
            )
            return SaveOutcome(validation=result)

        record = result.record
        try:
            if client_id:
                await self._repository.update(user_id, client_id, record)
                created = False
            else:
                client_id = await self._repository.create(user_id, record)
                created = True
        except StorageError as e:
            self._activity_logger.log_storage_error(
                operation="update" if client_id else "create",
                error_message=str(e),
                user_id=user_id,
                client_id=client_id,
                correlation_id=correlation_id,
            )
            raise

        self._activity_logger.log_client_saved(
            user_id=user_id,
            client_id=client_id,
            client_name=record.client_name,
            created=created,
            correlation_id=correlation_id,
        )
        return SaveOutcome(validation=result, client_id=client_id, created=created)

    async def delete_client(
        self,
        user_id: str,
        client_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete a client with everything nested in it."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            await self._repository.delete(user_id, client_id)
        except StorageError as e:
            self._activity_logger.log_storage_error(
                operation="delete",
                error_message=str(e),
                user_id=user_id,
                client_id=client_id,
                correlation_id=correlation_id,
            )
            raise

        self._activity_logger.log_client_deleted(
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
        )

    async def watch_clients(self, user_id: str) -> ClientSubscription:
        """
        Open the live client list for a user.

        Close it with close_watch() (or subscription.cancel()) when the
        view goes away.
        """
        try:
            subscription = await self._repository.subscribe(user_id)
        except StorageError as e:
            self._activity_logger.log_storage_error(
                operation="subscribe",
                error_message=str(e),
                user_id=user_id,
            )
            raise

        self._activity_logger.log_subscription(user_id, opened=True)
        return subscription

    def close_watch(self, subscription: ClientSubscription) -> None:
        """Cancel a live subscription. Safe to call more than once."""
        if subscription.cancelled:
            return
        subscription.cancel()
        self._activity_logger.log_subscription(subscription.user_id, opened=False)

    @staticmethod
    def search_clients(clients: list[Client], term: str) -> list[Client]:
        """
        Filter clients by name.

        Case-insensitive substring match on the client name. A blank term
        keeps every client. Order is preserved.
        """
        needle = (term or "").strip().casefold()
        if not needle:
            return list(clients)
        return [c for c in clients if needle in c.client_name.casefold()]

    # =========================================================================
    # AI HELPERS
    # =========================================================================

    async def recommend_products(
        self,
        record: ClientRecord,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ProductRecommendations:
        """
        Ask the model for cross-sell products for one client.

        Raises:
            InvalidInputError, UpstreamError: From the recommendation agent
        """
        if isinstance(record, Client):
            client_id = client_id or record.id
            record = record.to_record()

        client_data = json.dumps(record.to_document(), ensure_ascii=False)

        try:
            recommendations = await self._get_recommendation_agent().get_product_recommendations(
                client_data
            )
        except AgentError as e:
            self._activity_logger.log_ai_failed(
                flow="getProductRecommendations",
                error_message=str(e),
                client_id=client_id,
                correlation_id=correlation_id,
            )
            raise

        self._activity_logger.log_ai_completed(
            flow="getProductRecommendations",
            details={
                "insurance_count": len(recommendations.insurance_recommendations),
                "investment_count": len(recommendations.investment_recommendations),
            },
            client_id=client_id,
            correlation_id=correlation_id,
        )
        return recommendations

    @staticmethod
    def find_missing_fields(record: ClientRecord) -> list[str]:
        """Names of the autofillable fields that are still blank."""
        document = record.to_document()
        missing = [name for name in AUTOFILL_TEXT_FIELDS if not document.get(name)]
        missing.extend(name for name in AUTOFILL_LIST_FIELDS if not document.get(name))
        return missing

    @staticmethod
    def describe_known_data(record: ClientRecord) -> str:
        """
        Plain-text summary of what is known about a client, one fact per line.

        Secrets (the income-tax password) are never included.
        """
        lines = []
        labels = {
            "referenceName": "Referred by",
            "pan": "PAN",
            "aadhar": "Aadhaar",
            "aadharMobile": "Aadhaar mobile",
            "passportNo": "Passport number",
            "passportExpiryDate": "Passport expiry",
            "remarks": "Remarks",
        }
        document = record.to_document()
        for key, label in labels.items():
            if document.get(key):
                lines.append(f"{label}: {document[key]}")

        if record.mobiles:
            lines.append("Phone numbers: " + ", ".join(m.value for m in record.mobiles))
        for address in record.addresses:
            lines.append(f"{address.type.value} address: {address.value}")
        for policy_kind, policies in (
            ("Health", record.health_policies),
            ("Car/bike", record.car_bike_policies),
            ("Life", record.life_policies),
        ):
            for policy in policies:
                insurer = policy.company_name or "unknown insurer"
                lines.append(f"{policy_kind} policy: {insurer} {policy.policy_no}".rstrip())
        for fund in record.mutual_fund_investments:
            lines.append(f"Mutual fund: {fund.amc} (folio {fund.folio})")
        for field in record.custom_fields:
            lines.append(f"{field.name}: {field.value}")
        for member in record.family_members:
            relation = f" ({member.relationship})" if member.relationship else ""
            lines.append(f"Family member: {member.name}{relation}")

        return "\n".join(lines)

    async def autofill_client(
        self,
        record: ClientRecord,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Any]:
        """
        Ask the model to propose values for the record's blank fields.

        Returns:
            Proposals keyed by field name, only for fields that are blank.
            Empty when nothing is missing.

        Raises:
            UpstreamError: If the model call fails
            ValueError: If the model text is not a JSON object
        """
        if isinstance(record, Client):
            client_id = client_id or record.id

        missing = self.find_missing_fields(record)
        if not missing:
            return {}

        try:
            result = await self._get_autofill_agent().autofill_data(
                client_name=record.client_name,
                available_data=self.describe_known_data(record),
                missing_fields=", ".join(missing),
            )
            proposals = parse_autofill_payload(result.autofilled_data)
        except (AgentError, ValueError) as e:
            self._activity_logger.log_ai_failed(
                flow="autofillData",
                error_message=str(e),
                client_id=client_id,
                correlation_id=correlation_id,
            )
            raise

        proposals = {
            key: value
            for key, value in proposals.items()
            if key in missing and value not in (None, "", [])
        }
        self._activity_logger.log_ai_completed(
            flow="autofillData",
            details={"proposed_fields": sorted(proposals)},
            client_id=client_id,
            correlation_id=correlation_id,
        )
        return proposals

    @staticmethod
    def apply_autofill(
        candidate: dict[str, Any],
        proposals: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Merge proposals into form data without overwriting anything.

        Only blank text fields are filled; an empty phone or address list
        gets a single entry. Returns a new dict; the input is untouched.
        """
        merged = dict(candidate)
        for key, value in proposals.items():
            if key in AUTOFILL_TEXT_FIELDS:
                text = str(value).strip() if value is not None else ""
                if text and not str(merged.get(key) or "").strip():
                    merged[key] = text
            elif key in AUTOFILL_LIST_FIELDS:
                if merged.get(key):
                    continue
                text = value[0] if isinstance(value, list) and value else value
                text = str(text).strip() if text else ""
                if not text:
                    continue
                if key == "mobiles":
                    merged[key] = [DynamicField(value=text).model_dump(by_alias=True)]
                else:
                    merged[key] = [{"type": "Permanent", "value": text}]
        return merged


class ClientWatchRegistry:
    """
    One live subscription per user, shared by every UI session.

    Rerun-based UIs only read `latest`, so sessions of the same advisor
    can share a handle. The registry keeps at most `max_users` handles
    open and cancels the least recently used one beyond that, so
    listeners do not pile up as sessions come and go.
    """

    def __init__(self, flow: ClientManagementFlow, max_users: int = 50):
        self._flow = flow
        self._max_users = max_users
        self._lock = threading.Lock()
        self._watches: "OrderedDict[str, ClientSubscription]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._watches)

    def current(self, user_id: str) -> Optional[ClientSubscription]:
        """The user's open subscription, or None if there is no healthy one."""
        with self._lock:
            subscription = self._watches.get(user_id)
            if subscription is None:
                return None
            if subscription.cancelled or subscription.error is not None:
                del self._watches[user_id]
                stale = subscription
            else:
                self._watches.move_to_end(user_id)
                return subscription
        self._flow.close_watch(stale)
        return None

    async def open(self, user_id: str) -> ClientSubscription:
        """
        Return the user's subscription, opening one if needed.

        Raises:
            StorageError: If the listener cannot be attached
        """
        subscription = self.current(user_id)
        if subscription is not None:
            return subscription

        subscription = await self._flow.watch_clients(user_id)

        evicted = []
        with self._lock:
            existing = self._watches.get(user_id)
            if existing is not None and not existing.cancelled:
                # Another session opened one in the meantime
                evicted.append(subscription)
                subscription = existing
            else:
                self._watches[user_id] = subscription
            self._watches.move_to_end(user_id)
            while len(self._watches) > self._max_users:
                _, oldest = self._watches.popitem(last=False)
                evicted.append(oldest)
        for stale in evicted:
            self._flow.close_watch(stale)
        return subscription

    def close_all(self) -> None:
        """Cancel every open subscription."""
        with self._lock:
            watches = list(self._watches.values())
            self._watches.clear()
        for subscription in watches:
            self._flow.close_watch(subscription)


def create_app_components(
    storage_backend: Optional[str] = None,
) -> tuple[ClientManagementFlow, ClientRepository]:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "firestore" or "memory". Defaults to
                         CLIENTVERSE_STORAGE_BACKEND.

    Returns:
        (client_management_flow, repository)

    Raises:
        StorageError: If Firestore is selected but cannot be set up.
            Saves are never silently redirected to in-memory storage.
    """
    backend = storage_backend or get_settings().app.storage_backend
    activity_logger = ActivityLogger()

    repository: ClientRepository
    if backend == "firestore":
        try:
            from clientverse.services.storage.firestore import FirestoreClientRepository
            repository = FirestoreClientRepository()
        except (ImportError, ValueError, StorageError) as e:
            logger.error("firestore_not_configured", error=str(e))
            raise StorageError(f"Firestore storage is not configured: {e}") from e
    else:
        repository = InMemoryClientRepository()

    flow = ClientManagementFlow(
        repository=repository,
        activity_logger=activity_logger,
    )
    return flow, repository
