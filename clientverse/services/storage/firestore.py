"""
Cloud Firestore Client Repository

DESIGN DECISION: Firestore is the production backend because:
1. One document per client holds the whole nested record
2. Snapshot listeners give us push-based live updates for free
3. Per-user sub-collections isolate each advisor's partition

Document path: clients/{userId}/userClients/{clientId}

TRADEOFFS:
- No cross-document transactions (each client is its own unit)
- No optimistic concurrency - the last committed write wins
- The Admin SDK is blocking, so calls run on a worker thread

The implementation follows the abstract interface, so the workflows
never import the SDK directly.
"""

import asyncio
from typing import Optional

import firebase_admin
import structlog
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError as PydanticValidationError

from clientverse.config import FirestoreSettings, get_settings
from clientverse.models.client import Client, ClientRecord
from clientverse.services.storage.interface import (
    ClientRepository,
    ClientSubscription,
    NotFoundError,
    ReadError,
    StorageError,
    WriteError,
    require_path_segment,
)


APP_NAME = "clientverse"

logger = structlog.get_logger(__name__)


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles Firebase app initialization and builds collection references.
    """

    def __init__(self, settings: Optional[FirestoreSettings] = None):
        self._settings = settings or get_settings().firestore
        self._db = None

    def connect(self, error_cls: type[StorageError] = StorageError):
        """
        Establish connection to Firestore.

        Uses service account credentials for authentication.
        """
        if self._db is None:
            try:
                try:
                    app = firebase_admin.get_app(APP_NAME)
                except ValueError:
                    cred = credentials.Certificate(self._settings.credentials_path)
                    options = (
                        {"projectId": self._settings.project_id}
                        if self._settings.project_id
                        else None
                    )
                    app = firebase_admin.initialize_app(cred, options, name=APP_NAME)
                self._db = firestore.client(app=app)
            except FileNotFoundError:
                raise error_cls(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except (ValueError, google_exceptions.GoogleAPIError) as e:
                raise error_cls(f"Failed to connect to Firestore: {e}")

        return self._db

    def user_clients(
        self,
        user_id: str,
        error_cls: type[StorageError] = StorageError,
    ):
        """Collection reference for one user's clients."""
        db = self.connect(error_cls)
        return (
            db.collection(self._settings.root_collection)
            .document(user_id)
            .collection(self._settings.user_collection)
        )


class FirestoreClientRepository(ClientRepository):
    """
    Firestore implementation of client storage.

    Each client is one document holding the full nested record.
    Timestamps are assigned by the server.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    async def create(self, user_id: str, record: ClientRecord) -> str:
        """Insert a new client with an auto-generated document ID."""
        require_path_segment(user_id, "user id")

        document = record.to_document()
        document.update(
            userId=user_id,
            createdAt=firestore.SERVER_TIMESTAMP,
            updatedAt=firestore.SERVER_TIMESTAMP,
        )

        def _write() -> str:
            doc_ref = self._client.user_clients(user_id, WriteError).document()
            doc_ref.set(document)
            return doc_ref.id

        try:
            return await asyncio.to_thread(_write)
        except google_exceptions.PermissionDenied as e:
            raise WriteError(f"Not allowed to write clients for user {user_id}: {e}")
        except google_exceptions.GoogleAPIError as e:
            raise WriteError(f"Failed to create client: {e}")

    async def update(
        self,
        user_id: str,
        client_id: str,
        record: ClientRecord,
    ) -> None:
        """
        Replace the supplied top-level fields of an existing client.

        DocumentReference.update() fails on a missing document, so the
        existence check and the write are one server call.
        """
        require_path_segment(user_id, "user id")
        require_path_segment(client_id, "client id")

        payload = record.to_document()
        payload["updatedAt"] = firestore.SERVER_TIMESTAMP

        def _write() -> None:
            doc_ref = self._client.user_clients(user_id, WriteError).document(client_id)
            doc_ref.update(payload)

        try:
            await asyncio.to_thread(_write)
        except google_exceptions.NotFound:
            raise NotFoundError(f"Client not found: {client_id}")
        except google_exceptions.PermissionDenied as e:
            raise WriteError(f"Not allowed to write clients for user {user_id}: {e}")
        except google_exceptions.GoogleAPIError as e:
            raise WriteError(f"Failed to update client: {e}")

    async def delete(self, user_id: str, client_id: str) -> None:
        """Delete a client document. Firestore deletes are idempotent."""
        require_path_segment(user_id, "user id")
        require_path_segment(client_id, "client id")

        def _delete() -> None:
            self._client.user_clients(user_id, WriteError).document(client_id).delete()

        try:
            await asyncio.to_thread(_delete)
        except google_exceptions.PermissionDenied as e:
            raise WriteError(f"Not allowed to delete clients for user {user_id}: {e}")
        except google_exceptions.GoogleAPIError as e:
            raise WriteError(f"Failed to delete client: {e}")

    async def subscribe(self, user_id: str) -> ClientSubscription:
        """Attach a snapshot listener to the user's client collection."""
        require_path_segment(user_id, "user id", ReadError)

        subscription = ClientSubscription(user_id)

        def on_snapshot(docs, changes, read_time) -> None:
            clients = []
            for doc in docs:
                try:
                    clients.append(Client.from_document(doc.id, doc.to_dict() or {}))
                except PydanticValidationError as e:
                    # Skip malformed documents rather than break the stream
                    logger.warning(
                        "malformed_client_document",
                        user_id=user_id,
                        client_id=doc.id,
                        error=str(e),
                    )
            subscription.publish(clients)

        def _attach():
            return self._client.user_clients(user_id, ReadError).on_snapshot(on_snapshot)

        try:
            watch = await asyncio.to_thread(_attach)
        except google_exceptions.PermissionDenied as e:
            raise ReadError(f"Not allowed to read clients for user {user_id}: {e}")
        except google_exceptions.GoogleAPIError as e:
            raise ReadError(f"Failed to subscribe to clients: {e}")

        subscription.set_release(watch.unsubscribe)
        # The watch shuts down on its own when the listen stream fails for good
        subscription.set_listener_check(lambda: watch.is_active)
        return subscription
