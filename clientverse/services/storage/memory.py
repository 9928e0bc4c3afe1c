"""
In-Memory Client Repository

Process-local implementation of the repository contract. Used by the
test suite and for running the app without a Firestore project
(CLIENTVERSE_STORAGE_BACKEND=memory).

Documents are kept in the same camelCase shape Firestore stores, and
every committed mutation pushes a fresh snapshot to the partition's
subscribers in commit order.
"""

import copy
import threading
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from clientverse.models.client import Client, ClientRecord
from clientverse.services.storage.interface import (
    ClientRepository,
    ClientSubscription,
    NotFoundError,
    ReadError,
    WriteError,
    require_path_segment,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_client_id() -> str:
    # Same length as Firestore auto-IDs
    return uuid4().hex[:20]


class InMemoryClientRepository(ClientRepository):
    """
    Dictionary-backed client storage.

    Layout mirrors the document path: {user_id: {client_id: document}}.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._documents: dict[str, dict[str, dict]] = {}
        self._subscribers: dict[str, list[ClientSubscription]] = {}
        self._lock = threading.RLock()
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_client_id
        self.available = True

    def _check_available(self, error_cls: type) -> None:
        if not self.available:
            raise error_cls("Storage backend is unavailable")

    def _snapshot(self, user_id: str) -> list[Client]:
        partition = self._documents.get(user_id, {})
        return [
            Client.from_document(client_id, copy.deepcopy(document))
            for client_id, document in partition.items()
        ]

    def _notify(self, user_id: str) -> None:
        # Caller holds the lock, so snapshots go out in commit order
        subscribers = list(self._subscribers.get(user_id, []))
        if not subscribers:
            return
        snapshot = self._snapshot(user_id)
        for subscription in subscribers:
            subscription.publish(snapshot)

    async def create(self, user_id: str, record: ClientRecord) -> str:
        """Insert a new client and return its identifier."""
        require_path_segment(user_id, "user id")
        self._check_available(WriteError)

        now = self._clock()
        document = record.to_document()
        document.update(userId=user_id, createdAt=now, updatedAt=now)

        with self._lock:
            partition = self._documents.setdefault(user_id, {})
            client_id = self._id_factory()
            while client_id in partition:
                client_id = self._id_factory()
            partition[client_id] = document
            self._notify(user_id)
        return client_id

    async def update(
        self,
        user_id: str,
        client_id: str,
        record: ClientRecord,
    ) -> None:
        """Merge top-level fields into an existing client."""
        require_path_segment(user_id, "user id")
        require_path_segment(client_id, "client id")
        self._check_available(WriteError)

        payload = record.to_document()

        with self._lock:
            stored = self._documents.get(user_id, {}).get(client_id)
            if stored is None:
                raise NotFoundError(f"Client not found: {client_id}")
            # Shallow merge: each supplied field replaces the stored one
            stored.update(payload)
            stored["updatedAt"] = self._clock()
            self._notify(user_id)

    async def delete(self, user_id: str, client_id: str) -> None:
        """Delete a client; absent clients are ignored."""
        require_path_segment(user_id, "user id")
        require_path_segment(client_id, "client id")
        self._check_available(WriteError)

        with self._lock:
            removed = self._documents.get(user_id, {}).pop(client_id, None)
            if removed is not None:
                self._notify(user_id)

    async def subscribe(self, user_id: str) -> ClientSubscription:
        """Open a live subscription; the current list is delivered at once."""
        require_path_segment(user_id, "user id", ReadError)
        self._check_available(ReadError)

        subscription = ClientSubscription(user_id)
        subscription.set_release(lambda: self._detach(user_id, subscription))

        with self._lock:
            self._subscribers.setdefault(user_id, []).append(subscription)
            subscription.publish(self._snapshot(user_id))
        return subscription

    def _detach(self, user_id: str, subscription: ClientSubscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(user_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)

    def subscriber_count(self, user_id: str) -> int:
        """Number of live subscriptions on a partition."""
        with self._lock:
            return len(self._subscribers.get(user_id, []))
