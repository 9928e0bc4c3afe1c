"""
Abstract Client Repository Interface

DESIGN DECISION: We define an abstract interface for client storage.
This allows us to:
1. Run against Cloud Firestore in production
2. Use in-memory storage for testing and local development
3. Keep the workflows decoupled from the storage SDK

The interface is intentionally small - create, update, delete and a live
subscription. There is no separate query path: the current client list
is only ever what the subscription last delivered.

Every operation takes the owning user's identifier explicitly. Clients
live in a per-user partition and one user can never address another
user's clients.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from clientverse.models.client import Client, ClientRecord


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class WriteError(StorageError):
    """A write or delete could not be committed (transport or permission)."""
    pass


class ReadError(StorageError):
    """The store could not be read or the live listener failed."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


def require_path_segment(
    value: str,
    what: str,
    error_cls: type[StorageError] = WriteError,
) -> str:
    """
    Check a user or client identifier can be used as a document path segment.

    Raises:
        error_cls: If the identifier is blank or contains a path separator
    """
    if not isinstance(value, str) or not value.strip():
        raise error_cls(f"A {what} is required")
    if "/" in value or value in (".", ".."):
        raise error_cls(f"Invalid {what}: {value!r}")
    return value


def order_snapshot(clients: list[Client]) -> list[Client]:
    """Order a snapshot oldest first; clients without a timestamp go last."""
    return sorted(
        clients,
        key=lambda c: (
            c.created_at is None,
            c.created_at.timestamp() if c.created_at else 0.0,
            c.id,
        ),
    )


_CLOSED = object()

# Seconds between listener checks while waiting for a snapshot
LISTENER_CHECK_INTERVAL = 1.0


class ClientSubscription:
    """
    Handle on a live stream of client snapshots for one user.

    Each delivered item is the COMPLETE current list of the user's clients.
    Consumers either iterate:

        async with await repository.subscribe(user_id) as subscription:
            async for clients in subscription:
                render(clients)

    or, in rerun-based UIs, read `latest` whenever they redraw.

    Snapshots may be published from a storage SDK's own thread; they are
    handed to the event loop that opened the subscription.

    cancel() stops delivery, releases the backend listener and is
    idempotent.

    A backend whose listener can die without calling back registers a
    liveness check with set_listener_check(). A dead listener turns into
    a ReadError on `error` and from iteration.
    """

    def __init__(
        self,
        user_id: str,
        on_cancel: Optional[Callable[[], None]] = None,
    ):
        self.user_id = user_id
        self._on_cancel = on_cancel
        self._listener_alive: Optional[Callable[[], bool]] = None
        self._lock = threading.Lock()
        self._latest: Optional[list[Client]] = None
        self._error: Optional[StorageError] = None
        self._cancelled = False
        self._queue: asyncio.Queue = asyncio.Queue()
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def latest(self) -> Optional[list[Client]]:
        """Most recently delivered snapshot, or None before the first one."""
        with self._lock:
            return list(self._latest) if self._latest is not None else None

    @property
    def error(self) -> Optional[StorageError]:
        """Listener failure, if the stream broke."""
        self._check_listener()
        return self._error

    def set_release(self, on_cancel: Callable[[], None]) -> None:
        """Attach the callback that detaches the backend listener."""
        self._on_cancel = on_cancel

    def set_listener_check(self, is_alive: Callable[[], bool]) -> None:
        """Attach a check that reports whether the backend listener still runs."""
        self._listener_alive = is_alive

    def _check_listener(self) -> None:
        is_alive = self._listener_alive
        if is_alive is None or self._cancelled or self._error is not None:
            return
        if not is_alive():
            self.fail(ReadError("The live client listener stopped"))

    # -- producer side -------------------------------------------------------

    def publish(self, clients: list[Client]) -> None:
        """Deliver a new full snapshot. Ignored after cancel()."""
        snapshot = order_snapshot(clients)
        with self._lock:
            if self._cancelled:
                return
            self._latest = snapshot
        self._deliver(list(snapshot))

    def fail(self, error: StorageError) -> None:
        """Deliver a listener failure; iteration raises it."""
        with self._lock:
            if self._cancelled:
                return
            self._error = error
        self._deliver(error)

    def _deliver(self, item: object) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._queue.put_nowait(item)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)

    # -- consumer side -------------------------------------------------------

    def cancel(self) -> None:
        """Stop delivery and release the listener. Safe to call repeatedly."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            release, self._on_cancel = self._on_cancel, None
        if release is not None:
            release()
        self._deliver(_CLOSED)

    async def next_snapshot(
        self,
        timeout: Optional[float] = None,
    ) -> Optional[list[Client]]:
        """
        Wait for the next delivered snapshot.

        Returns:
            The snapshot, or None once the subscription is cancelled

        Raises:
            ReadError: If the backend listener failed
            asyncio.TimeoutError: If nothing arrives within `timeout`
        """
        if self._cancelled:
            return None
        self._check_listener()
        item: Union[list[Client], StorageError, object] = await self._next_item(timeout)
        if item is _CLOSED or self._cancelled:
            return None
        if isinstance(item, StorageError):
            raise item
        return item

    async def _next_item(self, timeout: Optional[float]) -> object:
        if self._listener_alive is None:
            return await asyncio.wait_for(self._queue.get(), timeout)

        # Wake up periodically so a listener that died silently is noticed
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            wait = LISTENER_CHECK_INTERVAL
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                wait = min(wait, remaining)
            try:
                return await asyncio.wait_for(self._queue.get(), wait)
            except asyncio.TimeoutError:
                self._check_listener()

    def __aiter__(self) -> "ClientSubscription":
        return self

    async def __anext__(self) -> list[Client]:
        snapshot = await self.next_snapshot()
        if snapshot is None:
            raise StopAsyncIteration
        return snapshot

    async def __aenter__(self) -> "ClientSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class ClientRepository(ABC):
    """
    Abstract interface for client storage operations.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def create(self, user_id: str, record: ClientRecord) -> str:
        """
        Insert a new client into the user's partition.

        Assigns the identifier and both creation and update timestamps.

        Args:
            user_id: Owning user
            record: Validated client record

        Returns:
            The new client's identifier

        Raises:
            WriteError: If the store is unreachable or the write is refused
        """
        pass

    @abstractmethod
    async def update(
        self,
        user_id: str,
        client_id: str,
        record: ClientRecord,
    ) -> None:
        """
        Merge a record into an existing client.

        Top-level fields in the record replace the stored ones; nested
        collections are replaced wholesale, never merged entry by entry.
        The owner and creation time are left untouched. The update
        timestamp is restamped. Last write wins.

        Raises:
            NotFoundError: If the client does not exist in this partition
            WriteError: If the store is unreachable or the write is refused
        """
        pass

    @abstractmethod
    async def delete(self, user_id: str, client_id: str) -> None:
        """
        Delete a client and everything nested in it.

        Deleting an absent client is not an error.

        Raises:
            WriteError: If the store is unreachable or the delete is refused
        """
        pass

    @abstractmethod
    async def subscribe(self, user_id: str) -> ClientSubscription:
        """
        Open a live subscription to the user's full client list.

        The current list is delivered first; every later create, update or
        delete in the partition delivers a fresh full list.

        Raises:
            ReadError: If the listener cannot be attached
        """
        pass
