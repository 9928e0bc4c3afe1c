"""Services package."""

from clientverse.services.storage import (
    ClientRepository,
    ClientSubscription,
    InMemoryClientRepository,
    NotFoundError,
    ReadError,
    StorageError,
    WriteError,
)

__all__ = [
    "ClientRepository",
    "ClientSubscription",
    "InMemoryClientRepository",
    "NotFoundError",
    "ReadError",
    "StorageError",
    "WriteError",
]
