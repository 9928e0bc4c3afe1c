"""
Storage Services Package

Provides the abstract client repository and its implementations.
Cloud Firestore in production, in-memory for tests and local runs.
"""

from clientverse.services.storage.interface import (
    ClientRepository,
    ClientSubscription,
    NotFoundError,
    ReadError,
    StorageError,
    WriteError,
)
from clientverse.services.storage.memory import InMemoryClientRepository

__all__ = [
    # Interfaces
    "ClientRepository",
    "ClientSubscription",
    # Exceptions
    "NotFoundError",
    "ReadError",
    "StorageError",
    "WriteError",
    # Implementations
    "InMemoryClientRepository",
]
