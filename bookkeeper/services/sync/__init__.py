"""
Sync Services Package

Durable outbox of local changes and the service that replays it
against a remote backend.
"""

from bookkeeper.services.sync.interface import (
    RemoteBackendError,
    RemoteBackendInterface,
    SyncError,
)
from bookkeeper.services.sync.outbox import OutboxEntry, OutboxOperation, SyncOutbox
from bookkeeper.services.sync.service import PeriodicSyncRunner, SyncReport, SyncService

__all__ = [
    # Interface
    "RemoteBackendInterface",
    # Exceptions
    "RemoteBackendError",
    "SyncError",
    # Outbox
    "OutboxEntry",
    "OutboxOperation",
    "SyncOutbox",
    # Service
    "PeriodicSyncRunner",
    "SyncReport",
    "SyncService",
]
