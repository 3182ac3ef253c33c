"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
In-memory storage serves tests and single-process use; Google Sheets is the
persistent backend. Both are swappable behind the same interface.
"""

from maaser.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    MissingRecordError,
    PersistenceError,
)
from maaser.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from maaser.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "MissingRecordError",
    "PersistenceError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
