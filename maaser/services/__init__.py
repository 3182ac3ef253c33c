"""Services package."""

from maaser.services.membership import (
    AcceptedPartnershipProvider,
    MembershipProvider,
    SelectedPartnersProvider,
)
from maaser.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    MissingRecordError,
    PersistenceError,
)

__all__ = [
    # Membership providers
    "AcceptedPartnershipProvider",
    "MembershipProvider",
    "SelectedPartnersProvider",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "MissingRecordError",
    "PersistenceError",
]
