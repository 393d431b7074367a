"""
DID Registry - decentralized identifier registry with credentials and transfers.

Supports:
- One did:stx: identifier per owner
- Bounded, append-only credential lists
- Deactivation, reactivation and revocation
- Two-step ownership transfer with height-based expiry
- Bounded per-owner transfer history
"""

from did_registry.config import RegistryConfig
from did_registry.errors import ErrorCode, RegistryError, StoreError
from did_registry.models import (
    IdentityRecord,
    LedgerContext,
    PendingTransfer,
    TransferHistoryEntry,
)
from did_registry.registry import DIDRegistry
from did_registry.store import JsonFileStore, KeyValueStore, MemoryStore

__version__ = "0.1.0"

__all__ = [
    "DIDRegistry",
    "RegistryConfig",
    "ErrorCode",
    "RegistryError",
    "StoreError",
    "IdentityRecord",
    "LedgerContext",
    "PendingTransfer",
    "TransferHistoryEntry",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
]
