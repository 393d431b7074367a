"""
Registry data model.

Records are plain dataclasses. The store only ever holds their dict
form, so a record handed to a caller can be mutated freely without
touching registry state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class LedgerContext:
    """Per-operation values supplied by the hosting ledger.

    The caller is already authenticated by the time it reaches the
    registry; it is never re-derived here.
    """

    caller: str
    height: int

    def __post_init__(self) -> None:
        if not isinstance(self.caller, str) or not self.caller:
            raise ValueError("caller must be a non-empty string")
        if isinstance(self.height, bool) or not isinstance(self.height, int):
            raise ValueError("height must be an integer")
        if self.height < 0:
            raise ValueError("height must not be negative")


@dataclass
class IdentityRecord:
    """A DID and its credentials, owned by exactly one principal."""

    did: str
    created_at: int
    updated_at: int
    credentials: list[str] = field(default_factory=list)
    is_active: bool = True
    revocation_reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IdentityRecord:
        """Create an IdentityRecord from its stored form."""
        return cls(
            did=data["did"],
            created_at=int(data["created_at"]),
            updated_at=int(data["updated_at"]),
            credentials=list(data.get("credentials", [])),
            is_active=bool(data.get("is_active", True)),
            revocation_reason=data.get("revocation_reason"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "did": self.did,
            "credentials": list(self.credentials),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_active": self.is_active,
            "revocation_reason": self.revocation_reason,
        }


@dataclass
class PendingTransfer:
    """An outstanding ownership transfer, keyed by the current owner."""

    new_owner: str
    initiated_at: int
    expires_at: int

    def is_expired(self, height: int) -> bool:
        """Check whether the transfer can no longer be accepted at height."""
        return height > self.expires_at

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingTransfer:
        """Create a PendingTransfer from its stored form."""
        return cls(
            new_owner=data["new_owner"],
            initiated_at=int(data["initiated_at"]),
            expires_at=int(data["expires_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_owner": self.new_owner,
            "initiated_at": self.initiated_at,
            "expires_at": self.expires_at,
        }


@dataclass
class TransferHistoryEntry:
    """One completed transfer, as recorded in the recipient's history."""

    from_owner: str
    to_owner: str
    timestamp: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransferHistoryEntry:
        """Create a TransferHistoryEntry from its stored form."""
        return cls(
            from_owner=data["from"],
            to_owner=data["to"],
            timestamp=int(data["timestamp"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_owner,
            "to": self.to_owner,
            "timestamp": self.timestamp,
        }
