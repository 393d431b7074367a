"""Registry limits and behaviour switches."""

from __future__ import annotations

from dataclasses import dataclass

DID_PREFIX = "did:stx:"
MAX_DID_LENGTH = 100
MAX_CREDENTIAL_LENGTH = 200
MAX_CREDENTIALS = 10
MAX_REASON_LENGTH = 100
TRANSFER_WINDOW = 144
MAX_HISTORY_ENTRIES = 10


@dataclass(frozen=True)
class RegistryConfig:
    """Configuration shared by all registry components.

    Attributes:
        did_prefix: Method prefix every DID must start with.
        max_did_length: Maximum DID length in characters.
        max_credential_length: Maximum credential length in characters.
        max_credentials: Capacity of an identity's credential list.
        max_reason_length: Maximum length of a deactivation reason.
        transfer_window: Heights a pending transfer stays acceptable for.
        max_history_entries: Capacity of an owner's transfer history.
        cascade_revoke: Also delete the owner's pending transfer and
            transfer history when a DID is revoked.
    """

    did_prefix: str = DID_PREFIX
    max_did_length: int = MAX_DID_LENGTH
    max_credential_length: int = MAX_CREDENTIAL_LENGTH
    max_credentials: int = MAX_CREDENTIALS
    max_reason_length: int = MAX_REASON_LENGTH
    transfer_window: int = TRANSFER_WINDOW
    max_history_entries: int = MAX_HISTORY_ENTRIES
    cascade_revoke: bool = False

    def __post_init__(self) -> None:
        if not self.did_prefix:
            raise ValueError("did_prefix must not be empty")
        if self.max_did_length <= len(self.did_prefix):
            raise ValueError("max_did_length must leave room after the prefix")
        for name in (
            "max_credential_length",
            "max_credentials",
            "max_reason_length",
            "transfer_window",
            "max_history_entries",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
