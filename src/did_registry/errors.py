"""
Error taxonomy for registry operations.

Every rejected operation raises a RegistryError carrying exactly one
ErrorCode. The code values are stable and safe to persist or return
over the wire.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Stable registry error codes."""

    UNAUTHORIZED = "unauthorized"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    MAX_CREDENTIALS = "max_credentials"
    ALREADY_DEACTIVATED = "already_deactivated"
    DEACTIVATED = "deactivated"
    TRANSFER_IN_PROGRESS = "transfer_in_progress"
    NO_PENDING_TRANSFER = "no_pending_transfer"
    TRANSFER_EXPIRED = "transfer_expired"
    SELF_TRANSFER = "self_transfer"
    HISTORY_FULL = "history_full"
    INVALID_DID_FORMAT = "invalid_did_format"
    INVALID_CREDENTIAL_FORMAT = "invalid_credential_format"


class RegistryError(Exception):
    """Raised when a registry operation is rejected."""

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or code.value.replace("_", " ")
        super().__init__(f"{code.name}: {self.message}")


class StoreError(Exception):
    """Raised when the backing store cannot be read or written."""
