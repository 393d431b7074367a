"""
Identity registry and credential vault.

Maps each owner to at most one IdentityRecord and enforces the DID and
credential format rules. Credentials are append-only and bounded; an
append past capacity is rejected, never truncated.
"""

from __future__ import annotations

import logging

from did_registry.config import RegistryConfig
from did_registry.errors import ErrorCode, RegistryError
from did_registry.models import IdentityRecord, LedgerContext
from did_registry.store import IDENTITIES, Transaction

logger = logging.getLogger(__name__)


class IdentityRegistry:
    """Owner -> IdentityRecord mapping with its format rules."""

    def __init__(self, config: RegistryConfig) -> None:
        self.config = config

    def validate_did(self, did: str) -> None:
        """Check a DID against the length and prefix rules.

        Raises:
            RegistryError: INVALID_DID_FORMAT if the DID is empty, too long,
                lacks the method prefix or has nothing after it.
        """
        prefix = self.config.did_prefix
        if not isinstance(did, str) or not did:
            raise RegistryError(ErrorCode.INVALID_DID_FORMAT, "DID must not be empty")
        if len(did) > self.config.max_did_length:
            raise RegistryError(
                ErrorCode.INVALID_DID_FORMAT,
                f"DID exceeds {self.config.max_did_length} characters",
            )
        if not did.startswith(prefix):
            raise RegistryError(
                ErrorCode.INVALID_DID_FORMAT, f"DID must start with {prefix!r}"
            )
        if len(did) == len(prefix):
            raise RegistryError(
                ErrorCode.INVALID_DID_FORMAT, "DID has no method-specific identifier"
            )

    def validate_credential(self, credential: str) -> None:
        """Check a credential against the length rules.

        Raises:
            RegistryError: INVALID_CREDENTIAL_FORMAT if empty or too long.
        """
        if not isinstance(credential, str) or not credential:
            raise RegistryError(
                ErrorCode.INVALID_CREDENTIAL_FORMAT, "Credential must not be empty"
            )
        if len(credential) > self.config.max_credential_length:
            raise RegistryError(
                ErrorCode.INVALID_CREDENTIAL_FORMAT,
                f"Credential exceeds {self.config.max_credential_length} characters",
            )

    def get(self, tx: Transaction, owner: str) -> IdentityRecord | None:
        data = tx.get(IDENTITIES, owner)
        if data is None:
            return None
        return IdentityRecord.from_dict(data)

    def require(self, tx: Transaction, owner: str) -> IdentityRecord:
        """Load an owner's record or fail with NOT_FOUND."""
        record = self.get(tx, owner)
        if record is None:
            raise RegistryError(ErrorCode.NOT_FOUND, f"No DID registered for {owner}")
        return record

    def require_active(self, tx: Transaction, owner: str) -> IdentityRecord:
        """Load an owner's record, failing unless it exists and is active."""
        record = self.require(tx, owner)
        if not record.is_active:
            raise RegistryError(ErrorCode.DEACTIVATED, f"DID of {owner} is deactivated")
        return record

    def exists(self, tx: Transaction, owner: str) -> bool:
        return tx.get(IDENTITIES, owner) is not None

    def save(self, tx: Transaction, owner: str, record: IdentityRecord) -> None:
        tx.set(IDENTITIES, owner, record.to_dict())

    def remove(self, tx: Transaction, owner: str) -> None:
        tx.delete(IDENTITIES, owner)

    def create_did(self, tx: Transaction, ctx: LedgerContext, did: str) -> IdentityRecord:
        """Register a new DID for the caller.

        Raises:
            RegistryError: ALREADY_EXISTS if the caller already owns a DID,
                INVALID_DID_FORMAT if the DID is malformed.
        """
        if self.exists(tx, ctx.caller):
            raise RegistryError(
                ErrorCode.ALREADY_EXISTS, f"{ctx.caller} already owns a DID"
            )
        self.validate_did(did)

        record = IdentityRecord(did=did, created_at=ctx.height, updated_at=ctx.height)
        self.save(tx, ctx.caller, record)
        logger.info("Created %s for %s at height %d", did, ctx.caller, ctx.height)
        return record

    def add_credential(
        self, tx: Transaction, ctx: LedgerContext, credential: str
    ) -> IdentityRecord:
        """Append a credential to the caller's record.

        Raises:
            RegistryError: NOT_FOUND, DEACTIVATED, INVALID_CREDENTIAL_FORMAT
                or MAX_CREDENTIALS.
        """
        record = self.require_active(tx, ctx.caller)
        self.validate_credential(credential)
        if len(record.credentials) >= self.config.max_credentials:
            raise RegistryError(
                ErrorCode.MAX_CREDENTIALS,
                f"Credential limit of {self.config.max_credentials} reached",
            )

        record.credentials.append(credential)
        record.updated_at = ctx.height
        self.save(tx, ctx.caller, record)
        logger.info(
            "Added credential %d/%d for %s",
            len(record.credentials),
            self.config.max_credentials,
            ctx.caller,
        )
        return record

    def verify_credential(self, tx: Transaction, owner: str, credential: str) -> bool:
        """Membership test against an active record's credentials."""
        record = self.get(tx, owner)
        if record is None or not record.is_active:
            return False
        return credential in record.credentials
