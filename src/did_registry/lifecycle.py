"""
Identity lifecycle.

Active <-> Deactivated is reversible; revocation removes the record.
A deactivated identity refuses every mutation except reactivation and
revocation.
"""

from __future__ import annotations

import logging

from did_registry.config import RegistryConfig
from did_registry.errors import ErrorCode, RegistryError
from did_registry.identity import IdentityRegistry
from did_registry.models import IdentityRecord, LedgerContext
from did_registry.store import Transaction

logger = logging.getLogger(__name__)


class LifecycleManager:
    """Flips an identity between active and deactivated, or revokes it."""

    def __init__(self, config: RegistryConfig, identities: IdentityRegistry) -> None:
        self.config = config
        self.identities = identities

    def validate_reason(self, reason: str | None) -> None:
        if reason is None:
            return
        if not isinstance(reason, str):
            raise ValueError("reason must be a string")
        if len(reason) > self.config.max_reason_length:
            raise ValueError(
                f"reason exceeds {self.config.max_reason_length} characters"
            )

    def deactivate_did(
        self, tx: Transaction, ctx: LedgerContext, reason: str | None = None
    ) -> IdentityRecord:
        """Deactivate the caller's identity.

        Raises:
            RegistryError: NOT_FOUND, or ALREADY_DEACTIVATED if inactive.
        """
        record = self.identities.require(tx, ctx.caller)
        if not record.is_active:
            raise RegistryError(
                ErrorCode.ALREADY_DEACTIVATED, f"DID of {ctx.caller} is already deactivated"
            )

        record.is_active = False
        record.revocation_reason = reason
        record.updated_at = ctx.height
        self.identities.save(tx, ctx.caller, record)
        logger.info("Deactivated %s for %s (reason: %s)", record.did, ctx.caller, reason)
        return record

    def reactivate_did(self, tx: Transaction, ctx: LedgerContext) -> IdentityRecord:
        """Reactivate the caller's identity.

        ALREADY_DEACTIVATED doubles as "already in the target state" here.

        Raises:
            RegistryError: NOT_FOUND, or ALREADY_DEACTIVATED if active.
        """
        record = self.identities.require(tx, ctx.caller)
        if record.is_active:
            raise RegistryError(
                ErrorCode.ALREADY_DEACTIVATED, f"DID of {ctx.caller} is already active"
            )

        record.is_active = True
        record.revocation_reason = None
        record.updated_at = ctx.height
        self.identities.save(tx, ctx.caller, record)
        logger.info("Reactivated %s for %s", record.did, ctx.caller)
        return record

    def revoke_did(self, tx: Transaction, ctx: LedgerContext) -> IdentityRecord:
        """Permanently delete the caller's identity record.

        Returns:
            The record as it was before deletion.

        Raises:
            RegistryError: NOT_FOUND if the caller has no record.
        """
        record = self.identities.require(tx, ctx.caller)
        self.identities.remove(tx, ctx.caller)
        logger.info("Revoked %s for %s at height %d", record.did, ctx.caller, ctx.height)
        return record

    def is_did_active(self, tx: Transaction, owner: str) -> bool:
        record = self.identities.get(tx, owner)
        return record is not None and record.is_active
