"""
Two-step ownership transfer.

The current owner initiates a transfer naming the new owner; the new
owner accepts it within the transfer window. Expiry is checked lazily
against the height of the accepting call, and an expired transfer stays
in place until the current owner cancels it.

Completed transfers are recorded in the recipient's history, which is
bounded: when it is full the acceptance is rejected as a whole.
"""

from __future__ import annotations

import logging

from did_registry.config import RegistryConfig
from did_registry.errors import ErrorCode, RegistryError
from did_registry.identity import IdentityRegistry
from did_registry.models import (
    IdentityRecord,
    LedgerContext,
    PendingTransfer,
    TransferHistoryEntry,
)
from did_registry.store import PENDING_TRANSFERS, TRANSFER_HISTORY, Transaction

logger = logging.getLogger(__name__)


class TransferHistoryLog:
    """Append-only, bounded per-owner record of received transfers."""

    def __init__(self, config: RegistryConfig) -> None:
        self.config = config

    def get(self, tx: Transaction, owner: str) -> list[TransferHistoryEntry]:
        entries = tx.get(TRANSFER_HISTORY, owner) or []
        return [TransferHistoryEntry.from_dict(entry) for entry in entries]

    def append(self, tx: Transaction, owner: str, entry: TransferHistoryEntry) -> None:
        """Append an entry to an owner's history.

        Raises:
            RegistryError: HISTORY_FULL if the history is at capacity.
        """
        entries = tx.get(TRANSFER_HISTORY, owner) or []
        if len(entries) >= self.config.max_history_entries:
            raise RegistryError(
                ErrorCode.HISTORY_FULL,
                f"Transfer history of {owner} holds "
                f"{self.config.max_history_entries} entries",
            )
        entries.append(entry.to_dict())
        tx.set(TRANSFER_HISTORY, owner, entries)

    def clear(self, tx: Transaction, owner: str) -> None:
        tx.delete(TRANSFER_HISTORY, owner)


class TransferCoordinator:
    """Runs the initiate/accept/cancel handshake."""

    def __init__(
        self,
        config: RegistryConfig,
        identities: IdentityRegistry,
        history: TransferHistoryLog,
    ) -> None:
        self.config = config
        self.identities = identities
        self.history = history

    def get_pending(self, tx: Transaction, owner: str) -> PendingTransfer | None:
        data = tx.get(PENDING_TRANSFERS, owner)
        if data is None:
            return None
        return PendingTransfer.from_dict(data)

    def is_expired(self, tx: Transaction, owner: str, height: int) -> bool:
        pending = self.get_pending(tx, owner)
        return pending is not None and pending.is_expired(height)

    def initiate(
        self, tx: Transaction, ctx: LedgerContext, new_owner: str
    ) -> PendingTransfer:
        """Offer the caller's identity to new_owner.

        Raises:
            RegistryError: NOT_FOUND, DEACTIVATED, TRANSFER_IN_PROGRESS,
                SELF_TRANSFER or ALREADY_EXISTS.
        """
        self.identities.require_active(tx, ctx.caller)
        if self.get_pending(tx, ctx.caller) is not None:
            raise RegistryError(
                ErrorCode.TRANSFER_IN_PROGRESS,
                f"{ctx.caller} already has a pending transfer",
            )
        if new_owner == ctx.caller:
            raise RegistryError(ErrorCode.SELF_TRANSFER, "Cannot transfer to self")
        if self.identities.exists(tx, new_owner):
            raise RegistryError(
                ErrorCode.ALREADY_EXISTS, f"{new_owner} already owns a DID"
            )

        pending = PendingTransfer(
            new_owner=new_owner,
            initiated_at=ctx.height,
            expires_at=ctx.height + self.config.transfer_window,
        )
        tx.set(PENDING_TRANSFERS, ctx.caller, pending.to_dict())
        logger.info(
            "Transfer initiated %s -> %s, expires at height %d",
            ctx.caller,
            new_owner,
            pending.expires_at,
        )
        return pending

    def cancel(self, tx: Transaction, ctx: LedgerContext) -> PendingTransfer:
        """Withdraw the caller's pending transfer, expired or not.

        Raises:
            RegistryError: NO_PENDING_TRANSFER if there is none.
        """
        pending = self.get_pending(tx, ctx.caller)
        if pending is None:
            raise RegistryError(
                ErrorCode.NO_PENDING_TRANSFER, f"{ctx.caller} has no pending transfer"
            )
        tx.delete(PENDING_TRANSFERS, ctx.caller)
        logger.info("Transfer %s -> %s cancelled", ctx.caller, pending.new_owner)
        return pending

    def accept(
        self, tx: Transaction, ctx: LedgerContext, current_owner: str
    ) -> IdentityRecord:
        """Take over current_owner's identity as the named new owner.

        Moves the record to the caller's key, appends to the caller's
        history and clears the pending transfer. Any record the caller
        registered after initiation is overwritten.

        Raises:
            RegistryError: NOT_FOUND, UNAUTHORIZED, DEACTIVATED,
                TRANSFER_EXPIRED or HISTORY_FULL.
        """
        pending = self.get_pending(tx, current_owner)
        if pending is None:
            raise RegistryError(
                ErrorCode.NOT_FOUND, f"{current_owner} has no pending transfer"
            )
        record = self.identities.require(tx, current_owner)
        if ctx.caller != pending.new_owner:
            raise RegistryError(
                ErrorCode.UNAUTHORIZED,
                f"Transfer from {current_owner} is not addressed to {ctx.caller}",
            )
        if not record.is_active:
            raise RegistryError(
                ErrorCode.DEACTIVATED, f"DID of {current_owner} is deactivated"
            )
        if pending.is_expired(ctx.height):
            raise RegistryError(
                ErrorCode.TRANSFER_EXPIRED,
                f"Transfer expired at height {pending.expires_at}",
            )

        self.history.append(
            tx,
            ctx.caller,
            TransferHistoryEntry(
                from_owner=current_owner, to_owner=ctx.caller, timestamp=ctx.height
            ),
        )

        if self.identities.exists(tx, ctx.caller):
            logger.warning(
                "Accepting transfer overwrites the existing DID of %s", ctx.caller
            )
        record.updated_at = ctx.height
        self.identities.save(tx, ctx.caller, record)
        self.identities.remove(tx, current_owner)
        tx.delete(PENDING_TRANSFERS, current_owner)
        logger.info(
            "Transfer of %s accepted: %s -> %s at height %d",
            record.did,
            current_owner,
            ctx.caller,
            ctx.height,
        )
        return record

    def clear(self, tx: Transaction, owner: str) -> None:
        tx.delete(PENDING_TRANSFERS, owner)
