"""
DID Registry.

Public entry point composing the identity registry, credential vault,
lifecycle manager and transfer coordinator over one store. Every call
runs in its own store transaction: a rejected call raises RegistryError
and leaves the store untouched.

Mutating calls take a LedgerContext carrying the authenticated caller
and the current height. Queries take the owner to look up, are open to
anyone, and never raise for missing data.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from did_registry.config import RegistryConfig
from did_registry.errors import RegistryError
from did_registry.identity import IdentityRegistry
from did_registry.lifecycle import LifecycleManager
from did_registry.models import (
    IdentityRecord,
    LedgerContext,
    PendingTransfer,
    TransferHistoryEntry,
)
from did_registry.store import KeyValueStore, MemoryStore, Transaction
from did_registry.transfers import TransferCoordinator, TransferHistoryLog

logger = logging.getLogger(__name__)


class DIDRegistry:
    """Identity registry with credentials, lifecycle and transfers."""

    OPERATIONS = (
        "create_did",
        "revoke_did",
        "add_credential",
        "deactivate_did",
        "reactivate_did",
        "initiate_transfer",
        "cancel_transfer",
        "accept_transfer",
    )

    def __init__(
        self,
        store: KeyValueStore | None = None,
        config: RegistryConfig | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Backing store. An empty MemoryStore if not provided.
            config: Limits and switches. Defaults if not provided.
        """
        self.store = store or MemoryStore()
        self.config = config or RegistryConfig()
        self.identities = IdentityRegistry(self.config)
        self.lifecycle = LifecycleManager(self.config, self.identities)
        self.history = TransferHistoryLog(self.config)
        self.transfers = TransferCoordinator(self.config, self.identities, self.history)

    def _run(self, ctx: LedgerContext, name: str, fn: Callable[..., Any], *args: Any) -> Any:
        with self.store.transaction() as tx:
            try:
                return fn(tx, ctx, *args)
            except RegistryError as e:
                logger.debug(
                    "%s by %s at height %d rejected: %s",
                    name,
                    ctx.caller,
                    ctx.height,
                    e.code.name,
                )
                raise

    # Identity registry

    def create_did(self, ctx: LedgerContext, did: str) -> IdentityRecord:
        return self._run(ctx, "create_did", self.identities.create_did, did)

    def get_did(self, owner: str) -> IdentityRecord | None:
        _check_owner("owner", owner)
        with self.store.transaction() as tx:
            return self.identities.get(tx, owner)

    def revoke_did(self, ctx: LedgerContext) -> IdentityRecord:
        """Delete the caller's record.

        With cascade_revoke the caller's pending transfer and history go
        too; otherwise they are left for a later create_did to inherit.
        """
        return self._run(ctx, "revoke_did", self._revoke)

    def _revoke(self, tx: Transaction, ctx: LedgerContext) -> IdentityRecord:
        record = self.lifecycle.revoke_did(tx, ctx)
        if self.config.cascade_revoke:
            self.transfers.clear(tx, ctx.caller)
            self.history.clear(tx, ctx.caller)
            logger.info("Cleared transfer state of %s", ctx.caller)
        return record

    # Credential vault

    def add_credential(self, ctx: LedgerContext, credential: str) -> IdentityRecord:
        return self._run(ctx, "add_credential", self.identities.add_credential, credential)

    def verify_credential(self, owner: str, credential: str) -> bool:
        _check_owner("owner", owner)
        with self.store.transaction() as tx:
            return self.identities.verify_credential(tx, owner, credential)

    def get_credential_count(self, owner: str) -> int:
        record = self.get_did(owner)
        return len(record.credentials) if record else 0

    # Lifecycle

    def deactivate_did(
        self, ctx: LedgerContext, reason: str | None = None
    ) -> IdentityRecord:
        self.lifecycle.validate_reason(reason)
        return self._run(ctx, "deactivate_did", self.lifecycle.deactivate_did, reason)

    def reactivate_did(self, ctx: LedgerContext) -> IdentityRecord:
        return self._run(ctx, "reactivate_did", self.lifecycle.reactivate_did)

    def is_did_active(self, owner: str) -> bool:
        _check_owner("owner", owner)
        with self.store.transaction() as tx:
            return self.lifecycle.is_did_active(tx, owner)

    # Transfers

    def initiate_transfer(self, ctx: LedgerContext, new_owner: str) -> PendingTransfer:
        _check_owner("new_owner", new_owner)
        return self._run(ctx, "initiate_transfer", self.transfers.initiate, new_owner)

    def cancel_transfer(self, ctx: LedgerContext) -> PendingTransfer:
        return self._run(ctx, "cancel_transfer", self.transfers.cancel)

    def accept_transfer(self, ctx: LedgerContext, current_owner: str) -> IdentityRecord:
        _check_owner("current_owner", current_owner)
        return self._run(ctx, "accept_transfer", self.transfers.accept, current_owner)

    def get_pending_transfer(self, owner: str) -> PendingTransfer | None:
        _check_owner("owner", owner)
        with self.store.transaction() as tx:
            return self.transfers.get_pending(tx, owner)

    def is_transfer_expired(self, owner: str, height: int) -> bool:
        _check_owner("owner", owner)
        with self.store.transaction() as tx:
            return self.transfers.is_expired(tx, owner, height)

    def get_transfer_history(self, owner: str) -> list[TransferHistoryEntry]:
        _check_owner("owner", owner)
        with self.store.transaction() as tx:
            return self.history.get(tx, owner)

    # Dispatch

    def execute(
        self, ctx: LedgerContext, op: str, args: dict[str, Any] | None = None
    ) -> Any:
        """Run a mutating operation by name.

        Args:
            ctx: Ledger context of the call.
            op: One of OPERATIONS.
            args: Keyword arguments of the operation, excluding ctx.

        Returns:
            Whatever the operation returns.

        Raises:
            ValueError: If op is unknown or args do not match it.
            RegistryError: If the operation is rejected.
        """
        if op not in self.OPERATIONS:
            raise ValueError(f"Unknown operation: {op}")
        args = args or {}
        if not isinstance(args, dict):
            raise ValueError(f"Arguments for {op} must be a mapping")
        if "ctx" in args:
            raise ValueError(f"Bad arguments for {op}: ctx is supplied by the ledger")
        method = getattr(self, op)
        try:
            inspect.signature(method).bind(ctx, **args)
        except TypeError as e:
            raise ValueError(f"Bad arguments for {op}: {e}") from e
        return method(ctx, **args)


def _check_owner(name: str, owner: Any) -> None:
    if not isinstance(owner, str) or not owner:
        raise ValueError(f"{name} must be a non-empty string")
