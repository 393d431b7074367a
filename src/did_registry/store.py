"""
Key-value storage for registry state.

State lives in three namespaces, all keyed by owner:

- identities: owner -> identity record
- pending_transfers: current owner -> pending transfer
- transfer_history: recipient -> list of history entries

Writes are staged in a Transaction and only reach the backing maps when
the transaction block exits normally, so an operation that raises part
way through leaves no trace. A single re-entrant lock serializes every
transaction; operations such as accepting a transfer touch all three
namespaces and must commit them together.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from did_registry.errors import StoreError
from did_registry.models import IdentityRecord, PendingTransfer, TransferHistoryEntry

logger = logging.getLogger(__name__)

IDENTITIES = "identities"
PENDING_TRANSFERS = "pending_transfers"
TRANSFER_HISTORY = "transfer_history"
NAMESPACES = (IDENTITIES, PENDING_TRANSFERS, TRANSFER_HISTORY)

STATE_VERSION = 1

_DELETED = object()

_RECORD_TYPES = {IDENTITIES: IdentityRecord, PENDING_TRANSFERS: PendingTransfer}


class Transaction:
    """A write buffer over a store.

    Reads see this transaction's own staged writes first, then the
    committed state.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._writes: dict[tuple[str, str], Any] = {}

    def get(self, namespace: str, key: str) -> Any | None:
        _check_namespace(namespace)
        staged = self._writes.get((namespace, key))
        if staged is _DELETED:
            return None
        if staged is not None:
            return copy.deepcopy(staged)
        return self._store.get(namespace, key)

    def set(self, namespace: str, key: str, value: Any) -> None:
        _check_namespace(namespace)
        if value is None:
            raise ValueError("Cannot store None; use delete()")
        self._writes[(namespace, key)] = copy.deepcopy(value)

    def delete(self, namespace: str, key: str) -> None:
        _check_namespace(namespace)
        self._writes[(namespace, key)] = _DELETED

    @property
    def dirty(self) -> bool:
        return bool(self._writes)

    def _apply(self) -> None:
        for (namespace, key), value in self._writes.items():
            if value is _DELETED:
                self._store._delete(namespace, key)
            else:
                self._store._set(namespace, key, value)
        self._writes.clear()


class KeyValueStore(ABC):
    """Abstract namespaced key-value store with atomic transactions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @abstractmethod
    def _get(self, namespace: str, key: str) -> Any | None:
        """Read a committed value, or None if absent."""

    @abstractmethod
    def _set(self, namespace: str, key: str, value: Any) -> None:
        """Write a committed value."""

    @abstractmethod
    def _delete(self, namespace: str, key: str) -> None:
        """Remove a committed value if present."""

    def _flush(self) -> None:
        """Persist committed state. No-op for volatile stores."""

    def get(self, namespace: str, key: str) -> Any | None:
        """Read a committed value outside of any transaction.

        Returns:
            A deep copy of the stored value, or None if absent.
        """
        _check_namespace(namespace)
        with self._lock:
            return copy.deepcopy(self._get(namespace, key))

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run a block as one atomic unit.

        Staged writes are committed when the block exits normally and
        discarded when it raises.

        Yields:
            The Transaction to read and write through.
        """
        with self._lock:
            tx = Transaction(self)
            yield tx
            if tx.dirty:
                self._commit(tx)

    def _commit(self, tx: Transaction) -> None:
        tx._apply()
        self._flush()


class MemoryStore(KeyValueStore):
    """Volatile in-process store."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[str, dict[str, Any]] = {ns: {} for ns in NAMESPACES}

    def _get(self, namespace: str, key: str) -> Any | None:
        return self._data[namespace].get(key)

    def _set(self, namespace: str, key: str, value: Any) -> None:
        self._data[namespace][key] = value

    def _delete(self, namespace: str, key: str) -> None:
        self._data[namespace].pop(key, None)


class JsonFileStore(MemoryStore):
    """In-memory store persisted to a JSON document after every commit."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.debug("No state file at %s, starting empty", self.path)
            return

        try:
            with self.path.open(encoding="utf-8") as f:
                document = json.load(f)
        except OSError as e:
            raise StoreError(f"Cannot read state file {self.path}: {e}") from e
        except ValueError as e:
            raise StoreError(f"Invalid JSON in state file {self.path}") from e

        if not isinstance(document, dict):
            raise StoreError(f"State file {self.path} must contain an object")
        version = document.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise StoreError(f"Unsupported state file version: {version}")

        for namespace in NAMESPACES:
            section = document.get(namespace, {})
            if not isinstance(section, dict):
                raise StoreError(f"State section {namespace!r} must be an object")
            self._validate_section(namespace, section)
            self._data[namespace] = section

        logger.debug(
            "Loaded state from %s (%d identities)",
            self.path,
            len(self._data[IDENTITIES]),
        )

    def _validate_section(self, namespace: str, section: dict[str, Any]) -> None:
        """Check every stored value parses as its record type.

        Raises:
            StoreError: If any value is malformed.
        """
        for key, value in section.items():
            try:
                if namespace == TRANSFER_HISTORY:
                    if not isinstance(value, list):
                        raise TypeError("history must be a list")
                    for entry in value:
                        TransferHistoryEntry.from_dict(entry)
                else:
                    _RECORD_TYPES[namespace].from_dict(value)
            except (KeyError, TypeError, ValueError) as e:
                raise StoreError(
                    f"Malformed {namespace} entry for {key!r} in {self.path}: {e}"
                ) from e

    def _commit(self, tx: Transaction) -> None:
        # Memory and file must agree, so a failed write undoes the apply.
        snapshot = copy.deepcopy(self._data)
        try:
            super()._commit(tx)
        except StoreError:
            self._data = snapshot
            raise

    def _flush(self) -> None:
        document = {"version": STATE_VERSION, **self._data}
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreError(f"Cannot write state file {self.path}: {e}") from e
        logger.debug("Flushed state to %s", self.path)


def _check_namespace(namespace: str) -> None:
    if namespace not in NAMESPACES:
        raise ValueError(f"Unknown namespace: {namespace}")
