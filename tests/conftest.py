"""Shared fixtures for DID Registry tests."""

import pytest

from did_registry import DIDRegistry, LedgerContext, RegistryConfig

ALICE = "SP1ALICE"
BOB = "SP2BOB"
CAROL = "SP3CAROL"


def at(caller: str, height: int = 1) -> LedgerContext:
    """Build the ledger context of a call."""
    return LedgerContext(caller=caller, height=height)


@pytest.fixture
def registry():
    """An empty in-memory registry with default limits."""
    return DIDRegistry()


@pytest.fixture
def cascading_registry():
    """An in-memory registry that cascades revocation."""
    return DIDRegistry(config=RegistryConfig(cascade_revoke=True))


@pytest.fixture
def alice_did(registry):
    """A registry in which Alice owns did:stx:alice (created at height 1)."""
    registry.create_did(at(ALICE, 1), "did:stx:alice")
    return registry
