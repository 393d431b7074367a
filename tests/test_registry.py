"""Tests for the identity registry, credential vault and lifecycle."""

import pytest

from did_registry import (
    DIDRegistry,
    ErrorCode,
    IdentityRecord,
    LedgerContext,
    RegistryConfig,
    RegistryError,
)

from conftest import ALICE, BOB, at


class TestLedgerContext:
    """Tests for the per-call ledger context."""

    def test_valid_context(self):
        ctx = LedgerContext(caller=ALICE, height=0)
        assert ctx.caller == ALICE
        assert ctx.height == 0

    @pytest.mark.parametrize("caller", ["", None, 42])
    def test_rejects_bad_caller(self, caller):
        with pytest.raises(ValueError):
            LedgerContext(caller=caller, height=1)

    @pytest.mark.parametrize("height", [-1, "10", None, True])
    def test_rejects_bad_height(self, height):
        with pytest.raises(ValueError):
            LedgerContext(caller=ALICE, height=height)


class TestRegistryConfig:
    """Tests for configuration validation."""

    def test_defaults(self):
        config = RegistryConfig()
        assert config.did_prefix == "did:stx:"
        assert config.max_did_length == 100
        assert config.max_credential_length == 200
        assert config.max_credentials == 10
        assert config.transfer_window == 144
        assert config.max_history_entries == 10
        assert config.cascade_revoke is False

    def test_rejects_empty_prefix(self):
        with pytest.raises(ValueError):
            RegistryConfig(did_prefix="")

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            RegistryConfig(max_credentials=0)


class TestCreateDID:
    """Tests for DID registration."""

    def test_create_and_get(self, registry):
        """A new record is active with no credentials."""
        registry.create_did(at(ALICE, 7), "did:stx:alice")

        record = registry.get_did(ALICE)
        assert record == IdentityRecord(
            did="did:stx:alice",
            created_at=7,
            updated_at=7,
            credentials=[],
            is_active=True,
            revocation_reason=None,
        )

    def test_second_create_fails(self, alice_did):
        """An owner holds at most one DID."""
        with pytest.raises(RegistryError) as exc_info:
            alice_did.create_did(at(ALICE, 2), "did:stx:other")
        assert exc_info.value.code == ErrorCode.ALREADY_EXISTS
        assert alice_did.get_did(ALICE).did == "did:stx:alice"

    def test_already_exists_checked_before_format(self, alice_did):
        with pytest.raises(RegistryError) as exc_info:
            alice_did.create_did(at(ALICE, 2), "not-a-did")
        assert exc_info.value.code == ErrorCode.ALREADY_EXISTS

    @pytest.mark.parametrize(
        "did",
        [
            "",
            "did:stx:",
            "did:web:example.com",
            "stx:alice",
            "did:stx:" + "a" * 93,
        ],
    )
    def test_invalid_format(self, registry, did):
        with pytest.raises(RegistryError) as exc_info:
            registry.create_did(at(ALICE), did)
        assert exc_info.value.code == ErrorCode.INVALID_DID_FORMAT
        assert registry.get_did(ALICE) is None

    def test_maximum_length_accepted(self, registry):
        did = "did:stx:" + "a" * 92
        assert len(did) == 100
        registry.create_did(at(ALICE), did)
        assert registry.get_did(ALICE).did == did

    def test_get_unknown_owner(self, registry):
        assert registry.get_did(BOB) is None

    def test_returned_record_is_a_copy(self, alice_did):
        record = alice_did.get_did(ALICE)
        record.credentials.append("forged")
        record.is_active = False
        assert alice_did.get_did(ALICE).credentials == []
        assert alice_did.is_did_active(ALICE) is True


class TestRevokeDID:
    """Tests for revocation."""

    def test_revoke_removes_record(self, alice_did):
        alice_did.revoke_did(at(ALICE, 5))
        assert alice_did.get_did(ALICE) is None
        assert alice_did.is_did_active(ALICE) is False

    def test_revoke_twice_fails(self, alice_did):
        alice_did.revoke_did(at(ALICE, 5))
        with pytest.raises(RegistryError) as exc_info:
            alice_did.revoke_did(at(ALICE, 6))
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_revoke_deactivated(self, alice_did):
        alice_did.deactivate_did(at(ALICE, 2))
        alice_did.revoke_did(at(ALICE, 3))
        assert alice_did.get_did(ALICE) is None

    def test_create_after_revoke(self, alice_did):
        alice_did.revoke_did(at(ALICE, 5))
        alice_did.create_did(at(ALICE, 6), "did:stx:alice-2")
        assert alice_did.get_did(ALICE).created_at == 6


class TestCredentialVault:
    """Tests for credential addition and verification."""

    def test_add_and_verify(self, alice_did):
        alice_did.add_credential(at(ALICE, 3), "kyc:verified")

        record = alice_did.get_did(ALICE)
        assert record.credentials == ["kyc:verified"]
        assert record.updated_at == 3
        assert record.created_at == 1
        assert alice_did.verify_credential(ALICE, "kyc:verified") is True

    def test_verify_is_exact_match(self, alice_did):
        alice_did.add_credential(at(ALICE, 2), "kyc:verified")
        assert alice_did.verify_credential(ALICE, "kyc:VERIFIED") is False
        assert alice_did.verify_credential(ALICE, "kyc:") is False

    def test_verify_unknown_owner(self, registry):
        assert registry.verify_credential(BOB, "kyc:verified") is False

    def test_insertion_order_preserved(self, alice_did):
        for index, credential in enumerate(["c", "a", "b", "a"]):
            alice_did.add_credential(at(ALICE, 2 + index), credential)
        assert alice_did.get_did(ALICE).credentials == ["c", "a", "b", "a"]

    def test_capacity(self, alice_did):
        """Ten credentials fit; the eleventh is rejected, not dropped."""
        for index in range(10):
            alice_did.add_credential(at(ALICE, 2), f"cred-{index}")

        with pytest.raises(RegistryError) as exc_info:
            alice_did.add_credential(at(ALICE, 3), "cred-10")
        assert exc_info.value.code == ErrorCode.MAX_CREDENTIALS

        record = alice_did.get_did(ALICE)
        assert record.credentials == [f"cred-{index}" for index in range(10)]
        assert record.updated_at == 2
        assert alice_did.get_credential_count(ALICE) == 10
        assert alice_did.verify_credential(ALICE, "cred-10") is False

    def test_add_without_record(self, registry):
        with pytest.raises(RegistryError) as exc_info:
            registry.add_credential(at(BOB), "kyc:verified")
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    @pytest.mark.parametrize("credential", ["", "x" * 201])
    def test_invalid_credential(self, alice_did, credential):
        with pytest.raises(RegistryError) as exc_info:
            alice_did.add_credential(at(ALICE, 2), credential)
        assert exc_info.value.code == ErrorCode.INVALID_CREDENTIAL_FORMAT
        assert alice_did.get_credential_count(ALICE) == 0

    def test_maximum_credential_length_accepted(self, alice_did):
        alice_did.add_credential(at(ALICE, 2), "x" * 200)
        assert alice_did.get_credential_count(ALICE) == 1

    def test_deactivated_checked_before_format(self, alice_did):
        alice_did.deactivate_did(at(ALICE, 2))
        with pytest.raises(RegistryError) as exc_info:
            alice_did.add_credential(at(ALICE, 3), "")
        assert exc_info.value.code == ErrorCode.DEACTIVATED

    def test_credential_count_without_record(self, registry):
        assert registry.get_credential_count(BOB) == 0


class TestLifecycle:
    """Tests for deactivation and reactivation."""

    def test_deactivate(self, alice_did):
        alice_did.deactivate_did(at(ALICE, 4), "lost key")

        record = alice_did.get_did(ALICE)
        assert record.is_active is False
        assert record.revocation_reason == "lost key"
        assert record.updated_at == 4
        assert alice_did.is_did_active(ALICE) is False

    def test_deactivate_without_reason(self, alice_did):
        alice_did.deactivate_did(at(ALICE, 4))
        assert alice_did.get_did(ALICE).revocation_reason is None

    def test_deactivate_twice(self, alice_did):
        alice_did.deactivate_did(at(ALICE, 2))
        with pytest.raises(RegistryError) as exc_info:
            alice_did.deactivate_did(at(ALICE, 3))
        assert exc_info.value.code == ErrorCode.ALREADY_DEACTIVATED
        assert alice_did.get_did(ALICE).updated_at == 2

    def test_deactivate_without_record(self, registry):
        with pytest.raises(RegistryError) as exc_info:
            registry.deactivate_did(at(BOB))
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_reason_too_long(self, alice_did):
        with pytest.raises(ValueError):
            alice_did.deactivate_did(at(ALICE, 2), "r" * 101)
        assert alice_did.is_did_active(ALICE) is True

    def test_deactivated_blocks_credentials(self, alice_did):
        alice_did.add_credential(at(ALICE, 2), "kyc:verified")
        alice_did.deactivate_did(at(ALICE, 3))

        with pytest.raises(RegistryError) as exc_info:
            alice_did.add_credential(at(ALICE, 4), "email:verified")
        assert exc_info.value.code == ErrorCode.DEACTIVATED
        assert alice_did.verify_credential(ALICE, "kyc:verified") is False

    def test_reactivate_restores_credentials(self, alice_did):
        alice_did.add_credential(at(ALICE, 2), "kyc:verified")
        alice_did.deactivate_did(at(ALICE, 3), "suspicious")
        alice_did.reactivate_did(at(ALICE, 5))

        record = alice_did.get_did(ALICE)
        assert record.is_active is True
        assert record.revocation_reason is None
        assert record.updated_at == 5
        assert record.credentials == ["kyc:verified"]
        assert alice_did.verify_credential(ALICE, "kyc:verified") is True

        alice_did.add_credential(at(ALICE, 6), "email:verified")
        assert alice_did.get_credential_count(ALICE) == 2

    def test_reactivate_active_reuses_code(self, alice_did):
        with pytest.raises(RegistryError) as exc_info:
            alice_did.reactivate_did(at(ALICE, 2))
        assert exc_info.value.code == ErrorCode.ALREADY_DEACTIVATED

    def test_reactivate_without_record(self, registry):
        with pytest.raises(RegistryError) as exc_info:
            registry.reactivate_did(at(BOB))
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_is_active_unknown_owner(self, registry):
        assert registry.is_did_active(BOB) is False


class TestExecute:
    """Tests for operation dispatch by name."""

    def test_execute_create(self, registry):
        registry.execute(at(ALICE, 3), "create_did", {"did": "did:stx:alice"})
        assert registry.get_did(ALICE).did == "did:stx:alice"

    def test_execute_unknown_operation(self, registry):
        with pytest.raises(ValueError, match="Unknown operation"):
            registry.execute(at(ALICE), "get_did", {"owner": ALICE})

    def test_execute_bad_arguments(self, registry):
        with pytest.raises(ValueError, match="Bad arguments"):
            registry.execute(at(ALICE), "create_did", {"name": "did:stx:alice"})

    def test_execute_rejects_op_in_arguments(self, registry):
        with pytest.raises(ValueError, match="Bad arguments"):
            registry.execute(at(ALICE), "create_did", {"op": "x", "did": "did:stx:a"})
        assert registry.get_did(ALICE) is None

    def test_execute_rejects_ctx_in_arguments(self, registry):
        with pytest.raises(ValueError, match="ctx is supplied"):
            registry.execute(at(ALICE), "create_did", {"ctx": None, "did": "did:stx:a"})

    def test_execute_rejects_non_mapping_arguments(self, registry):
        with pytest.raises(ValueError, match="must be a mapping"):
            registry.execute(at(ALICE), "create_did", ["did:stx:alice"])

    def test_execute_unhashable_owner(self, alice_did):
        with pytest.raises(ValueError, match="current_owner"):
            alice_did.execute(at(BOB, 2), "accept_transfer", {"current_owner": ["SP2"]})

    def test_execute_propagates_registry_error(self, alice_did):
        with pytest.raises(RegistryError) as exc_info:
            alice_did.execute(at(ALICE, 2), "create_did", {"did": "did:stx:again"})
        assert exc_info.value.code == ErrorCode.ALREADY_EXISTS


class TestOwnerArguments:
    """Tests for owner arguments that are not plain strings."""

    @pytest.mark.parametrize("owner", [["SP2"], {"a": 1}, None, 7, ""])
    def test_queries_reject_bad_owner(self, alice_did, owner):
        with pytest.raises(ValueError, match="owner must be a non-empty string"):
            alice_did.get_did(owner)
        with pytest.raises(ValueError, match="owner must be a non-empty string"):
            alice_did.get_transfer_history(owner)
        with pytest.raises(ValueError, match="owner must be a non-empty string"):
            alice_did.get_pending_transfer(owner)

    def test_transfer_targets_rejected(self, alice_did):
        with pytest.raises(ValueError, match="new_owner"):
            alice_did.initiate_transfer(at(ALICE, 2), ["SP2"])
        with pytest.raises(ValueError, match="current_owner"):
            alice_did.accept_transfer(at(BOB, 2), {"owner": ALICE})
        assert alice_did.get_pending_transfer(ALICE) is None


class TestRegistryError:
    """Tests for the error type."""

    def test_every_code_is_distinct(self):
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values)) == 13

    def test_default_message(self):
        error = RegistryError(ErrorCode.NO_PENDING_TRANSFER)
        assert error.message == "no pending transfer"
        assert str(error) == "NO_PENDING_TRANSFER: no pending transfer"

    def test_independent_registries(self):
        first = DIDRegistry()
        second = DIDRegistry()
        first.create_did(at(ALICE), "did:stx:alice")
        assert second.get_did(ALICE) is None
