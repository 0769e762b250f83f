"""
Unit tests for decryption capabilities.

Tests issuance, the one-way state machine, statement determinism and
expiry.
"""

import pytest

from privmsg.capability.manager import (
    CapabilityManager,
    CapabilityState,
    DecryptionCapability,
)
from privmsg.capability.statement import build_statement, normalize_contexts
from privmsg.config import SECONDS_PER_DAY
from privmsg.errors import CapabilityExpired, CapabilityStateError
from privmsg.identity.keys import KeyPair
from privmsg.identity.wallet import Wallet
from tests.conftest import START_TIME, FakeClock

CONTEXT_A = '0x' + 'aa' * 20
CONTEXT_B = '0x' + 'bb' * 20


@pytest.fixture
def manager(clock):
    return CapabilityManager(clock=clock)


class TestStatement:
    """Tests for the canonical capability statement."""

    def test_identical_inputs_identical_message(self):
        public_key = KeyPair.generate().public_bytes()
        first = build_statement(public_key, [CONTEXT_A], START_TIME, 7)
        second = build_statement(public_key, [CONTEXT_A.upper().replace('0X', '0x')], START_TIME, 7)
        assert first.signable() == second.signable()
        assert first.to_json() == second.to_json()

    def test_fields_bound_into_message(self):
        public_key = KeyPair.generate().public_bytes()
        base = build_statement(public_key, [CONTEXT_A], START_TIME, 7).signable()
        assert build_statement(public_key, [CONTEXT_B], START_TIME, 7).signable() != base
        assert build_statement(public_key, [CONTEXT_A], START_TIME + 1, 7).signable() != base
        assert build_statement(public_key, [CONTEXT_A], START_TIME, 8).signable() != base
        assert build_statement(public_key, [CONTEXT_A], START_TIME, 7, chain_id=1).signable() != base
        other_key = KeyPair.generate().public_bytes()
        assert build_statement(other_key, [CONTEXT_A], START_TIME, 7).signable() != base

    def test_context_order_preserved(self):
        assert normalize_contexts([CONTEXT_B, CONTEXT_A]) == (CONTEXT_B, CONTEXT_A)

    def test_empty_contexts_rejected(self):
        with pytest.raises(ValueError):
            normalize_contexts([])

    def test_duplicate_contexts_rejected(self):
        with pytest.raises(ValueError):
            normalize_contexts([CONTEXT_A, CONTEXT_A])

    def test_negative_validity_rejected(self):
        with pytest.raises(ValueError):
            build_statement(KeyPair.generate().public_bytes(), [CONTEXT_A], START_TIME, -1)


class TestIssue:
    """Tests for capability issuance."""

    def test_issue_composes_statement(self, manager):
        capability = manager.issue([CONTEXT_A])
        assert capability.state is CapabilityState.MESSAGE_COMPOSED
        assert capability.contexts == (CONTEXT_A,)
        assert capability.issued_at == START_TIME
        assert capability.validity_days == 7
        assert capability.statement.message['publicKey'] == capability.public_key
        assert not capability.is_signed

    def test_fresh_key_pair_per_capability(self, manager):
        first = manager.issue([CONTEXT_A])
        second = manager.issue([CONTEXT_A])
        assert first.public_key != second.public_key
        assert first.capability_id != second.capability_id

    def test_custom_validity(self, manager):
        capability = manager.issue([CONTEXT_A], validity_days=1)
        assert capability.expires_at == START_TIME + SECONDS_PER_DAY

    def test_zero_validity_policy_rejected(self):
        with pytest.raises(ValueError):
            CapabilityManager(validity_days=0)

    def test_public_key_before_generation(self):
        capability = DecryptionCapability(contexts=(CONTEXT_A,), issued_at=0, validity_days=1)
        with pytest.raises(CapabilityStateError):
            capability.public_key


class TestSigning:
    """Tests for the signing step."""

    def test_request_signature(self, manager):
        wallet = Wallet()
        capability = manager.issue([CONTEXT_A])
        signature = manager.request_signature(capability, wallet)

        assert capability.state is CapabilityState.AWAITING_SIGNATURE
        assert capability.signature == signature
        assert capability.signer_address == wallet.address
        assert Wallet.verify_typed_data(capability.statement, signature, wallet.address)

    def test_sign_only_once(self, manager):
        wallet = Wallet()
        capability = manager.issue([CONTEXT_A])
        manager.request_signature(capability, wallet)
        with pytest.raises(CapabilityStateError):
            manager.request_signature(capability, wallet)
        with pytest.raises(CapabilityStateError):
            capability.attach_signature(b"sig", wallet.address)

    def test_sign_expired_rejected(self, manager, clock):
        capability = manager.issue([CONTEXT_A], validity_days=1)
        clock.advance(SECONDS_PER_DAY + 1)
        with pytest.raises(CapabilityExpired):
            manager.request_signature(capability, Wallet())
        assert capability.state is CapabilityState.EXPIRED


class TestRedemption:
    """Tests for redemption checks and the state machine."""

    def test_ensure_redeemable(self, manager):
        capability = manager.issue([CONTEXT_A])
        manager.request_signature(capability, Wallet())
        manager.ensure_redeemable(capability)

    def test_unsigned_not_redeemable(self, manager):
        capability = manager.issue([CONTEXT_A])
        with pytest.raises(CapabilityStateError):
            manager.ensure_redeemable(capability)

    def test_expiry_boundary(self, manager):
        """A capability expires strictly after issued_at + validity."""
        capability = manager.issue([CONTEXT_A])
        manager.request_signature(capability, Wallet())

        manager.ensure_redeemable(capability, now=capability.expires_at)
        with pytest.raises(CapabilityExpired):
            manager.ensure_redeemable(capability, now=capability.expires_at + 1)
        assert capability.state is CapabilityState.EXPIRED

    def test_expired_after_eight_days(self, manager, clock):
        capability = manager.issue([CONTEXT_A])
        manager.request_signature(capability, Wallet())
        clock.advance(8 * SECONDS_PER_DAY)
        with pytest.raises(CapabilityExpired):
            manager.ensure_redeemable(capability)

    def test_redeemed_is_terminal(self, manager):
        capability = manager.issue([CONTEXT_A])
        manager.request_signature(capability, Wallet())
        manager.mark_redeemed(capability)

        assert capability.state is CapabilityState.REDEEMED
        with pytest.raises(CapabilityStateError):
            manager.ensure_redeemable(capability)
        with pytest.raises(CapabilityStateError):
            capability.transition(CapabilityState.AWAITING_SIGNATURE)

    def test_no_backward_transition(self, manager):
        capability = manager.issue([CONTEXT_A])
        with pytest.raises(CapabilityStateError):
            capability.transition(CapabilityState.KEYPAIR_GENERATED)

    def test_no_skipping_states(self):
        capability = DecryptionCapability(contexts=(CONTEXT_A,), issued_at=0, validity_days=1)
        with pytest.raises(CapabilityStateError):
            capability.transition(CapabilityState.REDEEMED)

    def test_expired_is_terminal(self, manager):
        capability = manager.issue([CONTEXT_A])
        manager.mark_expired(capability)
        manager.mark_expired(capability)
        assert capability.state is CapabilityState.EXPIRED
        with pytest.raises(CapabilityStateError):
            capability.transition(CapabilityState.AWAITING_SIGNATURE)

    def test_covers(self, manager):
        capability = manager.issue([CONTEXT_A])
        assert capability.covers(CONTEXT_A.upper().replace('0X', '0x'))
        assert not capability.covers(CONTEXT_B)

    def test_independent_clocks(self):
        """Expiry is judged by the clock of whoever checks it."""
        issuer = CapabilityManager(clock=FakeClock(START_TIME))
        checker = CapabilityManager(clock=FakeClock(START_TIME + 30 * SECONDS_PER_DAY))
        capability = issuer.issue([CONTEXT_A])
        issuer.request_signature(capability, Wallet())
        with pytest.raises(CapabilityExpired):
            checker.ensure_redeemable(capability)
