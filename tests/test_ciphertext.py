"""
Tests for the ciphertext boundary.

Covers the local backend (handles, proofs, ACL, capability checks), the
client-side service adapter, the relay transport and the lazily
initialised service provider.
"""

import asyncio
import re

import pytest
from cryptography.exceptions import InvalidTag

from privmsg.capability.manager import CapabilityManager
from privmsg.ciphertext.backend import LocalFheBackend, _proof_message
from privmsg.ciphertext.provider import (
    ServiceProvider,
    connect_local,
    create_local_provider,
)
from privmsg.ciphertext.relayer import LocalRelayer
from privmsg.ciphertext.sealing import seal, unseal
from privmsg.ciphertext.service import CiphertextService
from privmsg.ciphertext.types import HandleContextPair
from privmsg.config import SECONDS_PER_DAY, BackendConfig, MessengerConfig
from privmsg.errors import (
    BackendUnavailable,
    CapabilityExpired,
    CapabilityStateError,
    InvalidProof,
    MessengerError,
    Unauthorized,
)
from privmsg.identity.keys import KeyPair, verify_signature
from privmsg.identity.wallet import Wallet

CONTEXT = '0x' + 'c0' * 20
OTHER_CONTEXT = '0x' + 'd0' * 20
HANDLE_RE = re.compile(r'^0x[0-9a-f]{64}$')


def signed_capability(clock, wallet, contexts=(CONTEXT,), validity_days=7):
    manager = CapabilityManager(clock=clock)
    capability = manager.issue(list(contexts), validity_days=validity_days)
    manager.request_signature(capability, wallet)
    return capability


def granted_input(backend, owner, reader, payload=42, context=CONTEXT):
    encrypted = backend.create_input(context, owner, payload, 64)
    backend.allow(encrypted.handle, owner, context)
    backend.allow(encrypted.handle, reader, context)
    return encrypted


class TestSealing:
    """Tests for sealing results to a capability key."""

    def test_seal_unseal(self):
        key_pair = KeyPair.generate()
        sealed = seal(b"payload", key_pair.public_bytes(), b"handle")
        assert unseal(sealed, key_pair.private_key, b"handle") == b"payload"

    def test_other_key_cannot_unseal(self):
        sealed = seal(b"payload", KeyPair.generate().public_bytes(), b"handle")
        with pytest.raises(InvalidTag):
            unseal(sealed, KeyPair.generate().private_key, b"handle")

    def test_associated_data_bound(self):
        key_pair = KeyPair.generate()
        sealed = seal(b"payload", key_pair.public_bytes(), b"handle-1")
        with pytest.raises(InvalidTag):
            unseal(sealed, key_pair.private_key, b"handle-2")


class TestBackendInputs:
    """Tests for handles and input proofs."""

    def test_handle_format(self, backend):
        encrypted = backend.create_input(CONTEXT, Wallet().address, 7, 64)
        assert HANDLE_RE.match(encrypted.handle)
        assert backend.handle_count == 1

    def test_handles_unique(self, backend):
        owner = Wallet().address
        first = backend.create_input(CONTEXT, owner, 7, 64)
        second = backend.create_input(CONTEXT, owner, 7, 64)
        assert first.handle != second.handle

    def test_payload_range_checked(self, backend):
        owner = Wallet().address
        with pytest.raises(ValueError):
            backend.create_input(CONTEXT, owner, 1 << 64, 64)
        with pytest.raises(ValueError):
            backend.create_input(CONTEXT, owner, -1, 64)
        with pytest.raises(ValueError):
            backend.create_input(CONTEXT, owner, 1, 128)

    def test_proof_verifies(self, backend):
        owner = Wallet().address
        encrypted = backend.create_input(CONTEXT, owner, 7, 64)
        backend.verify_input(encrypted.handle, encrypted.proof, CONTEXT, owner)

    def test_proof_signed_by_backend_key(self, backend):
        owner = Wallet().address
        encrypted = backend.create_input(CONTEXT, owner, 7, 64)
        message = _proof_message(encrypted.handle, CONTEXT, owner)
        assert verify_signature(message, encrypted.proof, backend.proof_signer)
        assert not verify_signature(message, encrypted.proof, LocalFheBackend().proof_signer)

    def test_proof_bound_to_owner(self, backend):
        owner = Wallet().address
        encrypted = backend.create_input(CONTEXT, owner, 7, 64)
        with pytest.raises(InvalidProof):
            backend.verify_input(encrypted.handle, encrypted.proof, CONTEXT, Wallet().address)

    def test_proof_bound_to_context(self, backend):
        owner = Wallet().address
        encrypted = backend.create_input(CONTEXT, owner, 7, 64)
        with pytest.raises(InvalidProof):
            backend.verify_input(encrypted.handle, encrypted.proof, OTHER_CONTEXT, owner)

    def test_forged_proof_rejected(self, backend):
        owner = Wallet().address
        encrypted = backend.create_input(CONTEXT, owner, 7, 64)
        forged = KeyPair.generate().sign(b"anything")
        with pytest.raises(InvalidProof):
            backend.verify_input(encrypted.handle, forged, CONTEXT, owner)

    def test_unknown_handle_rejected(self, backend):
        with pytest.raises(InvalidProof):
            backend.verify_input('0x' + '00' * 32, b"proof", CONTEXT, Wallet().address)


class TestBackendAcl:
    """Tests for handle grants."""

    def test_allow(self, backend):
        owner, reader = Wallet().address, Wallet().address
        encrypted = backend.create_input(CONTEXT, owner, 7, 64)
        assert not backend.is_allowed(encrypted.handle, reader)
        backend.allow(encrypted.handle, reader, CONTEXT)
        assert backend.is_allowed(encrypted.handle, reader)
        assert backend.grants(encrypted.handle) == frozenset({reader})

    def test_other_context_cannot_grant(self, backend):
        encrypted = backend.create_input(CONTEXT, Wallet().address, 7, 64)
        with pytest.raises(Unauthorized):
            backend.allow(encrypted.handle, Wallet().address, OTHER_CONTEXT)

    def test_unknown_handle_has_no_grants(self, backend):
        assert backend.grants('0x' + '11' * 32) == frozenset()


class TestService:
    """Tests for the client-side adapter."""

    @pytest.mark.asyncio
    async def test_encrypt(self, service, backend):
        owner = Wallet().address
        encrypted = await service.encrypt(CONTEXT, owner, 1234)
        assert HANDLE_RE.match(encrypted.handle)
        backend.verify_input(encrypted.handle, encrypted.proof, CONTEXT, owner)

    @pytest.mark.asyncio
    async def test_encrypt_payload_too_large(self, service):
        with pytest.raises(ValueError):
            await service.encrypt(CONTEXT, Wallet().address, 1 << 64)

    @pytest.mark.asyncio
    async def test_decrypt_granted(self, service, backend, clock):
        reader = Wallet()
        encrypted = granted_input(backend, Wallet().address, reader.address, payload=99)
        capability = signed_capability(clock, reader)

        result = await service.decrypt(capability, [HandleContextPair(encrypted.handle, CONTEXT)])
        assert result == {encrypted.handle: 99}

    @pytest.mark.asyncio
    async def test_decrypt_partial(self, service, backend, clock):
        """Ungranted handles are omitted, never returned as empty."""
        reader = Wallet()
        owner = Wallet().address
        granted = granted_input(backend, owner, reader.address, payload=1)
        ungranted = backend.create_input(CONTEXT, owner, 2, 64)
        capability = signed_capability(clock, reader)

        result = await service.decrypt(capability, [
            HandleContextPair(granted.handle, CONTEXT),
            HandleContextPair(ungranted.handle, CONTEXT),
        ])
        assert result == {granted.handle: 1}

    @pytest.mark.asyncio
    async def test_decrypt_strict_acl(self, clock, config):
        backend = LocalFheBackend(strict_acl=True, clock=clock)
        service = CiphertextService.from_config(LocalRelayer(backend), config)
        reader = Wallet()
        ungranted = backend.create_input(CONTEXT, Wallet().address, 2, 64)
        capability = signed_capability(clock, reader)

        with pytest.raises(Unauthorized):
            await service.decrypt(capability, [HandleContextPair(ungranted.handle, CONTEXT)])

    @pytest.mark.asyncio
    async def test_decrypt_empty(self, service, clock):
        capability = signed_capability(clock, Wallet())
        assert await service.decrypt(capability, []) == {}

    @pytest.mark.asyncio
    async def test_decrypt_unsigned_rejected(self, service, clock):
        capability = CapabilityManager(clock=clock).issue([CONTEXT])
        with pytest.raises(CapabilityStateError):
            await service.decrypt(capability, [HandleContextPair('0x' + '00' * 32, CONTEXT)])

    @pytest.mark.asyncio
    async def test_decrypt_outside_capability_scope(self, service, backend, clock):
        reader = Wallet()
        encrypted = granted_input(backend, Wallet().address, reader.address, context=OTHER_CONTEXT)
        capability = signed_capability(clock, reader)

        with pytest.raises(Unauthorized):
            await service.decrypt(capability, [HandleContextPair(encrypted.handle, OTHER_CONTEXT)])

    @pytest.mark.asyncio
    async def test_expiry_enforced_by_backend(self, service, backend, clock):
        """The backend rejects a capability used after its window."""
        reader = Wallet()
        encrypted = granted_input(backend, Wallet().address, reader.address)
        capability = signed_capability(clock, reader)
        clock.advance(8 * SECONDS_PER_DAY)

        with pytest.raises(CapabilityExpired):
            await service.decrypt(capability, [HandleContextPair(encrypted.handle, CONTEXT)])

    @pytest.mark.asyncio
    async def test_forged_signer_rejected(self, service, backend, clock):
        """A capability signed by one identity cannot claim another."""
        victim, attacker = Wallet(), Wallet()
        encrypted = granted_input(backend, Wallet().address, victim.address)
        capability = signed_capability(clock, attacker)
        capability.signer_address = victim.address

        with pytest.raises(Unauthorized):
            await service.decrypt(capability, [HandleContextPair(encrypted.handle, CONTEXT)])

    @pytest.mark.asyncio
    async def test_garbage_signature_rejected(self, service, backend, clock):
        reader = Wallet()
        encrypted = granted_input(backend, Wallet().address, reader.address)
        capability = signed_capability(clock, reader)
        capability.signature = b"\x00" * 12

        with pytest.raises(Unauthorized):
            await service.decrypt(capability, [HandleContextPair(encrypted.handle, CONTEXT)])

    @pytest.mark.asyncio
    async def test_tampered_statement_rejected(self, service, backend, clock):
        """Changing a signed field invalidates the signature."""
        reader = Wallet()
        encrypted = granted_input(backend, Wallet().address, reader.address)
        capability = signed_capability(clock, reader, validity_days=1)
        capability.validity_days = 365

        with pytest.raises(Unauthorized):
            await service.decrypt(capability, [HandleContextPair(encrypted.handle, CONTEXT)])

    @pytest.mark.asyncio
    async def test_wrong_domain_rejected(self, backend, relayer, clock):
        """A capability for another chain does not verify here."""
        reader = Wallet()
        encrypted = granted_input(backend, Wallet().address, reader.address)
        manager = CapabilityManager(chain_id=1, clock=clock)
        capability = manager.issue([CONTEXT])
        manager.request_signature(capability, reader)
        service = CiphertextService(relayer, width_bits=64)

        with pytest.raises(Unauthorized):
            await service.decrypt(capability, [HandleContextPair(encrypted.handle, CONTEXT)])

    @pytest.mark.asyncio
    async def test_relay_offline(self, service, relayer):
        relayer.set_online(False)
        with pytest.raises(BackendUnavailable) as exc_info:
            await service.encrypt(CONTEXT, Wallet().address, 1)
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_relay_timeout(self, backend):
        relayer = LocalRelayer(backend, latency=0.5)
        service = CiphertextService(relayer, width_bits=64, timeout=0.01)
        with pytest.raises(BackendUnavailable):
            await service.encrypt(CONTEXT, Wallet().address, 1)
        assert backend.handle_count == 0

    def test_unsupported_width(self, relayer):
        with pytest.raises(ValueError):
            CiphertextService(relayer, width_bits=32)

    def test_create_statement_matches_manager(self, service, clock):
        capability = CapabilityManager(clock=clock).issue([CONTEXT])
        statement = service.create_statement(
            capability.public_key, capability.contexts,
            capability.issued_at, capability.validity_days,
        )
        assert statement.signable() == capability.statement.signable()


class TestServiceProvider:
    """Tests for lazy service initialisation."""

    @pytest.mark.asyncio
    async def test_lazy_initialisation(self, service):
        calls = []

        def factory():
            calls.append(1)
            return service

        provider = ServiceProvider(factory)
        assert not provider.is_initialized
        assert provider.peek() is None
        assert calls == []

        assert await provider.get() is service
        assert await provider.get() is service
        assert calls == [1]
        assert provider.peek() is service

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_initialisation(self, service):
        calls = []

        async def factory():
            calls.append(1)
            await asyncio.sleep(0.01)
            return service

        provider = ServiceProvider(factory)
        results = await asyncio.gather(provider.get(), provider.get(), provider.get())
        assert all(result is service for result in results)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_reset(self, service):
        calls = []

        def factory():
            calls.append(1)
            return service

        provider = ServiceProvider(factory)
        await provider.get()
        provider.reset()
        assert not provider.is_initialized
        await provider.get()
        assert calls == [1, 1]

    @pytest.mark.asyncio
    async def test_unreachable_relay(self):
        provider = ServiceProvider(lambda: _raise(ConnectionError("down")))
        with pytest.raises(BackendUnavailable):
            await provider.get()
        assert not provider.is_initialized

    @pytest.mark.asyncio
    async def test_offline_relay_fails_initialisation(self, backend, config):
        relayer = LocalRelayer(backend, online=False)
        provider = ServiceProvider(lambda: connect_local(relayer, config))
        with pytest.raises(BackendUnavailable):
            await provider.get()
        relayer.set_online(True)
        assert (await provider.get()).width_bits == 64

    @pytest.mark.asyncio
    async def test_other_failure_wrapped(self):
        provider = ServiceProvider(lambda: _raise(RuntimeError("boom")))
        with pytest.raises(MessengerError) as exc_info:
            await provider.get()
        assert not isinstance(exc_info.value, BackendUnavailable)

    @pytest.mark.asyncio
    async def test_local_provider_uses_config(self):
        config = MessengerConfig(backend=BackendConfig(timeout=5.0))
        service = await create_local_provider(config).get()
        assert service.width_bits == config.width_bits


def _raise(exc):
    raise exc
