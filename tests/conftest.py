"""Shared fixtures for the PrivMsg test suite."""

import pytest

from privmsg.ciphertext.backend import LocalFheBackend
from privmsg.ciphertext.provider import ServiceProvider
from privmsg.ciphertext.relayer import LocalRelayer
from privmsg.ciphertext.service import CiphertextService
from privmsg.config import CodecConfig, MessengerConfig
from privmsg.identity.wallet import Wallet
from privmsg.integration.event_logger import EventLogger
from privmsg.ledger.message_ledger import MessageLedger
from privmsg.messenger.orchestrator import Messenger

START_TIME = 1_700_000_000


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    # 64-bit payloads: message limit L = 8 bytes
    return MessengerConfig(codec=CodecConfig(width_bits=64))


@pytest.fixture
def backend(clock, config):
    return LocalFheBackend(
        chain_id=config.backend.chain_id,
        verifying_contract=config.backend.verifying_contract,
        clock=clock,
    )


@pytest.fixture
def relayer(backend):
    return LocalRelayer(backend)


@pytest.fixture
def service(relayer, config):
    return CiphertextService.from_config(relayer, config)


@pytest.fixture
def provider(service):
    return ServiceProvider.for_service(service)


@pytest.fixture
def ledger(backend, clock):
    return MessageLedger(access_control=backend, clock=clock)


@pytest.fixture
def audit(clock):
    return EventLogger(auto_seal=False, clock=clock)


@pytest.fixture
def alice_wallet():
    return Wallet()


@pytest.fixture
def bob_wallet():
    return Wallet()


@pytest.fixture
def carol_wallet():
    return Wallet()


@pytest.fixture
def alice(ledger, provider, alice_wallet, config, audit, clock):
    return Messenger(ledger, provider, alice_wallet, config, event_logger=audit, clock=clock)


@pytest.fixture
def bob(ledger, provider, bob_wallet, config, audit, clock):
    return Messenger(ledger, provider, bob_wallet, config, event_logger=audit, clock=clock)


@pytest.fixture
def carol(ledger, provider, carol_wallet, config, audit, clock):
    return Messenger(ledger, provider, carol_wallet, config, event_logger=audit, clock=clock)
