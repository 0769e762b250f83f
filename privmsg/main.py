"""
PrivMsg - Main Entry Point

Runs a short end-to-end demonstration against a local backend:
Alice sends Bob two messages, Bob lists his inbox and decrypts it with a
single capability, and the ledger and audit chains are validated.
"""

import asyncio

from .ciphertext.backend import LocalFheBackend
from .ciphertext.provider import create_local_provider
from .config import MessengerConfig, setup_logging
from .identity.wallet import Wallet
from .integration.event_logger import EventLogger
from .ledger.message_ledger import MessageLedger
from .messenger.orchestrator import Messenger


async def run_demo(config: MessengerConfig) -> bool:
    backend = LocalFheBackend(
        chain_id=config.backend.chain_id,
        verifying_contract=config.backend.verifying_contract,
        strict_acl=config.backend.strict_acl,
    )
    provider = create_local_provider(config, backend=backend)
    ledger = MessageLedger(access_control=backend)
    audit = EventLogger(auto_seal=False)

    alice_wallet, bob_wallet = Wallet(), Wallet()
    alice = Messenger(ledger, provider, alice_wallet, config, event_logger=audit)
    bob = Messenger(ledger, provider, bob_wallet, config, event_logger=audit)

    print(f"  Messenger context: {ledger.context_id}")
    print(f"  Alice: {alice.address}")
    print(f"  Bob:   {bob.address}")
    print(f"  Message limit: {config.message_limit} bytes")

    for text in ("hi bob", "meet at noon"):
        record = await alice.send(bob.address, text)
        print(f"\n  [OK] Sent '{text}' as handle {record.handle[:18]}...")

    records = bob.fetch_inbox()
    print(f"\n  Bob's inbox holds {len(records)} encrypted message(s)")

    view = await bob.decrypt_inbox()
    for message in view:
        print(f"  From {message.sender[:10]}...: {message.display_content}")

    audit.flush()
    ledger.seal()
    intact = ledger.validate_chain() and audit.verify_integrity()
    print(f"\n  Ledger blocks: {ledger.chain.length}, audit blocks: {audit.chain.length}")
    print(f"  Chains intact: {intact}")
    return intact and all(not m.encrypted for m in view)


def main():
    """Main entry point for PrivMsg."""
    config = MessengerConfig.from_env()
    setup_logging(config)
    print("=" * 50)
    print("PrivMsg - Confidential Messaging Demo")
    print("=" * 50)
    success = asyncio.run(run_demo(config))
    print("\n" + ("Demo completed." if success else "Demo failed."))
    return 0 if success else 1


if __name__ == "__main__":
    raise SystemExit(main())
