"""
Hash-Chained Log

Append-only block log backing the message ledger and the audit trail:
- Merkle root over each block's transactions
- SHA-256 chaining (double hash of the block header)
- Full chain validation
- JSON export / import with validation

Ordering and consensus belong to the external ledger; blocks here are
sealed in arrival order without proof of work.
"""

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from ..errors import MessengerError


# ============================================================================
# Constants
# ============================================================================

GENESIS_PREV_HASH = b'\x00' * 32  # 32 zero bytes for genesis block
GENESIS_LABEL = "Genesis Block - PrivMsg Ledger"


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def merkle_root(leaves: List[bytes]) -> bytes:
    """
    Compute the Merkle root of a list of leaves.

    Leaves are hashed with a 0x00 prefix and inner nodes with 0x01 so a
    leaf can never be confused with a node. An odd node is paired with
    itself.
    """
    if not leaves:
        return _sha256(b'')
    level = [_sha256(b'\x00' + leaf) for leaf in leaves]
    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        level = [
            _sha256(b'\x01' + level[i] + level[i + 1])
            for i in range(0, len(level), 2)
        ]
    return level[0]


def compute_block_hash(index: int, prev_hash: bytes, root: bytes, timestamp: int) -> bytes:
    """Compute hash for a block header (double SHA-256)."""
    header = (
        index.to_bytes(8, 'big') +
        prev_hash +
        root +
        timestamp.to_bytes(8, 'big')
    )
    return _sha256(_sha256(header))


# ============================================================================
# Block Structure (Immutable)
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    Immutable block.

    frozen=True ensures blocks cannot be modified after sealing.
    """
    index: int
    prev_hash: bytes
    merkle_root: bytes
    timestamp: int
    hash: bytes
    transactions: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        """Convert block to dictionary for serialization."""
        return {
            'index': self.index,
            'prev_hash': self.prev_hash.hex(),
            'merkle_root': self.merkle_root.hex(),
            'timestamp': self.timestamp,
            'hash': self.hash.hex(),
            'transactions': list(self.transactions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Block':
        """Create block from dictionary."""
        return cls(
            index=data['index'],
            prev_hash=bytes.fromhex(data['prev_hash']),
            merkle_root=bytes.fromhex(data['merkle_root']),
            timestamp=data['timestamp'],
            hash=bytes.fromhex(data['hash']),
            transactions=tuple(data['transactions']),
        )

    def __str__(self) -> str:
        return (
            f"Block #{self.index}\n"
            f"  Hash: {self.hash.hex()[:16]}...\n"
            f"  Prev: {self.prev_hash.hex()[:16]}...\n"
            f"  Merkle: {self.merkle_root.hex()[:16]}...\n"
            f"  Transactions: {len(self.transactions)}"
        )


# ============================================================================
# Chain
# ============================================================================

class ValidationError(MessengerError):
    """Raised when chain validation fails."""
    code = "CHAIN_001"


class HashChain:
    """
    Append-only chain of sealed blocks.

    Transactions are collected as pending and sealed into a block on
    seal_block(). Sealed blocks are never modified or removed.
    """

    def __init__(self, genesis_label: str = GENESIS_LABEL,
                 clock: Callable[[], float] = time.time):
        self._chain: List[Block] = []
        self._pending: List[str] = []
        self._clock = clock
        self._chain.append(self._make_block(0, GENESIS_PREV_HASH, [genesis_label], 0))

    @staticmethod
    def _make_block(index: int, prev_hash: bytes, transactions: List[str],
                    timestamp: int) -> Block:
        root = merkle_root([tx.encode('utf-8') for tx in transactions])
        return Block(
            index=index,
            prev_hash=prev_hash,
            merkle_root=root,
            timestamp=timestamp,
            hash=compute_block_hash(index, prev_hash, root, timestamp),
            transactions=tuple(transactions),
        )

    @property
    def chain(self) -> List[Block]:
        """Get the chain (copy)."""
        return list(self._chain)

    @property
    def length(self) -> int:
        return len(self._chain)

    @property
    def last_block(self) -> Block:
        return self._chain[-1]

    @property
    def pending_transactions(self) -> List[str]:
        return list(self._pending)

    def add_transaction(self, transaction: str) -> int:
        """
        Add a transaction to the pending pool.

        Returns:
            Number of pending transactions
        """
        if not transaction:
            raise ValueError("Transaction cannot be empty")
        self._pending.append(transaction)
        return len(self._pending)

    def seal_block(self) -> Block:
        """
        Seal pending transactions into a new block.

        Raises:
            ValueError: If no pending transactions
        """
        if not self._pending:
            raise ValueError("No pending transactions to seal")

        transactions = self._pending.copy()
        self._pending.clear()

        prev_block = self.last_block
        block = self._make_block(
            prev_block.index + 1, prev_block.hash, transactions, int(self._clock())
        )
        self._validate_block(block, prev_block)
        self._chain.append(block)
        return block

    def _validate_block(self, block: Block, prev_block: Block) -> None:
        if block.index != prev_block.index + 1:
            raise ValidationError(
                f"Invalid index: expected {prev_block.index + 1}, got {block.index}"
            )
        if block.prev_hash != prev_block.hash:
            raise ValidationError("Previous hash mismatch")
        self._validate_contents(block)

    def _validate_contents(self, block: Block) -> None:
        computed_root = merkle_root([tx.encode('utf-8') for tx in block.transactions])
        if computed_root != block.merkle_root:
            raise ValidationError("Merkle root mismatch")

        computed_hash = compute_block_hash(
            block.index, block.prev_hash, block.merkle_root, block.timestamp
        )
        if computed_hash != block.hash:
            raise ValidationError("Block hash mismatch")

    def validate_chain(self) -> bool:
        """
        Validate the entire chain, genesis block included.

        Raises:
            ValidationError: If chain is invalid
        """
        if not self._chain:
            raise ValidationError("Chain is empty")
        genesis = self._chain[0]
        if genesis.index != 0 or genesis.prev_hash != GENESIS_PREV_HASH:
            raise ValidationError("Invalid genesis block")
        self._validate_contents(genesis)
        for i in range(1, len(self._chain)):
            self._validate_block(self._chain[i], self._chain[i - 1])
        return True

    def to_json(self) -> str:
        """Serialize chain to JSON."""
        return json.dumps({
            'chain': [block.to_dict() for block in self._chain],
        }, indent=2)

    @classmethod
    def from_json(cls, json_str: str, clock: Callable[[], float] = time.time) -> 'HashChain':
        """Deserialize and validate a chain from JSON."""
        data = json.loads(json_str)
        chain = cls.__new__(cls)
        chain._pending = []
        chain._clock = clock
        chain._chain = [Block.from_dict(block) for block in data['chain']]
        chain.validate_chain()
        return chain
