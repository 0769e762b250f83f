"""
Messenger Configuration

Deployment constants and a frozen configuration tree. The payload width
W and the message byte limit L = W/8 are fixed per deployment and are
never negotiated per message.

Environment variables (all optional):
    PRIVMSG_WIDTH_BITS        64 or 256
    PRIVMSG_VALIDITY_DAYS     capability validity window in days
    PRIVMSG_CHAIN_ID          chain id bound into signatures and handles
    PRIVMSG_BACKEND_TIMEOUT   relay timeout in seconds
    PRIVMSG_STRICT_ACL        "true" to reject batches with ungranted handles
    PRIVMSG_LOG_LEVEL         logging level name
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional


# ============================================================================
# Constants
# ============================================================================

SUPPORTED_WIDTHS = (64, 256)   # Payload widths in bits
DEFAULT_WIDTH_BITS = 256       # 32-byte messages
DEFAULT_VALIDITY_DAYS = 7      # Capability validity window
MAX_VALIDITY_DAYS = 365        # Longest window the backend accepts
SECONDS_PER_DAY = 86400
DEFAULT_CHAIN_ID = 11155111    # Sepolia
DEFAULT_BACKEND_TIMEOUT = 30.0
DOMAIN_NAME = "Decryption"
DOMAIN_VERSION = "1"
DEFAULT_VERIFYING_CONTRACT = "0x5ffdaae14d3f5c1e5cf8a0a53e1d6f2d3b8ac6b2"


@dataclass(frozen=True)
class CodecConfig:
    width_bits: int = DEFAULT_WIDTH_BITS

    def __post_init__(self):
        if self.width_bits not in SUPPORTED_WIDTHS:
            raise ValueError(
                f"Unsupported payload width {self.width_bits}, "
                f"expected one of {SUPPORTED_WIDTHS}"
            )

    @property
    def max_bytes(self) -> int:
        return self.width_bits // 8


@dataclass(frozen=True)
class BackendConfig:
    chain_id: int = DEFAULT_CHAIN_ID
    verifying_contract: str = DEFAULT_VERIFYING_CONTRACT
    timeout: float = DEFAULT_BACKEND_TIMEOUT
    validity_days: int = DEFAULT_VALIDITY_DAYS
    strict_acl: bool = False


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class MessengerConfig:
    codec: CodecConfig = field(default_factory=CodecConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def width_bits(self) -> int:
        return self.codec.width_bits

    @property
    def message_limit(self) -> int:
        """Maximum message length L in bytes."""
        return self.codec.max_bytes

    @classmethod
    def from_env(cls) -> "MessengerConfig":
        codec = CodecConfig(
            width_bits=int(os.getenv("PRIVMSG_WIDTH_BITS", str(DEFAULT_WIDTH_BITS))),
        )
        backend = BackendConfig(
            chain_id=int(os.getenv("PRIVMSG_CHAIN_ID", str(DEFAULT_CHAIN_ID))),
            timeout=float(os.getenv("PRIVMSG_BACKEND_TIMEOUT", str(DEFAULT_BACKEND_TIMEOUT))),
            validity_days=int(os.getenv("PRIVMSG_VALIDITY_DAYS", str(DEFAULT_VALIDITY_DAYS))),
            strict_acl=os.getenv("PRIVMSG_STRICT_ACL", "false").lower() == "true",
        )
        log = LogConfig(
            level=os.getenv("PRIVMSG_LOG_LEVEL", "INFO"),
        )
        return cls(codec=codec, backend=backend, log=log)


def setup_logging(config: Optional[MessengerConfig] = None) -> None:
    cfg = config or MessengerConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, cfg.log.level.upper()),
        format=cfg.log.format,
        force=True,
    )
