# Ciphertext Service Module
"""
Boundary to the encryption backend:
- Client adapter (encrypt / decrypt with a redeemed capability)
- Local backend stand-in (ciphertext store, ACL, input proofs)
- Async relay transport
- Lazy service provider with reset

Security features:
- Payloads stored under AES-256-GCM
- Input proofs signed with P-256 ECDSA
- Decrypted payloads sealed to the capability's ephemeral key
  (ECDH + HKDF + AES-256-GCM)
"""

# Lazy imports to avoid circular import issues
def __getattr__(name):
    """Lazy import of the submodule exporting `name`."""
    from importlib import import_module
    for module in ('types', 'sealing', 'backend', 'relayer', 'service', 'provider'):
        mod = import_module(f'.{module}', __name__)
        if hasattr(mod, name):
            return getattr(mod, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    'EncryptedInput',
    'HandleContextPair',
    'DecryptionRequest',
    'SealedPayload',
    'LocalFheBackend',
    'LocalRelayer',
    'CiphertextService',
    'ServiceProvider',
    'connect_local',
    'create_local_provider',
]
