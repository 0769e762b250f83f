"""
Typed Structured Data

Domain-separated structured records (EIP-712), so a signature over one
statement shape can never be replayed against another shape, another
chain or another verifier.

Encoding and hashing are delegated to eth_account; this module only
holds the record and renders it in the shapes the signer and the
display layer expect.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import to_checksum_address

DOMAIN_TYPE = 'EIP712Domain'
DOMAIN_FIELDS: Tuple[Tuple[str, str], ...] = (
    ('name', 'string'),
    ('version', 'string'),
    ('chainId', 'uint256'),
    ('verifyingContract', 'address'),
)


def _eip712_value(field_type: str, value: Any) -> Any:
    if field_type.endswith('[]'):
        return [_eip712_value(field_type[:-2], item) for item in value]
    if field_type == 'address':
        return to_checksum_address(value)
    return value


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class TypedData:
    """
    A structured record ready for domain-separated signing.

    Immutable: the signable message is what gets signed and later
    re-derived by the verifier, so it must never change after composition.
    """
    domain: Mapping[str, Any]
    primary_type: str
    fields: Tuple[Tuple[str, str], ...]
    message: Mapping[str, Any]

    def _types(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            DOMAIN_TYPE: [{'name': n, 'type': t} for n, t in DOMAIN_FIELDS],
            self.primary_type: [{'name': n, 'type': t} for n, t in self.fields],
        }

    def _encoded_parts(self) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        domain_types = dict(DOMAIN_FIELDS)
        message_types = dict(self.fields)
        domain = {k: _eip712_value(domain_types[k], v) for k, v in self.domain.items()}
        message = {k: _eip712_value(message_types.get(k, ''), v)
                   for k, v in self.message.items()}
        return domain, message

    def signable(self) -> SignableMessage:
        """
        Encode the record as an EIP-712 signable message.

        Raises:
            ValueError: If a field is missing or a value does not fit its type
        """
        domain, message = self._encoded_parts()
        missing = [name for name, _ in self.fields if name not in message]
        if missing:
            raise ValueError(f"Missing field(s) {missing} for {self.primary_type}")
        return encode_typed_data(full_message={
            'types': self._types(),
            'primaryType': self.primary_type,
            'domain': domain,
            'message': message,
        })

    def to_dict(self) -> Dict[str, Any]:
        domain, message = self._encoded_parts()
        return {
            'domain': {k: _jsonable(v) for k, v in domain.items()},
            'types': self._types(),
            'primaryType': self.primary_type,
            'message': {k: _jsonable(v) for k, v in message.items()},
        }

    def to_json(self) -> str:
        """Canonical JSON rendering (sorted keys, compact)."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
