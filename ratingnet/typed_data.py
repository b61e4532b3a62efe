"""
RatingNet Typed Structured Data

Fixed-schema structured messages signed by a user's persistent identity to
authorize decryption. Modeled on EIP-712: a domain separator plus a typed
primary struct. The digest is SHA-256 over the canonical JSON of
{domain, primaryType, types, message}, prefixed with 0x19 0x01.

Only one primary type is used:

    UserDecryptRequestVerification(
        bytes publicKey,
        address[] contractAddresses,
        uint256 startTimestamp,
        uint256 durationDays,
        bytes extraData
    )
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .encoding import HEX_RE, canonicalize, is_address, normalize_address, sha256_bytes

DOMAIN_NAME = "Decryption"
DOMAIN_VERSION = "1"
PRIMARY_TYPE = "UserDecryptRequestVerification"

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

USER_DECRYPT_FIELDS = [
    {"name": "publicKey", "type": "bytes"},
    {"name": "contractAddresses", "type": "address[]"},
    {"name": "startTimestamp", "type": "uint256"},
    {"name": "durationDays", "type": "uint256"},
    {"name": "extraData", "type": "bytes"},
]

TYPES: Dict[str, List[Dict[str, str]]] = {
    "EIP712Domain": EIP712_DOMAIN_FIELDS,
    PRIMARY_TYPE: USER_DECRYPT_FIELDS,
}


def _check_value(type_name: str, value: Any) -> bool:
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "uint256":
        return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2 ** 256
    if type_name == "address":
        return is_address(value)
    if type_name == "address[]":
        return isinstance(value, list) and all(is_address(v) for v in value)
    if type_name == "bytes":
        return isinstance(value, str) and bool(HEX_RE.match(value))
    return False


def _check_struct(name: str, fields: List[Dict[str, str]], data: Dict[str, Any]) -> None:
    expected = [f["name"] for f in fields]
    if sorted(data) != sorted(expected):
        raise ValueError(f"{name} fields {sorted(data)} do not match schema {sorted(expected)}")
    for f in fields:
        if not _check_value(f["type"], data[f["name"]]):
            raise ValueError(f"{name}.{f['name']} is not a valid {f['type']}: {data[f['name']]!r}")


@dataclass(frozen=True)
class TypedMessage:
    """A schema-checked structured message ready for signing."""
    domain: Dict[str, Any]
    message: Dict[str, Any]
    primary_type: str = PRIMARY_TYPE
    types: Dict[str, List[Dict[str, str]]] = field(default_factory=lambda: TYPES)

    def __post_init__(self):
        if self.primary_type not in self.types:
            raise ValueError(f"Unknown primary type: {self.primary_type}")
        _check_struct("EIP712Domain", self.types["EIP712Domain"], self.domain)
        _check_struct(self.primary_type, self.types[self.primary_type], self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "primaryType": self.primary_type,
            "types": self.types,
            "message": self.message,
        }

    def digest(self) -> bytes:
        return sha256_bytes(b"\x19\x01" + canonicalize(self.to_dict()))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TypedMessage":
        return cls(
            domain=dict(data["domain"]),
            message=dict(data["message"]),
            primary_type=data["primaryType"],
            types=data["types"],
        )


def build_user_decrypt_message(
    public_key: str,
    contract_addresses: List[str],
    start_timestamp: int,
    duration_days: int,
    chain_id: int,
    verifying_contract: str,
    extra_data: str = "0x00",
) -> TypedMessage:
    """Assemble the grant message binding an ephemeral key to a contract scope and window."""
    return TypedMessage(
        domain={
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": normalize_address(verifying_contract),
        },
        message={
            "publicKey": public_key,
            "contractAddresses": list(contract_addresses),
            "startTimestamp": start_timestamp,
            "durationDays": duration_days,
            "extraData": extra_data,
        },
    )
