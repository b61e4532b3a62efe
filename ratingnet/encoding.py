"""
RatingNet Encoding Helpers

Canonical JSON, digests, base64 and address handling shared by the proof,
typed-data and cache layers. Every signed or hashed structure goes through
`canonicalize` so that semantically identical payloads produce identical bytes.
"""

import base64
import hashlib
import json
import re
from typing import Any, Iterable, List, Tuple, Union

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
HEX_RE = re.compile(r"^0x([0-9a-fA-F]{2})*$")


def canonicalize(obj: Any) -> bytes:
    """
    Encode an object as canonical JSON bytes.

    - Object keys sorted lexicographically
    - Compact separators, no whitespace
    - UTF-8, no ASCII escaping
    - Tuples encoded as arrays, bytes as 0x-prefixed lowercase hex
    """
    return json.dumps(
        _normalize(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return to_hex(bytes(value))
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    # Floats are rejected: signed payloads carry integers only.
    raise ValueError(f"Cannot canonicalize type: {type(value).__name__}")


def sha256_bytes(data: Union[bytes, str]) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).digest()


def sha256_hex(data: Union[bytes, str]) -> str:
    return sha256_bytes(data).hex()


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)


def to_hex(b: bytes) -> str:
    return "0x" + b.hex()


def from_hex(s: str) -> bytes:
    """Decode a 0x-prefixed hex string."""
    if not isinstance(s, str) or not HEX_RE.match(s):
        raise ValueError(f"Invalid hex string: {s!r}")
    return bytes.fromhex(s[2:])


def is_address(value: Any) -> bool:
    return isinstance(value, str) and bool(ADDRESS_RE.match(value))


def normalize_address(value: str) -> str:
    """Validate an address and return its lowercase form."""
    if not is_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return value.lower()


def normalize_address_set(addresses: Iterable[str]) -> Tuple[str, ...]:
    """Lowercase, deduplicate and sort a set of contract addresses."""
    normalized: List[str] = sorted({normalize_address(a) for a in addresses})
    if not normalized:
        raise ValueError("At least one contract address is required")
    return tuple(normalized)
