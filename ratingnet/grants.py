"""
RatingNet Decryption Grants

A Grant lets one user decrypt ciphertexts owned by a set of contracts, for a
bounded period, through the decryption oracle. It binds an ephemeral X25519
keypair to {contract set, start, duration} with the user's structured
signature. The oracle seals every cleartext to the ephemeral public key; only
the session holding the private key can open it.

The private key never leaves the client: `to_request()` is the only form sent
to an oracle and it omits the key.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

from .encoding import canonicalize, normalize_address, normalize_address_set, sha256_hex
from .typed_data import TypedMessage, build_user_decrypt_message

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class CacheKey:
    """Signature cache key: (user, sorted contract set), public key as disambiguator."""
    user_address: str
    contract_addresses: Tuple[str, ...]
    public_key: str = ""

    @classmethod
    def create(cls, user_address: str, contract_addresses: Iterable[str], public_key: str = "") -> "CacheKey":
        return cls(
            user_address=normalize_address(user_address),
            contract_addresses=normalize_address_set(contract_addresses),
            public_key=public_key.lower(),
        )

    def storage_key(self) -> str:
        return sha256_hex(canonicalize({
            "userAddress": self.user_address,
            "contractAddresses": list(self.contract_addresses),
            "publicKey": self.public_key,
        }))

    def primary(self) -> "CacheKey":
        """Same key without the public key disambiguator."""
        return CacheKey(self.user_address, self.contract_addresses)


@dataclass(frozen=True)
class Grant:
    """Signed, contract-scoped, time-bounded decryption authorization."""
    user_address: str
    contract_addresses: Tuple[str, ...]
    start_timestamp: int
    duration_days: int
    public_key: str
    private_key: str
    signature: str
    chain_id: int
    verifying_contract: str

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def covers(self, contract_addresses: Iterable[str]) -> bool:
        return set(normalize_address_set(contract_addresses)) <= set(self.contract_addresses)

    def cache_key(self, with_public_key: bool = False) -> CacheKey:
        return CacheKey(
            self.user_address,
            self.contract_addresses,
            self.public_key if with_public_key else "",
        )

    def typed_message(self) -> TypedMessage:
        return build_user_decrypt_message(
            public_key=self.public_key,
            contract_addresses=list(self.contract_addresses),
            start_timestamp=self.start_timestamp,
            duration_days=self.duration_days,
            chain_id=self.chain_id,
            verifying_contract=self.verifying_contract,
        )

    def to_request(self) -> Dict[str, Any]:
        """Public part of the grant, as sent to the oracle."""
        return {
            "user_address": self.user_address,
            "contract_addresses": list(self.contract_addresses),
            "start_timestamp": self.start_timestamp,
            "duration_days": self.duration_days,
            "public_key": self.public_key,
            "signature": self.signature,
            "chain_id": self.chain_id,
            "verifying_contract": self.verifying_contract,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full grant including the private key, for client-side storage only."""
        d = self.to_request()
        d["private_key"] = self.private_key
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Grant":
        return cls(
            user_address=normalize_address(data["user_address"]),
            contract_addresses=normalize_address_set(data["contract_addresses"]),
            start_timestamp=int(data["start_timestamp"]),
            duration_days=int(data["duration_days"]),
            public_key=data["public_key"],
            private_key=data["private_key"],
            signature=data["signature"],
            chain_id=int(data["chain_id"]),
            verifying_contract=normalize_address(data["verifying_contract"]),
        )
