"""
RatingNet Decryption Authorization Protocol

Client-side state machine that produces, caches and expires decryption grants.
One instance serves one user (its signer) and tracks state per contract set:

    NO_GRANT  --need decrypt-->  SIGNING
    SIGNING   --signed------->   GRANTED   (grant written to the signature cache)
    SIGNING   --declined----->   NO_GRANT  (SignatureDeclined, no retry)
    GRANTED   --now > expiry-->  EXPIRED   (evaluated lazily at use time)
    EXPIRED   --need decrypt-->  SIGNING

A change in the contract set is a different key, so it starts from NO_GRANT.
"""

import threading
import time
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from nacl.public import PrivateKey

from . import config
from .encoding import to_hex
from .errors import SignatureDeclined
from .grants import CacheKey, Grant
from .logging_config import audit_log
from .signature_cache import InMemorySignatureCache, SignatureCache
from .signer import SigningOutcome, StructuredSigner
from .typed_data import build_user_decrypt_message


class GrantState(str, Enum):
    NO_GRANT = "NO_GRANT"
    SIGNING = "SIGNING"
    GRANTED = "GRANTED"
    EXPIRED = "EXPIRED"


def classify_grant(grant: Optional[Grant], now: float) -> GrantState:
    """State of a cached grant (never SIGNING; that depends on in-flight requests)."""
    if grant is None:
        return GrantState.NO_GRANT
    if grant.is_expired(now):
        return GrantState.EXPIRED
    return GrantState.GRANTED


class DecryptionAuthorizer:
    """
    Obtains grants for one signer, reusing cached ones while valid.

    `load_or_sign` blocks for as long as the signer does. Concurrent calls for
    the same contract set in one authorizer wait for the in-flight signature
    instead of prompting the user twice.
    """

    def __init__(
        self,
        signer: StructuredSigner,
        cache: Optional[SignatureCache] = None,
        chain_id: int = config.CHAIN_ID,
        verifying_contract: str = config.DECRYPTION_CONTRACT,
        duration_days: int = config.GRANT_DURATION_DAYS,
        clock: Callable[[], float] = time.time,
    ):
        self.signer = signer
        self.cache = cache if cache is not None else InMemorySignatureCache()
        self.chain_id = chain_id
        self.verifying_contract = verifying_contract
        self.duration_days = duration_days
        self._clock = clock
        self._signing: Set[Tuple[str, ...]] = set()
        self._key_locks: Dict[Tuple[str, ...], threading.Lock] = {}
        self._guard = threading.Lock()

    def _key(self, contract_addresses: Iterable[str]) -> CacheKey:
        return CacheKey.create(self.signer.address, contract_addresses)

    def _lock_for(self, contracts: Tuple[str, ...]) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(contracts)
            if lock is None:
                lock = self._key_locks[contracts] = threading.Lock()
            return lock

    def state(self, contract_addresses: Iterable[str]) -> GrantState:
        key = self._key(contract_addresses)
        with self._guard:
            if key.contract_addresses in self._signing:
                return GrantState.SIGNING
        cached = self.cache.get(key.user_address, key.contract_addresses)
        return classify_grant(cached, self._clock())

    def cached_grant(self, contract_addresses: Iterable[str]) -> Optional[Grant]:
        """Valid cached grant for the contract set, without signing."""
        key = self._key(contract_addresses)
        cached = self.cache.get(key.user_address, key.contract_addresses)
        if classify_grant(cached, self._clock()) == GrantState.GRANTED:
            return cached
        return None

    def load_or_sign(self, contract_addresses: Iterable[str]) -> Grant:
        """
        Return a valid grant for the contract set, signing a new one if needed.

        Raises:
            SignatureDeclined: the user declined; nothing was cached
        """
        key = self._key(contract_addresses)
        contracts = key.contract_addresses
        with self._lock_for(contracts):
            cached = self.cache.get(key.user_address, contracts)
            state = classify_grant(cached, self._clock())
            if state == GrantState.GRANTED:
                audit_log.grant_reused(key.user_address, list(contracts))
                return cached
            if state == GrantState.EXPIRED:
                audit_log.grant_expired(key.user_address, list(contracts), cached.expires_at)
            return self._sign(contracts)

    def _sign(self, contracts: Tuple[str, ...]) -> Grant:
        ephemeral = PrivateKey.generate()
        public_key = to_hex(bytes(ephemeral.public_key))
        start = int(self._clock())
        message = build_user_decrypt_message(
            public_key=public_key,
            contract_addresses=list(contracts),
            start_timestamp=start,
            duration_days=self.duration_days,
            chain_id=self.chain_id,
            verifying_contract=self.verifying_contract,
        )

        with self._guard:
            self._signing.add(contracts)
        try:
            result = self.signer.sign_structured(message)
        finally:
            with self._guard:
                self._signing.discard(contracts)

        if result.outcome == SigningOutcome.DECLINED:
            audit_log.signature_declined(self.signer.address, list(contracts))
            raise SignatureDeclined(
                "User declined to sign the decryption grant",
                {"user_address": self.signer.address, "contract_addresses": list(contracts)},
            )
        # SigningOutcome.SIGNED
        grant = Grant(
            user_address=self.signer.address,
            contract_addresses=contracts,
            start_timestamp=start,
            duration_days=self.duration_days,
            public_key=public_key,
            private_key=to_hex(bytes(ephemeral)),
            signature=result.signature,
            chain_id=self.chain_id,
            verifying_contract=message.domain["verifyingContract"],
        )
        self.cache.put(grant)
        audit_log.grant_signed(grant.user_address, list(contracts), grant.expires_at)
        return grant
