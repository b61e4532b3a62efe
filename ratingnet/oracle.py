"""
RatingNet Decryption Oracle

In-process stand-in for the trust-minimized decryption service. For each
user-decrypt request it:

1. rebuilds the typed grant message under its own domain and recovers the
   signer, which must be the claimed user;
2. rejects expired grants, grants starting too far in the future and
   durations outside 1..max days;
3. checks every (handle, contract) pair: the contract is in the grant scope,
   and both the user and the contract hold an ACL entry on the handle;
4. seals each cleartext to the grant's ephemeral public key.

Checks run against live ACL state on every request; nothing is cached.
"""

import time
from typing import Any, Callable, Dict, List, Tuple

from nacl.public import PublicKey, SealedBox

from . import config
from .acl import ACLManager
from .encoding import b64e, from_hex, normalize_address, normalize_address_set
from .errors import AuthorizationError, GrantExpired, InvalidGrant, Unauthorized
from .fhe import CiphertextHandle, MockCoprocessor, encode_cleartext
from .grants import SECONDS_PER_DAY
from .logging_config import audit_log
from .signer import verify_structured_signature
from .transport import DecryptTransport
from .typed_data import build_user_decrypt_message


class DecryptionOracle(DecryptTransport):

    def __init__(
        self,
        coprocessor: MockCoprocessor,
        acl: ACLManager,
        chain_id: int = config.CHAIN_ID,
        verifying_contract: str = config.DECRYPTION_CONTRACT,
        max_duration_days: int = config.MAX_GRANT_DURATION_DAYS,
        max_clock_skew_seconds: int = config.MAX_CLOCK_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.coprocessor = coprocessor
        self.acl = acl
        self.chain_id = chain_id
        self.verifying_contract = normalize_address(verifying_contract)
        self.max_duration_days = max_duration_days
        self.max_clock_skew_seconds = max_clock_skew_seconds
        self._clock = clock

    def user_decrypt(self, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            grant = request["grant"]
            user = normalize_address(grant["user_address"])
            contracts = normalize_address_set(grant["contract_addresses"])
            start = int(grant["start_timestamp"])
            duration_days = int(grant["duration_days"])
            public_key = grant["public_key"]
            signature = grant["signature"]
            pairs = self._parse_pairs(request["handle_contract_pairs"])
            message = build_user_decrypt_message(
                public_key=public_key,
                contract_addresses=list(contracts),
                start_timestamp=start,
                duration_days=duration_days,
                chain_id=self.chain_id,
                verifying_contract=self.verifying_contract,
            )
            recipient = SealedBox(PublicKey(from_hex(public_key)))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidGrant(f"Malformed decryption request: {e}") from None

        try:
            self._authorize(user, contracts, start, duration_days, signature, message, pairs)
        except AuthorizationError as e:
            audit_log.decrypt_denied(user, e.code, e.message)
            raise

        audit_log.decrypt_request(user, [h.value for h, _ in pairs])
        values = {}
        for handle, _ in pairs:
            cleartext = encode_cleartext(self.coprocessor.plaintext(handle), handle.fhe_type)
            values[handle.value] = b64e(recipient.encrypt(cleartext))
        return {"values": values}

    @staticmethod
    def _parse_pairs(raw: List[Dict[str, str]]) -> List[Tuple[CiphertextHandle, str]]:
        if not raw:
            raise ValueError("no handles requested")
        pairs = {}
        for item in raw:
            handle = CiphertextHandle(item["handle"])
            pairs[handle.value] = (handle, normalize_address(item["contract_address"]))
        return list(pairs.values())

    def _authorize(self, user, contracts, start, duration_days, signature, message, pairs) -> None:
        if not verify_structured_signature(message, signature, user):
            raise Unauthorized("Grant signature does not match user", {"user_address": user})

        now = self._clock()
        expires_at = start + duration_days * SECONDS_PER_DAY
        if now > expires_at:
            raise GrantExpired(
                "Decryption grant has expired",
                {"user_address": user, "expired_at": expires_at},
            )
        if duration_days < 1 or duration_days > self.max_duration_days:
            raise InvalidGrant(
                f"Grant duration must be 1..{self.max_duration_days} days",
                {"duration_days": duration_days},
            )
        if start > now + self.max_clock_skew_seconds:
            raise InvalidGrant("Grant start is in the future", {"start_timestamp": start})

        for handle, contract in pairs:
            if contract == user:
                raise InvalidGrant("User address cannot equal contract address", {"contract_address": contract})
            if contract not in contracts:
                raise Unauthorized(
                    f"Contract {contract} is outside the grant scope",
                    {"handle": handle.value, "contract_address": contract},
                )
            if not self.acl.is_allowed(handle, user):
                raise Unauthorized(
                    f"User {user} is not allowed to decrypt {handle.value}",
                    {"handle": handle.value, "user_address": user},
                )
            if not self.acl.is_allowed(handle, contract):
                raise Unauthorized(
                    f"Contract {contract} is not allowed on {handle.value}",
                    {"handle": handle.value, "contract_address": contract},
                )
