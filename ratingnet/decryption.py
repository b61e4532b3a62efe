"""
RatingNet Decrypt Request Execution (client side)

Sends a batch of (handle, owning contract) pairs plus the public part of a
grant to a transport, then opens the sealed cleartexts with the grant's
ephemeral private key and decodes each one at its handle's bit width.

Retry policy:
- TransientError (oracle unavailable, malformed response): retried with
  exponential backoff up to `max_attempts`
- AuthorizationError (Unauthorized, GrantExpired, InvalidGrant): raised
  immediately; the caller needs a new grant, not a repeated request
"""

import time
from typing import Callable, Dict, Sequence, Tuple, Union

from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, SealedBox

from . import config
from .encoding import b64d, from_hex, normalize_address
from .errors import GrantExpired, MalformedOracleResponse, TransientError
from .fhe import CiphertextHandle, decode_cleartext
from .grants import Grant
from .logging_config import audit_log
from .transport import DecryptTransport

HandleContractPair = Tuple[CiphertextHandle, str]
Cleartext = Union[int, bool]


def build_request(pairs: Sequence[HandleContractPair], grant: Grant) -> Dict:
    return {
        "handle_contract_pairs": [
            {"handle": handle.value, "contract_address": normalize_address(contract)}
            for handle, contract in pairs
        ],
        "grant": grant.to_request(),
    }


class DecryptionClient:

    def __init__(
        self,
        transport: DecryptTransport,
        max_attempts: int = config.DECRYPT_MAX_ATTEMPTS,
        backoff_seconds: float = config.DECRYPT_BACKOFF_SECONDS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._sleep = sleep

    def decrypt(
        self,
        pairs: Sequence[HandleContractPair],
        grant: Grant,
    ) -> Dict[CiphertextHandle, Cleartext]:
        """
        Decrypt every handle in `pairs` with `grant`.

        Returns:
            Mapping with exactly the requested handles as keys

        Raises:
            GrantExpired: locally, before any request, if the grant has lapsed
            Unauthorized, InvalidGrant: as reported by the oracle
            TransientError: after `max_attempts` transient failures
        """
        if not pairs:
            return {}
        if grant.is_expired(self._clock()):
            raise GrantExpired(
                "Decryption grant has expired",
                {"user_address": grant.user_address, "expired_at": grant.expires_at},
            )

        request = build_request(pairs, grant)
        requested = {handle.value: handle for handle, _ in pairs}

        attempt = 1
        while True:
            try:
                response = self.transport.user_decrypt(request)
                return self._open(requested, grant, response)
            except TransientError as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                audit_log.decrypt_retry(attempt, delay, e.code)
                self._sleep(delay)
                attempt += 1

    @staticmethod
    def _open(
        requested: Dict[str, CiphertextHandle],
        grant: Grant,
        response: Dict,
    ) -> Dict[CiphertextHandle, Cleartext]:
        values = response.get("values") if isinstance(response, dict) else None
        if not isinstance(values, dict):
            raise MalformedOracleResponse("Oracle response has no values")
        if set(values) != set(requested):
            raise MalformedOracleResponse(
                "Oracle response does not match requested handles",
                {"missing": sorted(set(requested) - set(values)),
                 "unexpected": sorted(set(values) - set(requested))},
            )

        box = SealedBox(PrivateKey(from_hex(grant.private_key)))
        result = {}
        for key, handle in requested.items():
            if not isinstance(values[key], str):
                raise MalformedOracleResponse(
                    f"Value for {key} is not a string", {"handle": key}
                )
            try:
                raw = box.decrypt(b64d(values[key]))
                result[handle] = decode_cleartext(raw, handle.fhe_type)
            except (CryptoError, ValueError) as e:
                raise MalformedOracleResponse(
                    f"Cannot open value for {key}: {e}", {"handle": key}
                ) from None
        return result
