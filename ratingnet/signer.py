"""
RatingNet Signing Identities

A user's persistent signing identity produces structured-data signatures over
decryption grant messages. Ed25519 (RFC 8032) via PyNaCl.

Addresses are derived from the verify key:

    address = 0x || last 20 bytes of SHA-256(verify_key)

Structured signatures are recoverable: the 96-byte blob is the 32-byte verify
key followed by the 64-byte signature, so a verifier can recover the signer and
compare its address to the claimed one.

Signing is an explicit suspend/resume boundary with exactly two terminal
outcomes, SIGNED and DECLINED. Declining is a normal result, not an exception.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from .encoding import from_hex, sha256_bytes, to_hex
from .typed_data import TypedMessage

VERIFY_KEY_SIZE = 32
SIGNATURE_SIZE = 64


def derive_address(verify_key: bytes) -> str:
    return to_hex(sha256_bytes(verify_key)[-20:])


class SigningOutcome(str, Enum):
    SIGNED = "SIGNED"
    DECLINED = "DECLINED"


@dataclass(frozen=True)
class SigningResult:
    outcome: SigningOutcome
    signature: Optional[str] = None

    def signed(self) -> bool:
        return self.outcome == SigningOutcome.SIGNED


class StructuredSigner(ABC):
    """A user's persistent identity able to sign typed messages."""

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    def sign_structured(self, message: TypedMessage) -> SigningResult:
        """Sign `message`; may block until the user approves or declines."""
        pass


class Wallet(StructuredSigner):
    """Ed25519 identity that signs every request it receives."""

    def __init__(self, seed: Optional[bytes] = None):
        self._signing_key = SigningKey(seed) if seed else SigningKey.generate()
        self._address = derive_address(bytes(self._signing_key.verify_key))

    @classmethod
    def generate(cls) -> "Wallet":
        return cls()

    @property
    def address(self) -> str:
        return self._address

    @property
    def seed(self) -> bytes:
        return bytes(self._signing_key)

    @property
    def verify_key(self) -> bytes:
        return bytes(self._signing_key.verify_key)

    def sign_digest(self, digest: bytes) -> str:
        signature = self._signing_key.sign(digest).signature
        return to_hex(self.verify_key + signature)

    def sign_structured(self, message: TypedMessage) -> SigningResult:
        return SigningResult(SigningOutcome.SIGNED, self.sign_digest(message.digest()))


def recover_signer(message: TypedMessage, signature: str) -> Optional[str]:
    """Return the address that produced `signature` over `message`, or None."""
    try:
        blob = from_hex(signature)
    except ValueError:
        return None
    if len(blob) != VERIFY_KEY_SIZE + SIGNATURE_SIZE:
        return None
    verify_key, sig = blob[:VERIFY_KEY_SIZE], blob[VERIFY_KEY_SIZE:]
    try:
        VerifyKey(verify_key).verify(message.digest(), sig)
    except (BadSignatureError, CryptoError, ValueError):
        return None
    return derive_address(verify_key)


def verify_structured_signature(message: TypedMessage, signature: str, address: str) -> bool:
    recovered = recover_signer(message, signature)
    return recovered is not None and recovered == address.lower()


@dataclass
class PendingSignature:
    """A signature request suspended until the user answers it."""
    request_id: str
    message: TypedMessage
    _answered: threading.Event = field(default_factory=threading.Event, repr=False)
    _result: Optional[SigningResult] = field(default=None, repr=False)

    def resolve(self, result: SigningResult) -> None:
        if self._answered.is_set():
            raise ValueError(f"Signature request {self.request_id} already answered")
        self._result = result
        self._answered.set()

    def wait(self) -> SigningResult:
        self._answered.wait()
        return self._result


class InteractiveSigner(StructuredSigner):
    """
    Wallet front that suspends each request until approved or declined
    out-of-band.

    `sign_structured` blocks the calling thread with no timeout. Another
    thread (a UI, a test) lists `pending()` and calls `approve` or `decline`.
    """

    def __init__(self, wallet: Wallet):
        self._wallet = wallet
        self._pending: Dict[str, PendingSignature] = {}
        self._lock = threading.Lock()
        self._arrived = threading.Condition(self._lock)

    @property
    def address(self) -> str:
        return self._wallet.address

    def sign_structured(self, message: TypedMessage) -> SigningResult:
        request = PendingSignature(request_id=str(uuid.uuid4()), message=message)
        with self._arrived:
            self._pending[request.request_id] = request
            self._arrived.notify_all()
        try:
            return request.wait()
        finally:
            with self._lock:
                self._pending.pop(request.request_id, None)

    def pending(self) -> List[PendingSignature]:
        with self._lock:
            return list(self._pending.values())

    def wait_for_request(self) -> PendingSignature:
        """Block until at least one request is pending and return the oldest."""
        with self._arrived:
            while not self._pending:
                self._arrived.wait()
            return next(iter(self._pending.values()))

    def approve(self, request_id: str) -> None:
        request = self._take(request_id)
        request.resolve(
            SigningResult(SigningOutcome.SIGNED, self._wallet.sign_digest(request.message.digest()))
        )

    def decline(self, request_id: str) -> None:
        self._take(request_id).resolve(SigningResult(SigningOutcome.DECLINED))

    def _take(self, request_id: str) -> PendingSignature:
        with self._lock:
            request = self._pending.get(request_id)
        if request is None:
            raise KeyError(f"No pending signature request {request_id}")
        return request
