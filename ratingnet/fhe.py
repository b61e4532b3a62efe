"""
RatingNet Ciphertext Layer

Opaque handle algebra consumed by the aggregation engine:

    add, mul, div (by a clear scalar), min, max, cast,
    trivial_encrypt (encrypt a constant), verify_input (import external input)

`CiphertextBackend` is the interface. `MockCoprocessor` is an in-process
reference backend: it keeps each handle's value in a private table, evaluates
operations with unsigned wrap-around semantics, and signs input proofs with an
Ed25519 input-verifier key. Only the decryption oracle reads values back out,
through `MockCoprocessor.plaintext`.

Handle format (32 bytes, hex with 0x prefix):

    bytes 0..29   digest identifying the ciphertext
    byte  30      encrypted type (FheType)
    byte  31      handle format version
"""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .encoding import b64d, b64e, canonicalize, from_hex, normalize_address, sha256_bytes, to_hex
from .errors import InvalidInputProof, TypeMismatch, UnknownHandle

HANDLE_VERSION = 0


class FheType(int, Enum):
    """Encrypted types, numbered as in the handle's type byte."""
    EBOOL = 0
    EUINT8 = 2
    EUINT16 = 3
    EUINT32 = 4
    EUINT64 = 5


BIT_WIDTHS: Dict[FheType, int] = {
    FheType.EBOOL: 1,
    FheType.EUINT8: 8,
    FheType.EUINT16: 16,
    FheType.EUINT32: 32,
    FheType.EUINT64: 64,
}


def bit_width(fhe_type: FheType) -> int:
    return BIT_WIDTHS[fhe_type]


def byte_width(fhe_type: FheType) -> int:
    return max(1, BIT_WIDTHS[fhe_type] // 8)


def max_value(fhe_type: FheType) -> int:
    return (1 << BIT_WIDTHS[fhe_type]) - 1


def encode_cleartext(value: int, fhe_type: FheType) -> bytes:
    """Big-endian encoding of a cleartext at the type's byte width."""
    return int(value).to_bytes(byte_width(fhe_type), "big")


def decode_cleartext(data: bytes, fhe_type: FheType) -> Union[int, bool]:
    """Inverse of `encode_cleartext`; EBOOL decodes to bool."""
    if len(data) != byte_width(fhe_type):
        raise ValueError(
            f"Expected {byte_width(fhe_type)} byte(s) for {fhe_type.name}, got {len(data)}"
        )
    value = int.from_bytes(data, "big") & max_value(fhe_type)
    if fhe_type == FheType.EBOOL:
        return bool(value)
    return value


@dataclass(frozen=True)
class CiphertextHandle:
    """Immutable reference to an encrypted value."""
    value: str

    def __post_init__(self):
        raw = from_hex(self.value)
        if len(raw) != 32:
            raise ValueError(f"Handle must be 32 bytes, got {len(raw)}")
        try:
            FheType(raw[30])
        except ValueError:
            raise ValueError(f"Unknown encrypted type byte: {raw[30]}") from None
        object.__setattr__(self, "value", self.value.lower())

    @property
    def fhe_type(self) -> FheType:
        return FheType(from_hex(self.value)[30])

    @property
    def bit_width(self) -> int:
        return bit_width(self.fhe_type)

    @classmethod
    def from_hex(cls, value: str) -> "CiphertextHandle":
        return cls(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class EncryptedInputBatch:
    """Client-side encryption result: external handles plus one proof for all of them."""
    handles: Tuple[CiphertextHandle, ...]
    input_proof: bytes


class CiphertextBackend(ABC):
    """
    Ciphertext arithmetic primitives.

    All operations are side-effect free apart from creating the result handle.
    Binary operations require both operands to share a type.
    """

    @abstractmethod
    def add(self, a: CiphertextHandle, b: CiphertextHandle) -> CiphertextHandle:
        pass

    @abstractmethod
    def mul(self, a: CiphertextHandle, b: CiphertextHandle) -> CiphertextHandle:
        pass

    @abstractmethod
    def div(self, a: CiphertextHandle, divisor: int) -> CiphertextHandle:
        """Divide by a clear, non-zero integer, flooring the result."""
        pass

    @abstractmethod
    def min(self, a: CiphertextHandle, b: CiphertextHandle) -> CiphertextHandle:
        pass

    @abstractmethod
    def max(self, a: CiphertextHandle, b: CiphertextHandle) -> CiphertextHandle:
        pass

    @abstractmethod
    def cast(self, a: CiphertextHandle, to_type: FheType) -> CiphertextHandle:
        pass

    @abstractmethod
    def trivial_encrypt(self, value: int, fhe_type: FheType) -> CiphertextHandle:
        pass

    @abstractmethod
    def verify_input(
        self,
        handle: CiphertextHandle,
        proof: bytes,
        contract_address: str,
        user_address: str,
        expected_type: FheType,
    ) -> CiphertextHandle:
        """
        Import an external ciphertext.

        Raises:
            InvalidInputProof: the proof does not cover this handle for
                (contract_address, user_address)
            TypeMismatch: the handle's type is not `expected_type`
        """
        pass


class MockCoprocessor(CiphertextBackend):
    """
    In-process coprocessor holding ciphertext values.

    Thread-safe. External (client-encrypted) handles are usable only as
    `verify_input` arguments; every import yields a fresh internal handle.
    """

    def __init__(self, input_verifier_seed: Optional[bytes] = None):
        self._verifier = SigningKey(input_verifier_seed) if input_verifier_seed else SigningKey.generate()
        self._values: Dict[str, Tuple[int, FheType]] = {}
        self._external: Set[str] = set()
        self._counter = 0
        self._lock = threading.Lock()

    @property
    def input_verifier_key(self) -> bytes:
        return bytes(self._verifier.verify_key)

    # ------------------------------------------------------------------
    # Handle table
    # ------------------------------------------------------------------

    def _store(self, value: int, fhe_type: FheType, *material, external: bool = False) -> CiphertextHandle:
        if fhe_type == FheType.EBOOL:
            value = 1 if value else 0
        value &= max_value(fhe_type)
        with self._lock:
            self._counter += 1
            digest = sha256_bytes(canonicalize([list(material), self._counter]))[:30]
            handle = CiphertextHandle(to_hex(digest + bytes([fhe_type.value, HANDLE_VERSION])))
            self._values[handle.value] = (value, fhe_type)
            if external:
                self._external.add(handle.value)
        return handle

    def _operand(self, handle: CiphertextHandle) -> int:
        with self._lock:
            entry = self._values.get(handle.value)
            external = handle.value in self._external
        if entry is None or external:
            raise UnknownHandle(f"Handle {handle} is not an imported ciphertext", {"handle": handle.value})
        return entry[0]

    def plaintext(self, handle: CiphertextHandle) -> int:
        """Trusted read of a handle's value. Reserved for the decryption oracle."""
        return self._operand(handle)

    def __contains__(self, handle: CiphertextHandle) -> bool:
        with self._lock:
            return handle.value in self._values

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _binary(
        self,
        op: str,
        a: CiphertextHandle,
        b: CiphertextHandle,
        fn: Callable[[int, int], int],
    ) -> CiphertextHandle:
        if a.fhe_type != b.fhe_type:
            raise TypeMismatch(
                f"{op} operands differ in type: {a.fhe_type.name} vs {b.fhe_type.name}",
                {"op": op},
            )
        if a.fhe_type == FheType.EBOOL and op in ("add", "mul"):
            raise TypeMismatch(f"{op} is not defined on EBOOL", {"op": op})
        result = fn(self._operand(a), self._operand(b))
        return self._store(result, a.fhe_type, op, a.value, b.value)

    def add(self, a, b):
        return self._binary("add", a, b, lambda x, y: x + y)

    def mul(self, a, b):
        return self._binary("mul", a, b, lambda x, y: x * y)

    def min(self, a, b):
        return self._binary("min", a, b, min)

    def max(self, a, b):
        return self._binary("max", a, b, max)

    def div(self, a, divisor):
        if isinstance(divisor, bool) or not isinstance(divisor, int) or divisor <= 0:
            raise ValueError(f"Divisor must be a positive integer, got {divisor!r}")
        if a.fhe_type == FheType.EBOOL:
            raise TypeMismatch("div is not defined on EBOOL", {"op": "div"})
        return self._store(self._operand(a) // divisor, a.fhe_type, "div", a.value, divisor)

    def cast(self, a, to_type):
        return self._store(self._operand(a), to_type, "cast", a.value, to_type.value)

    def trivial_encrypt(self, value, fhe_type):
        if isinstance(value, bool):
            value = int(value)
        if value < 0 or value > max_value(fhe_type):
            raise ValueError(f"{value} does not fit in {fhe_type.name}")
        return self._store(value, fhe_type, "trivial", value, fhe_type.value)

    # ------------------------------------------------------------------
    # External inputs
    # ------------------------------------------------------------------

    @staticmethod
    def _proof_payload(handles: List[str], contract_address: str, user_address: str) -> bytes:
        return canonicalize({
            "contract_address": normalize_address(contract_address),
            "user_address": normalize_address(user_address),
            "handles": handles,
        })

    def ingest_inputs(
        self,
        contract_address: str,
        user_address: str,
        values: List[Tuple[int, FheType]],
    ) -> EncryptedInputBatch:
        """Encrypt client values and sign a proof binding them to (contract, user)."""
        if not values:
            raise ValueError("Encrypted input is empty")
        handles = []
        for index, (value, fhe_type) in enumerate(values):
            if value < 0 or value > max_value(fhe_type):
                raise ValueError(f"{value} does not fit in {fhe_type.name}")
            handles.append(self._store(value, fhe_type, "input", index, external=True))
        hex_handles = [h.value for h in handles]
        signature = self._verifier.sign(
            self._proof_payload(hex_handles, contract_address, user_address)
        ).signature
        proof = canonicalize({"handles": hex_handles, "signature": b64e(signature)})
        return EncryptedInputBatch(handles=tuple(handles), input_proof=proof)

    def create_encrypted_input(self, contract_address: str, user_address: str) -> "EncryptedInput":
        return EncryptedInput(self, contract_address, user_address)

    def verify_input(self, handle, proof, contract_address, user_address, expected_type):
        try:
            parsed = json.loads(proof)
            handles = parsed["handles"]
            if not isinstance(handles, list):
                raise TypeError("handles must be a list")
            signature = b64d(parsed["signature"])
            payload = self._proof_payload(handles, contract_address, user_address)
            VerifyKey(self.input_verifier_key).verify(payload, signature)
        except (ValueError, KeyError, TypeError, AttributeError, BadSignatureError) as e:
            raise InvalidInputProof(
                "Input proof does not verify",
                {"handle": handle.value, "reason": type(e).__name__},
            ) from None

        if handle.value not in handles:
            raise InvalidInputProof("Input proof does not cover handle", {"handle": handle.value})
        if handle.fhe_type != expected_type:
            raise TypeMismatch(
                f"Expected {expected_type.name}, got {handle.fhe_type.name}",
                {"handle": handle.value},
            )

        with self._lock:
            entry = self._values.get(handle.value)
            external = handle.value in self._external
        if entry is None or not external:
            raise UnknownHandle(f"Handle {handle} is not an external input", {"handle": handle.value})

        return self._store(
            entry[0],
            entry[1],
            "import",
            handle.value,
            normalize_address(contract_address),
            normalize_address(user_address),
        )


class EncryptedInput:
    """
    Builder for a batch of client-encrypted values.

    Usage:
        batch = (coprocessor.create_encrypted_input(engine.address, user)
                 .add8(4)
                 .encrypt())
        engine.submit(subject, batch.handles[0], batch.input_proof, caller=user)
    """

    def __init__(self, coprocessor: MockCoprocessor, contract_address: str, user_address: str):
        self._coprocessor = coprocessor
        self._contract = normalize_address(contract_address)
        self._user = normalize_address(user_address)
        self._values: List[Tuple[int, FheType]] = []

    def _add(self, value: int, fhe_type: FheType) -> "EncryptedInput":
        self._values.append((int(value), fhe_type))
        return self

    def add_bool(self, value: bool) -> "EncryptedInput":
        return self._add(1 if value else 0, FheType.EBOOL)

    def add8(self, value: int) -> "EncryptedInput":
        return self._add(value, FheType.EUINT8)

    def add16(self, value: int) -> "EncryptedInput":
        return self._add(value, FheType.EUINT16)

    def add32(self, value: int) -> "EncryptedInput":
        return self._add(value, FheType.EUINT32)

    def add64(self, value: int) -> "EncryptedInput":
        return self._add(value, FheType.EUINT64)

    def encrypt(self) -> EncryptedInputBatch:
        return self._coprocessor.ingest_inputs(self._contract, self._user, list(self._values))
