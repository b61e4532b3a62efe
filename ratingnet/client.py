"""
RatingNet End-User Flow

`RatingClient` plays the front end for one user against one engine:

    submit_rating   encrypt a score for (engine, user) and submit it
    average         run the average transition, obtain or reuse a grant,
                    decrypt the result and render it with two decimals
    count           public rating count

`LocalNetwork` wires an in-process coprocessor, ACL, engine and oracle
together for demos and tests.
"""

from dataclasses import dataclass
from typing import Optional

from .acl import ACLManager
from .authorization import DecryptionAuthorizer
from .decryption import DecryptionClient
from .engine import AVERAGE_SCALE, RatingEngine, Stats
from .fhe import MockCoprocessor
from .oracle import DecryptionOracle
from .signature_cache import SignatureCache
from .signer import StructuredSigner
from .transport import DecryptTransport


def format_average(raw: int) -> str:
    """Render a floor-scaled average: 366 -> "3.66"."""
    if raw < 0:
        raise ValueError(f"Average cannot be negative: {raw}")
    return f"{raw // AVERAGE_SCALE}.{raw % AVERAGE_SCALE:02d}"


@dataclass(frozen=True)
class AverageResult:
    raw: int
    display: str


class RatingClient:
    """One user's session against one rating engine."""

    def __init__(
        self,
        engine: RatingEngine,
        coprocessor: MockCoprocessor,
        authorizer: DecryptionAuthorizer,
        decryptor: DecryptionClient,
    ):
        self.engine = engine
        self.coprocessor = coprocessor
        self.authorizer = authorizer
        self.decryptor = decryptor

    @property
    def user_address(self) -> str:
        return self.authorizer.signer.address

    def submit_rating(self, subject: str, score: int) -> Stats:
        """Encrypt `score` as an 8-bit value and submit it. Out-of-range scores are clamped by the engine."""
        batch = (self.coprocessor
                 .create_encrypted_input(self.engine.address, self.user_address)
                 .add8(score)
                 .encrypt())
        return self.engine.submit(subject, batch.handles[0], batch.input_proof, caller=self.user_address)

    def average(self, subject: str) -> AverageResult:
        handle = self.engine.query_average(subject, caller=self.user_address)
        grant = self.authorizer.load_or_sign([self.engine.address])
        values = self.decryptor.decrypt([(handle, self.engine.address)], grant)
        raw = int(values[handle])
        return AverageResult(raw=raw, display=format_average(raw))

    def count(self, subject: str) -> int:
        return self.engine.query_count(subject)


class LocalNetwork:
    """In-process coprocessor, ACL, engine and oracle sharing one state."""

    def __init__(
        self,
        coprocessor: Optional[MockCoprocessor] = None,
        acl: Optional[ACLManager] = None,
        engine_address: Optional[str] = None,
        **oracle_options,
    ):
        self.coprocessor = coprocessor or MockCoprocessor()
        self.acl = acl or ACLManager()
        self.engine = RatingEngine(self.coprocessor, self.acl, address=engine_address)
        self.oracle = DecryptionOracle(self.coprocessor, self.acl, **oracle_options)

    def client_for(
        self,
        signer: StructuredSigner,
        cache: Optional[SignatureCache] = None,
        transport: Optional[DecryptTransport] = None,
        **decrypt_options,
    ) -> RatingClient:
        authorizer = DecryptionAuthorizer(
            signer,
            cache=cache,
            chain_id=self.oracle.chain_id,
            verifying_contract=self.oracle.verifying_contract,
        )
        decryptor = DecryptionClient(transport or self.oracle, **decrypt_options)
        return RatingClient(self.engine, self.coprocessor, authorizer, decryptor)
