"""
RatingNet Aggregation Engine

Owns per-subject running statistics over encrypted scores. Every step that
touches a score (import, range clamp, widening, accumulation, averaging) runs
on ciphertext handles; nothing is decrypted to recompute.

Per subject:
    sum    EUINT32 handle accumulating clamped contributions (lazy, first write)
    count  plain uint32, wraps to 0 on overflow without error

Transitions on one subject are serialized by a per-subject lock and commit
sum and count in a single assignment, so no observer sees one updated without
the other. Different subjects proceed concurrently.
"""

import secrets
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from .acl import ACLManager
from .encoding import normalize_address
from .errors import RatingNetError
from .fhe import CiphertextBackend, CiphertextHandle, FheType
from .logging_config import audit_log

SCORE_MIN = 1
SCORE_MAX = 5
AVERAGE_SCALE = 100  # two implied decimal digits
COUNT_MODULUS = 2 ** 32

SCORE_TYPE = FheType.EUINT8
ACCUMULATOR_TYPE = FheType.EUINT32


@dataclass(frozen=True)
class Stats:
    """Committed statistics for one subject. `sum` is None until the first write."""
    sum: Optional[CiphertextHandle] = None
    count: int = 0


class RatingEngine:
    """
    Confidential rating aggregator.

    Usage:
        engine = RatingEngine(coprocessor, acl)
        batch = coprocessor.create_encrypted_input(engine.address, user).add8(4).encrypt()
        engine.submit(subject, batch.handles[0], batch.input_proof, caller=user)
        handle = engine.query_average(subject, caller=viewer)
    """

    def __init__(
        self,
        backend: CiphertextBackend,
        acl: ACLManager,
        address: Optional[str] = None,
    ):
        self.backend = backend
        self.address = normalize_address(address or "0x" + secrets.token_hex(20))
        self.acl = acl.bind(self.address)
        self._stats: Dict[str, Stats] = {}
        self._subject_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, subject: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._subject_locks.get(subject)
            if lock is None:
                lock = self._subject_locks[subject] = threading.Lock()
            return lock

    def _clamp(self, score: CiphertextHandle) -> CiphertextHandle:
        lo = self.backend.trivial_encrypt(SCORE_MIN, SCORE_TYPE)
        hi = self.backend.trivial_encrypt(SCORE_MAX, SCORE_TYPE)
        return self.backend.min(self.backend.max(score, lo), hi)

    def submit(
        self,
        subject: str,
        encrypted_score: CiphertextHandle,
        input_proof: bytes,
        caller: str,
    ) -> Stats:
        """
        Add one encrypted score to `subject`.

        The score is imported for (this engine, caller), clamped into
        [SCORE_MIN, SCORE_MAX] and widened before accumulation. Resubmitting
        the same ciphertext counts again.

        Raises:
            InvalidInputProof, TypeMismatch: before any state is touched
        """
        subject = normalize_address(subject)
        caller = normalize_address(caller)

        try:
            imported = self.backend.verify_input(
                encrypted_score, input_proof, self.address, caller, SCORE_TYPE
            )
        except RatingNetError as e:
            audit_log.submission_rejected(self.address, subject, caller, e.code)
            raise
        contribution = self.backend.cast(self._clamp(imported), ACCUMULATOR_TYPE)

        with self._lock_for(subject):
            prior = self._stats.get(subject, Stats())
            prior_sum = prior.sum
            if prior_sum is None:
                prior_sum = self.backend.trivial_encrypt(0, ACCUMULATOR_TYPE)
            new_sum = self.backend.add(prior_sum, contribution)
            self.acl.allow_this(new_sum)
            committed = Stats(sum=new_sum, count=(prior.count + 1) % COUNT_MODULUS)
            self._stats[subject] = committed

        audit_log.rating_submitted(self.address, subject, caller, committed.count, new_sum.value)
        return committed

    def query_average(self, subject: str, caller: str) -> CiphertextHandle:
        """
        Encrypted floor(sum * AVERAGE_SCALE / count), or encrypted zero when
        the subject has no ratings.

        Grants `caller` decryption rights on the result and re-grants the
        engine its standing permission. This is a serialized transition on
        the subject, not a free read.
        """
        subject = normalize_address(subject)
        caller = normalize_address(caller)

        with self._lock_for(subject):
            stats = self._stats.get(subject, Stats())
            if stats.count == 0 or stats.sum is None:
                result = self.backend.trivial_encrypt(0, ACCUMULATOR_TYPE)
            else:
                scale = self.backend.trivial_encrypt(AVERAGE_SCALE, ACCUMULATOR_TYPE)
                scaled = self.backend.mul(stats.sum, scale)
                result = self.backend.div(scaled, stats.count)
            self.acl.allow_this(result)
            self.acl.allow(result, caller)

        audit_log.average_requested(self.address, subject, caller, stats.count, result.value)
        return result

    def query_sum(self, subject: str) -> Optional[CiphertextHandle]:
        """Current encrypted sum, or None if the subject was never rated."""
        return self._stats.get(normalize_address(subject), Stats()).sum

    def query_count(self, subject: str) -> int:
        return self._stats.get(normalize_address(subject), Stats()).count

    def stats(self, subject: str) -> Stats:
        return self._stats.get(normalize_address(subject), Stats())

    def subjects(self) -> List[str]:
        return sorted(self._stats)
