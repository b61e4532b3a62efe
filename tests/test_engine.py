"""
RatingNet Aggregation Engine Test Suite

Critical invariants tested:
    Every contribution is clamped into [1, 5] on ciphertexts
    sum and count always move together
    count wraps to 0 after 2**32 - 1 without error
"""

import threading
import unittest
from unittest import mock

from ratingnet.acl import ACLManager
from ratingnet.engine import COUNT_MODULUS, RatingEngine, Stats
from ratingnet.errors import InvalidInputProof, TypeMismatch
from ratingnet.fhe import FheType, MockCoprocessor

from tests.support import address

RATER = address(0x01)
VIEWER = address(0x02)
SUBJECT = address(0x50)


class EngineTestCase(unittest.TestCase):

    def setUp(self):
        self.cop = MockCoprocessor()
        self.acl = ACLManager()
        self.engine = RatingEngine(self.cop, self.acl)

    def _encrypt(self, score, user=RATER):
        batch = self.cop.create_encrypted_input(self.engine.address, user).add8(score).encrypt()
        return batch.handles[0], batch.input_proof

    def _submit(self, score, subject=SUBJECT, user=RATER):
        handle, proof = self._encrypt(score, user)
        return self.engine.submit(subject, handle, proof, caller=user)

    def _sum(self, subject=SUBJECT):
        return self.cop.plaintext(self.engine.query_sum(subject))

    def _average(self, subject=SUBJECT, caller=VIEWER):
        return self.cop.plaintext(self.engine.query_average(subject, caller=caller))


class TestSubmission(EngineTestCase):

    def test_clamps_every_raw_byte(self):
        for raw, expected in ((0, 1), (1, 1), (3, 3), (5, 5), (6, 5), (255, 5)):
            subject = address(0x60 + raw % 0x40)
            with self.subTest(raw=raw):
                self._submit(raw, subject=subject)
                self.assertEqual(self._sum(subject), expected)
                self.assertEqual(self.engine.query_count(subject), 1)

    def test_sum_and_count_after_n_submissions(self):
        for score in (4, 5, 3, 9, 0):
            self._submit(score)
        self.assertEqual(self.engine.query_count(SUBJECT), 5)
        self.assertEqual(self._sum(), 4 + 5 + 3 + 5 + 1)

    def test_sum_is_accumulator_width(self):
        self._submit(4)
        self.assertEqual(self.engine.query_sum(SUBJECT).fhe_type, FheType.EUINT32)

    def test_resubmitting_same_ciphertext_counts_again(self):
        handle, proof = self._encrypt(4)
        self.engine.submit(SUBJECT, handle, proof, caller=RATER)
        self.engine.submit(SUBJECT, handle, proof, caller=RATER)
        self.assertEqual(self.engine.query_count(SUBJECT), 2)
        self.assertEqual(self._sum(), 8)

    def test_never_rated_subject(self):
        self.assertIsNone(self.engine.query_sum(SUBJECT))
        self.assertEqual(self.engine.query_count(SUBJECT), 0)
        self.assertEqual(self.engine.stats(SUBJECT), Stats())

    def test_invalid_proof_leaves_state_untouched(self):
        self._submit(4)
        handle, proof = self._encrypt(5)
        with self.assertRaises(InvalidInputProof):
            self.engine.submit(SUBJECT, handle, b'{"handles":[],"signature":""}', caller=RATER)
        self.assertEqual(self.engine.query_count(SUBJECT), 1)
        self.assertEqual(self._sum(), 4)

    def test_proof_for_other_caller_rejected(self):
        handle, proof = self._encrypt(4, user=RATER)
        with self.assertRaises(InvalidInputProof):
            self.engine.submit(SUBJECT, handle, proof, caller=VIEWER)
        self.assertEqual(self.engine.query_count(SUBJECT), 0)

    def test_wrong_score_type_rejected(self):
        batch = self.cop.create_encrypted_input(self.engine.address, RATER).add32(4).encrypt()
        with self.assertRaises(TypeMismatch):
            self.engine.submit(SUBJECT, batch.handles[0], batch.input_proof, caller=RATER)
        self.assertIsNone(self.engine.query_sum(SUBJECT))

    def test_failed_permission_grant_commits_nothing(self):
        self._submit(4)
        before = self.engine.stats(SUBJECT)
        with mock.patch.object(self.engine.acl, "allow_this", side_effect=RuntimeError("acl down")):
            with self.assertRaises(RuntimeError):
                self._submit(5)
        self.assertEqual(self.engine.stats(SUBJECT), before)

    def test_engine_keeps_permission_on_sum(self):
        self._submit(4)
        running_sum = self.engine.query_sum(SUBJECT)
        self.assertTrue(self.acl.is_allowed(running_sum, self.engine.address))
        self.assertFalse(self.acl.is_allowed(running_sum, RATER))

    def test_count_wraps_to_zero(self):
        self.engine._stats[SUBJECT] = Stats(
            sum=self.cop.trivial_encrypt(10, FheType.EUINT32), count=COUNT_MODULUS - 1
        )
        stats = self._submit(3)
        self.assertEqual(stats.count, 0)
        self.assertEqual(self._sum(), 13)
        self.assertEqual(self._average(), 0)

    def test_submission_is_audited(self):
        with self.assertLogs("ratingnet.audit", level="INFO") as logs:
            self._submit(4)
        self.assertTrue(any("RATING_SUBMITTED" in line for line in logs.output))

    def test_rejection_is_audited(self):
        handle, proof = self._encrypt(4)
        with self.assertLogs("ratingnet.audit", level="WARNING") as logs:
            with self.assertRaises(InvalidInputProof):
                self.engine.submit(SUBJECT, handle, proof, caller=VIEWER)
        self.assertTrue(any("SUBMISSION_REJECTED" in line for line in logs.output))


class TestAverage(EngineTestCase):

    def test_average_of_no_ratings_is_zero(self):
        self.assertEqual(self._average(), 0)

    def test_exact_average(self):
        for score in (4, 5, 3):
            self._submit(score)
        self.assertEqual(self._average(), 400)

    def test_average_is_floored(self):
        for score in (4, 4, 3):
            self._submit(score)
        self.assertEqual(self._average(), 366)

    def test_repeated_averages_are_identical(self):
        for score in (5, 2):
            self._submit(score)
        first = self.engine.query_average(SUBJECT, caller=VIEWER)
        second = self.engine.query_average(SUBJECT, caller=VIEWER)
        self.assertEqual(self.cop.plaintext(first), self.cop.plaintext(second))
        self.assertEqual(self.engine.query_count(SUBJECT), 2)

    def test_average_grants_caller_and_engine(self):
        self._submit(4)
        result = self.engine.query_average(SUBJECT, caller=VIEWER)
        self.assertTrue(self.acl.is_allowed(result, VIEWER))
        self.assertTrue(self.acl.is_allowed(result, self.engine.address))
        self.assertFalse(self.acl.is_allowed(result, RATER))

    def test_zero_average_is_also_granted(self):
        result = self.engine.query_average(SUBJECT, caller=VIEWER)
        self.assertTrue(self.acl.is_allowed(result, VIEWER))


class TestConcurrency(EngineTestCase):

    def test_same_subject_submissions_serialize(self):
        inputs = [self._encrypt(5) for _ in range(40)]
        threads = [
            threading.Thread(target=self.engine.submit, args=(SUBJECT, h, p), kwargs={"caller": RATER})
            for h, p in inputs
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(self.engine.query_count(SUBJECT), 40)
        self.assertEqual(self._sum(), 200)

    def test_subjects_are_independent(self):
        a, b = address(0x51), address(0x52)

        def rate(subject, score, n):
            for _ in range(n):
                self._submit(score, subject=subject)

        threads = [
            threading.Thread(target=rate, args=(a, 2, 25)),
            threading.Thread(target=rate, args=(b, 4, 15)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(self.engine.query_count(a), 25)
        self.assertEqual(self.engine.query_count(b), 15)
        self.assertEqual(self._average(a), 200)
        self.assertEqual(self._average(b), 400)
        self.assertEqual(self.engine.subjects(), sorted([a, b]))


if __name__ == "__main__":
    unittest.main()
