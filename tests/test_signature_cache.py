"""
RatingNet Signature Cache Test Suite

The same contract runs against the in-memory and SQLite caches.
"""

import os
import shutil
import tempfile
import threading
import unittest

from ratingnet.signature_cache import InMemorySignatureCache, SqliteSignatureCache

from tests.support import address, make_grant

USER = address(0x01)
A = address(0xaa)
B = address(0xbb)


class SignatureCacheContract:
    """Mixin: subclasses provide `make_cache()`."""

    def make_cache(self):
        raise NotImplementedError

    def stored_count(self):
        raise NotImplementedError

    def setUp(self):
        self.cache = self.make_cache()

    def test_missing_key(self):
        self.assertIsNone(self.cache.get(USER, [A]))

    def test_put_and_get(self):
        grant = make_grant(USER, [A])
        self.cache.put(grant)
        self.assertEqual(self.cache.get(USER, [A]), grant)

    def test_key_ignores_contract_order_and_case(self):
        grant = make_grant(USER, [A, B])
        self.cache.put(grant)
        self.assertEqual(self.cache.get(USER, [B.upper().replace("0X", "0x"), A]), grant)
        self.assertIsNone(self.cache.get(USER, [A]))

    def test_lookup_by_public_key(self):
        older = make_grant(USER, [A], tag=1)
        newer = make_grant(USER, [A], tag=3)
        self.cache.put(older)
        self.cache.put(newer)
        self.assertEqual(self.cache.get(USER, [A]), newer)
        self.assertEqual(self.cache.get(USER, [A], public_key=newer.public_key), newer)
        self.assertIsNone(self.cache.get(USER, [A], public_key=older.public_key))

    def test_renewals_do_not_accumulate_entries(self):
        for i in range(5):
            self.cache.put(make_grant(USER, [A], tag=2 * i + 1))
        self.assertEqual(self.stored_count(), 2)
        self.cache.put(make_grant(USER, [A], tag=9))
        self.assertEqual(self.stored_count(), 2)
        self.assertEqual(self.cache.remove(USER, [A]), 2)
        self.assertEqual(self.stored_count(), 0)

    def test_last_writer_wins(self):
        grants = [make_grant(USER, [A], tag=2 * i + 1) for i in range(8)]
        threads = [threading.Thread(target=self.cache.put, args=(g,)) for g in grants]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertIn(self.cache.get(USER, [A]), grants)
        self.assertEqual(len(self.cache.entries()), 1)
        self.assertEqual(self.stored_count(), 2)

    def test_remove(self):
        grant = make_grant(USER, [A])
        self.cache.put(grant)
        self.assertEqual(self.cache.remove(USER, [A]), 2)
        self.assertIsNone(self.cache.get(USER, [A]))
        self.assertIsNone(self.cache.get(USER, [A], public_key=grant.public_key))

    def test_clear(self):
        self.cache.put(make_grant(USER, [A]))
        self.cache.put(make_grant(USER, [B], tag=5))
        self.assertEqual(len(self.cache.entries()), 2)
        self.assertEqual(self.cache.clear(), 2)
        self.assertEqual(self.cache.entries(), [])
        self.assertIsNone(self.cache.get(USER, [B], public_key=make_grant(USER, [B], tag=5).public_key))


class TestInMemorySignatureCache(SignatureCacheContract, unittest.TestCase):

    def make_cache(self):
        return InMemorySignatureCache()

    def stored_count(self):
        return len(self.cache._grants)


class TestSqliteSignatureCache(SignatureCacheContract, unittest.TestCase):

    def make_cache(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "cache", "grants.db")
        return SqliteSignatureCache(self.path)

    def stored_count(self):
        return self.cache._connection().execute("SELECT COUNT(*) FROM grants").fetchone()[0]

    def tearDown(self):
        self.cache.close()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_persists_across_instances(self):
        grant = make_grant(USER, [A])
        self.cache.put(grant)
        reopened = SqliteSignatureCache(self.path)
        try:
            restored = reopened.get(USER, [A])
        finally:
            reopened.close()
        self.assertEqual(restored, grant)
        self.assertEqual(restored.private_key, grant.private_key)


if __name__ == "__main__":
    unittest.main()
