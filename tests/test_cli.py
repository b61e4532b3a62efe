"""
RatingNet CLI Test Suite
"""

import io
import json
import logging
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

from ratingnet.cli import main
from ratingnet.signature_cache import SqliteSignatureCache

from tests.support import address, make_grant


class TestCLI(unittest.TestCase):

    def setUp(self):
        root = logging.getLogger()
        self._handlers = root.handlers[:]
        self._level = root.level
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        root = logging.getLogger()
        root.handlers[:] = self._handlers
        root.setLevel(self._level)
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(list(argv))
        return code, out.getvalue()

    def test_format_average(self):
        code, out = self.run_cli("format-average", "366")
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), "3.66")

    def test_format_average_negative(self):
        code, _ = self.run_cli("format-average", "-5")
        self.assertEqual(code, 1)

    def test_keygen(self):
        code, out = self.run_cli("keygen")
        self.assertEqual(code, 0)
        identity = json.loads(out)
        self.assertTrue(identity["address"].startswith("0x"))
        self.assertEqual(len(identity["seed"]), 2 + 64)

    def test_keygen_to_file(self):
        path = os.path.join(self.tmpdir, "wallet.json")
        code, _ = self.run_cli("keygen", "-o", path)
        self.assertEqual(code, 0)
        with open(path) as f:
            self.assertIn("address", json.load(f))

    def test_cache_list_and_clear(self):
        path = os.path.join(self.tmpdir, "grants.db")
        cache = SqliteSignatureCache(path)
        cache.put(make_grant(address(0x01), [address(0xaa)]))
        cache.close()

        code, out = self.run_cli("cache", "list", "--path", path)
        self.assertEqual(code, 0)
        rows = json.loads(out)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["contract_addresses"], [address(0xaa)])
        self.assertIn(rows[0]["state"], ("GRANTED", "EXPIRED"))

        code, out = self.run_cli("cache", "clear", "--path", path)
        self.assertEqual(code, 0)
        self.assertIn("Removed 1", out)

    def test_demo(self):
        path = os.path.join(self.tmpdir, "demo.db")
        code, out = self.run_cli("demo", "--cache-path", path)
        self.assertEqual(code, 0)
        self.assertIn("Average: 4.00", out)
        self.assertIn("Denied: UNAUTHORIZED", out)

    def test_no_command(self):
        code, _ = self.run_cli()
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main()
