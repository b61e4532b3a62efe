"""
RatingNet Error Taxonomy and Logging Test Suite
"""

import json
import logging
import unittest

from ratingnet.errors import (
    ErrorKind,
    GrantExpired,
    InvalidInputProof,
    MalformedOracleResponse,
    OracleUnavailable,
    SignatureDeclined,
    error_from_dict,
)
from ratingnet.logging_config import StructuredFormatter, audit_log, set_request_id


class TestErrors(unittest.TestCase):

    def test_kinds_and_retry(self):
        self.assertEqual(InvalidInputProof("x").kind, ErrorKind.INPUT_VALIDATION)
        self.assertEqual(SignatureDeclined("x").kind, ErrorKind.AUTHORIZATION)
        self.assertFalse(GrantExpired("x").retryable)
        self.assertTrue(OracleUnavailable("x").retryable)

    def test_problem_round_trip(self):
        original = GrantExpired("late", {"expired_at": 10})
        rebuilt = error_from_dict(original.to_dict())
        self.assertIsInstance(rebuilt, GrantExpired)
        self.assertEqual(rebuilt.message, "late")
        self.assertEqual(rebuilt.details, {"expired_at": 10})

    def test_unknown_code(self):
        self.assertIsInstance(error_from_dict({"code": "NOPE"}), MalformedOracleResponse)

    def test_details_omitted_when_empty(self):
        self.assertNotIn("details", OracleUnavailable("down").to_dict())


class TestStructuredLogging(unittest.TestCase):

    def test_audit_record_is_json_with_event_fields(self):
        formatter = StructuredFormatter()
        set_request_id("req-42")
        try:
            with self.assertLogs("ratingnet.audit", level="INFO") as logs:
                audit_log.decrypt_request("0x" + "01" * 20, ["0x" + "00" * 32])
        finally:
            set_request_id("")
        payload = json.loads(formatter.format(logs.records[0]))
        self.assertEqual(payload["event_type"], "DECRYPT_REQUEST")
        self.assertEqual(payload["request_id"], "req-42")
        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["handles"], ["0x" + "00" * 32])

    def test_debug_events_skipped_when_disabled(self):
        logger = logging.getLogger("ratingnet.audit")
        with self.assertLogs("ratingnet.audit", level="INFO") as logs:
            audit_log.grant_reused("0x" + "01" * 20, [])
            logger.info("marker")
        self.assertEqual(len(logs.records), 1)


if __name__ == "__main__":
    unittest.main()
