"""
RatingNet Typed Data and Signing Test Suite

Grant messages are schema-checked, signatures recover to the signer's address,
and interactive signing ends in exactly one of SIGNED or DECLINED.
"""

import threading
import unittest

from ratingnet.signer import (
    InteractiveSigner,
    SigningOutcome,
    Wallet,
    derive_address,
    recover_signer,
    verify_structured_signature,
)
from ratingnet.typed_data import PRIMARY_TYPE, TypedMessage, build_user_decrypt_message

from tests.support import address

PUBLIC_KEY = "0x" + "ab" * 32


def _message(duration_days=365, contracts=None):
    return build_user_decrypt_message(
        public_key=PUBLIC_KEY,
        contract_addresses=contracts or [address(0xaa)],
        start_timestamp=1_700_000_000,
        duration_days=duration_days,
        chain_id=31337,
        verifying_contract=address(0xee),
    )


class TestTypedMessage(unittest.TestCase):

    def test_domain_and_primary_type(self):
        d = _message().to_dict()
        self.assertEqual(d["primaryType"], PRIMARY_TYPE)
        self.assertEqual(d["domain"]["name"], "Decryption")
        self.assertEqual(d["domain"]["version"], "1")
        self.assertEqual(d["message"]["extraData"], "0x00")

    def test_digest_is_stable(self):
        self.assertEqual(_message().digest(), _message().digest())
        self.assertEqual(TypedMessage.from_dict(_message().to_dict()).digest(), _message().digest())

    def test_digest_covers_every_field(self):
        self.assertNotEqual(_message().digest(), _message(duration_days=30).digest())
        self.assertNotEqual(_message().digest(), _message(contracts=[address(0xbb)]).digest())

    def test_schema_violations_rejected(self):
        with self.assertRaises(ValueError):
            _message(duration_days=-1)
        with self.assertRaises(ValueError):
            build_user_decrypt_message("nothex", [address(0xaa)], 0, 1, 31337, address(0xee))
        with self.assertRaises(ValueError):
            TypedMessage(domain=_message().domain, message={"publicKey": PUBLIC_KEY})


class TestWallet(unittest.TestCase):

    def test_address_derivation(self):
        wallet = Wallet(b"\x01" * 32)
        self.assertEqual(wallet.address, Wallet(b"\x01" * 32).address)
        self.assertEqual(wallet.address, derive_address(wallet.verify_key))
        self.assertEqual(len(wallet.address), 42)

    def test_signature_recovers_signer(self):
        wallet = Wallet.generate()
        result = wallet.sign_structured(_message())
        self.assertTrue(result.signed())
        self.assertEqual(recover_signer(_message(), result.signature), wallet.address)
        self.assertTrue(verify_structured_signature(_message(), result.signature, wallet.address.upper().replace("0X", "0x")))

    def test_signature_does_not_transfer_to_other_message(self):
        wallet = Wallet.generate()
        signature = wallet.sign_structured(_message()).signature
        self.assertIsNone(recover_signer(_message(duration_days=30), signature))

    def test_signature_does_not_verify_for_other_address(self):
        signature = Wallet.generate().sign_structured(_message()).signature
        self.assertFalse(verify_structured_signature(_message(), signature, Wallet.generate().address))

    def test_malformed_signatures(self):
        for bad in ("", "0x", "0x1234", "zz", "0x" + "00" * 96):
            with self.subTest(signature=bad):
                self.assertIsNone(recover_signer(_message(), bad))


class TestInteractiveSigner(unittest.TestCase):

    def setUp(self):
        self.wallet = Wallet.generate()
        self.signer = InteractiveSigner(self.wallet)
        self.results = []

    def _sign_in_background(self):
        t = threading.Thread(target=lambda: self.results.append(self.signer.sign_structured(_message())))
        t.start()
        return t

    def test_approve(self):
        t = self._sign_in_background()
        request = self.signer.wait_for_request()
        self.signer.approve(request.request_id)
        t.join(timeout=5)
        self.assertEqual(self.results[0].outcome, SigningOutcome.SIGNED)
        self.assertEqual(recover_signer(_message(), self.results[0].signature), self.wallet.address)
        self.assertEqual(self.signer.pending(), [])

    def test_decline(self):
        t = self._sign_in_background()
        request = self.signer.wait_for_request()
        self.signer.decline(request.request_id)
        t.join(timeout=5)
        self.assertEqual(self.results[0].outcome, SigningOutcome.DECLINED)
        self.assertIsNone(self.results[0].signature)

    def test_unknown_request(self):
        with self.assertRaises(KeyError):
            self.signer.approve("missing")

    def test_address_is_wallet_address(self):
        self.assertEqual(self.signer.address, self.wallet.address)


if __name__ == "__main__":
    unittest.main()
