"""Shared fixtures for the RatingNet test suite."""

from ratingnet.grants import Grant
from ratingnet.signer import Wallet

NOW = 1_700_000_000.0


class FakeClock:
    """Settable clock usable wherever a `clock` callable is accepted."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingWallet(Wallet):
    """Wallet that records how many grant messages it signed."""

    def __init__(self, seed=None):
        super().__init__(seed)
        self.signed = 0

    def sign_structured(self, message):
        self.signed += 1
        return super().sign_structured(message)


def address(n: int) -> str:
    return "0x" + f"{n:02x}" * 20


def make_grant(user: str, contracts, start: int = int(NOW), duration_days: int = 365, tag: int = 1) -> Grant:
    return Grant(
        user_address=user,
        contract_addresses=tuple(sorted(c.lower() for c in contracts)),
        start_timestamp=start,
        duration_days=duration_days,
        public_key="0x" + f"{tag:02x}" * 32,
        private_key="0x" + f"{tag + 1:02x}" * 32,
        signature="0x" + "cd" * 96,
        chain_id=31337,
        verifying_contract=address(0xee),
    )
