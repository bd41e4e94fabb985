"""
State-polling confirmation tests.

Run with: pytest tests/test_confirmation.py -v
"""

import asyncio

import pytest

from parrot.offchain.confirmation import (
    confirm_receipt,
    wait_for_balance_change,
    wait_for_nonce_advance,
)
from parrot.offchain.errors import ConfirmationTimeout, NetworkError
from parrot.offchain.ledger import OperationKind, SubmissionReceipt
from parrot.offchain.resilience import PollPolicy, wait_until


class Counter:
    """Probe whose value increases by one per read."""

    def __init__(self):
        self.reads = 0

    async def __call__(self):
        self.reads += 1
        return self.reads


class TestWaitUntil:

    def test_returns_first_satisfying_value(self):
        fetch = Counter()
        policy = PollPolicy(interval_seconds=0.0, timeout_seconds=1.0, max_polls=10)
        assert asyncio.run(wait_until(fetch, lambda v: v >= 3, policy)) == 3
        assert fetch.reads == 3

    def test_poll_budget(self):
        fetch = Counter()
        policy = PollPolicy(interval_seconds=0.0, timeout_seconds=5.0, max_polls=4)
        with pytest.raises(ConfirmationTimeout) as exc:
            asyncio.run(wait_until(fetch, lambda v: False, policy, what="never"))
        assert exc.value.polls == 4
        assert exc.value.last_value == 4
        assert "never" in str(exc.value)

    def test_wall_clock_budget(self):
        async def slow():
            await asyncio.sleep(1.0)
            return 0

        policy = PollPolicy(interval_seconds=0.0, timeout_seconds=0.05, max_polls=100)
        with pytest.raises(ConfirmationTimeout):
            asyncio.run(wait_until(slow, lambda v: True, policy))

    def test_fetch_errors_propagate(self):
        async def broken():
            raise NetworkError("query_nonce", "down")

        with pytest.raises(NetworkError):
            asyncio.run(wait_until(broken, lambda v: True, PollPolicy(interval_seconds=0.0)))

    @pytest.mark.parametrize("kwargs", [
        {"interval_seconds": -1},
        {"timeout_seconds": 0},
        {"max_polls": 0},
    ])
    def test_policy_bounds(self, kwargs):
        with pytest.raises(ValueError):
            PollPolicy(**kwargs)

    def test_policy_from_config(self):
        from parrot.offchain.config import get_config_manager

        get_config_manager().set("confirmation.max_polls", 7)
        assert PollPolicy.from_config().max_polls == 7


class TestLedgerConfirmation:

    def test_nonce_advance(self, ledger, keyring, fast_poll):
        alice, bob = keyring["Alice"], keyring["Bob"]

        async def scenario():
            await ledger.transfer(bob, alice.identity, 1)
            return await wait_for_nonce_advance(ledger, bob, 0, fast_poll)

        assert asyncio.run(scenario()) == 1

    def test_nonce_never_advances(self, ledger, keyring, fast_poll):
        with pytest.raises(ConfirmationTimeout):
            asyncio.run(wait_for_nonce_advance(ledger, keyring["Bob"], 0, fast_poll))

    def test_balance_change(self, ledger, keyring, fast_poll):
        alice, bob = keyring["Alice"], keyring["Bob"]

        async def scenario():
            before = await ledger.query_balance(bob.identity)
            await ledger.transfer(alice, bob.identity, 5)
            return before, await wait_for_balance_change(ledger, bob, before, policy=fast_poll)

        before, after = asyncio.run(scenario())
        assert after == before + 5

    def test_token_balance_change(self, ledger, keyring, fast_poll):
        alice, bob = keyring["Alice"], keyring["Bob"]

        async def scenario():
            token = await ledger.create_token(alice, 100)
            await ledger.transfer_token(alice, bob.identity, token, 40)
            return await wait_for_balance_change(ledger, bob, 0, token_id=token, policy=fast_poll)

        assert asyncio.run(scenario()) == 40

    def test_confirm_receipt_waits_on_signer(self, ledger, keyring, fast_poll):
        alice, bob = keyring["Alice"], keyring["Bob"]
        receipt = SubmissionReceipt(
            tx_hash="0x01",
            kind=OperationKind.DELEGATED_TRANSFER,
            signer=bob.identity,
            origin=alice.identity,
            nonce=0,
        )
        with pytest.raises(ConfirmationTimeout):
            asyncio.run(confirm_receipt(ledger, receipt, fast_poll))

        asyncio.run(ledger.transfer(bob, alice.identity, 1))
        assert asyncio.run(confirm_receipt(ledger, receipt, fast_poll)) == 1
