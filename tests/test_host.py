#!/usr/bin/env python3
"""
Execution host tests: ordering, all-or-nothing commits, nested call rollback,
payload dispatch and notification delivery.

Usage:
    python -m pytest tests/test_host.py
"""

import sys
import os
import unittest
from dataclasses import dataclass, field
from typing import List
from unittest.mock import MagicMock

from eth_account import Account

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from swapsig.core import InvalidParameters, LedgerError
from swapsig.chains.abi import encode_call, external
from swapsig.chains.erc20 import ERC20Token, InsufficientAllowance, InsufficientBalance
from swapsig.chains.host import CallContext, Contract, Host, InsufficientFunds

T0 = 1_700_000_000


@dataclass
class CounterState:
    count: int = 0
    seen: List[str] = field(default_factory=list)


class Counter(Contract):
    """Records calls; `boom` writes then fails."""

    def constructor(self, ctx: CallContext, start: int = 0):
        if start < 0:
            raise InvalidParameters("negative start")
        self.state = CounterState(count=start)

    @external("bump(uint256)")
    def bump(self, ctx: CallContext, by: int) -> int:
        self.state.count += by
        self.state.seen.append(ctx.sender)
        self.emit("Bumped", by=by, count=self.state.count)
        return self.state.count

    @external("boom()")
    def boom(self, ctx: CallContext):
        self.state.count += 1000
        self.emit("Bumped", by=1000, count=self.state.count)
        raise LedgerError("boom")

    def relay(self, ctx: CallContext, target: str, payload: bytes) -> bool:
        """Bump self, then low-level call target; keep going on failure."""
        self.state.count += 1
        return ctx.host.call(self.address, target, payload=payload).success

    def relay_strict(self, ctx: CallContext, target: str):
        self.state.count += 1
        ctx.host.invoke(self.address, target, "boom")

    def _hidden(self, ctx: CallContext):
        pass


class TestHostBasics(unittest.TestCase):

    def setUp(self):
        self.host = Host(timestamp=T0)
        self.alice = Account.create().address
        self.bob = Account.create().address

    def test_time(self):
        self.assertEqual(self.host.timestamp, T0)
        self.assertEqual(self.host.advance_time(60), T0 + 60)
        self.host.set_timestamp(T0 + 100)
        self.assertEqual(self.host.timestamp, T0 + 100)
        with self.assertRaises(ValueError):
            self.host.set_timestamp(T0)
        with self.assertRaises(ValueError):
            self.host.advance_time(-1)

    def test_deploy_addresses_are_deterministic(self):
        first = self.host.deploy(self.alice, Counter)
        second = self.host.deploy(self.alice, Counter)
        self.assertEqual(first.address, Host.compute_address(self.alice, 0))
        self.assertEqual(second.address, Host.compute_address(self.alice, 1))
        self.assertTrue(self.host.is_contract(first.address))
        self.assertIs(self.host.contract_at(first.address.lower()), first)
        self.assertEqual(len(self.host.contracts()), 2)

    def test_failed_deploy_leaves_nothing(self):
        with self.assertRaises(InvalidParameters):
            self.host.deploy(self.alice, Counter, -1)
        self.assertEqual(self.host.contracts(), [])
        self.assertFalse(self.host.is_contract(Host.compute_address(self.alice, 0)))
        # Nonce was not consumed
        counter = self.host.deploy(self.alice, Counter)
        self.assertEqual(counter.address, Host.compute_address(self.alice, 0))

    def test_contract_at_unknown(self):
        with self.assertRaises(InvalidParameters):
            self.host.contract_at(self.bob)

    def test_transact_commits_and_logs(self):
        counter = self.host.deploy(self.alice, Counter)
        block = self.host.block_number
        self.assertEqual(self.host.transact(self.bob, counter.address, "bump", 3), 3)
        self.assertEqual(counter.state.count, 3)
        self.assertEqual(counter.state.seen, [self.bob])
        self.assertEqual(self.host.block_number, block + 1)

        [entry] = self.host.get_logs(event="Bumped")
        self.assertEqual(entry.args, {"by": 3, "count": 3})
        self.assertEqual(entry.address, counter.address)
        self.assertEqual(entry.block_number, self.host.block_number)
        self.assertEqual(entry.timestamp, T0)

    def test_failed_transaction_reverts_everything(self):
        counter = self.host.deploy(self.alice, Counter, 5)
        logs_before = len(self.host.logs)
        block = self.host.block_number
        with self.assertRaises(LedgerError):
            self.host.transact(self.bob, counter.address, "boom")
        self.assertEqual(counter.state.count, 5)
        self.assertEqual(len(self.host.logs), logs_before)
        self.assertEqual(self.host.block_number, block)

    def test_private_and_missing_methods(self):
        counter = self.host.deploy(self.alice, Counter)
        with self.assertRaises(InvalidParameters):
            self.host.transact(self.bob, counter.address, "_hidden")
        with self.assertRaises(InvalidParameters):
            self.host.transact(self.bob, counter.address, "nope")

    def test_lifecycle_methods_not_callable(self):
        counter = self.host.deploy(self.alice, Counter, 5)
        for method, args in [
            ("constructor", (0,)),
            ("emit", ("Bumped",)),
            ("dispatch", (b"",)),
            ("receive", ()),
            ("external_methods", ()),
        ]:
            with self.assertRaises(InvalidParameters):
                self.host.transact(self.bob, counter.address, method, *args)
        self.assertEqual(counter.state.count, 5)
        self.assertEqual(self.host.logs, [])

    def test_token_cannot_be_reinitialized(self):
        token = self.host.deploy(self.alice, ERC20Token, "Token A", "TKA")
        with self.assertRaises(InvalidParameters):
            self.host.transact(self.bob, token.address, "constructor", "Mine", "MINE")
        with self.assertRaises(LedgerError):
            self.host.transact(self.bob, token.address, "mint", self.bob, 1_000_000)
        self.assertEqual(token.balance_of(self.bob), 0)
        self.assertEqual(token.symbol, "TKA")

    def test_emit_outside_transaction(self):
        counter = self.host.deploy(self.alice, Counter)
        with self.assertRaises(RuntimeError):
            counter.emit("Stray")


class TestNestedCalls(unittest.TestCase):

    def setUp(self):
        self.host = Host(timestamp=T0)
        self.alice = Account.create().address
        self.relay = self.host.deploy(self.alice, Counter)
        self.target = self.host.deploy(self.alice, Counter)

    def test_low_level_failure_reverts_only_callee(self):
        ok = self.host.transact(self.alice, self.relay.address, "relay",
                                self.target.address, encode_call("boom()"))
        self.assertFalse(ok)
        self.assertEqual(self.relay.state.count, 1)
        self.assertEqual(self.target.state.count, 0)
        self.assertEqual(self.host.get_logs(event="Bumped"), [])

    def test_low_level_success(self):
        ok = self.host.transact(self.alice, self.relay.address, "relay",
                                self.target.address, encode_call("bump(uint256)", [7]))
        self.assertTrue(ok)
        self.assertEqual(self.target.state.count, 7)
        self.assertEqual(self.target.state.seen, [self.relay.address])

    def test_unknown_selector_and_garbage(self):
        self.assertFalse(self.host.transact(self.alice, self.relay.address, "relay",
                                            self.target.address, b"\xde\xad\xbe\xef"))
        self.assertFalse(self.host.transact(self.alice, self.relay.address, "relay",
                                            self.target.address, b"\x01"))
        # Selector right, arguments truncated
        payload = encode_call("bump(uint256)", [1])[:10]
        self.assertFalse(self.host.transact(self.alice, self.relay.address, "relay",
                                            self.target.address, payload))
        self.assertEqual(self.target.state.count, 0)

    def test_call_to_plain_account_succeeds(self):
        self.assertTrue(self.host.transact(self.alice, self.relay.address, "relay",
                                           Account.create().address, b""))

    def test_typed_failure_propagates_and_reverts_all(self):
        with self.assertRaises(LedgerError):
            self.host.transact(self.alice, self.relay.address, "relay_strict", self.target.address)
        self.assertEqual(self.relay.state.count, 0)
        self.assertEqual(self.target.state.count, 0)


class TestValueTransfers(unittest.TestCase):

    def setUp(self):
        self.host = Host(timestamp=T0)
        self.alice = Account.create().address
        self.bob = Account.create().address
        self.host.fund(self.alice, 1_000)

    def test_send_to_account(self):
        self.host.send_transaction(self.alice, self.bob, value=400)
        self.assertEqual(self.host.balance_of(self.alice), 600)
        self.assertEqual(self.host.balance_of(self.bob), 400)

    def test_insufficient_funds(self):
        with self.assertRaises(InsufficientFunds):
            self.host.send_transaction(self.alice, self.bob, value=1_001)
        self.assertEqual(self.host.balance_of(self.alice), 1_000)

    def test_contract_refusing_value_reverts_transfer(self):
        counter = self.host.deploy(self.alice, Counter)
        with self.assertRaises(LedgerError):
            self.host.send_transaction(self.alice, counter.address, value=10)
        self.assertEqual(self.host.balance_of(counter.address), 0)
        self.assertEqual(self.host.balance_of(self.alice), 1_000)

    def test_payload_transaction(self):
        counter = self.host.deploy(self.alice, Counter)
        result = self.host.send_transaction(self.alice, counter.address,
                                            data=encode_call("bump(uint256)", [2]))
        self.assertEqual(result, 2)


class TestSubscribers(unittest.TestCase):

    def setUp(self):
        self.host = Host(timestamp=T0)
        self.alice = Account.create().address
        self.counter = self.host.deploy(self.alice, Counter)

    def test_delivery_and_filters(self):
        everything = MagicMock()
        bumped = MagicMock()
        elsewhere = MagicMock()
        self.host.subscribe(everything)
        self.host.subscribe(bumped, event="Bumped", address=self.counter.address)
        self.host.subscribe(elsewhere, address=Account.create().address)

        self.host.transact(self.alice, self.counter.address, "bump", 1)
        self.assertEqual(everything.call_count, 1)
        self.assertEqual(bumped.call_args[0][0].args["count"], 1)
        elsewhere.assert_not_called()

    def test_not_notified_on_revert(self):
        callback = MagicMock()
        self.host.subscribe(callback)
        with self.assertRaises(LedgerError):
            self.host.transact(self.alice, self.counter.address, "boom")
        callback.assert_not_called()

    def test_unsubscribe(self):
        callback = MagicMock()
        unsubscribe = self.host.subscribe(callback)
        unsubscribe()
        self.host.transact(self.alice, self.counter.address, "bump", 1)
        callback.assert_not_called()

    def test_failing_subscriber_does_not_undo_commit(self):
        bad = MagicMock(side_effect=RuntimeError("subscriber bug"))
        good = MagicMock()
        self.host.subscribe(bad)
        self.host.subscribe(good)
        self.host.transact(self.alice, self.counter.address, "bump", 4)
        self.assertEqual(self.counter.state.count, 4)
        good.assert_called_once()

    def test_delivery_follows_log_order(self):
        seen = []

        def chain(n):
            if n.args["count"] < 3:
                self.host.transact(self.alice, self.counter.address, "bump", 1)

        self.host.subscribe(chain, event="Bumped")
        self.host.subscribe(lambda n: seen.append(n.args["count"]), event="Bumped")
        self.host.transact(self.alice, self.counter.address, "bump", 1)
        self.assertEqual(seen, [1, 2, 3])
        self.assertEqual(self.counter.state.count, 3)

    def test_get_logs_from_index(self):
        self.host.transact(self.alice, self.counter.address, "bump", 1)
        self.host.transact(self.alice, self.counter.address, "bump", 1)
        logs = self.host.get_logs()
        self.assertEqual([n.log_index for n in logs], list(range(len(logs))))
        self.assertEqual(len(self.host.get_logs(from_index=len(logs) - 1)), 1)


class TestERC20(unittest.TestCase):

    def setUp(self):
        self.host = Host(timestamp=T0)
        self.owner = Account.create().address
        self.alice = Account.create().address
        self.bob = Account.create().address
        self.token = self.host.deploy(self.owner, ERC20Token, "Token A", "TKA")
        self.host.transact(self.owner, self.token.address, "mint", self.alice, 100)

    def test_mint_only_owner(self):
        with self.assertRaises(LedgerError):
            self.host.transact(self.alice, self.token.address, "mint", self.alice, 1)
        self.assertEqual(self.token.total_supply(), 100)

    def test_transfer(self):
        self.host.transact(self.alice, self.token.address, "transfer", self.bob, 30)
        self.assertEqual(self.token.balance_of(self.alice), 70)
        self.assertEqual(self.token.balance_of(self.bob), 30)
        with self.assertRaises(InsufficientBalance):
            self.host.transact(self.bob, self.token.address, "transfer", self.alice, 31)

    def test_transfer_from(self):
        self.host.transact(self.alice, self.token.address, "approve", self.bob, 50)
        self.host.transact(self.bob, self.token.address, "transfer_from", self.alice, self.bob, 20)
        self.assertEqual(self.token.allowance(self.alice, self.bob), 30)
        self.assertEqual(self.token.balance_of(self.bob), 20)
        with self.assertRaises(InsufficientAllowance):
            self.host.transact(self.bob, self.token.address, "transfer_from", self.alice, self.bob, 31)
        self.assertEqual(self.token.allowance(self.alice, self.bob), 30)


if __name__ == "__main__":
    unittest.main()
