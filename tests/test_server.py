#!/usr/bin/env python3
"""
Observer API tests.

Usage:
    python -m pytest tests/test_server.py
"""

import sys
import os
import unittest

from eth_account import Account
from fastapi.testclient import TestClient

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from swapsig import __version__
from swapsig.chains.host import Host
from swapsig.devnet import DevnetConfig, build_devnet
from swapsig.server import create_app

T0 = 1_700_000_000


class TestServer(unittest.TestCase):

    def setUp(self):
        self.devnet = build_devnet(DevnetConfig(), host=Host(timestamp=T0))
        self.host = self.devnet.host
        self.client = TestClient(create_app(self.host))

        d = self.devnet
        self.alice = d.traders["alice"].address
        self.bob = d.traders["bob"].address
        self.host.transact(self.alice, d.token_a.address, "approve", d.ledger.address, 100)
        self.host.transact(self.bob, d.token_b.address, "approve", d.ledger.address, 50)
        self.swap_id = self.host.transact(
            self.alice, d.ledger.address, "initiate_swap",
            self.bob, d.token_a.address, d.token_b.address, 100, 50,
        )

    def test_status(self):
        r = self.client.get("/api/status")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["version"], __version__)
        self.assertEqual(body["timestamp"], T0)
        self.assertEqual(body["swaps_total"], 1)
        self.assertEqual(body["swaps_pending"], 1)
        self.assertEqual(body["queues"], 1)
        self.assertEqual(body["contracts"], 4)

    def test_swap_lifecycle(self):
        swap_hex = "0x" + self.swap_id.hex()
        r = self.client.get(f"/api/swap/{swap_hex}")
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.json()["executed"])
        self.assertEqual(r.json()["amount_x"], 100)

        self.host.transact(self.bob, self.devnet.ledger.address, "execute_swap", self.swap_id)
        r = self.client.get(f"/api/swap/{swap_hex}")
        self.assertTrue(r.json()["executed"])
        self.assertEqual(r.json()["executed_by"], self.bob)

        r = self.client.get("/api/swaps", params={"executed": "false"})
        self.assertEqual(r.json(), [])
        r = self.client.get("/api/swaps", params={"participant": self.alice})
        self.assertEqual(len(r.json()), 1)

    def test_swap_errors(self):
        self.assertEqual(self.client.get("/api/swap/0x1234").status_code, 400)
        self.assertEqual(self.client.get("/api/swap/0x" + "00" * 32).status_code, 404)

    def test_multisig(self):
        queue = self.devnet.queue
        s1, s2 = self.devnet.signers[0].address, self.devnet.signers[1].address
        target = Account.create().address
        self.host.transact(s1, queue.address, "queue_action", target, 0, b"\x01")
        self.host.transact(s1, queue.address, "queue_action", target, 0, b"\x02")
        self.host.transact(s2, queue.address, "execute_action", 0)

        r = self.client.get(f"/api/multisig/{queue.address}")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["quorum"], 2)
        self.assertEqual(len(body["signers"]), 3)
        self.assertEqual(body["actions_total"], 2)
        self.assertEqual(body["actions_pending"], 1)

        r = self.client.get(f"/api/multisig/{queue.address.lower()}/actions", params={"pending": "true"})
        [pending] = r.json()
        self.assertEqual(pending["index"], 1)
        self.assertEqual(pending["payload"], "0x02")

    def test_multisig_errors(self):
        self.assertEqual(self.client.get("/api/multisig/garbage").status_code, 400)
        unknown = Account.create().address
        self.assertEqual(self.client.get(f"/api/multisig/{unknown}").status_code, 404)
        self.assertEqual(self.client.get(f"/api/multisig/{unknown}/actions").status_code, 404)

    def test_events(self):
        r = self.client.get("/api/events", params={"event": "SwapProposed"})
        [entry] = r.json()
        self.assertEqual(entry["args"]["swap_id"], "0x" + self.swap_id.hex())
        self.assertEqual(entry["address"], self.devnet.ledger.address)

        r = self.client.get("/api/events", params={"address": self.devnet.token_a.address})
        self.assertTrue(r.json())
        self.assertTrue(all(e["address"] == self.devnet.token_a.address for e in r.json()))

        since = len(self.host.logs)
        self.assertEqual(self.client.get("/api/events", params={"since": since}).json(), [])
        self.assertEqual(self.client.get("/api/events", params={"address": "nope"}).status_code, 400)


if __name__ == "__main__":
    unittest.main()
