#!/usr/bin/env python3
"""
Example: OTC swap and a multisig payout on a local devnet

1. Alice and Bob approve the swap ledger on their tokens
2. Alice proposes 100 TKA for 50 TKB
3. Bob executes; both legs settle in one transaction
4. A queue signer queues a TKA payout from the multisig
5. Another signer executes it; a second execution is rejected

Usage:
    python examples/otc_swap.py
"""

import sys
import logging
from pathlib import Path

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from swapsig import AlreadyExecuted, encode_call
from swapsig.devnet import DevnetConfig, build_devnet

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)


def main():
    devnet = build_devnet(DevnetConfig.from_env())
    host = devnet.host
    alice = devnet.traders["alice"].address
    bob = devnet.traders["bob"].address
    token_a, token_b, ledger = devnet.token_a, devnet.token_b, devnet.ledger

    # =================================================================
    # Swap
    # =================================================================
    host.transact(alice, token_a.address, "approve", ledger.address, 100)
    host.transact(bob, token_b.address, "approve", ledger.address, 50)

    swap_id = host.transact(
        alice, ledger.address, "initiate_swap",
        bob, token_a.address, token_b.address, 100, 50,
    )
    log.info(f"Proposed swap 0x{swap_id.hex()}")

    host.transact(bob, ledger.address, "execute_swap", swap_id)
    log.info(f"Bob:   {token_a.balance_of(bob)} TKA")
    log.info(f"Alice: {token_b.balance_of(alice)} TKB")

    # =================================================================
    # Multisig payout
    # =================================================================
    queue = devnet.queue
    s1, s2, s3 = [s.address for s in devnet.signers[:3]]

    host.transact(alice, token_a.address, "transfer", queue.address, 1_000)
    payload = encode_call("transfer(address,uint256)", [bob, 250])
    index = host.transact(s1, queue.address, "queue_action", token_a.address, 0, payload)
    log.info(f"Queued action #{index}")

    host.transact(s2, queue.address, "execute_action", index)
    log.info(f"Bob after payout: {token_a.balance_of(bob)} TKA")

    try:
        host.transact(s3, queue.address, "execute_action", index)
    except AlreadyExecuted as e:
        log.info(f"Replay rejected: {e.code}")

    for n in host.get_logs():
        log.info(f"  [{n.log_index}] {n.event} @ {n.address[:10]}")


if __name__ == "__main__":
    main()
