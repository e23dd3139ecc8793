"""
Local devnet bootstrap.

Builds a Host with funded accounts, two test assets, a swap ledger and an
action queue, configured from the environment:

    SWAPSIG_SIGNERS      number of queue signers (default 3)
    SWAPSIG_QUORUM       queue quorum (default 2)
    SWAPSIG_SWAP_TTL     seconds until the swap ledger expires (default 86400)
    SWAPSIG_MAX_SIGNERS  signer set capacity (default 20)
    SWAPSIG_MAX_QUEUE    action queue capacity (default 100)
    SWAPSIG_LOG_LEVEL    logging level for entry points (default INFO)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .core import MAX_QUEUE_LENGTH, MAX_SIGNERS
from .chains.erc20 import ERC20Token
from .chains.host import Host
from .multisig.queue import QueueConfig, ThresholdActionQueue
from .swap.ledger import SwapLedger

log = logging.getLogger(__name__)

# Initial balances
DEVNET_TOKEN_SUPPLY = 1_000_000 * 10**18
DEVNET_NATIVE_BALANCE = 100 * 10**18


@dataclass
class DevnetConfig:
    """Devnet parameters."""
    signers: int = 3
    quorum: int = 2
    swap_ttl: int = 24 * 3600
    max_signers: int = MAX_SIGNERS
    max_queue_length: int = MAX_QUEUE_LENGTH
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "DevnetConfig":
        return cls(
            signers=int(os.environ.get("SWAPSIG_SIGNERS", 3)),
            quorum=int(os.environ.get("SWAPSIG_QUORUM", 2)),
            swap_ttl=int(os.environ.get("SWAPSIG_SWAP_TTL", 24 * 3600)),
            max_signers=int(os.environ.get("SWAPSIG_MAX_SIGNERS", MAX_SIGNERS)),
            max_queue_length=int(os.environ.get("SWAPSIG_MAX_QUEUE", MAX_QUEUE_LENGTH)),
            log_level=os.environ.get("SWAPSIG_LOG_LEVEL", "INFO"),
        )


@dataclass
class Devnet:
    """Everything deployed by build_devnet()."""
    host: Host
    deployer: LocalAccount
    signers: List[LocalAccount]
    traders: Dict[str, LocalAccount]
    token_a: ERC20Token
    token_b: ERC20Token
    ledger: SwapLedger
    queue: ThresholdActionQueue
    accounts: Dict[str, LocalAccount] = field(default_factory=dict)


def build_devnet(config: Optional[DevnetConfig] = None, host: Optional[Host] = None) -> Devnet:
    """
    Deploy a ready-to-use environment.

    Alice holds token A, Bob holds token B; every account has native balance.
    """
    config = config or DevnetConfig()
    host = host or Host()

    deployer = Account.create()
    signers = [Account.create() for _ in range(config.signers)]
    traders = {"alice": Account.create(), "bob": Account.create()}

    for account in [deployer, *signers, *traders.values()]:
        host.fund(account.address, DEVNET_NATIVE_BALANCE)

    token_a = host.deploy(deployer.address, ERC20Token, "Token A", "TKA")
    token_b = host.deploy(deployer.address, ERC20Token, "Token B", "TKB")
    host.transact(deployer.address, token_a.address, "mint", traders["alice"].address, DEVNET_TOKEN_SUPPLY)
    host.transact(deployer.address, token_b.address, "mint", traders["bob"].address, DEVNET_TOKEN_SUPPLY)

    ledger = host.deploy(deployer.address, SwapLedger, host.timestamp + config.swap_ttl)
    queue = host.deploy(
        deployer.address,
        ThresholdActionQueue,
        [s.address for s in signers],
        config.quorum,
        QueueConfig(max_signers=config.max_signers, max_queue_length=config.max_queue_length),
    )

    accounts = {"deployer": deployer, **traders}
    for i, signer in enumerate(signers, start=1):
        accounts[f"signer{i}"] = signer

    log.info(f"Devnet ready: ledger={ledger.address} queue={queue.address}")
    return Devnet(
        host=host,
        deployer=deployer,
        signers=signers,
        traders=traders,
        token_a=token_a,
        token_b=token_b,
        ledger=ledger,
        queue=queue,
        accounts=accounts,
    )
