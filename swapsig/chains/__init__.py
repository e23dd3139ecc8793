"""
Execution environment for swapsig contracts.

- host: serialized, all-or-nothing transactions and notifications
- abi: payload selectors and argument encoding
- erc20: fungible asset collaborator
"""

from .host import Host, Contract, CallContext, CallResult
from .erc20 import ERC20Token

__all__ = ["Host", "Contract", "CallContext", "CallResult", "ERC20Token"]
