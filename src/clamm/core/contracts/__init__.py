"""
clamm Token Contracts.

In-process fungible token implementation used as the pool's asset interface:
- ERC20: balances, transfers, allowances and minting
"""

from .erc20 import ERC20Token, TokenEvent

__all__ = [
    "ERC20Token",
    "TokenEvent",
]
