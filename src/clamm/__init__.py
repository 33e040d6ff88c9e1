"""
clamm - Concentrated-Liquidity AMM Core

Accounting and pricing core of a concentrated-liquidity automated market maker:
a single pool between two fungible tokens in which liquidity providers commit
capital to explicit price ranges.

Main Components:
- Price Math: Tick <-> sqrt price conversion and virtual-reserve amount formulas
- Tick Registry: Per-tick gross/net liquidity ledger
- Position Registry: Per-(owner, range) liquidity ledger
- Pool: Current price state with mint and swap operations
"""

__version__ = "0.1.0"
__author__ = "clamm Development Team"

from clamm.core.contracts.erc20 import ERC20Token
from clamm.core.defi import (
    ConcentratedLiquidityFactory,
    ConcentratedLiquidityPool,
    PoolManager,
)
from clamm.core.exceptions import ClammError, PoolError, TokenError

__all__ = [
    "ConcentratedLiquidityFactory",
    "ConcentratedLiquidityPool",
    "PoolManager",
    "ERC20Token",
    "ClammError",
    "PoolError",
    "TokenError",
]
