"""
clamm DeFi core.

This module provides the concentrated liquidity pool and its building blocks:
- Tick Math: Exact tick <-> Q64.96 sqrt price conversion
- Sqrt Price Math: Liquidity/amount conversion with directional rounding
- Tick and Position Registries: Per-pool liquidity ledgers
- Concentrated Liquidity: Callback-funded mint and single-step swap
- Pool Manager: Periphery that pays callbacks from an approved payer
"""

from .concentrated_liquidity import (
    ConcentratedLiquidityFactory,
    ConcentratedLiquidityPool,
    MintCallback,
    MintEvent,
    SwapCallback,
    SwapEvent,
    SwapStep,
)
from .journal import Checkpoint
from .manager import CallbackData, PoolManager
from .position import Position, PositionKey, PositionRegistry
from .tick import TickInfo, TickRegistry
from .tick_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
    sqrt_price_to_tick,
    tick_to_sqrt_price,
)

__all__ = [
    # Pool
    "ConcentratedLiquidityFactory",
    "ConcentratedLiquidityPool",
    "MintCallback",
    "SwapCallback",
    "MintEvent",
    "SwapEvent",
    "SwapStep",
    "Checkpoint",
    # Periphery
    "PoolManager",
    "CallbackData",
    # Registries
    "Position",
    "PositionKey",
    "PositionRegistry",
    "TickInfo",
    "TickRegistry",
    # Tick math
    "MIN_TICK",
    "MAX_TICK",
    "MIN_SQRT_RATIO",
    "MAX_SQRT_RATIO",
    "Q96",
    "tick_to_sqrt_price",
    "sqrt_price_to_tick",
]
