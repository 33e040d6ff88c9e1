"""
Pool Manager.

Periphery contract that funds pool callbacks on behalf of a payer. The payer
approves the manager on both tokens; during a mint or swap the manager pulls
exactly what the pool asks for with ``transfer_from``.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any

from ..exceptions import PoolError
from .concentrated_liquidity import ConcentratedLiquidityPool
from .sqrt_price_math import get_liquidity_for_amounts
from .tick_math import tick_to_sqrt_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallbackData:
    """Context the manager hands to the pool and gets back in the callback."""
    pool: ConcentratedLiquidityPool
    payer: str


class PoolManager:
    """Implements MintCallback and SwapCallback by pulling funds from a payer."""

    def __init__(self, address: str = ""):
        if not address:
            addr_hash = hashlib.sha3_256(f"clp_manager:{time.time()}".encode()).digest()
            address = f"0x{addr_hash[-20:].hex()}"
        self.address = address

    def mint(
        self,
        payer: str,
        pool: ConcentratedLiquidityPool,
        tick_lower: int,
        tick_upper: int,
        amount: int,
    ) -> tuple[int, int]:
        """Mint liquidity owned by ``payer`` and paid from ``payer``'s balances."""
        return pool.mint(
            self,
            payer,
            tick_lower,
            tick_upper,
            amount,
            CallbackData(pool=pool, payer=payer),
        )

    def mint_amounts(
        self,
        payer: str,
        pool: ConcentratedLiquidityPool,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
    ) -> tuple[int, int, int]:
        """
        Mint the most liquidity the desired token amounts can back.

        Returns:
            (liquidity, amount0, amount1) - amounts actually paid never exceed
            the desired ones

        Raises:
            ZeroLiquidity: If the amounts back no liquidity at the current price
        """
        liquidity = get_liquidity_for_amounts(
            pool.sqrt_price,
            tick_to_sqrt_price(tick_lower),
            tick_to_sqrt_price(tick_upper),
            amount0_desired,
            amount1_desired,
        )
        amount0, amount1 = self.mint(payer, pool, tick_lower, tick_upper, liquidity)
        return liquidity, amount0, amount1

    def swap(
        self,
        payer: str,
        pool: ConcentratedLiquidityPool,
        zero_for_one: bool,
        amount_specified: int,
        recipient: str | None = None,
        sqrt_price_limit: int | None = None,
    ) -> tuple[int, int]:
        """Swap paid by ``payer``; output goes to ``recipient`` (payer by default)."""
        return pool.swap(
            self,
            recipient or payer,
            zero_for_one,
            amount_specified,
            CallbackData(pool=pool, payer=payer),
            sqrt_price_limit=sqrt_price_limit,
        )

    # ==================== Callbacks ====================

    def on_mint_payment(self, amount0: int, amount1: int, data: Any) -> None:
        pool, payer = self._unpack(data)
        if amount0 > 0:
            pool.token0.transfer_from(self.address, payer, pool.address, amount0)
        if amount1 > 0:
            pool.token1.transfer_from(self.address, payer, pool.address, amount1)

    def on_swap_payment(self, amount0: int, amount1: int, data: Any) -> None:
        pool, payer = self._unpack(data)
        if amount0 > 0:
            pool.token0.transfer_from(self.address, payer, pool.address, amount0)
        elif amount1 > 0:
            pool.token1.transfer_from(self.address, payer, pool.address, amount1)

    def _unpack(self, data: Any) -> tuple[ConcentratedLiquidityPool, str]:
        if not isinstance(data, CallbackData):
            raise PoolError(
                "Unexpected callback data",
                details={"manager": self.address, "data_type": type(data).__name__},
            )
        logger.debug(
            "Paying pool callback",
            extra={
                "event": "clamm.manager_payment",
                "pool": data.pool.address[:10],
                "payer": data.payer[:10],
            }
        )
        return data.pool, data.payer
