"""
Undo journal for pool operations.

A mint or swap calls into untrusted payer code after it has already updated
ticks, positions and price, and a swap has already paid the recipient. A
Checkpoint records the price scalars up front, saves each tick and position
entry just before the operation first writes it, and opens a journal on both
tokens. A failed balance check (or any other exception) puts back exactly
those entries and reverses exactly the token movements made on this thread
during the operation.

Movements made by a nested operation on another pool are committed by that
operation and stay put. Transfers on other threads are never recorded here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .position import Position, PositionKey
from .tick import TickInfo

if TYPE_CHECKING:
    from .concentrated_liquidity import ConcentratedLiquidityPool


@dataclass
class Checkpoint:
    """Pre-images of everything one pool operation touched."""

    pool: "ConcentratedLiquidityPool"
    sqrt_price: int
    tick: int
    liquidity: int
    ticks: dict[int, TickInfo | None] = field(default_factory=dict)
    positions: dict[PositionKey, Position | None] = field(default_factory=dict)

    @classmethod
    def capture(cls, pool: "ConcentratedLiquidityPool") -> "Checkpoint":
        checkpoint = cls(
            pool=pool,
            sqrt_price=pool.sqrt_price,
            tick=pool.tick,
            liquidity=pool.liquidity,
        )
        pool.token0.begin_journal()
        pool.token1.begin_journal()
        return checkpoint

    def save_tick(self, tick: int) -> None:
        """Remember a tick entry before its first write."""
        if tick not in self.ticks:
            self.ticks[tick] = self.pool.ticks.saved(tick)

    def save_position(self, key: PositionKey) -> None:
        """Remember a position entry before its first write."""
        if key not in self.positions:
            self.positions[key] = self.pool.positions.saved(key)

    def commit(self) -> None:
        self.pool.token1.commit_journal()
        self.pool.token0.commit_journal()

    def restore(self) -> None:
        pool = self.pool
        for tick, info in self.ticks.items():
            pool.ticks.reset(tick, info)
        for key, position in self.positions.items():
            pool.positions.reset(key, position)
        pool.sqrt_price = self.sqrt_price
        pool.tick = self.tick
        pool.liquidity = self.liquidity

        # Both journals are popped even if reversing one of them fails
        try:
            pool.token1.rollback_journal()
        finally:
            pool.token0.rollback_journal()
