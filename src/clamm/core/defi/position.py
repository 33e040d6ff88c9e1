"""
Position Registry.

Maps (owner, lower tick, upper tick) to the liquidity that owner has committed
to exactly that range. Two mints into the same key accumulate into one
position.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import NamedTuple

from ..exceptions import ZeroLiquidity


class PositionKey(NamedTuple):
    """Composite identity of a position."""
    owner: str
    tick_lower: int
    tick_upper: int


@dataclass
class Position:
    """
    Liquidity position within a price range.

    Represents an LP's liquidity between two ticks, closed at the lower bound
    and open at the upper bound.
    """

    owner: str = ""

    # Range (in ticks)
    tick_lower: int = 0
    tick_upper: int = 0

    # Liquidity amount
    liquidity: int = 0

    created_at: float = field(default_factory=time.time)

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.owner, self.tick_lower, self.tick_upper)

    def is_in_range(self, current_tick: int) -> bool:
        """Check if current price is within position's range."""
        return self.tick_lower <= current_tick < self.tick_upper


@dataclass
class PositionRegistry:
    """Per-range liquidity ledger owned by a single pool."""

    positions: dict[PositionKey, Position] = field(default_factory=dict)

    @staticmethod
    def key(owner: str, tick_lower: int, tick_upper: int) -> PositionKey:
        return PositionKey(owner.lower(), tick_lower, tick_upper)

    def get(self, owner: str, tick_lower: int, tick_upper: int) -> Position:
        """Return the position for a key, creating an empty one if absent."""
        key = self.key(owner, tick_lower, tick_upper)
        position = self.positions.get(key)
        if position is None:
            position = Position(
                owner=key.owner,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
            )
            self.positions[key] = position
        return position

    def find(self, owner: str, tick_lower: int, tick_upper: int) -> Position | None:
        """Read-only lookup; never creates a record."""
        return self.positions.get(self.key(owner, tick_lower, tick_upper))

    def update(self, position: Position, liquidity_delta: int) -> None:
        """
        Apply a liquidity change to a position.

        Raises:
            ZeroLiquidity: If the delta is zero or would leave negative liquidity
        """
        if liquidity_delta == 0:
            raise ZeroLiquidity(
                "Liquidity delta must be non-zero",
                details={"position": position.key._asdict()},
            )
        liquidity_after = position.liquidity + liquidity_delta
        if liquidity_after < 0:
            raise ZeroLiquidity(
                f"Position holds only {position.liquidity} liquidity",
                details={"position": position.key._asdict(), "liquidity_delta": liquidity_delta},
            )
        position.liquidity = liquidity_after

    def __len__(self) -> int:
        return len(self.positions)

    def saved(self, key: PositionKey) -> Position | None:
        position = self.positions.get(key)
        return replace(position) if position is not None else None

    def reset(self, key: PositionKey, position: Position | None) -> None:
        if position is None:
            self.positions.pop(key, None)
        else:
            self.positions[key] = replace(position)
