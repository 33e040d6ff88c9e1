"""
Tick Registry.

Maps tick index to the aggregate liquidity referencing it. A tick is
initialized while any position uses it as a bound (``liquidity_gross > 0``);
range traversal only ever stops at initialized ticks.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field, replace

from .tick_math import check_tick
from ..exceptions import ZeroLiquidity

logger = logging.getLogger(__name__)


@dataclass
class TickInfo:
    """Information stored for each referenced tick."""
    liquidity_gross: int = 0  # Total liquidity referencing this tick
    liquidity_net: int = 0    # Net liquidity change when crossing upward

    @property
    def initialized(self) -> bool:
        return self.liquidity_gross > 0


@dataclass
class TickRegistry:
    """Per-tick liquidity ledger owned by a single pool."""

    ticks: dict[int, TickInfo] = field(default_factory=dict)

    # Sorted initialized tick indices, for traversal
    _initialized: list[int] = field(default_factory=list)

    def update(self, tick: int, liquidity_delta: int, upper: bool) -> bool:
        """
        Apply a liquidity change at a position bound.

        Args:
            tick: Tick index of the bound
            liquidity_delta: Liquidity added (negative to remove)
            upper: True when ``tick`` is the position's upper bound

        Returns:
            True if the tick flipped between initialized and uninitialized

        Raises:
            InvalidTick: If tick is outside global bounds
            ZeroLiquidity: If the change would drive gross liquidity negative
        """
        check_tick(tick)

        info = self.ticks.get(tick) or TickInfo()
        gross_before = info.liquidity_gross
        gross_after = gross_before + liquidity_delta
        if gross_after < 0:
            raise ZeroLiquidity(
                f"Tick {tick} has only {gross_before} liquidity",
                details={"tick": tick, "liquidity_delta": liquidity_delta},
            )

        info.liquidity_gross = gross_after
        if upper:
            info.liquidity_net -= liquidity_delta
        else:
            info.liquidity_net += liquidity_delta
        self.ticks[tick] = info

        flipped = (gross_before == 0) != (gross_after == 0)
        if flipped:
            if gross_after > 0:
                bisect.insort(self._initialized, tick)
            else:
                self._initialized.remove(tick)
            logger.debug(
                "Tick flipped",
                extra={
                    "event": "clamm.tick_flipped",
                    "tick": tick,
                    "initialized": gross_after > 0,
                },
            )
        return flipped

    def get(self, tick: int) -> TickInfo:
        """Return tick info; unreferenced ticks read as empty."""
        return self.ticks.get(tick, TickInfo())

    def is_initialized(self, tick: int) -> bool:
        return self.get(tick).initialized

    def next_initialized_tick(self, tick: int, lte: bool) -> int | None:
        """
        Nearest initialized tick in one direction.

        Args:
            tick: Starting tick
            lte: If True, the greatest initialized tick <= ``tick``;
                 otherwise the smallest initialized tick > ``tick``

        Returns:
            The tick index, or None if no initialized tick lies that way
        """
        if lte:
            index = bisect.bisect_right(self._initialized, tick)
            return self._initialized[index - 1] if index > 0 else None
        index = bisect.bisect_right(self._initialized, tick)
        return self._initialized[index] if index < len(self._initialized) else None

    def initialized_ticks(self) -> list[int]:
        return list(self._initialized)

    def saved(self, tick: int) -> TickInfo | None:
        """Detached copy of a tick's entry, or None if it has none."""
        info = self.ticks.get(tick)
        return replace(info) if info is not None else None

    def reset(self, tick: int, info: TickInfo | None) -> None:
        """Put back an entry returned by ``saved``, keeping the index in step."""
        was_initialized = self.is_initialized(tick)
        if info is None:
            self.ticks.pop(tick, None)
        else:
            self.ticks[tick] = replace(info)

        now_initialized = self.is_initialized(tick)
        if was_initialized and not now_initialized:
            self._initialized.remove(tick)
        elif now_initialized and not was_initialized:
            bisect.insort(self._initialized, tick)
