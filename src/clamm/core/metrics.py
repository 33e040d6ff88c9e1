"""
Pool Metrics for clamm

Prometheus metrics for mint and swap outcomes plus the price and liquidity
state of each pool. Pass a dedicated CollectorRegistry to keep pools (or test
cases) from sharing global collectors.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge


class PoolMetrics:
    """Metrics for concentrated-liquidity pool operations."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.mints_total = Counter(
            'clamm_pool_mints_total',
            'Mint operations by outcome',
            ['pool', 'status'],
            registry=self.registry
        )

        self.swaps_total = Counter(
            'clamm_pool_swaps_total',
            'Swap operations by direction and outcome',
            ['pool', 'direction', 'status'],
            registry=self.registry
        )

        self.liquidity_added = Counter(
            'clamm_pool_liquidity_added_total',
            'Total liquidity units minted into positions',
            ['pool'],
            registry=self.registry
        )

        self.active_liquidity = Gauge(
            'clamm_pool_active_liquidity',
            'Liquidity active at the current tick',
            ['pool'],
            registry=self.registry
        )

        self.current_tick = Gauge(
            'clamm_pool_current_tick',
            'Current pool tick',
            ['pool'],
            registry=self.registry
        )

        self.positions = Gauge(
            'clamm_pool_positions',
            'Number of position records',
            ['pool'],
            registry=self.registry
        )

        self.initialized_ticks = Gauge(
            'clamm_pool_initialized_ticks',
            'Number of initialized ticks',
            ['pool'],
            registry=self.registry
        )

    def record_mint(self, pool: str, status: str, liquidity: int = 0) -> None:
        self.mints_total.labels(pool=pool, status=status).inc()
        if liquidity:
            self.liquidity_added.labels(pool=pool).inc(liquidity)

    def record_swap(self, pool: str, zero_for_one: bool, status: str) -> None:
        direction = "0->1" if zero_for_one else "1->0"
        self.swaps_total.labels(pool=pool, direction=direction, status=status).inc()

    def record_state(
        self,
        pool: str,
        tick: int,
        liquidity: int,
        positions: int,
        initialized_ticks: int,
    ) -> None:
        self.current_tick.labels(pool=pool).set(tick)
        self.active_liquidity.labels(pool=pool).set(liquidity)
        self.positions.labels(pool=pool).set(positions)
        self.initialized_ticks.labels(pool=pool).set(initialized_ticks)


_default_metrics: Optional[PoolMetrics] = None


def get_pool_metrics() -> PoolMetrics:
    """Process-wide PoolMetrics bound to the default registry."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = PoolMetrics()
    return _default_metrics
