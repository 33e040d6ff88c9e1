"""
Shared fixtures for pool tests.

The reference scenario is an ETH/USDC pool at price ~5000 (tick 85176) with a
single position over [84222, 86129].
"""

import pytest

from clamm.core.contracts.erc20 import ERC20Token
from clamm.core.defi.concentrated_liquidity import ConcentratedLiquidityPool
from clamm.core.metrics import PoolMetrics

OWNER = "0x" + "11" * 20
PAYER = "0x" + "22" * 20

START_SQRT_PRICE = 5602277097478614198912276234240
LOWER_TICK = 84222
UPPER_TICK = 86129
LIQUIDITY = 1517882343751509868544

FUNDING = 10**30


class DirectPayer:
    """Caller contract that pays callbacks straight from its own balances.

    ``short0`` / ``short1`` under-pay by that many units; ``hook`` runs at the
    start of every callback and can observe or interfere with the pool.
    """

    def __init__(self, address, pool):
        self.address = address
        self.pool = pool
        self.short0 = 0
        self.short1 = 0
        self.hook = None
        self.calls = []

    def on_mint_payment(self, amount0, amount1, data):
        self.calls.append(("mint", amount0, amount1, data))
        if self.hook:
            self.hook(amount0, amount1, data)
        self._pay(self.pool.token0, amount0 - self.short0)
        self._pay(self.pool.token1, amount1 - self.short1)

    def on_swap_payment(self, amount0, amount1, data):
        self.calls.append(("swap", amount0, amount1, data))
        if self.hook:
            self.hook(amount0, amount1, data)
        if amount0 > 0:
            self._pay(self.pool.token0, amount0 - self.short0)
        if amount1 > 0:
            self._pay(self.pool.token1, amount1 - self.short1)

    def _pay(self, token, amount):
        if amount > 0:
            token.transfer(self.address, self.pool.address, amount)


@pytest.fixture
def token0():
    token = ERC20Token(name="Wrapped Ether", symbol="WETH", owner=OWNER, address="0x" + "aa" * 20)
    token.mint(OWNER, PAYER, FUNDING)
    return token


@pytest.fixture
def token1():
    token = ERC20Token(name="USD Coin", symbol="USDC", owner=OWNER, address="0x" + "bb" * 20)
    token.mint(OWNER, PAYER, FUNDING)
    return token


@pytest.fixture
def pool_metrics(metrics_registry):
    return PoolMetrics(registry=metrics_registry)


@pytest.fixture
def pool(token0, token1, pool_metrics):
    """ETH/USDC pool at the reference price, no liquidity."""
    return ConcentratedLiquidityPool(
        token0=token0,
        token1=token1,
        sqrt_price=START_SQRT_PRICE,
        metrics=pool_metrics,
    )


@pytest.fixture
def payer(pool):
    return DirectPayer(PAYER, pool)


@pytest.fixture
def funded_pool(pool, payer):
    """Reference pool with the reference position minted."""
    pool.mint(payer, PAYER, LOWER_TICK, UPPER_TICK, LIQUIDITY)
    payer.calls.clear()
    return pool


@pytest.fixture
def make_payer():
    """Factory for extra DirectPayer contracts bound to other pools."""
    return DirectPayer
