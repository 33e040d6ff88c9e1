"""
Concentrated Liquidity Pool - Swap Tests.

Covers the reference exact-input trade, exact output, price limits, tick
crossing in both directions, payout ordering and rollback.
"""

import pytest

from clamm.core.defi.concentrated_liquidity import ConcentratedLiquidityPool, SwapEvent
from clamm.core.defi.sqrt_price_math import get_amount0_delta, get_amount1_delta
from clamm.core.defi.tick_math import MAX_SQRT_RATIO, MIN_SQRT_RATIO, Q96, tick_to_sqrt_price
from clamm.core.exceptions import (
    InsufficientInputAmount,
    InvalidPriceLimit,
    InvalidSwapAmount,
    NotEnoughLiquidity,
    PoolLocked,
    TokenError,
)

PAYER = "0x" + "22" * 20
RECIPIENT = "0x" + "33" * 20

START_SQRT_PRICE = 5602277097478614198912276234240
LIQUIDITY = 1517882343751509868544
SWAPPED_SQRT_PRICE = 5604469350942327889444743441197


@pytest.fixture
def flat_pool(token0, token1, pool_metrics, payer):
    """Pool at price 1 (tick 0); the shared payer is rebound to it."""
    pool = ConcentratedLiquidityPool(
        token0=token0,
        token1=token1,
        sqrt_price=Q96,
        metrics=pool_metrics,
    )
    payer.pool = pool
    return pool


class TestReferenceSwap:
    """42 USDC in, ETH out."""

    def test_amounts(self, funded_pool, payer):
        amount0, amount1 = funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert amount1 == 42 * 10**18
        assert amount0 < 0
        assert -amount0 == pytest.approx(8396714242162444, rel=1e-6)

    def test_price_and_tick(self, funded_pool, payer):
        funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert funded_pool.sqrt_price == SWAPPED_SQRT_PRICE
        assert funded_pool.tick == 85184
        assert funded_pool.liquidity == LIQUIDITY

    def test_amount0_rounds_in_pool_favor(self, funded_pool, payer):
        amount0, _ = funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert -amount0 == get_amount0_delta(START_SQRT_PRICE, SWAPPED_SQRT_PRICE, LIQUIDITY, False)

    def test_balances(self, funded_pool, payer, token0, token1):
        pool_balance0 = token0.balance_of(funded_pool.address)
        pool_balance1 = token1.balance_of(funded_pool.address)

        amount0, amount1 = funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)

        assert token0.balance_of(RECIPIENT) == -amount0
        assert token0.balance_of(funded_pool.address) == pool_balance0 + amount0
        assert token1.balance_of(funded_pool.address) == pool_balance1 + amount1

    def test_callback_sees_payout_already_made(self, funded_pool, payer, token0):
        seen = []
        payer.hook = lambda amount0, amount1, data: seen.append(token0.balance_of(RECIPIENT))

        amount0, _ = funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)

        assert seen == [-amount0]

    def test_callback_receives_signed_amounts(self, funded_pool, payer):
        amounts = funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18, data="ctx")
        assert payer.calls == [("swap", amounts[0], amounts[1], "ctx")]

    def test_event_emitted(self, funded_pool, payer):
        amount0, amount1 = funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        event = funded_pool.events[-1]
        assert isinstance(event, SwapEvent)
        assert event.sender == PAYER
        assert event.recipient == RECIPIENT
        assert (event.amount0, event.amount1) == (amount0, amount1)
        assert event.sqrt_price == SWAPPED_SQRT_PRICE
        assert event.liquidity == LIQUIDITY
        assert event.tick == 85184

    def test_quote_matches_swap(self, funded_pool, payer):
        before = funded_pool.snapshot()
        step = funded_pool.quote(False, 42 * 10**18)
        assert funded_pool.snapshot() == before

        amounts = funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert (step.amount0, step.amount1) == amounts
        assert step.sqrt_price == funded_pool.sqrt_price
        assert step.tick == funded_pool.tick


class TestSwapDirections:

    def test_zero_for_one(self, funded_pool, payer, token1):
        amount0, amount1 = funded_pool.swap(payer, RECIPIENT, True, 10**16)
        assert amount0 == 10**16
        assert amount1 < 0
        assert token1.balance_of(RECIPIENT) == -amount1
        assert funded_pool.sqrt_price < START_SQRT_PRICE
        assert funded_pool.tick <= 85176

    def test_exact_output(self, funded_pool, payer, token0):
        amount0, amount1 = funded_pool.swap(payer, RECIPIENT, False, -10**15)
        assert amount0 == -10**15
        assert amount1 > 0
        assert token0.balance_of(RECIPIENT) == 10**15

    def test_price_limit_partial_fill(self, funded_pool, payer):
        limit = START_SQRT_PRICE + (SWAPPED_SQRT_PRICE - START_SQRT_PRICE) // 2
        amount0, amount1 = funded_pool.swap(
            payer, RECIPIENT, False, 42 * 10**18, sqrt_price_limit=limit
        )
        assert funded_pool.sqrt_price == limit
        assert 0 < amount1 < 42 * 10**18
        assert amount1 == get_amount1_delta(START_SQRT_PRICE, limit, LIQUIDITY, True)


class TestSwapValidation:

    def test_zero_amount(self, funded_pool, payer):
        with pytest.raises(InvalidSwapAmount):
            funded_pool.swap(payer, RECIPIENT, False, 0)
        assert payer.calls == []

    def test_no_liquidity(self, pool, payer):
        with pytest.raises(NotEnoughLiquidity):
            pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert payer.calls == []

    @pytest.mark.parametrize(
        "zero_for_one, limit",
        [
            (True, START_SQRT_PRICE),
            (True, START_SQRT_PRICE + 1),
            (True, MIN_SQRT_RATIO),
            (False, START_SQRT_PRICE),
            (False, START_SQRT_PRICE - 1),
            (False, MAX_SQRT_RATIO),
        ],
    )
    def test_invalid_price_limit(self, funded_pool, payer, zero_for_one, limit):
        before = funded_pool.snapshot()
        with pytest.raises(InvalidPriceLimit):
            funded_pool.swap(payer, RECIPIENT, zero_for_one, 10**16, sqrt_price_limit=limit)
        assert funded_pool.snapshot() == before

    def test_range_ending_at_current_tick_is_not_tradable(self, pool, payer):
        pool.mint(payer, PAYER, 80000, 85176, 10**18)
        with pytest.raises(NotEnoughLiquidity):
            pool.swap(payer, RECIPIENT, False, -10**15)
        assert payer.calls[-1][0] == "mint"


class TestSwapRollback:

    def test_underpayment_rolls_back_payout(self, funded_pool, payer, token0, token1):
        before = funded_pool.snapshot()
        balances = (token0.balance_of(funded_pool.address), token1.balance_of(funded_pool.address))
        events = len(funded_pool.events)

        payer.short1 = 1
        with pytest.raises(InsufficientInputAmount) as exc_info:
            funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)

        assert exc_info.value.expected == 42 * 10**18
        assert exc_info.value.received == 42 * 10**18 - 1
        assert funded_pool.snapshot() == before
        assert token0.balance_of(RECIPIENT) == 0
        assert (token0.balance_of(funded_pool.address), token1.balance_of(funded_pool.address)) == balances
        assert len(funded_pool.events) == events

    def test_exact_amount_is_enough(self, funded_pool, payer):
        """The complement of the one-unit-short case succeeds."""
        funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert funded_pool.sqrt_price == SWAPPED_SQRT_PRICE

    def test_insufficient_reserves_for_payout(self, pool, payer, token0):
        """Payout larger than the pool's token0 balance fails in the token and unwinds."""
        pool.mint(payer, PAYER, 84222, 86129, LIQUIDITY)
        # Drain the pool's token0 out-of-band
        token0.transfer(pool.address, PAYER, token0.balance_of(pool.address))
        before = pool.snapshot()

        with pytest.raises(TokenError):
            pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert pool.snapshot() == before

    def test_reentrant_swap_rejected(self, funded_pool, payer):
        def reenter(amount0, amount1, data):
            funded_pool.swap(payer, RECIPIENT, False, 10**18)

        payer.hook = reenter
        before = funded_pool.snapshot()
        with pytest.raises(PoolLocked):
            funded_pool.swap(payer, RECIPIENT, False, 42 * 10**18)
        assert funded_pool.snapshot() == before


class TestTickCrossing:
    """Single-step swaps stopping at initialized ticks around price 1."""

    def test_moving_down_stops_on_boundary_without_crossing(self, flat_pool, payer):
        flat_pool.mint(payer, PAYER, -60, 60, 10**18)
        flat_pool.mint(payer, PAYER, -120, -60, 2 * 10**18)
        boundary = tick_to_sqrt_price(-60)

        amount0, amount1 = flat_pool.swap(payer, RECIPIENT, True, 10**18)

        assert flat_pool.sqrt_price == boundary
        assert flat_pool.tick == -60
        assert flat_pool.liquidity == 10**18
        assert amount0 == get_amount0_delta(boundary, Q96, 10**18, True)
        assert amount1 == -get_amount1_delta(boundary, Q96, 10**18, False)

    def test_next_swap_down_crosses_boundary_first(self, flat_pool, payer):
        flat_pool.mint(payer, PAYER, -60, 60, 10**18)
        flat_pool.mint(payer, PAYER, -120, -60, 2 * 10**18)
        flat_pool.swap(payer, RECIPIENT, True, 10**18)

        flat_pool.swap(payer, RECIPIENT, True, 10**12)

        assert flat_pool.liquidity == 2 * 10**18
        assert -120 <= flat_pool.tick < -60
        assert flat_pool.sqrt_price < tick_to_sqrt_price(-60)

    def test_moving_up_crosses_boundary(self, flat_pool, payer):
        flat_pool.mint(payer, PAYER, -60, 60, 10**18)
        flat_pool.mint(payer, PAYER, 60, 120, 3 * 10**18)
        boundary = tick_to_sqrt_price(60)

        amount0, amount1 = flat_pool.swap(payer, RECIPIENT, False, 10**18)

        assert flat_pool.sqrt_price == boundary
        assert flat_pool.tick == 60
        assert flat_pool.liquidity == 3 * 10**18
        assert amount1 == get_amount1_delta(Q96, boundary, 10**18, True)
        assert amount0 == -get_amount0_delta(Q96, boundary, 10**18, False)

    def test_down_after_crossing_up_restores_liquidity(self, flat_pool, payer):
        flat_pool.mint(payer, PAYER, -60, 60, 10**18)
        flat_pool.mint(payer, PAYER, 60, 120, 3 * 10**18)
        flat_pool.swap(payer, RECIPIENT, False, 10**18)

        flat_pool.swap(payer, RECIPIENT, True, 10**12)

        assert flat_pool.liquidity == 10**18
        assert flat_pool.tick == 59

    def test_crossing_into_empty_range(self, flat_pool, payer):
        flat_pool.mint(payer, PAYER, -60, 60, 10**18)
        flat_pool.swap(payer, RECIPIENT, False, 10**18)
        assert flat_pool.tick == 60
        assert flat_pool.liquidity == 0

        with pytest.raises(NotEnoughLiquidity):
            flat_pool.swap(payer, RECIPIENT, False, 10**12)

        # Liquidity is still reachable moving back down
        flat_pool.swap(payer, RECIPIENT, True, 10**12)
        assert flat_pool.liquidity == 10**18
        assert flat_pool.tick == 59

    def test_limit_nearer_than_boundary(self, flat_pool, payer):
        flat_pool.mint(payer, PAYER, -60, 60, 10**18)
        limit = tick_to_sqrt_price(30)

        flat_pool.swap(payer, RECIPIENT, False, 10**18, sqrt_price_limit=limit)

        assert flat_pool.sqrt_price == limit
        assert flat_pool.tick == 30
        assert flat_pool.liquidity == 10**18
