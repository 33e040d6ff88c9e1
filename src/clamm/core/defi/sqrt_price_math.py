"""
Fixed-point liquidity and price-movement math.

Virtual-reserve formulas for a range [sqrt_a, sqrt_b] holding liquidity L:

    amount0 = L * (sqrt_b - sqrt_a) / (sqrt_a * sqrt_b)
    amount1 = L * (sqrt_b - sqrt_a)

with sqrt prices in Q64.96. Every function takes an explicit rounding
direction or rounds in the pool's favor: amounts the pool receives round up,
amounts the pool pays round down, and the next price after a trade is chosen so
the trader never gets more than the curve allows.
"""

from __future__ import annotations

from .tick_math import MAX_SQRT_RATIO, MIN_SQRT_RATIO, Q96
from ..exceptions import InvalidSqrtPrice, NotEnoughLiquidity

RESOLUTION = 96
MAX_UINT128 = 2**128 - 1


def div_round_up(numerator: int, denominator: int) -> int:
    """Ceiling division for non-negative integers."""
    if denominator == 0:
        raise ValueError("Division by zero")
    return -(-numerator // denominator)


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Calculate (a * b) / denominator with full precision and controlled rounding.

    Args:
        a: First multiplicand
        b: Second multiplicand
        denominator: Divisor
        round_up: If True, round up (for charging users)
                  If False, round down (for paying users)

    Raises:
        ValueError: If denominator is zero
    """
    if denominator == 0:
        raise ValueError("Division by zero")
    product = a * b
    if round_up:
        return div_round_up(product, denominator)
    return product // denominator


# ==================== Amount Deltas ====================


def get_amount0_delta(
    sqrt_price_a: int,
    sqrt_price_b: int,
    liquidity: int,
    round_up: bool,
) -> int:
    """Token0 amount spanned by ``liquidity`` between two sqrt prices."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a
    if sqrt_price_a <= 0:
        raise InvalidSqrtPrice(
            "Sqrt price must be positive",
            details={"sqrt_price": sqrt_price_a},
        )

    numerator1 = liquidity << RESOLUTION
    numerator2 = sqrt_price_b - sqrt_price_a

    if round_up:
        return div_round_up(
            mul_div(numerator1, numerator2, sqrt_price_b, round_up=True),
            sqrt_price_a,
        )
    return mul_div(numerator1, numerator2, sqrt_price_b) // sqrt_price_a


def get_amount1_delta(
    sqrt_price_a: int,
    sqrt_price_b: int,
    liquidity: int,
    round_up: bool,
) -> int:
    """Token1 amount spanned by ``liquidity`` between two sqrt prices."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a

    return mul_div(liquidity, sqrt_price_b - sqrt_price_a, Q96, round_up=round_up)


def liquidity_to_amounts(
    liquidity: int,
    sqrt_price_lower: int,
    sqrt_price_upper: int,
    sqrt_price_current: int,
    round_up: bool = True,
) -> tuple[int, int]:
    """
    Token amounts ``liquidity`` is worth in a range at the current price.

    - Current price below the range: only token0.
    - Current price at or above the upper bound: only token1.
    - Inside: token0 for [current, upper], token1 for [lower, current].

    Defaults to rounding up, which is what a liquidity provider owes.
    """
    if sqrt_price_lower > sqrt_price_upper:
        sqrt_price_lower, sqrt_price_upper = sqrt_price_upper, sqrt_price_lower

    if sqrt_price_current <= sqrt_price_lower:
        amount0 = get_amount0_delta(
            sqrt_price_lower, sqrt_price_upper, liquidity, round_up
        )
        amount1 = 0
    elif sqrt_price_current < sqrt_price_upper:
        amount0 = get_amount0_delta(
            sqrt_price_current, sqrt_price_upper, liquidity, round_up
        )
        amount1 = get_amount1_delta(
            sqrt_price_lower, sqrt_price_current, liquidity, round_up
        )
    else:
        amount0 = 0
        amount1 = get_amount1_delta(
            sqrt_price_lower, sqrt_price_upper, liquidity, round_up
        )

    return amount0, amount1


# ==================== Liquidity From Amounts ====================


def get_liquidity_for_amount0(sqrt_price_a: int, sqrt_price_b: int, amount0: int) -> int:
    """Liquidity received for ``amount0`` across [a, b], rounded down."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a
    intermediate = mul_div(sqrt_price_a, sqrt_price_b, Q96)
    return mul_div(amount0, intermediate, sqrt_price_b - sqrt_price_a)


def get_liquidity_for_amount1(sqrt_price_a: int, sqrt_price_b: int, amount1: int) -> int:
    """Liquidity received for ``amount1`` across [a, b], rounded down."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a
    return mul_div(amount1, Q96, sqrt_price_b - sqrt_price_a)


def get_liquidity_for_amounts(
    sqrt_price_current: int,
    sqrt_price_a: int,
    sqrt_price_b: int,
    amount0: int,
    amount1: int,
) -> int:
    """
    Maximum liquidity that ``amount0`` and ``amount1`` can back in [a, b].

    Inside the range the scarcer side determines the result.
    """
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a

    if sqrt_price_current <= sqrt_price_a:
        return get_liquidity_for_amount0(sqrt_price_a, sqrt_price_b, amount0)
    if sqrt_price_current < sqrt_price_b:
        liquidity0 = get_liquidity_for_amount0(sqrt_price_current, sqrt_price_b, amount0)
        liquidity1 = get_liquidity_for_amount1(sqrt_price_a, sqrt_price_current, amount1)
        return min(liquidity0, liquidity1)
    return get_liquidity_for_amount1(sqrt_price_a, sqrt_price_b, amount1)


# ==================== Next Sqrt Price ====================


def get_next_sqrt_price_from_amount0_rounding_up(
    sqrt_price: int,
    liquidity: int,
    amount: int,
    add: bool,
) -> int:
    """
    Sqrt price after adding (or removing) ``amount`` of token0.

    Rounds up: adding token0 pushes the price down, so a higher result
    gives the trader less.
    """
    if amount == 0:
        return sqrt_price

    numerator1 = liquidity << RESOLUTION
    product = amount * sqrt_price

    if add:
        denominator = numerator1 + product
        return mul_div(numerator1, sqrt_price, denominator, round_up=True)

    if numerator1 <= product:
        raise NotEnoughLiquidity(
            "Output exceeds token0 reserves in range",
            details={"amount": amount, "liquidity": liquidity},
        )
    denominator = numerator1 - product
    return mul_div(numerator1, sqrt_price, denominator, round_up=True)


def get_next_sqrt_price_from_amount1_rounding_down(
    sqrt_price: int,
    liquidity: int,
    amount: int,
    add: bool,
) -> int:
    """
    Sqrt price after adding (or removing) ``amount`` of token1.

    Rounds down: adding token1 pushes the price up, so a lower result
    gives the trader less.
    """
    if add:
        quotient = (amount << RESOLUTION) // liquidity
        return sqrt_price + quotient

    quotient = div_round_up(amount << RESOLUTION, liquidity)
    if sqrt_price <= quotient:
        raise NotEnoughLiquidity(
            "Output exceeds token1 reserves in range",
            details={"amount": amount, "liquidity": liquidity},
        )
    return sqrt_price - quotient


def get_next_sqrt_price_from_input(
    sqrt_price: int,
    liquidity: int,
    amount_in: int,
    zero_for_one: bool,
) -> int:
    """Sqrt price after ``amount_in`` of the input token enters the pool."""
    _require_price_and_liquidity(sqrt_price, liquidity)
    if zero_for_one:
        return get_next_sqrt_price_from_amount0_rounding_up(
            sqrt_price, liquidity, amount_in, True
        )
    return get_next_sqrt_price_from_amount1_rounding_down(
        sqrt_price, liquidity, amount_in, True
    )


def get_next_sqrt_price_from_output(
    sqrt_price: int,
    liquidity: int,
    amount_out: int,
    zero_for_one: bool,
) -> int:
    """Sqrt price after ``amount_out`` of the output token leaves the pool."""
    _require_price_and_liquidity(sqrt_price, liquidity)
    if zero_for_one:
        return get_next_sqrt_price_from_amount1_rounding_down(
            sqrt_price, liquidity, amount_out, False
        )
    return get_next_sqrt_price_from_amount0_rounding_up(
        sqrt_price, liquidity, amount_out, False
    )


def _require_price_and_liquidity(sqrt_price: int, liquidity: int) -> None:
    if sqrt_price <= 0:
        raise InvalidSqrtPrice(
            "Sqrt price must be positive",
            details={"sqrt_price": sqrt_price},
        )
    if liquidity <= 0:
        raise NotEnoughLiquidity(
            "No liquidity to trade against",
            details={"liquidity": liquidity},
        )


# ==================== Swap Step ====================


def compute_swap_step(
    sqrt_price_current: int,
    sqrt_price_target: int,
    liquidity: int,
    amount_remaining: int,
) -> tuple[int, int, int]:
    """
    Compute a single swap step toward ``sqrt_price_target``.

    The direction follows from the two prices: a target below the current
    price sells token0 for token1.

    Args:
        sqrt_price_current: Price before the step
        sqrt_price_target: Price the step may not move past
        liquidity: Active liquidity for the whole step
        amount_remaining: Positive for exact input, negative for exact output

    Returns:
        (sqrt_price_next, amount_in, amount_out)
    """
    zero_for_one = sqrt_price_current >= sqrt_price_target
    exact_input = amount_remaining >= 0

    if exact_input:
        if zero_for_one:
            amount_in_max = get_amount0_delta(
                sqrt_price_target, sqrt_price_current, liquidity, True
            )
        else:
            amount_in_max = get_amount1_delta(
                sqrt_price_current, sqrt_price_target, liquidity, True
            )

        if amount_remaining >= amount_in_max:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_input(
                sqrt_price_current, liquidity, amount_remaining, zero_for_one
            )
    else:
        if zero_for_one:
            amount_out_max = get_amount1_delta(
                sqrt_price_target, sqrt_price_current, liquidity, False
            )
        else:
            amount_out_max = get_amount0_delta(
                sqrt_price_current, sqrt_price_target, liquidity, False
            )

        if -amount_remaining >= amount_out_max:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_output(
                sqrt_price_current, liquidity, -amount_remaining, zero_for_one
            )

    reached_target = sqrt_price_next == sqrt_price_target

    if zero_for_one:
        amount_in = (
            amount_in_max
            if reached_target and exact_input
            else get_amount0_delta(sqrt_price_next, sqrt_price_current, liquidity, True)
        )
        amount_out = (
            amount_out_max
            if reached_target and not exact_input
            else get_amount1_delta(sqrt_price_next, sqrt_price_current, liquidity, False)
        )
    else:
        amount_in = (
            amount_in_max
            if reached_target and exact_input
            else get_amount1_delta(sqrt_price_current, sqrt_price_next, liquidity, True)
        )
        amount_out = (
            amount_out_max
            if reached_target and not exact_input
            else get_amount0_delta(sqrt_price_current, sqrt_price_next, liquidity, False)
        )

    # Exact output never pays out more than was asked for
    if not exact_input and amount_out > -amount_remaining:
        amount_out = -amount_remaining

    # Exact input consumes the whole remainder when the target is not reached
    if exact_input and not reached_target:
        amount_in = amount_remaining

    return sqrt_price_next, amount_in, amount_out


def check_sqrt_price(sqrt_price: int) -> None:
    """Raise InvalidSqrtPrice if ``sqrt_price`` is outside the representable range."""
    if sqrt_price < MIN_SQRT_RATIO or sqrt_price > MAX_SQRT_RATIO:
        raise InvalidSqrtPrice(
            "Sqrt price out of range",
            details={"sqrt_price": sqrt_price},
        )
