"""
Tick <-> sqrt price conversion.

Prices live on the geometric grid ``price(tick) = 1.0001 ** tick``. The pool
stores the square root of the price as a Q64.96 fixed-point integer so range
math never touches floats.

``tick_to_sqrt_price`` multiplies together precomputed Q128.128 values of
``1 / sqrt(1.0001) ** (2 ** i)`` for every set bit of ``|tick|``, inverts for
positive ticks and shifts down to Q64.96, rounding up. The result is integer
exact and strictly increasing in ``tick``.
"""

from __future__ import annotations

import math

from ..exceptions import InvalidSqrtPrice, InvalidTick

MIN_TICK = -887272
MAX_TICK = 887272

# tick_to_sqrt_price(MIN_TICK) and tick_to_sqrt_price(MAX_TICK)
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

Q96 = 2**96
MAX_UINT256 = 2**256 - 1

# 1 / sqrt(1.0001) ** (2 ** i) in Q128.128, for i = 0..19
_RATIOS = (
    0xFFFCB933BD6FAD37AA2D162D1A594001,
    0xFFF97272373D413259A46990580E213A,
    0xFFF2E50F5F656932EF12357CF3C7FDCC,
    0xFFE5CACA7E10E4E61C3624EAA0941CD0,
    0xFFCB9843D60F6159C9DB58835C926644,
    0xFF973B41FA98C081472E6896DFB254C0,
    0xFF2EA16466C96A3843EC78B326B52861,
    0xFE5DEE046A99A2A811C461F1969C3053,
    0xFCBE86C7900A88AEDCFFC83B479AA3A4,
    0xF987A7253AC413176F2B074CF7815E54,
    0xF3392B0822B70005940C7A398E4B70F3,
    0xE7159475A2C29B7443B29C7FA6E889D9,
    0xD097F3BDFD2022B8845AD8F792AA5825,
    0xA9F746462D870FDF8A65DC1F90E061E5,
    0x70D869A156D2A1B890BB3DF62BAF32F7,
    0x31BE135F97D08FD981231505542FCFA6,
    0x9AA508B5B7A84E1C677DE54F3E99BC9,
    0x5D6AF8DEDB81196699C329225EE604,
    0x2216E584F5FA1EA926041BEDFE98,
    0x48A170391F7DC42444E8FA2,
)


def check_tick(tick: int) -> None:
    """Raise InvalidTick if ``tick`` is outside [MIN_TICK, MAX_TICK]."""
    if not MIN_TICK <= tick <= MAX_TICK:
        raise InvalidTick(
            f"Tick {tick} outside [{MIN_TICK}, {MAX_TICK}]",
            details={"tick": tick},
        )


def tick_to_sqrt_price(tick: int) -> int:
    """
    Convert a tick to its boundary sqrt price in Q64.96 format.

    sqrt_price = sqrt(1.0001 ** tick) * 2 ** 96

    Raises:
        InvalidTick: If tick is outside [MIN_TICK, MAX_TICK]
    """
    check_tick(tick)
    abs_tick = abs(tick)

    ratio = 1 << 128
    for bit, factor in enumerate(_RATIOS):
        if abs_tick & (1 << bit):
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128.128 -> Q64.96, rounding up so that
    # sqrt_price_to_tick(tick_to_sqrt_price(t)) == t
    return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


def sqrt_price_to_tick(sqrt_price: int) -> int:
    """
    Return the greatest tick whose sqrt price does not exceed ``sqrt_price``.

    tick = floor(log_1.0001(sqrt_price ** 2))

    Raises:
        InvalidSqrtPrice: If sqrt_price is outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO]
    """
    if sqrt_price < MIN_SQRT_RATIO or sqrt_price > MAX_SQRT_RATIO:
        raise InvalidSqrtPrice(
            "Sqrt price out of range",
            details={"sqrt_price": sqrt_price},
        )

    # Start from the float estimate and correct it against the exact table.
    # The estimate is never more than a couple of ticks off.
    estimate = math.floor(
        2 * math.log(sqrt_price / Q96) / math.log(1.0001)
    )
    tick = min(max(estimate, MIN_TICK), MAX_TICK)

    while tick > MIN_TICK and tick_to_sqrt_price(tick) > sqrt_price:
        tick -= 1
    while tick < MAX_TICK and tick_to_sqrt_price(tick + 1) <= sqrt_price:
        tick += 1
    return tick


def tick_to_price(tick: int) -> float:
    """Convert tick to actual price (for display)."""
    return 1.0001 ** tick


def price_to_tick(price: float) -> int:
    """Convert a display price to the tick whose bucket contains it."""
    if price <= 0:
        raise InvalidSqrtPrice(
            "Price must be positive",
            details={"price": price},
        )
    return math.floor(math.log(price) / math.log(1.0001))


def sqrt_price_to_price(sqrt_price: int) -> float:
    """Convert a Q64.96 sqrt price to a float price (for display)."""
    return (sqrt_price / Q96) ** 2
