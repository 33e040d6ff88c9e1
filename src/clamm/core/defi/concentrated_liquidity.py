"""
Concentrated Liquidity Pool Implementation (Uniswap V3 Style).

Provides capital-efficient liquidity provision through:
- Price range positions keyed by (owner, lower tick, upper tick)
- Tick-based price representation with Q64.96 sqrt prices
- Callback-funded mint and swap with post-callback solvency checks

Security features:
- Tick range validation before any state change
- Balance verification after every payment callback
- Rollback of the touched pool entries and of the operation's own token
  movements when verification fails
- Per-pool lock plus reentrancy guard around every state change
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from .. import config
from ..contracts.erc20 import ERC20Token
from ..exceptions import (
    InsufficientInputAmount,
    InvalidPriceLimit,
    InvalidSwapAmount,
    InvalidTickRange,
    NotEnoughLiquidity,
    PoolAlreadyExists,
    PoolLocked,
    ZeroLiquidity,
)
from ..metrics import PoolMetrics, get_pool_metrics
from .journal import Checkpoint
from .position import Position, PositionRegistry
from .sqrt_price_math import (
    check_sqrt_price,
    compute_swap_step,
    liquidity_to_amounts,
    mul_div,
)
from .tick import TickRegistry
from .tick_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
    sqrt_price_to_price,
    sqrt_price_to_tick,
    tick_to_price,
    tick_to_sqrt_price,
)

logger = logging.getLogger(__name__)


# ==================== Caller Interfaces ====================


@runtime_checkable
class MintCallback(Protocol):
    """Contract that pays for liquidity it mints."""

    address: str

    def on_mint_payment(self, amount0: int, amount1: int, data: Any) -> None:
        """Transfer at least amount0 / amount1 into the pool before returning."""
        ...


@runtime_checkable
class SwapCallback(Protocol):
    """Contract that pays the input side of a swap."""

    address: str

    def on_swap_payment(self, amount0: int, amount1: int, data: Any) -> None:
        """Transfer the positive amount into the pool before returning."""
        ...


# ==================== Events ====================


@dataclass(frozen=True)
class MintEvent:
    sender: str
    owner: str
    tick_lower: int
    tick_upper: int
    amount: int
    amount0: int
    amount1: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SwapEvent:
    sender: str
    recipient: str
    amount0: int
    amount1: int
    sqrt_price: int
    liquidity: int
    tick: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SwapStep:
    """Outcome of one swap step, computed before anything is committed."""
    sqrt_price: int
    tick: int
    liquidity: int
    amount0: int
    amount1: int


# ==================== Pool ====================


@dataclass
class ConcentratedLiquidityPool:
    """
    Concentrated liquidity pool between two tokens.

    Key features:
    - LPs provide liquidity in specific price ranges
    - Only ranges containing the current tick contribute active liquidity
    - Payers fund mints and swaps from a callback; the pool checks its own
      balances afterwards instead of trusting the payer

    Price representation:
    - sqrt price in Q64.96 format
    - tick = floor(log_1.0001(price))
    """

    token0: ERC20Token
    token1: ERC20Token
    sqrt_price: int

    address: str = ""

    # Derived from sqrt_price in __post_init__
    tick: int = 0
    liquidity: int = 0  # Active liquidity

    ticks: TickRegistry = field(default_factory=TickRegistry)
    positions: PositionRegistry = field(default_factory=PositionRegistry)

    events: deque = field(default_factory=deque)
    event_log_limit: int = config.PoolDefaults.EVENT_LOG_LIMIT
    metrics: Optional[PoolMetrics] = None

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    _locked: bool = False

    def __post_init__(self) -> None:
        """Initialize pool."""
        check_sqrt_price(self.sqrt_price)
        self.tick = sqrt_price_to_tick(self.sqrt_price)

        if not self.address:
            addr_hash = hashlib.sha3_256(
                f"clp:{self.token0.address}:{self.token1.address}:{time.time()}".encode()
            ).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"

        self.events = deque(self.events, maxlen=self.event_log_limit or None)

        if self.metrics is None and config.PoolDefaults.METRICS_ENABLED:
            self.metrics = get_pool_metrics()

        logger.info(
            "Pool initialized",
            extra={
                "event": "clamm.initialize",
                "pool": self.address[:10],
                "token0": self.token0.symbol,
                "token1": self.token1.symbol,
                "sqrt_price": self.sqrt_price,
                "tick": self.tick,
            }
        )

    # ==================== Price Utilities ====================

    tick_to_sqrt_price = staticmethod(tick_to_sqrt_price)
    sqrt_price_to_tick = staticmethod(sqrt_price_to_tick)
    tick_to_price = staticmethod(tick_to_price)

    # ==================== Liquidity Provision ====================

    def mint(
        self,
        caller: MintCallback,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        amount: int,
        data: Any = None,
    ) -> tuple[int, int]:
        """
        Add ``amount`` liquidity to ``owner``'s position in [tick_lower, tick_upper).

        The caller's ``on_mint_payment`` is invoked with the token amounts
        owed and must transfer them into the pool before returning.

        Args:
            caller: Paying contract; its address is recorded as the sender
            owner: Position owner; stored, logged and emitted lowercased
            tick_lower: Lower tick of range
            tick_upper: Upper tick of range
            amount: Liquidity amount
            data: Opaque value passed through to the callback

        Returns:
            (amount0, amount1) - tokens paid into the pool

        Raises:
            InvalidTickRange: Malformed or out-of-bounds range
            ZeroLiquidity: amount is not positive
            InsufficientInputAmount: Callback under-paid either token
            PoolLocked: Called from inside another mint/swap callback
        """
        owner = owner.lower()

        with self._lock:
            self._require_not_locked()
            self._locked = True
            try:
                self._validate_ticks(tick_lower, tick_upper)
                if amount <= 0:
                    raise ZeroLiquidity(
                        "Mint amount must be positive",
                        details={"amount": amount},
                    )

                checkpoint = Checkpoint.capture(self)
                try:
                    amount0, amount1 = self._apply_mint(
                        checkpoint, caller, owner, tick_lower, tick_upper, amount, data
                    )
                except Exception:
                    checkpoint.restore()
                    raise
                checkpoint.commit()
            except Exception as e:
                self._record_failure("mint", e, owner=owner)
                if self.metrics:
                    self.metrics.record_mint(self.address, "failed")
                raise
            finally:
                self._locked = False

            self._emit(
                MintEvent(
                    sender=caller.address,
                    owner=owner,
                    tick_lower=tick_lower,
                    tick_upper=tick_upper,
                    amount=amount,
                    amount0=amount0,
                    amount1=amount1,
                )
            )
            if self.metrics:
                self.metrics.record_mint(self.address, "success", amount)
                self._record_state()

            logger.info(
                "Position minted",
                extra={
                    "event": "clamm.mint",
                    "pool": self.address[:10],
                    "owner": owner[:10],
                    "range": f"[{tick_lower}, {tick_upper}]",
                    "liquidity": amount,
                    "amount0": amount0,
                    "amount1": amount1,
                }
            )

            return amount0, amount1

    def _apply_mint(
        self,
        checkpoint: Checkpoint,
        caller: MintCallback,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        amount: int,
        data: Any,
    ) -> tuple[int, int]:
        checkpoint.save_tick(tick_lower)
        checkpoint.save_tick(tick_upper)
        self.ticks.update(tick_lower, amount, upper=False)
        self.ticks.update(tick_upper, amount, upper=True)

        checkpoint.save_position(self.positions.key(owner, tick_lower, tick_upper))
        position = self.positions.get(owner, tick_lower, tick_upper)
        self.positions.update(position, amount)

        amount0, amount1 = liquidity_to_amounts(
            amount,
            tick_to_sqrt_price(tick_lower),
            tick_to_sqrt_price(tick_upper),
            self.sqrt_price,
            round_up=True,
        )

        if tick_lower <= self.tick < tick_upper:
            self.liquidity += amount

        balance0_before = self._balance0() if amount0 > 0 else 0
        balance1_before = self._balance1() if amount1 > 0 else 0

        caller.on_mint_payment(amount0, amount1, data)

        if amount0 > 0:
            self._require_paid(self.token0, balance0_before, amount0)
        if amount1 > 0:
            self._require_paid(self.token1, balance1_before, amount1)

        return amount0, amount1

    # ==================== Swapping ====================

    def swap(
        self,
        caller: SwapCallback,
        recipient: str,
        zero_for_one: bool,
        amount_specified: int,
        data: Any = None,
        sqrt_price_limit: int | None = None,
    ) -> tuple[int, int]:
        """
        Execute a single-step swap.

        The price moves in one direction until the specified amount is used
        up, the price limit is hit, or the next initialized tick is reached,
        whichever comes first. Landing on an initialized tick crosses it.

        Args:
            caller: Paying contract; its address is recorded as the sender
            recipient: Receiver of the output token
            zero_for_one: True for token0->token1, False for token1->token0
            amount_specified: Positive for exact input, negative for exact output
            data: Opaque value passed through to the callback
            sqrt_price_limit: Price the swap may not move past

        Returns:
            (amount0, amount1) - pool balance deltas (negative = paid out)

        Raises:
            InvalidSwapAmount: amount_specified is zero
            InvalidPriceLimit: Limit on the wrong side of the price or out of range
            NotEnoughLiquidity: No active liquidity in the trade direction
            InsufficientInputAmount: Callback under-paid the input token
            PoolLocked: Called from inside another mint/swap callback
        """
        with self._lock:
            self._require_not_locked()
            self._locked = True
            try:
                step = self._compute_swap(zero_for_one, amount_specified, sqrt_price_limit)

                checkpoint = Checkpoint.capture(self)
                try:
                    self._apply_swap(caller, recipient, zero_for_one, step, data)
                except Exception:
                    checkpoint.restore()
                    raise
                checkpoint.commit()
            except Exception as e:
                self._record_failure("swap", e, recipient=recipient)
                if self.metrics:
                    self.metrics.record_swap(self.address, zero_for_one, "failed")
                raise
            finally:
                self._locked = False

            self._emit(
                SwapEvent(
                    sender=caller.address,
                    recipient=recipient,
                    amount0=step.amount0,
                    amount1=step.amount1,
                    sqrt_price=self.sqrt_price,
                    liquidity=self.liquidity,
                    tick=self.tick,
                )
            )
            if self.metrics:
                self.metrics.record_swap(self.address, zero_for_one, "success")
                self._record_state()

            logger.info(
                "Swap executed",
                extra={
                    "event": "clamm.swap",
                    "pool": self.address[:10],
                    "direction": "0->1" if zero_for_one else "1->0",
                    "amount0": step.amount0,
                    "amount1": step.amount1,
                    "tick": self.tick,
                }
            )

            return step.amount0, step.amount1

    def _apply_swap(
        self,
        caller: SwapCallback,
        recipient: str,
        zero_for_one: bool,
        step: SwapStep,
        data: Any,
    ) -> None:
        self.sqrt_price = step.sqrt_price
        self.tick = step.tick
        self.liquidity = step.liquidity

        if zero_for_one:
            token_in, amount_in = self.token0, step.amount0
            token_out, amount_out = self.token1, -step.amount1
        else:
            token_in, amount_in = self.token1, step.amount1
            token_out, amount_out = self.token0, -step.amount0

        # Pay first; the balance check below unwinds this if the payer defaults
        if amount_out > 0:
            token_out.transfer(self.address, recipient, amount_out)

        balance_before = token_in.balance_of(self.address)

        caller.on_swap_payment(step.amount0, step.amount1, data)

        if amount_in > 0:
            self._require_paid(token_in, balance_before, amount_in)

    def quote(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit: int | None = None,
    ) -> SwapStep:
        """
        Preview a swap without executing it.

        Returns:
            The SwapStep ``swap`` would commit with the same arguments
        """
        with self._lock:
            return self._compute_swap(zero_for_one, amount_specified, sqrt_price_limit)

    def _compute_swap(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit: int | None,
    ) -> SwapStep:
        """Price, tick, liquidity and token deltas of one swap step."""
        if amount_specified == 0:
            raise InvalidSwapAmount("Amount must be non-zero")

        if sqrt_price_limit is None:
            sqrt_price_limit = (
                MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1
            )

        if zero_for_one:
            if not MIN_SQRT_RATIO < sqrt_price_limit < self.sqrt_price:
                raise InvalidPriceLimit(
                    "Price limit must be below the current price",
                    details={"sqrt_price_limit": sqrt_price_limit, "sqrt_price": self.sqrt_price},
                )
        else:
            if not self.sqrt_price < sqrt_price_limit < MAX_SQRT_RATIO:
                raise InvalidPriceLimit(
                    "Price limit must be above the current price",
                    details={"sqrt_price_limit": sqrt_price_limit, "sqrt_price": self.sqrt_price},
                )

        liquidity = self.liquidity

        if zero_for_one:
            # Sitting exactly on an initialized tick: cross it before moving down
            on_boundary = self.sqrt_price == tick_to_sqrt_price(self.tick)
            if on_boundary:
                liquidity -= self.ticks.get(self.tick).liquidity_net
            boundary = self.ticks.next_initialized_tick(
                self.tick - 1 if on_boundary else self.tick, lte=True
            )
            sqrt_price_target = sqrt_price_limit
            if boundary is not None:
                sqrt_price_target = max(tick_to_sqrt_price(boundary), sqrt_price_limit)
        else:
            boundary = self.ticks.next_initialized_tick(self.tick, lte=False)
            sqrt_price_target = sqrt_price_limit
            if boundary is not None:
                sqrt_price_target = min(tick_to_sqrt_price(boundary), sqrt_price_limit)

        if liquidity <= 0:
            raise NotEnoughLiquidity(
                "No active liquidity in the trade direction",
                details={"tick": self.tick, "zero_for_one": zero_for_one},
            )

        sqrt_price_next, amount_in, amount_out = compute_swap_step(
            self.sqrt_price,
            sqrt_price_target,
            liquidity,
            amount_specified,
        )

        if sqrt_price_next == self.sqrt_price:
            # Price did not move, so nothing was crossed
            liquidity = self.liquidity
        elif (
            not zero_for_one
            and boundary is not None
            and sqrt_price_next == tick_to_sqrt_price(boundary)
        ):
            liquidity += self.ticks.get(boundary).liquidity_net

        if zero_for_one:
            amount0, amount1 = amount_in, -amount_out
        else:
            amount0, amount1 = -amount_out, amount_in

        return SwapStep(
            sqrt_price=sqrt_price_next,
            tick=sqrt_price_to_tick(sqrt_price_next),
            liquidity=liquidity,
            amount0=amount0,
            amount1=amount1,
        )

    # ==================== Validation ====================

    def _validate_ticks(self, tick_lower: int, tick_upper: int) -> None:
        """Validate tick range."""
        if tick_lower >= tick_upper:
            raise InvalidTickRange(
                "tick_lower must be less than tick_upper",
                details={"tick_lower": tick_lower, "tick_upper": tick_upper},
            )

        if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
            raise InvalidTickRange(
                "Ticks out of range",
                details={"tick_lower": tick_lower, "tick_upper": tick_upper},
            )

    def _require_paid(self, token: ERC20Token, balance_before: int, expected: int) -> None:
        received = token.balance_of(self.address) - balance_before
        if received < expected:
            raise InsufficientInputAmount(
                f"Pool received {received} {token.symbol}, expected {expected}",
                token=token.symbol,
                expected=expected,
                received=received,
                details={"pool": self.address},
            )

    def _require_not_locked(self) -> None:
        if self._locked:
            raise PoolLocked("Pool is locked")

    # ==================== View Functions ====================

    def get_tick(self, tick: int) -> dict:
        """Get tick liquidity details."""
        info = self.ticks.get(tick)
        return {
            "tick": tick,
            "liquidity_gross": info.liquidity_gross,
            "liquidity_net": info.liquidity_net,
            "initialized": info.initialized,
        }

    def is_tick_initialized(self, tick: int) -> bool:
        return self.ticks.is_initialized(tick)

    def get_position(self, owner: str, tick_lower: int, tick_upper: int) -> dict | None:
        """Get position details, including what its liquidity is worth now."""
        position: Position | None = self.positions.find(owner, tick_lower, tick_upper)
        if position is None:
            return None

        # Round down: this is what the pool would owe the owner
        amount0, amount1 = liquidity_to_amounts(
            position.liquidity,
            tick_to_sqrt_price(position.tick_lower),
            tick_to_sqrt_price(position.tick_upper),
            self.sqrt_price,
            round_up=False,
        )

        return {
            "owner": position.owner,
            "tick_lower": position.tick_lower,
            "tick_upper": position.tick_upper,
            "price_lower": tick_to_price(position.tick_lower),
            "price_upper": tick_to_price(position.tick_upper),
            "liquidity": position.liquidity,
            "amount0": amount0,
            "amount1": amount1,
            "in_range": position.is_in_range(self.tick),
        }

    def get_pool_state(self) -> dict:
        """Get current pool state."""
        return {
            "address": self.address,
            "token0": self.token0.address,
            "token1": self.token1.address,
            "sqrt_price": self.sqrt_price,
            "tick": self.tick,
            "price": sqrt_price_to_price(self.sqrt_price),
            "liquidity": self.liquidity,
            "balance0": self._balance0(),
            "balance1": self._balance1(),
            "positions_count": len(self.positions),
            "initialized_ticks": len(self.ticks.initialized_ticks()),
        }

    def snapshot(self) -> dict:
        """Plain-data copy of every ledger, for comparisons and persistence."""
        with self._lock:
            return {
                "sqrt_price": self.sqrt_price,
                "tick": self.tick,
                "liquidity": self.liquidity,
                "ticks": {
                    tick: (info.liquidity_gross, info.liquidity_net)
                    for tick, info in self.ticks.ticks.items()
                },
                "positions": {
                    tuple(key): position.liquidity
                    for key, position in self.positions.positions.items()
                },
            }

    # ==================== Helpers ====================

    def _balance0(self) -> int:
        return self.token0.balance_of(self.address)

    def _balance1(self) -> int:
        return self.token1.balance_of(self.address)

    def _emit(self, event: MintEvent | SwapEvent) -> None:
        self.events.append(event)

    def _record_state(self) -> None:
        self.metrics.record_state(
            self.address,
            tick=self.tick,
            liquidity=self.liquidity,
            positions=len(self.positions),
            initialized_ticks=len(self.ticks.initialized_ticks()),
        )

    def _record_failure(self, operation: str, error: Exception, **context: Any) -> None:
        logger.warning(
            "%s rejected: %s - %s",
            operation.capitalize(),
            type(error).__name__,
            str(error),
            extra={
                "event": f"clamm.{operation}_failed",
                "pool": self.address[:10],
                "error_type": type(error).__name__,
                **{k: str(v)[:10] for k, v in context.items()},
            }
        )


# ==================== Factory ====================


@dataclass
class ConcentratedLiquidityFactory:
    """Factory for deploying concentrated liquidity pools."""

    address: str = ""
    owner: str = ""

    # Deployed pools
    pools: dict[str, ConcentratedLiquidityPool] = field(default_factory=dict)

    # Pool lookup by sorted token pair
    pool_by_pair: dict[tuple[str, str], str] = field(default_factory=dict)

    metrics: Optional[PoolMetrics] = None

    def __post_init__(self) -> None:
        """Initialize factory."""
        if not self.address:
            addr_hash = hashlib.sha3_256(
                f"clp_factory:{time.time()}".encode()
            ).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"

    def create_pool(
        self,
        caller: str,
        token0: ERC20Token,
        token1: ERC20Token,
        initial_sqrt_price: int,
    ) -> ConcentratedLiquidityPool:
        """
        Create a new concentrated liquidity pool.

        Args:
            caller: Pool creator
            token0: First token
            token1: Second token
            initial_sqrt_price: Initial sqrt price of token1 in token0 (Q64.96),
                for the pair in the order given

        Returns:
            Created pool, with tokens sorted by address
        """
        if token0.address == token1.address:
            raise PoolAlreadyExists("Pool tokens must differ")

        if token0.address > token1.address:
            token0, token1 = token1, token0
            # Invert sqrt price with full precision
            initial_sqrt_price = mul_div(Q96, Q96, initial_sqrt_price, round_up=False)

        pair_key = (token0.address, token1.address)
        if pair_key in self.pool_by_pair:
            raise PoolAlreadyExists(
                f"Pool already exists for {token0.symbol}/{token1.symbol}",
                details={"pool": self.pool_by_pair[pair_key]},
            )

        pool = ConcentratedLiquidityPool(
            token0=token0,
            token1=token1,
            sqrt_price=initial_sqrt_price,
            metrics=self.metrics,
        )

        self.pools[pool.address] = pool
        self.pool_by_pair[pair_key] = pool.address

        logger.info(
            "Concentrated liquidity pool created",
            extra={
                "event": "factory.pool_created",
                "pool": pool.address[:10],
                "pair": f"{token0.symbol}:{token1.symbol}",
                "creator": caller[:10],
            }
        )

        return pool

    def get_pool(
        self,
        token_a: ERC20Token,
        token_b: ERC20Token,
    ) -> ConcentratedLiquidityPool | None:
        """Get pool by token pair, in either order."""
        pair = tuple(sorted((token_a.address, token_b.address)))
        pool_address = self.pool_by_pair.get(pair)
        if not pool_address:
            return None
        return self.pools.get(pool_address)
