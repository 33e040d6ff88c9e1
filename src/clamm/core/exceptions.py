"""
Pool-specific exception hierarchy for clamm.

Provides typed exceptions for pool and token operations so callers can tell a
malformed tick range from an under-funded payment without parsing messages.
Every error here is a rejected operation: the call that raised it has left no
trace in pool or token state.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class ClammError(Exception):
    """Base exception for all clamm errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ==================== Pool Errors ====================


class PoolError(ClammError):
    """Raised when a pool operation is rejected."""
    pass


class InvalidTickRange(PoolError):
    """Raised when a tick pair is malformed or out of bounds.

    Examples: lower tick not strictly below upper tick, either tick outside
    [MIN_TICK, MAX_TICK].
    """
    pass


class InvalidTick(PoolError):
    """Raised when a single tick reference falls outside global bounds."""
    pass


class InvalidSqrtPrice(PoolError):
    """Raised when a sqrt price is outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO]."""
    pass


class ZeroLiquidity(PoolError):
    """Raised when a liquidity change of zero is requested where one is required."""
    pass


class InsufficientInputAmount(PoolError):
    """Raised when the payer under-funds a mint or swap callback."""

    def __init__(
        self,
        message: str,
        token: Optional[str] = None,
        expected: int = 0,
        received: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.token = token
        self.expected = expected
        self.received = received


class NotEnoughLiquidity(PoolError):
    """Raised when a swap is attempted with no active liquidity."""
    pass


class InvalidSwapAmount(PoolError):
    """Raised when a swap specifies a zero amount."""
    pass


class InvalidPriceLimit(PoolError):
    """Raised when a swap price limit is on the wrong side of the current price."""
    pass


class PoolLocked(PoolError):
    """Raised on a nested mint/swap from inside a payment callback."""
    pass


class PoolAlreadyExists(PoolError):
    """Raised when a factory already holds a pool for a token pair."""
    pass


# ==================== Token Errors ====================


class TokenError(ClammError):
    """Raised when a token transfer, approval or mint fails."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(ClammError):
    """Raised when required configuration is missing or invalid."""
    pass
