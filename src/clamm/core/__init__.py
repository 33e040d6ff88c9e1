"""
clamm Core Module

Core functionality for the concentrated-liquidity pool including:
- Configuration and structured logging
- Typed exceptions
- Token contracts used as the pool's asset interface
- The pool, its registries and the fixed-point math they depend on
"""

__all__ = []
