"""Constant-product AMM: pricing math and the pool state machine."""

from dex.amm.pool import Pool, PoolCheckpoint
from dex.amm.quote import QuoteCalculator, quote_calculator

__all__ = [
    "Pool",
    "PoolCheckpoint",
    "QuoteCalculator",
    "quote_calculator",
]
