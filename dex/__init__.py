"""Constant-product AMM engine: pools, pair registry and router."""

from dex.amm import Pool, QuoteCalculator, quote_calculator
from dex.config import DEFAULT_CONFIG, DexConfig
from dex.ledger import Ledger
from dex.pools import PairRegistry
from dex.routing import Router
from dex.tokens import TokenLedger

__version__ = "0.1.0"
__all__ = [
    "DEFAULT_CONFIG",
    "DexConfig",
    "Ledger",
    "PairRegistry",
    "Pool",
    "QuoteCalculator",
    "Router",
    "TokenLedger",
    "quote_calculator",
    "__version__",
]
