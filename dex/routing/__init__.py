"""Liquidity and swap routing.

Module structure:
- router.py: Router, the caller-facing entry point
- multihop.py: route validation, pool resolution and chained quotes
"""

from dex.routing.multihop import Hop, amounts_in, amounts_out, resolve_hops, validate_path
from dex.routing.router import Router

__all__ = [
    "Hop",
    "Router",
    "amounts_in",
    "amounts_out",
    "resolve_hops",
    "validate_path",
]
