"""Pool management package.

Provides PairRegistry, the directory of one pool per asset pair.
"""

from .registry import PairRegistry, RegistryCheckpoint

__all__ = [
    "PairRegistry",
    "RegistryCheckpoint",
]
