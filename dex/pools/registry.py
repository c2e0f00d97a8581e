"""Pair registry: at most one pool per unordered asset pair.

Pools are keyed by their canonical (asset_a, asset_b) pair and also kept in
an insertion-ordered list so callers can enumerate them by index.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from dex.amm.pool import Pool, PoolCheckpoint
from dex.assets import pair_id, sort_assets
from dex.config import DEFAULT_CONFIG, validate_fee_bps
from dex.errors import InvalidInput, PairExists, PairNotFound

logger = structlog.get_logger()


@dataclass(frozen=True)
class RegistryCheckpoint:
    """Pair count at checkpoint time plus the saved state of every pool written since.

    ``pools`` is keyed by pool id and filled as pools are first touched.
    """

    pair_count: int
    pools: dict[str, PoolCheckpoint]


class PairRegistry:
    """Registry of constant-product pools.

    Creation is the only mutation the registry performs itself; reserve and
    share changes go through the Pool objects it hands out.
    """

    def __init__(self, default_fee_bps: int = DEFAULT_CONFIG.fee_bps) -> None:
        """Initialize an empty registry.

        Args:
            default_fee_bps: Fee given to pools created without an explicit fee
        """
        self.default_fee_bps = validate_fee_bps(default_fee_bps)
        self._pools: dict[tuple[str, str], Pool] = {}
        self._by_id: dict[str, Pool] = {}
        self._all_pairs: list[Pool] = []
        self._journal: RegistryCheckpoint | None = None

    sort_assets = staticmethod(sort_assets)
    pair_id = staticmethod(pair_id)

    def create_pair(self, asset_a: str, asset_b: str, fee_bps: int | None = None) -> str:
        """Register a new empty pool for an asset pair.

        Args:
            asset_a: Either asset of the pair (any order)
            asset_b: The other asset
            fee_bps: Pool fee; defaults to the registry's default fee

        Returns:
            The new pool's id

        Raises:
            IdenticalAssets: If both assets are the same
            PairExists: If a pool for the pair already exists
        """
        key = sort_assets(asset_a, asset_b)
        if key in self._pools:
            raise PairExists(f"Pool for {key[0]}/{key[1]} is {self._pools[key].pool_id}")

        pool = Pool(
            asset_a=key[0],
            asset_b=key[1],
            fee_bps=self.default_fee_bps if fee_bps is None else fee_bps,
        )
        pool.on_write = self._record
        self._pools[key] = pool
        self._by_id[pool.pool_id] = pool
        self._all_pairs.append(pool)

        logger.info(
            "pair_created",
            pool_id=pool.pool_id,
            asset_a=pool.asset_a,
            asset_b=pool.asset_b,
            fee_bps=pool.fee_bps,
            index=len(self._all_pairs) - 1,
        )
        return pool.pool_id

    def get_pair(self, asset_a: str, asset_b: str) -> str | None:
        """Get the pool id for a pair (order independent), or None. Never creates."""
        pool = self.pool_for(asset_a, asset_b)
        return pool.pool_id if pool is not None else None

    def pool_for(self, asset_a: str, asset_b: str) -> Pool | None:
        """Get the pool for a pair (order independent), or None."""
        return self._pools.get(sort_assets(asset_a, asset_b))

    def get_pool(self, pool_id: str) -> Pool:
        """Get a pool by id.

        Raises:
            PairNotFound: If no pool has this id
        """
        pool = self._by_id.get(pool_id.lower() if isinstance(pool_id, str) else pool_id)
        if pool is None:
            raise PairNotFound(f"No pool with id {pool_id}")
        return pool

    def require_pool(self, asset_a: str, asset_b: str) -> Pool:
        """Get the pool for a pair.

        Raises:
            PairNotFound: If the pair is not registered
        """
        pool = self.pool_for(asset_a, asset_b)
        if pool is None:
            first, second = sort_assets(asset_a, asset_b)
            raise PairNotFound(f"No pool for {first}/{second}")
        return pool

    def all_pairs(self, index: int) -> str:
        """Pool id at an insertion index.

        Raises:
            InvalidInput: If index is out of range
        """
        if not 0 <= index < len(self._all_pairs):
            raise InvalidInput(f"Pair index {index} out of range [0, {len(self._all_pairs)})")
        return self._all_pairs[index].pool_id

    def all_pairs_length(self) -> int:
        """Number of registered pairs."""
        return len(self._all_pairs)

    def pools(self) -> list[Pool]:
        """All pools in registration order."""
        return list(self._all_pairs)

    def add_pool(self, pool: Pool) -> None:
        """Register an already-built pool (used when restoring snapshots).

        Raises:
            PairExists: If the pair is already registered
        """
        key = (pool.asset_a, pool.asset_b)
        if key in self._pools:
            raise PairExists(f"Pool for {key[0]}/{key[1]} is {self._pools[key].pool_id}")
        pool.on_write = self._record
        self._pools[key] = pool
        self._by_id[pool.pool_id] = pool
        self._all_pairs.append(pool)

    # --- Rollback support ---

    def checkpoint(self) -> RegistryCheckpoint:
        """Start journaling: each pool is saved on its first write after this call.

        Only the latest checkpoint is journaled into; ``release`` stops it.
        """
        self._journal = RegistryCheckpoint(pair_count=len(self._all_pairs), pools={})
        return self._journal

    def release(self, checkpoint: RegistryCheckpoint) -> None:
        """Stop journaling into checkpoint (the transaction committed)."""
        if self._journal is checkpoint:
            self._journal = None

    def restore(self, checkpoint: RegistryCheckpoint) -> None:
        """Drop pairs created after the checkpoint and rewind touched pools in place."""
        for pool in self._all_pairs[checkpoint.pair_count :]:
            pool.on_write = None
            del self._pools[(pool.asset_a, pool.asset_b)]
            del self._by_id[pool.pool_id]
        del self._all_pairs[checkpoint.pair_count :]
        for pool_id, saved in checkpoint.pools.items():
            pool = self._by_id.get(pool_id)
            # Pools created after the checkpoint are already gone
            if pool is not None:
                pool.restore(saved)
        self.release(checkpoint)

    def _record(self, pool: Pool) -> None:
        journal = self._journal
        if journal is not None and pool.pool_id not in journal.pools:
            journal.pools[pool.pool_id] = pool.checkpoint()

    def __len__(self) -> int:
        return len(self._all_pairs)


__all__ = ["PairRegistry", "RegistryCheckpoint"]
