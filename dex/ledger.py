"""Shared engine state and its transaction discipline.

Ledger bundles the pair registry and the token ledger into one injectable
store. Every mutating router operation runs inside ``Ledger.transaction()``
and every router read inside ``Ledger.read()``:

- one re-entrant lock serializes both, so no caller observes another's
  partial mutation;
- writes inside a transaction are journaled as they happen (each touched
  pool is saved once, each token write records its previous value);
- on any exception the new pairs are dropped, touched pools and token
  entries are rewound in place, and the exception propagates.

Nested transactions join the outermost one.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import structlog

from dex.amm.pool import Pool
from dex.config import DEFAULT_CONFIG, DexConfig
from dex.models import LedgerSnapshot
from dex.pools.registry import PairRegistry, RegistryCheckpoint
from dex.tokens import TokenCheckpoint, TokenLedger

logger = structlog.get_logger()


@dataclass(frozen=True)
class LedgerCheckpoint:
    registry: RegistryCheckpoint
    tokens: TokenCheckpoint


class Ledger:
    """Registry, pools and token balances behind a single lock."""

    def __init__(
        self,
        config: DexConfig = DEFAULT_CONFIG,
        registry: PairRegistry | None = None,
        tokens: TokenLedger | None = None,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else PairRegistry(config.fee_bps)
        self.tokens = tokens if tokens is not None else TokenLedger()
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self, operation: str = "transaction") -> Iterator[Ledger]:
        """Run a block atomically against the ledger.

        Args:
            operation: Name used in the rollback log line

        Yields:
            This ledger
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            checkpoint = self.checkpoint()
            self._depth = 1
            try:
                yield self
            except BaseException as exc:
                self.restore(checkpoint)
                logger.warning(
                    "transaction_rolled_back",
                    operation=operation,
                    error=type(exc).__name__,
                    reason=getattr(exc, "reason", None),
                )
                raise
            else:
                self.release(checkpoint)
            finally:
                self._depth = 0

    @contextmanager
    def read(self) -> Iterator[Ledger]:
        """Hold the ledger lock for a read so it sees only committed state.

        Blocks while another thread's transaction is open; inside a
        transaction on the same thread it sees that transaction's own writes.
        """
        with self._lock:
            yield self

    def checkpoint(self) -> LedgerCheckpoint:
        """Start journaling registry, pool and token writes."""
        return LedgerCheckpoint(
            registry=self.registry.checkpoint(),
            tokens=self.tokens.checkpoint(),
        )

    def release(self, checkpoint: LedgerCheckpoint) -> None:
        self.registry.release(checkpoint.registry)
        self.tokens.release(checkpoint.tokens)

    def restore(self, checkpoint: LedgerCheckpoint) -> None:
        self.registry.restore(checkpoint.registry)
        self.tokens.restore(checkpoint.tokens)

    # --- Export / import ---

    def snapshot(self) -> LedgerSnapshot:
        """Export the full ledger state."""
        with self.read():
            return LedgerSnapshot(
                pools=[pool.snapshot() for pool in self.registry.pools()],
                balances=self.tokens.balance_entries(),
                allowances=self.tokens.allowance_entries(),
            )

    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot, config: DexConfig = DEFAULT_CONFIG) -> Ledger:
        """Rebuild a ledger from exported state, preserving pair order.

        Raises:
            InvalidInput: If a pool snapshot is inconsistent
            PairExists: If the snapshot lists a pair twice
        """
        ledger = cls(config=config)
        for pool_snapshot in snapshot.pools:
            ledger.registry.add_pool(Pool.from_snapshot(pool_snapshot))
        ledger.tokens.load(snapshot.balances, snapshot.allowances)
        logger.info(
            "ledger_restored",
            pair_count=ledger.registry.all_pairs_length(),
            balance_entries=len(snapshot.balances),
        )
        return ledger


__all__ = ["Ledger", "LedgerCheckpoint"]
