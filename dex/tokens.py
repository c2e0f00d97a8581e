"""Fungible asset balances and allowances.

The token ledger is the authorization gate in front of the pools: the
router can only move a caller's assets after the caller approved it.
Pools hold their reserves as ordinary balances under their pool id.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog

from dex.assets import normalize_asset
from dex.errors import InsufficientAllowance, InsufficientBalance, InvalidInput
from dex.models import AllowanceEntry, BalanceEntry
from dex.safe_int import S

logger = structlog.get_logger()

# Marks an entry that did not exist before a journaled write
_MISSING = object()


@dataclass(frozen=True)
class TokenCheckpoint:
    """Undo journal: (table, asset, key, previous value) per write, oldest first."""

    writes: list[tuple[str, str, Any, Any]] = field(default_factory=list)


class TokenLedger:
    """Per-asset balances and spender allowances."""

    def __init__(self) -> None:
        self._balances: defaultdict[str, dict[str, int]] = defaultdict(dict)
        self._allowances: defaultdict[str, dict[tuple[str, str], int]] = defaultdict(dict)
        self._journal: TokenCheckpoint | None = None

    def balance_of(self, asset: str, owner: str) -> int:
        return self._balances.get(normalize_asset(asset), {}).get(owner, 0)

    def allowance(self, asset: str, owner: str, spender: str) -> int:
        return self._allowances.get(normalize_asset(asset), {}).get((owner, spender), 0)

    def approve(self, asset: str, owner: str, spender: str, amount: int) -> None:
        """Set spender's allowance over owner's asset (replaces any prior approval)."""
        if amount < 0:
            raise InvalidInput(f"Allowance cannot be negative: {amount}")
        asset = normalize_asset(asset)
        self._write("allowances", asset, (owner, spender), amount)
        logger.debug("approval", asset=asset, owner=owner, spender=spender, amount=amount)

    def mint(self, asset: str, to: str, amount: int) -> None:
        """Create new units of an asset in an account (test funding, faucets)."""
        if amount <= 0:
            raise InvalidInput(f"Mint amount must be positive: {amount}")
        asset = normalize_asset(asset)
        self._write("balances", asset, to, (S(self.balance_of(asset, to)) + amount).to_uint256())

    def transfer(self, asset: str, sender: str, to: str, amount: int) -> None:
        """Move amount of asset from sender to to.

        Raises:
            InvalidInput: If amount is negative
            InsufficientBalance: If sender holds less than amount
        """
        if amount < 0:
            raise InvalidInput(f"Transfer amount cannot be negative: {amount}")
        asset = normalize_asset(asset)
        held = self.balance_of(asset, sender)
        if held < amount:
            raise InsufficientBalance(f"{sender} holds {held} {asset}, needs {amount}")
        if amount == 0 or sender == to:
            return
        self._write("balances", asset, sender, held - amount)
        self._write("balances", asset, to, (S(self.balance_of(asset, to)) + amount).to_uint256())

    def transfer_from(self, asset: str, spender: str, owner: str, to: str, amount: int) -> None:
        """Move owner's asset on owner's behalf, consuming spender's allowance.

        A zero amount needs no allowance and changes nothing.

        Raises:
            InvalidInput: If amount is negative
            InsufficientAllowance: If spender's allowance is below amount
            InsufficientBalance: If owner holds less than amount
        """
        if spender != owner:
            self.require_allowance(asset, owner, spender, amount)
        self.transfer(asset, owner, to, amount)
        if spender != owner and amount:
            asset = normalize_asset(asset)
            remaining = self.allowance(asset, owner, spender) - amount
            self._write("allowances", asset, (owner, spender), remaining)

    def require_allowance(self, asset: str, owner: str, spender: str, amount: int) -> None:
        """Check an allowance without spending it.

        Raises:
            InsufficientAllowance: If spender's allowance is below amount
        """
        if spender == owner:
            return
        current = self.allowance(asset, owner, spender)
        if current < amount:
            raise InsufficientAllowance(
                f"{spender} may move {current} of {owner}'s "
                f"{normalize_asset(asset)}, needs {amount}"
            )

    # --- State capture ---

    def checkpoint(self) -> TokenCheckpoint:
        """Start journaling writes; ``restore`` undoes everything written since."""
        self._journal = TokenCheckpoint()
        return self._journal

    def release(self, checkpoint: TokenCheckpoint) -> None:
        """Stop journaling into checkpoint (the transaction committed)."""
        if self._journal is checkpoint:
            self._journal = None

    def restore(self, checkpoint: TokenCheckpoint) -> None:
        for table, asset, key, previous in reversed(checkpoint.writes):
            entries = getattr(self, f"_{table}")[asset]
            if previous is _MISSING:
                del entries[key]
            else:
                entries[key] = previous
        checkpoint.writes.clear()
        self.release(checkpoint)

    def _write(self, table: str, asset: str, key: Any, value: int) -> None:
        entries = getattr(self, f"_{table}")[asset]
        if self._journal is not None:
            self._journal.writes.append((table, asset, key, entries.get(key, _MISSING)))
        entries[key] = value

    def balance_entries(self) -> list[BalanceEntry]:
        return [
            BalanceEntry(asset=asset, owner=owner, amount=amount)
            for asset, held in self._balances.items()
            for owner, amount in held.items()
            if amount
        ]

    def allowance_entries(self) -> list[AllowanceEntry]:
        return [
            AllowanceEntry(asset=asset, owner=owner, spender=spender, amount=amount)
            for asset, allowed in self._allowances.items()
            for (owner, spender), amount in allowed.items()
        ]

    def load(self, balances: list[BalanceEntry], allowances: list[AllowanceEntry]) -> None:
        """Replace all balances and allowances with exported entries."""
        self._balances = defaultdict(dict)
        self._allowances = defaultdict(dict)
        for entry in balances:
            self._balances[normalize_asset(entry.asset)][entry.owner] = entry.amount
        for entry in allowances:
            if entry.asset is None:
                raise InvalidInput(f"Token allowance for {entry.owner} has no asset")
            self._allowances[normalize_asset(entry.asset)][(entry.owner, entry.spender)] = (
                entry.amount
            )


__all__ = ["TokenLedger", "TokenCheckpoint"]
