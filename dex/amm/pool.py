"""Constant-product liquidity pool.

A Pool holds reserves of two assets in canonical order and issues shares
that are proportional claims on those reserves. Reserves and shares change
only through mint, burn and swap; each computes the full new state first and
commits it in one step, so a failing call leaves the pool untouched.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from dex.amm.quote import quote_calculator
from dex.assets import normalize_asset, pair_id
from dex.config import validate_fee_bps
from dex.constants import BPS_DENOMINATOR, DEFAULT_FEE_BPS
from dex.errors import (
    InsufficientAllowance,
    InsufficientInitialLiquidity,
    InsufficientLiquidity,
    InsufficientLiquidityBurned,
    InsufficientLiquidityMinted,
    InsufficientOutputAmount,
    InsufficientShares,
    InvalidInput,
    InvariantFault,
)
from dex.models import AllowanceEntry, PoolSnapshot
from dex.safe_int import S, isqrt, mul_div, mul_div_up

logger = structlog.get_logger()


@dataclass(frozen=True)
class PoolCheckpoint:
    """Saved pool state used to roll back a failed transaction."""

    reserve_a: int
    reserve_b: int
    total_shares: int
    shares: dict[str, int]
    allowances: dict[tuple[str, str], int]


@dataclass
class Pool:
    """Reserve and share ledger for one asset pair.

    asset_a < asset_b always holds; amounts passed to mint and returned by
    burn and get_reserves follow that order.
    """

    asset_a: str
    asset_b: str
    # Fee in basis points (30 = 0.3%)
    fee_bps: int = DEFAULT_FEE_BPS
    reserve_a: int = 0
    reserve_b: int = 0
    total_shares: int = 0
    _shares: dict[str, int] = field(default_factory=dict, repr=False)
    _allowances: dict[tuple[str, str], int] = field(default_factory=dict, repr=False)
    # Called with the pool before its first write; the registry journals it
    on_write: Callable[[Pool], None] | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.asset_a = normalize_asset(self.asset_a)
        self.asset_b = normalize_asset(self.asset_b)
        if self.asset_a >= self.asset_b:
            raise InvalidInput(
                f"Pool assets must be in canonical order: {self.asset_a} < {self.asset_b}"
            )
        validate_fee_bps(self.fee_bps)
        self.pool_id = pair_id(self.asset_a, self.asset_b)

    # --- Reads ---

    def get_reserves(self) -> tuple[int, int]:
        """Current (reserve_a, reserve_b)."""
        return self.reserve_a, self.reserve_b

    def has_asset(self, asset: str) -> bool:
        return normalize_asset(asset) in (self.asset_a, self.asset_b)

    def reserves_for(self, asset_in: str) -> tuple[int, int]:
        """Get reserves ordered as (reserve_in, reserve_out)."""
        asset = normalize_asset(asset_in)
        if asset == self.asset_a:
            return self.reserve_a, self.reserve_b
        if asset == self.asset_b:
            return self.reserve_b, self.reserve_a
        raise InvalidInput(f"Asset {asset_in} not in pool {self.pool_id}")

    def other_asset(self, asset: str) -> str:
        """Get the output asset for a given input asset."""
        norm = normalize_asset(asset)
        if norm == self.asset_a:
            return self.asset_b
        if norm == self.asset_b:
            return self.asset_a
        raise InvalidInput(f"Asset {asset} not in pool {self.pool_id}")

    def share_balance(self, owner: str) -> int:
        return self._shares.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    # --- Share approvals ---

    def approve(self, owner: str, spender: str, shares: int) -> None:
        """Let spender burn up to `shares` of owner's shares (replaces any prior approval)."""
        if shares < 0:
            raise InvalidInput(f"Allowance cannot be negative: {shares}")
        self._before_write()
        self._allowances[(owner, spender)] = shares

    def spend_allowance(self, owner: str, spender: str, shares: int) -> None:
        """Consume part of spender's share allowance; an owner spends freely.

        Raises:
            InsufficientAllowance: If the allowance is below shares
        """
        if shares < 0:
            raise InvalidInput(f"Shares cannot be negative: {shares}")
        if owner == spender:
            return
        current = self.allowance(owner, spender)
        if current < shares:
            raise InsufficientAllowance(
                f"{spender} may burn {current} of {owner}'s shares, needs {shares}"
            )
        self._before_write()
        self._allowances[(owner, spender)] = current - shares

    # --- Mutations ---

    def mint(self, amount_a: int, amount_b: int, recipient: str) -> tuple[int, int, int]:
        """Deposit both assets and mint shares to recipient.

        The first provision mints isqrt(amount_a * amount_b) and sets the
        price. Later deposits mint the smaller of the two proportional share
        counts and consume only what those shares are worth (rounded up), so
        an unbalanced deposit cannot move the price; the excess stays with
        the caller.

        Returns:
            (consumed_a, consumed_b, minted)

        Raises:
            InvalidInput: If either amount is negative
            InsufficientInitialLiquidity: If the first provision mints nothing
            InsufficientLiquidityMinted: If a later deposit mints nothing
        """
        if amount_a < 0 or amount_b < 0:
            raise InvalidInput(f"Deposit amounts cannot be negative: ({amount_a}, {amount_b})")

        if self.total_shares == 0:
            minted = isqrt(S(amount_a) * S(amount_b)).value
            if minted <= 0:
                raise InsufficientInitialLiquidity(
                    f"isqrt({amount_a} * {amount_b}) mints no shares"
                )
            consumed_a, consumed_b = amount_a, amount_b
        else:
            minted = (
                mul_div(amount_a, self.total_shares, self.reserve_a)
                .min(mul_div(amount_b, self.total_shares, self.reserve_b))
                .value
            )
            if minted <= 0:
                raise InsufficientLiquidityMinted(
                    f"Deposit ({amount_a}, {amount_b}) is worth less than one share"
                )
            consumed_a = mul_div_up(minted, self.reserve_a, self.total_shares).value
            consumed_b = mul_div_up(minted, self.reserve_b, self.total_shares).value

        self._before_write()
        self.reserve_a = (S(self.reserve_a) + consumed_a).to_uint256()
        self.reserve_b = (S(self.reserve_b) + consumed_b).to_uint256()
        self.total_shares += minted
        self._shares[recipient] = self.share_balance(recipient) + minted

        logger.debug(
            "pool_mint",
            pool_id=self.pool_id,
            recipient=recipient,
            consumed_a=consumed_a,
            consumed_b=consumed_b,
            minted=minted,
        )
        return consumed_a, consumed_b, minted

    def burn(self, shares: int, owner: str) -> tuple[int, int]:
        """Burn owner's shares and release the proportional reserves.

        Returns:
            (amount_a, amount_b), each rounded down

        Raises:
            InvalidInput: If shares is not positive
            InsufficientShares: If owner holds fewer than shares
            InsufficientLiquidityBurned: If either payout rounds to zero
        """
        if shares <= 0:
            raise InvalidInput(f"Shares to burn must be positive: {shares}")
        balance = self.share_balance(owner)
        if shares > balance:
            raise InsufficientShares(f"{owner} holds {balance} shares, tried to burn {shares}")

        amount_a = mul_div(shares, self.reserve_a, self.total_shares).value
        amount_b = mul_div(shares, self.reserve_b, self.total_shares).value
        if amount_a == 0 or amount_b == 0:
            raise InsufficientLiquidityBurned(
                f"Burning {shares} shares pays ({amount_a}, {amount_b})"
            )

        self._before_write()
        self.reserve_a = (S(self.reserve_a) - amount_a).value
        self.reserve_b = (S(self.reserve_b) - amount_b).value
        self.total_shares -= shares
        if balance == shares:
            del self._shares[owner]
        else:
            self._shares[owner] = balance - shares

        logger.debug(
            "pool_burn",
            pool_id=self.pool_id,
            owner=owner,
            shares=shares,
            amount_a=amount_a,
            amount_b=amount_b,
        )
        return amount_a, amount_b

    def swap(self, amount_in: int, asset_in: str, min_amount_out: int = 0) -> int:
        """Swap an exact input for as much of the other asset as the curve allows.

        Returns:
            Output amount

        Raises:
            InvalidInput: If asset_in is not in the pool or amount_in is not positive
            InsufficientLiquidity: If the pool has no reserves
            InsufficientOutputAmount: If the output is zero or below min_amount_out
            InvariantFault: If the fee-adjusted product would decrease
        """
        reserve_in, reserve_out = self.reserves_for(asset_in)
        if amount_in <= 0:
            raise InvalidInput(f"amount_in must be positive: {amount_in}")
        if reserve_in == 0 or reserve_out == 0:
            raise InsufficientLiquidity(f"Pool {self.pool_id} has no reserves")

        amount_out = quote_calculator.amount_out(amount_in, reserve_in, reserve_out, self.fee_bps)
        if amount_out == 0 or amount_out < min_amount_out:
            raise InsufficientOutputAmount(
                f"Output {amount_out} below minimum {max(min_amount_out, 1)}"
            )

        new_in = (S(reserve_in) + amount_in).to_uint256()
        new_out = (S(reserve_out) - amount_out).value
        self._check_invariant(reserve_in, reserve_out, new_in, new_out, amount_in)

        self._before_write()
        if normalize_asset(asset_in) == self.asset_a:
            self.reserve_a, self.reserve_b = new_in, new_out
        else:
            self.reserve_b, self.reserve_a = new_in, new_out

        logger.debug(
            "pool_swap",
            pool_id=self.pool_id,
            asset_in=normalize_asset(asset_in),
            amount_in=amount_in,
            amount_out=amount_out,
        )
        return amount_out

    def _check_invariant(
        self,
        reserve_in: int,
        reserve_out: int,
        new_in: int,
        new_out: int,
        amount_in: int,
    ) -> None:
        """Fee-adjusted k check; implies new_in * new_out >= reserve_in * reserve_out."""
        adjusted_in = new_in * BPS_DENOMINATOR - amount_in * self.fee_bps
        adjusted_out = new_out * BPS_DENOMINATOR
        if adjusted_in * adjusted_out < reserve_in * reserve_out * BPS_DENOMINATOR**2:
            logger.error(
                "invariant_violation",
                pool_id=self.pool_id,
                reserve_in=reserve_in,
                reserve_out=reserve_out,
                new_in=new_in,
                new_out=new_out,
            )
            raise InvariantFault(
                f"Product decreased in pool {self.pool_id}: "
                f"{reserve_in}*{reserve_out} -> {new_in}*{new_out}"
            )

    # --- State capture ---

    def _before_write(self) -> None:
        if self.on_write is not None:
            self.on_write(self)

    def checkpoint(self) -> PoolCheckpoint:
        return PoolCheckpoint(
            reserve_a=self.reserve_a,
            reserve_b=self.reserve_b,
            total_shares=self.total_shares,
            shares=dict(self._shares),
            allowances=dict(self._allowances),
        )

    def restore(self, checkpoint: PoolCheckpoint) -> None:
        self.reserve_a = checkpoint.reserve_a
        self.reserve_b = checkpoint.reserve_b
        self.total_shares = checkpoint.total_shares
        self._shares = dict(checkpoint.shares)
        self._allowances = dict(checkpoint.allowances)

    def snapshot(self) -> PoolSnapshot:
        """Export pool state as a pydantic model."""
        return PoolSnapshot(
            pool_id=self.pool_id,
            asset_a=self.asset_a,
            asset_b=self.asset_b,
            fee_bps=self.fee_bps,
            reserve_a=self.reserve_a,
            reserve_b=self.reserve_b,
            total_shares=self.total_shares,
            shares=dict(self._shares),
            share_allowances=[
                AllowanceEntry(owner=owner, spender=spender, amount=amount)
                for (owner, spender), amount in self._allowances.items()
            ],
        )

    @classmethod
    def from_snapshot(cls, snapshot: PoolSnapshot) -> Pool:
        """Rebuild a pool from exported state.

        Raises:
            InvalidInput: If the snapshot's id or share ledger is inconsistent
        """
        pool = cls(
            asset_a=snapshot.asset_a,
            asset_b=snapshot.asset_b,
            fee_bps=snapshot.fee_bps,
            reserve_a=snapshot.reserve_a,
            reserve_b=snapshot.reserve_b,
            total_shares=snapshot.total_shares,
            _shares={owner: amount for owner, amount in snapshot.shares.items() if amount},
            _allowances={
                (entry.owner, entry.spender): entry.amount for entry in snapshot.share_allowances
            },
        )
        if pool.pool_id != snapshot.pool_id:
            raise InvalidInput(f"Snapshot id {snapshot.pool_id} does not match {pool.pool_id}")
        if sum(pool._shares.values()) != pool.total_shares:
            raise InvalidInput(f"Share balances of {pool.pool_id} do not sum to total_shares")
        if (pool.total_shares == 0) != (pool.reserve_a == 0 and pool.reserve_b == 0):
            raise InvalidInput(f"Reserves of {pool.pool_id} inconsistent with total_shares")
        return pool


__all__ = ["Pool", "PoolCheckpoint"]
