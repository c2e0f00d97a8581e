"""Router: the caller-facing entry point for liquidity and swaps.

Every mutating operation checks its deadline first, then runs as a single
ledger transaction. Inside the transaction pools commit their new reserves
before any asset moves, and a failure anywhere (a later hop, a missing
allowance, a slippage limit) rewinds every pool and balance touched.

Callers move assets only through allowances granted to the router's
account (``config.router_address``). The account whose assets move is the
keyword-only ``sender``, which defaults to ``recipient``.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence

import structlog

from dex.amm.pool import Pool
from dex.amm.quote import quote_calculator
from dex.assets import normalize_asset
from dex.errors import (
    ExcessiveInputAmount,
    Expired,
    InsufficientAmount,
    InsufficientOutputAmount,
    InvalidInput,
)
from dex.ledger import Ledger
from dex.pools.registry import PairRegistry
from dex.routing.multihop import Hop, amounts_in, amounts_out, resolve_hops

logger = structlog.get_logger()


class Router:
    """Orchestrates pool operations against an injected ledger.

    Args:
        ledger: Shared state store (registry, pools, token balances)
        clock: Returns the current unix time in seconds; deadlines are
            compared against it. Override in tests for determinism.
    """

    def __init__(self, ledger: Ledger, clock: Callable[[], float] = time.time) -> None:
        self.ledger = ledger
        self._clock = clock

    @property
    def address(self) -> str:
        """Account the router spends allowances as."""
        return self.ledger.config.router_address

    @property
    def registry(self) -> PairRegistry:
        return self.ledger.registry

    @property
    def fee_bps(self) -> int:
        return self.ledger.config.fee_bps

    # --- Registry pass-throughs ---

    def create_pair(self, asset_a: str, asset_b: str, fee_bps: int | None = None) -> str:
        with self.ledger.transaction("create_pair"):
            return self.registry.create_pair(asset_a, asset_b, fee_bps)

    def get_pair(self, asset_a: str, asset_b: str) -> str | None:
        with self.ledger.read():
            return self.registry.get_pair(asset_a, asset_b)

    def all_pairs_length(self) -> int:
        with self.ledger.read():
            return self.registry.all_pairs_length()

    def get_reserves(self, pool_id: str) -> tuple[int, int]:
        """Reserves of a pool in its canonical asset order."""
        with self.ledger.read():
            return self.registry.get_pool(pool_id).get_reserves()

    def get_reserves_for(self, asset_a: str, asset_b: str) -> tuple[int, int]:
        """Reserves of the (asset_a, asset_b) pool in the caller's order."""
        with self.ledger.read():
            return self.registry.require_pool(asset_a, asset_b).reserves_for(asset_a)

    # --- Authorization ---

    def approve(self, asset: str, owner: str, amount: int, spender: str | None = None) -> None:
        """Let spender (the router by default) move up to amount of owner's asset."""
        with self.ledger.transaction("approve"):
            self.ledger.tokens.approve(asset, owner, spender or self.address, amount)

    def allowance(self, asset: str, owner: str, spender: str | None = None) -> int:
        with self.ledger.read():
            return self.ledger.tokens.allowance(asset, owner, spender or self.address)

    # --- Quotes ---

    def quote(self, amount_a: int, reserve_a: int, reserve_b: int) -> int:
        return quote_calculator.quote(amount_a, reserve_a, reserve_b)

    def get_amount_out(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        return quote_calculator.amount_out(amount_in, reserve_in, reserve_out, self.fee_bps)

    def get_amount_in(self, amount_out: int, reserve_in: int, reserve_out: int) -> int:
        return quote_calculator.amount_in(amount_out, reserve_in, reserve_out, self.fee_bps)

    def get_amounts_out(self, amount_in: int, path: Sequence[str]) -> list[int]:
        """Quote a route from an exact input.

        Returns:
            Amounts of length len(path), starting with amount_in

        Raises:
            InvalidPath: If path has fewer than two assets
            PairNotFound: If any hop has no pool
        """
        with self.ledger.read():
            return amounts_out(self.registry, amount_in, path)

    def get_amounts_in(self, amount_out: int, path: Sequence[str]) -> list[int]:
        """Quote a route backwards from an exact final output."""
        with self.ledger.read():
            return amounts_in(self.registry, amount_out, path)

    # --- Liquidity ---

    def add_liquidity(
        self,
        asset_a: str,
        asset_b: str,
        desired_a: int,
        desired_b: int,
        min_a: int,
        min_b: int,
        recipient: str,
        deadline: float,
        *,
        sender: str | None = None,
    ) -> tuple[int, int, int]:
        """Deposit both assets at the pool's current ratio, creating the pool if needed.

        Returns:
            (amount_a, amount_b, shares) with amounts in the caller's asset order

        Raises:
            Expired: If deadline has passed
            InsufficientAmount: If the matching amount of either asset is below its minimum
            InsufficientAllowance: If the sender has not approved the router
            InsufficientBalance: If the sender lacks the assets
        """
        sender = recipient if sender is None else sender
        self._ensure_not_expired(deadline)
        _require_non_negative(min_a=min_a, min_b=min_b)

        with self.ledger.transaction("add_liquidity"):
            pool = self.registry.pool_for(asset_a, asset_b)
            if pool is None:
                pool = self.registry.get_pool(self.registry.create_pair(asset_a, asset_b))

            amount_a, amount_b = self._optimal_amounts(
                pool, asset_a, desired_a, desired_b, min_a, min_b
            )
            a_is_first = normalize_asset(asset_a) == pool.asset_a
            canonical = (amount_a, amount_b) if a_is_first else (amount_b, amount_a)

            consumed_first, consumed_second, shares = pool.mint(*canonical, recipient)
            if a_is_first:
                consumed_a, consumed_b = consumed_first, consumed_second
            else:
                consumed_a, consumed_b = consumed_second, consumed_first
            if consumed_a < min_a:
                raise InsufficientAmount("A", f"Deposit of {consumed_a} below minimum {min_a}")
            if consumed_b < min_b:
                raise InsufficientAmount("B", f"Deposit of {consumed_b} below minimum {min_b}")

            tokens = self.ledger.tokens
            tokens.transfer_from(pool.asset_a, self.address, sender, pool.pool_id, consumed_first)
            tokens.transfer_from(pool.asset_b, self.address, sender, pool.pool_id, consumed_second)

        logger.info(
            "liquidity_added",
            pool_id=pool.pool_id,
            sender=sender,
            recipient=recipient,
            amount_a=consumed_a,
            amount_b=consumed_b,
            shares=shares,
        )
        return consumed_a, consumed_b, shares

    def remove_liquidity(
        self,
        asset_a: str,
        asset_b: str,
        shares: int,
        min_a: int,
        min_b: int,
        recipient: str,
        deadline: float,
        *,
        sender: str | None = None,
    ) -> tuple[int, int]:
        """Burn the sender's shares and pay both assets to recipient.

        The sender must have approved the router to burn the shares
        (``Pool.approve(sender, router.address, shares)``).

        Returns:
            (amount_a, amount_b) in the caller's asset order

        Raises:
            Expired: If deadline has passed
            PairNotFound: If the pair has no pool
            InsufficientAllowance: If the router may not burn that many shares
            InsufficientShares: If the sender holds fewer shares
            InsufficientOutputAmount: If either payout is below its minimum
        """
        sender = recipient if sender is None else sender
        self._ensure_not_expired(deadline)
        _require_non_negative(min_a=min_a, min_b=min_b)

        with self.ledger.transaction("remove_liquidity"):
            pool = self.registry.require_pool(asset_a, asset_b)
            pool.spend_allowance(sender, self.address, shares)
            paid_first, paid_second = pool.burn(shares, sender)

            if normalize_asset(asset_a) == pool.asset_a:
                amount_a, amount_b = paid_first, paid_second
            else:
                amount_a, amount_b = paid_second, paid_first
            if amount_a < min_a:
                raise InsufficientOutputAmount(f"Asset A payout {amount_a} below minimum {min_a}")
            if amount_b < min_b:
                raise InsufficientOutputAmount(f"Asset B payout {amount_b} below minimum {min_b}")

            tokens = self.ledger.tokens
            tokens.transfer(pool.asset_a, pool.pool_id, recipient, paid_first)
            tokens.transfer(pool.asset_b, pool.pool_id, recipient, paid_second)

        logger.info(
            "liquidity_removed",
            pool_id=pool.pool_id,
            sender=sender,
            recipient=recipient,
            shares=shares,
            amount_a=amount_a,
            amount_b=amount_b,
        )
        return amount_a, amount_b

    # --- Swaps ---

    def swap_exact_tokens_for_tokens(
        self,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[str],
        recipient: str,
        deadline: float,
        *,
        sender: str | None = None,
    ) -> list[int]:
        """Swap an exact input along a route, requiring at least amount_out_min.

        Returns:
            Executed amounts of length len(path), starting with amount_in

        Raises:
            Expired: If deadline has passed
            PairNotFound: If any hop has no pool
            InsufficientOutputAmount: If the final output is below amount_out_min
        """
        sender = recipient if sender is None else sender
        self._ensure_not_expired(deadline)
        _require_non_negative(amount_out_min=amount_out_min)

        with self.ledger.transaction("swap_exact_tokens_for_tokens"):
            hops = resolve_hops(self.registry, path)
            quoted = self.get_amounts_out(amount_in, path)
            if quoted[-1] < amount_out_min:
                raise InsufficientOutputAmount(
                    f"Output {quoted[-1]} below minimum {amount_out_min}"
                )
            executed = self._execute_hops(hops, amount_in, amount_out_min, sender, recipient)

        logger.info(
            "swap_executed",
            kind="exact_in",
            path=[hop.asset_in for hop in hops] + [hops[-1].asset_out],
            amounts=executed,
            sender=sender,
            recipient=recipient,
        )
        return executed

    def swap_tokens_for_exact_tokens(
        self,
        amount_out: int,
        amount_in_max: int,
        path: Sequence[str],
        recipient: str,
        deadline: float,
        *,
        sender: str | None = None,
    ) -> list[int]:
        """Swap along a route for at least amount_out, paying at most amount_in_max.

        Required inputs round up, so the delivered output can exceed
        amount_out by rounding dust; it is never below it. Routes that pass
        through the same pool twice are rejected.

        Returns:
            Executed amounts of length len(path)

        Raises:
            Expired: If deadline has passed
            InvalidPath: If the route passes through the same pool twice
            PairNotFound: If any hop has no pool
            InsufficientLiquidity: If amount_out would drain a reserve
            ExcessiveInputAmount: If the required input exceeds amount_in_max
        """
        sender = recipient if sender is None else sender
        self._ensure_not_expired(deadline)
        _require_non_negative(amount_in_max=amount_in_max)

        with self.ledger.transaction("swap_tokens_for_exact_tokens"):
            hops = resolve_hops(self.registry, path)
            required = self.get_amounts_in(amount_out, path)
            if required[0] > amount_in_max:
                raise ExcessiveInputAmount(
                    f"Required input {required[0]} above maximum {amount_in_max}"
                )
            executed = self._execute_hops(hops, required[0], amount_out, sender, recipient)

        logger.info(
            "swap_executed",
            kind="exact_out",
            path=[hop.asset_in for hop in hops] + [hops[-1].asset_out],
            amounts=executed,
            sender=sender,
            recipient=recipient,
        )
        return executed

    # --- Internals ---

    def _ensure_not_expired(self, deadline: float) -> None:
        now = self._clock()
        if now > deadline:
            logger.info("operation_expired", deadline=deadline, now=now)
            raise Expired(f"Deadline {deadline} passed at {now}")

    def _optimal_amounts(
        self,
        pool: Pool,
        asset_a: str,
        desired_a: int,
        desired_b: int,
        min_a: int,
        min_b: int,
    ) -> tuple[int, int]:
        """Pick deposit amounts that match the pool ratio (caller's asset order)."""
        if desired_a < 0 or desired_b < 0:
            raise InvalidInput(f"Desired amounts cannot be negative: ({desired_a}, {desired_b})")

        reserve_a, reserve_b = pool.reserves_for(asset_a)
        if reserve_a == 0 and reserve_b == 0:
            # First provision sets the price; Pool.mint rejects a zero side
            return desired_a, desired_b

        optimal_b = quote_calculator.quote(desired_a, reserve_a, reserve_b)
        if optimal_b <= desired_b:
            if optimal_b < min_b:
                raise InsufficientAmount("B", f"Matching amount {optimal_b} below minimum {min_b}")
            return desired_a, optimal_b

        optimal_a = quote_calculator.quote(desired_b, reserve_b, reserve_a)
        if optimal_a < min_a:
            raise InsufficientAmount("A", f"Matching amount {optimal_a} below minimum {min_a}")
        return optimal_a, desired_b

    def _execute_hops(
        self,
        hops: list[Hop],
        amount_in: int,
        final_min_out: int,
        sender: str,
        recipient: str,
    ) -> list[int]:
        """Swap through each pool in order; each hop's output feeds the next.

        Each pool commits its reserves before the matching transfers run.
        Intermediate outputs go straight to the next pool.
        """
        tokens = self.ledger.tokens
        executed = [amount_in]
        for i, hop in enumerate(hops):
            is_last = i == len(hops) - 1
            amount_out = hop.pool.swap(executed[-1], hop.asset_in, final_min_out if is_last else 0)
            if i == 0:
                tokens.transfer_from(
                    hop.asset_in, self.address, sender, hop.pool.pool_id, amount_in
                )
            destination = recipient if is_last else hops[i + 1].pool.pool_id
            tokens.transfer(hop.asset_out, hop.pool.pool_id, destination, amount_out)
            executed.append(amount_out)
        return executed


def _require_non_negative(**limits: int) -> None:
    for name, value in limits.items():
        if value < 0:
            raise InvalidInput(f"{name} cannot be negative: {value}")


__all__ = ["Router"]
