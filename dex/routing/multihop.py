"""Route resolution and quoting across consecutive pools."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from dex.amm.pool import Pool
from dex.amm.quote import quote_calculator
from dex.assets import normalize_asset, sort_assets
from dex.errors import InvalidPath
from dex.pools.registry import PairRegistry


@dataclass(frozen=True)
class Hop:
    """One leg of a route."""

    pool: Pool
    asset_in: str
    asset_out: str

    def reserves(self) -> tuple[int, int]:
        """(reserve_in, reserve_out) at call time."""
        return self.pool.reserves_for(self.asset_in)


def validate_path(path: Sequence[str]) -> list[str]:
    """Normalize a route and check its shape.

    Raises:
        InvalidPath: If the route has fewer than two assets
        IdenticalAssets: If two consecutive assets are the same
    """
    if isinstance(path, str) or len(path) < 2:
        raise InvalidPath(f"Route needs at least two assets, got {path!r}")
    normalized = [normalize_asset(asset) for asset in path]
    for asset_in, asset_out in zip(normalized, normalized[1:]):
        sort_assets(asset_in, asset_out)
    return normalized


def resolve_hops(registry: PairRegistry, path: Sequence[str]) -> list[Hop]:
    """Look up the pool for every consecutive pair of the route.

    Raises:
        InvalidPath: If the route is too short
        PairNotFound: If any hop has no pool
    """
    assets = validate_path(path)
    return [
        Hop(pool=registry.require_pool(asset_in, asset_out), asset_in=asset_in, asset_out=asset_out)
        for asset_in, asset_out in zip(assets, assets[1:])
    ]


def amounts_out(registry: PairRegistry, amount_in: int, path: Sequence[str]) -> list[int]:
    """Forward-quote a route from an exact input.

    A route may pass through the same pool more than once (A -> B -> A);
    each visit is priced against the reserves the earlier hops leave behind,
    so the quote matches what executing the route would return.

    Returns:
        Amounts of length len(path), starting with amount_in
    """
    hops = resolve_hops(registry, path)
    if not _revisits_pool(hops):
        return quote_calculator.quote_path(
            amount_in,
            [hop.reserves() for hop in hops],
            [hop.pool.fee_bps for hop in hops],
        )

    # pool_id -> (reserve_a, reserve_b) after the hops priced so far
    reserves: dict[str, tuple[int, int]] = {}
    amounts = [amount_in]
    for hop in hops:
        pool = hop.pool
        reserve_a, reserve_b = reserves.get(pool.pool_id, pool.get_reserves())
        forward = hop.asset_in == pool.asset_a
        reserve_in, reserve_out = (reserve_a, reserve_b) if forward else (reserve_b, reserve_a)
        amount_out = quote_calculator.amount_out(amounts[-1], reserve_in, reserve_out, pool.fee_bps)
        reserve_in, reserve_out = reserve_in + amounts[-1], reserve_out - amount_out
        reserves[pool.pool_id] = (reserve_in, reserve_out) if forward else (reserve_out, reserve_in)
        amounts.append(amount_out)
    return amounts


def amounts_in(registry: PairRegistry, amount_out: int, path: Sequence[str]) -> list[int]:
    """Backward-quote a route from an exact final output.

    Returns:
        Amounts of length len(path), ending with amount_out

    Raises:
        InvalidPath: If the route passes through the same pool twice
    """
    hops = resolve_hops(registry, path)
    if _revisits_pool(hops):
        raise InvalidPath(f"Exact-output route passes through a pool twice: {list(path)!r}")
    return quote_calculator.quote_path_in(
        amount_out,
        [hop.reserves() for hop in hops],
        [hop.pool.fee_bps for hop in hops],
    )


def _revisits_pool(hops: list[Hop]) -> bool:
    return len({hop.pool.pool_id for hop in hops}) < len(hops)


__all__ = ["Hop", "validate_path", "resolve_hops", "amounts_out", "amounts_in"]
