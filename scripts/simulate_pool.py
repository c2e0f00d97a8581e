#!/usr/bin/env python3
"""Randomized pool simulation with invariant checks after every step.

Seeds an A/B and a B/C pool, then runs random swaps (single and two-hop) and
liquidity changes from a handful of traders. After each step it verifies:
- the constant product of every pool never decreases on a swap
- share balances sum to total shares
- every pool's token balance equals its reserves

Usage:
  python scripts/simulate_pool.py --steps 500 --seed 7
  python scripts/simulate_pool.py --fee-bps 5 --snapshot state.json -v
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

import structlog

from dex import DexConfig, Ledger, Router
from dex.errors import DexError

logger = structlog.get_logger()

ASSET_A = "0x" + "a" * 40
ASSET_B = "0x" + "b" * 40
ASSET_C = "0x" + "c" * 40
FAR_FUTURE = 2**32 - 1


def check_invariants(ledger: Ledger) -> list[str]:
    """Return a description of every violated ledger invariant."""
    problems = []
    for pool in ledger.registry.pools():
        snapshot = pool.snapshot()
        if sum(snapshot.shares.values()) != pool.total_shares:
            problems.append(f"{pool.pool_id}: share balances do not sum to total")
        if (pool.total_shares == 0) != (pool.reserve_a == 0 and pool.reserve_b == 0):
            problems.append(f"{pool.pool_id}: reserves/shares emptiness mismatch")
        held_a = ledger.tokens.balance_of(pool.asset_a, pool.pool_id)
        held_b = ledger.tokens.balance_of(pool.asset_b, pool.pool_id)
        if (held_a, held_b) != pool.get_reserves():
            problems.append(f"{pool.pool_id}: balances {held_a},{held_b} != reserves")
    return problems


def products(ledger: Ledger) -> dict[str, int]:
    return {pool.pool_id: pool.reserve_a * pool.reserve_b for pool in ledger.registry.pools()}


def simulate(
    steps: int, seed: int, config: DexConfig, traders: int
) -> tuple[Ledger, dict[str, int]]:
    """Run the simulation and return the final ledger plus outcome counts."""
    rng = random.Random(seed)
    ledger = Ledger(config)
    router = Router(ledger, clock=lambda: 0)
    accounts = [f"trader-{i}" for i in range(traders)]

    for account in ["lp", *accounts]:
        for asset in (ASSET_A, ASSET_B, ASSET_C):
            ledger.tokens.mint(asset, account, config.parse_units("1000000"))
            router.approve(asset, account, 2**255)

    units = config.parse_units
    router.add_liquidity(
        ASSET_A, ASSET_B, units("10000"), units("20000"), 0, 0, "lp", FAR_FUTURE
    )
    router.add_liquidity(
        ASSET_B, ASSET_C, units("20000"), units("5000"), 0, 0, "lp", FAR_FUTURE
    )

    outcomes = {"swap": 0, "add": 0, "remove": 0, "rejected": 0}
    paths = [
        [ASSET_A, ASSET_B],
        [ASSET_B, ASSET_A],
        [ASSET_B, ASSET_C],
        [ASSET_A, ASSET_B, ASSET_C],
        [ASSET_C, ASSET_B, ASSET_A],
    ]

    for step in range(steps):
        account = rng.choice(accounts)
        action = rng.choices(["swap", "add", "remove"], weights=[8, 1, 1])[0]
        before = products(ledger)
        try:
            if action == "swap":
                path = rng.choice(paths)
                amount_in = rng.randint(1, config.parse_units("500"))
                router.swap_exact_tokens_for_tokens(amount_in, 0, path, account, FAR_FUTURE)
                after = products(ledger)
                for pool_id, product in before.items():
                    if after[pool_id] < product:
                        raise SystemExit(f"step {step}: product decreased in {pool_id}")
            elif action == "add":
                pair = rng.choice([(ASSET_A, ASSET_B), (ASSET_B, ASSET_C)])
                router.add_liquidity(
                    *pair,
                    rng.randint(1, config.parse_units("1000")),
                    rng.randint(1, config.parse_units("1000")),
                    0,
                    0,
                    account,
                    FAR_FUTURE,
                )
            else:
                pool = rng.choice(ledger.registry.pools())
                held = pool.share_balance(account)
                if held == 0:
                    continue
                shares = rng.randint(1, held)
                pool.approve(account, router.address, shares)
                router.remove_liquidity(
                    pool.asset_a, pool.asset_b, shares, 0, 0, account, FAR_FUTURE
                )
            outcomes[action] += 1
        except DexError as exc:
            outcomes["rejected"] += 1
            logger.debug("step_rejected", step=step, action=action, reason=exc.reason)

        problems = check_invariants(ledger)
        if problems:
            raise SystemExit(f"step {step}: " + "; ".join(problems))

    return ledger, outcomes


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run a randomized AMM simulation and check invariants",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--steps", type=int, default=1000, help="Number of random operations")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--traders", type=int, default=4, help="Number of trading accounts")
    parser.add_argument(
        "--fee-bps", type=int, default=None, help="Pool fee (default: DEX_FEE_BPS or 30)"
    )
    parser.add_argument(
        "--snapshot", type=Path, default=None, help="Write final ledger state as JSON"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )

    config = DexConfig.from_env()
    if args.fee_bps is not None:
        config = DexConfig(
            fee_bps=args.fee_bps,
            decimals=config.decimals,
            router_address=config.router_address,
        )

    ledger, outcomes = simulate(args.steps, args.seed, config, args.traders)

    print("=" * 60)
    print(f"Steps: {args.steps}  seed: {args.seed}  fee: {config.fee_bps} bps")
    print(f"Outcomes: {outcomes}")
    fmt = config.format_units
    for pool in ledger.registry.pools():
        print(
            f"  {pool.asset_a[:8]}/{pool.asset_b[:8]}  "
            f"reserves=({fmt(pool.reserve_a)}, {fmt(pool.reserve_b)})  "
            f"shares={fmt(pool.total_shares)}"
        )
    print("All invariants held.")

    if args.snapshot is not None:
        args.snapshot.write_text(ledger.snapshot().model_dump_json(by_alias=True, indent=2))
        print(f"Snapshot written to {args.snapshot}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
