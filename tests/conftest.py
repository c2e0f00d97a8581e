"""Pytest configuration and fixtures."""

from dataclasses import dataclass

import pytest

from dex.constants import ONE
from dex.ledger import Ledger
from dex.routing.router import Router
from tests.helpers import (
    DEADLINE_WINDOW,
    INITIAL_SUPPLY,
    OWNER,
    START_TIME,
    TOKEN_A,
    TOKEN_B,
    TOKEN_C,
    fund,
)

# =============================================================================
# Clock
# =============================================================================


@dataclass
class FakeClock:
    """Deterministic stand-in for time.time.

    Usage:
        clock = FakeClock()
        router = Router(ledger, clock=clock)
        clock.advance(60)
    """

    now: float = START_TIME

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def deadline(clock: FakeClock) -> int:
    """A deadline twenty minutes in the future."""
    return int(clock.now) + DEADLINE_WINDOW


# =============================================================================
# Ledger and router
# =============================================================================


@pytest.fixture
def ledger() -> Ledger:
    """Empty ledger with the default 30 bps config."""
    return Ledger()


@pytest.fixture
def router(ledger: Ledger, clock: FakeClock) -> Router:
    return Router(ledger, clock=clock)


@pytest.fixture
def funded_owner(ledger: Ledger, router: Router) -> str:
    """OWNER holds the initial supply of A, B and C and approved 10,000 of each."""
    fund(ledger, router, OWNER, [TOKEN_A, TOKEN_B, TOKEN_C], INITIAL_SUPPLY, allowance=10_000 * ONE)
    return OWNER


@pytest.fixture
def seeded_router(router: Router, funded_owner: str, deadline: int) -> Router:
    """Router whose A/B pool holds 500/500 provided by OWNER."""
    router.add_liquidity(TOKEN_A, TOKEN_B, 500 * ONE, 500 * ONE, 0, 0, funded_owner, deadline)
    return router


@pytest.fixture
def two_hop_router(seeded_router: Router, deadline: int) -> Router:
    """seeded_router plus a B/C pool holding 500/1000."""
    seeded_router.add_liquidity(TOKEN_B, TOKEN_C, 500 * ONE, 1000 * ONE, 0, 0, OWNER, deadline)
    return seeded_router
