"""Test helpers module for shared test utilities.

- constants: Asset identifiers, accounts and amounts
- factories: Pool, ledger and account-funding helpers
"""

from tests.helpers.constants import (
    DEADLINE_WINDOW,
    INITIAL_SUPPLY,
    OWNER,
    START_TIME,
    TOKEN_A,
    TOKEN_B,
    TOKEN_C,
    TOKEN_D,
    USER1,
    USER2,
)
from tests.helpers.factories import fund, make_pool, pool_balances

__all__ = [
    # Constants
    "TOKEN_A",
    "TOKEN_B",
    "TOKEN_C",
    "TOKEN_D",
    "OWNER",
    "USER1",
    "USER2",
    "START_TIME",
    "DEADLINE_WINDOW",
    "INITIAL_SUPPLY",
    # Factories
    "make_pool",
    "fund",
    "pool_balances",
]
