"""Protocol constants for the AMM engine.

Centralizes fixed-point and fee parameters shared by pricing and pools.
"""

# Basis-point denominator for fees (10000 bps = 100%)
BPS_DENOMINATOR = 10_000

# Standard constant-product fee: 30 bps (0.3%)
DEFAULT_FEE_BPS = 30

# Asset amounts are fixed point with 18 fractional digits
DEFAULT_DECIMALS = 18
ONE = 10**DEFAULT_DECIMALS

# Largest amount any balance or reserve may hold
UINT256_MAX = 2**256 - 1

# Account name the router uses when spending allowances
DEFAULT_ROUTER_ADDRESS = "dex-router"
