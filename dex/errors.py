"""Engine error classes.

Every user-facing failure derives from DexError and carries a stable
``reason`` string that callers can branch on. InvariantFault is deliberately
outside that hierarchy: it signals broken arithmetic, not a bad request.
"""


class DexError(Exception):
    """Base error for AMM operations."""

    reason = "DEX_ERROR"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.reason
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.message == self.reason:
            return self.reason
        return f"{self.reason}: {self.message}"


# --- Categories ---


class ValidationError(DexError):
    """Request is malformed regardless of ledger state."""

    reason = "VALIDATION_ERROR"


class StateError(DexError):
    """Request conflicts with the current ledger state."""

    reason = "STATE_ERROR"


class SlippageError(DexError):
    """Computed amount is worse than the caller's limit."""

    reason = "SLIPPAGE_ERROR"


class ExpiryError(DexError):
    """Caller's deadline has elapsed."""

    reason = "EXPIRED"


class AuthorizationError(DexError):
    """Caller has not authorized the movement of its assets."""

    reason = "UNAUTHORIZED"


# --- Validation ---


class InvalidInput(ValidationError):
    """Zero or negative amount, zero reserve, or unknown asset."""

    reason = "INVALID_INPUT"


class InvalidPath(ValidationError):
    """Route has fewer than two assets."""

    reason = "INVALID_PATH"


class IdenticalAssets(ValidationError):
    """Both sides of a pair are the same asset."""

    reason = "IDENTICAL_ASSETS"


# --- State ---


class PairExists(StateError):
    """A pool for this asset pair is already registered."""

    reason = "PAIR_EXISTS"


class PairNotFound(StateError):
    """No pool is registered for this asset pair or id."""

    reason = "PAIR_NOT_FOUND"


class InsufficientShares(StateError):
    """Owner holds fewer shares than requested."""

    reason = "INSUFFICIENT_SHARES"


class InsufficientLiquidity(StateError):
    """Pool reserves cannot cover the request."""

    reason = "INSUFFICIENT_LIQUIDITY"


class InsufficientInitialLiquidity(StateError):
    """First provision would mint zero shares."""

    reason = "INSUFFICIENT_INITIAL_LIQUIDITY"


class InsufficientLiquidityMinted(StateError):
    """Deposit into a live pool is too small to mint a share."""

    reason = "INSUFFICIENT_LIQUIDITY_MINTED"


class InsufficientLiquidityBurned(StateError):
    """Burn is too small to pay out both assets."""

    reason = "INSUFFICIENT_LIQUIDITY_BURNED"


class InsufficientBalance(StateError):
    """Account holds less of an asset than the transfer needs."""

    reason = "INSUFFICIENT_BALANCE"


# --- Slippage ---


class InsufficientOutputAmount(SlippageError):
    """Output is zero or below the caller's minimum."""

    reason = "INSUFFICIENT_OUTPUT_AMOUNT"


class InsufficientAmount(SlippageError):
    """Optimal liquidity amount for one side is below the caller's minimum."""

    reason = "INSUFFICIENT_AMOUNT"

    def __init__(self, side: str, message: str | None = None) -> None:
        self.side = side
        self.reason = f"INSUFFICIENT_{side}_AMOUNT"
        super().__init__(message)


class ExcessiveInputAmount(SlippageError):
    """Required input exceeds the caller's maximum."""

    reason = "EXCESSIVE_INPUT_AMOUNT"


# --- Expiry / authorization ---


class Expired(ExpiryError):
    """Operation submitted after its deadline."""

    reason = "EXPIRED"


class InsufficientAllowance(AuthorizationError):
    """Spender's allowance is below the amount to move."""

    reason = "INSUFFICIENT_ALLOWANCE"


# --- Fatal ---


class InvariantFault(RuntimeError):
    """Post-swap product check failed.

    Never raised with correct arithmetic. Not a DexError: callers must not
    treat it as a recoverable user failure.
    """

    reason = "INVARIANT_VIOLATION"
