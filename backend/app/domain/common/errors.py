"""Domain error types.

Every error carries a stable machine-readable ``code``, the HTTP status it maps
to and whether a client may retry the same call later.
"""
from typing import Optional


class DomainError(Exception):
    """Base domain error."""

    code = "INTERNAL_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str = "Unexpected error"):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class NotFoundError(DomainError):
    """Resource not found."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with id {identifier} not found")


class ValidationError(DomainError):
    """Validation error."""

    code = "VALIDATION_ERROR"
    status_code = 422


class ForbiddenError(DomainError):
    """Authorization error."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class InvalidStateError(DomainError):
    """Operation not allowed in the current lifecycle stage."""

    code = "INVALID_STATE"
    status_code = 400


class AlreadyResolvedError(InvalidStateError):
    code = "MARKET_ALREADY_RESOLVED"

    def __init__(self, message: str = "Market is already resolved"):
        super().__init__(message)


class MarketNotEndedError(InvalidStateError):
    code = "MARKET_NOT_ENDED"

    def __init__(self, message: str = "Market has not ended yet"):
        super().__init__(message)


class NotInitializedError(InvalidStateError):
    code = "MARKET_NOT_INITIALIZED"

    def __init__(self, message: str = "Market is not on-chain yet"):
        super().__init__(message)


class NotResolvedError(InvalidStateError):
    code = "MARKET_NOT_RESOLVED"

    def __init__(self, message: str = "Market is not resolved yet"):
        super().__init__(message)


class NotEligibleError(InvalidStateError):
    code = "REWARD_NOT_ELIGIBLE"

    def __init__(self, message: str = "Not eligible for a reward"):
        super().__init__(message)


class ConflictError(DomainError):
    """Resource conflict error."""

    code = "CONFLICT"
    status_code = 409


class LockContentionError(ConflictError):
    """Another initialization of the same market is in progress."""

    code = "MARKET_INITIALIZATION_IN_PROGRESS"

    def __init__(self, market_id: str):
        self.market_id = market_id
        super().__init__(f"Initialization of market {market_id} already in progress")


class AlreadyClaimedError(ConflictError):
    code = "REWARD_ALREADY_CLAIMED"

    def __init__(self, message: str = "Reward already claimed"):
        super().__init__(message)


class DuplicateVoteError(ConflictError):
    code = "VOTE_ALREADY_PLACED"

    def __init__(self, message: str = "You have already voted on this market"):
        super().__init__(message)


class WalletNotConfiguredError(DomainError):
    code = "RELAY_WALLET_NOT_CONFIGURED"
    status_code = 500

    def __init__(self, message: str = "Relay wallet not configured"):
        super().__init__(message)


class InsufficientBalanceError(DomainError):
    """Relay wallet cannot pay gas; retry once it has been topped up."""

    code = "RELAY_INSUFFICIENT_BALANCE"
    status_code = 503
    retryable = True

    def __init__(self, message: str = "Insufficient relay wallet balance", balance: Optional[float] = None):
        self.balance = balance
        super().__init__(message)


class TransactionFailedError(DomainError):
    code = "RELAY_TRANSACTION_FAILED"
    status_code = 502
    retryable = True

    def __init__(self, message: str = "Transaction failed", tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ChainUnavailableError(DomainError):
    """Transient network or RPC failure talking to the chain."""

    code = "BLOCKCHAIN_UNAVAILABLE"
    status_code = 503
    retryable = True


class SyncError(DomainError):
    code = "MARKET_SYNC_FAILED"
    status_code = 502
    retryable = True
