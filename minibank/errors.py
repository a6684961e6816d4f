"""
Custom Exceptions for the MiniBank engine

Every rejection is raised before any state changes, so callers can report
the error and retry without cleaning up partial mutations.
"""


class MinibankError(Exception):
    """Base exception for all engine errors"""
    def __init__(self, message: str, error_code: str = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(MinibankError, ValueError):
    """Raised when input is empty, non-numeric or out of range"""
    pass


class AuthorizationError(MinibankError):
    """Raised when the caller is unauthenticated or lacks the required role"""
    pass


class SessionExpiredError(AuthorizationError):
    """Raised when a session was closed or its idle timer fired"""
    pass


class ConflictError(MinibankError, ValueError):
    """Raised when a unique key is already taken"""
    pass


class DuplicateUsernameError(ConflictError):
    """Raised when a username already exists or is pending approval"""
    pass


class DuplicateNationalIDError(ConflictError):
    """Raised when a national ID is used by an account or a queued request"""
    pass


class InvariantViolationError(MinibankError, ValueError):
    """Raised when a mutation would break a money or workflow invariant"""
    pass


class BelowMinimumBalanceError(InvariantViolationError):
    """Raised when a withdrawal would drop the balance below the minimum"""
    pass


class InsufficientFundsError(InvariantViolationError):
    """Raised when a transfer debit would drop the source below the minimum"""
    pass


class BalanceTooLowError(InvariantViolationError):
    """Raised when the balance does not qualify for a loan"""
    pass


class ActiveLoanExistsError(InvariantViolationError):
    """Raised when the user already has a pending or approved loan"""
    pass


class TerminalStateError(InvariantViolationError):
    """Raised when deciding a request that has already been decided"""
    pass


class NotFoundError(MinibankError, LookupError):
    """Raised when a referenced record does not exist"""
    pass


class AccountNotFoundError(NotFoundError):
    """Raised when referenced account does not exist"""
    pass


class IdentityNotFoundError(NotFoundError):
    """Raised when referenced username does not exist"""
    pass


class PersistenceError(MinibankError):
    """Raised when a collection could not be written; memory stays authoritative"""
    pass
