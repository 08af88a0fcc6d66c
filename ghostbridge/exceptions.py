"""
Ghost Bridge Exceptions

Custom exception classes for the order engine. Every engine error carries a
stable ``code`` (the name reported to callers) and a ``kind`` from the error
taxonomy so monitors can decide whether a retry makes sense.
"""

from enum import Enum


class ErrorKind(str, Enum):
    AUTHORIZATION = "authorization"
    CAPACITY = "capacity"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    STALE = "stale"
    MISMATCH = "mismatch"
    INVALID_INPUT = "invalid_input"
    SUBCALL_FAILURE = "subcall_failure"
    STATE = "state"


class GhostBridgeException(Exception):
    """Base exception for Ghost Bridge."""
    pass


class ConfigurationError(GhostBridgeException):
    """Configuration error."""
    pass


class GhostBridgeError(GhostBridgeException):
    """An engine operation failed a precondition. The atomic unit is rolled back."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    message: str = "Engine error"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)

    @property
    def code(self) -> str:
        name = type(self).__name__
        return name[:-5] if name.endswith("Error") else name


# -- Authorization -----------------------------------------------------------

class UnauthorizedError(GhostBridgeError):
    kind = ErrorKind.AUTHORIZATION
    message = "Unauthorized - only the owner can perform this action"


class ExecutorNotAuthorizedError(GhostBridgeError):
    kind = ErrorKind.AUTHORIZATION
    message = "Executor not authorized to trigger this order"


class AccountDelegatedError(GhostBridgeError):
    kind = ErrorKind.AUTHORIZATION
    message = "Record is held by another execution domain"


# -- Capacity ----------------------------------------------------------------

class MaxOrdersReachedError(GhostBridgeError):
    kind = ErrorKind.CAPACITY
    message = "Maximum orders per executor reached (16)"


class MaxExecutorsReachedError(GhostBridgeError):
    kind = ErrorKind.CAPACITY
    message = "Maximum authorized executors reached (4)"


# -- Duplicate ---------------------------------------------------------------

class OrderHashExistsError(GhostBridgeError):
    kind = ErrorKind.DUPLICATE
    message = "Order hash already exists"


class AccountAlreadyExistsError(GhostBridgeError):
    kind = ErrorKind.DUPLICATE
    message = "Record already initialized"


# -- NotFound ----------------------------------------------------------------

class OrderHashNotFoundError(GhostBridgeError):
    kind = ErrorKind.NOT_FOUND
    message = "Order hash not found in executor"


class AccountNotFoundError(GhostBridgeError):
    kind = ErrorKind.NOT_FOUND
    message = "Record not found"


# -- Stale -------------------------------------------------------------------

class OrderExpiredError(GhostBridgeError):
    kind = ErrorKind.STALE
    message = "Order has expired"


class ReadyWindowExpiredError(GhostBridgeError):
    kind = ErrorKind.STALE
    message = "Ready-to-execute window has passed"


# -- Mismatch ----------------------------------------------------------------

class OrderHashMismatchError(GhostBridgeError):
    kind = ErrorKind.MISMATCH
    message = "Order hash mismatch - data does not match stored hash"


class NonceMismatchError(GhostBridgeError):
    kind = ErrorKind.MISMATCH
    message = "Nonce does not match"


class CommitmentMismatchError(GhostBridgeError):
    kind = ErrorKind.MISMATCH
    message = "Commitment does not match order params"


class TraderAccountMismatchError(GhostBridgeError):
    kind = ErrorKind.MISMATCH
    message = "Trader account does not match the account bound to the order"


class AddressMismatchError(GhostBridgeError):
    kind = ErrorKind.MISMATCH
    message = "Record address does not match its derived address"


# -- InvalidInput ------------------------------------------------------------

class InvalidOrderDataError(GhostBridgeError):
    kind = ErrorKind.INVALID_INPUT
    message = "Invalid order data"


class InvalidTriggerConditionError(GhostBridgeError):
    kind = ErrorKind.INVALID_INPUT
    message = "Invalid trigger condition"


class EncryptedDataTooLongError(GhostBridgeError):
    kind = ErrorKind.INVALID_INPUT
    message = "Encrypted data exceeds maximum length"


class InvalidPriceFeedError(GhostBridgeError):
    kind = ErrorKind.INVALID_INPUT
    message = "Invalid price feed account"


class TriggerConditionNotMetError(GhostBridgeError):
    kind = ErrorKind.INVALID_INPUT
    message = "Trigger condition not met"


# -- Lifecycle state ---------------------------------------------------------

class OrderNotActiveError(GhostBridgeError):
    kind = ErrorKind.STATE
    message = "Order is not active"


class OrderNotTriggeredError(GhostBridgeError):
    kind = ErrorKind.STATE
    message = "Order is not in triggered state"


class OrderNotReadyError(GhostBridgeError):
    kind = ErrorKind.STATE
    message = "Order is not ready to execute"


class OrderNotCancellableError(GhostBridgeError):
    kind = ErrorKind.STATE
    message = "Order cannot be cancelled in current status"


class OrderNotClosableError(GhostBridgeError):
    kind = ErrorKind.STATE
    message = "Order can only be closed once executed or cancelled"


class ExecutorDelegatedError(GhostBridgeError):
    kind = ErrorKind.STATE
    message = "Executor is delegated - cannot modify directly"


class ExecutorNotDelegatedError(GhostBridgeError):
    kind = ErrorKind.STATE
    message = "Executor is not delegated"


# -- SubcallFailure ----------------------------------------------------------

class SettlementCallFailedError(GhostBridgeError):
    kind = ErrorKind.SUBCALL_FAILURE
    message = "Settlement call failed"


class MagicActionFailedError(GhostBridgeError):
    kind = ErrorKind.SUBCALL_FAILURE
    message = "Magic Action execution failed"


class ComputeBudgetExceededError(GhostBridgeError):
    kind = ErrorKind.SUBCALL_FAILURE
    message = "Sub-call exceeded its compute budget"


class SchedulingFailedError(GhostBridgeError):
    kind = ErrorKind.SUBCALL_FAILURE
    message = "Monitoring task scheduling failed"
