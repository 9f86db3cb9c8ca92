"""
Error taxonomy for the ledger and settlement core.

Every exception carries a technical message for the server-side log and a
short user_message that is safe to show to the caller. Callers only ever
receive the coarse ErrorClass plus that user_message.
"""

from enum import Enum
from typing import Tuple


class ErrorClass(Enum):
    BAD_INPUT = "bad_input"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    SERVER_ERROR = "server_error"


class ArenaError(Exception):
    """Base exception for ledger and settlement errors."""
    error_class = ErrorClass.SERVER_ERROR

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class ValidationError(ArenaError):
    """Raised when a request field is missing or out of range."""
    error_class = ErrorClass.BAD_INPUT

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid {field}: {reason}",
            f"Invalid {field}: {reason}"
        )
        self.field = field
        self.reason = reason

class NotFoundError(ArenaError):
    """Raised when a referenced record does not exist."""
    error_class = ErrorClass.BAD_INPUT

    def __init__(self, entity: str, identifier):
        super().__init__(
            f"{entity} {identifier} not found",
            f"{entity} not found"
        )
        self.identifier = identifier

class ChallengeNotFoundError(NotFoundError):
    """Raised when a challenge id does not exist."""
    def __init__(self, challenge_id: int):
        super().__init__("Challenge", challenge_id)

class AuthorizationError(ArenaError):
    """Raised when the acting user is not allowed to perform the operation."""
    error_class = ErrorClass.FORBIDDEN

    def __init__(self, username: str, action: str):
        super().__init__(
            f"User '{username}' is not allowed to {action}",
            "You are not allowed to do that"
        )

class StateConflictError(ArenaError):
    """Raised when a record is not in the lifecycle state an operation requires."""
    error_class = ErrorClass.CONFLICT

    def __init__(self, message: str):
        super().__init__(message, "This request conflicts with the current state")

class InsufficientFundsError(ArenaError):
    """Raised when a balance cannot cover a debit."""
    error_class = ErrorClass.BAD_INPUT

    def __init__(self, username: str, balance: int, amount: int):
        super().__init__(
            f"Insufficient funds for '{username}'. Current: {balance}, Attempted: {amount}",
            "Insufficient funds"
        )
        self.balance = balance
        self.amount = amount

class ExternalServiceError(ArenaError):
    """Raised when the game service or payment gateway fails or times out."""
    error_class = ErrorClass.SERVER_ERROR

    def __init__(self, service: str, details: str = None):
        super().__init__(
            f"{service} error: {details}",
            "An external service failed. Please try again later."
        )
        self.service = service

class PaymentDecodeError(ExternalServiceError):
    """Raised when the gateway cannot decode a payment request."""
    error_class = ErrorClass.BAD_INPUT

    def __init__(self, details: str = None):
        super().__init__("Payment gateway", f"could not decode payment request: {details}")
        self.user_message = "Invalid payment request"

class PersistenceError(ArenaError):
    """Raised when the atomic scope cannot be committed."""
    error_class = ErrorClass.SERVER_ERROR

    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "Database error occurred. Please try again later."
        )


def classify_error(error: Exception) -> Tuple[ErrorClass, str]:
    """Map any exception to the coarse class and message returned to callers."""
    if isinstance(error, ArenaError):
        return error.error_class, error.user_message
    return ErrorClass.SERVER_ERROR, "An unexpected error occurred"
