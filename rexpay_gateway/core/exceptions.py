"""
Error taxonomy for gateway orchestration.

A single tagged hierarchy: every error carries an ErrorKind, the
original cause (if any) and correlation context such as the operation
name, payment reference and selected subaccount.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification of failures surfaced to callers."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    GATEWAY_INTERNAL = "gateway_internal"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    UNEXPECTED = "unexpected"
    DECRYPTION = "decryption"
    NO_HEALTHY_SUBACCOUNT = "no_healthy_subaccount"


class RexpayError(Exception):
    """Base exception for gateway orchestration errors."""

    default_kind = ErrorKind.UNEXPECTED

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        """
        Initialize error.

        Args:
            message: Error message
            kind: Classification of error (defaults per subclass)
            cause: Original exception
            **context: Correlation fields (operation, reference, subaccount_id)
        """
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.cause = cause
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_log_fields(self) -> Dict[str, Any]:
        """Flatten the error into structured log fields."""
        return {
            "error": self.message,
            "error_kind": self.kind.value,
            "cause": repr(self.cause) if self.cause is not None else None,
            **self.context,
        }


class ValidationError(RexpayError):
    """Raised for bad input: missing card, missing envelope, missing ids."""

    default_kind = ErrorKind.VALIDATION


class PaymentError(RexpayError):
    """Raised when a gateway interaction fails after retries are exhausted."""


class InternalServerError(PaymentError):
    """Raised when the gateway keeps answering with a 5xx status."""

    default_kind = ErrorKind.GATEWAY_INTERNAL


class NoHealthySubaccountError(PaymentError):
    """Raised under the fail-fast policy when no subaccount meets the threshold."""

    default_kind = ErrorKind.NO_HEALTHY_SUBACCOUNT


class DecryptionError(RexpayError):
    """Raised when a card envelope is corrupt or sealed with another key/IV."""

    default_kind = ErrorKind.DECRYPTION
