"""Core orchestration logic: selection, retries, encryption, lifecycle."""
from .encryption import EncryptionCodec
from .error_classifier import Classification, ErrorClassifier
from .exceptions import (
    DecryptionError,
    ErrorKind,
    InternalServerError,
    NoHealthySubaccountError,
    PaymentError,
    RexpayError,
    ValidationError,
)
from .models import AuthType, CardPaymentOutput, Payment, PaymentStatus
from .retry import RetryExecutor, RetryPolicy
from .subaccount_selector import (
    FallbackPolicy,
    SelectionConfig,
    SubaccountMetrics,
    SubaccountSelector,
)

__all__ = [
    "AuthType",
    "CardPaymentOutput",
    "Classification",
    "DecryptionError",
    "EncryptionCodec",
    "ErrorClassifier",
    "ErrorKind",
    "FallbackPolicy",
    "InternalServerError",
    "NoHealthySubaccountError",
    "Payment",
    "PaymentError",
    "PaymentStatus",
    "RetryExecutor",
    "RetryPolicy",
    "RexpayError",
    "SelectionConfig",
    "SubaccountMetrics",
    "SubaccountSelector",
    "ValidationError",
]
