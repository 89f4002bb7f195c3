"""
Classification of failed gateway calls for retry logic.

| Condition                  | Kind             | Retryable |
|----------------------------|------------------|-----------|
| HTTP 400 / 422             | VALIDATION       | no        |
| HTTP 401                   | AUTHENTICATION   | no        |
| HTTP 403                   | AUTHORIZATION    | no        |
| HTTP 404                   | NOT_FOUND        | no        |
| HTTP 409                   | CONFLICT         | no        |
| HTTP 429                   | RATE_LIMITED     | yes       |
| HTTP >= 500                | GATEWAY_INTERNAL | yes       |
| timeout                    | TIMEOUT          | yes       |
| DNS / connection refused   | UNREACHABLE      | yes       |
| anything else              | UNEXPECTED       | no        |
"""
from typing import Dict, NamedTuple, Optional

import httpx

from rexpay_gateway.core.exceptions import ErrorKind, RexpayError

STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.AUTHORIZATION,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}


class Classification(NamedTuple):
    """Outcome of classifying a failure."""

    kind: ErrorKind
    retryable: bool
    status_code: Optional[int] = None


class ErrorClassifier:
    """Maps a failed gateway call to an ErrorKind and a retry decision."""

    @staticmethod
    def classify_status(status_code: int) -> Classification:
        """
        Classify an HTTP error status.

        Args:
            status_code: HTTP status returned by the gateway

        Returns:
            Classification: Kind and retry decision
        """
        if status_code >= 500:
            return Classification(ErrorKind.GATEWAY_INTERNAL, True, status_code)
        kind = STATUS_KINDS.get(status_code, ErrorKind.UNEXPECTED)
        return Classification(kind, kind == ErrorKind.RATE_LIMITED, status_code)

    def classify(self, failure: BaseException) -> Classification:
        """
        Classify a failure raised by a gateway operation.

        Unknown failures are never retried so that bugs are not masked
        as transient noise.

        Args:
            failure: Exception raised by the operation

        Returns:
            Classification: Kind and retry decision
        """
        if isinstance(failure, httpx.HTTPStatusError):
            return self.classify_status(failure.response.status_code)
        if isinstance(failure, httpx.TimeoutException):
            return Classification(ErrorKind.TIMEOUT, True)
        if isinstance(failure, httpx.ConnectError):
            return Classification(ErrorKind.UNREACHABLE, True)
        if isinstance(failure, RexpayError):
            return Classification(failure.kind, False)
        return Classification(ErrorKind.UNEXPECTED, False)

    def is_retryable(self, failure: BaseException) -> bool:
        """Return True if the failure should be retried."""
        return self.classify(failure).retryable
