"""
Retry executor with bounded exponential backoff.

Delays are ``initial_delay * backoff ** attempt`` and are awaited with
a non-blocking sleep, so a payment waiting to retry never stalls other
in-flight operations.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    wait_random,
)

from rexpay_gateway.core.error_classifier import ErrorClassifier

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy.

    Attributes:
        max_attempts: Retries after the first try (3 means up to 4 tries)
        initial_delay: Delay before the first retry, in seconds
        backoff: Multiplier applied per attempt
        max_delay: Upper bound on a single delay
        jitter: Max random seconds added to each delay (0 disables)
        deadline: Total seconds after which no further retry is started
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0
    deadline: Optional[float] = None

    @property
    def total_tries(self) -> int:
        return self.max_attempts + 1


class RetryExecutor:
    """
    Runs gateway operations under a RetryPolicy.

    Retry decisions come from the ErrorClassifier. When retries are
    exhausted, or the failure is not retryable, the last failure is
    re-raised unchanged.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        classifier: Optional[ErrorClassifier] = None,
        metrics: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize retry executor.

        Args:
            policy: Default policy when execute() is called without one
            classifier: Error classifier
            metrics: Optional PaymentMetrics for retry counters
            sleep: Awaitable sleep used between attempts
        """
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or ErrorClassifier()
        self.metrics = metrics
        self._sleep = sleep

    def _build_retrying(self, policy: RetryPolicy, operation_name: str) -> AsyncRetrying:
        stop = stop_after_attempt(policy.total_tries)
        if policy.deadline is not None:
            stop = stop | stop_after_delay(policy.deadline)

        wait = wait_exponential(
            multiplier=policy.initial_delay,
            exp_base=policy.backoff,
            max=policy.max_delay,
        )
        if policy.jitter > 0:
            wait = wait + wait_random(0, policy.jitter)

        def _before_sleep(retry_state: RetryCallState) -> None:
            failure = retry_state.outcome.exception() if retry_state.outcome else None
            classification = self.classifier.classify(failure) if failure else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            kind = classification.kind.value if classification else "unknown"

            logger.warning(
                "gateway_retry_scheduled",
                operation=operation_name,
                attempt=retry_state.attempt_number,
                delay_seconds=delay,
                error_kind=kind,
                status_code=classification.status_code if classification else None,
            )
            if self.metrics is not None:
                self.metrics.record_retry(operation_name, kind)

        return AsyncRetrying(
            stop=stop,
            wait=wait,
            retry=retry_if_exception(self.classifier.is_retryable),
            before_sleep=_before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        operation_name: str = "gateway_call",
    ) -> T:
        """
        Execute an async operation with retries.

        Args:
            operation: Zero-argument coroutine function to run
            policy: Retry policy (defaults to the executor's policy)
            operation_name: Name used in logs and metrics

        Returns:
            T: Operation result

        Raises:
            Exception: The last failure, unchanged
        """
        retrying = self._build_retrying(policy or self.policy, operation_name)

        # tenacity only awaits callables it recognises as coroutine functions
        async def _attempt() -> T:
            return await operation()

        return await retrying(_attempt)
