"""
Subaccount selection with rolling success metrics.

Each subaccount is scored as::

    score = success_rate * success_weight + recency * recency_weight
    recency = 1 - min(1, (now - last_used) / recency_window)

Subaccounts below ``min_success_rate`` are excluded unless every
candidate is below it, in which case the configured FallbackPolicy
decides between scoring the full set and failing fast.
"""
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

from rexpay_gateway.core.exceptions import NoHealthySubaccountError

logger = structlog.get_logger(__name__)

RECENCY_WINDOW_SECONDS = 30 * 24 * 60 * 60


class FallbackPolicy(str, Enum):
    """What select() does when no subaccount meets the threshold."""

    BEST_AVAILABLE = "best_available"
    FAIL_FAST = "fail_fast"


@dataclass(frozen=True)
class SelectionConfig:
    """Weights and thresholds for subaccount scoring."""

    success_weight: float = 0.7
    recency_weight: float = 0.3
    min_success_rate: float = 0.8
    recency_window: float = RECENCY_WINDOW_SECONDS
    fallback_policy: FallbackPolicy = FallbackPolicy.BEST_AVAILABLE


@dataclass
class SubaccountMetrics:
    """Rolling metrics for one subaccount."""

    subaccount_id: str
    success_rate: float = 1.0
    total_transactions: int = 0
    successful_transactions: int = 0
    last_used: float = 0.0


class SubaccountSelector:
    """
    Picks the subaccount most likely to authorize the next payment.

    The metrics map is shared by every in-flight payment. Each public
    call mutates it inside one critical section and never performs I/O
    while holding the lock.
    """

    def __init__(
        self,
        config: Optional[SelectionConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize selector.

        Args:
            config: Scoring weights and thresholds
            clock: Returns the current time in seconds
        """
        self.config = config or SelectionConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._metrics: Dict[str, SubaccountMetrics] = {}
        self._live_ids: List[str] = []

    def register(
        self,
        subaccount_ids: Iterable[str],
        seed_rates: Optional[Mapping[str, float]] = None,
    ) -> None:
        """
        Make ``subaccount_ids`` the live set and ensure metrics exist for each.

        Idempotent: metrics for ids already known are left untouched.
        New ids start with an optimistic success rate of 1.0 unless a
        seed rate is supplied for them.

        Args:
            subaccount_ids: Ids most recently fetched from the gateway
            seed_rates: Optional initial success rates for unseen ids
        """
        with self._lock:
            self._live_ids = self._ensure_metrics(subaccount_ids, seed_rates)

    def _ensure_metrics(
        self,
        subaccount_ids: Iterable[str],
        seed_rates: Optional[Mapping[str, float]],
    ) -> List[str]:
        # Caller holds the lock
        seed_rates = seed_rates or {}
        ids: List[str] = []
        for subaccount_id in subaccount_ids:
            if subaccount_id in ids:
                continue
            ids.append(subaccount_id)
            if subaccount_id not in self._metrics:
                seed = seed_rates.get(subaccount_id, 1.0)
                self._metrics[subaccount_id] = SubaccountMetrics(
                    subaccount_id=subaccount_id,
                    success_rate=min(1.0, max(0.0, seed)),
                )
        return ids

    def _score(self, metrics: SubaccountMetrics, now: float) -> float:
        elapsed = max(0.0, now - metrics.last_used)
        recency = 1.0 - min(1.0, elapsed / self.config.recency_window)
        return (
            metrics.success_rate * self.config.success_weight
            + recency * self.config.recency_weight
        )

    def select(self) -> Optional[str]:
        """
        Select the best live subaccount and mark it as used.

        Returns:
            Optional[str]: Selected subaccount id, or None if none are known

        Raises:
            NoHealthySubaccountError: If every subaccount is below the
                threshold and the fallback policy is FAIL_FAST
        """
        with self._lock:
            picked = self._pick(self._live_ids)
        return self._selected(picked)

    def select_from(
        self,
        subaccount_ids: Iterable[str],
        seed_rates: Optional[Mapping[str, float]] = None,
    ) -> Optional[str]:
        """
        Register ``subaccount_ids`` and select among exactly those ids.

        Both steps run in one critical section, so a concurrent
        register() for another candidate set cannot change the choice.
        The live set used by select() is left unchanged.

        Args:
            subaccount_ids: Candidate ids for this payment
            seed_rates: Optional initial success rates for unseen ids

        Returns:
            Optional[str]: Selected subaccount id, or None if no candidates
        """
        with self._lock:
            picked = self._pick(self._ensure_metrics(subaccount_ids, seed_rates))
        return self._selected(picked)

    def _pick(self, subaccount_ids: List[str]) -> Optional[Tuple[SubaccountMetrics, float]]:
        # Caller holds the lock
        candidates = [self._metrics[i] for i in subaccount_ids]
        if not candidates:
            return None

        healthy = [
            m for m in candidates if m.success_rate >= self.config.min_success_rate
        ]
        if not healthy:
            if self.config.fallback_policy == FallbackPolicy.FAIL_FAST:
                raise NoHealthySubaccountError(
                    "No subaccount meets the minimum success rate",
                    min_success_rate=self.config.min_success_rate,
                )
            logger.warning(
                "subaccount_fallback_best_available",
                min_success_rate=self.config.min_success_rate,
                candidates=len(candidates),
            )
            healthy = candidates

        now = self._clock()
        selected = healthy[0]
        best_score = self._score(selected, now)
        for metrics in healthy[1:]:
            score = self._score(metrics, now)
            if score > best_score:
                selected, best_score = metrics, score

        selected.last_used = now
        return SubaccountMetrics(**asdict(selected)), best_score

    @staticmethod
    def _selected(picked: Optional[Tuple[SubaccountMetrics, float]]) -> Optional[str]:
        if picked is None:
            return None
        selected, best_score = picked
        logger.debug(
            "subaccount_selected",
            subaccount_id=selected.subaccount_id,
            success_rate=round(selected.success_rate, 4),
            score=round(best_score, 4),
        )
        return selected.subaccount_id

    def record_outcome(self, subaccount_id: str, success: bool) -> None:
        """
        Record a settled attempt against a subaccount.

        Args:
            subaccount_id: Subaccount the attempt was routed through
            success: Whether the attempt succeeded
        """
        with self._lock:
            metrics = self._metrics.get(subaccount_id)
            if metrics is None:
                logger.warning("subaccount_outcome_unknown_id", subaccount_id=subaccount_id)
                return
            metrics.total_transactions += 1
            if success:
                metrics.successful_transactions += 1
            metrics.success_rate = metrics.successful_transactions / metrics.total_transactions

    def adjust_success_rate(self, subaccount_id: str, success_rate: float) -> None:
        """Override a subaccount's success rate, clamped to [0, 1]."""
        with self._lock:
            metrics = self._metrics.get(subaccount_id)
            if metrics is not None:
                metrics.success_rate = max(0.0, min(1.0, success_rate))

    def get_metrics(self, subaccount_id: str) -> Optional[SubaccountMetrics]:
        """Return a copy of one subaccount's metrics."""
        with self._lock:
            metrics = self._metrics.get(subaccount_id)
            return SubaccountMetrics(**asdict(metrics)) if metrics else None

    def snapshot(self) -> List[SubaccountMetrics]:
        """Return copies of all known metrics in first-seen order."""
        with self._lock:
            return [SubaccountMetrics(**asdict(m)) for m in self._metrics.values()]
