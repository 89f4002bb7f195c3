"""
Unit tests for subaccount selection.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import List

import pytest

from rexpay_gateway.core.exceptions import ErrorKind, NoHealthySubaccountError
from rexpay_gateway.core.subaccount_selector import (
    RECENCY_WINDOW_SECONDS,
    FallbackPolicy,
    SelectionConfig,
    SubaccountSelector,
)

NOW = 1_700_000_000.0


class FrozenClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def selector(clock: FrozenClock) -> SubaccountSelector:
    return SubaccountSelector(clock=clock)


def record(selector: SubaccountSelector, subaccount_id: str, successes: int, failures: int) -> None:
    for _ in range(successes):
        selector.record_outcome(subaccount_id, True)
    for _ in range(failures):
        selector.record_outcome(subaccount_id, False)


class TestRegister:
    """Tests for the live set."""

    @pytest.mark.unit
    def test_new_ids_start_optimistic(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a"])

        metrics = selector.get_metrics("sub_a")
        assert metrics.success_rate == 1.0
        assert metrics.total_transactions == 0
        assert metrics.last_used == 0.0

    @pytest.mark.unit
    def test_seed_rates_apply_only_to_unseen_ids(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a"])
        record(selector, "sub_a", 1, 1)

        selector.register(["sub_a", "sub_b"], seed_rates={"sub_a": 0.1, "sub_b": 1.7})

        assert selector.get_metrics("sub_a").success_rate == 0.5
        assert selector.get_metrics("sub_b").success_rate == 1.0

    @pytest.mark.unit
    def test_register_replaces_live_set_but_keeps_history(
        self, selector: SubaccountSelector
    ) -> None:
        """Ids dropped by the gateway are not selectable but keep their metrics."""
        selector.register(["sub_a", "sub_b"])
        record(selector, "sub_a", 3, 0)

        selector.register(["sub_b"])

        assert selector.select() == "sub_b"
        assert selector.get_metrics("sub_a").total_transactions == 3

    @pytest.mark.unit
    def test_select_with_no_subaccounts(self, selector: SubaccountSelector) -> None:
        assert selector.select() is None


class TestSelect:
    """Tests for scoring and selection."""

    @pytest.mark.unit
    def test_higher_success_rate_wins(self, selector: SubaccountSelector) -> None:
        """Equal recency, so B at 0.99 beats A at 0.95."""
        selector.register(["sub_a", "sub_b"], seed_rates={"sub_a": 0.95, "sub_b": 0.99})

        assert selector.select() == "sub_b"

    @pytest.mark.unit
    def test_ties_go_to_first_seen(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a", "sub_b", "sub_c"])

        assert selector.select() == "sub_a"

    @pytest.mark.unit
    def test_select_marks_subaccount_used(
        self, selector: SubaccountSelector, clock: FrozenClock
    ) -> None:
        selector.register(["sub_a"])

        selector.select()

        assert selector.get_metrics("sub_a").last_used == clock.now

    @pytest.mark.unit
    def test_recently_used_subaccount_scores_higher(
        self, selector: SubaccountSelector, clock: FrozenClock
    ) -> None:
        """Recency breaks near-ties in success rate."""
        selector.register(["sub_a", "sub_b"], seed_rates={"sub_a": 0.9, "sub_b": 0.95})

        assert selector.select() == "sub_b"

        selector.adjust_success_rate("sub_a", 0.96)
        clock.now += 60
        # sub_a: 0.96*0.7 + 0, sub_b: 0.95*0.7 + ~0.3
        assert selector.select() == "sub_b"

    @pytest.mark.unit
    def test_recency_decays_over_window(
        self, selector: SubaccountSelector, clock: FrozenClock
    ) -> None:
        selector.register(["sub_a", "sub_b"], seed_rates={"sub_a": 0.9, "sub_b": 0.95})
        selector.select()

        selector.adjust_success_rate("sub_a", 0.96)
        clock.now += RECENCY_WINDOW_SECONDS

        assert selector.select() == "sub_a"

    @pytest.mark.unit
    def test_below_threshold_excluded(self, selector: SubaccountSelector) -> None:
        """A recently used subaccount below the threshold is still skipped."""
        selector.register(["sub_a", "sub_b"], seed_rates={"sub_b": 0.85})
        assert selector.select() == "sub_a"

        record(selector, "sub_a", 1, 1)

        assert selector.select() == "sub_b"

    @pytest.mark.unit
    def test_all_below_threshold_falls_back_to_best(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a", "sub_b"], seed_rates={"sub_a": 0.2, "sub_b": 0.6})

        assert selector.select() == "sub_b"

    @pytest.mark.unit
    def test_all_below_threshold_fail_fast(self, clock: FrozenClock) -> None:
        selector = SubaccountSelector(
            SelectionConfig(fallback_policy=FallbackPolicy.FAIL_FAST), clock=clock
        )
        selector.register(["sub_a"], seed_rates={"sub_a": 0.5})

        with pytest.raises(NoHealthySubaccountError) as exc_info:
            selector.select()

        assert exc_info.value.kind == ErrorKind.NO_HEALTHY_SUBACCOUNT

    @pytest.mark.unit
    def test_custom_weights(self, clock: FrozenClock) -> None:
        """With success weight only, recency has no effect."""
        selector = SubaccountSelector(
            SelectionConfig(success_weight=1.0, recency_weight=0.0), clock=clock
        )
        selector.register(["sub_a", "sub_b"], seed_rates={"sub_a": 0.9, "sub_b": 0.91})
        selector.select()

        assert selector.select() == "sub_b"


class TestOutcomes:
    """Tests for outcome recording."""

    @pytest.mark.unit
    def test_success_rate_tracks_outcomes(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a"])

        record(selector, "sub_a", 3, 1)

        metrics = selector.get_metrics("sub_a")
        assert metrics.total_transactions == 4
        assert metrics.successful_transactions == 3
        assert metrics.success_rate == 0.75

    @pytest.mark.unit
    def test_first_outcome_replaces_seed(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a"], seed_rates={"sub_a": 0.4})

        selector.record_outcome("sub_a", True)

        assert selector.get_metrics("sub_a").success_rate == 1.0

    @pytest.mark.unit
    def test_unknown_id_is_ignored(self, selector: SubaccountSelector) -> None:
        selector.record_outcome("ghost", True)

        assert selector.get_metrics("ghost") is None
        assert selector.snapshot() == []

    @pytest.mark.unit
    def test_adjust_success_rate_clamps(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a"])

        selector.adjust_success_rate("sub_a", -0.5)
        assert selector.get_metrics("sub_a").success_rate == 0.0

        selector.adjust_success_rate("sub_a", 3.0)
        assert selector.get_metrics("sub_a").success_rate == 1.0

    @pytest.mark.unit
    def test_get_metrics_returns_copy(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a"])

        selector.get_metrics("sub_a").success_rate = 0.0

        assert selector.get_metrics("sub_a").success_rate == 1.0


@pytest.mark.unit
def test_concurrent_outcomes_are_not_lost(selector: SubaccountSelector) -> None:
    """Outcome counters stay consistent under concurrent writers."""
    selector.register(["sub_a", "sub_b"])
    workers = 8
    per_worker = 250

    def work(index: int) -> List[str]:
        chosen = []
        for i in range(per_worker):
            chosen.append(selector.select())
            selector.record_outcome("sub_a", (index + i) % 2 == 0)
        return chosen

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(work, range(workers)))

    metrics = selector.get_metrics("sub_a")
    assert metrics.total_transactions == workers * per_worker
    assert metrics.successful_transactions == workers * per_worker // 2
    assert metrics.success_rate == 0.5
    assert all(s in {"sub_a", "sub_b"} for chosen in results for s in chosen)


class TestSelectFrom:
    """Tests for selecting within a per-payment candidate set."""

    @pytest.mark.unit
    def test_only_candidates_are_considered(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_usd"])

        assert selector.select_from(["sub_ngn"], seed_rates={"sub_ngn": 0.9}) == "sub_ngn"
        assert selector.get_metrics("sub_ngn").success_rate == 0.9
        assert selector.select() == "sub_usd"

    @pytest.mark.unit
    def test_empty_candidates(self, selector: SubaccountSelector) -> None:
        selector.register(["sub_a"])

        assert selector.select_from([]) is None

    @pytest.mark.unit
    def test_shares_metrics_with_select(
        self, selector: SubaccountSelector, clock: FrozenClock
    ) -> None:
        selector.register(["sub_a", "sub_b"])
        record(selector, "sub_a", 1, 1)

        assert selector.select_from(["sub_a", "sub_b"]) == "sub_b"
        assert selector.get_metrics("sub_b").last_used == clock.now


@pytest.mark.unit
def test_concurrent_candidate_sets_do_not_leak(selector: SubaccountSelector) -> None:
    """A selection never picks an id outside its own candidate set."""
    candidate_sets = [["usd_1", "usd_2"], ["ngn_1", "ngn_2"], ["eur_1"]]

    def work(index: int) -> List[bool]:
        candidates = candidate_sets[index % len(candidate_sets)]
        results = []
        for _ in range(200):
            selector.register(candidate_sets[(index + 1) % len(candidate_sets)])
            results.append(selector.select_from(candidates) in candidates)
        return results

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(work, range(6)))

    assert all(ok for results in outcomes for ok in results)
