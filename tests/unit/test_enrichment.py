"""Unit tests for the cohort-level sharing enrichment test."""

from __future__ import annotations

import math

import numpy as np
import pytest

from rvsharing.errors import InputError, ShapeError
from rvsharing.sharing.base import SharingConfig
from rvsharing.sharing.bernoulli_sum import P_VALUE_FLOOR, tail_probability
from rvsharing.sharing.enrichment import enrichment_pvalue, enrichment_summary


def _run(cohort, threshold, **kwargs):
    return enrichment_pvalue(
        cohort["alleles"],
        cohort["family_ids"],
        cohort["sharing_probs"],
        minor_allele_freq=cohort["maf"],
        threshold=threshold,
        **kwargs,
    )


@pytest.mark.unit
class TestEnrichmentPValue:
    def test_documented_two_by_two_example(self, two_by_two_cohort):
        assert _run(two_by_two_cohort, 1) == pytest.approx(1 - 0.9**4, abs=1e-12)
        assert _run(two_by_two_cohort, 1) == pytest.approx(0.3439, abs=1e-12)

    def test_matches_solver_on_event_list(self, small_cohort, brute_force):
        # Rare, testable variants v1 and v2 give events F1, F2 (v1) and F2, F3 (v2)
        events = [0.25, 0.1, 0.1, 0.5]
        for threshold in range(5):
            assert _run(small_cohort, threshold) == pytest.approx(
                brute_force(events, threshold), abs=1e-12
            )

    def test_fractional_threshold_rounds_up(self, two_by_two_cohort):
        assert _run(two_by_two_cohort, 1.2) == _run(two_by_two_cohort, 2)

    def test_zero_threshold_is_one(self, two_by_two_cohort):
        assert _run(two_by_two_cohort, 0) == 1.0

    def test_threshold_above_event_count(self, two_by_two_cohort):
        assert _run(two_by_two_cohort, 5) == P_VALUE_FLOOR

    def test_common_variants_contribute_no_events(self, two_by_two_cohort):
        cohort = dict(two_by_two_cohort, maf=[0.01, 0.3])
        assert _run(cohort, 1) == pytest.approx(1 - 0.9**2)

    def test_no_maf_means_no_frequency_filter(self, two_by_two_cohort):
        p = enrichment_pvalue(
            two_by_two_cohort["alleles"],
            two_by_two_cohort["family_ids"],
            two_by_two_cohort["sharing_probs"],
            threshold=1,
        )
        assert p == pytest.approx(0.3439)

    def test_log_space_agrees_with_linear(self, small_cohort):
        linear = _run(small_cohort, 2, config=SharingConfig(method="linear"))
        logged = _run(small_cohort, 2, config=SharingConfig(method="log"))
        assert logged == pytest.approx(linear, rel=1e-12)

    def test_large_cohort_stays_positive(self):
        # 300 events of probability 1e-3, all required: far below double range
        alleles = np.ones((100, 3))
        p = enrichment_pvalue(alleles, ["A", "B", "C"], [1e-3, 1e-3, 1e-3], threshold=300)
        assert 0.0 < p <= 1.0


@pytest.mark.unit
class TestEnrichmentSummary:
    def test_counts(self, small_cohort):
        summary = enrichment_summary(
            small_cohort["alleles"],
            small_cohort["family_ids"],
            small_cohort["sharing_probs"],
            minor_allele_freq=small_cohort["maf"],
            threshold=2,
        )
        assert summary.n_events == 4
        assert summary.n_observed == 3
        assert summary.n_variants == 3
        assert summary.threshold == 2

    def test_observed_count_as_default_threshold(self, two_by_two_cohort):
        summary = enrichment_summary(
            two_by_two_cohort["alleles"],
            two_by_two_cohort["family_ids"],
            two_by_two_cohort["sharing_probs"],
            threshold=None,
        )
        assert summary.threshold == 3
        assert summary.p_value == pytest.approx(tail_probability([0.1] * 4, 3))


@pytest.mark.unit
class TestEnrichmentValidation:
    @pytest.mark.parametrize("threshold", [-1, float("nan"), float("inf")])
    def test_invalid_threshold(self, two_by_two_cohort, threshold):
        with pytest.raises(InputError):
            _run(two_by_two_cohort, threshold)

    def test_shape_mismatch(self, two_by_two_cohort):
        with pytest.raises(ShapeError):
            enrichment_pvalue(
                two_by_two_cohort["alleles"], ["A", "A", "B"], {"A": 0.1, "B": 0.1}, threshold=1
            )

    def test_probability_out_of_range(self, two_by_two_cohort):
        with pytest.raises(InputError):
            enrichment_pvalue(
                two_by_two_cohort["alleles"],
                two_by_two_cohort["family_ids"],
                {"A": 0.1, "B": -0.1},
                threshold=1,
            )


@pytest.mark.slow
class TestParallelEnrichment:
    def test_chunked_merge_matches_sequential(self):
        rng = np.random.default_rng(1)
        n_families, per_family = 10, 2
        alleles = rng.choice([0, 1, 1, 2, -1], size=(40, n_families * per_family))
        family_ids = [f"F{i}" for i in range(n_families) for _ in range(per_family)]
        probs = rng.uniform(0.05, 0.5, size=n_families)

        sequential = enrichment_pvalue(alleles, family_ids, probs, threshold=25)
        parallel = enrichment_pvalue(
            alleles, family_ids, probs, threshold=25, config=SharingConfig(workers=4)
        )
        assert parallel == pytest.approx(sequential, rel=1e-12)
        assert not math.isnan(parallel)
