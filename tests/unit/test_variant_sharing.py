"""
Unit tests for the per-variant sharing test orchestrator.

Covers filtering (name inclusion list, MAF cutoff), order preservation,
partial-failure semantics for untestable variants, the potential p-value
prefilter, and parity between sequential and parallel execution.
"""

from __future__ import annotations

import numpy as np
import pytest

from rvsharing.errors import InputError, ShapeError
from rvsharing.sharing.base import SharingConfig, SharingResult
from rvsharing.sharing.bernoulli_sum import family_sharing_pvalue
from rvsharing.sharing.variant_test import (
    RESULT_COLUMNS,
    VariantSharingTest,
    results_to_dataframe,
    variant_sharing_pvalues,
)


def _run(cohort, **kwargs):
    return variant_sharing_pvalues(
        cohort["alleles"],
        cohort["variants"],
        cohort["family_ids"],
        cohort["sharing_probs"],
        **kwargs,
    )


@pytest.mark.unit
class TestVariantSharingPValues:
    def test_results_in_input_order_with_maf_filter(self, small_cohort):
        results = _run(small_cohort, minor_allele_freq=small_cohort["maf"])
        assert [r.variant for r in results] == ["v1", "v2", "v4"]

    def test_p_values(self, small_cohort):
        results = {r.variant: r for r in _run(small_cohort, minor_allele_freq=small_cohort["maf"])}
        # v1: F1 shares (0.25), F2 seen but not shared (0.1), F3 not seen
        assert results["v1"].p_value == pytest.approx(1 - 0.75 * 0.9)
        assert results["v1"].n_families == 2
        assert results["v1"].n_sharing == 1
        assert results["v1"].potential_p_value == pytest.approx(0.025)
        # v2: F2 and F3 share
        assert results["v2"].p_value == pytest.approx(0.1 * 0.5)
        assert results["v2"].significant is True
        assert results["v1"].significant is False

    def test_all_missing_variant_is_na_not_fatal(self, small_cohort):
        results = _run(small_cohort, minor_allele_freq=small_cohort["maf"])
        na = results[-1]
        assert na.variant == "v4"
        assert na.p_value is None
        assert na.significant is False
        assert na.skip_reason == "all_genotypes_missing"

    def test_no_frequency_filter_without_maf(self, small_cohort):
        results = _run(small_cohort)
        assert [r.variant for r in results] == ["v1", "v2", "v3", "v4"]

    def test_name_filter_is_inclusion_list(self, small_cohort):
        results = _run(
            small_cohort, name_filter=["v2", "v3", "absent"], minor_allele_freq=small_cohort["maf"]
        )
        # v3 is listed but common, so both filters must pass
        assert [r.variant for r in results] == ["v2"]

    def test_output_length_matches_filters(self, small_cohort):
        maf = np.array(small_cohort["maf"])
        name_filter = {"v1", "v3", "v4"}
        expected = [
            v for v, f in zip(small_cohort["variants"], maf) if v in name_filter and f <= 0.05
        ]
        results = _run(small_cohort, name_filter=name_filter, minor_allele_freq=maf)
        assert [r.variant for r in results] == expected

    def test_alpha_is_raw_cutoff(self, small_cohort):
        results = _run(small_cohort, minor_allele_freq=small_cohort["maf"], alpha=0.4)
        flags = {r.variant: r.significant for r in results}
        assert flags == {"v1": True, "v2": True, "v4": False}

    def test_single_variant_equals_direct_solver_call(self):
        alleles = np.array([[1, 1, 0, 1, 2, 1]])
        family_ids = ["A", "A", "B", "B", "C", "C"]
        probs = {"A": 0.2, "B": 0.15, "C": 0.3}
        [result] = variant_sharing_pvalues(alleles, ["rs1"], family_ids, probs)
        direct = family_sharing_pvalue([0.2, 0.15, 0.3], [True, False, True])
        assert result.p_value == direct

    def test_variant_not_seen_anywhere_is_one(self):
        [result] = variant_sharing_pvalues(np.zeros((1, 2)), ["rs1"], ["A", "B"], [0.1, 0.2])
        assert result.p_value == 1.0
        assert result.n_families == 0

    def test_inputs_not_mutated(self, small_cohort):
        alleles = small_cohort["alleles"].copy()
        _run(small_cohort)
        np.testing.assert_array_equal(small_cohort["alleles"], alleles)


@pytest.mark.unit
class TestConfigHandling:
    def test_max_maf_from_config(self, small_cohort):
        config = SharingConfig(max_minor_allele_freq=0.5)
        results = _run(small_cohort, minor_allele_freq=small_cohort["maf"], config=config)
        assert len(results) == 4

    def test_alpha_defaults_to_config(self, small_cohort):
        config = SharingConfig(alpha=0.5)
        results = _run(small_cohort, minor_allele_freq=small_cohort["maf"], config=config)
        assert results[0].significant is True

    def test_invalid_config_fails_eagerly(self):
        with pytest.raises(InputError):
            VariantSharingTest(SharingConfig(method="normal"))

    def test_numpy_scalar_alpha(self, small_cohort):
        results = _run(small_cohort, minor_allele_freq=small_cohort["maf"], alpha=np.float32(0.4))
        assert [r.significant for r in results] == [True, True, False]


def _one_sharing_family_cohort(n_unshared=30):
    """Family A (p=0.02) shares; every other family (p=0.5) sees the variant without sharing."""
    family_ids = ["A", "A"]
    row = [1, 1]
    for i in range(n_unshared):
        family_ids += [f"U{i}", f"U{i}"]
        row += [1, 0]
    probs = {"A": 0.02, **{f"U{i}": 0.5 for i in range(n_unshared)}}
    return np.array([row]), family_ids, probs


@pytest.mark.unit
class TestEarlyStopping:
    def test_early_stop_cannot_make_variant_significant(self):
        alleles, family_ids, probs = _one_sharing_family_cohort()
        [exact] = variant_sharing_pvalues(alleles, ["rs1"], family_ids, probs, alpha=0.05)
        [stopped] = variant_sharing_pvalues(
            alleles,
            ["rs1"],
            family_ids,
            probs,
            alpha=0.05,
            config=SharingConfig(min_pvalue=0.01),
        )
        assert exact.p_value == pytest.approx(1 - 0.98 * 0.5**30)
        assert exact.significant is False
        # tail mass is 0.02 after family A, which is below alpha, so the solver continues
        assert stopped.p_value == pytest.approx(0.02 + 0.98 * 0.5)
        assert stopped.p_value > 0.05
        assert stopped.significant is False

    def test_floor_above_alpha_forwarded_to_solver(self):
        alleles, family_ids, probs = _one_sharing_family_cohort()
        [exact] = variant_sharing_pvalues(alleles, ["rs1"], family_ids, probs)
        [stopped] = variant_sharing_pvalues(
            alleles, ["rs1"], family_ids, probs, config=SharingConfig(min_pvalue=0.6)
        )
        # 0.51 after two families, 0.755 after three
        assert stopped.p_value == pytest.approx(0.51 + 0.49 * 0.5)
        assert 0.6 < stopped.p_value < exact.p_value
        assert stopped.n_sharing == 1

    def test_significant_variants_are_exact(self):
        alleles = np.array([[1, 1, 1, 1, 1, 1]])
        family_ids = ["A", "A", "B", "B", "C", "C"]
        probs = [0.01, 0.02, 0.3]
        [exact] = variant_sharing_pvalues(alleles, ["rs1"], family_ids, probs)
        [stopped] = variant_sharing_pvalues(
            alleles, ["rs1"], family_ids, probs, config=SharingConfig(min_pvalue=1e-6)
        )
        assert stopped.p_value == exact.p_value == pytest.approx(0.01 * 0.02 * 0.3)
        assert stopped.significant is True


@pytest.mark.unit
class TestPotentialPValueFilter:
    def test_variants_that_cannot_reach_bonferroni_are_skipped(self):
        alleles = np.array(
            [
                [1, 1, 1, 1],  # both families seen and sharing
                [1, 1, 0, 0],  # only family A seen
                [1, 0, 1, 0],  # both families seen, neither sharing
            ]
        )
        family_ids = ["A", "A", "B", "B"]
        probs = {"A": 0.01, "B": 0.5}
        config = SharingConfig(potential_pvalue_filter=True)
        results = variant_sharing_pvalues(
            alleles, ["r1", "r2", "r3"], family_ids, probs, alpha=0.05, config=config
        )
        # cutoff 0.05 / 3; best cases: r1 0.005, r2 0.01, r3 0.005
        assert [r.variant for r in results] == ["r1", "r2", "r3"]

        probs = {"A": 0.5, "B": 0.01}
        results = variant_sharing_pvalues(
            alleles, ["r1", "r2", "r3"], family_ids, probs, alpha=0.05, config=config
        )
        # best cases: r1 0.005, r2 0.5 (dropped), r3 0.005
        assert [r.variant for r in results] == ["r1", "r3"]

    def test_filter_keeps_na_results(self, small_cohort):
        config = SharingConfig(potential_pvalue_filter=True)
        results = _run(
            small_cohort, minor_allele_freq=small_cohort["maf"], alpha=0.01, config=config
        )
        # v1 best case 0.025 and v2 best case 0.05 both exceed 0.01/2
        assert [r.variant for r in results] == ["v4"]


@pytest.mark.unit
class TestValidation:
    def test_negative_alpha(self, small_cohort):
        with pytest.raises(InputError):
            _run(small_cohort, alpha=-0.01)

    def test_matrix_columns_must_match_family_ids(self, small_cohort):
        with pytest.raises(ShapeError):
            variant_sharing_pvalues(
                small_cohort["alleles"][:, :4],
                small_cohort["variants"],
                small_cohort["family_ids"],
                small_cohort["sharing_probs"],
            )

    def test_variant_names_must_match_rows(self, small_cohort):
        with pytest.raises(ShapeError):
            variant_sharing_pvalues(
                small_cohort["alleles"],
                ["v1"],
                small_cohort["family_ids"],
                small_cohort["sharing_probs"],
            )

    def test_maf_must_match_rows(self, small_cohort):
        with pytest.raises(ShapeError):
            _run(small_cohort, minor_allele_freq=[0.01])


@pytest.mark.unit
class TestResultsTable:
    def test_dataframe_columns_and_order(self, small_cohort):
        results = _run(small_cohort, minor_allele_freq=small_cohort["maf"])
        df = results_to_dataframe(results)
        assert list(df.columns) == RESULT_COLUMNS
        assert df["variant"].tolist() == ["v1", "v2", "v4"]

    def test_empty_results(self):
        df = results_to_dataframe([])
        assert df.empty
        assert list(df.columns) == RESULT_COLUMNS

    def test_to_dict(self):
        r = SharingResult(variant="x", p_value=0.5, significant=False)
        assert r.to_dict()["variant"] == "x"
        assert set(r.to_dict()) == set(RESULT_COLUMNS)


@pytest.mark.slow
class TestParallelExecution:
    def test_parallel_matches_sequential(self):
        rng = np.random.default_rng(42)
        n_variants, n_families, per_family = 12, 8, 3
        alleles = rng.choice([0, 0, 1, 2, -1], size=(n_variants, n_families * per_family))
        family_ids = [f"F{i}" for i in range(n_families) for _ in range(per_family)]
        probs = rng.uniform(0.01, 0.5, size=n_families)
        names = [f"rs{i}" for i in range(n_variants)]

        sequential = variant_sharing_pvalues(alleles, names, family_ids, probs)
        parallel = variant_sharing_pvalues(
            alleles, names, family_ids, probs, config=SharingConfig(workers=3)
        )
        assert parallel == sequential
