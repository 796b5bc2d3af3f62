"""Shared pytest fixtures for all test modules."""

import itertools
from typing import Any, Dict

import numpy as np
import pytest


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated unit tests")
    config.addinivalue_line("markers", "slow: tests that start worker processes")


def brute_force_tail(probs, k: int) -> float:
    """Reference P(X >= k) by enumerating all 2^n outcome combinations."""
    total = 0.0
    for outcome in itertools.product((0, 1), repeat=len(probs)):
        if sum(outcome) >= k:
            mass = 1.0
            for p, o in zip(probs, outcome):
                mass *= p if o else 1.0 - p
            total += mass
    return total


@pytest.fixture
def brute_force():
    """Expose the enumeration reference to tests."""
    return brute_force_tail


@pytest.fixture
def small_cohort() -> Dict[str, Any]:
    """
    Three families, four variants.

    Columns: F1 has two affected members, F2 two, F3 one.
    Row meanings:
      v1: F1 shares, F2 seen not shared, F3 not seen
      v2: F1 not seen, F2 shares, F3 shares
      v3: common variant (MAF 0.2)
      v4: every genotype missing
    """
    alleles = np.array(
        [
            [1, 1, 1, 0, 0],
            [0, 0, 2, 1, 1],
            [1, 1, 1, 1, 1],
            [-1, -1, -1, -1, -1],
        ]
    )
    return {
        "alleles": alleles,
        "variants": ["v1", "v2", "v3", "v4"],
        "family_ids": ["F1", "F1", "F2", "F2", "F3"],
        "sharing_probs": {"F1": 0.25, "F2": 0.1, "F3": 0.5},
        "maf": [0.01, 0.02, 0.2, 0.01],
    }


@pytest.fixture
def two_by_two_cohort() -> Dict[str, Any]:
    """Two variants by two families, every family carrying every variant, all probs 0.1."""
    return {
        "alleles": np.array([[1, 1, 1, 1], [1, 0, 1, 1]]),
        "family_ids": ["A", "A", "B", "B"],
        "sharing_probs": {"A": 0.1, "B": 0.1},
        "maf": [0.01, 0.01],
    }
