# File: rvsharing/sharing/correction.py
# Location: rvsharing/rvsharing/sharing/correction.py
"""
Multiple testing correction for per-variant sharing p-values.

The sharing engine reports raw per-variant evidence and never corrects on its
own. These helpers are for callers (including the CLI) that want FDR or
Bonferroni adjusted values alongside the raw p-values.

This module is intentionally leaf-level: it imports only numpy, statsmodels,
and the result dataclass.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import statsmodels.stats.multitest as smm

from rvsharing.errors import InputError
from rvsharing.sharing.base import CORRECTION_METHODS, SharingResult

logger = logging.getLogger("rvsharing")


def apply_correction(
    pvals: list[float] | np.ndarray,
    method: str = "fdr",
) -> np.ndarray:
    """
    Apply multiple testing correction to a sequence of p-values.

    Parameters
    ----------
    pvals : list of float or np.ndarray
        Raw p-values to correct. Must be in [0, 1].
    method : str
        "fdr" (Benjamini-Hochberg, default) or "bonferroni".

    Returns
    -------
    np.ndarray
        Corrected p-values in the same order as input.
    """
    if method not in CORRECTION_METHODS:
        raise InputError(
            f"correction method must be one of {', '.join(CORRECTION_METHODS)}, got {method!r}",
            field="correction_method",
        )
    pvals_array = np.asarray(pvals, dtype=float)

    if len(pvals_array) == 0:
        return pvals_array

    smm_method = "bonferroni" if method == "bonferroni" else "fdr_bh"
    corrected: np.ndarray = smm.multipletests(pvals_array, method=smm_method)[1]
    return corrected


def correct_results(
    results: Sequence[SharingResult],
    method: str = "fdr",
) -> list[float | None]:
    """
    Corrected p-values aligned with ``results``.

    Untested variants (``p_value is None``) are excluded from the correction
    family and get None in the returned list.
    """
    testable = [i for i, r in enumerate(results) if r.p_value is not None]
    corrected_by_index: dict[int, float] = {}
    if testable:
        corrected = apply_correction([results[i].p_value for i in testable], method)
        for i, value in zip(testable, corrected):
            corrected_by_index[i] = float(value)

    logger.debug(
        f"Applied {method} correction to {len(testable)}/{len(results)} variant p-values"
    )
    return [corrected_by_index.get(i) for i in range(len(results))]
