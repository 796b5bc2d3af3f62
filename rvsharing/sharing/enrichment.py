# File: rvsharing/sharing/enrichment.py
# Location: rvsharing/rvsharing/sharing/enrichment.py
"""
Cohort-level enrichment (burden) test for rare variant sharing.

Every qualifying (family, variant) pair is treated as one independent
Bernoulli sharing event whose success probability is the family's sharing
probability. A pair qualifies when the variant passes the rare-variant
frequency cutoff and is seen in the family. The test statistic is the total
number of sharing events across the cohort and the p-value is

    P(total sharing events >= ceil(threshold))

under the null. This can flag an excess of sharing across the whole dataset
even when no single variant is significant on its own.

Memory stays linear in the threshold: events are streamed one at a time
through a distribution capped at the threshold (see bernoulli_sum). With
``workers > 1`` the event list is split into contiguous chunks, each chunk is
convolved in a worker process and the partial distributions are merged left
to right, which keeps the result deterministic for a fixed worker count.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass

import numpy as np

from rvsharing.errors import InputError
from rvsharing.sharing.base import SharingConfig
from rvsharing.sharing.bernoulli_sum import (
    P_VALUE_FLOOR,
    capped_distribution,
    merge_distributions,
    merge_distributions_log,
    select_method,
    tail_from_distribution,
)
from rvsharing.sharing.genotypes import (
    FamilyLayout,
    as_allele_matrix,
    build_family_layout,
    check_minor_allele_freq,
    iter_sharing_events,
    rare_variant_mask,
)
from rvsharing.sharing.workers import resolve_workers, worker_initializer

logger = logging.getLogger("rvsharing")


@dataclass(frozen=True)
class EnrichmentResult:
    """Outcome of the cohort enrichment test."""

    p_value: float
    threshold: int
    n_events: int
    n_observed: int
    n_variants: int


def _chunk_worker(args: tuple[np.ndarray, int, bool]) -> np.ndarray:
    probs, cap, use_log = args
    return capped_distribution(probs, cap, log=use_log)


def _resolve_threshold(threshold: float | None, n_observed: int) -> int:
    if threshold is None:
        return n_observed
    numeric = (int, float, np.integer, np.floating)
    if isinstance(threshold, bool) or not isinstance(threshold, numeric):
        raise InputError(f"threshold must be a number, got {threshold!r}", field="threshold")
    if math.isnan(threshold) or threshold < 0:
        raise InputError(f"threshold must be >= 0, got {threshold!r}", field="threshold")
    if math.isinf(threshold):
        raise InputError("threshold must be finite", field="threshold")
    return int(math.ceil(threshold))


def _event_counts(
    matrix: np.ndarray, layout: FamilyLayout, keep: np.ndarray
) -> tuple[np.ndarray, int]:
    """First pass: qualifying events per family and the observed sharing total."""
    counts = np.zeros(layout.n_families, dtype=np.int64)
    n_observed = 0
    for _, fam, _, obs in iter_sharing_events(matrix, layout, keep):
        counts[fam] += 1
        n_observed += obs
    return counts, n_observed


def _resolve_method(layout: FamilyLayout, counts: np.ndarray, cap: int, method: str) -> str:
    """Pick log space when the largest ``cap`` event probabilities multiply below double range."""
    if method != "auto":
        return select_method(layout.probs, cap, method)
    event_probs = np.repeat(layout.probs, np.minimum(counts, cap))
    return select_method(event_probs, cap, method)


def enrichment_summary(
    snp_matrix,
    family_ids: Sequence[str],
    sharing_probs,
    minor_allele_freq: Sequence[float] | None = None,
    threshold: float | None = 0,
    config: SharingConfig | None = None,
) -> EnrichmentResult:
    """
    Run the enrichment test and return the p-value with event counts.

    Parameters
    ----------
    snp_matrix : array-like, shape (n_variants, n_individuals)
        Minor-allele counts; negative or NaN = missing.
    family_ids : sequence of str
        Family owning each matrix column.
    sharing_probs : mapping, Series or sequence
        One sharing probability per family (see build_family_layout).
    minor_allele_freq : sequence of float, optional
        One frequency per variant; rows above ``config.max_minor_allele_freq``
        contribute no events. None disables the frequency filter.
    threshold : float or None
        Count threshold; the p-value is P(total >= ceil(threshold)). None uses
        the observed number of sharing events.
    config : SharingConfig, optional
        Run configuration (frequency cutoff, method, workers).

    Raises
    ------
    InputError
        On invalid probabilities, a negative or NaN threshold, or missing
        family probabilities.
    ShapeError
        On matrix dimensions that disagree with family ids or frequencies.
    """
    cfg = config or SharingConfig()
    cfg.validate()

    family_ids = list(family_ids)
    matrix = as_allele_matrix(snp_matrix, len(family_ids))
    n_variants = matrix.shape[0]
    maf = check_minor_allele_freq(minor_allele_freq, n_variants)
    layout = build_family_layout(family_ids, sharing_probs)
    keep = rare_variant_mask(maf, n_variants, cfg.max_minor_allele_freq)

    counts, n_observed = _event_counts(matrix, layout, keep)
    n_events = int(counts.sum())
    cap = _resolve_threshold(threshold, n_observed)

    logger.info(
        f"Enrichment test: {n_events} sharing events from {int(keep.sum())} rare variants "
        f"in {layout.n_families} families; {n_observed} observed, threshold {cap}"
    )

    if cap == 0:
        p_value = 1.0
    elif cap > n_events:
        logger.debug(f"Threshold {cap} exceeds {n_events} events; reporting floor")
        p_value = P_VALUE_FLOOR
    else:
        use_log = _resolve_method(layout, counts, cap, cfg.method) == "log"
        workers = resolve_workers(cfg.workers, n_events) if cfg.workers != 1 else 1
        if workers > 1:
            dist = _parallel_distribution(matrix, layout, keep, cap, use_log, workers)
        else:
            events = (p for _, _, p, _ in iter_sharing_events(matrix, layout, keep))
            dist = capped_distribution(events, cap, log=use_log)
        p_value = tail_from_distribution(dist, log=use_log)

    logger.info(f"Enrichment p-value: P(total >= {cap}) = {p_value:.6g}")
    return EnrichmentResult(
        p_value=p_value,
        threshold=cap,
        n_events=n_events,
        n_observed=n_observed,
        n_variants=int(keep.sum()),
    )


def _parallel_distribution(
    matrix: np.ndarray,
    layout: FamilyLayout,
    keep: np.ndarray,
    cap: int,
    use_log: bool,
    workers: int,
) -> np.ndarray:
    """Divide-and-conquer: convolve contiguous event chunks in workers, then merge in order."""
    event_probs = np.fromiter(
        (p for _, _, p, _ in iter_sharing_events(matrix, layout, keep)), dtype=float
    )
    chunks = np.array_split(event_probs, workers)
    logger.info(f"Parallel enrichment: {workers} workers for {event_probs.size} events")

    with ProcessPoolExecutor(max_workers=workers, initializer=worker_initializer) as executor:
        partials = list(executor.map(_chunk_worker, [(c, cap, use_log) for c in chunks]))

    merge = merge_distributions_log if use_log else merge_distributions
    dist = partials[0]
    for partial in partials[1:]:
        dist = merge(dist, partial, cap)
    return dist


def enrichment_pvalue(
    snp_matrix,
    family_ids: Sequence[str],
    sharing_probs,
    minor_allele_freq: Sequence[float] | None = None,
    threshold: float | None = 0,
    config: SharingConfig | None = None,
) -> float:
    """Return P(total sharing events >= ceil(threshold)); see :func:`enrichment_summary`."""
    return enrichment_summary(
        snp_matrix,
        family_ids,
        sharing_probs,
        minor_allele_freq=minor_allele_freq,
        threshold=threshold,
        config=config,
    ).p_value
