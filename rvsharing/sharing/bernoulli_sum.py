# File: rvsharing/sharing/bernoulli_sum.py
# Location: rvsharing/rvsharing/sharing/bernoulli_sum.py
"""
Exact tail probabilities for sums of independent, non-identical Bernoulli trials.

Under the null hypothesis each family i shares a rare allele with probability
p_i, independently of other families. The number of sharing families X then
follows a Poisson-binomial distribution and the sharing p-value is the upper
tail P(X >= k) for the observed count k.

The distribution is built by iterative convolution over a fixed buffer of
k + 1 states. State k is absorbing and means "at least k successes", so the
buffer never grows past the count range the tail needs:

    new[0]   = old[0] * (1 - p)
    new[j]   = old[j] * (1 - p) + old[j - 1] * p        0 < j < k
    new[k]   = old[k]           + old[k - 1] * p

Because mass only ever flows into the absorbing state, new[k] after processing
i trials is a lower bound on the final tail that never decreases with i. This
is what makes the ``min_pvalue`` early stop exact: the returned value is the
true tail mass accumulated so far.

A log-space variant of every update is provided for probabilities small enough
that plain products underflow double precision. ``method="auto"`` picks it
only when the inputs call for it.

Examples
--------
>>> family_sharing_pvalue([0.1, 0.2, 0.05], [True, False, True])  # approx 0.033
>>> tail_probability([0.5, 0.5], 1)                                 # 0.75
"""

from __future__ import annotations

import logging
import math
import numbers
from collections.abc import Iterable, Sequence

import numpy as np
from scipy.special import logsumexp

from rvsharing.errors import InputError
from rvsharing.sharing.base import SOLVER_METHODS

logger = logging.getLogger("rvsharing")

# Smallest positive p-value ever reported; keeps results inside (0, 1].
P_VALUE_FLOOR = float(np.finfo(float).tiny)

# A single probability below this switches "auto" to log space.
_LOG_SWITCH_PROB = 1e-100

# log of the smallest normal double is about -708.
_LOG_UNDERFLOW = -700.0


def validate_probabilities(
    probs: Sequence[float] | np.ndarray, field: str = "sharing_probs"
) -> np.ndarray:
    """
    Convert probabilities to a 1-D float array and check that all lie in [0, 1].

    Raises
    ------
    InputError
        If the values are not numeric, not one-dimensional, NaN, or outside [0, 1].
    """
    try:
        arr = np.asarray(probs, dtype=float)
    except (TypeError, ValueError) as e:
        raise InputError(f"{field} must be numeric: {e}", field=field)

    if arr.ndim != 1:
        raise InputError(f"{field} must be one-dimensional, got shape {arr.shape}", field=field)

    bad = ~((arr >= 0.0) & (arr <= 1.0))
    if bad.any():
        bad_idx = np.flatnonzero(bad)
        raise InputError(
            f"{field} must lie in [0, 1]; {len(bad_idx)} invalid value(s), "
            f"first at index {int(bad_idx[0])}: {arr[bad_idx[0]]!r}",
            field=field,
            details={"invalid_indices": bad_idx[:10].tolist()},
        )
    return arr


def _validate_min_pvalue(min_pvalue: float) -> float:
    if (
        isinstance(min_pvalue, bool)
        or not isinstance(min_pvalue, numbers.Real)
        or not 0.0 <= min_pvalue <= 1.0
    ):
        raise InputError(f"min_pvalue must be in [0, 1], got {min_pvalue!r}", field="min_pvalue")
    return float(min_pvalue)


def select_method(probs: np.ndarray, k: int | None = None, method: str = "auto") -> str:
    """
    Resolve ``method`` to "linear" or "log".

    "auto" chooses log space when some non-zero probability is below 1e-100,
    or when the product of the k largest probabilities (the largest single
    outcome that contributes to the tail) would underflow.
    """
    if method not in SOLVER_METHODS:
        raise InputError(
            f"method must be one of {', '.join(SOLVER_METHODS)}, got {method!r}", field="method"
        )
    if method != "auto":
        return method

    positive = probs[probs > 0.0]
    if positive.size == 0:
        return "linear"
    if positive.min() < _LOG_SWITCH_PROB:
        return "log"

    top = np.sort(positive)[::-1]
    if k is not None:
        top = top[:k]
    if np.log(top).sum() < _LOG_UNDERFLOW:
        return "log"
    return "linear"


def _clip_pvalue(value: float) -> float:
    return min(1.0, max(P_VALUE_FLOOR, float(value)))


# ---------------------------------------------------------------------------
# Streaming update primitives
# ---------------------------------------------------------------------------


def new_distribution(cap: int, log: bool = False) -> np.ndarray:
    """Return the degenerate distribution P(X = 0) = 1 over states 0..cap."""
    if log:
        dist = np.full(cap + 1, -np.inf)
        dist[0] = 0.0
    else:
        dist = np.zeros(cap + 1)
        dist[0] = 1.0
    return dist


def convolve_event(dist: np.ndarray, p: float, cap: int) -> np.ndarray:
    """
    Fold one Bernoulli(p) trial into a capped distribution, in place.

    ``dist`` has ``cap + 1`` entries and its last state absorbs. Returns the
    same array for convenience.
    """
    if cap == 0:
        return dist
    q = 1.0 - p
    dist[cap] += dist[cap - 1] * p
    if cap > 1:
        dist[1:cap] = dist[1:cap] * q + dist[: cap - 1] * p
    dist[0] *= q
    return dist


def convolve_event_log(log_dist: np.ndarray, p: float, cap: int) -> np.ndarray:
    """Log-space counterpart of :func:`convolve_event` (entries are natural logs)."""
    if cap == 0:
        return log_dist
    log_p = math.log(p) if p > 0.0 else -np.inf
    log_q = math.log1p(-p) if p < 1.0 else -np.inf
    with np.errstate(invalid="ignore"):
        log_dist[cap] = np.logaddexp(log_dist[cap], log_dist[cap - 1] + log_p)
        if cap > 1:
            log_dist[1:cap] = np.logaddexp(log_dist[1:cap] + log_q, log_dist[: cap - 1] + log_p)
        log_dist[0] = log_dist[0] + log_q
    return log_dist


def merge_distributions(a: np.ndarray, b: np.ndarray, cap: int) -> np.ndarray:
    """
    Convolve two capped distributions built from disjoint trial sets.

    Both inputs must have ``cap + 1`` states with the last one absorbing. This
    is the reduction step for divide-and-conquer accumulation.
    """
    full = np.convolve(a, b)
    merged = np.empty(cap + 1)
    merged[:cap] = full[:cap]
    merged[cap] = full[cap:].sum()
    return merged


def merge_distributions_log(a: np.ndarray, b: np.ndarray, cap: int) -> np.ndarray:
    """
    Log-space counterpart of :func:`merge_distributions`.

    Folds in one state of ``a`` at a time: O(cap**2) time, O(cap) memory.
    Every output state is accumulated in log space without rescaling, so
    states far below the largest mass do not underflow.
    """
    merged = np.full(cap + 1, -np.inf)
    with np.errstate(invalid="ignore", divide="ignore"):
        for i in np.flatnonzero(np.isfinite(a)):
            shifted = a[i] + b
            # States i + j >= cap fold into the absorbing state
            head = cap - i
            if head > 0:
                merged[i:cap] = np.logaddexp(merged[i:cap], shifted[:head])
            merged[cap] = np.logaddexp(merged[cap], logsumexp(shifted[head:]))
    return merged


def capped_distribution(
    probs: Iterable[float],
    cap: int,
    log: bool = False,
    min_pvalue: float = 0.0,
) -> np.ndarray:
    """
    Stream trials through a capped distribution in the given order.

    Parameters
    ----------
    probs : iterable of float
        Success probabilities, consumed one at a time. Values are assumed to
        be validated already.
    cap : int
        Absorbing state, i.e. the tail threshold k.
    log : bool
        Accumulate in log space.
    min_pvalue : float
        Stop as soon as the absorbed mass exceeds this floor (0 = never).

    Returns
    -------
    np.ndarray
        ``cap + 1`` state masses (log masses when ``log`` is True).
    """
    dist = new_distribution(cap, log=log)
    step = convolve_event_log if log else convolve_event
    if min_pvalue > 0.0:
        stop_at = math.log(min_pvalue) if log else min_pvalue
    else:
        stop_at = None

    for i, p in enumerate(probs):
        step(dist, p, cap)
        if stop_at is not None and dist[cap] > stop_at:
            logger.debug(f"Early stop after {i + 1} trials: tail mass exceeds {min_pvalue}")
            break
    return dist


def tail_from_distribution(dist: np.ndarray, log: bool = False) -> float:
    """Return the absorbed tail mass of a capped distribution as a p-value in (0, 1]."""
    tail = math.exp(dist[-1]) if log else dist[-1]
    return _clip_pvalue(tail)


# ---------------------------------------------------------------------------
# Public solver API
# ---------------------------------------------------------------------------


def sharing_pmf(probs: Sequence[float] | np.ndarray) -> np.ndarray:
    """
    Exact probability mass function of the number of successes.

    Returns an array of length ``n + 1`` whose entry j is P(X = j). With
    ``cap = n`` the absorbing state can only be reached by all n successes,
    so the capped recursion yields the full PMF.
    """
    arr = validate_probabilities(probs)
    return capped_distribution(arr, arr.size)


def potential_pvalue(probs: Sequence[float] | np.ndarray) -> float:
    """
    Smallest p-value attainable with these families: P(X = n) = prod(p_i).

    Computed in log space so that long products do not underflow to zero
    before the floor is applied.
    """
    arr = validate_probabilities(probs)
    if arr.size == 0:
        return 1.0
    if (arr == 0.0).any():
        return P_VALUE_FLOOR
    return _clip_pvalue(math.exp(float(np.log(arr).sum())))


def tail_probability(
    probs: Sequence[float] | np.ndarray,
    k: int,
    min_pvalue: float = 0.0,
    method: str = "auto",
) -> float:
    """
    Exact one-sided tail P(X >= k) for X a sum of Bernoulli(p_i) trials.

    Parameters
    ----------
    probs : sequence of float
        Per-family sharing probabilities, each in [0, 1]. Order fixes the
        floating-point summation order; the mathematical result does not
        depend on it.
    k : int
        Observed number of sharing families.
    min_pvalue : float
        Early-stopping floor. When > 0 the computation stops once the tail
        mass accumulated so far exceeds it and returns that (exact, lower
        bound) partial sum. 0 computes the full tail.
    method : str
        "auto", "linear" or "log".

    Returns
    -------
    float
        P(X >= k), in (0, 1]. ``k <= 0`` gives 1.0. ``k > n`` or a zero tail
        gives the double-precision floor ``P_VALUE_FLOOR``.

    Raises
    ------
    InputError
        On invalid probabilities, a non-integer ``k``, or ``min_pvalue``
        outside [0, 1].
    """
    arr = validate_probabilities(probs)
    min_pvalue = _validate_min_pvalue(min_pvalue)
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise InputError(f"k must be an integer, got {k!r}", field="k")
    k = int(k)

    n = arr.size
    if k <= 0:
        return 1.0
    if k > n:
        logger.debug(f"Tail P(X >= {k}) with only {n} trials is empty; reporting floor")
        return P_VALUE_FLOOR

    resolved = select_method(arr, k, method)
    use_log = resolved == "log"
    dist = capped_distribution(arr, k, log=use_log, min_pvalue=min_pvalue)
    return tail_from_distribution(dist, log=use_log)


def family_sharing_pvalue(
    sharing_probs: Sequence[float] | np.ndarray,
    observed_sharing: Sequence[bool] | np.ndarray,
    min_pvalue: float = 0.0,
    method: str = "auto",
) -> float:
    """
    Exact p-value for the sharing pattern observed across several families.

    Parameters
    ----------
    sharing_probs : sequence of float
        Null probability that each family's affected members share the
        variant, given that it is seen in the family.
    observed_sharing : sequence of bool
        Whether sharing was observed in each family. Same length as
        ``sharing_probs``.
    min_pvalue : float
        Early-stopping floor, see :func:`tail_probability`.
    method : str
        "auto", "linear" or "log".

    Returns
    -------
    float
        P(X >= k) where k is the number of families with observed sharing.

    Raises
    ------
    InputError
        If lengths differ, a probability is outside [0, 1], or an observed
        value is not boolean (0/1).
    """
    probs = validate_probabilities(sharing_probs)
    observed = np.asarray(observed_sharing)

    if observed.ndim != 1 or observed.shape[0] != probs.shape[0]:
        raise InputError(
            f"observed_sharing has length {observed.shape[0] if observed.ndim else 0}, "
            f"expected {probs.shape[0]} (one per family)",
            field="observed_sharing",
        )
    if observed.dtype != bool:
        try:
            numeric = observed.astype(float)
        except (TypeError, ValueError):
            raise InputError("observed_sharing must be boolean", field="observed_sharing")
        if not np.isin(numeric, (0.0, 1.0)).all():
            raise InputError(
                "observed_sharing must contain only True/False (or 1/0)", field="observed_sharing"
            )
        observed = numeric.astype(bool)

    k = int(observed.sum())
    return tail_probability(probs, k, min_pvalue=min_pvalue, method=method)
