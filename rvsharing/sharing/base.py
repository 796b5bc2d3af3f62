# File: rvsharing/sharing/base.py
# Location: rvsharing/rvsharing/sharing/base.py
"""
Core data types for the sharing test framework.

Defines the SharingResult dataclass returned for every tested variant and the
SharingConfig dataclass that carries run-time options shared by the solver,
the per-variant orchestrator, and the enrichment aggregator.
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass, fields
from typing import Any

from rvsharing.errors import InputError

logger = logging.getLogger("rvsharing")

SOLVER_METHODS = ("auto", "linear", "log")
CORRECTION_METHODS = ("fdr", "bonferroni")


@dataclass(frozen=True)
class SharingResult:
    """
    Result of the sharing test for a single variant.

    Fields
    ------
    variant : str
        Variant identifier as supplied by the caller.
    p_value : float | None
        Exact one-sided p-value P(X >= n_sharing). None when the variant could
        not be tested (e.g. every genotype missing). None is NOT the same as
        1.0 (failure vs. no evidence).
    significant : bool
        ``p_value <= alpha``. Always False when p_value is None.
    n_families : int
        Families in which the variant is seen and which entered the test.
    n_sharing : int
        Families among those in which all genotyped members carry the allele.
    potential_p_value : float | None
        Smallest p-value attainable with this family set (every family
        sharing). None for untested variants.
    skip_reason : str | None
        Short machine-readable reason when p_value is None.
    """

    variant: str
    p_value: float | None
    significant: bool
    n_families: int = 0
    n_sharing: int = 0
    potential_p_value: float | None = None
    skip_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the result as a plain dict (column order matches the dataclass)."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class SharingConfig:
    """
    Configuration for sharing p-value computations.

    Defaults mirror the packaged config.json so that ``SharingConfig()`` and
    ``SharingConfig.from_dict(load_config())`` are equivalent.
    """

    max_minor_allele_freq: float = 0.05
    """Variants with minor-allele frequency above this are not rare and are skipped."""

    min_pvalue: float = 0.0
    """Early-stopping floor for the solver. 0 disables early stopping (fully exact)."""

    alpha: float = 0.05
    """Raw significance cutoff applied to each variant's p-value."""

    method: str = "auto"
    """Solver arithmetic: "linear", "log", or "auto" (log space only for extreme inputs)."""

    workers: int = 1
    """Worker processes for per-variant tests and chunked enrichment. -1 = os.cpu_count()."""

    potential_pvalue_filter: bool = False
    """Skip variants whose best-case p-value cannot pass a Bonferroni cutoff."""

    correction_method: str = "fdr"
    """Caller-side multiple testing correction used by the CLI: "fdr" or "bonferroni"."""

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> SharingConfig:
        """Build a config from a loaded configuration dict, ignoring unrelated keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(cfg) - known)
        if unknown:
            logger.debug(f"Ignoring unrecognised configuration keys: {unknown}")
        return cls(**{k: v for k, v in cfg.items() if k in known})

    def validate(self) -> None:
        """
        Check every field for a usable value.

        Raises
        ------
        InputError
            If any field is out of range or not one of the accepted choices.
        """
        for name in ("alpha", "min_pvalue", "max_minor_allele_freq"):
            value = getattr(self, name)
            if (
                isinstance(value, bool)
                or not isinstance(value, numbers.Real)
                or not 0.0 <= value <= 1.0
            ):
                raise InputError(f"{name} must be a number in [0, 1], got {value!r}", field=name)
        if self.method not in SOLVER_METHODS:
            raise InputError(
                f"method must be one of {', '.join(SOLVER_METHODS)}, got {self.method!r}",
                field="method",
            )
        if self.correction_method not in CORRECTION_METHODS:
            raise InputError(
                f"correction_method must be one of {', '.join(CORRECTION_METHODS)}, "
                f"got {self.correction_method!r}",
                field="correction_method",
            )
        if not isinstance(self.workers, int) or self.workers == 0 or self.workers < -1:
            raise InputError(
                f"workers must be a positive integer or -1, got {self.workers!r}", field="workers"
            )
