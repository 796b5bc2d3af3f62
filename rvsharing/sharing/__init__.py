"""
rvsharing.sharing: exact family-based rare variant sharing tests.

Public API
----------
family_sharing_pvalue   : Exact tail P(X >= k) for one set of families
tail_probability        : Same, for an explicit success count k
sharing_pmf             : Full Poisson-binomial PMF of the sharing count
VariantSharingTest      : Per-variant orchestrator over an allele matrix
variant_sharing_pvalues : Functional wrapper around VariantSharingTest
enrichment_pvalue       : Cohort-level burden test over all sharing events
SharingConfig           : Run configuration dataclass
SharingResult           : Per-variant result dataclass
apply_correction        : Caller-side FDR/Bonferroni correction
"""

from rvsharing.sharing.base import SharingConfig, SharingResult
from rvsharing.sharing.bernoulli_sum import (
    family_sharing_pvalue,
    potential_pvalue,
    sharing_pmf,
    tail_probability,
)
from rvsharing.sharing.correction import apply_correction, correct_results
from rvsharing.sharing.enrichment import EnrichmentResult, enrichment_pvalue, enrichment_summary
from rvsharing.sharing.variant_test import (
    VariantSharingTest,
    results_to_dataframe,
    variant_sharing_pvalues,
)

__all__ = [
    "EnrichmentResult",
    "SharingConfig",
    "SharingResult",
    "VariantSharingTest",
    "apply_correction",
    "correct_results",
    "enrichment_pvalue",
    "enrichment_summary",
    "family_sharing_pvalue",
    "potential_pvalue",
    "results_to_dataframe",
    "sharing_pmf",
    "tail_probability",
    "variant_sharing_pvalues",
]
