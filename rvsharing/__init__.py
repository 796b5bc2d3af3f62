# File: rvsharing/__init__.py
# Location: rvsharing/rvsharing/__init__.py

"""
rvsharing Package.

Exact p-values for rare variant sharing among affected relatives. Given one
sharing probability per family and genotypes of the affected members, the
package computes per-family-set, per-variant, and cohort-level (enrichment)
tail probabilities without asymptotic approximation.
"""

from .errors import InputError, ShapeError, SharingError
from .sharing import (
    SharingConfig,
    SharingResult,
    enrichment_pvalue,
    family_sharing_pvalue,
    variant_sharing_pvalues,
)
from .version import __version__

__all__ = [
    "InputError",
    "ShapeError",
    "SharingConfig",
    "SharingError",
    "SharingResult",
    "__version__",
    "enrichment_pvalue",
    "family_sharing_pvalue",
    "variant_sharing_pvalues",
]
