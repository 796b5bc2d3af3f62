# File: rvsharing/sharing/genotypes.py
# Location: rvsharing/rvsharing/sharing/genotypes.py
"""
Allele matrix validation and per-family sharing states.

Matrix convention
-----------------
Rows index variants, columns index individuals. ``family_ids[j]`` names the
family owning column ``j``; several columns may belong to the same family.
Entries are minor-allele counts (0, 1, 2). Any negative value or NaN marks a
missing genotype. Only affected, genotyped relatives are expected as columns.

Sharing rules for one variant and one family
--------------------------------------------
- every member missing          -> family dropped (no information)
- no carrier among genotyped    -> family dropped (variant not seen in family;
                                   sharing probabilities are conditional on it)
- every genotyped member carries -> observed sharing
- otherwise                     -> seen but not shared
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from rvsharing.errors import InputError, ShapeError
from rvsharing.sharing.bernoulli_sum import validate_probabilities

logger = logging.getLogger("rvsharing")

# String cells read as missing in DataFrame input, besides NaN and None.
_MISSING_TOKENS = ("", "NA", "NaN", "nan", ".")


@dataclass(frozen=True)
class FamilyLayout:
    """Column grouping of an allele matrix by family, with each family's sharing probability."""

    family_order: tuple[str, ...]
    columns: tuple[np.ndarray, ...]
    probs: np.ndarray

    @property
    def n_families(self) -> int:
        return len(self.family_order)


@dataclass(frozen=True)
class VariantSharing:
    """Families entering the test for one variant, in family order."""

    family_index: np.ndarray
    probs: np.ndarray
    observed: np.ndarray
    all_missing: bool

    @property
    def n_families(self) -> int:
        return int(self.probs.size)

    @property
    def n_sharing(self) -> int:
        return int(self.observed.sum())


def as_allele_matrix(alleles, n_individuals: int) -> np.ndarray:
    """
    Return the allele matrix as a float array with NaN for missing genotypes.

    Accepts numpy arrays, nested lists and pandas DataFrames. DataFrame cells
    may also mark a missing genotype with "", "NA" or ".". The input is never
    modified; a converted copy is returned.

    Raises
    ------
    ShapeError
        If the matrix is not two-dimensional or its column count differs
        from ``n_individuals``.
    InputError
        If an entry is neither numeric nor a missing-genotype marker.
    """
    if isinstance(alleles, pd.DataFrame):
        alleles = alleles.mask(alleles.isin(_MISSING_TOKENS))
        coerced = alleles.apply(pd.to_numeric, errors="coerce")
        unparsed = alleles.notna().to_numpy() & coerced.isna().to_numpy()
        if unparsed.any():
            row, col = (int(i) for i in np.argwhere(unparsed)[0])
            raise InputError(
                f"Allele matrix must be numeric; {int(unparsed.sum())} unparseable value(s), "
                f"first {alleles.iat[row, col]!r} at row {row}, column {alleles.columns[col]!r}",
                field="alleles",
                details={"row": row, "column": str(alleles.columns[col])},
            )
        alleles = coerced.to_numpy(dtype=float)
    try:
        matrix = np.array(alleles, dtype=float)
    except (TypeError, ValueError) as e:
        raise InputError(f"Allele matrix must be numeric: {e}", field="alleles")

    if matrix.ndim == 1 and matrix.size == 0:
        matrix = matrix.reshape(0, n_individuals)
    if matrix.ndim != 2:
        raise ShapeError(f"Allele matrix must be two-dimensional, got {matrix.ndim} dimension(s)")
    if matrix.shape[1] != n_individuals:
        raise ShapeError(
            f"Allele matrix has {matrix.shape[1]} columns "
            f"but {n_individuals} family ids were given",
            expected=n_individuals,
            actual=matrix.shape[1],
        )

    matrix[matrix < 0] = np.nan
    return matrix


def check_variant_vector(values, n_variants: int, field: str) -> list:
    """Check that a per-variant vector has one entry per matrix row."""
    values = list(values)
    if len(values) != n_variants:
        raise ShapeError(
            f"{field} has {len(values)} entries but the allele matrix has {n_variants} rows",
            expected=n_variants,
            actual=len(values),
        )
    return values


def check_minor_allele_freq(minor_allele_freq, n_variants: int) -> np.ndarray | None:
    """Validate the per-variant minor-allele frequency vector; None disables the filter."""
    if minor_allele_freq is None:
        return None
    maf = np.asarray(
        check_variant_vector(minor_allele_freq, n_variants, "minor_allele_freq"), dtype=float
    )
    bad = ~((maf >= 0.0) & (maf <= 1.0))
    if bad.any():
        raise InputError(
            f"minor_allele_freq must lie in [0, 1]; first invalid value at row "
            f"{int(np.flatnonzero(bad)[0])}",
            field="minor_allele_freq",
        )
    return maf


def build_family_layout(family_ids: Sequence[str], sharing_probs) -> FamilyLayout:
    """
    Group matrix columns by family and attach one sharing probability per family.

    Parameters
    ----------
    family_ids : sequence of str
        Family owning each matrix column.
    sharing_probs : mapping, pandas Series, or sequence of float
        Either keyed by family id, or a plain sequence aligned with the unique
        family ids in order of first appearance in ``family_ids``.

    Raises
    ------
    InputError
        If a family has no probability, the sequence length differs from the
        number of families, or a probability is outside [0, 1].
    """
    family_ids = [str(f) for f in family_ids]
    order: dict[str, list[int]] = {}
    for col, fam in enumerate(family_ids):
        order.setdefault(fam, []).append(col)
    family_order = tuple(order)

    if isinstance(sharing_probs, pd.Series):
        sharing_probs = {str(k): v for k, v in sharing_probs.items()}

    if isinstance(sharing_probs, Mapping):
        keyed = {str(k): v for k, v in sharing_probs.items()}
        missing = [fam for fam in family_order if fam not in keyed]
        if missing:
            raise InputError(
                f"No sharing probability for {len(missing)} family(ies): {missing[:5]}",
                field="sharing_probs",
                details={"missing_families": missing},
            )
        probs = validate_probabilities([keyed[fam] for fam in family_order])
    else:
        probs = validate_probabilities(sharing_probs)
        if probs.size != len(family_order):
            raise InputError(
                f"sharing_probs has {probs.size} entries but family_ids name "
                f"{len(family_order)} distinct families",
                field="sharing_probs",
            )

    columns = tuple(np.asarray(order[fam], dtype=int) for fam in family_order)
    logger.debug(f"Family layout: {len(family_order)} families over {len(family_ids)} individuals")
    return FamilyLayout(family_order=family_order, columns=columns, probs=probs)


def variant_sharing(row: np.ndarray, layout: FamilyLayout) -> VariantSharing:
    """Derive which families see the variant in ``row`` and which of them share it."""
    index: list[int] = []
    observed: list[bool] = []
    any_genotyped = False

    for i, cols in enumerate(layout.columns):
        genotypes = row[cols]
        genotypes = genotypes[~np.isnan(genotypes)]
        if genotypes.size == 0:
            continue
        any_genotyped = True
        carriers = genotypes > 0
        if not carriers.any():
            continue
        index.append(i)
        observed.append(bool(carriers.all()))

    family_index = np.asarray(index, dtype=int)
    return VariantSharing(
        family_index=family_index,
        probs=layout.probs[family_index],
        observed=np.asarray(observed, dtype=bool),
        all_missing=not any_genotyped,
    )


def rare_variant_mask(maf: np.ndarray | None, n_variants: int, max_maf: float) -> np.ndarray:
    """Boolean mask of rows whose minor-allele frequency does not exceed ``max_maf``."""
    if maf is None:
        return np.ones(n_variants, dtype=bool)
    return maf <= max_maf


def iter_sharing_events(
    matrix: np.ndarray, layout: FamilyLayout, keep: np.ndarray
) -> Iterator[tuple[int, int, float, bool]]:
    """
    Yield ``(row, family_index, prob, observed)`` for every qualifying event.

    Rows are visited in matrix order and families in layout order, which fixes
    the summation order of any accumulation over the events.
    """
    for row_idx in np.flatnonzero(keep):
        sharing = variant_sharing(matrix[row_idx], layout)
        for fam, p, obs in zip(sharing.family_index, sharing.probs, sharing.observed):
            yield int(row_idx), int(fam), float(p), bool(obs)
