"""Command-line interface for rvsharing."""

import argparse
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .config import load_config
from .errors import InputError, SharingError
from .sharing import (
    SharingConfig,
    correct_results,
    enrichment_summary,
    family_sharing_pvalue,
    results_to_dataframe,
    variant_sharing_pvalues,
)
from .version import __version__

logger = logging.getLogger("rvsharing")

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _add_general_options(parser: argparse.ArgumentParser) -> None:
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--log-level",
        choices=list(LOG_LEVEL_MAP),
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )
    general_group.add_argument(
        "-c",
        "--config",
        help="Path to a JSON configuration file overriding the packaged defaults",
        default=None,
    )


def _add_cohort_inputs(parser: argparse.ArgumentParser) -> None:
    io_group = parser.add_argument_group("Cohort Input")
    io_group.add_argument(
        "--genotypes",
        required=True,
        help="TSV of minor-allele counts: first column variant name, one column per sample. "
        "Empty cells, NA or negative values mark missing genotypes.",
    )
    io_group.add_argument(
        "--families",
        required=True,
        help="TSV with columns sample_id and family_id assigning each sample to a family",
    )
    io_group.add_argument(
        "--probs",
        required=True,
        help="TSV with columns family_id and sharing_prob",
    )
    io_group.add_argument(
        "--maf",
        default=None,
        help="TSV with columns variant and maf. Without it no frequency filter is applied.",
    )
    io_group.add_argument(
        "--max-maf",
        type=float,
        default=None,
        help="Rare-variant cutoff; variants with higher minor-allele frequency are skipped",
    )
    io_group.add_argument(
        "--method",
        choices=["auto", "linear", "log"],
        default=None,
        help="Solver arithmetic (default from config: auto)",
    )
    io_group.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker processes (-1 = all CPUs, default from config: 1)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser for the rvsharing CLI."""
    parser = argparse.ArgumentParser(
        description="rvsharing: exact p-values for rare variant sharing in families."
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"rvsharing {__version__}",
        help="Show the current version and exit",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    family = subparsers.add_parser(
        "family", help="P-value for one observed sharing pattern across families"
    )
    _add_general_options(family)
    family_group = family.add_argument_group("Sharing Pattern")
    family_group.add_argument(
        "--probs", required=True, help="Comma-separated sharing probabilities, one per family"
    )
    family_group.add_argument(
        "--observed",
        required=True,
        help="Comma-separated observed sharing flags (1/0 or true/false), one per family",
    )
    family_group.add_argument(
        "--min-pvalue",
        type=float,
        default=None,
        help="Stop early once the tail mass exceeds this value (0 = exact)",
    )
    family_group.add_argument("--method", choices=["auto", "linear", "log"], default=None)

    variants = subparsers.add_parser("variants", help="Per-variant sharing p-values")
    _add_general_options(variants)
    _add_cohort_inputs(variants)
    test_group = variants.add_argument_group("Testing")
    test_group.add_argument(
        "--name-filter",
        default=None,
        help="File with variant names, one per line; only these variants are tested",
    )
    test_group.add_argument(
        "--alpha", type=float, default=None, help="Raw per-variant significance cutoff"
    )
    test_group.add_argument(
        "--min-pvalue",
        type=float,
        default=None,
        help="Stop early once the tail mass exceeds this value (0 = exact)",
    )
    test_group.add_argument(
        "--potential-pvalue-filter",
        action="store_true",
        default=None,
        help="Skip variants whose best-case p-value cannot pass alpha / number of variants",
    )
    test_group.add_argument(
        "--correction",
        choices=["fdr", "bonferroni"],
        default=None,
        help="Add a corrected_p_value column using this method",
    )
    test_group.add_argument(
        "-o",
        "--output-file",
        default="-",
        help="Output TSV path or '-' for stdout",
    )

    enrichment = subparsers.add_parser(
        "enrichment", help="Cohort-level enrichment of sharing events"
    )
    _add_general_options(enrichment)
    _add_cohort_inputs(enrichment)
    enrichment.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Count threshold for P(total >= threshold); defaults to the observed total",
    )

    return parser


def parse_args(args_list: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Parameters
    ----------
    args_list : list of str, optional
        Arguments to parse; defaults to sys.argv[1:].

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = create_parser()
    return parser.parse_args(args_list)


def _configure_logging(args: argparse.Namespace) -> None:
    level = LOG_LEVEL_MAP[args.log_level]
    logging.getLogger("rvsharing").setLevel(level)

    if args.log_file:
        log_file_path = Path(args.log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(args.log_file)
        fh.setLevel(level)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(fh)
        logger.debug(f"Logging to file enabled: {args.log_file}")


def build_config(args: argparse.Namespace) -> SharingConfig:
    """Merge the JSON configuration with CLI overrides (CLI wins when given)."""
    cfg: Dict[str, Any] = load_config(args.config)
    overrides = {
        "max_minor_allele_freq": getattr(args, "max_maf", None),
        "min_pvalue": getattr(args, "min_pvalue", None),
        "alpha": getattr(args, "alpha", None),
        "method": getattr(args, "method", None),
        "workers": getattr(args, "workers", None),
        "potential_pvalue_filter": getattr(args, "potential_pvalue_filter", None),
        "correction_method": getattr(args, "correction", None),
    }
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    logger.debug(f"Configuration: {cfg}")

    config = SharingConfig.from_dict(cfg)
    config.validate()
    return config


def _parse_float_list(text: str, field: str) -> List[float]:
    try:
        return [float(v) for v in text.split(",") if v.strip()]
    except ValueError as e:
        raise InputError(f"--{field} must be comma-separated numbers: {e}", field=field)


def _parse_bool_list(text: str, field: str) -> List[bool]:
    truthy = {"1", "true", "t", "yes"}
    falsy = {"0", "false", "f", "no"}
    values = []
    for token in (v.strip().lower() for v in text.split(",") if v.strip()):
        if token in truthy:
            values.append(True)
        elif token in falsy:
            values.append(False)
        else:
            raise InputError(f"--{field} value {token!r} is not a boolean", field=field)
    return values


def _require_columns(df: pd.DataFrame, columns: List[str], path: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InputError(
            f"{path} is missing required column(s) {missing}; found {list(df.columns)}",
            field=path,
        )


def _numeric_column(df: pd.DataFrame, column: str, path: str) -> pd.Series:
    try:
        return pd.to_numeric(df[column], errors="raise").astype(float)
    except (TypeError, ValueError) as e:
        raise InputError(f"Column '{column}' in {path} must be numeric: {e}", field=column)


def read_cohort(
    genotypes: str, families: str, probs: str, maf: Optional[str]
) -> Tuple[pd.DataFrame, List[str], Dict[str, float], Optional[np.ndarray]]:
    """
    Load the cohort TSV inputs.

    Returns
    -------
    tuple
        (genotype DataFrame indexed by variant, family id per genotype column,
        sharing probability per family, MAF per variant or None)
    """
    geno_df = pd.read_csv(genotypes, sep="\t", index_col=0, dtype=str)
    geno_df.index = geno_df.index.astype(str)
    logger.info(f"Read {geno_df.shape[0]} variants x {geno_df.shape[1]} samples from {genotypes}")

    fam_df = pd.read_csv(families, sep="\t", dtype=str)
    _require_columns(fam_df, ["sample_id", "family_id"], families)
    sample_to_family = dict(zip(fam_df["sample_id"], fam_df["family_id"]))
    unassigned = [s for s in geno_df.columns if s not in sample_to_family]
    if unassigned:
        raise InputError(
            f"{len(unassigned)} genotype sample(s) have no family in {families}: {unassigned[:5]}",
            field="families",
        )
    family_ids = [sample_to_family[s] for s in geno_df.columns]

    prob_df = pd.read_csv(probs, sep="\t", dtype={"family_id": str})
    _require_columns(prob_df, ["family_id", "sharing_prob"], probs)
    sharing_probs = dict(zip(prob_df["family_id"], _numeric_column(prob_df, "sharing_prob", probs)))

    maf_values = None
    if maf:
        maf_df = pd.read_csv(maf, sep="\t", dtype={"variant": str})
        _require_columns(maf_df, ["variant", "maf"], maf)
        maf_series = _numeric_column(maf_df, "maf", maf)
        maf_series.index = maf_df["variant"]
        maf_series = maf_series.reindex(geno_df.index)
        if maf_series.isna().any():
            missing = maf_series.index[maf_series.isna()].tolist()
            raise InputError(
                f"{len(missing)} variant(s) have no frequency in {maf}: {missing[:5]}",
                field="maf",
            )
        maf_values = maf_series.to_numpy()

    return geno_df, family_ids, sharing_probs, maf_values


def _read_name_filter(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip() and not line.startswith("#")]


def run_family(args: argparse.Namespace, config: SharingConfig) -> int:
    """Handle the ``family`` subcommand."""
    probs = _parse_float_list(args.probs, "probs")
    observed = _parse_bool_list(args.observed, "observed")
    p_value = family_sharing_pvalue(
        probs, observed, min_pvalue=config.min_pvalue, method=config.method
    )
    print(f"{p_value:.6g}")
    return 0


def run_variants(args: argparse.Namespace, config: SharingConfig) -> int:
    """Handle the ``variants`` subcommand."""
    geno_df, family_ids, sharing_probs, maf = read_cohort(
        args.genotypes, args.families, args.probs, args.maf
    )
    name_filter = _read_name_filter(args.name_filter) if args.name_filter else None

    results = variant_sharing_pvalues(
        geno_df,
        list(geno_df.index),
        family_ids,
        sharing_probs,
        name_filter=name_filter,
        minor_allele_freq=maf,
        alpha=config.alpha,
        config=config,
    )
    out_df = results_to_dataframe(results)
    if args.correction:
        out_df["corrected_p_value"] = correct_results(results, config.correction_method)

    if args.output_file in ("-", "stdout"):
        out_df.to_csv(sys.stdout, sep="\t", index=False, na_rep="NA")
    else:
        Path(args.output_file).parent.mkdir(parents=True, exist_ok=True)
        out_df.to_csv(args.output_file, sep="\t", index=False, na_rep="NA")
        logger.info(f"Wrote {len(out_df)} results to {args.output_file}")
    return 0


def run_enrichment(args: argparse.Namespace, config: SharingConfig) -> int:
    """Handle the ``enrichment`` subcommand."""
    geno_df, family_ids, sharing_probs, maf = read_cohort(
        args.genotypes, args.families, args.probs, args.maf
    )
    summary = enrichment_summary(
        geno_df,
        family_ids,
        sharing_probs,
        minor_allele_freq=maf,
        threshold=args.threshold,
        config=config,
    )
    print(
        f"p_value\t{summary.p_value:.6g}\n"
        f"threshold\t{summary.threshold}\n"
        f"n_events\t{summary.n_events}\n"
        f"n_observed\t{summary.n_observed}\n"
        f"n_variants\t{summary.n_variants}"
    )
    return 0


COMMANDS = {
    "family": run_family,
    "variants": run_variants,
    "enrichment": run_enrichment,
}


def main(args_list: Optional[List[str]] = None) -> int:
    """Run main entry point for the rvsharing CLI.

    Steps:
        1. Parse arguments.
        2. Configure logging and load config.
        3. Dispatch to the subcommand handler.

    Input, file and parse errors are reported on the log and turn into exit code 1.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    args = parse_args(args_list)
    _configure_logging(args)

    start_time: datetime.datetime = datetime.datetime.now()
    logger.debug(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        config = build_config(args)
        status = COMMANDS[args.command](args, config)
    except (SharingError, OSError, ValueError) as e:
        logger.error(f"rvsharing {args.command} failed: {e}")
        return 1

    logger.debug(f"Run finished in {datetime.datetime.now() - start_time}")
    return status


if __name__ == "__main__":
    sys.exit(main())
