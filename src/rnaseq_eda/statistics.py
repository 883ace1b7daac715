"""Count transforms and summary statistics for exploratory analysis."""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from rnaseq_eda.tidy import (
    COUNT_COLUMN,
    LONG_SCHEMA,
    MissingColumnError,
)


logger = logging.getLogger(__name__)


def filter_low_counts(
    counts: pd.DataFrame,
    min_count: float = 10,
    min_samples: int = 1
) -> pd.DataFrame:
    """
    Drop genes that are barely detected.

    Args:
        counts: Expression matrix (genes x samples)
        min_count: Minimum count for a gene to be considered detected in a sample
        min_samples: Number of samples in which the gene must be detected

    Returns:
        Filtered expression matrix
    """
    keep = (counts >= min_count).sum(axis=1) >= min_samples
    filtered = counts.loc[keep]

    logger.info(
        f"Kept {int(keep.sum())} of {len(counts)} genes "
        f"(>= {min_count} counts in >= {min_samples} samples)"
    )

    return filtered


def counts_per_million(counts: pd.DataFrame) -> pd.DataFrame:
    """Scale each sample to one million total counts."""
    library_sizes = counts.sum(axis=0)
    if (library_sizes == 0).any():
        empty = library_sizes.index[library_sizes == 0].tolist()
        raise ValueError(f"Samples with zero total counts: {', '.join(map(str, empty))}")
    return counts.div(library_sizes, axis=1) * 1e6


def log_transform(
    counts: pd.DataFrame,
    pseudocount: float = 1.0,
    base: float = 2
) -> pd.DataFrame:
    """
    Log-transform counts after adding a pseudocount.

    Args:
        counts: Expression matrix or any numeric table
        pseudocount: Value added before taking the logarithm
        base: Logarithm base

    Returns:
        Transformed table with the same shape and labels
    """
    if pseudocount < 0:
        raise ValueError("pseudocount must be non-negative")
    return np.log(counts + pseudocount) / np.log(base)


def most_variable_genes(counts: pd.DataFrame, n: int = 500) -> List[str]:
    """Return the ``n`` genes with the highest variance across samples."""
    variances = counts.var(axis=1).sort_values(ascending=False, kind="stable")
    return variances.head(n).index.tolist()


def summarize_groups(
    observations: pd.DataFrame,
    group_by: Union[str, Sequence[str]],
    value_column: str = COUNT_COLUMN
) -> pd.DataFrame:
    """
    Grouped summary statistics over a long observation table.

    Rows with a missing value in any grouping column (e.g. samples with no
    metadata after an outer join) are left out of the summary.

    Args:
        observations: Long or denormalized observation table
        group_by: Column(s) defining the groups, e.g. ["gene", "strain"]
        value_column: Column to summarize

    Returns:
        DataFrame with one row per group and columns mean, var, std, n
    """
    if isinstance(group_by, str):
        group_by = [group_by]
    else:
        group_by = list(dict.fromkeys(group_by))

    missing = [c for c in group_by + [value_column] if c not in observations.columns]
    if missing:
        raise MissingColumnError("observation table", missing)

    complete = observations.dropna(subset=group_by)
    n_dropped = len(observations) - len(complete)
    if n_dropped:
        logger.warning(f"Excluded {n_dropped} rows with missing values in {', '.join(group_by)}")

    summary = (
        complete
        .groupby(group_by, sort=False, observed=True)[value_column]
        .agg(mean="mean", var="var", std="std", n="count")
        .reset_index()
    )

    return summary


def sample_correlation(
    counts: pd.DataFrame,
    method: str = "spearman",
    genes: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """
    Sample-by-sample correlation matrix.

    Args:
        counts: Expression matrix (genes x samples)
        method: pearson, spearman or kendall
        genes: Optional subset of genes to correlate over

    Returns:
        Square DataFrame indexed by sample on both axes
    """
    if method not in ("pearson", "spearman", "kendall"):
        raise ValueError(f"Unknown correlation method: {method}")

    data = counts.loc[list(genes)] if genes is not None else counts
    return data.corr(method=method)


def correlation_to_long(
    correlation: pd.DataFrame,
    first_column: str = "sample_1",
    second_column: str = "sample_2",
    value_column: str = "correlation"
) -> pd.DataFrame:
    """Tidy a square correlation matrix into one row per sample pair."""
    long = (
        correlation
        .rename_axis(index=first_column, columns=None)
        .reset_index()
        .melt(id_vars=first_column, var_name=second_column, value_name=value_column)
    )
    return long


def gene_observations(observations: pd.DataFrame, genes: Sequence[str]) -> pd.DataFrame:
    """Subset a long observation table to the given genes, in the given order."""
    LONG_SCHEMA.check(observations)
    rank = {gene: i for i, gene in enumerate(genes)}
    subset = observations[observations["gene"].isin(list(rank))]
    return (
        subset.sort_values("gene", key=lambda s: s.map(rank), kind="stable")
        .reset_index(drop=True)
    )
