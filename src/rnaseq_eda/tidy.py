"""Tidy reshaping of expression matrices and joining with sample metadata.

The pipeline turns a wide gene x sample matrix into one row per observation:

    matrix (genes x samples)
        -> matrix_to_tidy   -> wide table with an explicit ``gene`` column
        -> melt_counts      -> long table (gene, sample, count)
        -> join_sample_info -> long table + every sample attribute

Every step returns a new DataFrame and leaves its inputs untouched.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


GENE_COLUMN = "gene"
SAMPLE_COLUMN = "sample"
COUNT_COLUMN = "count"


class StructuralError(Exception):
    """Input table lacks an expected named dimension."""
    pass


class MissingRowNamesError(StructuralError):
    """Matrix has no row identifiers to carry into the ``gene`` column."""
    pass


class MissingColumnNamesError(StructuralError):
    """Matrix has no column identifiers to use as sample names."""
    pass


class MissingColumnError(StructuralError, KeyError):
    """A required column is absent from a table."""

    def __init__(self, table: str, missing: Sequence[str]):
        self.table = table
        self.missing = list(missing)
        super().__init__(f"{table} is missing required column(s): {', '.join(map(str, self.missing))}")

    def __str__(self):
        return self.args[0]


class DuplicateIdentifierError(StructuralError):
    """Identifiers that must be unique are repeated."""
    pass


class TableSchema(BaseModel):
    """Named columns a table must carry before a pipeline stage accepts it."""
    name: str
    required: List[str] = Field(default_factory=list)

    def check(self, table: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> None:
        """Raise MissingColumnError if a required column is absent.

        ``columns`` overrides the default names when a caller renamed them.
        """
        expected = list(columns) if columns is not None else self.required
        missing = [c for c in expected if c not in table.columns]
        if missing:
            raise MissingColumnError(self.name, missing)


WIDE_SCHEMA = TableSchema(name="TidyWideTable", required=[GENE_COLUMN])
LONG_SCHEMA = TableSchema(name="TidyLongTable", required=[GENE_COLUMN, SAMPLE_COLUMN, COUNT_COLUMN])
SAMPLE_INFO_SCHEMA = TableSchema(name="SampleInfo", required=[SAMPLE_COLUMN])


class SampleKeyMismatch(BaseModel):
    """Sample identifiers that appear on only one side of a join."""
    missing_in_sample_info: List[str] = Field(default_factory=list)
    missing_in_counts: List[str] = Field(default_factory=list)

    @property
    def has_mismatch(self) -> bool:
        return bool(self.missing_in_sample_info or self.missing_in_counts)


def _has_row_names(matrix: pd.DataFrame) -> bool:
    index = matrix.index
    if isinstance(index, pd.RangeIndex) and index.name is None:
        return False
    return not index.isna().any()


def matrix_to_tidy(matrix: pd.DataFrame, gene_column: str = GENE_COLUMN) -> pd.DataFrame:
    """
    Convert an expression matrix into a tidy wide table.

    Args:
        matrix: Expression matrix with gene ids as index and sample ids as columns
        gene_column: Name of the column that receives the row identifiers

    Returns:
        DataFrame with ``gene_column`` first, followed by the sample columns
        with their values unchanged. Row order follows the input.

    Raises:
        MissingRowNamesError: If the matrix index carries no gene identifiers
        MissingColumnNamesError: If the matrix columns carry no sample identifiers
        DuplicateIdentifierError: If gene or sample identifiers repeat
        StructuralError: If a sample column is already named ``gene_column``
    """
    if not _has_row_names(matrix):
        raise MissingRowNamesError(
            "Expression matrix has no row identifiers; set gene ids as the index"
        )

    if isinstance(matrix.columns, pd.RangeIndex) and matrix.columns.name is None:
        raise MissingColumnNamesError(
            "Expression matrix has no column identifiers; set sample ids as the columns"
        )

    if matrix.index.duplicated().any():
        n_duplicates = matrix.index.duplicated().sum()
        raise DuplicateIdentifierError(f"Expression matrix contains {n_duplicates} duplicate gene IDs")

    if matrix.columns.duplicated().any():
        n_duplicates = matrix.columns.duplicated().sum()
        raise DuplicateIdentifierError(f"Expression matrix contains {n_duplicates} duplicate sample IDs")

    if gene_column in matrix.columns:
        raise StructuralError(f"Expression matrix already has a column named '{gene_column}'")

    tidy = matrix.reset_index(drop=True).rename_axis(columns=None)
    tidy.insert(0, gene_column, matrix.index.to_list())

    return tidy


def melt_counts(
    wide: pd.DataFrame,
    samples: Optional[Sequence[str]] = None,
    gene_column: str = GENE_COLUMN,
    sample_column: str = SAMPLE_COLUMN,
    value_column: str = COUNT_COLUMN
) -> pd.DataFrame:
    """
    Melt a tidy wide table into one row per (gene, sample) pair.

    Args:
        wide: Tidy wide table as produced by ``matrix_to_tidy``
        samples: Sample columns to melt; all columns except ``gene_column`` if None
        gene_column: Name of the gene identifier column
        sample_column: Name of the output column holding sample ids
        value_column: Name of the output column holding the cell values

    Returns:
        Long DataFrame with columns (gene, sample, count). Rows run through
        genes in their original order and, within each gene, samples in the
        order they were selected.
    """
    WIDE_SCHEMA.check(wide, columns=[gene_column])

    if samples is None:
        samples = [c for c in wide.columns if c != gene_column]
    else:
        samples = list(samples)
        missing = [s for s in samples if s not in wide.columns]
        if missing:
            raise MissingColumnError(WIDE_SCHEMA.name, missing)
        repeated = pd.Index(samples)[pd.Index(samples).duplicated()].unique()
        if len(repeated):
            raise DuplicateIdentifierError(
                f"Samples selected more than once: {', '.join(map(str, repeated))}"
            )

    clashes = [c for c in (sample_column, value_column) if c in samples]
    if clashes:
        raise StructuralError(
            f"Sample column(s) clash with output column names: {', '.join(map(str, clashes))}"
        )

    if wide[gene_column].duplicated().any():
        n_duplicates = wide[gene_column].duplicated().sum()
        raise DuplicateIdentifierError(f"Wide table contains {n_duplicates} duplicate gene IDs")

    if len(samples) == 0:
        return pd.DataFrame({
            gene_column: pd.Series([], dtype=wide[gene_column].dtype),
            sample_column: pd.Series([], dtype=object),
            value_column: pd.Series([], dtype=float)
        })

    long = wide.melt(
        id_vars=[gene_column],
        value_vars=samples,
        var_name=sample_column,
        value_name=value_column
    )

    # melt emits sample-major blocks; reorder to gene-major
    n_genes = len(wide)
    order = np.arange(len(long)).reshape(len(samples), n_genes).T.ravel()
    long = long.iloc[order].reset_index(drop=True)

    return long


def spread_counts(
    long: pd.DataFrame,
    gene_column: str = GENE_COLUMN,
    sample_column: str = SAMPLE_COLUMN,
    value_column: str = COUNT_COLUMN
) -> pd.DataFrame:
    """
    Pivot a long table back into a tidy wide table.

    Genes and samples keep their order of first appearance.
    """
    LONG_SCHEMA.check(long, columns=[gene_column, sample_column, value_column])

    if long.duplicated(subset=[gene_column, sample_column]).any():
        raise DuplicateIdentifierError("Long table contains duplicate (gene, sample) pairs")

    genes = pd.unique(long[gene_column])
    samples = pd.unique(long[sample_column])

    wide = long.pivot(index=gene_column, columns=sample_column, values=value_column)
    wide = wide.reindex(index=genes, columns=samples).rename_axis(index=None, columns=None)

    return matrix_to_tidy(wide, gene_column=gene_column)


def _sample_info_keyed(sample_info: pd.DataFrame, key: str) -> pd.DataFrame:
    """Return sample_info with ``key`` as a column, lifting it from the index if needed."""
    if key in sample_info.columns:
        return sample_info
    if sample_info.index.name == key:
        return sample_info.reset_index()
    raise MissingColumnError(SAMPLE_INFO_SCHEMA.name, [key])


def compare_sample_keys(
    long: pd.DataFrame,
    sample_info: pd.DataFrame,
    left_on: str = SAMPLE_COLUMN,
    right_on: str = SAMPLE_COLUMN
) -> SampleKeyMismatch:
    """Report sample ids present on only one side of a long/sample-info join."""
    if left_on not in long.columns:
        raise MissingColumnError(LONG_SCHEMA.name, [left_on])
    info = _sample_info_keyed(sample_info, right_on)

    count_samples = set(long[left_on].dropna())
    info_samples = set(info[right_on].dropna())

    return SampleKeyMismatch(
        missing_in_sample_info=sorted(map(str, count_samples - info_samples)),
        missing_in_counts=sorted(map(str, info_samples - count_samples))
    )


def join_sample_info(
    long: pd.DataFrame,
    sample_info: pd.DataFrame,
    left_on: str = SAMPLE_COLUMN,
    right_on: str = SAMPLE_COLUMN,
    how: str = "outer"
) -> pd.DataFrame:
    """
    Join a long count table with per-sample attributes.

    The default full outer join keeps every row from both sides: samples
    without metadata get missing attribute values, and metadata rows without
    counts are appended with missing gene and count.

    Args:
        long: Long table with a sample identifier column
        sample_info: One row per sample; the key may be a column or the index name
        left_on: Sample key column in ``long``
        right_on: Sample key column in ``sample_info``
        how: Join type passed to pandas (``outer`` retains all data)

    Returns:
        Denormalized observation table. When the key names differ, the key is
        reported once under ``left_on``.

    Raises:
        MissingColumnError: If a key column is absent on either side
        DuplicateIdentifierError: If a sample id appears twice in sample_info
        StructuralError: If attribute columns clash with count table columns,
            or one key is numeric and the other is not
    """
    if left_on not in long.columns:
        raise MissingColumnError(LONG_SCHEMA.name, [left_on])

    info = _sample_info_keyed(sample_info, right_on)

    if info[right_on].duplicated().any():
        duplicates = info.loc[info[right_on].duplicated(), right_on].unique()
        raise DuplicateIdentifierError(
            f"Sample info contains duplicate sample IDs: {', '.join(map(str, duplicates))}"
        )

    overlap = [c for c in info.columns if c != right_on and c in long.columns]
    if overlap:
        raise StructuralError(
            f"Sample info columns clash with count table columns: {', '.join(map(str, overlap))}"
        )

    left_dtype = long[left_on].dtype
    right_dtype = info[right_on].dtype
    if pd.api.types.is_numeric_dtype(left_dtype) != pd.api.types.is_numeric_dtype(right_dtype):
        raise StructuralError(
            f"Sample key types differ: '{left_on}' is {left_dtype} in the count table, "
            f"'{right_on}' is {right_dtype} in sample info"
        )

    mismatch = compare_sample_keys(long, info, left_on=left_on, right_on=right_on)
    if mismatch.missing_in_sample_info:
        logger.warning(
            f"Samples without metadata (attributes will be missing): "
            f"{', '.join(mismatch.missing_in_sample_info)}"
        )
    if mismatch.missing_in_counts:
        logger.warning(
            f"Samples in metadata but not in counts: {', '.join(mismatch.missing_in_counts)}"
        )

    order_column = "__row_order__"
    left = long.assign(**{order_column: np.arange(len(long))})

    joined = left.merge(info, how=how, left_on=left_on, right_on=right_on, sort=False)

    if right_on != left_on:
        joined[left_on] = joined[left_on].fillna(joined[right_on])
        joined = joined.drop(columns=[right_on])

    # pandas sorts outer-join keys; restore the long table's order, metadata-only rows last
    joined = (
        joined.sort_values(order_column, kind="stable", na_position="last")
        .drop(columns=[order_column])
        .reset_index(drop=True)
    )

    logger.info(
        f"Joined {len(long)} observations with {len(info)} samples "
        f"({how} join) -> {len(joined)} rows"
    )

    return joined


def build_observation_table(
    matrix: pd.DataFrame,
    sample_info: pd.DataFrame,
    sample_key: str = SAMPLE_COLUMN,
    samples: Optional[Sequence[str]] = None,
    how: str = "outer"
) -> pd.DataFrame:
    """
    Run the full pipeline: matrix -> tidy wide -> long -> joined with sample info.

    Args:
        matrix: Expression matrix (genes x samples)
        sample_info: Sample attributes keyed by ``sample_key``
        sample_key: Sample identifier column (or index name) in sample_info
        samples: Optional subset of samples to keep
        how: Join type, ``outer`` by default

    Returns:
        Denormalized observation table with gene, sample, count and attributes
    """
    wide = matrix_to_tidy(matrix)
    long = melt_counts(wide, samples=samples)
    return join_sample_info(long, sample_info, left_on=SAMPLE_COLUMN, right_on=sample_key, how=how)


if __name__ == "__main__":
    counts = pd.DataFrame(
        [[1, 2], [3, 4], [5, 6]],
        index=["g1", "g2", "g3"],
        columns=["s1", "s2"]
    )
    sample_info = pd.DataFrame({
        'sample': ['s1', 's2'],
        'strain': ['wt', 'mut']
    })

    print(build_observation_table(counts, sample_info))
