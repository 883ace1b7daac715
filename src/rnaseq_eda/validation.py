"""Reading and validation of expression matrices and sample information."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Custom exception for validation errors."""
    pass


class ValidationWarning(BaseModel):
    """Warning message from validation."""
    message: str
    severity: str = Field(default="warning")  # warning, info


class ValidationResult(BaseModel):
    """Result of data validation."""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)

    def raise_for_errors(self):
        """Raise ValidationError listing every error if the result is invalid."""
        if not self.valid:
            raise ValidationError("; ".join(self.errors))


class ExpressionMatrixSchema(BaseModel):
    """Schema for expression matrix validation."""
    n_genes: int
    n_samples: int
    gene_ids: List[str]
    sample_ids: List[str]
    has_negative: bool
    has_non_integer: bool
    has_missing: bool
    library_sizes: Dict[str, float]


class SampleInfoSchema(BaseModel):
    """Schema for sample information validation."""
    n_samples: int
    sample_ids: List[str]
    columns: List[str]
    levels_per_column: Dict[str, int] = Field(default_factory=dict)


def _detect_delimiter(filepath: Path) -> Optional[str]:
    with open(filepath, 'r') as f:
        first_line = f.readline()
    if '\t' in first_line:
        return '\t'
    if ',' in first_line:
        return ','
    return None  # pandas will try to detect


def clean_identifiers(df: pd.DataFrame, index_name: Optional[str] = None) -> pd.DataFrame:
    """Stringify and strip row and column identifiers, and name the index."""
    df = df.copy()
    df.index = df.index.astype(str).str.strip()
    df.columns = df.columns.astype(str).str.strip()
    df.index.name = index_name
    return df


def _read_table(
    filepath: Union[str, Path],
    delimiter: Optional[str],
    index_col: int,
    header: int,
    index_name: Optional[str] = None
) -> pd.DataFrame:
    filepath = Path(filepath)

    if filepath.suffix.lower() in ['.xlsx', '.xls']:
        df = pd.read_excel(filepath, index_col=index_col, header=header)
    else:
        if delimiter is None:
            delimiter = _detect_delimiter(filepath)
        df = pd.read_csv(filepath, sep=delimiter, index_col=index_col, header=header,
                         engine='python' if delimiter is None else 'c')

    df = clean_identifiers(df, index_name=index_name)

    logger.info(f"Read {df.shape[0]} x {df.shape[1]} table from {filepath.name}")

    return df


def read_count_matrix(
    filepath: Union[str, Path],
    delimiter: Optional[str] = None,
    gene_col: int = 0,
    header: int = 0
) -> pd.DataFrame:
    """
    Read an expression matrix from file.

    Args:
        filepath: Path to CSV, TSV or Excel file
        delimiter: Column delimiter (auto-detected if None)
        gene_col: Column index for gene IDs
        header: Row index for column names

    Returns:
        DataFrame with genes as rows, samples as columns
    """
    return _read_table(filepath, delimiter, gene_col, header)


def read_metadata(
    filepath: Union[str, Path],
    delimiter: Optional[str] = None,
    sample_col: int = 0,
    header: int = 0,
    sample_key: str = "sample"
) -> pd.DataFrame:
    """
    Read a sample information table.

    The sample identifier column becomes the index and is named
    ``sample_key`` so it can be used directly as a join key.

    Args:
        filepath: Path to CSV, TSV or Excel file
        delimiter: Column delimiter (auto-detected if None)
        sample_col: Column index for sample IDs
        header: Row index for column names
        sample_key: Name given to the sample identifier index

    Returns:
        DataFrame with samples as rows, attributes as columns
    """
    return _read_table(filepath, delimiter, sample_col, header, index_name=sample_key)


def validate_count_matrix(
    counts: pd.DataFrame,
    raw_counts: bool = True
) -> Tuple[ValidationResult, Optional[ExpressionMatrixSchema]]:
    """
    Validate an expression matrix.

    Args:
        counts: Expression matrix DataFrame (genes x samples)
        raw_counts: Whether values are raw read counts. Negative values are
            an error only for raw counts; normalized values may be negative.

    Returns:
        Tuple of (ValidationResult, ExpressionMatrixSchema)
    """
    errors = []
    warnings = []

    if counts.empty:
        errors.append("Expression matrix is empty")
        return ValidationResult(valid=False, errors=errors), None

    n_genes, n_samples = counts.shape

    non_numeric = [str(c) for c in counts.columns if not pd.api.types.is_numeric_dtype(counts[c])]
    if non_numeric:
        errors.append(f"Expression matrix has non-numeric columns: {', '.join(non_numeric)}")
        return ValidationResult(valid=False, errors=errors), None

    if isinstance(counts.index, pd.RangeIndex):
        errors.append("Expression matrix has no gene identifiers (row names)")

    has_negative = bool((counts < 0).any().any())
    if has_negative:
        if raw_counts:
            errors.append("Expression matrix contains negative values")
        else:
            warnings.append(ValidationWarning(
                message="Expression matrix contains negative values",
                severity="info"
            ))

    values = counts.to_numpy(dtype=float)
    finite = values[np.isfinite(values)]
    has_non_integer = not np.allclose(finite, np.round(finite))
    if has_non_integer and raw_counts:
        warnings.append(ValidationWarning(
            message="Expression matrix contains non-integer values; are these normalized counts?",
            severity="warning"
        ))

    has_missing = bool(counts.isna().any().any())
    if has_missing:
        n_missing = int(counts.isna().sum().sum())
        errors.append(f"Expression matrix contains {n_missing} missing values")

    if n_genes < 5000:
        warnings.append(ValidationWarning(
            message=f"Low number of genes ({n_genes}). Typical RNA-seq has 15,000-25,000 genes.",
            severity="info"
        ))

    library_sizes = {str(k): float(v) for k, v in counts.sum(axis=0).items()}

    if raw_counts:
        for sample, size in library_sizes.items():
            if size < 1e6:
                warnings.append(ValidationWarning(
                    message=f"Sample '{sample}' has low library size: {size:,.0f} reads",
                    severity="warning"
                ))
            elif size > 100e6:
                warnings.append(ValidationWarning(
                    message=f"Sample '{sample}' has very high library size: {size:,.0f} reads",
                    severity="info"
                ))

    if counts.index.duplicated().any():
        n_duplicates = counts.index.duplicated().sum()
        errors.append(f"Expression matrix contains {n_duplicates} duplicate gene IDs")

    if counts.columns.duplicated().any():
        n_duplicates = counts.columns.duplicated().sum()
        errors.append(f"Expression matrix contains {n_duplicates} duplicate sample IDs")

    schema = ExpressionMatrixSchema(
        n_genes=n_genes,
        n_samples=n_samples,
        gene_ids=[str(g) for g in counts.index],
        sample_ids=[str(s) for s in counts.columns],
        has_negative=has_negative,
        has_non_integer=has_non_integer,
        has_missing=has_missing,
        library_sizes=library_sizes
    )

    sizes = list(library_sizes.values())
    summary = {
        "n_genes": n_genes,
        "n_samples": n_samples,
        "total_counts": float(np.nansum(values)),
        "mean_library_size": float(np.mean(sizes)),
        "median_library_size": float(np.median(sizes))
    }

    result = ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        summary=summary
    )

    return result, schema


def validate_sample_info(
    sample_info: pd.DataFrame,
    count_samples: Optional[Sequence[str]] = None,
    sample_key: Optional[str] = None,
    attribute_columns: Optional[Sequence[str]] = None
) -> Tuple[ValidationResult, Optional[SampleInfoSchema]]:
    """
    Validate a sample information table.

    Args:
        sample_info: Sample information DataFrame
        count_samples: Sample IDs from the expression matrix (for matching check)
        sample_key: Column holding sample IDs; the index is used if None
            or if the index carries this name
        attribute_columns: Columns that must exist and be fully populated

    Returns:
        Tuple of (ValidationResult, SampleInfoSchema)
    """
    errors = []
    warnings = []

    if sample_info.empty:
        errors.append("Sample information is empty")
        return ValidationResult(valid=False, errors=errors), None

    if sample_key is not None and sample_key in sample_info.columns:
        sample_ids = sample_info[sample_key]
        columns = [c for c in sample_info.columns if c != sample_key]
    elif sample_key is None or sample_info.index.name == sample_key:
        sample_ids = sample_info.index.to_series()
        columns = sample_info.columns.tolist()
    else:
        errors.append(f"Sample key column '{sample_key}' not found in sample information")
        return ValidationResult(valid=False, errors=errors), None

    if sample_ids.isna().any():
        errors.append("Sample information contains missing sample IDs")

    if sample_ids.duplicated().any():
        n_duplicates = sample_ids.duplicated().sum()
        errors.append(f"Sample information contains {n_duplicates} duplicate sample IDs")

    levels_per_column = {}
    for column in attribute_columns or []:
        if column not in sample_info.columns:
            errors.append(f"Attribute column '{column}' not found in sample information")
            continue
        if sample_info[column].isna().any():
            errors.append(f"Attribute column '{column}' contains missing values")
        levels_per_column[str(column)] = int(sample_info[column].nunique())
        if levels_per_column[str(column)] < 2:
            warnings.append(ValidationWarning(
                message=f"Attribute column '{column}' has a single level",
                severity="info"
            ))

    if count_samples is not None:
        count_set = set(map(str, count_samples))
        info_set = set(map(str, sample_ids.dropna()))

        missing_in_info = count_set - info_set
        missing_in_counts = info_set - count_set

        # kept as warnings: the join retains unmatched samples with missing attributes
        if missing_in_info:
            warnings.append(ValidationWarning(
                message=f"Samples in expression matrix but not in sample information: "
                        f"{', '.join(sorted(missing_in_info))}",
                severity="warning"
            ))

        if missing_in_counts:
            warnings.append(ValidationWarning(
                message=f"Samples in sample information but not in expression matrix: "
                        f"{', '.join(sorted(missing_in_counts))}",
                severity="info"
            ))

    schema = SampleInfoSchema(
        n_samples=len(sample_info),
        sample_ids=[str(s) for s in sample_ids],
        columns=[str(c) for c in columns],
        levels_per_column=levels_per_column
    )

    summary = {
        "n_samples": len(sample_info),
        "n_columns": len(columns),
        "columns": [str(c) for c in columns]
    }

    if levels_per_column:
        summary["levels"] = levels_per_column

    result = ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        summary=summary
    )

    return result, schema


def validate_analysis_inputs(
    counts: pd.DataFrame,
    sample_info: pd.DataFrame,
    sample_key: Optional[str] = None,
    attribute_columns: Optional[Sequence[str]] = None,
    raw_counts: bool = True
) -> ValidationResult:
    """
    Validate complete analysis inputs.

    Args:
        counts: Expression matrix
        sample_info: Sample information
        sample_key: Sample identifier column in sample_info (index if None)
        attribute_columns: Attribute columns that must be present
        raw_counts: Whether the matrix holds raw read counts

    Returns:
        ValidationResult with combined validation from both inputs
    """
    all_errors = []
    all_warnings = []

    counts_result, _ = validate_count_matrix(counts, raw_counts=raw_counts)
    all_errors.extend(counts_result.errors)
    all_warnings.extend(counts_result.warnings)

    info_result, _ = validate_sample_info(
        sample_info,
        count_samples=counts.columns.tolist(),
        sample_key=sample_key,
        attribute_columns=attribute_columns
    )
    all_errors.extend(info_result.errors)
    all_warnings.extend(info_result.warnings)

    summary = {
        "counts": counts_result.summary,
        "sample_info": info_result.summary
    }

    return ValidationResult(
        valid=len(all_errors) == 0,
        errors=all_errors,
        warnings=all_warnings,
        summary=summary
    )
