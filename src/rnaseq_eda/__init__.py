"""RNA-seq Explorer - tidy reshaping and exploratory analysis of count data."""

__version__ = "0.1.0"

from .config import get_config, Config
from .tidy import (
    matrix_to_tidy,
    melt_counts,
    spread_counts,
    join_sample_info,
    build_observation_table,
    StructuralError,
    MissingRowNamesError,
)
from .validation import validate_count_matrix, validate_sample_info
from .pca import run_pca

__all__ = [
    'get_config',
    'Config',
    'matrix_to_tidy',
    'melt_counts',
    'spread_counts',
    'join_sample_info',
    'build_observation_table',
    'StructuralError',
    'MissingRowNamesError',
    'validate_count_matrix',
    'validate_sample_info',
    'run_pca'
]
