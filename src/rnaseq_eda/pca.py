"""Principal component analysis of samples."""

import logging
from typing import Dict, Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from rnaseq_eda.statistics import most_variable_genes
from rnaseq_eda.tidy import SAMPLE_COLUMN, join_sample_info


logger = logging.getLogger(__name__)


class PCAError(Exception):
    """Exception for PCA-related errors."""
    pass


def run_pca(
    counts: pd.DataFrame,
    sample_info: Optional[pd.DataFrame] = None,
    sample_key: str = SAMPLE_COLUMN,
    n_components: Optional[int] = None,
    top_n_genes: Optional[int] = None,
    scale: bool = False
) -> Dict:
    """
    Run PCA with samples as observations and genes as variables.

    Counts should already be transformed (log or VST); this function only
    removes zero-variance genes and optionally scales them.

    Args:
        counts: Transformed expression matrix (genes x samples)
        sample_info: Optional sample attributes to attach to the scores
        sample_key: Sample identifier column (or index name) in sample_info
        n_components: Number of components (all available if None)
        top_n_genes: Restrict to the most variable genes
        scale: Standardize genes to unit variance before PCA

    Returns:
        Dictionary containing:
            - scores: one row per sample with a ``sample`` column, PC1..PCk
              and any sample attributes
            - loadings: genes x components
            - explained_variance: DataFrame with component, variance ratio
              and cumulative ratio
            - model: the fitted sklearn PCA
    """
    data = counts
    if top_n_genes is not None:
        data = data.loc[most_variable_genes(data, top_n_genes)]

    # Transpose (samples as rows)
    data = data.T

    # Remove genes with zero variance
    data = data.loc[:, data.var() > 0]

    n_samples, n_genes = data.shape
    if n_samples < 2 or n_genes < 1:
        raise PCAError(
            f"PCA needs at least 2 samples and 1 variable gene, got {n_samples} samples "
            f"and {n_genes} genes"
        )

    max_components = min(n_samples, n_genes)
    if n_components is None:
        n_components = max_components
    elif n_components > max_components:
        logger.warning(f"Requested {n_components} components, only {max_components} available")
        n_components = max_components

    values = data.values
    if scale:
        values = StandardScaler().fit_transform(values)

    pca = PCA(n_components=n_components)
    coords = pca.fit_transform(values)

    component_names = [f"PC{i + 1}" for i in range(n_components)]

    scores = pd.DataFrame(coords, columns=component_names)
    scores.insert(0, SAMPLE_COLUMN, data.index.to_list())

    if sample_info is not None:
        scores = join_sample_info(scores, sample_info, left_on=SAMPLE_COLUMN, right_on=sample_key, how="left")

    loadings = pd.DataFrame(
        pca.components_.T,
        index=data.columns,
        columns=component_names
    )

    ratio = pca.explained_variance_ratio_
    explained_variance = pd.DataFrame({
        'component': component_names,
        'variance_ratio': ratio,
        'cumulative_ratio': np.cumsum(ratio)
    })

    logger.info(
        f"PCA on {n_samples} samples x {n_genes} genes: "
        + ", ".join(f"{c} {r * 100:.1f}%" for c, r in zip(component_names[:3], ratio[:3]))
    )

    return {
        'scores': scores,
        'loadings': loadings,
        'explained_variance': explained_variance,
        'model': pca
    }
