"""Tests for sample PCA."""

import pytest
import pandas as pd
import numpy as np
from rnaseq_eda.pca import PCAError, run_pca
from rnaseq_eda.statistics import log_transform


@pytest.fixture
def grouped_counts():
    """Two clearly separated groups of three samples."""
    rng = np.random.default_rng(0)
    base = rng.poisson(200, (300, 1))
    counts = np.hstack([base] * 6) + rng.poisson(5, (300, 6))
    counts[:50, 3:] *= 8
    return pd.DataFrame(
        counts,
        index=[f"Gene_{i}" for i in range(300)],
        columns=[f"S{i}" for i in range(6)]
    )


@pytest.fixture
def sample_info():
    return pd.DataFrame({
        'condition': ['a'] * 3 + ['b'] * 3
    }, index=pd.Index([f"S{i}" for i in range(6)], name='sample'))


class TestRunPCA:

    def test_result_structure(self, grouped_counts):
        result = run_pca(log_transform(grouped_counts))

        assert set(result) == {'scores', 'loadings', 'explained_variance', 'model'}
        assert result['scores']['sample'].tolist() == list(grouped_counts.columns)
        assert list(result['explained_variance']['component'][:2]) == ['PC1', 'PC2']
        assert result['explained_variance']['cumulative_ratio'].iloc[-1] == pytest.approx(1.0)

    def test_groups_separate_on_pc1(self, grouped_counts):
        result = run_pca(log_transform(grouped_counts))
        pc1 = result['scores']['PC1']

        assert np.sign(pc1[:3]).nunique() == 1
        assert np.sign(pc1[3:]).nunique() == 1
        assert np.sign(pc1.iloc[0]) != np.sign(pc1.iloc[3])

    def test_sample_info_attached(self, grouped_counts, sample_info):
        result = run_pca(log_transform(grouped_counts), sample_info=sample_info)

        scores = result['scores']
        assert 'condition' in scores.columns
        assert scores.loc[scores['sample'] == 'S4', 'condition'].iloc[0] == 'b'

    def test_top_genes_and_components(self, grouped_counts):
        result = run_pca(log_transform(grouped_counts), n_components=2, top_n_genes=40)

        assert result['loadings'].shape == (40, 2)
        assert list(result['scores'].columns) == ['sample', 'PC1', 'PC2']

    def test_components_capped(self, grouped_counts):
        result = run_pca(grouped_counts, n_components=50)

        assert len(result['explained_variance']) == 6

    def test_zero_variance_genes_removed(self, grouped_counts):
        counts = grouped_counts.copy()
        counts.loc['Flat'] = 7

        result = run_pca(counts)

        assert 'Flat' not in result['loadings'].index

    def test_scaled(self, grouped_counts):
        result = run_pca(log_transform(grouped_counts), scale=True)

        assert result['explained_variance']['variance_ratio'].iloc[0] > 0

    def test_too_few_samples(self, grouped_counts):
        with pytest.raises(PCAError):
            run_pca(grouped_counts[['S0']])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
