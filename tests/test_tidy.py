"""Unit tests for the tidy reshaping and join pipeline."""

import logging

import pytest
import pandas as pd
import numpy as np
from rnaseq_eda.tidy import (
    DuplicateIdentifierError,
    MissingColumnError,
    MissingColumnNamesError,
    MissingRowNamesError,
    StructuralError,
    build_observation_table,
    compare_sample_keys,
    join_sample_info,
    matrix_to_tidy,
    melt_counts,
    spread_counts,
)


@pytest.fixture
def small_counts():
    """3 genes x 2 samples."""
    return pd.DataFrame(
        [[1, 2], [3, 4], [5, 6]],
        index=["g1", "g2", "g3"],
        columns=["s1", "s2"]
    )


@pytest.fixture
def small_sample_info():
    return pd.DataFrame({
        'sample': ['s1', 's2'],
        'strain': ['wt', 'mut']
    })


@pytest.fixture
def random_counts():
    np.random.seed(42)
    return pd.DataFrame(
        np.random.poisson(50, (40, 6)),
        index=[f"Gene_{i}" for i in range(40)],
        columns=[f"Sample_{i}" for i in range(6)]
    )


class TestMatrixToTidy:
    """Tests for the matrix-to-tidy converter."""

    def test_shape_and_gene_column(self, random_counts):
        tidy = matrix_to_tidy(random_counts)

        assert tidy.shape == (40, 7)
        assert tidy.columns[0] == 'gene'
        assert tidy['gene'].tolist() == random_counts.index.tolist()

    def test_values_unchanged(self, random_counts):
        tidy = matrix_to_tidy(random_counts)

        assert list(tidy.columns[1:]) == list(random_counts.columns)
        np.testing.assert_array_equal(tidy.iloc[:, 1:].values, random_counts.values)

    def test_input_not_modified(self, small_counts):
        before = small_counts.copy()
        matrix_to_tidy(small_counts)

        pd.testing.assert_frame_equal(small_counts, before)

    def test_missing_row_names(self):
        matrix = pd.DataFrame([[1, 2], [3, 4]], columns=["s1", "s2"])

        with pytest.raises(MissingRowNamesError):
            matrix_to_tidy(matrix)

    def test_missing_row_names_is_structural(self):
        matrix = pd.DataFrame([[1, 2], [3, 4]], columns=["s1", "s2"])

        with pytest.raises(StructuralError):
            matrix_to_tidy(matrix)

    def test_missing_column_names(self):
        matrix = pd.DataFrame([[1, 2], [3, 4]], index=["g1", "g2"])

        with pytest.raises(MissingColumnNamesError):
            matrix_to_tidy(matrix)

    def test_duplicate_gene_ids(self, small_counts):
        matrix = small_counts.copy()
        matrix.index = ["g1", "g1", "g3"]

        with pytest.raises(DuplicateIdentifierError):
            matrix_to_tidy(matrix)

    def test_gene_column_collision(self, small_counts):
        matrix = small_counts.rename(columns={"s1": "gene"})

        with pytest.raises(StructuralError):
            matrix_to_tidy(matrix)

    def test_negative_and_fractional_values_allowed(self):
        matrix = pd.DataFrame([[-1.5, 2.25]], index=["g1"], columns=["s1", "s2"])
        tidy = matrix_to_tidy(matrix)

        assert tidy.loc[0, 's1'] == -1.5
        assert tidy.loc[0, 's2'] == 2.25


class TestMelt:
    """Tests for wide-to-long melting."""

    def test_row_count(self, random_counts):
        long = melt_counts(matrix_to_tidy(random_counts))

        assert len(long) == 40 * 6
        assert list(long.columns) == ['gene', 'sample', 'count']

    def test_no_duplicate_pairs(self, random_counts):
        long = melt_counts(matrix_to_tidy(random_counts))

        assert not long.duplicated(subset=['gene', 'sample']).any()

    def test_gene_major_order(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))

        assert long['gene'].tolist() == ['g1', 'g1', 'g2', 'g2', 'g3', 'g3']
        assert long['sample'].tolist() == ['s1', 's2'] * 3
        assert long['count'].tolist() == [1, 2, 3, 4, 5, 6]

    def test_selected_samples_only(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts), samples=['s2'])

        assert long['sample'].unique().tolist() == ['s2']
        assert long['count'].tolist() == [2, 4, 6]

    def test_zero_samples_gives_empty_table(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts), samples=[])

        assert len(long) == 0
        assert list(long.columns) == ['gene', 'sample', 'count']

    def test_missing_sample_column(self, small_counts):
        with pytest.raises(MissingColumnError):
            melt_counts(matrix_to_tidy(small_counts), samples=['s1', 'nope'])

    def test_missing_gene_column(self, small_counts):
        with pytest.raises(MissingColumnError):
            melt_counts(small_counts.reset_index(drop=True))

    def test_sample_selected_twice(self, small_counts):
        with pytest.raises(DuplicateIdentifierError):
            melt_counts(matrix_to_tidy(small_counts), samples=['s1', 's1'])

    def test_sample_named_like_output_column(self, small_counts):
        with pytest.raises(StructuralError):
            melt_counts(matrix_to_tidy(small_counts.rename(columns={'s1': 'count'})))

        with pytest.raises(StructuralError):
            melt_counts(matrix_to_tidy(small_counts), value_column='s2')

    def test_duplicate_gene_in_wide_table(self, small_counts):
        wide = matrix_to_tidy(small_counts)
        wide.loc[2, 'gene'] = 'g1'

        with pytest.raises(DuplicateIdentifierError):
            melt_counts(wide)

    def test_round_trip(self, random_counts):
        wide = matrix_to_tidy(random_counts)
        restored = spread_counts(melt_counts(wide))

        pd.testing.assert_frame_equal(restored, wide)


class TestJoin:
    """Tests for joining long tables with sample information."""

    def test_cardinality_when_keys_match(self, small_counts, small_sample_info):
        long = melt_counts(matrix_to_tidy(small_counts))
        joined = join_sample_info(long, small_sample_info)

        assert len(joined) == len(long)
        assert list(joined.columns) == ['gene', 'sample', 'count', 'strain']

    def test_attributes_follow_sample(self, small_counts, small_sample_info):
        long = melt_counts(matrix_to_tidy(small_counts))
        joined = join_sample_info(long, small_sample_info)

        assert (joined.loc[joined['sample'] == 's1', 'strain'] == 'wt').all()
        assert (joined.loc[joined['sample'] == 's2', 'strain'] == 'mut').all()

    def test_preserves_long_order(self, small_counts, small_sample_info):
        long = melt_counts(matrix_to_tidy(small_counts))
        joined = join_sample_info(long, small_sample_info.iloc[::-1])

        assert joined['gene'].tolist() == long['gene'].tolist()
        assert joined['sample'].tolist() == long['sample'].tolist()

    def test_sample_missing_from_info(self, small_counts, caplog):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({'sample': ['s1'], 'strain': ['wt']})

        with caplog.at_level(logging.WARNING, logger="rnaseq_eda.tidy"):
            joined = join_sample_info(long, info)

        assert len(joined) == 6
        assert joined.loc[joined['sample'] == 's2', 'strain'].isna().all()
        assert 's2' in caplog.text

    def test_info_only_samples_appended(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({
            'sample': ['s1', 's2', 's3'],
            'strain': ['wt', 'mut', 'wt']
        })
        joined = join_sample_info(long, info)

        assert len(joined) == 7
        last = joined.iloc[-1]
        assert last['sample'] == 's3'
        assert pd.isna(last['gene'])
        assert pd.isna(last['count'])

    def test_inner_join_drops_unmatched(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({'sample': ['s1'], 'strain': ['wt']})
        joined = join_sample_info(long, info, how="inner")

        assert len(joined) == 3

    def test_differently_named_keys(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({'sample_id': ['s1', 's2'], 'strain': ['wt', 'mut']})
        joined = join_sample_info(long, info, right_on='sample_id')

        assert 'sample_id' not in joined.columns
        assert len(joined) == 6
        assert joined.loc[joined['sample'] == 's2', 'strain'].eq('mut').all()

    def test_key_from_index(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({'strain': ['wt', 'mut']}, index=pd.Index(['s1', 's2'], name='sample'))
        joined = join_sample_info(long, info)

        assert joined['strain'].tolist() == ['wt', 'mut'] * 3

    def test_missing_key_column(self, small_counts, small_sample_info):
        long = melt_counts(matrix_to_tidy(small_counts))

        with pytest.raises(MissingColumnError):
            join_sample_info(long, small_sample_info, right_on='sample_id')

        with pytest.raises(MissingColumnError):
            join_sample_info(long.drop(columns=['sample']), small_sample_info)

    def test_duplicate_sample_info_keys(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({'sample': ['s1', 's1', 's2'], 'strain': ['wt', 'mut', 'mut']})

        with pytest.raises(DuplicateIdentifierError):
            join_sample_info(long, info)

    def test_attribute_clashes_with_count_column(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({'sample': ['s1', 's2'], 'count': [10, 20]})

        with pytest.raises(StructuralError, match="count"):
            join_sample_info(long, info)

    def test_numeric_and_text_keys(self):
        counts = pd.DataFrame([[1, 2], [3, 4]], index=['g1', 'g2'], columns=['1', '2'])
        long = melt_counts(matrix_to_tidy(counts))
        info = pd.DataFrame({'sample': [1, 2], 'strain': ['wt', 'mut']})

        with pytest.raises(StructuralError, match="types differ"):
            join_sample_info(long, info)

        joined = join_sample_info(long, info.astype({'sample': str}))
        assert joined['strain'].tolist() == ['wt', 'mut', 'wt', 'mut']

    def test_inputs_not_modified(self, small_counts, small_sample_info):
        long = melt_counts(matrix_to_tidy(small_counts))
        long_before = long.copy()
        info_before = small_sample_info.copy()

        join_sample_info(long, small_sample_info)

        pd.testing.assert_frame_equal(long, long_before)
        pd.testing.assert_frame_equal(small_sample_info, info_before)

    def test_compare_sample_keys(self, small_counts):
        long = melt_counts(matrix_to_tidy(small_counts))
        info = pd.DataFrame({'sample': ['s1', 's3'], 'strain': ['wt', 'mut']})
        mismatch = compare_sample_keys(long, info)

        assert mismatch.has_mismatch
        assert mismatch.missing_in_sample_info == ['s2']
        assert mismatch.missing_in_counts == ['s3']


class TestBuildObservationTable:
    """End-to-end pipeline tests."""

    def test_small_example(self, small_counts, small_sample_info):
        observations = build_observation_table(small_counts, small_sample_info)

        assert len(observations) == 6
        row = observations[(observations['gene'] == 'g2') & (observations['sample'] == 's2')]
        assert len(row) == 1
        assert row['count'].iloc[0] == 4
        assert row['strain'].iloc[0] == 'mut'

    def test_sample_subset(self, small_counts, small_sample_info):
        observations = build_observation_table(small_counts, small_sample_info,
                                               samples=['s1'], how='left')

        assert len(observations) == 3
        assert observations['strain'].eq('wt').all()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
