"""Tests for the deterministic train/test split."""

import pandas as pd
import pytest

from rangeland_biomass.core.dpm_biomass import SAMPLE_ID_COLUMN
from rangeland_biomass.core.splitting import (
    RANDOM_COLUMN, random_column, split_train_test, stable_uniform
)


def test_stable_uniform_range_and_determinism():
    values = [stable_uniform(i, 42) for i in range(1000)]
    assert all(0.0 <= v < 1.0 for v in values)
    assert values == [stable_uniform(i, 42) for i in range(1000)]
    assert values != [stable_uniform(i, 7) for i in range(1000)]


def test_split_is_disjoint_and_exhaustive(labeled_table):
    train, test = split_train_test(labeled_table, 0.7, 42)

    train_ids = set(train[SAMPLE_ID_COLUMN])
    test_ids = set(test[SAMPLE_ID_COLUMN])
    assert train_ids.isdisjoint(test_ids)
    assert train_ids | test_ids == set(labeled_table[SAMPLE_ID_COLUMN])


def test_split_is_reproducible(labeled_table):
    first_train, first_test = split_train_test(labeled_table, 0.7, 42)
    second_train, second_test = split_train_test(labeled_table, 0.7, 42)

    assert list(first_train[SAMPLE_ID_COLUMN]) == list(second_train[SAMPLE_ID_COLUMN])
    assert list(first_test[SAMPLE_ID_COLUMN]) == list(second_test[SAMPLE_ID_COLUMN])


def test_split_does_not_depend_on_row_order(labeled_table):
    shuffled = labeled_table.sample(frac=1.0, random_state=0)

    train, _ = split_train_test(labeled_table, 0.7, 42)
    shuffled_train, _ = split_train_test(shuffled, 0.7, 42)

    assert set(train[SAMPLE_ID_COLUMN]) == set(shuffled_train[SAMPLE_ID_COLUMN])


def test_split_sizes_are_approximate(labeled_table):
    train, test = split_train_test(labeled_table, 0.7, 42)
    assert 0.55 < len(train) / len(labeled_table) < 0.85


def test_rows_follow_the_random_column(labeled_table):
    train, test = split_train_test(labeled_table, 0.7, 42)

    assert (train[RANDOM_COLUMN] < 0.7).all()
    assert (test[RANDOM_COLUMN] >= 0.7).all()


def test_ten_point_partition():
    table = pd.DataFrame({SAMPLE_ID_COLUMN: range(10), 'value': range(10)})
    train, test = split_train_test(table, 0.7, 42)

    assert set(test[SAMPLE_ID_COLUMN]) == {3, 7}
    assert len(train) == 8


def test_random_column_does_not_mutate(labeled_table):
    result = random_column(labeled_table, 42)

    assert RANDOM_COLUMN in result.columns
    assert RANDOM_COLUMN not in labeled_table.columns


def test_duplicate_ids_rejected():
    table = pd.DataFrame({SAMPLE_ID_COLUMN: [1, 1, 2]})
    with pytest.raises(ValueError):
        random_column(table)


def test_missing_id_column_rejected():
    with pytest.raises(KeyError):
        random_column(pd.DataFrame({'x': [1, 2]}))


@pytest.mark.parametrize("fraction", [0.0, 1.0, -0.1, 1.5])
def test_invalid_fraction(labeled_table, fraction):
    with pytest.raises(ValueError):
        split_train_test(labeled_table, fraction, 42)
