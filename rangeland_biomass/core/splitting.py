"""
Deterministic train/test partitioning.

Every row gets a pseudo-random value in [0, 1) that depends only on its
sample_id and the seed, so a rerun with the same seed reproduces the same
partition regardless of row order or table size.

Author: Rangeland Biomass Team
"""

import hashlib
from typing import Any, Tuple

import numpy as np
import pandas as pd

from shared_utils import get_logger

from .dpm_biomass import SAMPLE_ID_COLUMN

RANDOM_COLUMN = 'rand'
DEFAULT_TRAIN_FRACTION = 0.7
DEFAULT_SPLIT_SEED = 42

_HASH_BITS = 64


def stable_uniform(sample_id: Any, seed: int) -> float:
    """
    Map (sample_id, seed) to a value in [0, 1).

    Uses an 8-byte BLAKE2b digest, which is stable across processes and
    Python versions (unlike the builtin hash()).
    """
    key = f"{int(seed)}:{sample_id}".encode('utf-8')
    digest = hashlib.blake2b(key, digest_size=_HASH_BITS // 8).digest()
    return int.from_bytes(digest, 'big') / 2.0 ** _HASH_BITS


def random_column(table: pd.DataFrame, seed: int = DEFAULT_SPLIT_SEED,
                  column: str = RANDOM_COLUMN) -> pd.DataFrame:
    """
    Return a copy of the table with a per-row pseudo-random column.

    Raises:
        KeyError: If the table has no sample_id column
        ValueError: If sample ids are not unique
    """
    if SAMPLE_ID_COLUMN not in table.columns:
        raise KeyError(f"Table has no '{SAMPLE_ID_COLUMN}' column to key the split on")
    if table[SAMPLE_ID_COLUMN].duplicated().any():
        raise ValueError("Sample ids must be unique to split deterministically")

    result = table.copy()
    result[column] = np.array(
        [stable_uniform(sid, seed) for sid in table[SAMPLE_ID_COLUMN]], dtype=float
    )
    return result


def split_train_test(table: pd.DataFrame, train_fraction: float = DEFAULT_TRAIN_FRACTION,
                     seed: int = DEFAULT_SPLIT_SEED) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Partition a labeled table into train and test subsets.

    Rows with rand < train_fraction go to train, the rest to test. Sizes are
    approximately proportional to the fraction, not exact.

    Args:
        table: Labeled samples with a unique sample_id column
        train_fraction: Expected share of rows in the training set
        seed: Split seed

    Returns:
        tuple: (train, test) copies carrying the rand column
    """
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

    with_random = random_column(table, seed)
    is_train = with_random[RANDOM_COLUMN] < train_fraction

    train = with_random.loc[is_train]
    test = with_random.loc[~is_train]

    get_logger('splitting').info(
        f"Split {len(table)} samples (seed={seed}, fraction={train_fraction}): "
        f"{len(train)} train, {len(test)} test"
    )
    return train, test
