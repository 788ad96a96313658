"""
Random forest regression of biomass on composite reflectance.

RegressionEngine fits an averaging ensemble of regression trees on the
labeled training table; the resulting FittedModel predicts from a single
predictor vector, a table, or a whole composite raster, and reports
impurity-based feature importances.

Author: Rangeland Biomass Team
"""

import pickle
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
import rioxarray  # noqa: F401 - registers the rio accessor
import xarray as xr
from sklearn.ensemble import RandomForestRegressor

from shared_utils import ensure_directory, get_logger

from .composite import PREDICTOR_BANDS
from .dpm_biomass import BIOMASS_COLUMN
from .exceptions import InsufficientTrainingData
from .run_config import RunConfig

PREDICTION_NAME = 'biomass_kg_ha'
DEFAULT_PREDICT_CHUNK_SIZE = 1_000_000


class FittedModel:
    """
    Trained biomass random forest.

    Read-only after construction; safe to share between threads for prediction.
    """

    def __init__(self, estimator: RandomForestRegressor, predictors: Sequence[str],
                 hyperparameters: Dict[str, Any], n_training_rows: int,
                 predict_chunk_size: int = DEFAULT_PREDICT_CHUNK_SIZE):
        self.estimator = estimator
        self.predictors = list(predictors)
        self.hyperparameters = dict(hyperparameters)
        self.n_training_rows = n_training_rows
        self.predict_chunk_size = predict_chunk_size
        self.logger = get_logger('regression')

    def predict(self, predictors: Union[Mapping[str, float], pd.DataFrame, xr.Dataset]):
        """
        Predict biomass.

        Args:
            predictors: A mapping band -> value, a table with one column per
                predictor, or a composite dataset

        Returns:
            float for a mapping, np.ndarray for a table, xr.DataArray for a
            dataset. Inputs with any missing predictor yield NaN.
        """
        if isinstance(predictors, xr.Dataset):
            return self.predict_raster(predictors)
        if isinstance(predictors, pd.DataFrame):
            return self.predict_table(predictors)
        if isinstance(predictors, Mapping):
            return self.predict_vector(predictors)
        raise TypeError(f"Unsupported predictor input: {type(predictors).__name__}")

    def predict_vector(self, vector: Mapping[str, float]) -> float:
        """Predict from one predictor vector; NaN if any predictor is missing."""
        missing = [p for p in self.predictors if p not in vector]
        if missing:
            raise KeyError(f"Predictor vector lacks {missing}")

        values = np.array([[vector[p] if vector[p] is not None else np.nan for p in self.predictors]],
                          dtype=float)
        return float(self._predict_matrix(values)[0])

    def predict_table(self, table: pd.DataFrame) -> np.ndarray:
        """Predict one value per row; rows with missing predictors yield NaN."""
        missing = [p for p in self.predictors if p not in table.columns]
        if missing:
            raise KeyError(f"Table lacks predictor columns {missing}")
        return self._predict_matrix(table[self.predictors].to_numpy(dtype=float))

    def predict_raster(self, composite: xr.Dataset) -> xr.DataArray:
        """
        Predict every pixel of a composite.

        Returns:
            xr.DataArray: biomass_kg_ha on the composite grid, NaN wherever any
            predictor band is missing
        """
        missing = [p for p in self.predictors if p not in composite.data_vars]
        if missing:
            raise KeyError(f"Composite lacks predictor bands {missing}")

        bands = composite[self.predictors].to_array('band').transpose('y', 'x', 'band')
        n_y, n_x = bands.sizes['y'], bands.sizes['x']
        flat = bands.values.reshape(-1, len(self.predictors))

        prediction = self._predict_matrix(flat).reshape(n_y, n_x)

        result = xr.DataArray(
            prediction,
            coords={'y': composite['y'], 'x': composite['x']},
            dims=('y', 'x'),
            name=PREDICTION_NAME
        )
        if composite.rio.crs is not None:
            result = result.rio.write_crs(composite.rio.crs)
        result.attrs = {k: v for k, v in composite.attrs.items() if isinstance(v, (int, float, str))}
        result.attrs['units'] = 'kg/ha'
        return result

    def _predict_matrix(self, matrix: np.ndarray) -> np.ndarray:
        output = np.full(matrix.shape[0], np.nan)
        valid = np.flatnonzero(np.isfinite(matrix).all(axis=1))

        for start in range(0, len(valid), self.predict_chunk_size):
            block = valid[start:start + self.predict_chunk_size]
            frame = pd.DataFrame(matrix[block], columns=self.predictors)
            output[block] = self.estimator.predict(frame)

        return output

    def importances(self) -> Dict[str, float]:
        """
        Impurity-based importance per predictor, normalized to sum to 1.0.

        All scores are 0.0 if no tree in the forest ever split.
        """
        raw = np.asarray(self.estimator.feature_importances_, dtype=float)
        total = raw.sum()

        if total <= 0:
            self.logger.warning("No tree in the forest split; all importances are zero")
            return {p: 0.0 for p in self.predictors}

        return {p: float(v / total) for p, v in zip(self.predictors, raw)}

    def importance_table(self) -> pd.DataFrame:
        """Importances as a (variable, importance) table sorted descending."""
        table = pd.DataFrame(
            list(self.importances().items()), columns=['variable', 'importance']
        )
        return table.sort_values('importance', ascending=False, ignore_index=True)

    def save(self, path: Union[str, Path]) -> Path:
        """Pickle the model to disk."""
        path = Path(path)
        ensure_directory(path.parent)
        with open(path, 'wb') as f:
            pickle.dump({
                'estimator': self.estimator,
                'predictors': self.predictors,
                'hyperparameters': self.hyperparameters,
                'n_training_rows': self.n_training_rows,
                'predict_chunk_size': self.predict_chunk_size,
            }, f)
        self.logger.info(f"Saved fitted model to {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "FittedModel":
        """Load a model written by save()."""
        with open(path, 'rb') as f:
            state = pickle.load(f)
        return cls(**state)


class RegressionEngine:
    """
    Fits the biomass random forest.

    Hyperparameters are passed in explicitly; the same training table and seed
    always produce the same forest.
    """

    def __init__(self, tree_count: int = 500, min_leaf_population: int = 5,
                 bag_fraction: float = 0.7, seed: int = 42,
                 predictors: Optional[List[str]] = None, target: str = BIOMASS_COLUMN,
                 predict_chunk_size: int = DEFAULT_PREDICT_CHUNK_SIZE, n_jobs: int = -1):
        """
        Initialize the engine.

        Args:
            tree_count: Number of trees in the ensemble
            min_leaf_population: Minimum training samples per leaf
            bag_fraction: Fraction of the training rows drawn (with replacement) per tree
            seed: Random seed for bootstrap draws and split candidates
            predictors: Predictor column names (defaults to the seven composite bands)
            target: Target column name
            predict_chunk_size: Pixels per prediction block
            n_jobs: Parallel jobs for fitting and prediction
        """
        if not 0.0 < bag_fraction <= 1.0:
            raise ValueError(f"bag_fraction must be in (0, 1], got {bag_fraction}")

        self.tree_count = tree_count
        self.min_leaf_population = min_leaf_population
        self.bag_fraction = bag_fraction
        self.seed = seed
        self.predictors = list(predictors or PREDICTOR_BANDS)
        self.target = target
        self.predict_chunk_size = predict_chunk_size
        self.n_jobs = n_jobs
        self.logger = get_logger('regression')

    @classmethod
    def from_run_config(cls, config: RunConfig, **kwargs) -> "RegressionEngine":
        """Build an engine from the run configuration."""
        return cls(
            tree_count=config.tree_count,
            min_leaf_population=config.min_leaf_population,
            bag_fraction=config.bag_fraction,
            seed=config.model_seed,
            predict_chunk_size=config.predict_chunk_size,
            **kwargs
        )

    @property
    def hyperparameters(self) -> Dict[str, Any]:
        return {
            'tree_count': self.tree_count,
            'min_leaf_population': self.min_leaf_population,
            'bag_fraction': self.bag_fraction,
            'seed': self.seed,
        }

    def _build_estimator(self) -> RandomForestRegressor:
        return RandomForestRegressor(
            n_estimators=self.tree_count,
            min_samples_leaf=self.min_leaf_population,
            max_features='sqrt',
            bootstrap=True,
            max_samples=self.bag_fraction if self.bag_fraction < 1.0 else None,
            random_state=self.seed,
            n_jobs=self.n_jobs,
        )

    def fit(self, train_table: pd.DataFrame) -> FittedModel:
        """
        Fit the forest on a labeled training table.

        Args:
            train_table: Table with the predictor columns and a numeric target

        Returns:
            FittedModel: Trained model

        Raises:
            InsufficientTrainingData: If no usable training row remains
            KeyError: If predictor or target columns are missing
            TypeError: If the target is not numeric
        """
        if len(train_table) == 0:
            raise InsufficientTrainingData(0)

        missing = [c for c in self.predictors + [self.target] if c not in train_table.columns]
        if missing:
            raise KeyError(f"Training table lacks columns {missing}")

        if not pd.api.types.is_numeric_dtype(train_table[self.target]):
            raise TypeError(f"Target '{self.target}' must be numeric for regression, "
                            f"got {train_table[self.target].dtype}")

        usable = train_table[self.predictors + [self.target]].dropna()
        if len(usable) < len(train_table):
            self.logger.warning(f"Ignoring {len(train_table) - len(usable)} training rows with missing values")
        if len(usable) == 0:
            raise InsufficientTrainingData(
                len(train_table), f"All {len(train_table)} training rows have missing values"
            )

        self.logger.info(f"Fitting random forest: {self.tree_count} trees, "
                         f"min leaf {self.min_leaf_population}, bag fraction {self.bag_fraction}, "
                         f"seed {self.seed}, {len(usable)} rows")

        estimator = self._build_estimator()
        estimator.fit(usable[self.predictors], usable[self.target].to_numpy(dtype=float))

        return FittedModel(
            estimator,
            self.predictors,
            self.hyperparameters,
            n_training_rows=len(usable),
            predict_chunk_size=self.predict_chunk_size
        )
