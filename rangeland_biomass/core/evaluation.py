"""
Validation of the fitted biomass model on the held-out test set.

Author: Rangeland Biomass Team
"""

from dataclasses import dataclass, field
from typing import Dict, Sequence, Union

import numpy as np
import pandas as pd

from shared_utils import get_logger

from .dpm_biomass import BIOMASS_COLUMN, SAMPLE_ID_COLUMN
from .exceptions import DegenerateValidationSet
from .regression import FittedModel

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


@dataclass
class ValidationReport:
    """Scalar accuracy metrics plus the per-row validation table."""
    rmse: float
    mae: float
    r2: float
    n_samples: int
    table: pd.DataFrame = field(default_factory=pd.DataFrame, repr=False)

    def metrics(self) -> Dict[str, float]:
        return {'rmse': self.rmse, 'mae': self.mae, 'r2': self.r2, 'n_samples': self.n_samples}


def compute_regression_metrics(observed: ArrayLike, predicted: ArrayLike) -> Dict[str, float]:
    """
    Compute RMSE, MAE and R² of predictions against observations.

    Args:
        observed: Observed target values
        predicted: Predicted values, same length

    Returns:
        dict: rmse, mae, r2 and n_samples

    Raises:
        ValueError: If the inputs differ in length or contain missing values
        DegenerateValidationSet: If the observed values have zero total
            variance (this includes empty and single-row inputs)
    """
    observed = np.asarray(observed, dtype=float)
    predicted = np.asarray(predicted, dtype=float)

    if observed.shape != predicted.shape:
        raise ValueError(f"Observed and predicted lengths differ: {observed.shape} vs {predicted.shape}")
    if np.isnan(observed).any() or np.isnan(predicted).any():
        raise ValueError("Observed and predicted values must not contain NaN")

    n = observed.size
    if n == 0:
        raise DegenerateValidationSet(0, {'n_samples': 0})

    errors = predicted - observed
    ss_res = float(np.sum(errors ** 2))
    ss_tot = float(np.sum((observed - observed.mean()) ** 2))

    # Identical observations can leave a rounding-sized ss_tot
    if np.ptp(observed) == 0:
        raise DegenerateValidationSet(n, {
            'n_samples': n,
            'observed_mean': float(observed.mean()),
            'observed_std': float(observed.std()),
            'ss_res': ss_res,
        })

    return {
        'rmse': float(np.sqrt(np.mean(errors ** 2))),
        'mae': float(np.mean(np.abs(errors))),
        'r2': 1.0 - ss_res / ss_tot,
        'n_samples': n,
    }


def evaluate_model(model: FittedModel, test_table: pd.DataFrame,
                   target: str = BIOMASS_COLUMN) -> ValidationReport:
    """
    Score a fitted model on the test table.

    Args:
        model: Fitted biomass model
        test_table: Held-out labeled samples
        target: Observed target column

    Returns:
        ValidationReport: Metrics and per-row table (observed, predicted,
        error, abs_error, sq_error)
    """
    logger = get_logger('evaluation')

    if len(test_table) == 0:
        raise DegenerateValidationSet(0, {'n_samples': 0})

    observed = test_table[target].to_numpy(dtype=float)
    predicted = model.predict_table(test_table)

    metrics = compute_regression_metrics(observed, predicted)

    table = pd.DataFrame({
        'observed': observed,
        'predicted': predicted,
    })
    if SAMPLE_ID_COLUMN in test_table.columns:
        table.insert(0, SAMPLE_ID_COLUMN, test_table[SAMPLE_ID_COLUMN].to_numpy())
    table['error'] = table['predicted'] - table['observed']
    table['abs_error'] = table['error'].abs()
    table['sq_error'] = table['error'] ** 2

    report = ValidationReport(
        rmse=metrics['rmse'],
        mae=metrics['mae'],
        r2=metrics['r2'],
        n_samples=metrics['n_samples'],
        table=table
    )

    logger.info(f"Validation on {report.n_samples} samples: RMSE={report.rmse:.2f} kg/ha, "
                f"MAE={report.mae:.2f} kg/ha, R²={report.r2:.4f}")
    return report
