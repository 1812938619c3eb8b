"""
Helpers for inspecting missingness and scoring imputations.
"""
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, mean_absolute_error, mean_squared_error
from sklearn.utils import check_random_state

import logging
logger = logging.getLogger(__name__)


def calculate_missingness_statistics(data: pd.DataFrame) -> Dict[str, Dict[str, float]]:
    """
    Count missing values per column.

    Parameters
    ----------
    data : DataFrame
        Input data.

    Returns
    -------
    dict
        ``{column: {'count_missing', 'percent_missing', 'total_rows'}}``.
    """
    total_rows = len(data)
    stats = {}
    for col in data.columns:
        count_missing = int(data[col].isnull().sum())
        stats[col] = {
            'count_missing': count_missing,
            'percent_missing': 100.0 * count_missing / total_rows if total_rows else 0.0,
            'total_rows': total_rows
        }
    return stats


def add_missingness_at_random(
    data: pd.DataFrame,
    percentage: float,
    columns: Optional[Iterable[str]] = None,
    random_state=None
) -> Tuple[pd.DataFrame, Dict[str, List]]:
    """
    Add missingness at random at a specified percentage.

    Parameters
    ----------
    data : DataFrame
        Input data, left unchanged.
    percentage : float
        Share of the observed values of each column to set to missing (0-1).
    columns : iterable of str, optional
        Columns to modify; all columns by default.
    random_state : int, RandomState or None
        Randomness for choosing the cells.

    Returns
    -------
    DataFrame
        Data with added missingness.
    dict
        Index labels of the added missing values for each column.
    """
    if not 0 <= percentage <= 1:
        raise ValueError(f"percentage must be between 0 and 1, got {percentage}")

    random_state = check_random_state(random_state)
    modified_data = data.copy(deep=True)
    missingness_indices = {}

    for col in (data.columns if columns is None else columns):
        non_missing_indices = modified_data.index[modified_data[col].notna()].to_numpy()
        n_missing = int(len(non_missing_indices) * percentage)
        logger.debug(f"Adding missingness to {col}: {n_missing} values")

        missing_idx = random_state.choice(non_missing_indices, size=n_missing, replace=False)
        modified_data.loc[missing_idx, col] = np.nan
        missingness_indices[col] = missing_idx.tolist()

    return modified_data, missingness_indices


def evaluate_imputation_accuracy(
    data: pd.DataFrame,
    imputed_data: pd.DataFrame,
    missingness_indices: Dict[str, List]
) -> Dict[str, Dict[str, float]]:
    """
    Score imputed values against the values they replaced.

    Parameters
    ----------
    data : DataFrame
        Data before the values were masked.
    imputed_data : DataFrame
        Data after imputation.
    missingness_indices : dict
        Index labels of the masked values per column.

    Returns
    -------
    dict
        ``{'accuracy'}`` for categorical columns, ``{'mse', 'mae'}`` for
        numeric ones. Columns without scorable values are left out.
    """
    results = {}

    for col, indices in missingness_indices.items():
        y_true = data.loc[indices, col]
        y_pred = imputed_data.loc[indices, col]

        valid_mask = y_true.notna() & y_pred.notna()
        y_true = y_true[valid_mask]
        y_pred = y_pred[valid_mask]

        if len(y_true) == 0:
            logger.warning(f"No valid predictions for {col}")
            continue

        if pd.api.types.is_numeric_dtype(data[col].dtype) and not pd.api.types.is_bool_dtype(data[col].dtype):
            mse = mean_squared_error(y_true, y_pred)
            mae = mean_absolute_error(y_true, y_pred)
            results[col] = {'mse': mse, 'mae': mae}
            logger.info(f"MSE for {col}: {mse:.4f}, MAE: {mae:.4f}")
        else:
            acc = accuracy_score(y_true.astype(str), y_pred.astype(str))
            results[col] = {'accuracy': acc}
            logger.info(f"Accuracy for {col}: {acc:.4f}")

    return results
