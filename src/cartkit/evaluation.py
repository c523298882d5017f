"""Error metrics comparing tree predictions with actual target values."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import polars as pl
from sklearn.metrics import mean_squared_error, r2_score

from cartkit.exceptions import InvalidInputError, LengthMismatchError
from cartkit.feature_matrix import FeatureMatrix
from cartkit.regression_tree.models import Tree
from cartkit.regression_tree.predict import predict_many

type NumericSequence = Sequence[float] | np.ndarray | pl.Series


def rmse(predicted: NumericSequence, actual: NumericSequence) -> float:
    """Root-mean-squared error, `sqrt(mean((p_i - a_i)^2))`.

    Args:
        predicted (NumericSequence): Predicted values.
        actual (NumericSequence): Observed values, same length as `predicted`.

    Returns:
        float: The root-mean-squared error.

    Raises:
        LengthMismatchError: If the sequences differ in length.
        InvalidInputError: If the sequences are empty.

    Examples:
        >>> round(rmse([55, 56, 54], [54, 57, 54]), 4)
        0.8165
    """
    predicted_array, actual_array = _as_arrays(predicted, actual)
    return float(np.sqrt(mean_squared_error(actual_array, predicted_array)))


def deviance(predicted: NumericSequence, actual: NumericSequence) -> float:
    """Sum of squared residuals between predictions and actual values.

    Args:
        predicted (NumericSequence): Predicted values.
        actual (NumericSequence): Observed values, same length as `predicted`.

    Returns:
        float: The residual sum of squares.

    Raises:
        LengthMismatchError: If the sequences differ in length.
        InvalidInputError: If the sequences are empty.
    """
    predicted_array, actual_array = _as_arrays(predicted, actual)
    residuals = actual_array - predicted_array
    return float(np.dot(residuals, residuals))


def r_squared(predicted: NumericSequence, actual: NumericSequence) -> float:
    """Coefficient of determination of the predictions.

    Args:
        predicted (NumericSequence): Predicted values.
        actual (NumericSequence): Observed values, same length as `predicted`.

    Returns:
        float: R², at most 1.0.

    Raises:
        LengthMismatchError: If the sequences differ in length.
        InvalidInputError: If the sequences are empty.
    """
    predicted_array, actual_array = _as_arrays(predicted, actual)
    return float(r2_score(actual_array, predicted_array))


def compute_metrics(tree: Tree, data: FeatureMatrix) -> dict[str, float]:
    """Evaluate a fitted tree on a FeatureMatrix.

    Args:
        tree (Tree): A fitted tree.
        data (FeatureMatrix): Rows with known targets, typically held out.

    Returns:
        dict[str, float]: `{"r_squared": <float>, "rmse": <float>}`.
    """
    predictions = predict_many(tree, data)
    return {
        "r_squared": r_squared(predictions, data.y),
        "rmse": rmse(predictions, data.y),
    }


def _as_arrays(predicted: NumericSequence, actual: NumericSequence) -> tuple[np.ndarray, np.ndarray]:
    """Convert metric inputs to float64 arrays after checking their lengths.

    Args:
        predicted (NumericSequence): Predicted values.
        actual (NumericSequence): Observed values.

    Returns:
        tuple[np.ndarray, np.ndarray]: `(predicted, actual)` as 1-D float64 arrays.

    Raises:
        LengthMismatchError: If the sequences differ in length.
        InvalidInputError: If the sequences are empty.
    """
    predicted_array = np.asarray(predicted, dtype=np.float64).ravel()
    actual_array = np.asarray(actual, dtype=np.float64).ravel()
    if predicted_array.shape[0] != actual_array.shape[0]:
        raise LengthMismatchError(predicted_length=predicted_array.shape[0], actual_length=actual_array.shape[0])
    if predicted_array.shape[0] == 0:
        raise InvalidInputError("Metrics require at least one prediction")
    return predicted_array, actual_array
