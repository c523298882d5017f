"""Immutable numeric feature matrix: predictor columns plus one numeric target."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import numpy as np
import polars as pl

from cartkit.exceptions import InvalidInputError

# ---------------------------------------------------------------------------
# Private helpers -- Column type classification
# ---------------------------------------------------------------------------

_NUMERIC_DTYPES: frozenset[type[pl.DataType]] = frozenset({
    pl.Int8,
    pl.Int16,
    pl.Int32,
    pl.Int64,
    pl.UInt8,
    pl.UInt16,
    pl.UInt32,
    pl.UInt64,
    pl.Float32,
    pl.Float64,
})


def _is_encodable(dtype: pl.DataType) -> bool:
    """Return `True` when a column dtype can be encoded as float64.

    Args:
        dtype (pl.DataType): The Polars data type of the column.

    Returns:
        bool: `True` for integer, float and boolean dtypes.
    """
    return dtype in _NUMERIC_DTYPES or dtype == pl.Boolean


def _encode_column(series: pl.Series) -> np.ndarray:
    """Convert a numeric or boolean Polars Series to a 1-D float64 array.

    Args:
        series (pl.Series): The column to encode.

    Returns:
        np.ndarray: A float64 copy of the column values.
    """
    if series.dtype == pl.Boolean:
        series = series.cast(pl.Int8)
    return series.to_numpy(allow_copy=True).astype(np.float64)


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """Read-only table of numeric predictors and a numeric target.

    Rows are addressed by position. The predictor matrix and target vector are
    private float64 copies flagged read-only, so a FeatureMatrix can be shared
    between cross-validation folds and threads without defensive copying.

    Attributes:
        feature_names (tuple[str, ...]): Predictor names, in column order. The
            column order defines the feature index used for split tie-breaks.
        target_name (str): Name of the target column.
        x (np.ndarray): Predictor values with shape `(n_rows, n_features)`.
        y (np.ndarray): Target values with shape `(n_rows,)`.

    Examples:
        >>> import polars as pl
        >>> df = pl.DataFrame({"VA": [1.0, 3.0], "CS": [1.5, 1.2], "RaceTime": [55.0, 58.0]})
        >>> data = FeatureMatrix.from_dataframe(df, "RaceTime")
        >>> data.feature_names
        ('VA', 'CS')
        >>> data.row(1)
        {'VA': 3.0, 'CS': 1.2}
    """

    feature_names: tuple[str, ...]
    target_name: str
    x: np.ndarray
    y: np.ndarray

    def __post_init__(self) -> None:
        """Validate shapes and values, then freeze private copies of the arrays.

        Raises:
            InvalidInputError: If the matrix is empty, shapes disagree, names
                are duplicated, or any value is missing or non-finite.
        """
        feature_names = tuple(self.feature_names)
        x = np.array(self.x, dtype=np.float64, copy=True)
        y = np.array(self.y, dtype=np.float64, copy=True)

        if not feature_names:
            raise InvalidInputError("FeatureMatrix requires at least one predictor column")
        if len(set(feature_names)) != len(feature_names):
            raise InvalidInputError("Duplicate predictor names are not allowed", columns=list(feature_names))
        if self.target_name in feature_names:
            raise InvalidInputError(
                f"Target column '{self.target_name}' cannot also be a predictor", columns=[self.target_name]
            )
        if y.ndim != 1:
            raise InvalidInputError(f"Target must be 1-D, got shape {y.shape}", columns=[self.target_name])
        if y.shape[0] == 0:
            raise InvalidInputError("FeatureMatrix has zero rows")
        if x.ndim != 2 or x.shape != (y.shape[0], len(feature_names)):
            raise InvalidInputError(
                f"Predictor matrix shape {x.shape} does not match ({y.shape[0]}, {len(feature_names)})",
                columns=list(feature_names),
            )
        if not np.all(np.isfinite(y)):
            raise InvalidInputError(
                f"Target column '{self.target_name}' contains missing or non-finite values",
                columns=[self.target_name],
            )
        non_finite = [name for name, ok in zip(feature_names, np.isfinite(x).all(axis=0), strict=True) if not ok]
        if non_finite:
            raise InvalidInputError("Predictor columns contain missing or non-finite values", columns=non_finite)

        x.setflags(write=False)
        y.setflags(write=False)
        object.__setattr__(self, "feature_names", feature_names)
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)

    @classmethod
    def from_dataframe(
        cls,
        df: pl.DataFrame,
        target: str,
        features: Sequence[str] | None = None,
    ) -> FeatureMatrix:
        """Build a FeatureMatrix from a Polars DataFrame.

        Args:
            df (pl.DataFrame): Source data. Rows with missing values must be
                dropped beforehand (see `cartkit.datasets.read_csv_frame`).
            target (str): Name of the numeric target column.
            features (Sequence[str] | None): Predictor columns in the order that
                defines their feature index. When `None`, every column except
                `target` is used.

        Returns:
            FeatureMatrix: The encoded, validated matrix.

        Raises:
            InvalidInputError: If the target or a requested feature is absent,
                a column has a non-numeric dtype, or any value is null.
        """
        if target not in df.columns:
            raise InvalidInputError(f"Target column '{target}' not found in DataFrame", columns=[target])
        feature_columns = list(features) if features is not None else [col for col in df.columns if col != target]
        missing_columns = [col for col in feature_columns if col not in df.columns]
        if missing_columns:
            raise InvalidInputError(
                f"Requested feature columns not found in DataFrame: {missing_columns}", columns=missing_columns
            )

        selected = [*feature_columns, target]
        unsupported = [col for col in selected if not _is_encodable(df[col].dtype)]
        if unsupported:
            raise InvalidInputError(f"Columns must be numeric or boolean: {unsupported}", columns=unsupported)
        null_columns = [col for col in selected if df[col].null_count() > 0]
        if null_columns:
            raise InvalidInputError(
                f"Columns contain null values; drop incomplete rows before building: {null_columns}",
                columns=null_columns,
            )

        column_arrays = [_encode_column(df[col]) for col in feature_columns]
        x = np.column_stack(column_arrays) if column_arrays else np.empty((len(df), 0), dtype=np.float64)
        return cls(
            feature_names=tuple(feature_columns),
            target_name=target,
            x=x,
            y=_encode_column(df[target]),
        )

    @property
    def n_rows(self) -> int:
        """Number of rows."""
        return int(self.y.shape[0])

    @property
    def n_features(self) -> int:
        """Number of predictor columns."""
        return len(self.feature_names)

    def __len__(self) -> int:
        """Return the number of rows.

        Returns:
            int: Row count.
        """
        return self.n_rows

    def row(self, index: int) -> dict[str, float]:
        """Return one row as a `{feature_name: value}` mapping.

        Args:
            index (int): Row position.

        Returns:
            dict[str, float]: Predictor values for the row (target excluded).
        """
        return {name: float(value) for name, value in zip(self.feature_names, self.x[index], strict=True)}

    def rows(self) -> Iterator[dict[str, float]]:
        """Iterate over rows as feature mappings.

        Yields:
            dict[str, float]: Predictor values for each row, in row order.
        """
        for index in range(self.n_rows):
            yield self.row(index)

    def take(self, indices: Sequence[int] | np.ndarray) -> FeatureMatrix:
        """Return a new FeatureMatrix holding the given rows, in the given order.

        Args:
            indices (Sequence[int] | np.ndarray): Row positions to keep.

        Returns:
            FeatureMatrix: The row subset.

        Raises:
            InvalidInputError: If `indices` is empty.
        """
        index_array = np.asarray(indices, dtype=np.intp)
        return FeatureMatrix(
            feature_names=self.feature_names,
            target_name=self.target_name,
            x=self.x[index_array],
            y=self.y[index_array],
        )

    def to_dataframe(self) -> pl.DataFrame:
        """Convert back to a Polars DataFrame with float64 columns.

        Returns:
            pl.DataFrame: Predictor columns followed by the target column.
        """
        columns = {name: self.x[:, index] for index, name in enumerate(self.feature_names)}
        columns[self.target_name] = self.y
        return pl.DataFrame(columns)
