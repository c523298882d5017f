"""Data collaborators: CSV loading, simulated performance data and train/test splitting."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Final

import numpy as np
import polars as pl
from loguru import logger
from sklearn.model_selection import train_test_split as _sklearn_train_test_split

from cartkit.exceptions import InvalidConfigError, InvalidInputError
from cartkit.feature_matrix import FeatureMatrix

# ---------------------------------------------------------------------------
# Module-level constants -- Simulated performance data
# ---------------------------------------------------------------------------

SLOW_GROUP_VA_THRESHOLD: Final[float] = 2.75  # Athletes above this visual acuity score form the slow group.
_BASE_RACE_TIME: Final[float] = 54.0
_SLOW_GROUP_PENALTY: Final[float] = 4.0
_LOW_CS_THRESHOLD: Final[float] = 1.0
_LOW_CS_PENALTY: Final[float] = 1.5
_NOISE_SD: Final[float] = 0.5


def read_csv_frame(
    path: str | Path,
    columns: Sequence[str] | None = None,
    *,
    where: Mapping[str, object] | None = None,
) -> pl.DataFrame:
    """Load a CSV file, keep matching rows and columns, and drop incomplete rows.

    Args:
        path (str | Path): CSV file to read.
        columns (Sequence[str] | None): Columns to keep, in order. `None` keeps
            every column.
        where (Mapping[str, object] | None): Equality filters applied before
            column selection, e.g. `{"Handedness": "Right"}`.

    Returns:
        pl.DataFrame: The filtered frame with rows containing nulls removed.

    Raises:
        InvalidInputError: If a requested or filtered column is absent.

    Examples:
        >>> df = read_csv_frame(  # doctest: +SKIP
        ...     "athletes.csv",
        ...     columns=["VA", "CS", "RaceTime"],
        ...     where={"Handedness": "Right"},
        ... )
    """
    df = pl.read_csv(path)
    where = where or {}
    requested = [*where, *(columns or [])]
    missing_columns = [col for col in requested if col not in df.columns]
    if missing_columns:
        raise InvalidInputError(f"Columns not found in {path}: {missing_columns}", columns=missing_columns)

    for column, value in where.items():
        df = df.filter(pl.col(column) == value)
    if columns is not None:
        df = df.select(columns)

    complete = df.drop_nulls()
    logger.info(
        "CSV loaded",
        path=str(path),
        rows=complete.height,
        dropped_incomplete_rows=df.height - complete.height,
    )
    return complete


def simulate_performance(n_rows: int = 100, *, seed: int = 0) -> pl.DataFrame:
    """Simulate race times driven by visual acuity and contrast sensitivity.

    `VA` is drawn uniformly from [0.5, 4.0] and `CS` from [0.5, 2.0]. Race
    times start at 54 s, athletes with `VA > 2.75` are 4 s slower, athletes
    with `CS < 1.0` are a further 1.5 s slower, and Gaussian noise with a
    standard deviation of 0.5 s is added.

    Args:
        n_rows (int): Number of athletes.
        seed (int): Seed for the random generator.

    Returns:
        pl.DataFrame: Columns `VA`, `CS` and `RaceTime`.

    Raises:
        InvalidConfigError: If `n_rows` is less than 1.
    """
    if n_rows < 1:
        raise InvalidConfigError(f"n_rows must be at least 1, got {n_rows}", parameter="n_rows", value=n_rows)
    rng = np.random.default_rng(seed)
    va = rng.uniform(0.5, 4.0, size=n_rows)
    cs = rng.uniform(0.5, 2.0, size=n_rows)
    race_time = (
        _BASE_RACE_TIME
        + _SLOW_GROUP_PENALTY * (va > SLOW_GROUP_VA_THRESHOLD)
        + _LOW_CS_PENALTY * (cs < _LOW_CS_THRESHOLD)
        + rng.normal(0.0, _NOISE_SD, size=n_rows)
    )
    return pl.DataFrame({"VA": va, "CS": cs, "RaceTime": race_time})


def train_test_split(
    data: FeatureMatrix,
    *,
    test_fraction: float = 0.3,
    seed: int = 0,
) -> tuple[FeatureMatrix, FeatureMatrix]:
    """Split rows into seeded, shuffled training and test sets.

    Args:
        data (FeatureMatrix): Rows to split.
        test_fraction (float): Share of rows placed in the test set, strictly
            between 0 and 1. The test set size is rounded up.
        seed (int): Seed for the shuffle.

    Returns:
        tuple[FeatureMatrix, FeatureMatrix]: `(train, test)`.

    Raises:
        InvalidConfigError: If `test_fraction` is outside (0, 1) or either
            side of the split would be empty.
    """
    if not 0.0 < test_fraction < 1.0:
        raise InvalidConfigError(
            f"test_fraction must be strictly between 0 and 1, got {test_fraction}",
            parameter="test_fraction",
            value=test_fraction,
        )
    n_test = math.ceil(test_fraction * data.n_rows)
    if n_test >= data.n_rows:
        raise InvalidConfigError(
            f"test_fraction={test_fraction} leaves no training rows out of {data.n_rows}",
            parameter="test_fraction",
            value=test_fraction,
        )

    train_rows, test_rows = _sklearn_train_test_split(
        np.arange(data.n_rows),
        test_size=n_test,
        shuffle=True,
        random_state=seed,
    )
    return data.take(np.sort(train_rows)), data.take(np.sort(test_rows))
