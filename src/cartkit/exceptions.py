"""Custom exceptions for the regression tree engine.

All errors derive from `TreeError`, so callers can catch every engine failure
with a single except clause. Each concrete error also subclasses the builtin
exception that best describes it:

- InvalidInputError (ValueError): empty or malformed feature matrix, missing
  or null columns, non-numeric dtypes.
- InvalidConfigError (ValueError): nonsensical configuration such as a
  non-positive node size or fewer than two cross-validation folds.
- MissingFeatureError (LookupError): a prediction row lacks a feature used by
  a split on its traversal path.
- LengthMismatchError (ValueError): predicted and actual sequences handed to
  a metric differ in length.
"""

from __future__ import annotations


class TreeError(Exception):
    """Base exception for all regression tree engine errors."""


class InvalidInputError(TreeError, ValueError):
    """Raised when input data cannot be used to build or evaluate a tree.

    Attributes:
        columns (list[str]): Column names involved in the failure, if any.

    Examples:
        >>> err = InvalidInputError("Target column 'RaceTime' not found", columns=["RaceTime"])
        >>> err.columns
        ['RaceTime']
    """

    columns: list[str]

    def __init__(self, message: str, *, columns: list[str] | None = None) -> None:
        """Initialize InvalidInputError.

        Args:
            message (str): Description of the input problem.
            columns (list[str] | None): Column names involved in the failure.
        """
        super().__init__(message)
        self.columns = columns or []

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including message and columns.
        """
        return f"{self.__class__.__name__}(message={str(self)!r}, columns={self.columns!r})"


class InvalidConfigError(TreeError, ValueError):
    """Raised when a configuration value is out of its valid range.

    Attributes:
        parameter (str): Name of the offending parameter, e.g. `"folds"`.
        value (object): The rejected value.

    Examples:
        >>> err = InvalidConfigError("folds must be at least 2, got 1", parameter="folds", value=1)
        >>> err.parameter
        'folds'
    """

    parameter: str
    value: object

    def __init__(self, message: str, *, parameter: str = "", value: object = None) -> None:
        """Initialize InvalidConfigError.

        Args:
            message (str): Description of the configuration problem.
            parameter (str): Name of the offending parameter.
            value (object): The rejected value.
        """
        super().__init__(message)
        self.parameter = parameter
        self.value = value

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including message, parameter and value.
        """
        return f"{self.__class__.__name__}(message={str(self)!r}, parameter={self.parameter!r}, value={self.value!r})"


class MissingFeatureError(TreeError, LookupError):
    """Raised when a prediction row lacks a feature used by a split.

    Attributes:
        feature (str): The feature referenced by the split.
        available_features (list[str]): Feature names present in the row.

    Examples:
        >>> err = MissingFeatureError(feature="VA", available_features=["CS"])
        >>> str(err)
        "Row is missing feature 'VA' required by a split. Available features: ['CS']"
    """

    feature: str
    available_features: list[str]

    def __init__(self, feature: str, available_features: list[str]) -> None:
        """Initialize MissingFeatureError.

        Args:
            feature (str): The feature referenced by the split.
            available_features (list[str]): Feature names present in the row.
        """
        super().__init__(
            f"Row is missing feature '{feature}' required by a split. Available features: {sorted(available_features)}"
        )
        self.feature = feature
        self.available_features = available_features

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including the feature and available features.
        """
        return (
            f"{self.__class__.__name__}(feature={self.feature!r}, available_features={self.available_features!r})"
        )


class LengthMismatchError(TreeError, ValueError):
    """Raised when predicted and actual sequences differ in length.

    Attributes:
        predicted_length (int): Length of the predicted sequence.
        actual_length (int): Length of the actual sequence.

    Examples:
        >>> err = LengthMismatchError(predicted_length=3, actual_length=2)
        >>> str(err)
        'predicted and actual must have equal lengths, got 3 and 2'
    """

    predicted_length: int
    actual_length: int

    def __init__(self, predicted_length: int, actual_length: int) -> None:
        """Initialize LengthMismatchError.

        Args:
            predicted_length (int): Length of the predicted sequence.
            actual_length (int): Length of the actual sequence.
        """
        super().__init__(
            f"predicted and actual must have equal lengths, got {predicted_length} and {actual_length}"
        )
        self.predicted_length = predicted_length
        self.actual_length = actual_length

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including both lengths.
        """
        return (
            f"{self.__class__.__name__}("
            f"predicted_length={self.predicted_length!r}, actual_length={self.actual_length!r})"
        )
