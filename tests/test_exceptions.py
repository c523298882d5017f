"""Tests for custom exceptions.

This module tests the exception classes raised by the regression tree engine,
ensuring proper inheritance, attribute storage, message formatting, and
catchability patterns.
"""

from __future__ import annotations

import pytest
from pytest_check import check

from cartkit.exceptions import (
    InvalidConfigError,
    InvalidInputError,
    LengthMismatchError,
    MissingFeatureError,
    TreeError,
)


class TestTreeErrorHierarchy:
    """Tests for the shared TreeError base class."""

    @pytest.mark.parametrize(
        ("error", "builtin"),
        [
            (InvalidInputError("FeatureMatrix has zero rows"), ValueError),
            (InvalidConfigError("folds must be at least 2, got 1", parameter="folds", value=1), ValueError),
            (MissingFeatureError(feature="VA", available_features=["CS"]), LookupError),
            (LengthMismatchError(predicted_length=3, actual_length=2), ValueError),
        ],
        ids=["invalid-input", "invalid-config", "missing-feature", "length-mismatch"],
    )
    def test_errors_are_catchable_as_tree_error_and_builtin(self, error: TreeError, builtin: type[Exception]) -> None:
        """Every engine error should be catchable as TreeError and as its builtin counterpart.

        Args:
            error (TreeError): The error instance under test.
            builtin (type[Exception]): The builtin exception class it should also subclass.
        """
        # Act & Assert - catchable as the shared base
        with pytest.raises(TreeError):
            raise error

        # Assert - catchable as the builtin
        with check:
            assert isinstance(error, builtin), f"{type(error).__name__} should subclass {builtin.__name__}"


class TestInvalidInputError:
    """Tests for InvalidInputError."""

    def test_stores_columns(self) -> None:
        """The offending columns should be stored and the message preserved."""
        # Arrange / Act
        error = InvalidInputError("Columns contain null values: ['VA']", columns=["VA"])

        # Assert
        with check:
            assert error.columns == ["VA"]
        with check:
            assert str(error) == "Columns contain null values: ['VA']"

    def test_columns_default_to_empty_list(self) -> None:
        """When no columns are given the attribute should be an empty list, not None."""
        # Arrange / Act
        error = InvalidInputError("FeatureMatrix has zero rows")

        # Assert
        assert error.columns == []

    def test_repr_includes_message_and_columns(self) -> None:
        """The repr should carry enough detail to debug the failure."""
        # Arrange
        error = InvalidInputError("bad target", columns=["RaceTime"])

        # Act
        representation = repr(error)

        # Assert
        with check:
            assert representation.startswith("InvalidInputError(")
        with check:
            assert "'bad target'" in representation
        with check:
            assert "['RaceTime']" in representation


class TestInvalidConfigError:
    """Tests for InvalidConfigError."""

    def test_stores_parameter_and_value(self) -> None:
        """The rejected parameter name and value should be stored."""
        # Arrange / Act
        error = InvalidConfigError("min_node_size must be at least 1, got 0", parameter="min_node_size", value=0)

        # Assert
        with check:
            assert error.parameter == "min_node_size"
        with check:
            assert error.value == 0
        with check:
            assert "min_node_size=" not in str(error), "str() should be the plain message"

    def test_repr_includes_parameter(self) -> None:
        """The repr should name the parameter and the rejected value."""
        # Arrange
        error = InvalidConfigError("n_jobs must be at least 1, got 0", parameter="n_jobs", value=0)

        # Act
        representation = repr(error)

        # Assert
        with check:
            assert "parameter='n_jobs'" in representation
        with check:
            assert "value=0" in representation


class TestMissingFeatureError:
    """Tests for MissingFeatureError."""

    def test_message_names_feature_and_available_features(self) -> None:
        """The message should name the missing feature and list the row's features sorted."""
        # Arrange / Act
        error = MissingFeatureError(feature="VA", available_features=["Handedness", "CS"])

        # Assert
        with check:
            assert error.feature == "VA"
        with check:
            assert error.available_features == ["Handedness", "CS"]
        with check:
            assert str(error) == (
                "Row is missing feature 'VA' required by a split. Available features: ['CS', 'Handedness']"
            )

    def test_repr_includes_feature(self) -> None:
        """The repr should carry the missing feature name."""
        # Arrange
        error = MissingFeatureError(feature="CS", available_features=[])

        # Act & Assert
        assert repr(error) == "MissingFeatureError(feature='CS', available_features=[])"


class TestLengthMismatchError:
    """Tests for LengthMismatchError."""

    def test_stores_both_lengths(self) -> None:
        """Both sequence lengths should be stored and appear in the message."""
        # Arrange / Act
        error = LengthMismatchError(predicted_length=5, actual_length=4)

        # Assert
        with check:
            assert error.predicted_length == 5
        with check:
            assert error.actual_length == 4
        with check:
            assert str(error) == "predicted and actual must have equal lengths, got 5 and 4"
