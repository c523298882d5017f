"""Shared fixtures for regression tree tests."""

from __future__ import annotations

import polars as pl
import pytest

from cartkit.datasets import simulate_performance
from cartkit.feature_matrix import FeatureMatrix
from cartkit.regression_tree.models import InternalNode, LeafNode, Tree


@pytest.fixture
def race_data() -> FeatureMatrix:
    """Ten athletes where `VA > 2.75` separates the three slowest race times.

    Returns:
        FeatureMatrix: Predictors VA and CS, target RaceTime.
    """
    df = pl.DataFrame({
        "VA": [1.0, 1.5, 2.0, 2.2, 2.5, 2.6, 2.7, 3.0, 3.2, 3.5],
        "CS": [1.8, 1.2, 1.6, 0.9, 1.4, 1.1, 1.7, 1.3, 1.5, 1.0],
        "RaceTime": [54.1, 54.6, 54.3, 54.9, 54.2, 54.5, 54.4, 58.0, 57.9, 58.1],
    })
    return FeatureMatrix.from_dataframe(df, "RaceTime")


@pytest.fixture
def simulated_data() -> FeatureMatrix:
    """One hundred simulated athletes.

    Returns:
        FeatureMatrix: Predictors VA and CS, target RaceTime.
    """
    return FeatureMatrix.from_dataframe(simulate_performance(100, seed=7), "RaceTime")


@pytest.fixture
def two_split_tree() -> Tree:
    """A hand-built tree: a root split on VA and a left split on CS.

    Layout (preorder arena indices)::

        0: VA <= 2.75
            1: CS <= 1.3
                2: leaf 54.67
                3: leaf 54.25
            4: leaf 58.0

    Returns:
        Tree: The tree with three leaves.
    """
    nodes = [
        InternalNode(
            feature="VA", feature_index=0, threshold=2.75, left=1, right=4, value=55.5, sample_count=10, deviance=27.24
        ),
        InternalNode(
            feature="CS", feature_index=1, threshold=1.3, left=2, right=3, value=54.43, sample_count=7, deviance=0.43
        ),
        LeafNode(value=54.67, sample_count=3, deviance=0.08),
        LeafNode(value=54.25, sample_count=4, deviance=0.05),
        LeafNode(value=58.0, sample_count=3, deviance=0.02),
    ]
    return Tree.from_nodes(nodes, feature_names=("VA", "CS"), target_name="RaceTime")
