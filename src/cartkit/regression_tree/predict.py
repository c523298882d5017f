"""Routing rows through a fitted regression tree."""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
import polars as pl

from cartkit.exceptions import InvalidInputError, MissingFeatureError
from cartkit.feature_matrix import FeatureMatrix
from cartkit.regression_tree.models import InternalNode, LeafNode, Tree


def apply(tree: Tree, row: Mapping[str, float]) -> int:
    """Return the arena index of the leaf `row` is routed to.

    At each split the row goes left when `row[feature] <= threshold`, the
    same convention used while growing the tree.

    Args:
        tree (Tree): A fitted tree.
        row (Mapping[str, float]): Feature values keyed by name. Features not
            used on the traversal path may be absent.

    Returns:
        int: Index of the terminal node in `tree.nodes`.

    Raises:
        MissingFeatureError: If `row` lacks a feature used by a split on the
            traversal path.
    """
    index = 0
    node = tree.nodes[index]
    while isinstance(node, InternalNode):
        try:
            value = row[node.feature]
        except KeyError:
            raise MissingFeatureError(feature=node.feature, available_features=list(row)) from None
        index = node.left if value <= node.threshold else node.right
        node = tree.nodes[index]
    return index


def predict(tree: Tree, row: Mapping[str, float]) -> float:
    """Predict the target for one row.

    Args:
        tree (Tree): A fitted tree.
        row (Mapping[str, float]): Feature values keyed by name.

    Returns:
        float: The mean target value of the leaf the row reaches.

    Raises:
        MissingFeatureError: If `row` lacks a feature needed for traversal.

    Examples:
        >>> tree = Tree.from_nodes(
        ...     [LeafNode(value=56.0, sample_count=3, deviance=0.5)],
        ...     feature_names=("VA",),
        ...     target_name="RaceTime",
        ... )
        >>> predict(tree, {"VA": 1.0})
        56.0
    """
    return tree.nodes[apply(tree, row)].value


def apply_many(tree: Tree, data: FeatureMatrix | pl.DataFrame) -> np.ndarray:
    """Return the leaf index of every row.

    Args:
        tree (Tree): A fitted tree.
        data (FeatureMatrix | pl.DataFrame): Rows to route. Columns are
            matched by name, so extra or reordered columns are fine.

    Returns:
        np.ndarray: Integer leaf indices with shape `(n_rows,)`.

    Raises:
        MissingFeatureError: If a feature used by any split is absent.
    """
    columns, n_rows = _resolve_columns(tree, data)
    leaf_index = np.zeros(n_rows, dtype=np.intp)
    # Route all rows one level at a time; rows already at a leaf stay put.
    active = np.ones(n_rows, dtype=bool)
    while active.any():
        active_rows = np.flatnonzero(active)
        current = leaf_index[active_rows]
        for node_index in np.unique(current):
            node = tree.nodes[int(node_index)]
            at_node = active_rows[current == node_index]
            if isinstance(node, LeafNode):
                active[at_node] = False
                continue
            goes_left = columns[node.feature][at_node] <= node.threshold
            leaf_index[at_node] = np.where(goes_left, node.left, node.right)
    return leaf_index


def predict_many(tree: Tree, data: FeatureMatrix | pl.DataFrame) -> np.ndarray:
    """Predict the target for every row.

    Args:
        tree (Tree): A fitted tree.
        data (FeatureMatrix | pl.DataFrame): Rows to predict.

    Returns:
        np.ndarray: float64 predictions with shape `(n_rows,)`.

    Raises:
        MissingFeatureError: If a feature used by any split is absent.
    """
    node_values = np.array([node.value for node in tree.nodes], dtype=np.float64)
    return node_values[apply_many(tree, data)]


def _resolve_columns(tree: Tree, data: FeatureMatrix | pl.DataFrame) -> tuple[dict[str, np.ndarray], int]:
    """Collect the float64 columns for every feature the tree splits on.

    Args:
        tree (Tree): A fitted tree.
        data (FeatureMatrix | pl.DataFrame): Rows to route.

    Returns:
        tuple[dict[str, np.ndarray], int]: Columns keyed by feature name, and
            the number of rows.

    Raises:
        MissingFeatureError: If a split feature is absent from `data`.
        InvalidInputError: If a DataFrame split column contains nulls.
    """
    split_features = sorted({node.feature for node in tree.nodes if isinstance(node, InternalNode)})
    available = list(data.feature_names) if isinstance(data, FeatureMatrix) else list(data.columns)
    missing = [name for name in split_features if name not in available]
    if missing:
        raise MissingFeatureError(feature=missing[0], available_features=available)

    if isinstance(data, FeatureMatrix):
        return {name: data.x[:, available.index(name)] for name in split_features}, data.n_rows

    null_columns = [name for name in split_features if data[name].null_count() > 0]
    if null_columns:
        raise InvalidInputError(f"Split columns contain null values: {null_columns}", columns=null_columns)
    return {name: data[name].cast(pl.Float64).to_numpy(allow_copy=True) for name in split_features}, data.height
