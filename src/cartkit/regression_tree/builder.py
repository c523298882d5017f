"""Regression tree growth by recursive binary splitting on residual sum of squares."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final, NamedTuple

import numpy as np
from loguru import logger

from cartkit.exceptions import InvalidConfigError, InvalidInputError
from cartkit.feature_matrix import FeatureMatrix
from cartkit.logging import FIT_LEVEL
from cartkit.regression_tree.models import InternalNode, LeafNode, Tree

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

DEFAULT_MIN_NODE_SIZE: Final[int] = 10
DEFAULT_IMPROVEMENT_FRACTION: Final[float] = 0.01  # Share of root deviance a split must remove.
_TIE_TOLERANCE: Final[float] = 1e-10  # Relative RSS difference treated as a tie.


# ---------------------------------------------------------------------------
# Public interface -- Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BuildConfig:
    """Growth limits for `build_tree`.

    Attributes:
        min_node_size (int): Minimum number of rows a node needs before a split
            is attempted.
        min_split_improvement (float | None): Minimum absolute deviance
            reduction a split must achieve. `None` uses
            `DEFAULT_IMPROVEMENT_FRACTION` times the root deviance.
        max_depth (int | None): Maximum node depth (the root has depth 0).
            `None` means unlimited.
        min_leaf_size (int): Minimum number of rows on each side of a split.

    Examples:
        >>> BuildConfig(min_node_size=2).min_leaf_size
        1
        >>> BuildConfig(min_node_size=0)
        Traceback (most recent call last):
        ...
        cartkit.exceptions.InvalidConfigError: min_node_size must be at least 1, got 0
    """

    min_node_size: int = DEFAULT_MIN_NODE_SIZE
    min_split_improvement: float | None = None
    max_depth: int | None = None
    min_leaf_size: int = 1

    def __post_init__(self) -> None:
        """Validate the configuration values.

        Raises:
            InvalidConfigError: If a size is non-positive, the improvement is
                negative, or the depth cap is negative.
        """
        if self.min_node_size < 1:
            raise InvalidConfigError(
                f"min_node_size must be at least 1, got {self.min_node_size}",
                parameter="min_node_size",
                value=self.min_node_size,
            )
        if self.min_leaf_size < 1:
            raise InvalidConfigError(
                f"min_leaf_size must be at least 1, got {self.min_leaf_size}",
                parameter="min_leaf_size",
                value=self.min_leaf_size,
            )
        if self.min_split_improvement is not None and not self.min_split_improvement >= 0.0:
            raise InvalidConfigError(
                f"min_split_improvement must be non-negative, got {self.min_split_improvement}",
                parameter="min_split_improvement",
                value=self.min_split_improvement,
            )
        if self.max_depth is not None and self.max_depth < 0:
            raise InvalidConfigError(
                f"max_depth must be non-negative, got {self.max_depth}",
                parameter="max_depth",
                value=self.max_depth,
            )


# ---------------------------------------------------------------------------
# Public interface -- Tree growth
# ---------------------------------------------------------------------------


def build_tree(data: FeatureMatrix, config: BuildConfig | None = None) -> Tree:
    """Grow a regression tree on `data`.

    Every node holding at least `min_node_size` rows with non-constant target
    is split on the (feature, threshold) pair with the lowest residual sum of
    squares. Candidate thresholds are midpoints between consecutive distinct
    values of a feature within the node. Ties go to the lowest feature index,
    then the lowest threshold. A split is kept only when it reduces deviance by
    at least the configured improvement.

    Each predictor is sorted once at the root; children inherit their sorted
    order through a stable partition, so a tree level costs
    O(rows x features) regardless of how many distinct values a predictor has.

    Args:
        data (FeatureMatrix): Training rows.
        config (BuildConfig | None): Growth limits. Defaults to `BuildConfig()`.

    Returns:
        Tree: The grown tree, laid out in preorder.

    Raises:
        InvalidInputError: If `data` has no rows.
    """
    config = config or BuildConfig()
    if data.n_rows == 0:
        raise InvalidInputError("Cannot build a tree from a FeatureMatrix with zero rows")

    root_order = np.stack([np.argsort(data.x[:, column], kind="stable") for column in range(data.n_features)])
    min_improvement = _resolve_min_improvement(config, data.y)
    logger.debug(
        "Growing regression tree",
        rows=data.n_rows,
        features=list(data.feature_names),
        min_node_size=config.min_node_size,
        min_improvement=min_improvement,
        max_depth=config.max_depth,
    )

    nodes = _grow(data, root_order, config=config, min_improvement=min_improvement)
    tree = Tree.from_nodes(nodes, feature_names=data.feature_names, target_name=data.target_name)

    logger.log(
        FIT_LEVEL,
        "Regression tree built",
        rows=data.n_rows,
        size=tree.size,
        depth=tree.depth,
        deviance=tree.deviance,
    )
    return tree


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


class _Split(NamedTuple):
    """Best split found for one node.

    Attributes:
        feature_index (int): Column of the split predictor.
        threshold (float): Split threshold.
        rss (float): Residual sum of squares of the two children.
    """

    feature_index: int
    threshold: float
    rss: float


class _Task(NamedTuple):
    """A node waiting to be grown.

    Attributes:
        order (np.ndarray): Row indices of the node, sorted per feature, with
            shape `(n_features, n_node_rows)`.
        depth (int): Depth of the node.
        parent (int | None): Arena index of the parent, `None` for the root.
        is_left (bool): Whether the node is its parent's left child.
    """

    order: np.ndarray
    depth: int
    parent: int | None
    is_left: bool


@dataclass(slots=True)
class _Draft:
    """A grown node whose children may not have arena indices yet.

    Attributes:
        value (float): Mean target of the node's rows.
        sample_count (int): Number of rows at the node.
        deviance (float): Deviance of the node's rows.
        split (_Split | None): The accepted split, `None` for a leaf.
        left (int): Arena index of the left child, `-1` until it is numbered.
        right (int): Arena index of the right child, `-1` until it is numbered.
    """

    value: float
    sample_count: int
    deviance: float
    split: _Split | None = None
    left: int = -1
    right: int = -1

    def to_node(self, feature_names: Sequence[str]) -> InternalNode | LeafNode:
        """Freeze the draft into a tree node.

        Args:
            feature_names (Sequence[str]): Predictor names, indexed by column.

        Returns:
            InternalNode | LeafNode: A leaf when no split was accepted.
        """
        if self.split is None:
            return LeafNode(value=self.value, sample_count=self.sample_count, deviance=self.deviance)
        return InternalNode(
            feature=feature_names[self.split.feature_index],
            feature_index=self.split.feature_index,
            threshold=self.split.threshold,
            left=self.left,
            right=self.right,
            value=self.value,
            sample_count=self.sample_count,
            deviance=self.deviance,
        )


def _resolve_min_improvement(config: BuildConfig, y: np.ndarray) -> float:
    """Return the absolute deviance reduction a split must achieve.

    Args:
        config (BuildConfig): Growth limits.
        y (np.ndarray): Target values of the whole training set.

    Returns:
        float: The configured value, or a fraction of the root deviance.
    """
    if config.min_split_improvement is not None:
        return float(config.min_split_improvement)
    return DEFAULT_IMPROVEMENT_FRACTION * _deviance(y)


def _deviance(values: np.ndarray) -> float:
    """Sum of squared deviations from the mean.

    Args:
        values (np.ndarray): 1-D array of target values.

    Returns:
        float: The deviance; `0.0` for a constant array.
    """
    centered = values - values.mean()
    return float(np.dot(centered, centered))


def _grow(
    data: FeatureMatrix,
    root_order: np.ndarray,
    *,
    config: BuildConfig,
    min_improvement: float,
) -> list[InternalNode | LeafNode]:
    """Grow the arena iteratively, assigning indices in preorder.

    Args:
        data (FeatureMatrix): Training rows.
        root_order (np.ndarray): Per-feature sorted row indices of the root.
        config (BuildConfig): Growth limits.
        min_improvement (float): Absolute deviance reduction a split must achieve.

    Returns:
        list[InternalNode | LeafNode]: The node arena, root first.
    """
    drafts: list[_Draft] = []
    stack = [_Task(order=root_order, depth=0, parent=None, is_left=True)]

    while stack:
        task = stack.pop()
        index = len(drafts)
        if task.parent is not None:
            if task.is_left:
                drafts[task.parent].left = index
            else:
                drafts[task.parent].right = index

        rows = task.order[0]
        y_node = data.y[rows]
        draft = _Draft(value=float(y_node.mean()), sample_count=len(rows), deviance=_deviance(y_node))
        drafts.append(draft)

        if not _can_split(y_node, task.depth, config):
            continue
        split = _find_best_split(data, task.order, draft.value, draft.deviance, config.min_leaf_size)
        if split is None or draft.deviance - split.rss < min_improvement:
            continue

        draft.split = split
        left_order, right_order = _partition(data, task.order, split)
        # Right is pushed first so the left subtree is numbered first.
        stack.append(_Task(order=right_order, depth=task.depth + 1, parent=index, is_left=False))
        stack.append(_Task(order=left_order, depth=task.depth + 1, parent=index, is_left=True))

    return [draft.to_node(data.feature_names) for draft in drafts]


def _can_split(y_node: np.ndarray, depth: int, config: BuildConfig) -> bool:
    """Return `True` when a node is eligible for split search.

    Args:
        y_node (np.ndarray): Target values of the node's rows.
        depth (int): Depth of the node.
        config (BuildConfig): Growth limits.

    Returns:
        bool: `False` for small nodes, constant targets or nodes at the depth cap.
    """
    if len(y_node) < config.min_node_size or len(y_node) < 2 * config.min_leaf_size:
        return False
    if config.max_depth is not None and depth >= config.max_depth:
        return False
    return bool(np.ptp(y_node) > 0.0)


def _find_best_split(
    data: FeatureMatrix,
    order: np.ndarray,
    node_mean: float,
    node_deviance: float,
    min_leaf_size: int,
) -> _Split | None:
    """Search every feature and midpoint threshold for the lowest-RSS split.

    RSS for all thresholds of a feature comes from cumulative sums of the
    centered targets in that feature's sorted order. RSS values closer than
    `_TIE_TOLERANCE` times the node deviance count as ties, which resolve to
    the lowest feature index and then the lowest threshold. The tolerance has
    no absolute floor, so the chosen split does not depend on the scale of
    the target.

    Args:
        data (FeatureMatrix): Training rows.
        order (np.ndarray): Per-feature sorted row indices of the node.
        node_mean (float): Mean target of the node.
        node_deviance (float): Deviance of the node.
        min_leaf_size (int): Minimum rows on each side of a split.

    Returns:
        _Split | None: The best split, or `None` when no feature has two
            distinct values with enough rows on each side.
    """
    n_rows = order.shape[1]
    tolerance = _TIE_TOLERANCE * node_deviance
    left_counts = np.arange(1, n_rows, dtype=np.float64)
    right_counts = n_rows - left_counts

    best: _Split | None = None
    for feature_index in range(data.n_features):
        rows = order[feature_index]
        x_sorted = data.x[rows, feature_index]
        centered = data.y[rows] - node_mean

        left_sum = np.cumsum(centered)[:-1]
        left_sq = np.cumsum(centered * centered)[:-1]
        total_sum = float(centered.sum())
        total_sq = float(np.dot(centered, centered))
        left_rss = left_sq - left_sum * left_sum / left_counts
        right_sum = total_sum - left_sum
        right_rss = (total_sq - left_sq) - right_sum * right_sum / right_counts
        rss = np.maximum(left_rss, 0.0) + np.maximum(right_rss, 0.0)

        # Position k splits between x_sorted[k] and x_sorted[k + 1].
        valid = x_sorted[:-1] < x_sorted[1:]
        valid &= (left_counts >= min_leaf_size) & (right_counts >= min_leaf_size)
        if not valid.any():
            continue

        candidate_rss = np.where(valid, rss, np.inf)
        min_rss = float(candidate_rss.min())
        position = int(np.flatnonzero(candidate_rss <= min_rss + tolerance)[0])
        if best is not None and not float(candidate_rss[position]) < best.rss - tolerance:
            continue

        lower = float(x_sorted[position])
        upper = float(x_sorted[position + 1])
        threshold = (lower + upper) / 2.0
        if not threshold < upper:
            # Adjacent floats can round the midpoint up to `upper`.
            threshold = lower
        best = _Split(feature_index=feature_index, threshold=threshold, rss=float(candidate_rss[position]))

    return best


def _partition(data: FeatureMatrix, order: np.ndarray, split: _Split) -> tuple[np.ndarray, np.ndarray]:
    """Stable-partition every feature's sorted row order by the split.

    Args:
        data (FeatureMatrix): Training rows.
        order (np.ndarray): Per-feature sorted row indices of the node.
        split (_Split): The chosen split.

    Returns:
        tuple[np.ndarray, np.ndarray]: `(left_order, right_order)`, each with
            one sorted row index array per feature.
    """
    goes_left = np.zeros(data.n_rows, dtype=bool)
    node_rows = order[0]
    goes_left[node_rows] = data.x[node_rows, split.feature_index] <= split.threshold

    left_mask = goes_left[order]
    n_left = int(left_mask[0].sum())
    left_order = order[left_mask].reshape(order.shape[0], n_left)
    right_order = order[~left_mask].reshape(order.shape[0], order.shape[1] - n_left)
    return left_order, right_order
