"""Cost-complexity (weakest-link) pruning and k-fold cross-validation of tree size."""

from __future__ import annotations

import math
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Final, NamedTuple

import numpy as np
from loguru import logger
from sklearn.model_selection import KFold

from cartkit.exceptions import InvalidConfigError
from cartkit.feature_matrix import FeatureMatrix
from cartkit.logging import FIT_LEVEL
from cartkit.regression_tree.builder import BuildConfig, build_tree
from cartkit.regression_tree.models import (
    CVResult,
    InternalNode,
    LeafNode,
    PrunedSequence,
    PrunedTree,
    SizeSelectionRule,
    Tree,
)
from cartkit.regression_tree.predict import predict_many

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

DEFAULT_FOLDS: Final[int] = 10
_ALPHA_TIE_TOLERANCE: Final[float] = 1e-10  # Relative difference in cost treated as a tie.


# ---------------------------------------------------------------------------
# Public interface -- Weakest-link pruning
# ---------------------------------------------------------------------------


def prune_sequence(tree: Tree) -> PrunedSequence:
    """Derive the nested sequence of subtrees by weakest-link pruning.

    For every internal node `t` the cost of collapsing it is
    `(R(t) - R(T_t)) / (|T_t| - 1)`: the deviance added per terminal node
    removed. Each step collapses the cheapest node into a leaf, preferring the
    deeper node when costs tie and then the earlier node in preorder. Steps
    repeat until only the root remains. `tree` itself is never modified.

    Args:
        tree (Tree): The tree to prune.

    Returns:
        PrunedSequence: Subtrees by decreasing size, starting with `tree` and
            ending with the single-leaf tree.
    """
    entries = [PrunedTree(tree=tree, size=tree.size, deviance=tree.deviance, alpha=0.0)]
    current = tree
    while current.size > 1:
        link = _weakest_link(current)
        current = _collapse(current, link.index)
        entries.append(PrunedTree(tree=current, size=current.size, deviance=current.deviance, alpha=link.alpha))

    sequence = PrunedSequence(entries=tuple(entries))
    logger.log(FIT_LEVEL, "Pruning sequence computed", sizes=sequence.sizes)
    return sequence


def select_by_size(sequence: PrunedSequence, target_size: int) -> Tree:
    """Return the subtree of a pruning sequence that has `target_size` leaves.

    Sizes can be skipped when one collapse removes several leaves. In that case
    the smallest subtree larger than `target_size` is returned. A target larger
    than every entry returns the unpruned tree.

    Args:
        sequence (PrunedSequence): A weakest-link pruning sequence.
        target_size (int): Desired number of terminal nodes.

    Returns:
        Tree: The matching subtree.

    Raises:
        InvalidConfigError: If `target_size` is less than 1.
    """
    if target_size < 1:
        raise InvalidConfigError(
            f"target_size must be at least 1, got {target_size}", parameter="target_size", value=target_size
        )
    candidates = [entry for entry in sequence.entries if entry.size >= target_size]
    if not candidates:
        return sequence.entries[0].tree
    return candidates[-1].tree


# ---------------------------------------------------------------------------
# Public interface -- Cross-validation
# ---------------------------------------------------------------------------


def cross_validate(
    data: FeatureMatrix,
    config: BuildConfig | None = None,
    *,
    folds: int = DEFAULT_FOLDS,
    candidate_sizes: Iterable[int] | None = None,
    seed: int = 0,
    n_jobs: int = 1,
) -> CVResult:
    """Estimate held-out deviance for each candidate tree size by k-fold cross-validation.

    Rows are assigned to `folds` groups by a shuffled k-fold split seeded with
    `seed`. For every fold a tree is grown on the other folds and pruned; the
    held-out rows are then scored against the subtree of each candidate size
    (matched by size, see `select_by_size`). Per-size deviances are averaged
    across folds.

    Args:
        data (FeatureMatrix): Training rows.
        config (BuildConfig | None): Growth limits for every fold tree.
        folds (int): Number of folds, at least 2 and at most `data.n_rows`.
        candidate_sizes (Iterable[int] | None): Tree sizes to score. Defaults to
            `1..size` of the tree grown on all of `data`.
        seed (int): Seed for fold assignment.
        n_jobs (int): Number of folds evaluated concurrently. The result does
            not depend on this value.

    Returns:
        CVResult: Mean deviance and standard error per candidate size.

    Raises:
        InvalidConfigError: If `folds < 2`, a fold would be empty, `n_jobs < 1`,
            or a candidate size is less than 1.
    """
    _validate_cv_arguments(data, folds=folds, n_jobs=n_jobs)
    sizes = _resolve_candidate_sizes(data, config, candidate_sizes)
    logger.log(FIT_LEVEL, "Cross-validating tree size", rows=data.n_rows, folds=folds, sizes=len(sizes), seed=seed)

    splitter = KFold(n_splits=folds, shuffle=True, random_state=seed)
    splits = list(splitter.split(np.arange(data.n_rows)))

    def run_fold(fold: int) -> np.ndarray:
        train_rows, held_out_rows = splits[fold]
        return _fold_deviances(data, train_rows, held_out_rows, config=config, sizes=sizes, fold=fold)

    if n_jobs == 1:
        fold_results = [run_fold(fold) for fold in range(folds)]
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            fold_results = list(executor.map(run_fold, range(folds)))

    deviance_matrix = np.vstack(fold_results)
    mean_deviance = deviance_matrix.mean(axis=0)
    std_error = deviance_matrix.std(axis=0, ddof=1) / math.sqrt(folds)

    result = CVResult(
        deviance={size: float(value) for size, value in zip(sizes, mean_deviance, strict=True)},
        std_error={size: float(value) for size, value in zip(sizes, std_error, strict=True)},
        folds=folds,
        seed=seed,
    )
    logger.log(FIT_LEVEL, "Cross-validation finished", best_size=select_size(result))
    return result


def select_size(cv: CVResult, rule: SizeSelectionRule = "min") -> int:
    """Choose a tree size from cross-validation results.

    `"min"` picks the size with the lowest mean deviance; exact ties go to the
    smaller size. `"1se"` picks the smallest size whose mean deviance is within
    one standard error of that minimum.

    Args:
        cv (CVResult): Cross-validation results.
        rule (SizeSelectionRule): Selection policy.

    Returns:
        int: The selected tree size.

    Raises:
        InvalidConfigError: If `rule` is not recognised.
    """
    best = min(cv.sizes, key=lambda size: (cv.deviance[size], size))
    if rule == "min":
        return best
    if rule == "1se":
        limit = cv.deviance[best] + cv.std_error[best]
        return min(size for size in cv.sizes if cv.deviance[size] <= limit)
    raise InvalidConfigError(f"Unknown size selection rule: {rule!r}", parameter="rule", value=rule)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


class _WeakestLink(NamedTuple):
    """The internal node to collapse next.

    Attributes:
        index (int): Arena index of the node.
        alpha (float): Deviance added per terminal node removed.
    """

    index: int
    alpha: float


def _weakest_link(tree: Tree) -> _WeakestLink:
    """Find the internal node whose collapse costs least per removed leaf.

    Args:
        tree (Tree): A tree with at least one internal node.

    Returns:
        _WeakestLink: The node to collapse and its cost.
    """
    subtree_leaves = [0] * len(tree.nodes)
    subtree_deviance = [0.0] * len(tree.nodes)
    order = tree.preorder()
    for index in reversed(order):
        node = tree.nodes[index]
        if isinstance(node, LeafNode):
            subtree_leaves[index] = 1
            subtree_deviance[index] = node.deviance
        else:
            subtree_leaves[index] = subtree_leaves[node.left] + subtree_leaves[node.right]
            subtree_deviance[index] = subtree_deviance[node.left] + subtree_deviance[node.right]

    depths = tree.node_depths()
    candidates: list[tuple[float, int, int]] = []
    for position, index in enumerate(order):
        node = tree.nodes[index]
        if isinstance(node, InternalNode):
            alpha = max(node.deviance - subtree_deviance[index], 0.0) / (subtree_leaves[index] - 1)
            candidates.append((alpha, depths[index], position))

    min_alpha = min(alpha for alpha, _, _ in candidates)
    # Costs are differences of deviances no larger than the root's.
    tolerance = _ALPHA_TIE_TOLERANCE * max(min_alpha, tree.root.deviance)
    tied = [candidate for candidate in candidates if candidate[0] <= min_alpha + tolerance]
    alpha, _, position = min(tied, key=lambda candidate: (-candidate[1], candidate[2]))
    return _WeakestLink(index=order[position], alpha=alpha)


def _collapse(tree: Tree, target: int) -> Tree:
    """Return a new tree with node `target` replaced by a leaf.

    The result is renumbered in preorder; nodes below `target` are dropped.

    Args:
        tree (Tree): The source tree. It is not modified.
        target (int): Arena index of the internal node to collapse.

    Returns:
        Tree: The pruned tree.
    """
    kept: list[int] = []
    stack = [0]
    while stack:
        index = stack.pop()
        kept.append(index)
        node = tree.nodes[index]
        if isinstance(node, InternalNode) and index != target:
            stack.append(node.right)
            stack.append(node.left)
    renumbered = {old: new for new, old in enumerate(kept)}

    nodes: list[InternalNode | LeafNode] = []
    for index in kept:
        node = tree.nodes[index]
        if isinstance(node, LeafNode):
            nodes.append(node)
        elif index == target:
            nodes.append(LeafNode(value=node.value, sample_count=node.sample_count, deviance=node.deviance))
        else:
            nodes.append(node.model_copy(update={"left": renumbered[node.left], "right": renumbered[node.right]}))
    return Tree.from_nodes(nodes, feature_names=tree.feature_names, target_name=tree.target_name)


def _validate_cv_arguments(data: FeatureMatrix, *, folds: int, n_jobs: int) -> None:
    """Raise `InvalidConfigError` for unusable cross-validation settings.

    Args:
        data (FeatureMatrix): Training rows.
        folds (int): Requested number of folds.
        n_jobs (int): Requested concurrency.

    Raises:
        InvalidConfigError: If `folds < 2`, `folds > data.n_rows`, or `n_jobs < 1`.
    """
    if folds < 2:
        raise InvalidConfigError(f"folds must be at least 2, got {folds}", parameter="folds", value=folds)
    if folds > data.n_rows:
        logger.warning("Cross-validation rejected", folds=folds, rows=data.n_rows)
        raise InvalidConfigError(
            f"folds ({folds}) exceeds the number of rows ({data.n_rows}); at least one fold would be empty",
            parameter="folds",
            value=folds,
        )
    if n_jobs < 1:
        raise InvalidConfigError(f"n_jobs must be at least 1, got {n_jobs}", parameter="n_jobs", value=n_jobs)


def _resolve_candidate_sizes(
    data: FeatureMatrix,
    config: BuildConfig | None,
    candidate_sizes: Iterable[int] | None,
) -> list[int]:
    """Return the sorted, de-duplicated tree sizes to score.

    Args:
        data (FeatureMatrix): Training rows.
        config (BuildConfig | None): Growth limits.
        candidate_sizes (Iterable[int] | None): Requested sizes, or `None` for
            every size up to that of the tree grown on all of `data`.

    Returns:
        list[int]: Candidate sizes in ascending order.

    Raises:
        InvalidConfigError: If the requested sizes are empty or contain a value below 1.
    """
    if candidate_sizes is None:
        return list(range(1, build_tree(data, config).size + 1))
    sizes = sorted(set(candidate_sizes))
    if not sizes or sizes[0] < 1:
        raise InvalidConfigError(
            f"candidate_sizes must be a non-empty collection of sizes >= 1, got {sizes}",
            parameter="candidate_sizes",
            value=sizes,
        )
    return sizes


def _fold_deviances(
    data: FeatureMatrix,
    train_rows: np.ndarray,
    held_out_rows: np.ndarray,
    *,
    config: BuildConfig | None,
    sizes: list[int],
    fold: int,
) -> np.ndarray:
    """Score one fold's held-out rows against its subtree of every candidate size.

    Args:
        data (FeatureMatrix): All training rows.
        train_rows (np.ndarray): Row indices used to grow the fold tree.
        held_out_rows (np.ndarray): Row indices used for scoring.
        config (BuildConfig | None): Growth limits.
        sizes (list[int]): Candidate sizes.
        fold (int): Fold number, for logging.

    Returns:
        np.ndarray: Held-out deviance per candidate size.
    """
    held_out = data.take(held_out_rows)
    sequence = prune_sequence(build_tree(data.take(train_rows), config))

    deviances = np.empty(len(sizes), dtype=np.float64)
    for position, size in enumerate(sizes):
        residuals = held_out.y - predict_many(select_by_size(sequence, size), held_out)
        deviances[position] = float(np.dot(residuals, residuals))

    logger.debug(
        "Fold scored",
        fold=fold,
        train_rows=len(train_rows),
        held_out_rows=len(held_out_rows),
        fold_tree_size=sequence.sizes[0],
    )
    return deviances
