"""Pipeline orchestration: grow, prune, cross-validate and select a regression tree."""

from __future__ import annotations

from loguru import logger

from cartkit.feature_matrix import FeatureMatrix
from cartkit.logging import FIT_LEVEL
from cartkit.regression_tree.builder import BuildConfig, build_tree
from cartkit.regression_tree.models import PrunedTreeResult, SizeSelectionRule
from cartkit.regression_tree.pruning import (
    DEFAULT_FOLDS,
    cross_validate,
    prune_sequence,
    select_by_size,
    select_size,
)


def fit_pruned_tree(
    train: FeatureMatrix,
    config: BuildConfig | None = None,
    *,
    folds: int = DEFAULT_FOLDS,
    seed: int = 0,
    rule: SizeSelectionRule = "min",
    n_jobs: int = 1,
) -> PrunedTreeResult:
    """Grow a tree on `train` and prune it to the size chosen by cross-validation.

    The full tree is grown once and pruned into its weakest-link sequence.
    Every size from 1 to the full tree's size is then scored by k-fold
    cross-validation, a size is selected with `rule`, and the matching subtree
    of the full tree is returned.

    Args:
        train (FeatureMatrix): Training rows.
        config (BuildConfig | None): Growth limits shared by the full tree and
            every fold tree.
        folds (int): Number of cross-validation folds.
        seed (int): Seed for fold assignment.
        rule (SizeSelectionRule): `"min"` (lowest mean deviance) or `"1se"`
            (smallest size within one standard error of the minimum).
        n_jobs (int): Number of folds evaluated concurrently.

    Returns:
        PrunedTreeResult: The full tree, its pruning sequence, the
            cross-validation results, the selected size and the pruned tree.

    Raises:
        InvalidConfigError: On invalid fold, concurrency or rule settings.
    """
    full_tree = build_tree(train, config)
    sequence = prune_sequence(full_tree)
    cv = cross_validate(
        train,
        config,
        folds=folds,
        candidate_sizes=range(1, full_tree.size + 1),
        seed=seed,
        n_jobs=n_jobs,
    )
    selected_size = select_size(cv, rule)
    tree = select_by_size(sequence, selected_size)

    logger.log(
        FIT_LEVEL,
        "Pruned tree selected",
        rule=rule,
        full_size=full_tree.size,
        selected_size=selected_size,
        cv_deviance=cv.deviance[selected_size],
    )
    return PrunedTreeResult(
        full_tree=full_tree,
        sequence=sequence,
        cv=cv,
        selected_size=selected_size,
        tree=tree,
    )
