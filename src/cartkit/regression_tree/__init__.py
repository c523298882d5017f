"""Regression tree sub-package: models, growth, pruning, prediction and rule extraction."""

from __future__ import annotations

from cartkit.regression_tree.builder import BuildConfig, build_tree
from cartkit.regression_tree.fitting import fit_pruned_tree
from cartkit.regression_tree.models import (
    CVResult,
    InternalNode,
    LeafNode,
    Node,
    Predicate,
    PredicateOp,
    PrunedSequence,
    PrunedTree,
    PrunedTreeResult,
    RegressionRule,
    SizeSelectionRule,
    Tree,
)
from cartkit.regression_tree.predict import apply, apply_many, predict, predict_many
from cartkit.regression_tree.pruning import (
    cross_validate,
    prune_sequence,
    select_by_size,
    select_size,
)
from cartkit.regression_tree.rules import extract_rules, format_tree, rules_to_frame

__all__ = [
    "BuildConfig",
    "CVResult",
    "InternalNode",
    "LeafNode",
    "Node",
    "Predicate",
    "PredicateOp",
    "PrunedSequence",
    "PrunedTree",
    "PrunedTreeResult",
    "RegressionRule",
    "SizeSelectionRule",
    "Tree",
    "apply",
    "apply_many",
    "build_tree",
    "cross_validate",
    "extract_rules",
    "fit_pruned_tree",
    "format_tree",
    "predict",
    "predict_many",
    "prune_sequence",
    "rules_to_frame",
    "select_by_size",
    "select_size",
]
