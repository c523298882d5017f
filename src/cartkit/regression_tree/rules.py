"""Human-readable views of a fitted tree: leaf rules, a rule table and a text rendering."""

from __future__ import annotations

from typing import Any, Final

import polars as pl

from cartkit.regression_tree.models import InternalNode, LeafNode, Predicate, RegressionRule, Tree

DISPLAY_DECIMAL_PLACES: Final[int] = 4  # Rounding applied to numbers in `format_tree` output only.


def extract_rules(tree: Tree) -> list[RegressionRule]:
    """Extract one rule per leaf, in left-to-right order.

    Each rule lists the predicates met on the path from the root to the leaf:
    `"<="` for a left branch and `">"` for a right branch. Thresholds are kept
    at full precision so `RegressionRule.matches` agrees with `predict`.

    Args:
        tree (Tree): A fitted tree.

    Returns:
        list[RegressionRule]: One rule per terminal node.

    Examples:
        >>> tree = Tree.from_nodes(
        ...     [LeafNode(value=56.0, sample_count=3, deviance=0.5)],
        ...     feature_names=("VA",),
        ...     target_name="RaceTime",
        ... )
        >>> [rule.prediction for rule in extract_rules(tree)]
        [56.0]
    """
    rules: list[RegressionRule] = []
    _walk_tree(tree=tree, node_id=0, path_predicates=[], rules=rules)
    return rules


def rules_to_frame(rules: list[RegressionRule]) -> pl.DataFrame:
    """Tabulate rules, one row per leaf.

    Args:
        rules (list[RegressionRule]): Rules from `extract_rules`.

    Returns:
        pl.DataFrame: Columns `leaf`, `rule`, `prediction`, `samples` and
            `deviance`. A rule without predicates is shown as `"(all rows)"`.
    """
    return pl.DataFrame(
        {
            "leaf": [rule.leaf for rule in rules],
            "rule": [" & ".join(str(p) for p in rule.predicates) or "(all rows)" for rule in rules],
            "prediction": [rule.prediction for rule in rules],
            "samples": [rule.samples for rule in rules],
            "deviance": [rule.deviance for rule in rules],
        },
        schema={
            "leaf": pl.Int64,
            "rule": pl.String,
            "prediction": pl.Float64,
            "samples": pl.Int64,
            "deviance": pl.Float64,
        },
    )


def format_tree(tree: Tree) -> str:
    """Render a tree as indented text, one line per node.

    Nodes are numbered heap-style (the children of node `k` are `2k` and
    `2k + 1`). Each line shows the split leading to the node, the row count,
    the node deviance and its mean target; terminal nodes end with `*`.

    Args:
        tree (Tree): A fitted tree.

    Returns:
        str: The rendering, for example::

            node), split, n, deviance, yval
                  * denotes terminal node

            1) root 10 58.9 55.9
              2) VA <= 2.75 7 2.1 54.6 *
              3) VA > 2.75 3 0.02 58 *
    """
    lines = [
        "node), split, n, deviance, yval",
        "      * denotes terminal node",
        "",
    ]
    stack: list[tuple[int, int, int, str]] = [(0, 1, 0, "root")]
    while stack:
        node_id, label, depth, split = stack.pop()
        node = tree.nodes[node_id]
        terminal = " *" if isinstance(node, LeafNode) else ""
        lines.append(
            f"{'  ' * depth}{label}) {split} {node.sample_count} "
            f"{_display(node.deviance)} {_display(node.value)}{terminal}"
        )
        if isinstance(node, InternalNode):
            threshold = _display(node.threshold)
            stack.append((node.right, 2 * label + 1, depth + 1, f"{node.feature} > {threshold}"))
            stack.append((node.left, 2 * label, depth + 1, f"{node.feature} <= {threshold}"))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _walk_tree(
    *,
    tree: Tree,
    node_id: int,
    path_predicates: list[Predicate],
    rules: list[RegressionRule],
) -> None:
    """Recursively walk a node and accumulate leaf rules.

    Args:
        tree (Tree): A fitted tree.
        node_id (int): The current arena index.
        path_predicates (list[Predicate]): Predicates from the root to `node_id`.
        rules (list[RegressionRule]): Accumulator; leaf rules are appended in place.
    """
    node = tree.nodes[node_id]
    if isinstance(node, LeafNode):
        rules.append(
            RegressionRule(
                leaf=node_id,
                predicates=path_predicates,
                prediction=node.value,
                samples=node.sample_count,
                deviance=node.deviance,
            )
        )
        return

    left_predicate = Predicate(variable=node.feature, operator="<=", value=node.threshold)
    right_predicate = Predicate(variable=node.feature, operator=">", value=node.threshold)
    shared_kwargs: dict[str, Any] = {"tree": tree, "rules": rules}
    _walk_tree(**shared_kwargs, node_id=node.left, path_predicates=[*path_predicates, left_predicate])
    _walk_tree(**shared_kwargs, node_id=node.right, path_predicates=[*path_predicates, right_predicate])


def _display(value: float) -> str:
    """Format a number for `format_tree`, dropping trailing zeros.

    Args:
        value (float): The number to format.

    Returns:
        str: The rounded number, e.g. `"2.75"` or `"58"`.
    """
    return f"{round(value, DISPLAY_DECIMAL_PLACES):g}"
