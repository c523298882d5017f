"""Pydantic models for regression trees, pruning sequences, cross-validation results and rules."""

from __future__ import annotations

import math
import operator
from collections.abc import Callable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Public type aliases
# ---------------------------------------------------------------------------

type PredicateOp = Literal["<=", ">"]

type SizeSelectionRule = Literal["min", "1se"]

_DEVIANCE_REL_TOL: float = 1e-9
_DEVIANCE_ABS_TOL: float = 1e-9

# ---------------------------------------------------------------------------
# Public models -- Tree arena
# ---------------------------------------------------------------------------


class LeafNode(BaseModel):
    """A terminal node holding the mean target of the rows routed to it.

    Attributes:
        kind (Literal["leaf"]): Discriminator field; always `"leaf"`.
        value (float): Predicted value, the mean target of the node's rows.
        sample_count (int): Number of training rows routed to the node.
        deviance (float): Sum of squared deviations of those rows from `value`.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["leaf"] = Field(default="leaf", description='Discriminator field. Always "leaf".')
    value: float = Field(description="Mean target value of the rows routed to this leaf.")
    sample_count: int = Field(ge=1, description="Number of training rows routed to this leaf.")
    deviance: float = Field(ge=0.0, description="Sum of squared residuals around the leaf mean.")


class InternalNode(BaseModel):
    """A binary split on one predictor.

    Rows with `x[feature] <= threshold` go to `left`, all others to `right`.
    The node keeps the statistics of the rows it holds so it can be collapsed
    into a leaf during pruning.

    Attributes:
        kind (Literal["internal"]): Discriminator field; always `"internal"`.
        feature (str): Name of the split predictor.
        feature_index (int): Position of the predictor in `Tree.feature_names`.
        threshold (float): Split threshold, a midpoint between two observed values.
        left (int): Arena index of the `<=` child.
        right (int): Arena index of the `>` child.
        value (float): Mean target of the node's rows (its value if collapsed).
        sample_count (int): Number of training rows at the node.
        deviance (float): Deviance of the node's rows around `value`.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["internal"] = Field(default="internal", description='Discriminator field. Always "internal".')
    feature: str = Field(description="Name of the predictor this node splits on.")
    feature_index: int = Field(ge=0, description="Index of the predictor in the tree's feature_names.")
    threshold: float = Field(description="Rows with feature <= threshold are routed left.")
    left: int = Field(ge=1, description="Arena index of the left (<=) child.")
    right: int = Field(ge=1, description="Arena index of the right (>) child.")
    value: float = Field(description="Mean target value of the rows at this node.")
    sample_count: int = Field(ge=2, description="Number of training rows at this node.")
    deviance: float = Field(ge=0.0, description="Deviance of this node if it were a leaf.")


# Use this alias for arena entries; Pydantic selects the node model from the `kind` tag.
Node = Annotated[InternalNode | LeafNode, Field(discriminator="kind")]


class Tree(BaseModel):
    """An immutable regression tree stored as an arena of nodes.

    The root lives at index 0 and children are addressed by arena index. Trees
    produced by `build_tree` and by pruning are laid out in preorder (a node,
    then its left subtree, then its right subtree). `size` and `deviance` are
    computed once when the tree is assembled and checked by validation.

    Attributes:
        feature_names (tuple[str, ...]): Predictor names the tree was grown on.
        target_name (str): Name of the target column.
        nodes (tuple[Node, ...]): The node arena; `nodes[0]` is the root.
        size (int): Number of terminal nodes.
        deviance (float): Total deviance, the sum of leaf deviances.

    Examples:
        >>> tree = Tree.from_nodes(
        ...     [LeafNode(value=56.0, sample_count=4, deviance=2.5)],
        ...     feature_names=("VA", "CS"),
        ...     target_name="RaceTime",
        ... )
        >>> (tree.size, tree.deviance)
        (1, 2.5)
    """

    model_config = ConfigDict(frozen=True)

    feature_names: tuple[str, ...] = Field(description="Predictor names the tree was grown on.")
    target_name: str = Field(description="Name of the target column.")
    nodes: tuple[Node, ...] = Field(min_length=1, description="Node arena; index 0 is the root.")
    size: int = Field(ge=1, description="Number of terminal nodes.")
    deviance: float = Field(ge=0.0, description="Sum of leaf deviances.")

    @classmethod
    def from_nodes(
        cls,
        nodes: list[InternalNode | LeafNode] | tuple[InternalNode | LeafNode, ...],
        *,
        feature_names: tuple[str, ...],
        target_name: str,
    ) -> Tree:
        """Assemble a tree from an arena, computing `size` and `deviance`.

        Args:
            nodes (list[InternalNode | LeafNode] | tuple[InternalNode | LeafNode, ...]):
                The node arena with the root at index 0.
            feature_names (tuple[str, ...]): Predictor names.
            target_name (str): Name of the target column.

        Returns:
            Tree: The validated tree.
        """
        leaves = [node for node in nodes if isinstance(node, LeafNode)]
        return cls(
            feature_names=tuple(feature_names),
            target_name=target_name,
            nodes=tuple(nodes),
            size=len(leaves),
            deviance=math.fsum(leaf.deviance for leaf in leaves),
        )

    @model_validator(mode="after")
    def _validate_arena(self) -> Tree:
        """Validate that the arena forms a single rooted binary tree.

        Returns:
            Tree: The validated model instance.

        Raises:
            ValueError: If a child index is out of range, a node has more than
                one parent, a node is unreachable from the root, a split refers
                to an unknown feature, or the cached attributes disagree with
                the leaves.
        """
        node_count = len(self.nodes)
        parent_counts = [0] * node_count
        for index, node in enumerate(self.nodes):
            if not isinstance(node, InternalNode):
                continue
            if node.feature_index >= len(self.feature_names) or self.feature_names[node.feature_index] != node.feature:
                raise ValueError(f"node {index} splits on unknown feature {node.feature!r}")
            for child in (node.left, node.right):
                if child >= node_count:
                    raise ValueError(f"node {index} references child {child} outside arena of {node_count} nodes")
                parent_counts[child] += 1
        if parent_counts[0] != 0:
            raise ValueError("root node must not have a parent")
        shared = [index for index, count in enumerate(parent_counts[1:], start=1) if count != 1]
        if shared:
            raise ValueError(f"every non-root node needs exactly one parent; offending nodes: {shared}")

        reachable = len(_preorder(self.nodes))
        if reachable != node_count:
            raise ValueError(f"only {reachable} of {node_count} nodes are reachable from the root")

        leaves = [node for node in self.nodes if isinstance(node, LeafNode)]
        if self.size != len(leaves):
            raise ValueError(f"size ({self.size}) must equal the number of leaves ({len(leaves)})")
        leaf_deviance = math.fsum(leaf.deviance for leaf in leaves)
        if not math.isclose(self.deviance, leaf_deviance, rel_tol=_DEVIANCE_REL_TOL, abs_tol=_DEVIANCE_ABS_TOL):
            raise ValueError(f"deviance ({self.deviance}) must equal the sum of leaf deviances ({leaf_deviance})")
        return self

    @property
    def root(self) -> InternalNode | LeafNode:
        """The root node."""
        return self.nodes[0]

    @property
    def sample_count(self) -> int:
        """Number of training rows the tree was grown on."""
        return self.root.sample_count

    @property
    def depth(self) -> int:
        """Length of the longest root-to-leaf path (0 for a single leaf)."""
        return max(self.node_depths())

    def preorder(self) -> list[int]:
        """Return arena indices in preorder (node, left subtree, right subtree).

        Returns:
            list[int]: Every node index, root first. A node always precedes its
                descendants, so the reversed list visits children before parents.
        """
        return _preorder(self.nodes)

    def node_depths(self) -> list[int]:
        """Return the depth of every node, indexed by arena position.

        Returns:
            list[int]: `depths[i]` is the number of edges from the root to node `i`.
        """
        depths = [0] * len(self.nodes)
        for index in self.preorder():
            node = self.nodes[index]
            if isinstance(node, InternalNode):
                depths[node.left] = depths[index] + 1
                depths[node.right] = depths[index] + 1
        return depths

    def leaves(self) -> list[int]:
        """Return arena indices of the leaves in left-to-right order.

        Returns:
            list[int]: Leaf indices in preorder.
        """
        return [index for index in self.preorder() if isinstance(self.nodes[index], LeafNode)]

    def to_json(self, *, indent: int | None = None) -> str:
        """Serialize the tree to JSON.

        Args:
            indent (int | None): Optional indentation for pretty printing.

        Returns:
            str: JSON document with `kind`-tagged nodes.
        """
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, payload: str | bytes) -> Tree:
        """Restore a tree serialized with `to_json`.

        Args:
            payload (str | bytes): The JSON document.

        Returns:
            Tree: The restored, validated tree.
        """
        return cls.model_validate_json(payload)


# ---------------------------------------------------------------------------
# Public models -- Pruning and cross-validation
# ---------------------------------------------------------------------------


class PrunedTree(BaseModel):
    """One entry of a weakest-link pruning sequence.

    Attributes:
        tree (Tree): The pruned subtree.
        size (int): Its number of terminal nodes.
        deviance (float): Its total training deviance.
        alpha (float): Cost per removed leaf of the collapse that produced this
            entry; `0.0` for the unpruned tree.
    """

    model_config = ConfigDict(frozen=True)

    tree: Tree
    size: int = Field(ge=1)
    deviance: float = Field(ge=0.0)
    alpha: float = Field(ge=0.0)


class PrunedSequence(BaseModel):
    """Nested subtrees obtained by repeatedly collapsing the weakest link.

    Entries are ordered by strictly decreasing size. The first entry is the
    unpruned tree and the last is the root-only tree (size 1).

    Attributes:
        entries (tuple[PrunedTree, ...]): The pruned subtrees.
    """

    model_config = ConfigDict(frozen=True)

    entries: tuple[PrunedTree, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _validate_ordering(self) -> PrunedSequence:
        """Validate that sizes strictly decrease and end at a single leaf.

        Returns:
            PrunedSequence: The validated model instance.

        Raises:
            ValueError: If sizes are not strictly decreasing or the last size is not 1.
        """
        sizes = self.sizes
        if any(later >= earlier for earlier, later in zip(sizes, sizes[1:], strict=False)):
            raise ValueError(f"entry sizes must strictly decrease, got {sizes}")
        if sizes[-1] != 1:
            raise ValueError(f"the last entry must have size 1, got {sizes[-1]}")
        return self

    @property
    def sizes(self) -> list[int]:
        """Entry sizes in sequence order."""
        return [entry.size for entry in self.entries]

    @property
    def deviances(self) -> list[float]:
        """Entry training deviances in sequence order."""
        return [entry.deviance for entry in self.entries]

    def __len__(self) -> int:
        """Return the number of entries.

        Returns:
            int: Entry count.
        """
        return len(self.entries)


class CVResult(BaseModel):
    """Cross-validated deviance for each candidate tree size.

    Attributes:
        deviance (dict[int, float]): Mean held-out deviance across folds, keyed
            by tree size.
        std_error (dict[int, float]): Standard error of the per-fold deviances,
            keyed by tree size.
        folds (int): Number of folds.
        seed (int): Seed used for fold assignment.
    """

    model_config = ConfigDict(frozen=True)

    deviance: dict[int, float] = Field(min_length=1)
    std_error: dict[int, float] = Field(min_length=1)
    folds: int = Field(ge=2)
    seed: int

    @model_validator(mode="after")
    def _validate_keys_match(self) -> CVResult:
        """Validate that deviance and standard error cover the same sizes.

        Returns:
            CVResult: The validated model instance.

        Raises:
            ValueError: If the key sets differ.
        """
        if set(self.deviance) != set(self.std_error):
            raise ValueError("deviance and std_error must be keyed by the same sizes")
        return self

    @property
    def sizes(self) -> list[int]:
        """Candidate sizes in ascending order."""
        return sorted(self.deviance)


# ---------------------------------------------------------------------------
# Public models -- Rules
# ---------------------------------------------------------------------------


class Predicate(BaseModel):
    """A single threshold condition on one predictor.

    Attributes:
        variable (str): Predictor name, e.g. `"VA"`.
        operator (PredicateOp): `"<="` for a left branch, `">"` for a right branch.
        value (float): The split threshold.

    Examples:
        >>> p = Predicate(variable="VA", operator=">", value=2.75)
        >>> str(p)
        'VA > 2.75'
        >>> p.eval(3.0)
        True
    """

    variable: str = Field(description="Predictor name the condition applies to, e.g. 'VA'.")
    operator: PredicateOp = Field(description="'<=' for the left branch of a split, '>' for the right branch.")
    value: float = Field(description="Split threshold.")

    def __str__(self) -> str:
        """Return a human-readable representation of this predicate.

        Returns:
            str: The predicate as `"<variable> <operator> <value>"`.
        """
        return f"{self.variable} {self.operator} {self.value}"

    def eval(self, x: float) -> bool:
        """Evaluate this predicate against a feature value.

        Args:
            x (float): The feature value to test.

        Returns:
            bool: `True` if the predicate holds for `x`.
        """
        return _SCALAR_OPS[self.operator](x, self.value)


class RegressionRule(BaseModel):
    """The root-to-leaf path of one terminal node.

    Attributes:
        leaf (int): Arena index of the leaf.
        predicates (list[Predicate]): Conditions along the path; empty for a
            single-leaf tree.
        prediction (float): Mean target value at the leaf.
        samples (int): Number of training rows at the leaf.
        deviance (float): Deviance of the leaf.
    """

    leaf: int = Field(ge=0, description="Arena index of the leaf node.")
    predicates: list[Predicate] = Field(description="Conditions along the path from root to this leaf.")
    prediction: float = Field(description="Mean target value for rows reaching this leaf.")
    samples: int = Field(ge=1, description="Number of training rows that reached this leaf.")
    deviance: float = Field(ge=0.0, description="Sum of squared residuals at this leaf.")

    def matches(self, row: dict[str, float]) -> bool:
        """Return `True` when every predicate holds for `row`.

        Args:
            row (dict[str, float]): Feature values keyed by name.

        Returns:
            bool: Whether the row falls into this rule's region.
        """
        return all(predicate.eval(row[predicate.variable]) for predicate in self.predicates)


class PrunedTreeResult(BaseModel):
    """Output of the grow, prune, cross-validate and select pipeline.

    Attributes:
        full_tree (Tree): The unpruned tree grown on the training data.
        sequence (PrunedSequence): Weakest-link sequence of `full_tree`.
        cv (CVResult): Cross-validated deviance per candidate size.
        selected_size (int): Size chosen from `cv`.
        tree (Tree): The subtree of `full_tree` for `selected_size`.
    """

    model_config = ConfigDict(frozen=True)

    full_tree: Tree
    sequence: PrunedSequence
    cv: CVResult
    selected_size: int = Field(ge=1)
    tree: Tree

    @model_validator(mode="after")
    def _validate_tree_is_subtree_size(self) -> PrunedTreeResult:
        """Validate that the selected tree is no larger than the full tree.

        Returns:
            PrunedTreeResult: The validated model instance.

        Raises:
            ValueError: If `tree` has more leaves than `full_tree`, or fewer
                leaves than `selected_size`.
        """
        if not (self.selected_size <= self.tree.size <= self.full_tree.size):
            raise ValueError(
                f"selected tree size ({self.tree.size}) must lie between selected_size "
                f"({self.selected_size}) and the full tree size ({self.full_tree.size})"
            )
        return self


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

_SCALAR_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "<=": operator.le,
    ">": operator.gt,
}


def _preorder(nodes: tuple[InternalNode | LeafNode, ...]) -> list[int]:
    """Return arena indices reachable from the root in preorder.

    Stops descending into a node seen twice, so malformed arenas terminate.

    Args:
        nodes (tuple[InternalNode | LeafNode, ...]): The node arena.

    Returns:
        list[int]: Reachable indices, root first.
    """
    order: list[int] = []
    seen: set[int] = set()
    stack = [0]
    while stack:
        index = stack.pop()
        if index in seen or index >= len(nodes):
            continue
        seen.add(index)
        order.append(index)
        node = nodes[index]
        if isinstance(node, InternalNode):
            stack.append(node.right)
            stack.append(node.left)
    return order
