"""Tests for rule extraction and text rendering: extract_rules, rules_to_frame, format_tree."""

from __future__ import annotations

import polars as pl
import pytest
from pytest_check import check

from cartkit.feature_matrix import FeatureMatrix
from cartkit.regression_tree.builder import BuildConfig, build_tree
from cartkit.regression_tree.models import LeafNode, Predicate, Tree
from cartkit.regression_tree.predict import predict
from cartkit.regression_tree.rules import extract_rules, format_tree, rules_to_frame


class TestExtractRules:
    """Tests for `extract_rules`."""

    def test_one_rule_per_leaf_in_left_to_right_order(self, two_split_tree: Tree) -> None:
        """Rules follow leaf order and carry the path predicates.

        Args:
            two_split_tree (Tree): Hand-built three-leaf tree.
        """
        # Act
        rules = extract_rules(two_split_tree)

        # Assert
        with check:
            assert [rule.leaf for rule in rules] == [2, 3, 4]
        with check:
            assert rules[0].predicates == [
                Predicate(variable="VA", operator="<=", value=2.75),
                Predicate(variable="CS", operator="<=", value=1.3),
            ]
        with check:
            assert rules[1].predicates[-1] == Predicate(variable="CS", operator=">", value=1.3)
        with check:
            assert rules[2].predicates == [Predicate(variable="VA", operator=">", value=2.75)]
        with check:
            assert [rule.prediction for rule in rules] == [54.67, 54.25, 58.0]
        with check:
            assert [rule.samples for rule in rules] == [3, 4, 3]

    def test_each_training_row_matches_exactly_one_rule(self, simulated_data: FeatureMatrix) -> None:
        """Leaf rules partition the feature space and agree with `predict`.

        Args:
            simulated_data (FeatureMatrix): One hundred simulated rows.
        """
        # Arrange
        tree = build_tree(simulated_data, BuildConfig(min_node_size=5))
        rules = extract_rules(tree)

        # Act & Assert
        for row in simulated_data.rows():
            matching = [rule for rule in rules if rule.matches(row)]
            with check:
                assert len(matching) == 1
            with check:
                assert matching[0].prediction == predict(tree, row)

    def test_single_leaf_tree_has_unconditional_rule(self) -> None:
        """A root-only tree yields one rule with no predicates."""
        # Arrange
        tree = Tree.from_nodes(
            [LeafNode(value=56.0, sample_count=4, deviance=1.5)], feature_names=("VA",), target_name="RaceTime"
        )

        # Act
        rules = extract_rules(tree)

        # Assert
        with check:
            assert len(rules) == 1
        with check:
            assert rules[0].predicates == []


class TestRulesToFrame:
    """Tests for `rules_to_frame`."""

    def test_frame_has_one_row_per_rule(self, two_split_tree: Tree) -> None:
        """The table lists each leaf with its conjoined conditions.

        Args:
            two_split_tree (Tree): Hand-built three-leaf tree.
        """
        # Act
        frame = rules_to_frame(extract_rules(two_split_tree))

        # Assert
        with check:
            assert frame.columns == ["leaf", "rule", "prediction", "samples", "deviance"]
        with check:
            assert frame["rule"].to_list() == ["VA <= 2.75 & CS <= 1.3", "VA <= 2.75 & CS > 1.3", "VA > 2.75"]
        with check:
            assert frame["samples"].to_list() == [3, 4, 3]

    def test_empty_path_is_labelled(self) -> None:
        """A rule without predicates is shown as covering all rows."""
        # Arrange
        tree = Tree.from_nodes(
            [LeafNode(value=56.0, sample_count=4, deviance=1.5)], feature_names=("VA",), target_name="RaceTime"
        )

        # Act
        frame = rules_to_frame(extract_rules(tree))

        # Assert
        assert frame["rule"].to_list() == ["(all rows)"]

    def test_empty_rule_list_keeps_schema(self) -> None:
        """An empty list gives an empty frame with typed columns."""
        # Act
        frame = rules_to_frame([])

        # Assert
        with check:
            assert frame.height == 0
        with check:
            assert frame.schema["prediction"] == pl.Float64


class TestFormatTree:
    """Tests for `format_tree`."""

    def test_renders_heap_numbered_lines(self, two_split_tree: Tree) -> None:
        """Each node gets a line; children of node k are 2k and 2k+1; leaves end with `*`.

        Args:
            two_split_tree (Tree): Hand-built three-leaf tree.
        """
        # Act
        text = format_tree(two_split_tree)

        # Assert
        assert text.splitlines() == [
            "node), split, n, deviance, yval",
            "      * denotes terminal node",
            "",
            "1) root 10 27.24 55.5",
            "  2) VA <= 2.75 7 0.43 54.43",
            "    4) CS <= 1.3 3 0.08 54.67 *",
            "    5) CS > 1.3 4 0.05 54.25 *",
            "  3) VA > 2.75 3 0.02 58 *",
        ]

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(58.0, "58"), (2.849999999, "2.85"), (0.123456, "0.1235")],
        ids=["whole-number", "rounded", "four-places"],
    )
    def test_numbers_are_rounded_for_display(self, value: float, expected: str) -> None:
        """Displayed numbers are rounded to four places without trailing zeros.

        Args:
            value (float): Leaf value.
            expected (str): Expected rendering.
        """
        # Arrange
        tree = Tree.from_nodes(
            [LeafNode(value=value, sample_count=2, deviance=0.0)], feature_names=("VA",), target_name="RaceTime"
        )

        # Act
        last_line = format_tree(tree).splitlines()[-1]

        # Assert
        assert last_line == f"1) root 2 0 {expected} *"
