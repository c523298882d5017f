"""Demonstrates growing, pruning and evaluating a race-time regression tree with cartkit.

cartkit logging is disabled by default. Users opt in by calling ``enable_logging()``,
which returns a ``LoggingHandle``. The handle can be used as a context manager
(``with enable_logging(): ...``) or disabled manually via ``handle.disable()``.

Key concepts shown here:

- ``level``: the custom ``FIT`` level (numeric value 25, between INFO and
  WARNING) surfaces tree building, pruning and cross-validation milestones and
  is the default. ``"DEBUG"`` adds one record per cross-validation fold.
- ``fit_pruned_tree``: grows a full tree, prunes it by weakest link, picks a
  size by 10-fold cross-validation and returns the matching subtree.
- ``format_tree`` and ``rules_to_frame``: text and tabular views of the result.
- Pass a CSV path as the first argument to fit on real data with columns
  ``VA``, ``CS`` and ``RaceTime``; simulated athletes are used otherwise.
"""

import sys

from cartkit import FeatureMatrix, enable_logging
from cartkit.datasets import read_csv_frame, simulate_performance, train_test_split
from cartkit.evaluation import compute_metrics
from cartkit.regression_tree import extract_rules, fit_pruned_tree, format_tree, rules_to_frame

if len(sys.argv) > 1:
    df = read_csv_frame(sys.argv[1], ["VA", "CS", "RaceTime"])
else:
    df = simulate_performance(n_rows=250, seed=2024)

data = FeatureMatrix.from_dataframe(df, "RaceTime", features=["VA", "CS"])
train, test = train_test_split(data, test_fraction=0.3, seed=2024)

# Enable logging at FIT level (and above) with full log format for better visibility of log details
with enable_logging(level="FIT", log_format="full"):
    result = fit_pruned_tree(train, folds=10, seed=2024)

print(f"\nFull tree: {result.full_tree.size} leaves; selected size: {result.selected_size}\n")
print(format_tree(result.tree))
print()
print(rules_to_frame(extract_rules(result.tree)))

metrics = compute_metrics(result.tree, test)
print(f"\nTest RMSE: {metrics['rmse']:.3f} s, R²: {metrics['r_squared']:.3f}")

# Logging automatically disabled after the with block
