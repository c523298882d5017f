"""cartkit: Regression trees grown by recursive binary splitting and pruned by cost-complexity."""

from loguru import logger

from cartkit.feature_matrix import FeatureMatrix
from cartkit.logging import PACKAGE_NAME, enable_logging
from cartkit.regression_tree.fitting import fit_pruned_tree

logger.disable(PACKAGE_NAME)  # noqa: RUF067 - Disable logging for the cartkit module by default

__all__ = [
    "FeatureMatrix",
    "enable_logging",
    "fit_pruned_tree",
]
