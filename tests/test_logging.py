"""Tests for loguru logging in cartkit.

This module verifies that logging is disabled by default and that
structured log records are produced when enabled, covering tree building,
pruning, and cross-validation milestones as well as the LoggingHandle
lifecycle.
"""

from __future__ import annotations

import contextlib
import warnings
from collections.abc import Generator
from typing import NamedTuple
from unittest import mock

import loguru
import numpy as np
import pytest
from loguru import logger
from pytest_check import check

from cartkit.feature_matrix import FeatureMatrix
from cartkit.logging import (
    FIT_LEVEL,
    FIT_LEVEL_NUMBER,
    PACKAGE_NAME,
    LoggingHandle,
    _register_fit_level,
    enable_logging,
)
from cartkit.regression_tree.builder import BuildConfig, build_tree
from cartkit.regression_tree.pruning import cross_validate, prune_sequence


class LogSink(NamedTuple):
    """Log sink with records list and handler ID for cleanup.

    Attributes:
        records (list[loguru.Record]): List that accumulates log record dictionaries.
        handler_id (int): Logger handler ID for cleanup.
    """

    records: list[loguru.Record]
    handler_id: int


@contextlib.contextmanager
def capturing_sink(*, enable_cartkit: bool = True) -> Generator[list[loguru.Record]]:
    """Context manager that adds a loguru sink and yields the captured records list.

    Pass `enable_cartkit=False` when the test must observe the logger state left
    by the code under test, for example after a `LoggingHandle` was disabled.

    Args:
        enable_cartkit (bool): When True (default), calls `logger.enable(PACKAGE_NAME)`
            before yielding and `logger.disable(PACKAGE_NAME)` on exit.

    Yields:
        Generator[list[loguru.Record]]: Mutable list that accumulates record dicts
            while the context is active.
    """
    captured_records: list[loguru.Record] = []

    def _sink(message: loguru.Message) -> None:
        """Append the raw record dict to the accumulated list.

        Args:
            message (loguru.Message): Loguru message object; its `record` attribute holds the raw dict.
        """
        captured_records.append(message.record)

    handler_id = logger.add(_sink)
    if enable_cartkit:
        logger.enable(PACKAGE_NAME)
    try:
        yield captured_records
    finally:
        if enable_cartkit:
            logger.disable(PACKAGE_NAME)
        logger.remove(handler_id)


@pytest.fixture(autouse=True)
def restore_active_ids() -> Generator[None]:
    """Save and restore LoggingHandle._active_ids around each test.

    Yields:
        None: Nothing; used only for setup/teardown side effects.
    """
    # Arrange - snapshot active IDs before the test runs
    saved_ids: set[int] = set(LoggingHandle._active_ids)

    yield

    # Cleanup - remove handlers added during the test and restore the shared set in place
    added_ids = LoggingHandle._active_ids - saved_ids
    for handler_id in added_ids:
        with contextlib.suppress(ValueError):
            logger.remove(handler_id)
    LoggingHandle._active_ids.clear()
    LoggingHandle._active_ids.update(saved_ids)
    logger.disable(PACKAGE_NAME)


@pytest.fixture
def log_sink() -> Generator[LogSink]:
    """Create a sink that captures every log record while cartkit logging is enabled.

    Yields:
        Generator[LogSink]: Named tuple with records list and handler_id for cleanup.
    """
    captured_records: list[loguru.Record] = []

    def sink(message: loguru.Message) -> None:
        """Capture record dict from each log message.

        Args:
            message (loguru.Message): Log message with record attribute containing log details.
        """
        captured_records.append(message.record)

    handler_id = logger.add(sink)
    logger.enable(PACKAGE_NAME)

    yield LogSink(records=captured_records, handler_id=handler_id)

    logger.disable(PACKAGE_NAME)
    logger.remove(handler_id)


def test_logging_disabled_by_default() -> None:
    """Verify no cartkit records are emitted while logging is disabled."""
    # Arrange - explicitly disable cartkit logging to protect against test ordering issues
    logger.disable(PACKAGE_NAME)
    data = _make_step_data()

    # Act
    with capturing_sink(enable_cartkit=False) as captured_records:
        prune_sequence(build_tree(data, BuildConfig(min_node_size=2)))

    # Assert
    cartkit_records = [r for r in captured_records if (r["name"] or "").startswith(PACKAGE_NAME)]
    assert len(cartkit_records) == 0, "No cartkit logs should be captured when disabled"


class TestFitMilestones:
    """Tests for FIT and DEBUG records emitted during fitting."""

    def test_build_tree_logs_fit_record_with_structured_fields(self, log_sink: LogSink) -> None:
        """Building a tree logs one FIT record carrying the tree's size and depth.

        Args:
            log_sink (LogSink): Fixture providing log sink for capturing records.
        """
        # Arrange
        data = _make_step_data()

        # Act
        tree = build_tree(data, BuildConfig(min_node_size=2))

        # Assert
        built = [r for r in log_sink.records if r["message"] == "Regression tree built"]
        assert len(built) == 1
        with check:
            assert built[0]["level"].name == FIT_LEVEL
        with check:
            assert built[0]["extra"]["size"] == tree.size
        with check:
            assert built[0]["extra"]["depth"] == tree.depth
        with check:
            assert built[0]["extra"]["rows"] == data.n_rows

    def test_pruning_logs_sequence_sizes(self, log_sink: LogSink) -> None:
        """Pruning logs the sizes of the resulting sequence.

        Args:
            log_sink (LogSink): Fixture providing log sink for capturing records.
        """
        # Arrange
        tree = build_tree(_make_step_data(), BuildConfig(min_node_size=2))

        # Act
        sequence = prune_sequence(tree)

        # Assert
        pruned = [r for r in log_sink.records if r["message"] == "Pruning sequence computed"]
        assert len(pruned) == 1
        assert pruned[0]["extra"]["sizes"] == sequence.sizes

    def test_cross_validation_logs_one_debug_record_per_fold(self, log_sink: LogSink) -> None:
        """Each fold emits a DEBUG record; start and finish are logged at FIT.

        Args:
            log_sink (LogSink): Fixture providing log sink for capturing records.
        """
        # Arrange
        data = _make_step_data()

        # Act
        cross_validate(data, BuildConfig(min_node_size=2), folds=4, seed=0)

        # Assert
        fold_records = [r for r in log_sink.records if r["message"] == "Fold scored"]
        with check:
            assert sorted(r["extra"]["fold"] for r in fold_records) == [0, 1, 2, 3]
        with check:
            assert all(r["level"].name == "DEBUG" for r in fold_records)
        fit_messages = {r["message"] for r in log_sink.records if r["level"].name == FIT_LEVEL}
        with check:
            assert {"Cross-validating tree size", "Cross-validation finished"} <= fit_messages

    def test_rejected_fold_count_logs_warning(self, log_sink: LogSink) -> None:
        """Asking for more folds than rows logs a WARNING before raising.

        Args:
            log_sink (LogSink): Fixture providing log sink for capturing records.
        """
        # Arrange
        data = _make_step_data()

        # Act
        with pytest.raises(ValueError):
            cross_validate(data, folds=data.n_rows + 1)

        # Assert
        warning_records = [r for r in log_sink.records if r["level"].name == "WARNING"]
        assert len(warning_records) == 1


class TestFitLevelRegistration:
    """Tests for FIT custom log level registration edge cases."""

    def test_fit_level_registered_with_correct_number(self) -> None:
        """Verify the FIT level is registered with the expected numeric value at import time."""
        # Act
        level = logger.level(FIT_LEVEL)

        # Assert
        assert level.no == FIT_LEVEL_NUMBER, f"FIT level should have numeric value {FIT_LEVEL_NUMBER}, got {level.no}"

    def test_duplicate_level_wrong_number_warns_not_raises(self) -> None:
        """Verify a numeric mismatch on FIT registration issues a warning, not an exception."""
        # Arrange - a fake level object whose .no is wrong so the conflict branch fires
        fake_level = mock.MagicMock(spec=["no"])
        fake_level.no = FIT_LEVEL_NUMBER + 1

        with (
            mock.patch("cartkit.logging.logger.level", return_value=fake_level),
            warnings.catch_warnings(record=True) as caught,
        ):
            warnings.simplefilter("always")
            # Act
            _register_fit_level()

        # Assert
        with check:
            assert len(caught) == 1, "Should have issued exactly one warning"
        with check:
            assert issubclass(caught[0].category, UserWarning)
        with check:
            assert "already registered with numeric value" in str(caught[0].message)


class TestEnableLoggingLifecycle:
    """Tests for enable_logging handle creation, disable, context manager, and independence."""

    def test_enable_logging_returns_logging_handle(self) -> None:
        """Verify enable_logging returns a LoggingHandle with an integer handler ID."""
        # Act
        handle = enable_logging()

        # Assert
        with check:
            assert isinstance(handle, LoggingHandle)
        with check:
            assert isinstance(handle.handler_id, int)

        # Cleanup
        handle.disable()

    @pytest.mark.parametrize(
        ("log_format", "expected_location"),
        [
            ("short", "build_tree - Regression tree built"),
            ("full", "cartkit.regression_tree.builder:build_tree:"),
        ],
        ids=["short", "full"],
    )
    def test_log_format_controls_record_location(
        self,
        capsys: pytest.CaptureFixture[str],
        log_format: str,
        expected_location: str,
    ) -> None:
        """The short format names the function; the full format adds module and line.

        Args:
            capsys (pytest.CaptureFixture[str]): Captures stderr.
            log_format (str): Format passed to enable_logging.
            expected_location (str): Text the printed record must contain.
        """
        # Arrange
        data = _make_step_data()

        # Act
        with enable_logging(log_format=log_format):  # type: ignore[arg-type]
            build_tree(data, BuildConfig(min_node_size=2))
        printed = capsys.readouterr().err

        # Assert
        with check:
            assert expected_location in printed
        with check:
            assert "Growing regression tree" not in printed, "DEBUG records stay hidden at the FIT level"

    def test_disable_is_idempotent(self) -> None:
        """Calling disable() twice is safe and clears the handler ID."""
        # Arrange
        handle = enable_logging()

        # Act
        handle.disable()
        handle.disable()

        # Assert
        assert handle.handler_id is None

    def test_context_manager_re_disables_on_exit(self) -> None:
        """After the with block exits, cartkit records no longer flow to new sinks."""
        # Act
        with enable_logging(level="DEBUG"):
            pass

        with capturing_sink(enable_cartkit=False) as captured_records:
            build_tree(_make_step_data(), BuildConfig(min_node_size=2))

        # Assert
        cartkit_records = [r for r in captured_records if (r["name"] or "").startswith(PACKAGE_NAME)]
        assert len(cartkit_records) == 0

    def test_handles_are_independent(self) -> None:
        """Logging keeps flowing until the last handle is disabled."""
        # Arrange
        handle1 = enable_logging(level="DEBUG")
        handle2 = enable_logging(level="DEBUG")
        data = _make_step_data()

        with capturing_sink(enable_cartkit=False) as captured_records:
            # Act - disable one handle only
            handle1.disable()
            build_tree(data, BuildConfig(min_node_size=2))

            # Assert - records still flow
            with check:
                assert any(r["message"] == "Regression tree built" for r in captured_records)

            # Act - disable the last handle
            captured_records.clear()
            handle2.disable()
            build_tree(data, BuildConfig(min_node_size=2))

            # Assert - records stop
            with check:
                assert not any((r["name"] or "").startswith(PACKAGE_NAME) for r in captured_records)

    def test_get_active_handle_count_tracks_handles(self) -> None:
        """The active handle count rises on enable and falls on disable."""
        # Arrange
        baseline = LoggingHandle.get_active_handle_count()

        # Act
        handle = enable_logging()
        during = LoggingHandle.get_active_handle_count()
        handle.disable()
        after = LoggingHandle.get_active_handle_count()

        # Assert
        with check:
            assert during == baseline + 1
        with check:
            assert after == baseline

    def test_context_manager_exit_cleans_up_on_exception(self) -> None:
        """__exit__ removes the handler even when the block raises.

        Raises:
            RuntimeError: Intentionally raised inside the context to test cleanup under failure.
        """
        # Arrange
        handle_ref: list[LoggingHandle] = []

        # Act & Assert
        with pytest.raises(RuntimeError, match="simulated error"), enable_logging() as handle:
            handle_ref.append(handle)
            raise RuntimeError("simulated error")

        assert handle_ref[0].handler_id is None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_step_data() -> FeatureMatrix:
    """Create twelve rows whose target steps up halfway along a single feature.

    Returns:
        FeatureMatrix: Feature `VA`, target `RaceTime`.
    """
    va = np.linspace(1.0, 4.0, 12)
    race_time = np.where(va > 2.75, 58.0, 54.0) + np.tile([0.1, -0.1, 0.2], 4)
    return FeatureMatrix(feature_names=("VA",), target_name="RaceTime", x=va.reshape(-1, 1), y=race_time)
