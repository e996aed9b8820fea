"""Tests for the forecast pipeline and the original/adjusted comparison."""

from __future__ import annotations

import logging

import numpy as np
import numpy.testing as npt
import pytest

from benchmarks.synthetic.generators import (
    generate_case_table,
    generate_logistic_cases,
    inject_jump_drop,
)
from orchestrator.pipeline import ForecastEngine, StepResult, compare_results, rmse
from sisd.config import AdjustmentConfig, ForecastConfig
from sisd.types import ComparisonResult, CurveType, DailySeries


# ===================================================================
# Helpers
# ===================================================================

SPIKE = 24


def _config(**overrides) -> ForecastConfig:
    kwargs = dict(
        population=100_000,
        cur_date="2020-04-12",  # position 30
        start_date="2020-03-13",
        last_n_day=5,
        last_limit=5,
        next_n_days=9,
        adjustment=AdjustmentConfig(metric="C1", method="end points mean"),
    )
    kwargs.update(overrides)
    return ForecastConfig(**kwargs)


@pytest.fixture(scope="module")
def spiked():
    daily = generate_logistic_cases(n_days=40)
    values, _ = inject_jump_drop(daily, start=SPIKE, length=3, magnitude=10.0)
    return values


@pytest.fixture(scope="module")
def cases(spiked):
    return generate_case_table(spiked, start_date="2020-03-13")


@pytest.fixture(scope="module")
def original_result(cases):
    return ForecastEngine(_config()).run(cases)


@pytest.fixture(scope="module")
def adjusted_result(cases):
    return ForecastEngine(_config()).run(cases, adjusted=True)


# ===================================================================
# rmse
# ===================================================================

class TestRmse:

    def test_known_value(self):
        assert rmse(np.array([1.0, 2.0]), np.array([1.0, 4.0])) == pytest.approx(np.sqrt(2.0))

    def test_zero(self):
        x = np.arange(5.0)
        assert rmse(x, x) == 0.0


# ===================================================================
# Without adjustment
# ===================================================================

class TestForecastEngine:

    def test_curve_lengths(self, original_result):
        w = original_result.params.training_window
        assert 5 <= w <= 10
        assert len(original_result.trained_curve) == w + 1
        assert len(original_result.forecast_curve) == 9

    def test_errors_finite(self, original_result):
        assert np.isfinite(original_result.validation_rmse)
        assert original_result.validation_rmse >= 0.0
        assert original_result.prediction_rmse is not None
        assert np.isfinite(original_result.prediction_rmse)

    def test_validation_rmse_over_last_days(self, original_result):
        observed = original_result.observed.C[26:31]
        expected = np.sqrt(np.mean((original_result.trained_curve[-5:] - observed) ** 2))
        assert original_result.validation_rmse == pytest.approx(expected)

    def test_trained_curve_starts_at_observed(self, original_result):
        w = original_result.params.training_window
        assert original_result.trained_curve[0] == pytest.approx(
            original_result.observed.C[30 - w]
        )

    def test_not_adjusted(self, original_result):
        assert not original_result.is_adjusted
        assert original_result.n_adjusted_in_training == 0

    def test_steps_recorded(self, cases):
        engine = ForecastEngine(_config())
        engine.run(cases)
        assert [s.step_name for s in engine.steps] == [
            "derive", "fit", "simulate", "score",
        ]
        assert all(isinstance(s, StepResult) for s in engine.steps)
        assert all(s.duration_seconds >= 0.0 for s in engine.steps)

    def test_anchor_beyond_table_raises(self, cases):
        with pytest.raises(ValueError, match="beyond the case table"):
            ForecastEngine(_config(cur_date="2020-05-29")).run(cases)

    def test_not_enough_history_raises(self, cases):
        engine = ForecastEngine(_config(cur_date="2020-03-20"))
        with pytest.raises(ValueError, match="Not enough history"):
            engine.run(cases)

    def test_partial_horizon_scored(self, cases):
        result = ForecastEngine(_config(next_n_days=15)).run(cases)
        assert len(result.forecast_curve) == 15
        assert result.prediction_rmse is not None

    def test_no_future_observations(self, cases):
        result = ForecastEngine(_config(cur_date="2020-04-21")).run(cases)
        assert result.anchor == 39
        assert result.prediction_rmse is None

    def test_failed_step_logged_and_raised(self, caplog):
        engine = ForecastEngine(_config())

        def boom():
            raise RuntimeError("kaput")

        with caplog.at_level(logging.ERROR, logger="orchestrator.pipeline"):
            with pytest.raises(RuntimeError, match="kaput"):
                engine.run_step("boom", boom)
        assert "boom" in caplog.text
        assert engine.steps == []


# ===================================================================
# With adjustment
# ===================================================================

class TestAdjustedForecast:

    def test_spike_flagged_and_lowered(self, adjusted_result, spiked):
        adj = adjusted_result.adjusted_series
        assert adj.adjusted[SPIKE] == 1
        assert adj.values[SPIKE] < spiked[SPIKE]

    def test_training_outliers_counted(self, adjusted_result):
        assert adjusted_result.is_adjusted
        assert adjusted_result.n_adjusted_in_training >= 1

    def test_scored_against_original(self, adjusted_result, spiked):
        npt.assert_allclose(adjusted_result.observed.C, np.cumsum(spiked))

    def test_steps_include_adjust(self, cases):
        engine = ForecastEngine(_config())
        engine.run(cases, adjusted=True)
        assert engine.steps[0].step_name == "adjust"

    def test_explicit_daily_series(self, cases, adjusted_result):
        series = DailySeries(values=cases.confirmed, dates=cases.dates)
        result = ForecastEngine(_config()).run(cases, series, adjusted=True)
        assert result.params == adjusted_result.params
        assert result.validation_rmse == pytest.approx(adjusted_result.validation_rmse)


# ===================================================================
# Tagged curve table
# ===================================================================

class TestCurveFrame:

    def test_columns_and_counts(self, original_result):
        frame = original_result.to_frame()
        w = original_result.params.training_window
        assert list(frame.columns) == ["Day", "Count", "Type", "Date"]
        counts = frame["Type"].value_counts()
        assert counts[CurveType.OBSERVED.value] == w + 10
        assert counts[CurveType.TRAINED.value] == w + 1
        assert counts[CurveType.PREDICTED.value] == 9

    def test_prediction_dates(self, original_result):
        frame = original_result.to_frame()
        pred = frame[frame["Type"] == CurveType.PREDICTED.value]
        assert str(pred["Date"].iloc[0].date()) == "2020-04-13"
        assert pred["Day"].tolist() == list(range(31, 40))


# ===================================================================
# compare_results
# ===================================================================

class TestCompareResults:

    @pytest.fixture(scope="class")
    def comparison(self, cases):
        return compare_results(_config(), cases)

    def test_returns_both(self, comparison):
        assert isinstance(comparison, ComparisonResult)
        assert not comparison.original.is_adjusted
        assert comparison.adjusted.is_adjusted

    def test_best_follows_validation_rmse(self, comparison):
        strictly_better = (
            comparison.adjusted.validation_rmse < comparison.original.validation_rmse
        )
        assert comparison.prefers_adjusted == strictly_better
        expected = comparison.adjusted if strictly_better else comparison.original
        assert comparison.best is expected

    def test_matches_separate_runs(self, comparison, original_result):
        assert comparison.original.params == original_result.params
        assert comparison.original.validation_rmse == pytest.approx(
            original_result.validation_rmse
        )
