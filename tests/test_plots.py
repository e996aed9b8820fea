"""Tests for chart rendering."""

from __future__ import annotations

import matplotlib.pyplot as plt
import numpy as np
import pytest

from benchmarks.synthetic.generators import (
    as_daily_series,
    generate_case_table,
    generate_logistic_cases,
    inject_jump_drop,
)
from orchestrator.pipeline import compare_results
from reporting.plots import (
    plot_adjustment,
    plot_comparison,
    plot_forecast,
    save_figure,
)
from sisd.config import AdjustmentConfig, ForecastConfig
from sisd.correction import adjust


@pytest.fixture(scope="module")
def spiked():
    values, _ = inject_jump_drop(generate_logistic_cases(n_days=40), start=24)
    return values


@pytest.fixture(scope="module")
def comparison(spiked):
    config = ForecastConfig(
        population=100_000,
        cur_date="2020-04-12",
        start_date="2020-03-13",
        last_n_day=5,
        last_limit=5,
        next_n_days=9,
        adjustment=AdjustmentConfig(metric="C1", method="end points mean"),
    )
    return compare_results(config, generate_case_table(spiked))


class TestPlots:

    def test_adjustment_chart(self, spiked, tmp_path):
        adjusted = adjust(as_daily_series(spiked), 5, "C1", "end points mean")
        fig = plot_adjustment(adjusted)
        ax = fig.axes[0]
        assert ax.get_ylabel() == "Daily Cases"
        assert len(ax.lines) == 2
        path = save_figure(fig, tmp_path / "adjustment.png")
        assert path.exists()
        assert path.stat().st_size > 0

    def test_forecast_chart(self, comparison, tmp_path):
        fig = plot_forecast(comparison.original)
        labels = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
        assert labels == ["Observed", "Optimally Trained", "Predicted"]
        assert save_figure(fig, tmp_path / "sub" / "forecast.pdf").exists()

    def test_comparison_chart(self, comparison):
        fig = plot_comparison(comparison)
        labels = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
        assert labels.count("Observed") == 1
        assert "Predicted Adjusted" in labels
        assert "Optimally Trained Original" in labels
        plt.close(fig)

    def test_no_runs_chart(self):
        values = np.full(30, 10.0)
        values[1::2] = 12.0
        fig = plot_adjustment(adjust(as_daily_series(values), 5, "C1", "mean"))
        assert len(fig.axes[0].collections) == 0
        plt.close(fig)
