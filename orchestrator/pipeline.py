"""Forecast pipeline for jump-drop adjusted SISD forecasting.

Executes the full flow: Adjust -> Derive -> Fit -> Simulate -> Score.
Each step is timed and logged; a failing step is logged and re-raised.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
from numpy.typing import NDArray
from sklearn.metrics import mean_squared_error

from sisd.compartments import compartments_from_table
from sisd.config import ForecastConfig
from sisd.correction import adjust
from sisd.grid_fit import GridFitter
from sisd.simulator import forecast, reconstruct
from sisd.types import (
    AdjustedSeries,
    CaseTable,
    ComparisonResult,
    CompartmentSeries,
    DailySeries,
    FitResult,
    ForecastResult,
)

logger = logging.getLogger(__name__)


# ===================================================================
# Result data classes
# ===================================================================


@dataclass
class StepResult:
    """Timing record for a single pipeline step."""

    step_name: str
    duration_seconds: float


def rmse(observed: NDArray, predicted: NDArray) -> float:
    """Root-mean-square error between two aligned curves."""
    return float(np.sqrt(mean_squared_error(observed, predicted)))


# ===================================================================
# Pipeline
# ===================================================================


class ForecastEngine:
    """Adjust, fit and forecast one case table.

    Flow
    ----
    1. **Adjust** -- correct short jump-drops in the daily confirmed
       series and splice them into the training span (optional).
    2. **Derive** -- compartments for the fitting data and for the
       original data (the ground truth for both error figures).
    3. **Fit** -- grid search for training window, mu and beta.
    4. **Simulate** -- replay the best window and project forward.
    5. **Score** -- validation and prediction RMSE.
    """

    def __init__(self, config: ForecastConfig | None = None) -> None:
        self.config = config or ForecastConfig()
        self.steps: list[StepResult] = []

    # ---------------------------------------------------------------
    # Public run API
    # ---------------------------------------------------------------

    def run(
        self,
        cases: CaseTable,
        daily_series: DailySeries | None = None,
        adjusted: bool = False,
    ) -> ForecastResult:
        """Execute the full pipeline.

        Parameters
        ----------
        cases : CaseTable
            Daily confirmed / recovered / deceased counts starting at
            ``config.start_date``.
        daily_series : DailySeries, optional
            Daily confirmed series checked for jump-drops.  Defaults to the
            confirmed column of ``cases``.
        adjusted : bool
            When ``True`` the training span is fitted on corrected counts.

        Returns
        -------
        ForecastResult
        """
        cfg = self.config
        anchor = cfg.anchor
        self.steps = []
        if anchor >= len(cases):
            raise ValueError(
                f"cur_date {cfg.cur_date} is beyond the case table "
                f"({len(cases)} days from {cfg.start_date})"
            )

        fit_cases = cases
        adjusted_series: AdjustedSeries | None = None
        n_adjusted = 0
        if adjusted:
            if daily_series is None:
                daily_series = DailySeries(values=cases.confirmed, dates=cases.dates)
            adjusted_series, fit_cases, n_adjusted = self.run_step(
                "adjust", self._step_adjust, cases, daily_series,
            )

        observed, original = self.run_step(
            "derive", self._step_derive, fit_cases, cases, adjusted,
        )
        fit: FitResult = self.run_step("fit", self._step_fit, observed)
        trained, predicted = self.run_step(
            "simulate", self._step_simulate, observed, fit,
        )
        validation_rmse, prediction_rmse = self.run_step(
            "score", self._step_score, original, trained, predicted,
        )

        return ForecastResult(
            trained_curve=trained,
            forecast_curve=predicted,
            validation_rmse=validation_rmse,
            prediction_rmse=prediction_rmse,
            params=fit.params,
            anchor=anchor,
            observed=original,
            adjusted_series=adjusted_series,
            n_adjusted_in_training=n_adjusted,
        )

    # ---------------------------------------------------------------
    # Step runner with timing and error logging
    # ---------------------------------------------------------------

    def run_step(
        self, step_name: str, fn: Callable, *args: Any, **kwargs: Any
    ) -> Any:
        """Run a single step, recording its duration.

        Exceptions are logged with the step name and re-raised.
        """
        t0 = time.monotonic()
        try:
            output = fn(*args, **kwargs)
        except Exception as exc:
            logger.error(
                "Step '%s' failed after %.4f s: %s",
                step_name,
                time.monotonic() - t0,
                exc,
            )
            raise
        duration = time.monotonic() - t0
        self.steps.append(StepResult(step_name=step_name, duration_seconds=duration))
        logger.info("Step '%s' completed in %.4f s", step_name, duration)
        return output

    # ---------------------------------------------------------------
    # Individual step implementations
    # ---------------------------------------------------------------

    def _step_adjust(
        self,
        cases: CaseTable,
        daily_series: DailySeries,
    ) -> tuple[AdjustedSeries, CaseTable, int]:
        cfg = self.config
        adj = cfg.adjustment
        adjusted_series = adjust(
            daily_series, adj.ub_for_adjustment, adj.metric, adj.method,
        )
        # Only the span the grid search can train on takes adjusted counts
        since = cfg.anchor - cfg.last_limit - cfg.last_n_day
        fit_cases, n_adjusted = cases.with_confirmed(adjusted_series, since=since)
        logger.info("Method to detect outliers: %s", adj.metric.label)
        logger.info("Method to adjust outliers: %s", adj.method.value)
        logger.info("No of outliers in training period: %d", n_adjusted)
        return adjusted_series, fit_cases, n_adjusted

    def _step_derive(
        self,
        fit_cases: CaseTable,
        cases: CaseTable,
        adjusted: bool,
    ) -> tuple[CompartmentSeries, CompartmentSeries]:
        population = self.config.population
        observed = compartments_from_table(fit_cases, population)
        if not adjusted:
            return observed, observed
        return observed, compartments_from_table(cases, population)

    def _step_fit(self, observed: CompartmentSeries) -> FitResult:
        cfg = self.config
        fitter = GridFitter(cfg.population, cfg.gamma, cfg.grid)
        fit = fitter.fit(
            observed,
            cfg.anchor,
            initial=cfg.last_n_day,
            last_limit=cfg.last_limit,
            mu=cfg.mu,
        )
        logger.info("Optimal mu = %s", fit.params.mu)
        logger.info("Optimal beta = %s", fit.params.beta)
        logger.info("Optimal training period = %d", fit.params.training_window)
        return fit

    def _step_simulate(
        self,
        observed: CompartmentSeries,
        fit: FitResult,
    ) -> tuple[NDArray, NDArray]:
        cfg = self.config
        p = fit.params
        train = reconstruct(
            cfg.population, p.beta, cfg.gamma, p.mu,
            observed, cfg.anchor, p.training_window,
        )
        pred = forecast(
            cfg.population, p.beta, cfg.gamma, p.mu,
            observed, cfg.anchor, cfg.next_n_days,
        )
        return np.asarray(train.C, dtype=float), np.asarray(pred.C, dtype=float)

    def _step_score(
        self,
        original: CompartmentSeries,
        trained: NDArray,
        predicted: NDArray,
    ) -> tuple[float, float | None]:
        cfg = self.config
        anchor = cfg.anchor
        vp = cfg.validation_period

        observed_val = original.C[anchor - vp + 1:anchor + 1]
        validation_rmse = rmse(observed_val, trained[-vp:])
        logger.info("Root Mean Square error of validation period = %.2f", validation_rmse)

        observed_pred = original.C[anchor + 1:anchor + 1 + len(predicted)]
        if len(observed_pred) == 0:
            logger.info("No observations after %s; prediction RMSE unavailable", cfg.cur_date)
            return validation_rmse, None
        if len(observed_pred) < len(predicted):
            logger.warning(
                "Only %d of %d forecast days are observed; scoring those",
                len(observed_pred), len(predicted),
            )
        prediction_rmse = rmse(observed_pred, predicted[:len(observed_pred)])
        logger.info("Root Mean Square error in predictions = %.2f", prediction_rmse)
        return validation_rmse, prediction_rmse


# ===================================================================
# Comparison
# ===================================================================


def compare_results(
    config: ForecastConfig,
    cases: CaseTable,
    daily_series: DailySeries | None = None,
) -> ComparisonResult:
    """Forecast without and with adjustment and pick the better one.

    The adjusted forecast is preferred only when its validation RMSE is
    strictly lower.
    """
    engine = ForecastEngine(config)
    logger.info("Forecasting without adjustment")
    original = engine.run(cases, daily_series, adjusted=False)
    logger.info("Forecasting with adjustment")
    adjusted_result = engine.run(cases, daily_series, adjusted=True)

    comparison = ComparisonResult(original=original, adjusted=adjusted_result)
    logger.info(
        "Consider %s data (validation RMSE %.2f vs %.2f)",
        "Adjusted" if comparison.prefers_adjusted else "Original",
        adjusted_result.validation_rmse,
        original.validation_rmse,
    )
    return comparison
