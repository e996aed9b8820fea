"""SISD forecasting with jump-drop adjustment - core computational engine."""

from sisd.types import (
    AdjustedSeries,
    CaseTable,
    CompartmentSeries,
    CorrectionPolicy,
    DailySeries,
    FitParameters,
    ForecastResult,
    MetricVariant,
    OutlierRun,
    Unavailable,
    WindowResult,
)
