"""Sliding-window statistics for jump-drop detection.

Each day is standardized against a 7-day window of earlier days.  The
window's spread is not the plain sample variance of the window: it is the
variance of each window day's residual from its own trailing 7-day mean,
which keeps an anomaly from inflating the spread it is judged against.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from sisd.types import MetricVariant, Unavailable, UnavailableReason, WindowResult

WINDOW = 7


# ---------------------------------------------------------------------------
# C1 / C2 family
# ---------------------------------------------------------------------------

def _lagged_statistic(
    values: NDArray,
    position: int,
    lag: int,
) -> WindowResult | Unavailable:
    """Mean, residual sd and standardized deviation with a given lag.

    The window covers positions ``[position - 7 - lag, position - lag)``;
    every day ``i`` in it is compared with the mean of
    ``[i - 7 - lag, i - lag)``.
    """
    if position - 2 * (WINDOW + lag) < 0:
        return Unavailable(UnavailableReason.INSUFFICIENT_HISTORY)

    lo, hi = position - WINDOW - lag, position - lag
    mean = float(np.mean(values[lo:hi]))

    var = 0.0
    for i in range(lo, hi):
        m = np.mean(values[i - WINDOW - lag:i - lag])
        var += (values[i] - m) ** 2
    var /= WINDOW - 1
    sd = float(np.sqrt(var))

    if not np.isfinite(sd) or sd == 0.0:
        return Unavailable(UnavailableReason.DEGENERATE_VARIANCE)

    metric = float((values[position] - mean) / sd)
    return WindowResult(mean=mean, sd=sd, metric=metric)


# ---------------------------------------------------------------------------
# C3 family
# ---------------------------------------------------------------------------

def _cumulative_statistic(
    values: NDArray,
    position: int,
    lag: int,
) -> WindowResult | Unavailable:
    """Sum of C2 exceedances over the current and two previous days.

    Each day contributes ``max(0, |C2| - 1)``.  The mean and sd reported
    are those of the C2 evaluation at ``position``.
    """
    metric = 0.0
    last: WindowResult | Unavailable = Unavailable()
    for i in range(position - 2, position + 1):
        last = _lagged_statistic(values, i, lag)
        if isinstance(last, Unavailable):
            return last
        metric += max(0.0, abs(last.metric) - 1.0)
    return WindowResult(mean=last.mean, sd=last.sd, metric=metric)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def evaluate(
    values: NDArray,
    position: int,
    variant: MetricVariant,
) -> WindowResult | Unavailable:
    """Evaluate a metric variant at one day.

    Parameters
    ----------
    values : array of shape (n,)
        Daily counts.  Read as-is, so a buffer being corrected in place is
        seen with the corrections made so far.
    position : int
        0-based day index.
    variant : MetricVariant

    Returns
    -------
    WindowResult or Unavailable
        ``Unavailable`` when the window reaches before the series start
        (or past its end) or when the residual spread is zero.
    """
    if position < 0 or position >= len(values):
        return Unavailable(UnavailableReason.INSUFFICIENT_HISTORY)
    if variant.is_cumulative:
        return _cumulative_statistic(values, position, variant.lag)
    return _lagged_statistic(values, position, variant.lag)


def evaluate_all(values: NDArray, variant: MetricVariant) -> NDArray:
    """Metric value for every day, NaN where unavailable.

    For display only: the detector always works through ``evaluate`` so
    that it sees corrections as they are made.
    """
    values = np.asarray(values, dtype=float)
    trace = np.full(len(values), np.nan)
    for t in range(len(values)):
        res = evaluate(values, t, variant)
        if isinstance(res, WindowResult):
            trace[t] = res.metric
    return trace


def lookback_window(
    values: NDArray,
    position: int,
    variant: MetricVariant,
) -> NDArray:
    """The variant's defining window immediately preceding ``position``.

    C1/C2 variants use their 7-day window; C3 variants widen it to the 9
    days covered by the three underlying C2 windows.
    """
    hi = position - variant.lag
    lo = hi - variant.lookback
    return np.asarray(values[max(lo, 0):max(hi, 0)], dtype=float)
