"""Correction of short jump-drop runs in a daily series.

The corrector owns a private copy of the series and scans it once, left to
right.  Corrections are written into that copy as the scan advances, so
the windows of later days see the corrected values; a single anomaly is
therefore not picked up again at a longer lag.  The scan is order
dependent and cannot be split across days.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from sisd.run_detection import detect
from sisd.types import (
    AdjustedSeries,
    CorrectionPolicy,
    DailySeries,
    MetricVariant,
    OutlierRun,
)
from sisd.window_stats import lookback_window

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------
#
# Each policy receives the working buffer, the untouched original values,
# the adjustment flags and the run, and rewrites the run in place.  The
# left endpoint is read from the buffer (it may itself be corrected); the
# right endpoint is always the original observation.

def _clip_to_percentiles(
    buffer: NDArray,
    original: NDArray,
    flags: NDArray,
    run: OutlierRun,
    variant: MetricVariant,
) -> None:
    pooled = np.concatenate([
        buffer[run.start:run.stop],
        lookback_window(buffer, run.start, variant),
    ])
    p10 = float(np.quantile(pooled, 0.1))
    p90 = float(np.quantile(pooled, 0.9))
    for day in run.days:
        if original[day] < p10:
            buffer[day] = p10
            flags[day] = 1
        elif original[day] > p90:
            buffer[day] = p90
            flags[day] = 1


def _interpolate(
    buffer: NDArray,
    original: NDArray,
    flags: NDArray,
    run: OutlierRun,
) -> None:
    if not run.has_right_endpoint:
        return
    left = buffer[run.start - 1]
    slope = (original[run.stop] - left) / run.length
    for a, day in enumerate(run.days, start=1):
        buffer[day] = left + slope * a
        flags[day] = 1


def _endpoint_mean(
    buffer: NDArray,
    original: NDArray,
    flags: NDArray,
    run: OutlierRun,
) -> None:
    left = buffer[run.start - 1]
    if run.has_right_endpoint:
        fill = (left + original[run.stop]) / 2
    else:
        fill = left
    buffer[run.start:run.stop] = fill
    flags[run.start:run.stop] = 1


def _mean_blend(
    buffer: NDArray,
    original: NDArray,
    flags: NDArray,
    run: OutlierRun,
) -> None:
    if run.has_right_endpoint:
        fill = run.local_mean / 2 + original[run.stop] / 2
    else:
        fill = run.local_mean
    buffer[run.start:run.stop] = fill
    flags[run.start:run.stop] = 1


def apply_policy(
    policy: CorrectionPolicy,
    buffer: NDArray,
    original: NDArray,
    flags: NDArray,
    run: OutlierRun,
    variant: MetricVariant,
) -> None:
    """Rewrite ``buffer`` over ``run`` according to ``policy``."""
    if policy is CorrectionPolicy.PERCENTILE:
        _clip_to_percentiles(buffer, original, flags, run, variant)
    elif policy is CorrectionPolicy.LINEAR_INTERPOLATION:
        _interpolate(buffer, original, flags, run)
    elif policy is CorrectionPolicy.ENDPOINT_MEAN:
        _endpoint_mean(buffer, original, flags, run)
    else:
        _mean_blend(buffer, original, flags, run)


# ---------------------------------------------------------------------------
# Scan
# ---------------------------------------------------------------------------

def adjust(
    series: DailySeries,
    ub_for_adjustment: int,
    variant: MetricVariant | str,
    policy: CorrectionPolicy | str = CorrectionPolicy.MEAN_BLEND,
) -> AdjustedSeries:
    """Detect jump-drops and correct those no longer than the bound.

    Parameters
    ----------
    series : DailySeries
        Observed daily counts; left untouched.
    ub_for_adjustment : int
        Runs longer than this are treated as genuine changes in level and
        left as observed.
    variant : MetricVariant or str
        Metric used for detection (``'C1'``, ``'C2'``, ``'C2_1day'``,
        ``'C3'``, ``'C3_1day'``).
    policy : CorrectionPolicy or str
        ``'percentile'``, ``'linear interpolation'``, ``'end points mean'``
        or ``'mean'``.  Unknown names fall back to ``'mean'`` with a
        warning.

    Returns
    -------
    AdjustedSeries
        Corrected values, 0/1 flags for rewritten days and every run found
        (``run.adjusted`` tells whether it was corrected).
    """
    variant = MetricVariant.from_name(variant)
    policy = CorrectionPolicy.from_name(policy)

    original = series.values.copy()
    buffer = series.values.copy()
    flags = np.zeros(len(buffer), dtype=np.int8)
    runs: list[OutlierRun] = []

    n = len(buffer)
    i = 0
    while i < n:
        run = detect(buffer, variant, i)
        if run is None:
            i += 1
            continue

        if run.length <= ub_for_adjustment:
            before = int(flags.sum())
            apply_policy(policy, buffer, original, flags, run, variant)
            run = OutlierRun(
                start=run.start,
                stop=run.stop,
                has_right_endpoint=run.has_right_endpoint,
                local_mean=run.local_mean,
                adjusted=int(flags.sum()) > before,
            )
        else:
            logger.debug(
                "Run at %d..%d (length %d) exceeds bound %d; left as observed",
                run.start, run.stop - 1, run.length, ub_for_adjustment,
            )
        runs.append(run)
        i = run.stop

    logger.info(
        "%s/%s: %d run(s) found, %d day(s) adjusted",
        variant.label, policy.value, len(runs), int(flags.sum()),
    )
    return AdjustedSeries(
        values=buffer,
        original=original,
        adjusted=flags,
        dates=series.dates.copy(),
        variant=variant,
        policy=policy,
        runs=runs,
    )
