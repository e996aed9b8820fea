"""Detection of contiguous runs of days outside a metric's bound."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from sisd.types import MetricVariant, OutlierRun, WindowResult
from sisd.window_stats import evaluate


def _outside(values: NDArray, position: int, variant: MetricVariant) -> bool:
    res = evaluate(values, position, variant)
    return isinstance(res, WindowResult) and res.exceeds(variant.bound)


def detect(
    values: NDArray,
    variant: MetricVariant,
    position: int,
) -> OutlierRun | None:
    """Find the run starting at ``position``, if any.

    A run starts where the metric is available and outside
    ``[-bound, bound]`` and extends while the following days stay outside.
    Days whose metric is unavailable never start or extend a run.

    Parameters
    ----------
    values : array of shape (n,)
    variant : MetricVariant
    position : int
        0-based day where the run would start.

    Returns
    -------
    OutlierRun or None
        ``has_right_endpoint`` is False when the run reaches the last day,
        i.e. there is no observed day after it to anchor a correction.
    """
    n = len(values)
    res = evaluate(values, position, variant)
    if not isinstance(res, WindowResult) or not res.exceeds(variant.bound):
        return None

    t = position + 1
    while t < n and _outside(values, t, variant):
        t += 1

    return OutlierRun(
        start=position,
        stop=t,
        has_right_endpoint=t < n,
        local_mean=res.mean,
    )


def scan_runs(values: NDArray, variant: MetricVariant) -> list[OutlierRun]:
    """All runs of an unmodified series, scanning left to right.

    After a run is found the scan resumes at the run's end, so reported
    runs never overlap.
    """
    values = np.asarray(values, dtype=float)
    runs: list[OutlierRun] = []
    i = 0
    while i < len(values):
        run = detect(values, variant, i)
        if run is None:
            i += 1
            continue
        runs.append(run)
        i = run.stop
    return runs
