"""Synthetic data generators for SISD forecasting benchmarks.

Four generators that produce controlled datasets for validating the
jump-drop corrector, the grid fitter and the full pipeline.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.special import expit

from sisd.simulator import simulate
from sisd.types import CaseTable, CompartmentSeries, CompartmentState, DailySeries


# ============================================================
# 1. Logistic epidemic curve
# ============================================================

def generate_logistic_cases(
    n_days: int = 40,
    total: float = 600.0,
    midpoint: float = 30.0,
    growth: float = 0.2,
    noise: float = 0.0,
    seed: int = 42,
) -> NDArray:
    """Daily new cases following a logistic cumulative curve.

    The cumulative count is ``total * expit(growth * (t - midpoint))``;
    daily counts are its first differences (day 0 takes the cumulative
    value itself).

    Parameters
    ----------
    n_days : int
    total : float
        Final size of the epidemic.
    midpoint : float
        Day of the inflection point.
    growth : float
        Logistic growth rate per day.
    noise : float
        Relative standard deviation of multiplicative Gaussian noise.
    seed : int
        Random seed (only used when ``noise > 0``).

    Returns
    -------
    array of shape (n_days,)
        Non-negative daily counts.
    """
    t = np.arange(n_days, dtype=np.float64)
    cumulative = total * expit(growth * (t - midpoint))
    daily = np.diff(cumulative, prepend=0.0)
    if noise > 0:
        rng = np.random.default_rng(seed)
        daily = daily * (1.0 + noise * rng.standard_normal(n_days))
    return np.clip(daily, 0.0, None)


# ============================================================
# 2. Jump-drop injection
# ============================================================

def inject_jump_drop(
    values: NDArray,
    start: int,
    length: int = 3,
    magnitude: float = 10.0,
    window: int = 7,
) -> tuple[NDArray, NDArray]:
    """Overwrite a run of days with a multiple of the local mean.

    The local mean is taken over the ``window`` days before ``start``.
    ``magnitude > 1`` gives a jump, ``magnitude < 1`` a drop.

    Returns
    -------
    (values, mask)
        A modified copy of ``values`` and a boolean mask of the injected
        days.
    """
    if start < window:
        raise ValueError(f"start must be >= window ({window}), got {start}")
    out = np.asarray(values, dtype=np.float64).copy()
    local_mean = float(np.mean(out[start - window:start]))
    stop = min(start + length, len(out))
    out[start:stop] = magnitude * local_mean
    mask = np.zeros(len(out), dtype=bool)
    mask[start:stop] = True
    return out, mask


# ============================================================
# 3. Case table around a daily confirmed series
# ============================================================

def generate_case_table(
    confirmed: NDArray,
    start_date: str = "2020-03-13",
    recovery_delay: int = 14,
    fatality: float = 0.01,
) -> CaseTable:
    """Case table whose patients resolve a fixed delay after confirmation.

    A fraction ``fatality`` of each day's confirmations dies
    ``recovery_delay`` days later; the rest recover that day.
    """
    confirmed = np.asarray(confirmed, dtype=np.float64)
    n = len(confirmed)
    resolved = np.zeros(n)
    if recovery_delay < n:
        resolved[recovery_delay:] = confirmed[:n - recovery_delay]
    dates = np.datetime64(start_date, "D") + np.arange(n)
    return CaseTable(
        dates=dates,
        confirmed=confirmed,
        recovered=(1.0 - fatality) * resolved,
        deceased=fatality * resolved,
    )


def as_daily_series(values: NDArray, start_date: str = "2020-03-13") -> DailySeries:
    values = np.asarray(values, dtype=np.float64)
    dates = np.datetime64(start_date, "D") + np.arange(len(values))
    return DailySeries(values=values, dates=dates)


# ============================================================
# 4. Noise-free SISD compartments
# ============================================================

def generate_sisd_compartments(
    population: float = 1000.0,
    beta: float = 0.2,
    gamma: float = 1 / 14.0,
    mu: float = 0.01,
    n_days: int = 60,
    initial_infected: float = 10.0,
    start_date: str = "2020-03-13",
) -> CompartmentSeries:
    """Compartments produced by the recurrence itself, without noise.

    Fitting these with a grid that contains ``beta`` and ``mu`` must
    reproduce them exactly.
    """
    start = CompartmentState(
        susceptible=population - initial_infected,
        active_infected=initial_infected,
        cumulative_infected=initial_infected,
        cumulative_deceased=0.0,
        day=0,
    )
    traj = simulate(population, beta, gamma, mu, start, n_days - 1)
    return CompartmentSeries(
        S=traj.S,
        I=traj.I,
        C=traj.C,
        D=traj.D,
        day=np.arange(n_days),
        dates=np.datetime64(start_date, "D") + np.arange(n_days),
    )
