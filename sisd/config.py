"""Configuration management for jump-drop adjusted SISD forecasting."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from sisd.types import CorrectionPolicy, MetricVariant


@dataclass
class AdjustmentConfig:
    """Configuration for jump-drop detection and correction."""
    ub_for_adjustment: int = 5  # Longest run that is still corrected
    metric: MetricVariant | str = MetricVariant.C3_1DAY
    method: CorrectionPolicy | str = CorrectionPolicy.MEAN_BLEND

    def __post_init__(self):
        if self.ub_for_adjustment < 1:
            raise ValueError(
                f"ub_for_adjustment must be >= 1, got {self.ub_for_adjustment}"
            )
        self.metric = MetricVariant.from_name(self.metric)
        self.method = CorrectionPolicy.from_name(self.method)


@dataclass
class GridConfig:
    """Parameter grid searched by the fitter."""
    min_mu: float = 0.001
    max_mu: float = 0.1
    mu_step: float = 0.001
    beta_min: float = 0.01  # inclusive
    beta_max: float = 0.3   # exclusive
    beta_step: float = 0.01
    max_workers: int | None = None  # Thread pool over training windows

    def __post_init__(self):
        if self.min_mu < 0.0 or self.max_mu < self.min_mu:
            raise ValueError(
                f"mu range must satisfy 0 <= min_mu <= max_mu, "
                f"got [{self.min_mu}, {self.max_mu}]"
            )
        if self.mu_step <= 0.0:
            raise ValueError(f"mu_step must be positive, got {self.mu_step}")
        if self.beta_step <= 0.0:
            raise ValueError(f"beta_step must be positive, got {self.beta_step}")
        if not 0.0 < self.beta_min < self.beta_max:
            raise ValueError(
                f"beta range must satisfy 0 < beta_min < beta_max, "
                f"got [{self.beta_min}, {self.beta_max})"
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    def mu_grid(self, mu: float | None = None) -> np.ndarray:
        """Mortality rates searched; a single value when ``mu`` is fixed."""
        if mu is not None:
            return np.array([float(mu)])
        # Generated by index so the grid does not drift with accumulated steps
        n = int(np.floor((self.max_mu - self.min_mu) / self.mu_step + 1e-9)) + 1
        return np.round(self.min_mu + self.mu_step * np.arange(n), 12)

    def beta_grid(self) -> np.ndarray:
        """Transmission rates searched, ``beta_max`` excluded."""
        n = int(np.ceil((self.beta_max - self.beta_min) / self.beta_step - 1e-9))
        grid = np.round(self.beta_min + self.beta_step * np.arange(n), 12)
        return grid[grid < self.beta_max]


@dataclass
class ForecastConfig:
    """Master configuration for a single forecast run."""
    population: float = 18_710_922
    gamma: float = 1 / 14.0  # Recovery rate
    cur_date: dt.date | str = "2020-05-29"  # Anchor: last training day
    start_date: dt.date | str = "2020-03-13"  # First day in the case table
    last_n_day: int = 20  # Initial training window (and validation period)
    last_limit: int = 30  # Extra training days searched
    next_n_days: int = 20  # Forecast horizon
    mu: float | None = None  # Fixed mortality rate (skips the mu search)
    adjustment: AdjustmentConfig = field(default_factory=AdjustmentConfig)
    grid: GridConfig = field(default_factory=GridConfig)

    def __post_init__(self):
        self.cur_date = _to_date(self.cur_date)
        self.start_date = _to_date(self.start_date)
        if self.population <= 0:
            raise ValueError(f"population must be positive, got {self.population}")
        if not 0.0 < self.gamma <= 1.0:
            raise ValueError(f"gamma must be in (0, 1], got {self.gamma}")
        if self.cur_date <= self.start_date:
            raise ValueError(
                f"cur_date {self.cur_date} must be after start_date {self.start_date}"
            )
        for name in ("last_n_day", "next_n_days"):
            val = getattr(self, name)
            if val < 1:
                raise ValueError(f"{name} must be >= 1, got {val}")
        if self.last_limit < 0:
            raise ValueError(f"last_limit must be non-negative, got {self.last_limit}")
        if self.mu is not None and not 0.0 <= self.mu <= 1.0:
            raise ValueError(f"mu must be in [0, 1], got {self.mu}")

    @property
    def anchor(self) -> int:
        """0-based position of ``cur_date`` counted from ``start_date``."""
        return (self.cur_date - self.start_date).days

    @property
    def validation_period(self) -> int:
        return self.last_n_day

    @property
    def max_window(self) -> int:
        return self.last_n_day + self.last_limit


def _to_date(value: dt.date | str) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return pd.Timestamp(str(value).strip()).date()
