"""Core data types for jump-drop adjusted SISD forecasting."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np
import pandas as pd
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class UnrecognizedPolicyWarning(UserWarning):
    """An unknown correction policy name fell back to the mean blend."""


# --- Enums ---

class MetricVariant(Enum):
    """Sliding-window statistics used to flag jump-drops.

    Each member carries ``(label, bound, lag, lookback)``: the threshold
    on the metric value, the lag between the window and the day being
    scored, and the length of the window pooled by percentile clipping.
    """
    C1 = ("C1", 3.0, 0, 7)
    C2 = ("C2", 3.0, 2, 7)
    C2_1DAY = ("C2_1day", 3.0, 1, 7)
    C3 = ("C3", 2.0, 2, 9)
    C3_1DAY = ("C3_1day", 2.0, 1, 9)

    def __init__(self, label: str, bound: float, lag: int, lookback: int):
        self.label = label
        self.bound = bound
        self.lag = lag
        self.lookback = lookback

    @property
    def is_cumulative(self) -> bool:
        """C3-family metrics sum exceedances of the underlying C2 metric."""
        return self in (MetricVariant.C3, MetricVariant.C3_1DAY)

    @property
    def base(self) -> "MetricVariant":
        """The C1/C2 variant the metric is built from."""
        if self is MetricVariant.C3:
            return MetricVariant.C2
        if self is MetricVariant.C3_1DAY:
            return MetricVariant.C2_1DAY
        return self

    @property
    def min_position(self) -> int:
        """First 0-based position with enough history for the metric."""
        # 7-day window plus 7-day trailing means, both shifted by the lag
        first = 14 + 2 * self.lag
        if self.is_cumulative:
            first += 2
        return first

    @classmethod
    def from_name(cls, name: "str | MetricVariant") -> "MetricVariant":
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        for member in cls:
            if member.label.lower() == key or member.name.lower() == key:
                return member
        raise ValueError(
            f"Unknown metric variant {name!r}. "
            f"Choose from: {', '.join(m.label for m in cls)}"
        )


class CorrectionPolicy(Enum):
    PERCENTILE = "percentile"
    LINEAR_INTERPOLATION = "linear interpolation"
    ENDPOINT_MEAN = "end points mean"
    MEAN_BLEND = "mean"

    @classmethod
    def from_name(cls, name: "str | CorrectionPolicy") -> "CorrectionPolicy":
        """Resolve a policy name, falling back to ``MEAN_BLEND``.

        Unknown names do not fail: the mean blend is applied instead and an
        ``UnrecognizedPolicyWarning`` is emitted so that typos in
        configuration are visible.
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace("_", " ")
        for member in cls:
            if member.value == key or member.name.lower().replace("_", " ") == key:
                return member
        message = (
            f"Unrecognized correction policy {name!r}; "
            f"falling back to {cls.MEAN_BLEND.value!r}"
        )
        logger.warning(message)
        warnings.warn(message, UnrecognizedPolicyWarning, stacklevel=2)
        return cls.MEAN_BLEND


class UnavailableReason(Enum):
    INSUFFICIENT_HISTORY = "insufficient_history"
    DEGENERATE_VARIANCE = "degenerate_variance"


class CurveType(Enum):
    OBSERVED = "Observed"
    TRAINED = "Optimally Trained"
    PREDICTED = "Predicted"


# --- Window statistics ---

@dataclass(frozen=True)
class WindowResult:
    """Local mean, local standard deviation and standardized deviation."""
    mean: float
    sd: float
    metric: float

    def exceeds(self, bound: float) -> bool:
        return self.metric > bound or self.metric < -bound


@dataclass(frozen=True)
class Unavailable:
    """The metric cannot be computed at this day."""
    reason: UnavailableReason = UnavailableReason.INSUFFICIENT_HISTORY


# --- Series ---

def _as_dates(dates, n: int) -> NDArray:
    if dates is None:
        return np.arange(n).astype("datetime64[D]")
    return np.asarray(dates, dtype="datetime64[D]")


@dataclass
class DailySeries:
    """One value per calendar day; the position is the day index."""
    values: NDArray
    dates: NDArray | None = None

    def __post_init__(self):
        self.values = np.asarray(self.values, dtype=np.float64)
        if self.values.ndim != 1:
            raise ValueError(f"values must be 1-D, got shape {self.values.shape}")
        self.dates = _as_dates(self.dates, len(self.values))
        if len(self.dates) != len(self.values):
            raise ValueError(
                f"Length mismatch: {len(self.dates)} dates vs "
                f"{len(self.values)} values"
            )
        if len(self.dates) > 1 and np.any(np.diff(self.dates) <= np.timedelta64(0, "D")):
            raise ValueError("dates must be strictly increasing")

    def __len__(self) -> int:
        return len(self.values)

    def position_of(self, date) -> int:
        """0-based position of ``date``; raises KeyError when absent."""
        target = np.datetime64(date, "D")
        hits = np.flatnonzero(self.dates == target)
        if len(hits) == 0:
            raise KeyError(f"Date {target} not in series")
        return int(hits[0])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"Date": self.dates, "Count": self.values})


@dataclass(frozen=True)
class OutlierRun:
    """Maximal stretch ``[start, stop)`` of days outside the metric bound."""
    start: int
    stop: int
    has_right_endpoint: bool = True
    local_mean: float = float("nan")
    adjusted: bool = False

    @property
    def length(self) -> int:
        return self.stop - self.start

    @property
    def days(self) -> range:
        return range(self.start, self.stop)


@dataclass
class AdjustedSeries:
    """Corrected copy of a daily series with per-day adjustment flags."""
    values: NDArray
    original: NDArray
    adjusted: NDArray
    dates: NDArray
    variant: MetricVariant
    policy: CorrectionPolicy
    runs: list[OutlierRun] = field(default_factory=list)

    @property
    def n_adjusted(self) -> int:
        return int(np.sum(self.adjusted))

    def as_series(self) -> DailySeries:
        return DailySeries(values=self.values.copy(), dates=self.dates.copy())

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "Date": self.dates,
            "Observed": self.original,
            "Adjusted": self.values,
            "adjusted": self.adjusted.astype(int),
        })


# --- Case data ---

@dataclass
class CaseTable:
    """Per-day confirmed, recovered and deceased counts."""
    dates: NDArray
    confirmed: NDArray
    recovered: NDArray
    deceased: NDArray

    def __post_init__(self):
        self.dates = np.asarray(self.dates, dtype="datetime64[D]")
        self.confirmed = np.asarray(self.confirmed, dtype=np.float64)
        self.recovered = np.asarray(self.recovered, dtype=np.float64)
        self.deceased = np.asarray(self.deceased, dtype=np.float64)
        n = len(self.dates)
        for name in ("confirmed", "recovered", "deceased"):
            if len(getattr(self, name)) != n:
                raise ValueError(
                    f"{name} has {len(getattr(self, name))} entries, expected {n}"
                )

    def __len__(self) -> int:
        return len(self.dates)

    def with_confirmed(
        self,
        adjusted: AdjustedSeries,
        since: int = 0,
    ) -> tuple["CaseTable", int]:
        """Splice adjusted confirmed counts in on matching dates.

        Only days at position ``since`` or later are replaced.  Returns the
        new table and the number of flagged days that were spliced in.
        """
        confirmed = self.confirmed.copy()
        lookup = {d: k for k, d in enumerate(adjusted.dates)}
        n_flagged = 0
        for pos in range(max(since, 0), len(self.dates)):
            k = lookup.get(self.dates[pos])
            if k is None:
                continue
            confirmed[pos] = adjusted.values[k]
            n_flagged += int(adjusted.adjusted[k])
        return replace(self, confirmed=confirmed), n_flagged


@dataclass(frozen=True)
class CompartmentState:
    susceptible: float
    active_infected: float
    cumulative_infected: float
    cumulative_deceased: float
    day: int


@dataclass
class CompartmentSeries:
    """Column-wise compartment states, one row per day."""
    S: NDArray
    I: NDArray
    C: NDArray
    D: NDArray
    day: NDArray
    dates: NDArray

    def __len__(self) -> int:
        return len(self.C)

    def state(self, position: int) -> CompartmentState:
        return CompartmentState(
            susceptible=float(self.S[position]),
            active_infected=float(self.I[position]),
            cumulative_infected=float(self.C[position]),
            cumulative_deceased=float(self.D[position]),
            day=int(self.day[position]),
        )


# --- Fitting and forecasting ---

@dataclass(frozen=True)
class FitParameters:
    training_window: int
    mu: float
    beta: float


@dataclass
class FitResult:
    """Best grid candidate plus the per-window search history."""
    params: FitParameters
    rmse: float
    n_candidates: int
    window_history: list[dict] = field(default_factory=list)


@dataclass(frozen=True)
class ForecastResult:
    """Trained and forecast cumulative curves with their error figures."""
    trained_curve: NDArray
    forecast_curve: NDArray
    validation_rmse: float
    prediction_rmse: float | None
    params: FitParameters
    anchor: int
    observed: CompartmentSeries
    adjusted_series: AdjustedSeries | None = None
    n_adjusted_in_training: int = 0

    @property
    def is_adjusted(self) -> bool:
        return self.adjusted_series is not None

    def to_frame(self) -> pd.DataFrame:
        """Tagged curve table: ``Day, Count, Type, Date``."""
        first = self.anchor - self.params.training_window
        horizon = len(self.forecast_curve)
        last_observed = min(self.anchor + horizon, len(self.observed) - 1)
        rows: list[dict] = []
        for pos in range(first, last_observed + 1):
            rows.append({
                "Day": int(self.observed.day[pos]),
                "Count": float(self.observed.C[pos]),
                "Type": CurveType.OBSERVED.value,
                "Date": self.observed.dates[pos],
            })
        for k, value in enumerate(self.trained_curve):
            pos = first + k
            rows.append({
                "Day": int(self.observed.day[pos]),
                "Count": float(value),
                "Type": CurveType.TRAINED.value,
                "Date": self.observed.dates[pos],
            })
        anchor_date = self.observed.dates[self.anchor]
        for k, value in enumerate(self.forecast_curve, start=1):
            rows.append({
                "Day": int(self.observed.day[self.anchor]) + k,
                "Count": float(value),
                "Type": CurveType.PREDICTED.value,
                "Date": anchor_date + np.timedelta64(k, "D"),
            })
        frame = pd.DataFrame(rows, columns=["Day", "Count", "Type", "Date"])
        frame["Date"] = pd.to_datetime(frame["Date"])
        return frame


@dataclass(frozen=True)
class ComparisonResult:
    """Forecasts with and without adjustment, and which one to use."""
    original: ForecastResult
    adjusted: ForecastResult

    @property
    def prefers_adjusted(self) -> bool:
        return self.adjusted.validation_rmse < self.original.validation_rmse

    @property
    def best(self) -> ForecastResult:
        return self.adjusted if self.prefers_adjusted else self.original
