"""Charts for adjusted series and cumulative forecasts.

All functions return a ``matplotlib.figure.Figure`` and never show it;
rendering uses the non-interactive Agg backend.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for headless rendering
import matplotlib.pyplot as plt
import pandas as pd

from sisd.types import AdjustedSeries, ComparisonResult, CurveType, ForecastResult

# Marker / colour per curve type; adjusted runs use the second palette
_STYLE = {
    CurveType.OBSERVED.value: {"marker": "+", "color": "#000000"},
    CurveType.TRAINED.value: {"marker": "o", "color": "#006600"},
    CurveType.PREDICTED.value: {"marker": "^", "color": "#ff3300"},
}
_STYLE_ADJUSTED = {
    CurveType.OBSERVED.value: {"marker": "+", "color": "#000000"},
    CurveType.TRAINED.value: {"marker": "o", "color": "#cc33ff"},
    CurveType.PREDICTED.value: {"marker": "^", "color": "#0033cc"},
}


def save_figure(fig: plt.Figure, path: str | Path) -> Path:
    """Save ``fig`` to ``path`` (format from the suffix) and close it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(str(path), bbox_inches="tight")
    plt.close(fig)
    return path


def plot_adjustment(adjusted: AdjustedSeries) -> plt.Figure:
    """Daily cases as observed and after adjustment."""
    fig, ax = plt.subplots(figsize=(9, 4))
    dates = pd.to_datetime(adjusted.dates)
    ax.plot(dates, adjusted.original, label="Observed", color="#1f77b4")
    ax.plot(dates, adjusted.values, label="adjusted", color="#ff7f0e")
    mask = adjusted.adjusted.astype(bool)
    if mask.any():
        ax.scatter(dates[mask], adjusted.values[mask], color="#d62728",
                   zorder=3, s=18, label="rewritten")
    ax.set_xlabel("Date")
    ax.set_ylabel("Daily Cases")
    ax.set_title(f"{adjusted.variant.label} / {adjusted.policy.value}")
    ax.legend()
    fig.autofmt_xdate(rotation=35)
    return fig


def plot_forecast(result: ForecastResult) -> plt.Figure:
    """Observed, optimally trained and predicted cumulative cases."""
    frame = result.to_frame()
    style = _STYLE_ADJUSTED if result.is_adjusted else _STYLE
    fig, ax = plt.subplots(figsize=(9, 4))
    for curve_type, group in frame.groupby("Type", sort=False):
        ax.scatter(group["Date"], group["Count"], s=14,
                   label=curve_type, **style[curve_type])
    ax.set_xlabel("Date")
    ax.set_ylabel("Cumulative Number of Cases")
    ax.legend()
    fig.autofmt_xdate(rotation=35)
    return fig


def plot_comparison(comparison: ComparisonResult) -> plt.Figure:
    """Original and adjusted forecasts against the observed curve."""
    fig, ax = plt.subplots(figsize=(9, 4.5))
    drawn_observed = False
    for label, result, style in (
        ("Original", comparison.original, _STYLE),
        ("Adjusted", comparison.adjusted, _STYLE_ADJUSTED),
    ):
        frame = result.to_frame()
        for curve_type, group in frame.groupby("Type", sort=False):
            if curve_type == CurveType.OBSERVED.value:
                if drawn_observed:
                    continue
                drawn_observed = True
                name = curve_type
            else:
                name = f"{curve_type} {label}"
            ax.scatter(group["Date"], group["Count"], s=14, label=name,
                       **style[curve_type])
    ax.set_xlabel("Date")
    ax.set_ylabel("Cumulative Number of Cases")
    ax.legend(loc="upper center", bbox_to_anchor=(0.5, -0.2), ncol=3, frameon=False)
    fig.autofmt_xdate(rotation=35)
    return fig
