"""Dataset Loader -- case tables and daily series from CSV or DataFrames.

Two input shapes are supported:

* a long-format case table with one row per ``(Date, Status, Count)``,
  where Status is ``Confirmed``, ``Recovered`` or ``Deceased`` and rows are
  sorted by date within each status;
* a two-column daily series ``(Date, Count)`` of new confirmed cases.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from sisd.types import CaseTable, DailySeries

STATUSES = ("Confirmed", "Recovered", "Deceased")


# ============================================================
# Helpers
# ============================================================

def _read(source: str | Path | pd.DataFrame) -> pd.DataFrame:
    if isinstance(source, pd.DataFrame):
        return source.copy()
    return pd.read_csv(source)


def _require_columns(df: pd.DataFrame, columns: tuple[str, ...]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(
            f"Missing column(s) {missing}; found {list(df.columns)}"
        )


def _parse_dates(col: pd.Series, date_format: str | None) -> pd.Series:
    return pd.to_datetime(col.astype(str).str.strip(), format=date_format)


# ============================================================
# Public API
# ============================================================

def load_case_table(
    source: str | Path | pd.DataFrame,
    date_format: str | None = None,
) -> CaseTable:
    """Load a long-format case table.

    Parameters
    ----------
    source : path or DataFrame
        Must provide ``Date``, ``Status`` and ``Count`` columns.
    date_format : str, optional
        ``strftime`` format of the Date column (e.g. ``"%d-%b-%y"``);
        inferred when omitted.

    Returns
    -------
    CaseTable

    Raises
    ------
    ValueError
        On missing columns, unknown statuses, or statuses covering a
        different number of days.
    """
    df = _read(source)
    _require_columns(df, ("Date", "Status", "Count"))

    df["Status"] = df["Status"].astype(str).str.strip()
    unknown = sorted(set(df["Status"]) - set(STATUSES))
    if unknown:
        raise ValueError(f"Unknown status value(s): {unknown}")
    df["Date"] = _parse_dates(df["Date"], date_format)

    columns: dict[str, np.ndarray] = {}
    for status in STATUSES:
        rows = df[df["Status"] == status]
        columns[status] = rows["Count"].to_numpy(dtype=np.float64)

    lengths = {s: len(v) for s, v in columns.items()}
    if len(set(lengths.values())) != 1:
        raise ValueError(f"Statuses cover different numbers of days: {lengths}")

    dates = df["Date"].drop_duplicates().to_numpy().astype("datetime64[D]")
    if len(dates) != lengths["Confirmed"]:
        raise ValueError(
            f"{len(dates)} distinct dates but {lengths['Confirmed']} rows per status"
        )

    return CaseTable(
        dates=dates,
        confirmed=columns["Confirmed"],
        recovered=columns["Recovered"],
        deceased=columns["Deceased"],
    )


def load_daily_series(
    source: str | Path | pd.DataFrame,
    date_format: str | None = None,
) -> DailySeries:
    """Load a two-column ``(Date, Count)`` daily series.

    The first two columns are used whatever their names.
    """
    df = _read(source)
    if df.shape[1] < 2:
        raise ValueError(f"Expected at least 2 columns, got {df.shape[1]}")
    dates = _parse_dates(df.iloc[:, 0], date_format)
    return DailySeries(
        values=df.iloc[:, 1].to_numpy(dtype=np.float64),
        dates=dates.to_numpy().astype("datetime64[D]"),
    )


def case_table_to_frame(table: CaseTable) -> pd.DataFrame:
    """Long-format DataFrame accepted by :func:`load_case_table`."""
    frames = []
    for status, counts in zip(
        STATUSES, (table.confirmed, table.recovered, table.deceased),
    ):
        frames.append(pd.DataFrame({
            "Date": pd.to_datetime(table.dates),
            "Status": status,
            "Count": counts,
        }))
    return (
        pd.concat(frames, ignore_index=True)
        .sort_values(["Date", "Status"], kind="stable")
        .reset_index(drop=True)
    )


def daily_series_from_cases(table: CaseTable) -> DailySeries:
    """The confirmed column of a case table as a daily series."""
    return DailySeries(values=table.confirmed.copy(), dates=table.dates.copy())
