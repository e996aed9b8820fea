"""Tests for case table and daily series loading."""

from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pandas as pd
import pytest

from benchmarks.datasets import (
    case_table_to_frame,
    daily_series_from_cases,
    load_case_table,
    load_daily_series,
)
from benchmarks.synthetic.generators import generate_case_table, generate_logistic_cases


@pytest.fixture
def table():
    return generate_case_table(generate_logistic_cases(n_days=30))


def _long_frame() -> pd.DataFrame:
    return pd.DataFrame({
        "Date": ["13-Mar-20", "13-Mar-20", "13-Mar-20",
                 "14-Mar-20", "14-Mar-20", "14-Mar-20"],
        "Status": ["Confirmed", "Recovered", "Deceased"] * 2,
        "Count": [5, 1, 0, 3, 0, 1],
    })


class TestLoadCaseTable:

    def test_from_frame(self):
        table = load_case_table(_long_frame(), date_format="%d-%b-%y")
        npt.assert_array_equal(table.confirmed, [5.0, 3.0])
        npt.assert_array_equal(table.recovered, [1.0, 0.0])
        npt.assert_array_equal(table.deceased, [0.0, 1.0])
        assert table.dates[0] == np.datetime64("2020-03-13")
        assert len(table) == 2

    def test_csv_round_trip(self, table, tmp_path):
        path = tmp_path / "cases.csv"
        case_table_to_frame(table).to_csv(path, index=False)
        loaded = load_case_table(path)
        npt.assert_array_equal(loaded.dates, table.dates)
        npt.assert_allclose(loaded.confirmed, table.confirmed)
        npt.assert_allclose(loaded.recovered, table.recovered)
        npt.assert_allclose(loaded.deceased, table.deceased)

    def test_missing_column(self):
        with pytest.raises(ValueError, match="Missing column"):
            load_case_table(_long_frame().drop(columns=["Status"]))

    def test_unknown_status(self):
        df = _long_frame()
        df.loc[0, "Status"] = "Hospitalised"
        with pytest.raises(ValueError, match="Unknown status"):
            load_case_table(df, date_format="%d-%b-%y")

    def test_uneven_statuses(self):
        df = _long_frame().drop(index=5)
        with pytest.raises(ValueError, match="different numbers of days"):
            load_case_table(df, date_format="%d-%b-%y")


class TestLoadDailySeries:

    def test_first_two_columns(self, tmp_path):
        path = tmp_path / "daily.csv"
        pd.DataFrame({
            "day": ["2020-03-13", "2020-03-14", "2020-03-15"],
            "new_cases": [4, 7, 9],
        }).to_csv(path, index=False)
        series = load_daily_series(path)
        npt.assert_array_equal(series.values, [4.0, 7.0, 9.0])
        assert series.position_of("2020-03-15") == 2

    def test_too_few_columns(self):
        with pytest.raises(ValueError, match="at least 2 columns"):
            load_daily_series(pd.DataFrame({"Date": ["2020-03-13"]}))


class TestDailySeriesFromCases:

    def test_copies_confirmed(self, table):
        series = daily_series_from_cases(table)
        npt.assert_array_equal(series.values, table.confirmed)
        series.values[0] = -1.0
        assert table.confirmed[0] != -1.0
