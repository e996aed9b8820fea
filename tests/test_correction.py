"""Tests for jump-drop correction policies and the adjustment scan."""

from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from sisd.correction import adjust
from sisd.types import (
    CorrectionPolicy,
    DailySeries,
    MetricVariant,
    UnrecognizedPolicyWarning,
)


# ============================================================
# Helpers
# ============================================================

def _alternating(n: int = 40) -> np.ndarray:
    values = np.full(n, 10.0)
    values[1::2] = 12.0
    return values


def _series(values: np.ndarray) -> DailySeries:
    dates = np.datetime64("2020-03-13") + np.arange(len(values))
    return DailySeries(values=values, dates=dates)


@pytest.fixture
def spiked() -> DailySeries:
    values = _alternating()
    values[24] = 100.0
    return _series(values)


@pytest.fixture
def spiked_last_day() -> DailySeries:
    values = _alternating()
    values[39] = 100.0
    return _series(values)


# ============================================================
# Policies on a single interior spike
# ============================================================

class TestPolicies:

    def test_endpoint_mean(self, spiked):
        out = adjust(spiked, 5, MetricVariant.C1, CorrectionPolicy.ENDPOINT_MEAN)
        assert out.values[24] == pytest.approx(12.0)
        npt.assert_array_equal(np.flatnonzero(out.adjusted), [24])

    def test_linear_interpolation(self, spiked):
        out = adjust(spiked, 5, "C1", "linear interpolation")
        assert out.values[24] == pytest.approx(12.0)
        assert out.adjusted[24] == 1

    def test_mean_blend(self, spiked):
        out = adjust(spiked, 5, "C1", "mean")
        assert out.values[24] == pytest.approx((78.0 / 7.0) / 2 + 6.0)
        assert out.adjusted[24] == 1

    def test_percentile(self, spiked):
        # Pool = spike plus the 7-day window: p10 = 10, p90 = 38.4
        out = adjust(spiked, 5, "C1", "percentile")
        assert out.values[24] == pytest.approx(38.4)
        npt.assert_array_equal(np.flatnonzero(out.adjusted), [24])

    def test_drop_is_raised(self):
        values = _alternating()
        values[24] = 0.0
        out = adjust(_series(values), 5, "C1", "end points mean")
        assert out.values[24] == pytest.approx(12.0)

    def test_unflagged_days_unchanged(self, spiked):
        out = adjust(spiked, 5, "C1", "end points mean")
        keep = out.adjusted == 0
        npt.assert_array_equal(out.values[keep], spiked.values[keep])


# ============================================================
# Runs reaching the last day
# ============================================================

class TestNoRightEndpoint:

    def test_endpoint_mean_uses_left_only(self, spiked_last_day):
        out = adjust(spiked_last_day, 5, "C1", "end points mean")
        assert out.values[39] == pytest.approx(10.0)
        assert not out.runs[-1].has_right_endpoint

    def test_mean_blend_uses_local_mean(self, spiked_last_day):
        out = adjust(spiked_last_day, 5, "C1", "mean")
        assert out.values[39] == pytest.approx(76.0 / 7.0)

    def test_linear_interpolation_is_noop(self, spiked_last_day):
        out = adjust(spiked_last_day, 5, "C1", "linear interpolation")
        assert out.values[39] == 100.0
        assert out.adjusted[39] == 0
        assert not out.runs[-1].adjusted


# ============================================================
# Scan behaviour
# ============================================================

class TestAdjust:

    def test_input_not_modified(self, spiked):
        before = spiked.values.copy()
        adjust(spiked, 5, "C1", "end points mean")
        npt.assert_array_equal(spiked.values, before)

    def test_original_preserved(self, spiked):
        out = adjust(spiked, 5, "C1", "end points mean")
        npt.assert_array_equal(out.original, spiked.values)
        npt.assert_array_equal(out.dates, spiked.dates)

    def test_run_longer_than_bound_left_alone(self, spiked):
        out = adjust(spiked, 0, "C1", "end points mean")
        npt.assert_array_equal(out.values, spiked.values)
        assert out.n_adjusted == 0
        assert len(out.runs) == 1
        assert not out.runs[0].adjusted

    def test_regular_series_untouched(self):
        series = _series(_alternating())
        out = adjust(series, 5, "C3_1day", "mean")
        npt.assert_array_equal(out.values, series.values)
        assert out.runs == []

    @pytest.mark.parametrize("policy", [
        "end points mean",
        "linear interpolation",
        "mean",
    ])
    def test_idempotent_after_correction(self, spiked, policy):
        first = adjust(spiked, 5, "C1", policy)
        second = adjust(first.as_series(), 5, "C1", policy)
        assert second.n_adjusted == 0
        npt.assert_array_equal(second.values, first.values)

    def test_percentile_not_idempotent(self, spiked):
        # p90 of the pooled window still sits far above the local level
        first = adjust(spiked, 5, "C1", "percentile")
        assert first.values[24] == pytest.approx(38.4)
        second = adjust(first.as_series(), 5, "C1", "percentile")
        assert np.flatnonzero(second.adjusted).tolist() == [24]
        assert second.values[24] == pytest.approx(12.0 + 0.3 * (38.4 - 12.0))
        npt.assert_array_equal(np.delete(second.values, 24), np.delete(first.values, 24))

    def test_variant_and_policy_recorded(self, spiked):
        out = adjust(spiked, 5, "c3_1day", "percentile")
        assert out.variant is MetricVariant.C3_1DAY
        assert out.policy is CorrectionPolicy.PERCENTILE

    def test_unknown_metric_raises(self, spiked):
        with pytest.raises(ValueError, match="Unknown metric variant"):
            adjust(spiked, 5, "C4", "mean")

    def test_unknown_policy_falls_back_to_mean(self, spiked):
        with pytest.warns(UnrecognizedPolicyWarning):
            out = adjust(spiked, 5, "C1", "median")
        assert out.policy is CorrectionPolicy.MEAN_BLEND
        assert out.values[24] == pytest.approx((78.0 / 7.0) / 2 + 6.0)

    def test_to_frame(self, spiked):
        frame = adjust(spiked, 5, "C1", "end points mean").to_frame()
        assert list(frame.columns) == ["Date", "Observed", "Adjusted", "adjusted"]
        assert len(frame) == 40
        assert frame["adjusted"].sum() == 1
