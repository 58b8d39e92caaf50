import unittest
import numpy as np
import pandas as pd
import pytest
from scipy import stats

from climate_trends.Regression.Design import attach_predictors
from climate_trends.Regression.Engine import (
    ols_kernel, fit_coefficients, fit_linear_trends, summarize_pixel_trend
)
from climate_trends.errors import ConfigurationError
from helpers import make_grid


def _samples(series, times=None, **extra_series):
    """One sample per value of ``series`` (scalars or 2x3 arrays) at t = 0, 1, 2, ..."""
    times = range(len(series)) if times is None else times
    samples = []
    for i, (t, value) in enumerate(zip(times, series)):
        extras = {name: values[i] for name, values in extra_series.items()}
        grid = make_grid(value, timestamp=pd.Timestamp('2000-01-01') + pd.DateOffset(years=i), **extras)
        samples.append(attach_predictors(grid, time_value=t))
    return samples


class TestOlsKernel(unittest.TestCase):

    def test_exact_line(self):
        t = np.arange(5.0)
        intercept, slope = ols_kernel(t, 3.0 + 2.0 * t)
        self.assertAlmostEqual(float(intercept), 3.0)
        self.assertAlmostEqual(float(slope), 2.0)

    def test_matches_linregress(self):
        rng = np.random.default_rng(42)
        t = np.arange(20.0)
        y = 0.5 * t + rng.normal(size=20)
        intercept, slope = ols_kernel(t, y)
        reference = stats.linregress(t, y)
        self.assertAlmostEqual(float(slope), reference.slope)
        self.assertAlmostEqual(float(intercept), reference.intercept)

    def test_nan_samples_are_ignored(self):
        t = np.arange(5.0)
        y = 1.0 + t
        y[2] = np.nan
        intercept, slope = ols_kernel(t, y)
        self.assertAlmostEqual(float(slope), 1.0)
        self.assertAlmostEqual(float(intercept), 1.0)

    def test_single_usable_sample_is_undefined(self):
        intercept, slope = ols_kernel(np.array([0.0, 1.0, 2.0]), np.array([np.nan, 4.0, np.nan]))
        self.assertTrue(np.isnan(intercept))
        self.assertTrue(np.isnan(slope))

    def test_constant_time_is_undefined(self):
        intercept, slope = ols_kernel(np.full(4, 7.3), np.arange(4.0))
        self.assertTrue(np.isnan(intercept))
        self.assertTrue(np.isnan(slope))

    def test_constant_time_after_masking_is_undefined(self):
        t = np.array([1.0, 1.0, 2.0])
        y = np.array([5.0, 6.0, np.nan])
        _, slope = ols_kernel(t, y)
        self.assertTrue(np.isnan(slope))

    def test_vectorized_over_leading_axes(self):
        t = np.arange(4.0)
        y = np.stack([2.0 * t, -t + 1.0, np.full(4, np.nan)])
        intercept, slope = ols_kernel(t, y)
        np.testing.assert_allclose(slope[:2], [2.0, -1.0])
        np.testing.assert_allclose(intercept[:2], [0.0, 1.0], atol=1e-12)
        self.assertTrue(np.isnan(slope[2]))


class TestFitLinearTrends(unittest.TestCase):

    def test_recovers_slope_and_intercept(self):
        samples = _samples([5.0, 7.0, 9.0])
        trends = fit_linear_trends(samples)
        self.assertEqual(trends.band_names, ('constant_precip', 'time_precip'))
        np.testing.assert_allclose(trends.data['time_precip'].values, 2.0)
        np.testing.assert_allclose(trends.data['constant_precip'].values, 5.0)
        self.assertIsNone(trends.year)
        self.assertEqual(trends.data.attrs['n_samples'], 3)

    def test_sample_order_does_not_matter(self):
        samples = _samples([1.0, 4.0, 2.0, 8.0])
        forward = fit_coefficients(samples)
        backward = fit_coefficients(list(reversed(samples)))
        np.testing.assert_array_equal(forward.values, backward.values)

    def test_pixels_are_independent(self):
        series = []
        for i in range(4):
            values = np.zeros((2, 3))
            values[0, 0] = 1.0 * i
            values[1, 2] = -3.0 * i + 2.0
            series.append(values)
        trends = fit_linear_trends(_samples(series))
        slope = trends.data['time_precip'].values
        self.assertAlmostEqual(slope[0, 0], 1.0)
        self.assertAlmostEqual(slope[1, 2], -3.0)
        self.assertAlmostEqual(slope[0, 1], 0.0)

    def test_responses_keep_their_own_masks(self):
        precip = [np.full((2, 3), v) for v in (1.0, 2.0, 3.0)]
        tmax = [np.full((2, 3), v) for v in (10.0, np.nan, 30.0)]
        tmax[2][0, 0] = np.nan
        samples = _samples(precip, tmax=tmax)
        trends = fit_linear_trends(samples)
        self.assertEqual(trends.band_names,
                         ('constant_precip', 'constant_tmax', 'time_precip', 'time_tmax'))
        # precip uses all three samples everywhere
        np.testing.assert_allclose(trends.data['time_precip'].values, 1.0)
        # tmax has two usable samples except at (0, 0), where only one is left
        self.assertAlmostEqual(float(trends.data['time_tmax'][1, 1]), 10.0)
        self.assertTrue(np.isnan(float(trends.data['time_tmax'][0, 0])))
        self.assertTrue(np.isnan(float(trends.data['constant_tmax'][0, 0])))

    def test_identical_timestamps_are_undefined(self):
        samples = _samples([1.0, 2.0, 3.0], times=[4.0, 4.0, 4.0])
        trends = fit_linear_trends(samples)
        self.assertTrue(np.isnan(trends.data['time_precip'].values).all())

    def test_single_sample_is_undefined(self):
        trends = fit_linear_trends(_samples([1.0]))
        self.assertTrue(np.isnan(trends.data['time_precip'].values).all())

    def test_small_tiles_give_same_result(self):
        rng = np.random.default_rng(0)
        series = [rng.normal(size=(2, 3)) for _ in range(6)]
        samples = _samples(series)
        default = fit_coefficients(samples)
        tiled = fit_coefficients(samples, target_chunk_mb=1e-5, n_workers=2)
        np.testing.assert_allclose(default.values, tiled.values)

    def test_empty_samples_raise(self):
        with self.assertRaises(ConfigurationError):
            fit_linear_trends([])

    def test_mismatched_samples_raise(self):
        a = attach_predictors(make_grid(1.0), time_value=0.0)
        b = attach_predictors(make_grid(1.0, band='tmax', timestamp='2001-01-01'), time_value=1.0)
        with self.assertRaises(ConfigurationError):
            fit_linear_trends([a, b])


class TestSummarizePixelTrend(unittest.TestCase):

    def test_matches_linregress(self):
        values = [2.0, 2.5, 4.1, 4.4, 6.0]
        summary = summarize_pixel_trend(_samples(values), 'precip', 0, 1)
        reference = stats.linregress(np.arange(5.0), values)
        self.assertAlmostEqual(summary['slope'], reference.slope)
        self.assertAlmostEqual(summary['intercept'], reference.intercept)
        self.assertAlmostEqual(summary['p_value'], reference.pvalue)
        self.assertEqual(summary['n_samples'], 5)

    def test_agrees_with_fitted_grid(self):
        samples = _samples([2.0, 2.5, 4.1, 4.4])
        trends = fit_linear_trends(samples)
        summary = summarize_pixel_trend(samples, 'precip', 1, 2)
        self.assertAlmostEqual(summary['slope'], float(trends.data['time_precip'][1, 2]))

    def test_undefined_fit_returns_nan(self):
        summary = summarize_pixel_trend(_samples([1.0, np.nan]), 'precip', 0, 0)
        self.assertTrue(np.isnan(summary['slope']))
        self.assertEqual(summary['n_samples'], 1)

    def test_unknown_response_raises(self):
        with pytest.raises(ValueError):
            summarize_pixel_trend(_samples([1.0, 2.0]), 'tmax', 0, 0)


if __name__ == "__main__":
    unittest.main()
