import unittest
import numpy as np
import pandas as pd
import pytest

from climate_trends.Grids.Grid import Collection
from climate_trends.TimeSeries.Aggregation import reduce, reduce_by_scenario
from climate_trends.errors import ConfigurationError
from helpers import make_grid


class TestReduce(unittest.TestCase):

    def test_mean_of_two_grids(self):
        group = Collection((make_grid(2.0, timestamp='2000-01-02'), make_grid(4.0)))
        result = reduce(group, 'mean')
        np.testing.assert_allclose(result.data['precip'].values, 3.0)
        # Earliest member timestamp is kept
        self.assertEqual(result.timestamp, pd.Timestamp('2000-01-01'))

    def test_nodata_members_are_skipped_per_pixel(self):
        values = np.full((2, 3), 4.0)
        values[0, 0] = np.nan
        group = Collection((make_grid(2.0), make_grid(values, timestamp='2000-01-02')))
        result = reduce(group, 'mean').data['precip'].values
        self.assertEqual(result[0, 0], 2.0)
        self.assertEqual(result[1, 1], 3.0)

    def test_all_nodata_pixel_stays_nodata(self):
        values = np.full((2, 3), 1.0)
        values[1, 2] = np.nan
        group = Collection((make_grid(values), make_grid(values, timestamp='2000-01-02')))
        for statistic in ('mean', 'max', 'min', 'range'):
            result = reduce(group, statistic).data['precip'].values
            self.assertTrue(np.isnan(result[1, 2]), statistic)
            self.assertFalse(np.isnan(result[0, 0]), statistic)

    def test_extremes_and_range(self):
        group = Collection(tuple(make_grid(v, timestamp=f'2000-01-0{i + 1}')
                                 for i, v in enumerate([3.0, -1.0, 7.0])))
        self.assertEqual(float(reduce(group, 'max').data['precip'][0, 0]), 7.0)
        self.assertEqual(float(reduce(group, 'min').data['precip'][0, 0]), -1.0)
        self.assertEqual(float(reduce(group, 'range').data['precip'][0, 0]), 8.0)

    def test_range_of_single_member_is_zero(self):
        result = reduce(Collection((make_grid(5.0),)), 'range')
        np.testing.assert_array_equal(result.data['precip'].values, 0.0)

    def test_band_suffix_and_tags(self):
        group = Collection((make_grid(1.0, year=2000), make_grid(1.0, timestamp='2000-02-01', year=2000)))
        result = reduce(group, 'max', band_suffix='max_djf', timestamp='1999-12-01')
        self.assertEqual(result.band_names, ('precip_max_djf',))
        self.assertEqual(result.year, 2000)
        self.assertEqual(result.timestamp, pd.Timestamp('1999-12-01'))

    def test_multiple_bands_reduced_independently(self):
        group = Collection((make_grid(1.0, tmax=10.0), make_grid(3.0, timestamp='2000-01-02', tmax=20.0)))
        result = reduce(group, 'mean')
        self.assertEqual(float(result.data['precip'][0, 0]), 2.0)
        self.assertEqual(float(result.data['tmax'][0, 0]), 15.0)

    def test_empty_group_uses_template(self):
        template = make_grid(1.0)
        result = reduce(Collection(), 'mean', band_suffix='mean_jja', template=template, timestamp='2001-06-01')
        self.assertEqual(result.band_names, ('precip_mean_jja',))
        self.assertTrue(np.isnan(result.data['precip_mean_jja'].values).all())
        self.assertEqual(result.timestamp, pd.Timestamp('2001-06-01'))

    def test_empty_group_without_template_raises(self):
        with self.assertRaises(ConfigurationError):
            reduce(Collection(), 'mean')

    def test_unknown_statistic_raises(self):
        with self.assertRaises(ConfigurationError):
            reduce(Collection((make_grid(1.0),)), 'median')

    def test_mismatched_bands_raise(self):
        group = Collection((make_grid(1.0), make_grid(1.0, band='tmax', timestamp='2000-01-02')))
        with self.assertRaises(ConfigurationError):
            reduce(group, 'mean')


class TestReduceByScenario(unittest.TestCase):

    def test_scenarios_are_kept_apart(self):
        group = Collection((make_grid(10.0, scenario='A'), make_grid(20.0, scenario='B'),
                            make_grid(30.0, scenario='A', timestamp='2000-01-01T12:00')))
        result = reduce_by_scenario(group, 'mean')
        self.assertEqual(result.band_names, ('precip_A', 'precip_B'))
        self.assertEqual(float(result.data['precip_A'][0, 0]), 20.0)
        self.assertEqual(float(result.data['precip_B'][0, 0]), 20.0)
        self.assertIsNone(result.scenario)

    def test_missing_scenario_yields_nodata_bands(self):
        group = Collection((make_grid(10.0, scenario='A'),))
        with pytest.warns(UserWarning, match="scenario 'B'"):
            result = reduce_by_scenario(group, 'mean', scenarios=['A', 'B'])
        self.assertEqual(result.band_names, ('precip_A', 'precip_B'))
        self.assertTrue(np.isnan(result.data['precip_B'].values).all())
        self.assertEqual(float(result.data['precip_A'][0, 0]), 10.0)

    def test_band_suffix_precedes_scenario(self):
        group = Collection((make_grid(1.0, scenario='A'),))
        result = reduce_by_scenario(group, 'min', band_suffix='min')
        self.assertEqual(result.band_names, ('precip_min_A',))

    def test_untagged_group_falls_back_to_plain_reduce(self):
        group = Collection((make_grid(1.0), make_grid(3.0, timestamp='2000-01-02')))
        result = reduce_by_scenario(group, 'mean')
        self.assertEqual(result.band_names, ('precip',))
        self.assertEqual(float(result.data['precip'][0, 0]), 2.0)

    def test_untagged_members_cannot_be_split(self):
        group = Collection((make_grid(10.0, scenario='A'), make_grid(20.0)))
        with self.assertRaises(ConfigurationError):
            reduce_by_scenario(group, 'mean')

    def test_empty_group_with_template(self):
        with pytest.warns(UserWarning):
            result = reduce_by_scenario(Collection(), 'mean', scenarios=['A'], template=make_grid(1.0))
        self.assertEqual(result.band_names, ('precip_A',))


if __name__ == "__main__":
    unittest.main()
