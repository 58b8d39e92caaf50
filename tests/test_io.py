import unittest
import tempfile
from pathlib import Path
import numpy as np
import pandas as pd
import xarray as xr

from climate_trends.utils.io_utils import (
    collection_from_dataset, NetCDFSource, NetCDFSink, Region
)
from climate_trends.errors import ConfigurationError
from helpers import make_grid, make_daily_dataset


def _ensemble_dataset():
    ds = make_daily_dataset(periods=4, shape=(2, 3))
    members = xr.concat([ds, ds + 1.0], dim='member')
    return members.assign_coords(member=['ssp126', 'ssp585'])


class TestCollectionFromDataset(unittest.TestCase):

    def test_one_grid_per_time_step(self):
        collection = collection_from_dataset(make_daily_dataset(periods=5, shape=(2, 3)))
        self.assertEqual(len(collection), 5)
        grid = collection[0]
        self.assertEqual(grid.dims, ('y', 'x'))
        self.assertEqual(grid.shape, (2, 3))
        self.assertEqual(grid.band_names, ('pr',))
        self.assertAlmostEqual(grid.resolution, 0.5)
        self.assertEqual(grid.timestamp, pd.Timestamp('2000-01-01'))

    def test_scenario_dimension(self):
        collection = collection_from_dataset(_ensemble_dataset(), scenario_dim='member')
        self.assertEqual(len(collection), 8)
        self.assertEqual(collection.scenarios, ('ssp126', 'ssp585'))
        high = collection.filter_equals('scenario', 'ssp585')[0]
        self.assertEqual(float(high.data['pr'][0, 0]), 1.0)

    def test_date_range(self):
        collection = collection_from_dataset(make_daily_dataset(periods=10),
                                             date_range=('2000-01-02', '2000-01-05'))
        self.assertEqual([g.day for g in collection], ['2000-01-02', '2000-01-03', '2000-01-04'])

    def test_extra_dimensions_rejected(self):
        with self.assertRaises(ConfigurationError):
            collection_from_dataset(_ensemble_dataset())

    def test_unknown_scenario_dim(self):
        with self.assertRaises(ValueError):
            collection_from_dataset(make_daily_dataset(periods=2), scenario_dim='member')

    def test_missing_time(self):
        with self.assertRaises(ValueError):
            collection_from_dataset(make_daily_dataset(periods=2).isel(time=0))


class TestRegion(unittest.TestCase):

    def test_clip_with_buffer(self):
        grid = make_grid(np.arange(12.0).reshape(3, 4))
        clipped = Region((1.0, 0.0, 2.0, 1.0)).clip(grid)
        self.assertEqual(clipped.shape, (2, 2))
        buffered = Region((1.0, 0.0, 2.0, 1.0), buffer=1.0).clip(grid)
        self.assertEqual(buffered.shape, (3, 4))
        self.assertEqual(buffered.crs, grid.crs)

    def test_invalid_regions(self):
        with self.assertRaises(ConfigurationError):
            Region((2.0, 0.0, 1.0, 1.0))
        with self.assertRaises(ConfigurationError):
            Region((0.0, 0.0, 1.0, 1.0), buffer=-1.0)


class TestNetCDFSourceAndSink(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / 'daily.nc'
        make_daily_dataset(periods=6, shape=(2, 3), value_fn=lambda t: np.arange(len(t))).to_netcdf(self.path)

    def tearDown(self):
        self.tmp.cleanup()

    def test_query_and_close(self):
        with NetCDFSource({'daily': self.path}) as source:
            collection = source.query('daily', ['pr'], ('2000-01-02', '2000-01-04'))
            self.assertEqual(len(collection), 2)
            self.assertEqual(float(collection[0].data['pr'][0, 0]), 1.0)
        self.assertEqual(source._open, {})

    def test_unknown_dataset(self):
        with NetCDFSource({'daily': self.path}) as source:
            with self.assertRaises(ValueError):
                source.query('monthly', ['pr'], ('2000-01-01', '2000-02-01'))

    def test_export_writes_clipped_grid(self):
        out_dir = Path(self.tmp.name) / 'out'
        grid = make_grid(np.arange(6.0).reshape(2, 3))
        with NetCDFSink(out_dir) as sink:
            sink.export(grid, Region((1.0, 0.0, 2.0, 0.0)), 1.0, 'EPSG:4326', 'trend_test')
        written = xr.open_dataset(out_dir / 'trend_test.nc')
        try:
            np.testing.assert_array_equal(written['precip'].values, [[1.0, 2.0]])
            self.assertEqual(written.attrs['crs'], 'EPSG:4326')
        finally:
            written.close()

    def test_export_rejects_resampling(self):
        grid = make_grid(1.0)
        with NetCDFSink(Path(self.tmp.name) / 'out') as sink:
            with self.assertRaises(ConfigurationError):
                sink.export(grid, None, 0.5, 'EPSG:4326', 'bad_resolution')
            with self.assertRaises(ConfigurationError):
                sink.export(grid, None, 1.0, 'EPSG:3857', 'bad_crs')


if __name__ == "__main__":
    unittest.main()
