import numpy as np
import pandas as pd
import xarray as xr

from climate_trends.Grids.Grid import Grid


def make_grid(values, timestamp='2000-01-01', band='precip', scenario=None, year=None,
              crs='EPSG:4326', resolution=1.0, x=None, y=None, **extra_bands):
    """A grid with one band filled from ``values`` (scalar or 2-D) plus optional extra bands."""
    values = np.asarray(values, dtype=float)
    if values.ndim == 0:
        values = np.full((2, 3), float(values))
    ny, nx = values.shape
    coords = {
        'y': np.arange(ny, dtype=float) if y is None else y,
        'x': np.arange(nx, dtype=float) if x is None else x,
    }
    bands = {band: (('y', 'x'), values)}
    for name, extra in extra_bands.items():
        extra = np.asarray(extra, dtype=float)
        bands[name] = (('y', 'x'), np.full(values.shape, float(extra)) if extra.ndim == 0 else extra)
    return Grid(data=xr.Dataset(bands, coords=coords), timestamp=pd.Timestamp(timestamp),
                crs=crs, resolution=resolution, scenario=scenario, year=year)


def make_daily_dataset(start='2000-01-01', periods=365 * 3, shape=(2, 2), value_fn=None, name='pr', freq='D'):
    """A (time, lat, lon) dataset of values ``value_fn(times)`` broadcast over space."""
    times = pd.date_range(start, periods=periods, freq=freq)
    base = np.zeros(periods) if value_fn is None else np.asarray(value_fn(times), dtype=float)
    data = np.broadcast_to(base[:, None, None], (periods,) + shape).copy()
    return xr.Dataset(
        {name: (('time', 'lat', 'lon'), data, {'units': 'mm/day'})},
        coords={
            'time': times,
            'lat': np.linspace(10, 11, shape[0]),
            'lon': np.linspace(20, 21, shape[1]),
        },
    )
