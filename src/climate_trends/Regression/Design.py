"""
Design matrix for per-pixel linear trends.

Every aggregated yearly or seasonal grid becomes a regression sample carrying
two predictor bands ahead of its response bands: a constant band of ones and
a time band holding the sample's timestamp on a real-valued axis.
"""
from dataclasses import dataclass
from typing import Tuple
import logging

import numpy as np
import pandas as pd
import xarray as xr

from ..Grids.Grid import Grid
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

# Julian year. Only the magnitude of fitted slopes depends on it: with this
# scale a slope is expressed per year.
SECONDS_PER_YEAR = 24 * 3600 * 365.25
EPOCH = pd.Timestamp('1970-01-01')

CONSTANT_BAND = 'constant'
TIME_BAND = 'time'
PREDICTOR_NAMES = (CONSTANT_BAND, TIME_BAND)


def to_time_axis(timestamp, time_scale: float = SECONDS_PER_YEAR) -> float:
    """Seconds since 1970-01-01 divided by ``time_scale`` (fractional years by default)."""
    if time_scale <= 0:
        raise ConfigurationError(f"time_scale must be positive, got {time_scale}")
    return (pd.Timestamp(timestamp) - EPOCH).total_seconds() / time_scale


@dataclass(frozen=True, eq=False)
class RegressionSample:
    """
    One aggregated grid decorated with predictor bands.

    ``grid`` holds the bands ``constant``, ``time`` and then the response bands,
    in that order. ``timestamp`` and ``year`` of the source aggregate are kept
    on the grid for traceability.
    """
    grid: Grid
    predictor_names: Tuple[str, ...] = PREDICTOR_NAMES

    def __post_init__(self):
        if self.grid.band_names[:len(self.predictor_names)] != tuple(self.predictor_names):
            raise ConfigurationError(
                f"Sample bands {list(self.grid.band_names)} do not start with predictors "
                f"{list(self.predictor_names)}."
            )

    @property
    def response_names(self) -> Tuple[str, ...]:
        return self.grid.band_names[len(self.predictor_names):]

    @property
    def timestamp(self) -> pd.Timestamp:
        return self.grid.timestamp

    @property
    def year(self):
        return self.grid.year

    @property
    def time_value(self) -> float:
        return float(np.nanmax(self.grid.data[TIME_BAND].values))


def attach_predictors(grid: Grid, time_scale: float = SECONDS_PER_YEAR, time_value=None) -> RegressionSample:
    """
    Prepend the constant and time predictor bands to an aggregated grid.

    Parameters
    ----------
    grid : Grid
        A yearly or seasonal aggregate; all its bands become responses.
    time_scale : float, optional
        Seconds per unit of the time axis. Defaults to one Julian year.
    time_value : float, optional
        Explicit value of the time band, overriding the one derived from the
        grid timestamp.

    Returns
    -------
    RegressionSample
    """
    clash = set(PREDICTOR_NAMES) & set(grid.band_names)
    if clash:
        raise ConfigurationError(f"Response bands {sorted(clash)} collide with predictor names.")
    if time_value is None:
        time_value = to_time_axis(grid.timestamp, time_scale)

    coords = {d: grid.data[d] for d in grid.dims if d in grid.data.coords}
    predictors = xr.Dataset(
        {
            CONSTANT_BAND: (grid.dims, np.ones(grid.shape)),
            TIME_BAND: (grid.dims, np.full(grid.shape, float(time_value))),
        },
        coords=coords,
    )
    data = xr.merge([predictors, grid.data], compat='override', join='override')
    data = data[list(PREDICTOR_NAMES) + list(grid.band_names)]
    data.attrs.update(grid.data.attrs)
    logger.debug("Attached predictors to grid at %s (t=%.4f)", grid.timestamp, time_value)
    return RegressionSample(grid.replace(data=data))


__all__ = [
    'SECONDS_PER_YEAR', 'CONSTANT_BAND', 'TIME_BAND', 'PREDICTOR_NAMES',
    'to_time_axis', 'RegressionSample', 'attach_predictors'
]
