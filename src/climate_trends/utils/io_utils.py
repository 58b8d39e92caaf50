"""
Raster sources, regions of interest and export sinks.

These are the I/O boundaries of the trend pipeline. Sources turn files into
Collections of Grids, sinks persist a clipped Grid. Both are used through
``with`` blocks so that opened files are always closed.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd
import xarray as xr

from ..Grids.Grid import Collection, Grid
from ..errors import ConfigurationError
from .coord_utils import get_grid_coord_names, infer_resolution
from .data_utils import select_process_data

logger = logging.getLogger(__name__)


def collection_from_dataset(ds: xr.Dataset,
                            bands: Optional[Sequence[str]] = None,
                            crs: str = 'EPSG:4326',
                            scenario_dim: Optional[str] = None,
                            scenario: Optional[str] = None,
                            date_range=None) -> Collection:
    """
    Split a gridded dataset into one Grid per time step (and scenario).

    Parameters
    ----------
    ds : xr.Dataset
        Data with a time coordinate and latitude/y and longitude/x coordinates.
    bands : sequence of str, optional
        Variables to use as bands. Defaults to all data variables.
    crs : str, optional
        Spatial reference of the dataset. Defaults to 'EPSG:4326'.
    scenario_dim : str, optional
        Dimension holding ensemble members; each value becomes the scenario
        tag of its grids.
    scenario : str, optional
        Scenario tag for every grid when ``scenario_dim`` is not used.
    date_range : tuple or slice, optional
        Half-open ``[start, end)`` interval to keep.

    Returns
    -------
    Collection
    """
    time_name, y_name, x_name = get_grid_coord_names(ds)
    if not time_name or time_name not in ds.dims:
        raise ValueError("Dataset must contain a recognizable time dimension.")
    if scenario_dim is not None and scenario_dim not in ds.dims:
        raise ValueError(f"Scenario dimension '{scenario_dim}' not found in dataset dims {list(ds.dims)}.")

    ds = select_process_data(ds, bands, time_name, date_range)
    ds = ds.rename({y_name: 'y', x_name: 'x'}) if (y_name, x_name) != ('y', 'x') else ds
    resolution = infer_resolution(ds['x'])

    if scenario_dim is None:
        members = [(scenario, ds)]
    else:
        members = [(str(ds[scenario_dim].values[i]), ds.isel({scenario_dim: i}, drop=True))
                   for i in range(ds.sizes[scenario_dim])]

    grids = []
    for tag, member in members:
        for i in range(member.sizes[time_name]):
            step = member.isel({time_name: i})
            timestamp = pd.Timestamp(step[time_name].values)
            data = step.drop_vars(time_name).transpose(..., 'y', 'x')
            extra = [d for d in data.dims if d not in ('y', 'x')]
            if extra:
                raise ConfigurationError(f"Bands must be 2-D; unexpected dims {extra}. Select a level first.")
            grids.append(Grid(data=data, timestamp=timestamp, crs=crs, resolution=resolution, scenario=tag))
    logger.info("Built collection of %d grids (%d scenarios)", len(grids), len(members))
    return Collection(tuple(grids))


class RasterSource(ABC):
    """A provider of timestamped grids."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def close(self) -> None:
        pass

    @abstractmethod
    def query(self, dataset_id: str, band_names: Sequence[str], date_range) -> Collection:
        """Grids of ``dataset_id`` restricted to ``band_names`` and the ``[start, end)`` range."""


class NetCDFSource(RasterSource):
    """
    Raster source backed by netCDF files.

    Parameters
    ----------
    paths : mapping
        Dataset id to a file path or a list of paths (opened as one dataset).
    crs : str, optional
        Spatial reference of the files. Defaults to 'EPSG:4326'.
    scenario_dim : str, optional
        Dimension holding ensemble members, if any.
    chunks : optional
        Passed to xarray when opening. Defaults to 'auto'.
    """

    def __init__(self, paths: Mapping[str, Union[str, Path, Sequence[Union[str, Path]]]],
                 crs: str = 'EPSG:4326', scenario_dim: Optional[str] = None, chunks='auto'):
        self.paths = dict(paths)
        self.crs = crs
        self.scenario_dim = scenario_dim
        self.chunks = chunks
        self._open: Dict[str, xr.Dataset] = {}

    def _dataset(self, dataset_id: str) -> xr.Dataset:
        if dataset_id not in self.paths:
            raise ValueError(f"Unknown dataset '{dataset_id}'. Available: {list(self.paths)}")
        if dataset_id not in self._open:
            path = self.paths[dataset_id]
            if isinstance(path, (str, Path)):
                self._open[dataset_id] = xr.open_dataset(path, chunks=self.chunks)
            else:
                self._open[dataset_id] = xr.open_mfdataset(list(path), chunks=self.chunks)
            logger.info("Opened dataset '%s' from %s", dataset_id, path)
        return self._open[dataset_id]

    def query(self, dataset_id: str, band_names: Sequence[str], date_range) -> Collection:
        ds = self._dataset(dataset_id)
        return collection_from_dataset(ds, bands=band_names, crs=self.crs,
                                       scenario_dim=self.scenario_dim, date_range=date_range)

    def close(self) -> None:
        for dataset_id, ds in self._open.items():
            ds.close()
            logger.info("Closed dataset '%s'", dataset_id)
        self._open = {}


@dataclass(frozen=True)
class Region:
    """
    Rectangular region of interest in grid coordinate units.

    Parameters
    ----------
    bounds : tuple of float
        ``(x_min, y_min, x_max, y_max)``.
    buffer : float, optional
        Distance added on every side of ``bounds``. Defaults to 0.
    """
    bounds: Tuple[float, float, float, float]
    buffer: float = 0.0

    def __post_init__(self):
        x_min, y_min, x_max, y_max = self.bounds
        if x_min > x_max or y_min > y_max:
            raise ConfigurationError(f"Region bounds {self.bounds} are inverted.")
        if self.buffer < 0:
            raise ConfigurationError(f"Region buffer must be non-negative, got {self.buffer}.")

    @property
    def buffered_bounds(self) -> Tuple[float, float, float, float]:
        x_min, y_min, x_max, y_max = self.bounds
        b = self.buffer
        return x_min - b, y_min - b, x_max + b, y_max + b

    def clip(self, grid: Grid) -> Grid:
        """Cells of ``grid`` whose centre lies inside the buffered bounds."""
        x_min, y_min, x_max, y_max = self.buffered_bounds
        y_dim, x_dim = grid.dims
        xs, ys = grid.data[x_dim].values, grid.data[y_dim].values
        keep_x = np.flatnonzero((xs >= x_min) & (xs <= x_max))
        keep_y = np.flatnonzero((ys >= y_min) & (ys <= y_max))
        return grid.replace(data=grid.data.isel({x_dim: keep_x, y_dim: keep_y}))


class NetCDFSink:
    """
    Writes grids as netCDF files into ``output_dir``.

    The grid is written on its native spatial reference: requesting another
    resolution or CRS is a configuration error since no resampling is done.
    """

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def __enter__(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        return False

    def export(self, grid: Grid, region: Optional[Region], resolution: Optional[float],
               spatial_reference: str, destination_name: str) -> None:
        if spatial_reference != grid.crs:
            raise ConfigurationError(
                f"Export CRS {spatial_reference} differs from grid CRS {grid.crs}; resampling is not supported."
            )
        if resolution is not None and grid.resolution is not None and \
                not np.isclose(resolution, grid.resolution):
            raise ConfigurationError(
                f"Export resolution {resolution} differs from grid resolution {grid.resolution}; "
                "resampling is not supported."
            )
        clipped = region.clip(grid) if region is not None else grid
        data = clipped.data.assign_attrs(
            crs=clipped.crs,
            resolution=np.nan if clipped.resolution is None else clipped.resolution,
            timestamp=str(clipped.timestamp),
        )
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{destination_name}.nc"
        data.to_netcdf(path, engine='netcdf4')
        logger.info("Exported %d bands to %s", len(clipped.band_names), path)


__all__ = ['collection_from_dataset', 'RasterSource', 'NetCDFSource', 'Region', 'NetCDFSink']
