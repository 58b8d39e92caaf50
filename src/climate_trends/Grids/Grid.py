from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Hashable, Iterable, Iterator, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd
import xarray as xr

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Grid:
    """
    A single timestamped raster snapshot with one or more named bands.

    Each band is a 2-D data variable of ``data`` over the same two spatial
    dimensions. Missing values are stored as NaN. A Grid is never modified in
    place; every operation returns a new Grid.

    Parameters
    ----------
    data : xr.Dataset
        The band values. Every data variable must be two-dimensional and share
        the same dimensions.
    timestamp : pd.Timestamp or str
        The instant the snapshot refers to.
    crs : str, optional
        Identifier of the spatial reference (e.g. 'EPSG:4326').
    resolution : float or None, optional
        Nominal cell size in the units of ``crs``.
    scenario : str or None, optional
        Scenario or model tag for ensemble members.
    year : int or None, optional
        Anchor year for yearly or seasonal aggregates.
    """
    data: xr.Dataset
    timestamp: pd.Timestamp
    crs: str = 'EPSG:4326'
    resolution: Optional[float] = None
    scenario: Optional[str] = None
    year: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.data, xr.Dataset):
            raise TypeError(f"Grid data must be an xarray Dataset, got {type(self.data)}")
        object.__setattr__(self, 'timestamp', pd.Timestamp(self.timestamp))
        dims = None
        for name, band in self.data.data_vars.items():
            if band.ndim != 2:
                raise ConfigurationError(f"Band '{name}' has {band.ndim} dims, expected 2.")
            if dims is None:
                dims = band.dims
            elif band.dims != dims:
                raise ConfigurationError(
                    f"Band '{name}' has dims {band.dims}, other bands use {dims}."
                )

    # --------------------------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------------------------
    @property
    def band_names(self) -> Tuple[str, ...]:
        return tuple(str(name) for name in self.data.data_vars)

    @property
    def dims(self) -> Tuple[Hashable, ...]:
        for band in self.data.data_vars.values():
            return band.dims
        return tuple(self.data.dims)

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.data.sizes[d] for d in self.dims)

    @property
    def day(self) -> str:
        return self.timestamp.strftime('%Y-%m-%d')

    # --------------------------------------------------------------------------
    # SPATIAL REFERENCE CHECKS
    # --------------------------------------------------------------------------
    def spatial_mismatch(self, other: 'Grid') -> Optional[str]:
        """
        Describe how the spatial reference of ``other`` differs from this one.

        Returns
        -------
        str or None
            A human readable reason, or None if both grids share projection,
            resolution, dimensions, shape and coordinate values.
        """
        if self.crs != other.crs:
            return f"CRS differs ({self.crs} vs {other.crs})"
        if self.resolution != other.resolution:
            return f"resolution differs ({self.resolution} vs {other.resolution})"
        if self.dims != other.dims:
            return f"spatial dims differ ({self.dims} vs {other.dims})"
        if self.shape != other.shape:
            return f"shape differs ({self.shape} vs {other.shape})"
        for dim in self.dims:
            if dim in self.data.coords and dim in other.data.coords:
                if not np.array_equal(self.data[dim].values, other.data[dim].values):
                    return f"coordinate '{dim}' differs"
        return None

    def require_same_grid(self, other: 'Grid', bands: bool = False) -> None:
        """Raise ConfigurationError unless ``other`` shares this spatial reference (and bands)."""
        reason = self.spatial_mismatch(other)
        if reason is None and bands and self.band_names != other.band_names:
            reason = f"band names differ ({list(self.band_names)} vs {list(other.band_names)})"
        if reason is not None:
            raise ConfigurationError(f"Grids cannot be combined: {reason}.")

    # --------------------------------------------------------------------------
    # DERIVED GRIDS
    # --------------------------------------------------------------------------
    def replace(self, **changes) -> 'Grid':
        return replace(self, **changes)

    def select(self, bands: Sequence[str]) -> 'Grid':
        missing = [b for b in bands if b not in self.data.data_vars]
        if missing:
            raise ValueError(f"Bands {missing} not found. Available: {list(self.band_names)}")
        return self.replace(data=self.data[list(bands)])

    def add_suffix(self, suffix: str) -> 'Grid':
        """Append ``_suffix`` to every band name."""
        if not suffix:
            return self
        return self.replace(data=self.data.rename({b: f"{b}_{suffix}" for b in self.band_names}))

    def concat_bands(self, others: Iterable['Grid']) -> 'Grid':
        """Concatenate the bands of ``others`` after the bands of this grid."""
        merged = dict(self.data.data_vars)
        for other in others:
            self.require_same_grid(other)
            clash = set(merged) & set(other.data.data_vars)
            if clash:
                raise ConfigurationError(f"Band names {sorted(clash)} appear in more than one grid.")
            merged.update(other.data.data_vars)
        return self.replace(data=xr.Dataset(merged, coords=self.data.coords, attrs=self.data.attrs))

    def empty_like(self, band_names: Optional[Sequence[str]] = None, **changes) -> 'Grid':
        """A grid on the same spatial reference whose bands are entirely no-data."""
        names = list(band_names) if band_names is not None else list(self.band_names)
        shape = self.shape
        coords = {d: self.data[d] for d in self.dims if d in self.data.coords}
        bands = {name: (self.dims, np.full(shape, np.nan)) for name in names}
        return self.replace(data=xr.Dataset(bands, coords=coords), **changes)


def _member_order(grid: Grid) -> Tuple[pd.Timestamp, str]:
    return grid.timestamp, grid.scenario or ''


@dataclass(frozen=True, eq=False)
class Collection:
    """
    An unordered multiset of Grids sharing one spatial reference.

    Operations never mutate the collection; they return new collections.
    Iteration order is by ``(timestamp, scenario)`` so that everything derived
    from a collection is independent of the order its grids were read in.
    """
    grids: Tuple[Grid, ...] = field(default_factory=tuple)

    def __post_init__(self):
        grids = tuple(sorted(self.grids, key=_member_order))
        if grids:
            first = grids[0]
            for grid in grids[1:]:
                first.require_same_grid(grid)
        object.__setattr__(self, 'grids', grids)

    def __len__(self) -> int:
        return len(self.grids)

    def __iter__(self) -> Iterator[Grid]:
        return iter(self.grids)

    def __getitem__(self, index: int) -> Grid:
        return self.grids[index]

    @property
    def is_empty(self) -> bool:
        return not self.grids

    @property
    def band_names(self) -> Tuple[str, ...]:
        return self.grids[0].band_names if self.grids else ()

    @property
    def scenarios(self) -> Tuple[str, ...]:
        return tuple(sorted({g.scenario for g in self.grids if g.scenario is not None}))

    def template(self) -> Optional[Grid]:
        return self.grids[0] if self.grids else None

    def require_uniform_bands(self) -> None:
        """Raise ConfigurationError if members carry different band names or ordering."""
        if not self.grids:
            return
        first = self.grids[0]
        for grid in self.grids[1:]:
            first.require_same_grid(grid, bands=True)

    # --------------------------------------------------------------------------
    # FILTERS
    # --------------------------------------------------------------------------
    def filter(self, predicate: Callable[[Grid], bool]) -> 'Collection':
        return Collection(tuple(g for g in self.grids if predicate(g)))

    def filter_by_date_range(self, start, end) -> 'Collection':
        """Grids whose timestamp lies in the half-open interval ``[start, end)``."""
        start, end = pd.Timestamp(start), pd.Timestamp(end)
        if end < start:
            raise ValueError(f"Date range end {end} is before start {start}.")
        return self.filter(lambda g: start <= g.timestamp < end)

    def filter_equals(self, attribute: str, value: Any) -> 'Collection':
        """Grids whose ``attribute`` tag (e.g. 'scenario', 'year') equals ``value``."""
        return self.filter(lambda g: getattr(g, attribute) == value)

    def distinct(self, key_fn: Callable[[Grid], Hashable]) -> 'Collection':
        """Keep the first grid, in ``(timestamp, scenario)`` order, for each key value."""
        seen = set()
        kept = []
        for grid in self.grids:
            key = key_fn(grid)
            if key not in seen:
                seen.add(key)
                kept.append(grid)
        return Collection(tuple(kept))

    # --------------------------------------------------------------------------
    # GROUPING
    # --------------------------------------------------------------------------
    def group_by_key(self, key_fn: Callable[[Grid], Hashable]) -> Dict[Hashable, 'Collection']:
        """
        Partition the collection by value of ``key_fn``.

        Returns
        -------
        dict
            Mapping of key to sub-collection, with keys in sorted order.
        """
        buckets: Dict[Hashable, list] = {}
        for grid in self.grids:
            buckets.setdefault(key_fn(grid), []).append(grid)
        return {key: Collection(tuple(buckets[key])) for key in sorted(buckets)}

    @property
    def by_day(self) -> Dict[Hashable, 'Collection']:
        return self.group_by_key(lambda g: g.day)

    @property
    def by_year(self) -> Dict[Hashable, 'Collection']:
        return self.group_by_key(lambda g: g.timestamp.year)

    @property
    def by_scenario(self) -> Dict[Hashable, 'Collection']:
        return self.filter(lambda g: g.scenario is not None).group_by_key(lambda g: g.scenario)

    def merge(self, *others: 'Collection') -> 'Collection':
        grids = list(self.grids)
        for other in others:
            grids.extend(other.grids)
        return Collection(tuple(grids))

    def stack(self, band: str, dim: str = 'sample') -> xr.DataArray:
        """Stack one band of every member along a new ``dim`` dimension."""
        if not self.grids:
            raise ValueError("Cannot stack an empty collection.")
        arrays = [g.data[band].drop_vars([c for c in g.data[band].coords if c not in g.dims])
                  for g in self.grids]
        return xr.concat(arrays, dim=dim, coords='minimal', compat='override', join='override')


__all__ = ['Grid', 'Collection']
