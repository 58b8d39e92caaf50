import xarray as xr
import numpy as np
import pandas as pd
import logging

from ..errors import ConfigurationError
from ..Regression.Design import SECONDS_PER_YEAR, attach_predictors
from ..Regression.Engine import summarize_pixel_trend
from ..pipeline import compute_seasonal_trends, daily_ensemble_means, seasonal_aggregates
from ..utils.coord_utils import get_grid_coord_names
from ..utils.data_utils import time_span, validate_date_range
from ..utils.io_utils import collection_from_dataset
from .Grouping import SeasonDefinition

logger = logging.getLogger(__name__)


@xr.register_dataset_accessor("climate_trends")
class TrendsAccessor:
    """
    Accessor for per-pixel seasonal trends of gridded climate datasets.

    The dataset is split into one grid per time step (and per ensemble member
    when ``scenario_dim`` is given), aggregated per day and season, and a
    linear model of every variable against time is fitted independently at
    each grid cell.

    Examples
    --------
    >>> trends = ds.climate_trends.seasonal_trends(['pr'], start_month=12, duration_months=3)
    >>> trends['time_pr_mean_djf']   # slope per year
    """

    # --------------------------------------------------------------------------
    # INITIALIZATION
    # --------------------------------------------------------------------------
    def __init__(self, xarray_obj):
        self._obj = xarray_obj

    # --------------------------------------------------------------------------
    # INTERNAL HELPER METHODS
    # --------------------------------------------------------------------------
    def _collection(self, variables, scenario_dim, crs, time_range):
        if isinstance(variables, str):
            variables = [variables]
        return collection_from_dataset(self._obj, bands=variables, crs=crs,
                                       scenario_dim=scenario_dim, date_range=time_range)

    def _years(self, season, years, time_range=None):
        if years is not None:
            return sorted(int(y) for y in years)
        time_name, _, _ = get_grid_coord_names(self._obj)
        if not time_name:
            raise ValueError("Dataset must contain a recognizable time coordinate.")
        times = pd.DatetimeIndex(self._obj[time_name].values)
        limit = None
        if time_range is not None:
            start, limit = validate_date_range(time_range)
            times = times[(times >= start) & (times < limit)]
        if len(times) == 0:
            return []
        start, end = time_span(times)
        if limit is not None:
            end = min(end, limit)
        # A season only counts when the data covers its whole window
        return [y for y in range(start.year - 1, end.year + 1)
                if start <= season.window(y)[0] and season.window(y)[1] <= end]

    def _restore_coords(self, result):
        """Give the output back the dataset's own latitude/longitude names."""
        _, y_name, x_name = get_grid_coord_names(self._obj)
        renames = {k: v for k, v in (('y', y_name), ('x', x_name)) if k != v}
        return result.rename(renames) if renames else result

    # ==============================================================================
    # PUBLIC TREND ANALYSIS METHODS
    # ==============================================================================
    def seasonal_trends(self, variables='air', start_month=1, duration_months=12, years=None,
                        statistics=('mean',), scenario_dim=None, time_range=None,
                        time_scale=SECONDS_PER_YEAR, crs='EPSG:4326', n_workers=None,
                        dask_client_kwargs=None):
        """
        Calculate per-pixel linear trends of seasonal aggregates.

        Parameters
        ----------
        variables : str or list of str, optional
            Variables to analyze. Defaults to 'air'.
        start_month : int, optional
            First month of the season. Defaults to 1.
        duration_months : int, optional
            Season length in months (1-12); may cross the year boundary.
            Defaults to 12 (annual).
        years : iterable of int, optional
            Anchor years. Defaults to every year whose whole season window
            lies inside the time span of the data.
        statistics : sequence of str, optional
            Seasonal statistics among 'mean', 'max', 'min', 'range'.
        scenario_dim : str, optional
            Dimension of ensemble members / scenarios. Each member is averaged
            separately per day and gets its own trend bands.
        time_range : slice or tuple, optional
            Half-open ``[start, end)`` period to use.
        time_scale : float, optional
            Seconds per unit of the time axis; the default reports slopes per year.
        crs : str, optional
            Spatial reference of the dataset.
        n_workers : int, optional
            Threads for the tiled regression.
        dask_client_kwargs : dict, optional
            Compute on a dask.distributed client created with these arguments.

        Returns
        -------
        xr.Dataset
            Bands ``constant_{response}`` (intercept) and ``time_{response}``
            (slope), NaN where a fit is undefined.
        """
        season = SeasonDefinition(start_month, duration_months)
        collection = self._collection(variables, scenario_dim, crs, time_range)
        years = self._years(season, years, time_range)
        logger.info("Seasonal trends: variables=%s, season=%s, %d years", variables, season.label, len(years))
        trends = compute_seasonal_trends([collection], season, years, statistics=statistics,
                                         time_scale=time_scale, n_workers=n_workers,
                                         dask_client_kwargs=dask_client_kwargs)
        return self._restore_coords(trends.data)

    def point_trend(self, variable='air', latitude=None, longitude=None, start_month=1,
                    duration_months=12, years=None, statistic='mean', scenario_dim=None,
                    time_range=None, time_scale=SECONDS_PER_YEAR):
        """
        Regression statistics of one variable's seasonal series at the grid cell nearest a point.

        Parameters
        ----------
        variable : str, optional
            Variable to analyze. Defaults to 'air'.
        latitude, longitude : float
            Location; the nearest grid cell is used.
        start_month, duration_months : int, optional
            Season definition. Defaults to the calendar year.
        years : iterable of int, optional
            Anchor years. Defaults to every fully covered season year.
        statistic : str, optional
            Seasonal statistic. Defaults to 'mean'.
        scenario_dim : str, optional
            Ensemble dimension; results are then keyed by scenario.
        time_range : slice or tuple, optional
            Half-open period to use.
        time_scale : float, optional
            Seconds per unit of the time axis.

        Returns
        -------
        pd.DataFrame
            One row per response band with slope, intercept, r_value, p_value,
            standard_error_slope and n_samples.
        """
        if latitude is None or longitude is None:
            raise ValueError("Both latitude and longitude are required for a point trend.")
        _, y_name, x_name = get_grid_coord_names(self._obj)
        y_index = int(np.abs(self._obj[y_name].values - latitude).argmin())
        x_index = int(np.abs(self._obj[x_name].values - longitude).argmin())

        season = SeasonDefinition(start_month, duration_months)
        years = self._years(season, years, time_range)
        if not years:
            raise ConfigurationError("At least one anchor year is required.")
        collection = self._collection(variable, scenario_dim, 'EPSG:4326', time_range)
        daily = daily_ensemble_means([collection])
        aggregates = seasonal_aggregates(daily, season, years, [statistic])
        samples = [attach_predictors(g, time_scale=time_scale) for g in aggregates.values()]

        rows = {response: summarize_pixel_trend(samples, response, y_index, x_index)
                for response in samples[0].response_names}
        return pd.DataFrame.from_dict(rows, orient='index')


__all__ = ['TrendsAccessor']
