"""
Climate Trends Toolkit

A Python package for per-pixel seasonal trend analysis of gridded climate data.
"""

__version__ = "0.1.0"

# Import and register accessors
def accessors():
    """
    Register all custom accessors for xarray objects.

    This ensures that the `.climate_trends` extension is available on
    xarray Dataset objects.
    """

    from climate_trends.TimeSeries.Trends import TrendsAccessor

accessors()

from climate_trends.errors import ConfigurationError
from climate_trends.Grids.Grid import Grid, Collection
from climate_trends.TimeSeries.Grouping import SeasonDefinition
from climate_trends.config import TrendConfig, SeasonConfig
from climate_trends.pipeline import compute_seasonal_trends, run_pipeline

__all__ = [
    'ConfigurationError', 'Grid', 'Collection', 'SeasonDefinition',
    'TrendConfig', 'SeasonConfig', 'compute_seasonal_trends', 'run_pipeline'
]
