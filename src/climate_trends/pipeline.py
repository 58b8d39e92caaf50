"""
Seasonal trend pipeline.

Daily ensemble merge -> daily mean per scenario -> season-of-year join ->
seasonal aggregates -> design matrix -> per-pixel regression -> labeled
coefficient grid.
"""
from typing import Dict, Iterable, Optional, Sequence
import logging

from .config import TrendConfig
from .errors import ConfigurationError
from .Grids.Grid import Collection, Grid
from .Regression.Design import SECONDS_PER_YEAR, attach_predictors
from .Regression.Engine import fit_linear_trends
from .TimeSeries.Aggregation import STATISTICS, reduce, reduce_by_scenario
from .TimeSeries.Grouping import SeasonDefinition, day_key, join_season, merge_sources
from .utils.io_utils import NetCDFSink, RasterSource, Region

logger = logging.getLogger(__name__)


def _check_inputs(sources: Sequence[Collection], statistics: Sequence[str]) -> Grid:
    """Fail fast on anything that would break later stages; return a template grid."""
    if not statistics:
        raise ConfigurationError("At least one statistic is required.")
    unknown = [s for s in statistics if s not in STATISTICS]
    if unknown:
        raise ConfigurationError(f"Unknown statistics {unknown}. Supported: {list(STATISTICS)}")
    non_empty = [s for s in sources if not s.is_empty]
    if not non_empty:
        raise ConfigurationError("All sources are empty; nothing to aggregate.")
    template = non_empty[0].template()
    tagged = untagged = 0
    for source in non_empty:
        for grid in source:
            template.require_same_grid(grid, bands=True)
            if grid.scenario is None:
                untagged += 1
            else:
                tagged += 1
    if tagged and untagged:
        raise ConfigurationError(
            f"{untagged} grids carry no scenario tag while {tagged} do; "
            "tag every source or none of them."
        )
    return template


def daily_ensemble_means(sources: Sequence[Collection], how: str = 'inner') -> Collection:
    """
    Merge sources by calendar day and average each day per scenario.

    Every output grid carries one block of bands per scenario
    (``{band}_{scenario}``); grids without a scenario tag are averaged together
    under their plain band names.
    """
    template = _check_inputs(sources, ['mean'])
    days = merge_sources(sources, key_fn=day_key, how=how)
    scenarios = Collection().merge(*sources).scenarios or None
    daily = []
    for day, group in days.items():
        stamp = group.template().timestamp.normalize()
        daily.append(reduce_by_scenario(group, 'mean', scenarios=scenarios,
                                        template=template, timestamp=stamp))
    logger.info("Computed daily ensemble means for %d days", len(daily))
    return Collection(tuple(daily))


def seasonal_aggregates(daily: Collection, season: SeasonDefinition, years: Iterable[int],
                        statistics: Sequence[str] = ('mean',)) -> Dict[int, Grid]:
    """
    Aggregate daily grids per anchor year of ``season``.

    Bands are named ``{band}_{statistic}_{season label}``; with several
    statistics their bands are concatenated into one grid per year. A year
    without data yields an all no-data grid stamped with its window start.
    """
    template = daily.template()
    if template is None:
        raise ConfigurationError("No daily grids to aggregate.")
    aggregates = {}
    for year, group in join_season(daily, season, years).items():
        window_start = season.window(year)[0]
        parts = [reduce(group, stat, f"{stat}_{season.label}", template=template, timestamp=window_start)
                 for stat in statistics]
        aggregates[year] = parts[0].concat_bands(parts[1:]).replace(year=year, timestamp=window_start)
    logger.info("Aggregated season '%s' for %d years", season.label, len(aggregates))
    return aggregates


def compute_seasonal_trends(sources: Sequence[Collection],
                            season: SeasonDefinition,
                            years: Iterable[int],
                            statistics: Sequence[str] = ('mean',),
                            time_scale: float = SECONDS_PER_YEAR,
                            how: str = 'inner',
                            **fit_kwargs) -> Grid:
    """
    Per-pixel linear trends of the seasonal aggregates of one or more sources.

    Parameters
    ----------
    sources : sequence of Collection
        Daily (or sub-daily) grids, optionally scenario-tagged, one collection
        per source.
    season : SeasonDefinition
        The season window.
    years : iterable of int
        Anchor years of the season.
    statistics : sequence of str, optional
        Seasonal statistics. Defaults to ('mean',).
    time_scale : float, optional
        Seconds per unit of the time predictor. Defaults to one year.
    how : {'inner', 'outer'}, optional
        How sources are merged on calendar days. Defaults to 'inner'.
    **fit_kwargs
        Passed to :func:`climate_trends.Regression.Engine.fit_linear_trends`
        (``n_workers``, ``dask_client_kwargs``, ``target_chunk_mb``, ``progress``).

    Returns
    -------
    Grid
        Coefficient grid with bands ``constant_{response}`` and ``time_{response}``.

    Raises
    ------
    ConfigurationError
        On mismatched spatial references or bands, unknown statistics or an
        invalid season, before any aggregation is done.
    """
    years = sorted(set(int(y) for y in years))
    if not years:
        raise ConfigurationError("At least one anchor year is required.")
    _check_inputs(sources, statistics)

    daily = daily_ensemble_means(sources, how=how)
    aggregates = seasonal_aggregates(daily, season, years, statistics)
    samples = [attach_predictors(grid, time_scale=time_scale) for grid in aggregates.values()]
    logger.info("Fitting trends on %d seasonal samples", len(samples))
    return fit_linear_trends(samples, **fit_kwargs)


def run_pipeline(config: TrendConfig, source: RasterSource, sink: NetCDFSink,
                 region: Optional[Region] = None) -> Dict[str, Grid]:
    """
    Query, aggregate, fit and export trends for every configured season.

    Returns
    -------
    dict
        Destination name to the exported coefficient grid.
    """
    config.validate()
    results = {}
    with source, sink:
        collection = source.query(config.dataset_id, config.bands, config.date_range)
        logger.info("Queried %d grids from '%s'", len(collection), config.dataset_id)
        for season in config.season_definitions():
            trends = compute_seasonal_trends(
                [collection], season, config.anchor_years(season),
                statistics=config.statistics, time_scale=config.time_scale,
                n_workers=config.n_workers, target_chunk_mb=config.target_chunk_mb,
                dask_client_kwargs=config.dask_client_kwargs,
            )
            name = config.destination_name(season)
            sink.export(trends, region, trends.resolution, config.crs, name)
            results[name] = trends
    return results


__all__ = ['daily_ensemble_means', 'seasonal_aggregates', 'compute_seasonal_trends', 'run_pipeline']
