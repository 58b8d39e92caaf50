from typing import Optional, Sequence
import logging
import warnings

import pandas as pd
import xarray as xr

from ..Grids.Grid import Collection, Grid
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

STATISTICS = ('mean', 'max', 'min', 'range')


def _join_tags(*tags: Optional[str]) -> str:
    return '_'.join(t for t in tags if t)


def _reduce_dataset(stacked: xr.Dataset, statistic: str) -> xr.Dataset:
    # All-NaN pixels reduce to NaN; numpy warns about them, which is expected here.
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', RuntimeWarning)
        if statistic == 'mean':
            return stacked.mean(dim='sample', skipna=True, keep_attrs=True)
        if statistic == 'max':
            return stacked.max(dim='sample', skipna=True, keep_attrs=True)
        if statistic == 'min':
            return stacked.min(dim='sample', skipna=True, keep_attrs=True)
        # range is derived from the max and min reductions, not a separate pass
        return _reduce_dataset(stacked, 'max') - _reduce_dataset(stacked, 'min')


def reduce(group: Collection, statistic: str = 'mean', band_suffix: str = '',
           template: Optional[Grid] = None, timestamp=None) -> Grid:
    """
    Reduce a group of grids into one grid with a pixelwise statistic.

    Each band is reduced independently. At every pixel only the members where
    that pixel is not no-data contribute; a pixel that is no-data in every
    member stays no-data.

    Parameters
    ----------
    group : Collection
        Grids to reduce. They must share spatial reference and band names.
    statistic : {'mean', 'max', 'min', 'range'}, optional
        The statistic. 'range' is the elementwise difference of the 'max' and
        'min' reductions. Defaults to 'mean'.
    band_suffix : str, optional
        Appended to every output band name as ``{band}_{band_suffix}``.
    template : Grid, optional
        Spatial reference and band names used when ``group`` is empty.
    timestamp : optional
        Timestamp of the result. Defaults to the earliest member timestamp
        (or the template's for an empty group).

    Returns
    -------
    Grid
        The aggregate. For an empty group, a grid whose bands are all no-data.

    Raises
    ------
    ConfigurationError
        If the statistic is unknown, members disagree on spatial reference or
        bands, or the group is empty and no template is given.
    """
    if statistic not in STATISTICS:
        raise ConfigurationError(f"Unknown statistic '{statistic}'. Supported: {list(STATISTICS)}")

    if group.is_empty:
        if template is None:
            raise ConfigurationError("Cannot reduce an empty group without a template grid.")
        stamp = template.timestamp if timestamp is None else timestamp
        return template.empty_like(timestamp=stamp, scenario=template.scenario, year=template.year) \
            .add_suffix(band_suffix)

    group.require_uniform_bands()
    first = group.template()
    if template is not None:
        first.require_same_grid(template, bands=True)

    stacked = xr.concat([g.data for g in group], dim='sample', coords='minimal',
                        compat='override', join='override')
    reduced = _reduce_dataset(stacked, statistic)
    reduced = reduced.drop_vars([c for c in reduced.coords if c not in first.dims])

    years = {g.year for g in group}
    scenarios = {g.scenario for g in group}
    result = first.replace(
        data=reduced[list(first.band_names)],
        timestamp=first.timestamp if timestamp is None else pd.Timestamp(timestamp),
        year=years.pop() if len(years) == 1 else None,
        scenario=scenarios.pop() if len(scenarios) == 1 else None,
    )
    return result.add_suffix(band_suffix)


def reduce_by_scenario(group: Collection, statistic: str = 'mean', band_suffix: str = '',
                       scenarios: Optional[Sequence[str]] = None,
                       template: Optional[Grid] = None, timestamp=None) -> Grid:
    """
    Reduce a mixed-scenario group once per scenario and concatenate the results.

    Output bands are named ``{band}_{band_suffix}_{scenario}``, one block per
    scenario in the order of ``scenarios``. A scenario with no member in the
    group still contributes its bands, filled with no-data.

    Parameters
    ----------
    group : Collection
        Grids tagged with scenarios.
    statistic : str, optional
        Statistic passed to :func:`reduce`. Defaults to 'mean'.
    band_suffix : str, optional
        Tag placed between the band name and the scenario.
    scenarios : sequence of str, optional
        Scenarios to produce. Defaults to the sorted scenarios present in the group.
    template : Grid, optional
        Used for band names and spatial reference when the group is empty.
    timestamp : optional
        Timestamp of the result. Defaults to the earliest member timestamp.

    Returns
    -------
    Grid
        One grid carrying the per-scenario aggregates band-wise, untagged.

    Raises
    ------
    ConfigurationError
        If the group mixes scenario-tagged and untagged grids.
    """
    scenarios = list(scenarios) if scenarios is not None else list(group.scenarios)
    if not scenarios:
        return reduce(group, statistic, band_suffix, template=template, timestamp=timestamp)
    untagged = group.filter_equals('scenario', None)
    if not untagged.is_empty:
        raise ConfigurationError(
            f"{len(untagged)} grids carry no scenario tag; they cannot be split into scenario bands."
        )

    base = group.template() or template
    if base is None:
        raise ConfigurationError("Cannot reduce an empty group without a template grid.")
    base = base.replace(scenario=None)
    stamp = (group.template().timestamp if not group.is_empty else base.timestamp) \
        if timestamp is None else timestamp

    parts = []
    for scenario in scenarios:
        members = group.filter_equals('scenario', scenario)
        if members.is_empty:
            warnings.warn(
                f"No members for scenario '{scenario}' on {pd.Timestamp(stamp).date()}; "
                "its bands are filled with no-data.",
                UserWarning
            )
        part = reduce(members, statistic, _join_tags(band_suffix, scenario),
                      template=base, timestamp=stamp)
        parts.append(part)

    combined = parts[0].concat_bands(parts[1:])
    return combined.replace(scenario=None)


__all__ = ['STATISTICS', 'reduce', 'reduce_by_scenario']
