from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterable, Optional, Sequence, Tuple
import logging
import numbers
import warnings

import pandas as pd

from ..Grids.Grid import Collection, Grid
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

MONTH_INITIALS = 'jfmamjjasond'


def day_key(grid: Grid) -> str:
    """Calendar day of a grid as 'YYYY-MM-DD'."""
    return grid.day


def year_key(grid: Grid) -> int:
    """Calendar year of a grid's timestamp."""
    return grid.timestamp.year


@dataclass(frozen=True)
class SeasonDefinition:
    """
    A contiguous window of whole months, anchored on a start month.

    For anchor year ``Y`` the window is ``[Y-start_month-01, +duration_months)``.
    A window may run into year ``Y + 1``; since ``duration_months <= 12`` the
    windows of different anchor years never overlap, so every timestamp
    belongs to at most one anchor year.

    Parameters
    ----------
    start_month : int
        First month of the season, 1 to 12.
    duration_months : int
        Length of the season in months, 1 to 12.
    """
    start_month: int
    duration_months: int

    def __post_init__(self):
        for name in ('start_month', 'duration_months'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ConfigurationError(f"Season {name} must be an integer, got {value!r}.")
            object.__setattr__(self, name, int(value))
        if not 1 <= self.start_month <= 12:
            raise ConfigurationError(f"Season start month must be in [1, 12], got {self.start_month}.")
        if not 1 <= self.duration_months <= 12:
            raise ConfigurationError(
                f"Season duration must be in [1, 12] months, got {self.duration_months}."
            )

    @property
    def months(self) -> Tuple[int, ...]:
        return tuple((self.start_month - 1 + i) % 12 + 1 for i in range(self.duration_months))

    @property
    def crosses_year(self) -> bool:
        return self.start_month + self.duration_months - 1 > 12

    @property
    def label(self) -> str:
        """Month initials of the season, e.g. 'djf'; 'annual' for a full year starting in January."""
        if self.duration_months == 12 and self.start_month == 1:
            return 'annual'
        return ''.join(MONTH_INITIALS[m - 1] for m in self.months)

    def window(self, year: int) -> Tuple[pd.Timestamp, pd.Timestamp]:
        """Half-open ``(start, end)`` bounds of the season anchored on ``year``."""
        start = pd.Timestamp(year=int(year), month=self.start_month, day=1)
        return start, start + pd.DateOffset(months=self.duration_months)

    def contains(self, year: int, timestamp) -> bool:
        start, end = self.window(year)
        return start <= pd.Timestamp(timestamp) < end

    def anchor_year(self, timestamp) -> Optional[int]:
        """The unique anchor year whose window contains ``timestamp``, or None."""
        timestamp = pd.Timestamp(timestamp)
        # Only the windows anchored on this year or the previous one can reach it.
        for year in (timestamp.year, timestamp.year - 1):
            if self.contains(year, timestamp):
                return year
        return None


def group_by_day(collection: Collection) -> Dict[Hashable, Collection]:
    return collection.group_by_key(day_key)


def group_by_year(collection: Collection) -> Dict[Hashable, Collection]:
    return collection.group_by_key(year_key)


def group_by_season(collection: Collection, season: SeasonDefinition) -> Dict[Hashable, Collection]:
    """Group by anchor year of ``season``; grids outside every window are dropped."""
    return collection.filter(lambda g: season.anchor_year(g.timestamp) is not None).group_by_key(
        lambda g: season.anchor_year(g.timestamp)
    )


def join_on_window(primary_keys: Iterable[Hashable],
                   collection: Collection,
                   window_predicate: Callable[[Hashable, pd.Timestamp], bool]) -> Dict[Hashable, Collection]:
    """
    One-to-many join of primary keys against the grids of a collection.

    For every distinct primary key, collect the grids whose timestamp
    satisfies ``window_predicate(key, timestamp)``. A key without matches is
    kept with an empty collection.

    Parameters
    ----------
    primary_keys : iterable
        Keys to join on, e.g. anchor years. Duplicates are collapsed.
    collection : Collection
        Secondary grids.
    window_predicate : callable
        ``(key, timestamp) -> bool`` membership test.

    Returns
    -------
    dict
        Mapping of key to Collection, keys in sorted order.
    """
    joined = {}
    for key in sorted(set(primary_keys)):
        joined[key] = collection.filter(lambda g, key=key: window_predicate(key, g.timestamp))
        logger.debug("Window join: key %s matched %d grids", key, len(joined[key]))
    return joined


def join_season(collection: Collection, season: SeasonDefinition,
                years: Iterable[int]) -> Dict[int, Collection]:
    """
    Attach to every anchor year the grids falling inside its season window.

    Years with no data are kept with an empty collection and a warning is
    issued, mirroring the empty-season behaviour of seasonal filtering.
    """
    joined = join_on_window(years, collection, season.contains)
    empty = [year for year, group in joined.items() if group.is_empty]
    if empty:
        warnings.warn(
            f"No data found for season '{season.label.upper()}' in years {empty}.",
            UserWarning
        )
    return joined


def merge_sources(collections: Sequence[Collection],
                  key_fn: Callable[[Grid], Hashable] = day_key,
                  how: str = 'inner') -> Dict[Hashable, Collection]:
    """
    Merge several sources at a shared key.

    Parameters
    ----------
    collections : sequence of Collection
        The sources, e.g. one collection per model. All grids must share one
        spatial reference.
    key_fn : callable, optional
        Key extracted from each grid. Defaults to the calendar day.
    how : {'inner', 'outer'}, optional
        'inner' keeps keys present in every source, 'outer' keeps keys present
        in any source. Defaults to 'inner'.

    Returns
    -------
    dict
        Mapping of key to the union of the matching grids of all sources.
    """
    if how not in ('inner', 'outer'):
        raise ValueError(f"Unknown merge mode '{how}'. Use 'inner' or 'outer'.")
    if not collections:
        return {}
    merged = Collection().merge(*collections)
    groups = merged.group_by_key(key_fn)
    if how == 'inner' and len(collections) > 1:
        shared = set(groups)
        for source in collections:
            shared &= {key_fn(g) for g in source}
        dropped = len(groups) - len(shared)
        if dropped:
            logger.info("Inner merge dropped %d keys not present in every source", dropped)
        groups = {key: group for key, group in groups.items() if key in shared}
    return groups


__all__ = [
    'SeasonDefinition', 'day_key', 'year_key', 'group_by_day', 'group_by_year',
    'group_by_season', 'join_on_window', 'join_season', 'merge_sources'
]
