"""
climate_trends.config
=====================
Run configuration for the seasonal trend pipeline.

A `TrendConfig` describes one analysis completely: which dataset and bands
to read, the analysis period, the seasons and statistics to aggregate, and
how the output is named. It is read once at startup.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .errors import ConfigurationError
from .Regression.Design import SECONDS_PER_YEAR
from .TimeSeries.Aggregation import STATISTICS
from .TimeSeries.Grouping import SeasonDefinition


@dataclass
class SeasonConfig:
    """A season as plain numbers: first month and length in months."""
    start_month: int = 12
    duration_months: int = 3

    def to_definition(self) -> SeasonDefinition:
        return SeasonDefinition(int(self.start_month), int(self.duration_months))


@dataclass
class TrendConfig:
    """
    Parameters of one trend analysis.

    ``years`` defaults to every anchor year whose whole season window lies
    inside ``[start_date, end_date)``.
    """
    dataset_id: str
    bands: List[str]
    start_date: str
    end_date: str
    seasons: List[SeasonConfig] = field(default_factory=lambda: [SeasonConfig()])
    statistics: List[str] = field(default_factory=lambda: ['mean'])
    years: Optional[List[int]] = None
    output_prefix: str = 'trend'
    crs: str = 'EPSG:4326'
    time_scale: float = SECONDS_PER_YEAR
    n_workers: Optional[int] = None
    target_chunk_mb: float = 64
    dask_client_kwargs: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        self.seasons = [s if isinstance(s, SeasonConfig) else SeasonConfig(**s) for s in self.seasons]

    # ---------------------------------------------------------------------------
    # Validation
    # ---------------------------------------------------------------------------
    def validate(self) -> 'TrendConfig':
        if not self.bands:
            raise ConfigurationError("At least one band must be selected.")
        if pd.Timestamp(self.end_date) <= pd.Timestamp(self.start_date):
            raise ConfigurationError(f"end_date {self.end_date} must be after start_date {self.start_date}.")
        if not self.seasons:
            raise ConfigurationError("At least one season must be configured.")
        for season in self.seasons:
            season.to_definition()
        unknown = [s for s in self.statistics if s not in STATISTICS]
        if unknown or not self.statistics:
            raise ConfigurationError(f"Unknown statistics {unknown}. Supported: {list(STATISTICS)}")
        if self.time_scale <= 0:
            raise ConfigurationError(f"time_scale must be positive, got {self.time_scale}.")
        return self

    # ---------------------------------------------------------------------------
    # Derived values
    # ---------------------------------------------------------------------------
    @property
    def date_range(self) -> Tuple[pd.Timestamp, pd.Timestamp]:
        return pd.Timestamp(self.start_date), pd.Timestamp(self.end_date)

    def season_definitions(self) -> List[SeasonDefinition]:
        return [s.to_definition() for s in self.seasons]

    def anchor_years(self, season: SeasonDefinition) -> List[int]:
        if self.years is not None:
            return sorted(int(y) for y in self.years)
        start, end = self.date_range
        # Whole windows only: the source is queried over [start, end) and nothing more
        return [y for y in range(start.year - 1, end.year + 1)
                if start <= season.window(y)[0] and season.window(y)[1] <= end]

    def destination_name(self, season: SeasonDefinition) -> str:
        return f"{self.output_prefix}_{self.dataset_id}_{season.label}"

    # ---------------------------------------------------------------------------
    # Serialisation
    # ---------------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'TrendConfig':
        # Nested season dicts are converted in __post_init__
        return cls(**dict(d))


__all__ = ['SeasonConfig', 'TrendConfig']
