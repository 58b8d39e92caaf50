import xarray as xr
import numpy as np
import pandas as pd
from pandas.tseries.frequencies import to_offset
from typing import Optional, Sequence, Tuple
import warnings


def validate_date_range(date_range) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """
    Normalize a ``(start, end)`` pair or a slice into two timestamps.

    Parameters
    ----------
    date_range : tuple or slice
        Start and end of a half-open interval ``[start, end)``.

    Returns
    -------
    Tuple[pd.Timestamp, pd.Timestamp]

    Raises
    ------
    ValueError
        If either bound is missing or the end precedes the start.
    """
    if isinstance(date_range, slice):
        start, end = date_range.start, date_range.stop
    else:
        try:
            start, end = date_range
        except (TypeError, ValueError):
            raise ValueError(f"date_range must be a (start, end) pair or a slice, got {date_range!r}")
    if start is None or end is None:
        raise ValueError("date_range needs both a start and an end.")
    start, end = pd.Timestamp(start), pd.Timestamp(end)
    if end < start:
        raise ValueError(f"Requested end {end} is before start {start}.")
    return start, end


def time_span(times) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """
    Half-open ``[first, end)`` period covered by a series of time steps.

    The last step is taken to cover one sampling interval: the inferred
    frequency (e.g. a month for 'MS' data), else the last spacing, else a day.
    The start is floored to midnight of the first day.
    """
    times = pd.DatetimeIndex(times).sort_values()
    if len(times) == 0:
        raise ValueError("Cannot determine the time span of an empty time axis.")
    freq = pd.infer_freq(times) if len(times) >= 3 else None
    if freq is not None:
        end = times[-1] + to_offset(freq)
    elif len(times) >= 2:
        end = times[-1] + (times[-1] - times[-2])
    else:
        end = times[-1] + pd.Timedelta(days=1)
    return times[0].normalize(), end


def select_process_data(xarray_obj: xr.Dataset,
                        bands: Optional[Sequence[str]] = None,
                        time_name: Optional[str] = None,
                        date_range=None) -> xr.Dataset:
    """
    Select bands and a half-open time range from a dataset.

    Parameters
    ----------
    xarray_obj : xr.Dataset
        The input dataset.
    bands : sequence of str, optional
        Variables to keep. Defaults to all data variables.
    time_name : str, optional
        Name of the time coordinate. Required when ``date_range`` is given.
    date_range : tuple or slice, optional
        ``[start, end)`` interval.

    Returns
    -------
    xr.Dataset
        The selected data.

    Raises
    ------
    ValueError
        If a band is not found.
    """
    if bands is not None:
        missing = [b for b in bands if b not in xarray_obj.data_vars]
        if missing:
            raise ValueError(f"Variables {missing} not found. Available: {list(xarray_obj.data_vars.keys())}")
        xarray_obj = xarray_obj[list(bands)]

    if date_range is not None:
        if not time_name or time_name not in xarray_obj.dims:
            raise ValueError("A time dimension is required to select a date range.")
        start, end = validate_date_range(date_range)
        times = pd.DatetimeIndex(xarray_obj[time_name].values)
        keep = np.asarray((times >= start) & (times < end))
        xarray_obj = xarray_obj.isel({time_name: np.flatnonzero(keep)})
        if xarray_obj.sizes[time_name] == 0:
            warnings.warn(f"No data between {start.date()} and {end.date()}.", UserWarning)
    return xarray_obj


__all__ = ['validate_date_range', 'time_span', 'select_process_data']
