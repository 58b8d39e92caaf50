from typing import Dict, Optional, Sequence
import logging

import numpy as np
import xarray as xr
from dask.diagnostics import ProgressBar
from scipy import stats

from ..errors import ConfigurationError
from ..Grids.Grid import Collection, Grid
from ..utils.chunking_utils import estimate_bytes_per_pixel, spatial_chunk_dict
from ..utils.dask_utils import compute_context
from .Design import CONSTANT_BAND, PREDICTOR_NAMES, TIME_BAND, RegressionSample
from .Labels import flatten

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------
# PER-PIXEL KERNEL
# --------------------------------------------------------------------------
def ols_kernel(t, y):
    """
    Closed-form simple linear regression of ``y`` on ``t`` along the last axis.

    Every position of the leading axes is an independent fit. A sample is
    used only where both ``t`` and ``y`` are finite. Fits with fewer than two
    usable samples, or where all usable ``t`` are equal, are undefined and
    return NaN.

    Parameters
    ----------
    t : np.ndarray
        Time values, broadcastable against ``y``.
    y : np.ndarray
        Responses; the last axis runs over samples.

    Returns
    -------
    tuple of np.ndarray
        ``(intercept, slope)`` with the sample axis removed.
    """
    t, y = np.broadcast_arrays(np.asarray(t, dtype=float), np.asarray(y, dtype=float))
    with np.errstate(invalid='ignore', divide='ignore'):
        valid = np.isfinite(t) & np.isfinite(y)
        count = valid.sum(axis=-1)
        safe_count = np.maximum(count, 1)

        mean_t = np.where(valid, t, 0.0).sum(axis=-1) / safe_count
        mean_y = np.where(valid, y, 0.0).sum(axis=-1) / safe_count
        dt = np.where(valid, t - mean_t[..., None], 0.0)
        dy = np.where(valid, y - mean_y[..., None], 0.0)
        var_t = (dt * dt).sum(axis=-1)
        cov_ty = (dt * dy).sum(axis=-1)

        # Exact test for a constant time axis; var_t can be a rounding residue.
        t_max = np.where(valid, t, -np.inf).max(axis=-1)
        t_min = np.where(valid, t, np.inf).min(axis=-1)
        defined = (count >= 2) & (t_max > t_min)

        slope = np.where(defined, cov_ty / np.where(defined, var_t, 1.0), np.nan)
        intercept = np.where(defined, mean_y - slope * mean_t, np.nan)
    return intercept, slope


# --------------------------------------------------------------------------
# INPUT PREPARATION
# --------------------------------------------------------------------------
def _validate_samples(samples: Sequence[RegressionSample]):
    if not samples:
        raise ConfigurationError("At least one regression sample is required.")
    first = samples[0]
    if tuple(first.predictor_names) != PREDICTOR_NAMES:
        raise ConfigurationError(
            f"Predictors must be {list(PREDICTOR_NAMES)}, got {list(first.predictor_names)}."
        )
    if not first.response_names:
        raise ConfigurationError("Regression samples carry no response bands.")
    for sample in samples[1:]:
        first.grid.require_same_grid(sample.grid, bands=True)
    return first


def _design_arrays(samples: Sequence[RegressionSample]):
    """Stack the time predictor and the responses along a 'sample' dimension."""
    collection = Collection(tuple(s.grid for s in samples))
    time = collection.stack(TIME_BAND)
    constant = collection.stack(CONSTANT_BAND)
    # A sample whose constant predictor is missing at a pixel is unusable there
    time = time.where(np.isfinite(constant))
    responses = xr.concat(
        [collection.stack(name) for name in samples[0].response_names],
        dim=xr.DataArray(list(samples[0].response_names), dims='response', name='response'),
    )
    return time, responses


# --------------------------------------------------------------------------
# PUBLIC API
# --------------------------------------------------------------------------
def fit_coefficients(samples: Sequence[RegressionSample],
                     n_workers: Optional[int] = None,
                     dask_client_kwargs: Optional[Dict] = None,
                     target_chunk_mb: float = 64,
                     progress: bool = False) -> xr.DataArray:
    """
    Fit ``y = constant + time * t`` independently at every pixel and for every response.

    The spatial extent is tiled with dask and the closed-form kernel
    :func:`ols_kernel` runs on each tile in parallel. Responses keep their own
    no-data masks; the time axis is shared.

    Parameters
    ----------
    samples : sequence of RegressionSample
        One sample per year or season-year, sharing spatial reference,
        predictors and response bands. Order does not matter; samples are
        sorted by time.
    n_workers : int, optional
        Threads of the local scheduler. Ignored when a dask client is used.
    dask_client_kwargs : dict, optional
        If given, compute on a `dask.distributed` client created (or reused)
        with these keyword arguments.
    target_chunk_mb : float, optional
        Memory target per spatial tile. Defaults to 64 MB.
    progress : bool, optional
        Show a dask progress bar while computing. Defaults to False.

    Returns
    -------
    xr.DataArray
        Coefficients with dims ``('predictor', 'response', *spatial)``,
        NaN where a fit is undefined.
    """
    first = _validate_samples(samples)
    samples = sorted(samples, key=lambda s: (s.timestamp, s.grid.scenario or ''))
    spatial_dims = list(first.grid.dims)
    response_names = list(first.response_names)

    time, responses = _design_arrays(samples)
    time, responses = xr.broadcast(time, responses)
    time = time.transpose('response', 'sample', *spatial_dims)
    responses = responses.transpose('response', 'sample', *spatial_dims)

    bytes_per_pixel = estimate_bytes_per_pixel(len(samples), len(response_names))
    chunks = spatial_chunk_dict(spatial_dims, first.grid.shape, bytes_per_pixel, target_mb=target_chunk_mb)
    chunks.update({'response': -1, 'sample': -1})
    time = time.chunk(chunks)
    responses = responses.chunk(chunks)
    logger.info("Fitting %d responses over %d samples on %s grid in tiles of %s",
                len(response_names), len(samples), first.grid.shape,
                {d: chunks[d] for d in spatial_dims})

    intercept, slope = xr.apply_ufunc(
        ols_kernel,
        time,
        responses,
        input_core_dims=[['sample'], ['sample']],
        output_core_dims=[[], []],
        dask='parallelized',
        output_dtypes=[float, float],
    )
    coefficients = xr.concat(
        [intercept, slope],
        dim=xr.DataArray(list(PREDICTOR_NAMES), dims='predictor', name='predictor'),
    ).transpose('predictor', 'response', *spatial_dims)

    with compute_context(n_workers=n_workers, client_kwargs=dask_client_kwargs):
        if progress:
            with ProgressBar(dt=1.0):
                coefficients = coefficients.compute()
        else:
            coefficients = coefficients.compute()
    return coefficients.rename('coefficients')


def fit_linear_trends(samples: Sequence[RegressionSample], **kwargs) -> Grid:
    """
    Fit per-pixel trends and return them as a labeled coefficient grid.

    Bands are ``constant_{response}`` (intercept) and ``time_{response}``
    (slope per unit of the time axis) for every response. Keyword arguments
    are passed to :func:`fit_coefficients`.
    """
    coefficients = fit_coefficients(samples, **kwargs)
    ordered = sorted(samples, key=lambda s: s.timestamp)
    template = ordered[0].grid
    result = flatten(coefficients, PREDICTOR_NAMES, list(template.band_names[len(PREDICTOR_NAMES):]), template)
    data = result.data.assign_attrs(
        trend_method='ordinary least squares',
        trend_period=f"{ordered[0].timestamp.date()} to {ordered[-1].timestamp.date()}",
        n_samples=len(ordered),
    )
    return result.replace(data=data, year=None)


def summarize_pixel_trend(samples: Sequence[RegressionSample], response: str, y: int, x: int) -> Dict[str, float]:
    """
    Regression statistics of one response at one pixel.

    Uses `scipy.stats.linregress` on the usable samples of the pixel and
    reports slope, intercept, r value, p value and the slope standard error.
    All values are NaN when the fit is undefined.

    Parameters
    ----------
    samples : sequence of RegressionSample
        Regression samples as for :func:`fit_linear_trends`.
    response : str
        Name of the response band.
    y, x : int
        Positional indices of the pixel along the two spatial dims.

    Returns
    -------
    dict
        Keys 'slope', 'intercept', 'r_value', 'p_value', 'standard_error_slope', 'n_samples'.
    """
    first = _validate_samples(samples)
    if response not in first.response_names:
        raise ValueError(f"Response '{response}' not found. Available: {list(first.response_names)}")
    dims = first.grid.dims
    t_values, y_values = [], []
    for sample in sorted(samples, key=lambda s: s.timestamp):
        at = {dims[0]: y, dims[1]: x}
        if not np.isfinite(sample.grid.data[CONSTANT_BAND].isel(at).item()):
            continue
        t_values.append(sample.grid.data[TIME_BAND].isel(at).item())
        y_values.append(sample.grid.data[response].isel(at).item())
    t_arr, y_arr = np.asarray(t_values, dtype=float), np.asarray(y_values, dtype=float)
    usable = np.isfinite(t_arr) & np.isfinite(y_arr)
    t_arr, y_arr = t_arr[usable], y_arr[usable]

    result = {'slope': np.nan, 'intercept': np.nan, 'r_value': np.nan, 'p_value': np.nan,
              'standard_error_slope': np.nan, 'n_samples': int(usable.sum())}
    if len(t_arr) < 2 or np.ptp(t_arr) == 0:
        return result
    fit = stats.linregress(t_arr, y_arr)
    result.update({'slope': fit.slope, 'intercept': fit.intercept, 'r_value': fit.rvalue,
                   'p_value': fit.pvalue, 'standard_error_slope': fit.stderr})
    return result


__all__ = ['ols_kernel', 'fit_coefficients', 'fit_linear_trends', 'summarize_pixel_trend']
