from typing import List, Sequence, Union
import logging

import numpy as np
import xarray as xr

from ..Grids.Grid import Grid
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


def coefficient_band_names(predictor_names: Sequence[str], response_names: Sequence[str]) -> List[str]:
    """
    Names of the coefficient bands, predictor-major.

    >>> coefficient_band_names(['constant', 'time'], ['precip', 'tmax'])
    ['constant_precip', 'constant_tmax', 'time_precip', 'time_tmax']
    """
    return [f"{p}_{r}" for p in predictor_names for r in response_names]


def flatten(coefficients: Union[xr.DataArray, np.ndarray],
            predictor_names: Sequence[str],
            response_names: Sequence[str],
            template: Grid) -> Grid:
    """
    Turn a ``(predictor, response, *spatial)`` coefficient array into a labeled grid.

    Parameters
    ----------
    coefficients : xr.DataArray or np.ndarray
        Coefficients with the predictor axis first and the response axis second,
        followed by the two spatial axes of ``template``.
    predictor_names : sequence of str
        Names along the predictor axis.
    response_names : sequence of str
        Names along the response axis.
    template : Grid
        Supplies spatial reference, coordinates and metadata of the output.

    Returns
    -------
    Grid
        A grid with one band ``{predictor}_{response}`` per pair, in the order
        given by :func:`coefficient_band_names`.

    Raises
    ------
    ConfigurationError
        If the coefficient array does not have shape
        ``(len(predictor_names), len(response_names)) + template.shape``.
    """
    values = coefficients.values if isinstance(coefficients, xr.DataArray) else np.asarray(coefficients)
    expected = (len(predictor_names), len(response_names)) + tuple(template.shape)
    if values.shape != expected:
        raise ConfigurationError(
            f"Coefficient array has shape {values.shape}, expected {expected} for "
            f"{len(predictor_names)} predictors x {len(response_names)} responses."
        )

    coords = {d: template.data[d] for d in template.dims if d in template.data.coords}
    bands = {}
    for i, predictor in enumerate(predictor_names):
        for j, response in enumerate(response_names):
            bands[f"{predictor}_{response}"] = (template.dims, values[i, j])
    data = xr.Dataset(bands, coords=coords)
    return template.replace(data=data, scenario=None)


__all__ = ['coefficient_band_names', 'flatten']
