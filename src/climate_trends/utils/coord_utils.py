import xarray as xr
from typing import Optional, Tuple

TIME_NAMES = ['time', 't', 'date']
LAT_NAMES = ['lat', 'latitude', 'LAT', 'LATITUDE', 'y', 'rlat', 'nav_lat']
LON_NAMES = ['lon', 'longitude', 'LON', 'LONGITUDE', 'x', 'rlon', 'nav_lon']


def get_coord_name(xarray_like_obj, possible_names):
    """
    Find the name of a coordinate in an xarray object from a list of possible names.

    This function checks for coordinate names in a case-sensitive manner first,
    then falls back to a case-insensitive check.

    Parameters
    ----------
    xarray_like_obj : xr.DataArray or xr.Dataset
        The xarray object to search for coordinates.
    possible_names : list of str
        A list of possible coordinate names to look for.

    Returns
    -------
    str or None
        The found coordinate name, or None if no matching coordinate is found.
    """
    if xarray_like_obj is None:
        return None
    for name in possible_names:
        if name in xarray_like_obj.coords:
            return name
    coord_names_lower = {name.lower(): name for name in xarray_like_obj.coords}
    for name in possible_names:
        if name.lower() in coord_names_lower:
            return coord_names_lower[name.lower()]
    return None


def get_grid_coord_names(ds: xr.Dataset) -> Tuple[Optional[str], str, str]:
    """
    Locate the time, row and column coordinates of a gridded dataset.

    Returns
    -------
    tuple
        ``(time_name, y_name, x_name)``. ``time_name`` is None when the
        dataset has no recognizable time coordinate.

    Raises
    ------
    ValueError
        If latitude/y or longitude/x coordinates cannot be found.
    """
    time_name = get_coord_name(ds, TIME_NAMES)
    y_name = get_coord_name(ds, LAT_NAMES)
    x_name = get_coord_name(ds, LON_NAMES)
    if not y_name or not x_name:
        raise ValueError(
            "Dataset must contain recognizable latitude/y and longitude/x coordinates. "
            f"Found coordinates: {list(ds.coords)}"
        )
    return time_name, y_name, x_name


def infer_resolution(coord: xr.DataArray) -> Optional[float]:
    """Nominal spacing of a 1-D coordinate, or None if it has fewer than two points."""
    if coord.size < 2:
        return None
    return float(abs(coord.values[1] - coord.values[0]))


__all__ = ['get_coord_name', 'get_grid_coord_names', 'infer_resolution']
