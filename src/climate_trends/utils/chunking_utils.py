import numpy as np
from typing import Dict, Sequence, Tuple
import logging
import math
import warnings

logger = logging.getLogger(__name__)


def estimate_bytes_per_pixel(n_samples: int, n_responses: int, dtype=np.float64) -> int:
    """
    Bytes held for one pixel while fitting trends.

    The regression reads the time band and every response band of every sample,
    so a pixel costs ``n_samples * (n_responses + 1)`` values.
    """
    if n_samples < 0 or n_responses < 0:
        raise ValueError("Sample and response counts must be non-negative.")
    return int(n_samples * (n_responses + 1) * np.dtype(dtype).itemsize)


def choose_spatial_chunks(shape: Sequence[int],
                          bytes_per_pixel: float,
                          target_mb: float = 64,
                          max_mb: float = 256,
                          min_chunks: int = 4) -> Tuple[int, int]:
    """
    Return a ``(rows, cols)`` tile size for a 2-D grid.

    The strategy:
    • Stays close to *target_mb* (in MiB) per tile
    • Never exceeds *max_mb* unless a single row already does
    • Produces at least *min_chunks* tiles when the grid is large enough
    • Keeps whole rows when possible so tiles stay contiguous in memory

    Parameters
    ----------
    shape : sequence of int
        ``(n_rows, n_cols)`` of the grid.
    bytes_per_pixel : float
        Bytes required per pixel, see :func:`estimate_bytes_per_pixel`.
    target_mb : float, optional
        Target tile size in megabytes. Defaults to 64 MB.
    max_mb : float, optional
        Maximum tile size in megabytes. Defaults to 256 MB.
    min_chunks : int, optional
        Minimum number of tiles to create. Defaults to 4.

    Returns
    -------
    tuple of int
        Tile size in rows and columns.

    Examples
    --------
    >>> choose_spatial_chunks((10, 10), bytes_per_pixel=80, min_chunks=1)
    (10, 10)
    """
    n_rows, n_cols = (int(s) for s in shape)
    if n_rows <= 0 or n_cols <= 0:
        raise ValueError(f"Grid shape must be positive, got {tuple(shape)}.")
    if not all(p > 0 for p in [target_mb, max_mb, min_chunks]):
        raise ValueError("All numerical arguments to choose_spatial_chunks must be positive.")
    if target_mb > max_mb:
        warnings.warn(f"target_mb ({target_mb}) is greater than max_mb ({max_mb}). Using max_mb as the target.")
        target_mb = max_mb
    bytes_per_pixel = max(float(bytes_per_pixel), 1.0)

    target_bytes = target_mb * 1024**2
    max_bytes = max_mb * 1024**2
    row_bytes = n_cols * bytes_per_pixel

    if row_bytes <= target_bytes:
        cols = n_cols
        rows = max(1, min(n_rows, int(target_bytes // row_bytes)))
    else:
        # A single row is already too large: split columns as well
        rows = 1
        cols = max(1, int(target_bytes // bytes_per_pixel))

    # Parallelization: ensure enough tiles for the worker pool
    n_tiles = math.ceil(n_rows / rows) * math.ceil(n_cols / cols)
    if n_tiles < min_chunks and rows > 1:
        rows = max(1, math.ceil(n_rows / min_chunks))
        logger.debug("Reduced tile rows to %d to get at least %d tiles", rows, min_chunks)

    # Memory safety
    while rows * cols * bytes_per_pixel > max_bytes and (rows > 1 or cols > 1):
        if rows > 1:
            rows = max(1, rows // 2)
        else:
            cols = max(1, cols // 2)
        logger.debug("Reduced tile to %dx%d due to memory constraints", rows, cols)

    return rows, cols


def spatial_chunk_dict(dims: Sequence[str], shape: Sequence[int], bytes_per_pixel: float,
                       target_mb: float = 64, max_mb: float = 256, min_chunks: int = 4) -> Dict[str, int]:
    """Tile sizes of :func:`choose_spatial_chunks` keyed by dimension name, for ``.chunk()``."""
    rows, cols = choose_spatial_chunks(shape, bytes_per_pixel, target_mb=target_mb,
                                       max_mb=max_mb, min_chunks=min_chunks)
    return {dims[0]: rows, dims[1]: cols}


__all__ = ['estimate_bytes_per_pixel', 'choose_spatial_chunks', 'spatial_chunk_dict']
