"""
Exception types for the climate_trends package.

Configuration problems fail fast and are never retried. Undefined per-pixel
results are not errors; they are encoded as NaN in the output grids.
"""


class ConfigurationError(ValueError):
    """
    Raised when inputs that must be combined are incompatible.

    Examples are grids with different spatial references or band sets, a
    season longer than twelve months, or a coefficient array whose shape does
    not match the declared predictor and response names. This indicates a
    problem with how the analysis was set up, not with the data values.
    """
    pass


__all__ = ['ConfigurationError']
