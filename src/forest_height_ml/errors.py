"""Exception types shared by the sampling and scoring pipelines."""

from __future__ import annotations


class ForestHeightError(Exception):
    """Base class for all forest_height_ml errors."""
    pass


class ConfigurationError(ForestHeightError, ValueError):
    """Raised when a parameter is missing, malformed, or out of range.

    Messages name the offending parameter and the expected constraint, e.g.
    ``sample_size must be non-negative, got -1``.
    """
    pass


class DataAvailabilityError(ForestHeightError):
    """Raised when an input holds no usable data for a request.

    Examples are a year with no embedding tiles, or an export region that
    does not overlap the raster.
    """
    pass


class ExternalEngineError(ForestHeightError):
    """Raised when the geospatial engine rejects or fails to run a query."""
    pass


__all__ = [
    "ForestHeightError",
    "ConfigurationError",
    "DataAvailabilityError",
    "ExternalEngineError",
]
