"""Engine backends for the sampling and scoring pipelines."""

from __future__ import annotations

from typing import Optional

from ..config.models import DEFAULT_MAX_WORKERS, ENGINE_CHOICES
from ..errors import ConfigurationError
from .base import GeospatialEngine, year_date_range
from .earthengine import EarthEngineEngine, initialize_earth_engine
from .local import LocalEngine


def create_engine(
    name: str,
    project: Optional[str] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> GeospatialEngine:
    """Build the engine named ``name`` ('earthengine' or 'local')."""
    if name == "earthengine":
        return EarthEngineEngine(project=project)
    if name == "local":
        return LocalEngine(max_workers=max_workers)
    raise ConfigurationError(f"engine must be one of {ENGINE_CHOICES}, got '{name}'")


__all__ = [
    "GeospatialEngine",
    "EarthEngineEngine",
    "LocalEngine",
    "create_engine",
    "initialize_earth_engine",
    "year_date_range",
]
