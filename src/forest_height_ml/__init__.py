"""Forest height sampling and linear-model mapping from satellite embeddings."""

from .config import LinearModel, SamplingConfig, ScoringConfig
from .errors import (
    ConfigurationError,
    DataAvailabilityError,
    ExternalEngineError,
    ForestHeightError,
)

__version__ = "0.1.0"

__all__ = [
    "LinearModel",
    "SamplingConfig",
    "ScoringConfig",
    "ConfigurationError",
    "DataAvailabilityError",
    "ExternalEngineError",
    "ForestHeightError",
    "__version__",
]
