"""Configuration management for forest_height_ml.

This module provides dataclass-based configuration objects for the sampling
and scoring workflows, with support for validation and YAML-based
configuration files.
"""

from .models import (
    AreaOfInterestConfig,
    EMBEDDING_BANDS,
    EmbeddingSourceConfig,
    ExportConfig,
    LandcoverMaskConfig,
    LinearModel,
    SamplingConfig,
    ScoringConfig,
)
from .presets import PRESETS, get_preset
from .yaml_loader import (
    ConfigurationError,
    load_sampling_config,
    load_scoring_config,
    parse_linear_model,
)

__all__ = [
    # Dataclasses
    "LinearModel",
    "EmbeddingSourceConfig",
    "AreaOfInterestConfig",
    "LandcoverMaskConfig",
    "ExportConfig",
    "SamplingConfig",
    "ScoringConfig",
    "EMBEDDING_BANDS",
    # Presets
    "PRESETS",
    "get_preset",
    # YAML loading
    "ConfigurationError",
    "load_sampling_config",
    "load_scoring_config",
    "parse_linear_model",
]
