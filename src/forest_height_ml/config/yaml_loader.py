"""YAML configuration file loading for forest_height_ml.

This module provides functions to load SamplingConfig and ScoringConfig
from YAML files, with validation and sensible error messages.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..errors import ConfigurationError
from .models import (
    AreaOfInterestConfig,
    DEFAULT_ENGINE,
    EmbeddingSourceConfig,
    ExportConfig,
    LandcoverMaskConfig,
    LinearModel,
    SamplingConfig,
    ScoringConfig,
)
from .presets import get_preset


def _resolve_path(base_dir: Path, path_str: Optional[str]) -> Optional[Path]:
    """Resolve a path string relative to the config file's directory.

    If the path is absolute, it's returned as-is.
    If the path is relative, it's resolved relative to base_dir.

    Args:
        base_dir: Directory containing the config file.
        path_str: Path string from config, or None.

    Returns:
        Resolved Path, or None if path_str is None.
    """
    if path_str is None:
        return None
    path = Path(path_str)
    if path.is_absolute():
        return path
    return base_dir / path


def _resolve_source(base_dir: Path, value: Optional[str], engine: str) -> Optional[str]:
    """Resolve a data source; only local-engine sources are file paths."""
    if value is None or engine != "local":
        return value
    return str(_resolve_path(base_dir, value))


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {e}")

    if data is None:
        raise ConfigurationError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a YAML mapping (dict)")

    return data


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{key} must be a mapping, got {type(value).__name__}")
    return value


def _parse_embedding_config(data: Dict[str, Any], base_dir: Path, engine: str) -> EmbeddingSourceConfig:
    """Parse embedding source configuration from a dict."""
    embedding_data = _section(data, "embedding")
    bands = embedding_data.get("bands")
    return EmbeddingSourceConfig(
        source=_resolve_source(
            base_dir, embedding_data.get("source", EmbeddingSourceConfig.source), engine
        ),
        bands=tuple(str(b) for b in bands) if bands is not None else EmbeddingSourceConfig.bands,
    )


def _parse_export_config(
    data: Dict[str, Any], base_dir: Path, default_description: str
) -> Optional[ExportConfig]:
    """Parse the optional output section."""
    if "output" not in data:
        return None
    output_data = _section(data, "output")
    return ExportConfig(
        destination=output_data.get("destination", ExportConfig.destination),
        path=_resolve_path(base_dir, output_data.get("path")),
        asset_id=output_data.get("asset_id"),
        description=output_data.get("description", default_description),
        file_name_prefix=output_data.get("file_name_prefix"),
        folder=output_data.get("folder"),
        max_pixels=float(output_data.get("max_pixels", ExportConfig.max_pixels)),
    )


def parse_linear_model(model_data: Dict[str, Any]) -> LinearModel:
    """Build a LinearModel from a ``model`` mapping.

    The mapping either names a preset (``preset: maine_linear_2024``) or
    carries ``intercept`` and ``coefficients`` (plus optional ``bands`` and
    ``name``).
    """
    if not isinstance(model_data, dict):
        raise ConfigurationError("model must be a mapping")
    if "preset" in model_data:
        return get_preset(str(model_data["preset"]))

    for key in ("intercept", "coefficients"):
        if key not in model_data:
            raise ConfigurationError(f"Missing required field: model.{key}")

    coefficients = model_data["coefficients"]
    if not isinstance(coefficients, (list, tuple)):
        raise ConfigurationError(
            f"model.coefficients must be a list of numbers, got {type(coefficients).__name__}"
        )
    try:
        intercept = float(model_data["intercept"])
        values = tuple(float(c) for c in coefficients)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"model.intercept and model.coefficients must be numeric: {e}")

    bands = model_data.get("bands")
    return LinearModel(
        intercept=intercept,
        coefficients=values,
        bands=tuple(str(b) for b in bands) if bands is not None else LinearModel.bands,
        name=str(model_data.get("name", LinearModel.name)),
    )


def load_sampling_config(
    config_path: Union[str, Path],
    validate: bool = True,
) -> SamplingConfig:
    """Load a SamplingConfig from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.
        validate: Whether to validate the configuration (default: True).

    Returns:
        A SamplingConfig instance.

    Raises:
        ConfigurationError: If the file cannot be parsed or is invalid.
        FileNotFoundError: If config_path doesn't exist.

    Example YAML structure:
        ```yaml
        engine: earthengine
        height_source: users/me/me_lidar_height_m

        sample_size: 5000
        seed: 4924
        scale: 10
        crs: EPSG:6348

        embedding:
          source: GOOGLE/SATELLITE_EMBEDDING/V1/ANNUAL

        output:
          destination: drive
          description: Height-Dataset-toDrive
          file_name_prefix: forest_ht_dataset
        ```
    """
    config_path = Path(config_path)
    data = _read_yaml(config_path)
    base_dir = config_path.parent

    # Required field
    if "height_source" not in data:
        raise ConfigurationError("Missing required field: height_source")

    engine = data.get("engine", DEFAULT_ENGINE)

    config = SamplingConfig(
        height_source=_resolve_source(base_dir, str(data["height_source"]), engine),
        engine=engine,
        project=data.get("project"),
        height_band=data.get("height_band", SamplingConfig.height_band),
        year_band=data.get("year_band", SamplingConfig.year_band),
        sample_size=data.get("sample_size", SamplingConfig.sample_size),
        seed=data.get("seed", SamplingConfig.seed),
        scale=data.get("scale", SamplingConfig.scale),
        crs=data.get("crs", SamplingConfig.crs),
        embedding=_parse_embedding_config(data, base_dir, engine),
        max_workers=data.get("max_workers", SamplingConfig.max_workers),
        drop_unmatched=bool(data.get("drop_unmatched", False)),
        output=_parse_export_config(data, base_dir, "Height-Dataset-Export"),
    )

    if validate:
        config.validate()

    return config


def load_scoring_config(
    config_path: Union[str, Path],
    validate: bool = True,
) -> ScoringConfig:
    """Load a ScoringConfig from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.
        validate: Whether to validate the configuration (default: True).

    Returns:
        A ScoringConfig instance.

    Raises:
        ConfigurationError: If the file cannot be parsed or is invalid.
        FileNotFoundError: If config_path doesn't exist.

    Example YAML structure:
        ```yaml
        engine: earthengine
        year: 2024

        model:
          preset: maine_linear_2024   # or intercept + coefficients

        area_of_interest:
          collection: TIGER/2018/States
          property: NAME
          value: Maine

        landcover:
          source: projects/sat-io/open-datasets/USGS/ANNUAL_NLCD/LANDCOVER
          year: 2024
          classes: [41, 42, 43]

        output_dtype: int16
        output:
          destination: asset
          asset_id: users/me/maine_height_m
        ```
    """
    config_path = Path(config_path)
    data = _read_yaml(config_path)
    base_dir = config_path.parent

    for key in ("model", "area_of_interest"):
        if key not in data:
            raise ConfigurationError(f"Missing required field: {key}")

    engine = data.get("engine", DEFAULT_ENGINE)

    aoi_data = _section(data, "area_of_interest")
    geometry = aoi_data.get("geometry")
    if geometry is not None and engine == "local" and not str(geometry).lstrip().startswith(("{", "[")):
        candidate = _resolve_path(base_dir, str(geometry))
        if candidate.exists():
            geometry = str(candidate)
    area_of_interest = AreaOfInterestConfig(
        geometry=geometry,
        collection=_resolve_source(base_dir, aoi_data.get("collection"), engine),
        property=aoi_data.get("property", AreaOfInterestConfig.property),
        value=aoi_data.get("value"),
    )

    landcover = None
    if data.get("landcover") is not None:
        landcover_data = _section(data, "landcover")
        if "source" not in landcover_data:
            raise ConfigurationError("Missing required field: landcover.source")
        classes = landcover_data.get("classes")
        landcover = LandcoverMaskConfig(
            source=_resolve_source(base_dir, landcover_data["source"], engine),
            year=int(landcover_data.get("year", LandcoverMaskConfig.year)),
            classes=tuple(int(c) for c in classes) if classes is not None else LandcoverMaskConfig.classes,
        )

    config = ScoringConfig(
        model=parse_linear_model(data["model"]),
        area_of_interest=area_of_interest,
        engine=engine,
        project=data.get("project"),
        year=int(data.get("year", ScoringConfig.year)),
        embedding=_parse_embedding_config(data, base_dir, engine),
        landcover=landcover,
        scale=data.get("scale", ScoringConfig.scale),
        crs=data.get("crs", ScoringConfig.crs),
        output_dtype=data.get("output_dtype"),
        output=_parse_export_config(data, base_dir, "Export-Height-Map"),
    )

    if validate:
        config.validate()

    return config


__all__ = [
    "ConfigurationError",
    "parse_linear_model",
    "load_sampling_config",
    "load_scoring_config",
]
