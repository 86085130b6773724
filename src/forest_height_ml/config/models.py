"""Configuration dataclasses for forest_height_ml workflows.

These dataclasses provide validated configuration for the sampling and
scoring pipelines. They can be instantiated from CLI arguments, environment
variables, or YAML files.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from rasterio.crs import CRS
from rasterio.errors import CRSError

from ..errors import ConfigurationError


# =============================================================================
# Default Values (matching existing CLI defaults)
# =============================================================================

ENGINE_CHOICES = ("earthengine", "local")
DEFAULT_ENGINE = "earthengine"

DEFAULT_HEIGHT_BAND = "height_m"
DEFAULT_YEAR_BAND = "year"
DEFAULT_SAMPLE_SIZE = 5000
DEFAULT_SEED = 4924
DEFAULT_SCALE = 10.0
DEFAULT_CRS = "EPSG:6348"
DEFAULT_MAX_WORKERS = 4

DEFAULT_EMBEDDING_SOURCE = "GOOGLE/SATELLITE_EMBEDDING/V1/ANNUAL"
EMBEDDING_BANDS: Tuple[str, ...] = tuple(f"A{i:02d}" for i in range(64))

DEFAULT_PREDICTION_YEAR = 2024
DEFAULT_AOI_PROPERTY = "NAME"
DEFAULT_FOREST_CLASSES: Tuple[int, ...] = (41, 42, 43)

EXPORT_DESTINATIONS = ("file", "drive", "asset")
DEFAULT_EXPORT_DESTINATION = "file"
DEFAULT_MAX_PIXELS = 1e13
STORAGE_DTYPES = ("int8", "uint8", "int16", "uint16", "int32", "uint32", "float32", "float64")


def _validate_grid(scale: float, crs: str) -> None:
    """Check the sampling grid shared by both pipelines."""
    if not isinstance(scale, (int, float)) or not scale > 0:
        raise ConfigurationError(f"scale must be a positive number, got {scale!r}")
    if not crs:
        raise ConfigurationError("crs must be specified (e.g. 'EPSG:6348')")
    try:
        CRS.from_user_input(crs)
    except (CRSError, ValueError) as exc:
        raise ConfigurationError(
            f"crs must be a valid coordinate reference system identifier, got {crs!r}: {exc}"
        ) from exc


def _validate_engine(engine: str) -> None:
    if engine not in ENGINE_CHOICES:
        raise ConfigurationError(f"engine must be one of {ENGINE_CHOICES}, got '{engine}'")


# =============================================================================
# Component Configurations
# =============================================================================

@dataclass(frozen=True)
class LinearModel:
    """A pre-fit linear model over embedding bands.

    The prediction for a pixel is ``intercept + sum(coefficients[i] * band[i])``
    where ``band[i]`` is the pixel value of ``bands[i]``.

    Attributes:
        intercept: Scalar added after the weighted band sum.
        coefficients: One weight per entry of ``bands``, in the same order.
        bands: Band names the coefficients apply to (default: A00..A63).
        name: Label used in logs and export descriptions.
    """
    intercept: float
    coefficients: Tuple[float, ...]
    bands: Tuple[str, ...] = EMBEDDING_BANDS
    name: str = "linear"

    @property
    def band_count(self) -> int:
        return len(self.bands)

    def validate(self) -> None:
        """Validate the model.

        Raises:
            ConfigurationError: If the coefficients do not line up with the bands.
        """
        if not self.coefficients:
            raise ConfigurationError("model.coefficients must not be empty")
        if len(self.coefficients) != len(self.bands):
            raise ConfigurationError(
                f"model.coefficients must have one value per band in model.bands "
                f"({len(self.bands)}), got {len(self.coefficients)}"
            )
        if len(set(self.bands)) != len(self.bands):
            raise ConfigurationError("model.bands must not contain duplicate band names")
        if not math.isfinite(self.intercept):
            raise ConfigurationError(f"model.intercept must be finite, got {self.intercept}")
        for band, value in zip(self.bands, self.coefficients):
            if not math.isfinite(value):
                raise ConfigurationError(
                    f"model.coefficients must be finite, got {value} for band {band}"
                )


@dataclass
class EmbeddingSourceConfig:
    """Where annual embedding tiles come from.

    Attributes:
        source: Earth Engine collection id, or a directory of GeoTIFF tiles
            for the local engine.
        bands: Embedding band names in canonical order.
    """
    source: str = DEFAULT_EMBEDDING_SOURCE
    bands: Tuple[str, ...] = EMBEDDING_BANDS

    def validate(self) -> None:
        if not self.source:
            raise ConfigurationError("embedding.source must be specified")
        if not self.bands:
            raise ConfigurationError("embedding.bands must not be empty")


@dataclass
class AreaOfInterestConfig:
    """Area of interest, given either as a geometry or as a feature filter.

    Attributes:
        geometry: Bounding box, WKT, GeoJSON, or vector file path (EPSG:4326).
        collection: Feature collection id (Earth Engine) or vector file path
            (local) to filter by ``property == value``.
        property: Attribute to filter ``collection`` on.
        value: Attribute value selecting the area (e.g. 'Maine').
    """
    geometry: Optional[str] = None
    collection: Optional[str] = None
    property: str = DEFAULT_AOI_PROPERTY
    value: Optional[str] = None

    def validate(self) -> None:
        if (self.geometry is None) == (self.collection is None):
            raise ConfigurationError(
                "area_of_interest requires exactly one of 'geometry' or 'collection'"
            )
        if self.collection is not None:
            if not self.property:
                raise ConfigurationError("area_of_interest.property must be specified")
            if self.value is None:
                raise ConfigurationError(
                    "area_of_interest.value must be specified when filtering a collection"
                )


@dataclass
class LandcoverMaskConfig:
    """Land-cover mask restricting predictions to forest classes.

    Attributes:
        source: Land-cover collection id (Earth Engine) or GeoTIFF path (local).
        year: Land-cover year to use.
        classes: Class values treated as forest (NLCD 41, 42, 43 by default).
    """
    source: str
    year: int = DEFAULT_PREDICTION_YEAR
    classes: Tuple[int, ...] = DEFAULT_FOREST_CLASSES

    def validate(self) -> None:
        if not self.source:
            raise ConfigurationError("landcover.source must be specified")
        if not self.classes:
            raise ConfigurationError("landcover.classes must not be empty")


@dataclass
class ExportConfig:
    """Destination for a pipeline artifact.

    Attributes:
        destination: 'file' (local path), 'drive' (Google Drive), or 'asset'
            (Earth Engine asset).
        path: Output file path for ``destination='file'``.
        asset_id: Asset id for ``destination='asset'``.
        description: Export task description.
        file_name_prefix: Drive file name prefix.
        folder: Drive folder.
        max_pixels: Pixel cap for raster exports.
    """
    destination: str = DEFAULT_EXPORT_DESTINATION
    path: Optional[Path] = None
    asset_id: Optional[str] = None
    description: str = "forest-height-export"
    file_name_prefix: Optional[str] = None
    folder: Optional[str] = None
    max_pixels: float = DEFAULT_MAX_PIXELS

    def validate(self) -> None:
        if self.destination not in EXPORT_DESTINATIONS:
            raise ConfigurationError(
                f"output.destination must be one of {EXPORT_DESTINATIONS}, got '{self.destination}'"
            )
        if self.destination == "file" and self.path is None:
            raise ConfigurationError("output.path must be specified for file exports")
        if self.destination == "asset" and not self.asset_id:
            raise ConfigurationError("output.asset_id must be specified for asset exports")
        if not self.description:
            raise ConfigurationError("output.description must be specified")
        if self.max_pixels <= 0:
            raise ConfigurationError(f"output.max_pixels must be positive, got {self.max_pixels}")


# =============================================================================
# Workflow Configurations
# =============================================================================

@dataclass
class SamplingConfig:
    """Complete configuration for a height-sampling run.

    Attributes:
        height_source: Height raster (Earth Engine image id or GeoTIFF path)
            with a height band and an acquisition-year band.
        engine: Engine backend ('earthengine' or 'local').
        project: Earth Engine cloud project (optional).
        height_band: Name of the height band.
        year_band: Name of the acquisition-year band.
        sample_size: Number of forested points requested (soft cap).
        seed: Random seed for the stratified sample.
        scale: Sampling resolution in CRS units.
        crs: Sampling coordinate reference system.
        embedding: Annual embedding source.
        max_workers: Parallel year partitions (local engine).
        drop_unmatched: Drop rows whose embedding columns are null.
        output: Where to write the sampled table (optional).
    """
    height_source: str
    engine: str = DEFAULT_ENGINE
    project: Optional[str] = None
    height_band: str = DEFAULT_HEIGHT_BAND
    year_band: str = DEFAULT_YEAR_BAND
    sample_size: int = DEFAULT_SAMPLE_SIZE
    seed: int = DEFAULT_SEED
    scale: float = DEFAULT_SCALE
    crs: str = DEFAULT_CRS
    embedding: EmbeddingSourceConfig = field(default_factory=EmbeddingSourceConfig)
    max_workers: int = DEFAULT_MAX_WORKERS
    drop_unmatched: bool = False
    output: Optional[ExportConfig] = None

    def validate(self) -> None:
        """Validate sampling configuration.

        Raises:
            ConfigurationError: If a parameter is invalid.
            FileNotFoundError: If a local input doesn't exist.
        """
        _validate_engine(self.engine)
        if not self.height_source:
            raise ConfigurationError("height_source must be specified")
        if self.engine == "local" and not Path(self.height_source).exists():
            raise FileNotFoundError(f"Height raster not found: {self.height_source}")
        if not self.height_band or not self.year_band:
            raise ConfigurationError("height_band and year_band must be specified")
        if isinstance(self.sample_size, bool) or not isinstance(self.sample_size, int):
            raise ConfigurationError(f"sample_size must be an integer, got {self.sample_size!r}")
        if self.sample_size < 0:
            raise ConfigurationError(f"sample_size must be non-negative, got {self.sample_size}")
        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ConfigurationError(f"seed must be an integer, got {self.seed!r}")
        _validate_grid(self.scale, self.crs)
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")

        self.embedding.validate()
        if self.output is not None:
            self.output.validate()


@dataclass
class ScoringConfig:
    """Complete configuration for a height-prediction run.

    Attributes:
        model: Linear model applied to the embedding bands.
        area_of_interest: Region the prediction is restricted to.
        engine: Engine backend ('earthengine' or 'local').
        project: Earth Engine cloud project (optional).
        year: Embedding year to score.
        embedding: Annual embedding source.
        landcover: Optional forest mask.
        scale: Output resolution in CRS units.
        crs: Output coordinate reference system.
        output_dtype: Optional storage dtype applied after scoring.
        output: Where to write the predicted raster (optional).
    """
    model: LinearModel
    area_of_interest: AreaOfInterestConfig
    engine: str = DEFAULT_ENGINE
    project: Optional[str] = None
    year: int = DEFAULT_PREDICTION_YEAR
    embedding: EmbeddingSourceConfig = field(default_factory=EmbeddingSourceConfig)
    landcover: Optional[LandcoverMaskConfig] = None
    scale: float = DEFAULT_SCALE
    crs: str = DEFAULT_CRS
    output_dtype: Optional[str] = None
    output: Optional[ExportConfig] = None

    def validate(self) -> None:
        """Validate scoring configuration.

        Raises:
            ConfigurationError: If a parameter is invalid.
        """
        _validate_engine(self.engine)
        self.model.validate()
        self.embedding.validate()
        if len(self.model.coefficients) != len(self.embedding.bands):
            raise ConfigurationError(
                f"model.coefficients must have one value per embedding band "
                f"({len(self.embedding.bands)}), got {len(self.model.coefficients)}"
            )
        missing = [band for band in self.model.bands if band not in self.embedding.bands]
        if missing:
            raise ConfigurationError(
                f"model.bands must be embedding bands; unknown band(s): {', '.join(missing)}"
            )
        self.area_of_interest.validate()
        if self.landcover is not None:
            self.landcover.validate()
        _validate_grid(self.scale, self.crs)
        if self.output_dtype is not None and self.output_dtype not in STORAGE_DTYPES:
            raise ConfigurationError(
                f"output_dtype must be one of {STORAGE_DTYPES}, got '{self.output_dtype}'"
            )
        if self.output is not None:
            self.output.validate()


__all__ = [
    "LinearModel",
    "EmbeddingSourceConfig",
    "AreaOfInterestConfig",
    "LandcoverMaskConfig",
    "ExportConfig",
    "SamplingConfig",
    "ScoringConfig",
    # Default values for reference
    "ENGINE_CHOICES",
    "DEFAULT_ENGINE",
    "DEFAULT_HEIGHT_BAND",
    "DEFAULT_YEAR_BAND",
    "DEFAULT_SAMPLE_SIZE",
    "DEFAULT_SEED",
    "DEFAULT_SCALE",
    "DEFAULT_CRS",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_EMBEDDING_SOURCE",
    "EMBEDDING_BANDS",
    "DEFAULT_PREDICTION_YEAR",
    "DEFAULT_AOI_PROPERTY",
    "DEFAULT_FOREST_CLASSES",
    "EXPORT_DESTINATIONS",
    "DEFAULT_EXPORT_DESTINATION",
    "DEFAULT_MAX_PIXELS",
    "STORAGE_DTYPES",
]
