"""CLI argument parsing and configuration building for forest_height_ml."""

import argparse
import os
from pathlib import Path
from typing import Optional, Tuple

from .models import (
    DEFAULT_AOI_PROPERTY,
    DEFAULT_CRS,
    DEFAULT_EMBEDDING_SOURCE,
    DEFAULT_ENGINE,
    DEFAULT_EXPORT_DESTINATION,
    DEFAULT_FOREST_CLASSES,
    DEFAULT_HEIGHT_BAND,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PREDICTION_YEAR,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_SCALE,
    DEFAULT_SEED,
    DEFAULT_YEAR_BAND,
    ENGINE_CHOICES,
    EXPORT_DESTINATIONS,
    STORAGE_DTYPES,
    AreaOfInterestConfig,
    EmbeddingSourceConfig,
    ExportConfig,
    LandcoverMaskConfig,
    SamplingConfig,
    ScoringConfig,
)
from .presets import PRESETS, get_preset
from .yaml_loader import load_sampling_config, load_scoring_config, ConfigurationError


def strtobool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "y"}


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value is not None else None


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value is not None else None


def parse_class_list(value: Optional[str]) -> Optional[Tuple[int, ...]]:
    """Parse '41,42,43' (or '41 42 43') into a tuple of ints."""
    if value is None:
        return None
    parts = [p for p in str(value).replace(",", " ").split() if p]
    if not parts:
        return None
    return tuple(int(p) for p in parts)


def _add_engine_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML configuration file. CLI arguments override YAML values.",
    )
    parser.add_argument(
        "--engine",
        default=os.getenv("FOREST_HEIGHT_ENGINE"),
        choices=list(ENGINE_CHOICES),
        help=f"Geospatial engine backend (default: {DEFAULT_ENGINE}).",
    )
    parser.add_argument(
        "--project",
        default=os.getenv("EE_PROJECT"),
        help="Earth Engine cloud project used for ee.Initialize().",
    )
    parser.add_argument(
        "--embedding-source",
        default=os.getenv("EMBEDDING_SOURCE"),
        help=(
            "Annual embedding collection id, or a directory of GeoTIFF tiles for the "
            f"local engine (default: {DEFAULT_EMBEDDING_SOURCE})."
        ),
    )
    parser.add_argument(
        "--scale",
        type=float,
        default=_env_float("FOREST_HEIGHT_SCALE"),
        help=f"Resolution in CRS units (default: {DEFAULT_SCALE}).",
    )
    parser.add_argument(
        "--crs",
        default=os.getenv("FOREST_HEIGHT_CRS"),
        help=f"Coordinate reference system (default: {DEFAULT_CRS}).",
    )


def _add_export_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default=os.getenv("FOREST_HEIGHT_OUTPUT"),
        help="Output file path (sets --export-destination file).",
    )
    parser.add_argument(
        "--export-destination",
        default=None,
        choices=list(EXPORT_DESTINATIONS),
        help=f"Export destination (default: {DEFAULT_EXPORT_DESTINATION}).",
    )
    parser.add_argument(
        "--asset-id",
        default=None,
        help="Earth Engine asset id for --export-destination asset.",
    )
    parser.add_argument(
        "--description",
        default=None,
        help="Export task description.",
    )
    parser.add_argument(
        "--file-name-prefix",
        default=None,
        help="Google Drive file name prefix for --export-destination drive.",
    )
    parser.add_argument(
        "--folder",
        default=None,
        help="Google Drive folder for --export-destination drive.",
    )


def _add_log_level_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level.",
    )


def _build_export(
    args: argparse.Namespace,
    existing: Optional[ExportConfig],
    default_description: str,
) -> Optional[ExportConfig]:
    """Merge export CLI arguments over an optional YAML export section."""
    requested = any(
        value is not None
        for value in (
            args.output,
            args.export_destination,
            args.asset_id,
            args.description,
            args.file_name_prefix,
            args.folder,
        )
    )
    if not requested:
        return existing

    export = existing or ExportConfig(description=default_description)
    if args.output:
        export.path = Path(args.output).expanduser().resolve()
        export.destination = "file"
    if args.export_destination:
        export.destination = args.export_destination
    if args.asset_id:
        export.asset_id = args.asset_id
    if args.description:
        export.description = args.description
    if args.file_name_prefix:
        export.file_name_prefix = args.file_name_prefix
    if args.folder:
        export.folder = args.folder
    return export


def _local_source(value: str, engine: str) -> str:
    if engine != "local":
        return value
    return str(Path(value).expanduser().resolve())


# =============================================================================
# Sampling
# =============================================================================

def add_common_sampling_args(parser: argparse.ArgumentParser) -> None:
    """Add standard sampling arguments to an ArgumentParser."""
    _add_engine_args(parser)
    parser.add_argument(
        "--height-source",
        default=os.getenv("HEIGHT_SOURCE"),
        help="Height raster with height and acquisition-year bands (asset id or GeoTIFF).",
    )
    parser.add_argument(
        "--height-band",
        default=None,
        help=f"Name of the height band (default: {DEFAULT_HEIGHT_BAND}).",
    )
    parser.add_argument(
        "--year-band",
        default=None,
        help=f"Name of the acquisition-year band (default: {DEFAULT_YEAR_BAND}).",
    )
    parser.add_argument(
        "--sample-size",
        type=int,
        default=_env_int("SAMPLE_SIZE"),
        help=f"Number of forested points to sample (default: {DEFAULT_SAMPLE_SIZE}).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=_env_int("SAMPLE_SEED"),
        help=f"Random seed for the stratified sample (default: {DEFAULT_SEED}).",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=_env_int("SAMPLE_MAX_WORKERS"),
        help=f"Parallel year partitions for the local engine (default: {DEFAULT_MAX_WORKERS}).",
    )
    env_drop = os.getenv("DROP_UNMATCHED")
    parser.set_defaults(drop_unmatched=strtobool(env_drop) if env_drop is not None else None)
    parser.add_argument(
        "--drop-unmatched",
        dest="drop_unmatched",
        action="store_true",
        help="Drop sampled rows without embedding values.",
    )
    parser.add_argument(
        "--keep-unmatched",
        dest="drop_unmatched",
        action="store_false",
        help="Keep rows with null embedding values (default).",
    )
    _add_export_args(parser)
    _add_log_level_arg(parser)


def build_sampling_config(args: argparse.Namespace) -> SamplingConfig:
    """Build a SamplingConfig from parsed CLI arguments and optional YAML config."""
    # Start with YAML config if provided
    if args.config is not None:
        try:
            config = load_sampling_config(args.config, validate=False)
        except (ConfigurationError, FileNotFoundError) as e:
            raise ConfigurationError(f"Failed to load config from {args.config}: {e}") from e

        # Override with CLI arguments if provided
        if args.engine:
            config.engine = args.engine
        if args.project:
            config.project = args.project
        if args.height_source:
            config.height_source = _local_source(args.height_source, config.engine)
        if args.height_band:
            config.height_band = args.height_band
        if args.year_band:
            config.year_band = args.year_band
        if args.sample_size is not None:
            config.sample_size = args.sample_size
        if args.seed is not None:
            config.seed = args.seed
        if args.scale is not None:
            config.scale = args.scale
        if args.crs:
            config.crs = args.crs
        if args.embedding_source:
            config.embedding.source = _local_source(args.embedding_source, config.engine)
        if args.max_workers is not None:
            config.max_workers = args.max_workers
        if args.drop_unmatched is not None:
            config.drop_unmatched = args.drop_unmatched
        config.output = _build_export(args, config.output, "Height-Dataset-Export")

        # Validate the final config
        config.validate()
        return config

    # Build config from CLI arguments only
    engine = args.engine or DEFAULT_ENGINE
    config = SamplingConfig(
        height_source=_local_source(args.height_source, engine),
        engine=engine,
        project=args.project,
        height_band=args.height_band or DEFAULT_HEIGHT_BAND,
        year_band=args.year_band or DEFAULT_YEAR_BAND,
        sample_size=args.sample_size if args.sample_size is not None else DEFAULT_SAMPLE_SIZE,
        seed=args.seed if args.seed is not None else DEFAULT_SEED,
        scale=args.scale if args.scale is not None else DEFAULT_SCALE,
        crs=args.crs or DEFAULT_CRS,
        embedding=EmbeddingSourceConfig(
            source=_local_source(args.embedding_source, engine)
            if args.embedding_source
            else DEFAULT_EMBEDDING_SOURCE,
        ),
        max_workers=args.max_workers if args.max_workers is not None else DEFAULT_MAX_WORKERS,
        drop_unmatched=bool(args.drop_unmatched),
        output=_build_export(args, None, "Height-Dataset-Export"),
    )

    config.validate()
    return config


# =============================================================================
# Scoring
# =============================================================================

def add_common_scoring_args(parser: argparse.ArgumentParser) -> None:
    """Add standard scoring arguments to an ArgumentParser."""
    _add_engine_args(parser)
    parser.add_argument(
        "--model-preset",
        default=os.getenv("MODEL_PRESET"),
        choices=sorted(PRESETS),
        help="Named pre-fit linear model.",
    )
    parser.add_argument(
        "--year",
        type=int,
        default=_env_int("PREDICTION_YEAR"),
        help=f"Embedding year to score (default: {DEFAULT_PREDICTION_YEAR}).",
    )
    parser.add_argument(
        "--aoi",
        default=os.getenv("AOI"),
        help="Area of interest as bbox, WKT, GeoJSON, or vector file path.",
    )
    parser.add_argument(
        "--aoi-collection",
        default=os.getenv("AOI_COLLECTION"),
        help="Feature collection (or vector file) to select the area of interest from.",
    )
    parser.add_argument(
        "--aoi-property",
        default=None,
        help=f"Attribute used to filter --aoi-collection (default: {DEFAULT_AOI_PROPERTY}).",
    )
    parser.add_argument(
        "--aoi-value",
        default=os.getenv("AOI_VALUE"),
        help="Attribute value selecting the area of interest (e.g. Maine).",
    )
    parser.add_argument(
        "--landcover-source",
        default=os.getenv("LANDCOVER_SOURCE"),
        help="Land-cover collection id or GeoTIFF used as a forest mask.",
    )
    parser.add_argument(
        "--landcover-year",
        type=int,
        default=None,
        help="Land-cover year (defaults to --year).",
    )
    parser.add_argument(
        "--forest-classes",
        default=None,
        help=(
            "Comma-separated land-cover classes treated as forest "
            f"(default: {','.join(str(c) for c in DEFAULT_FOREST_CLASSES)})."
        ),
    )
    parser.add_argument(
        "--output-dtype",
        default=None,
        choices=list(STORAGE_DTYPES),
        help="Cast the prediction to this dtype before export (lossy for integer types).",
    )
    _add_export_args(parser)
    _add_log_level_arg(parser)


def _build_landcover(
    args: argparse.Namespace, year: int, engine: str
) -> Optional[LandcoverMaskConfig]:
    if not args.landcover_source:
        return None
    classes = parse_class_list(args.forest_classes)
    return LandcoverMaskConfig(
        source=_local_source(args.landcover_source, engine),
        year=args.landcover_year if args.landcover_year is not None else year,
        classes=classes or DEFAULT_FOREST_CLASSES,
    )


def _build_aoi(args: argparse.Namespace, engine: str) -> Optional[AreaOfInterestConfig]:
    if args.aoi:
        return AreaOfInterestConfig(geometry=args.aoi)
    if args.aoi_collection:
        return AreaOfInterestConfig(
            collection=_local_source(args.aoi_collection, engine),
            property=args.aoi_property or DEFAULT_AOI_PROPERTY,
            value=args.aoi_value,
        )
    return None


def build_scoring_config(args: argparse.Namespace) -> ScoringConfig:
    """Build a ScoringConfig from parsed CLI arguments and optional YAML config."""
    # Start with YAML config if provided
    if args.config is not None:
        try:
            config = load_scoring_config(args.config, validate=False)
        except (ConfigurationError, FileNotFoundError) as e:
            raise ConfigurationError(f"Failed to load config from {args.config}: {e}") from e

        # Override with CLI arguments if provided
        if args.engine:
            config.engine = args.engine
        if args.project:
            config.project = args.project
        if args.model_preset:
            config.model = get_preset(args.model_preset)
        if args.year is not None:
            config.year = args.year
        if args.embedding_source:
            config.embedding.source = _local_source(args.embedding_source, config.engine)
        aoi = _build_aoi(args, config.engine)
        if aoi is not None:
            config.area_of_interest = aoi
        landcover = _build_landcover(args, config.year, config.engine)
        if landcover is not None:
            config.landcover = landcover
        if args.scale is not None:
            config.scale = args.scale
        if args.crs:
            config.crs = args.crs
        if args.output_dtype:
            config.output_dtype = args.output_dtype
        config.output = _build_export(args, config.output, "Export-Height-Map")

        # Validate the final config
        config.validate()
        return config

    # Build config from CLI arguments only
    year = args.year if args.year is not None else DEFAULT_PREDICTION_YEAR
    engine = args.engine or DEFAULT_ENGINE
    config = ScoringConfig(
        model=get_preset(args.model_preset),
        area_of_interest=_build_aoi(args, engine),
        engine=engine,
        project=args.project,
        year=year,
        embedding=EmbeddingSourceConfig(
            source=_local_source(args.embedding_source, engine)
            if args.embedding_source
            else DEFAULT_EMBEDDING_SOURCE,
        ),
        landcover=_build_landcover(args, year, engine),
        scale=args.scale if args.scale is not None else DEFAULT_SCALE,
        crs=args.crs or DEFAULT_CRS,
        output_dtype=args.output_dtype,
        output=_build_export(args, None, "Export-Height-Map"),
    )

    config.validate()
    return config


__all__ = [
    "strtobool",
    "parse_class_list",
    "add_common_sampling_args",
    "build_sampling_config",
    "add_common_scoring_args",
    "build_scoring_config",
]
