"""Forest-height sampling and embedding join.

The pipeline draws a stratified random sample of forested pixels from a
LiDAR height raster, then pairs every sampled point with the embedding
values of the year its LiDAR was flown:

1. ``sample_reference_data``: build a 0/1 forest layer from the height
   band's footprint and draw ``sample_size`` points from class 1.
2. ``run_embedding_sampling``: for each distinct acquisition year, mosaic
   the embedding tiles of that year and average them over the points
   flown that year. Years are processed independently and unioned.
3. ``build_height_dataset``: load inputs and run both steps.
"""

from __future__ import annotations

import logging
from typing import Any

from ..config.models import SamplingConfig
from ..engine.base import GeospatialEngine
from ..errors import DataAvailabilityError

LOGGER = logging.getLogger(__name__)

FOREST_BAND = "forest"
FOREST_CLASS_VALUES = (0, 1)


def sample_reference_data(engine: GeospatialEngine, height_raster: Any, config: SamplingConfig) -> Any:
    """Sample forested pixels of ``height_raster``.

    Args:
        engine: Engine the raster belongs to.
        height_raster: Raster with ``config.height_band`` and ``config.year_band``.
        config: Sampling parameters (sample size, seed, grid).

    Returns:
        Table of up to ``config.sample_size`` points with the height and
        year columns. Non-forested pixels are never sampled.
    """
    forest = engine.presence_layer(height_raster, band=config.height_band, name=FOREST_BAND)
    stacked = engine.add_bands(forest, height_raster)
    samples = engine.stratified_sample(
        stacked,
        class_band=FOREST_BAND,
        class_values=list(FOREST_CLASS_VALUES),
        class_points=[0, config.sample_size],
        scale=config.scale,
        crs=config.crs,
        seed=config.seed,
        drop_nulls=True,
        geometries=True,
    )
    return engine.select_columns(samples, [config.height_band, config.year_band])


def run_embedding_sampling(
    engine: GeospatialEngine,
    samples: Any,
    collection: Any,
    config: SamplingConfig,
) -> Any:
    """Join each sample with the mean embedding of its own acquisition year.

    A year without embedding tiles keeps its rows with empty embedding
    columns; the other years are unaffected.
    """
    bands = list(config.embedding.bands)
    years = engine.distinct_sorted(samples, config.year_band)
    if isinstance(years, list):
        LOGGER.info("Sampling embeddings for %d year(s): %s", len(years), years)

    def _sample_year(year: Any) -> Any:
        subset = engine.filter_equals(samples, config.year_band, year)
        try:
            mosaic = engine.annual_mosaic(collection, year)
        except DataAvailabilityError as exc:
            LOGGER.warning("%s; embedding columns for %s are left empty", exc, year)
            return engine.add_null_columns(subset, bands)
        return engine.reduce_regions_mean(mosaic, subset, config.scale, config.crs)

    template = engine.add_null_columns(samples, bands)
    return engine.map_and_flatten(years, _sample_year, template)


def build_height_dataset(engine: GeospatialEngine, config: SamplingConfig) -> Any:
    """Load the height raster and embeddings, then sample and join them."""
    LOGGER.info(
        "Building height dataset from %s (%d point(s), seed %d, %s m in %s)",
        config.height_source,
        config.sample_size,
        config.seed,
        config.scale,
        config.crs,
    )
    height = engine.load_raster(config.height_source)
    collection = engine.load_collection(config.embedding.source, config.embedding.bands)

    samples = sample_reference_data(engine, height, config)
    dataset = run_embedding_sampling(engine, samples, collection, config)
    if config.drop_unmatched:
        dataset = engine.drop_nulls(dataset, config.embedding.bands)

    columns = [config.height_band, config.year_band] + list(config.embedding.bands)
    return engine.select_columns(dataset, columns)


def export_height_dataset(engine: GeospatialEngine, dataset: Any, config: SamplingConfig) -> Any:
    """Write ``dataset`` to ``config.output``."""
    columns = [config.height_band, config.year_band] + list(config.embedding.bands)
    metadata = {
        "height_source": str(config.height_source),
        "embedding_source": str(config.embedding.source),
        "sample_size": config.sample_size,
        "seed": config.seed,
        "scale": config.scale,
        "crs": config.crs,
    }
    return engine.export_table(dataset, config.output, columns=columns, metadata=metadata)


__all__ = [
    "FOREST_BAND",
    "sample_reference_data",
    "run_embedding_sampling",
    "build_height_dataset",
    "export_height_dataset",
]
