"""Apply a linear model to embedding rasters.

The predicted height of a pixel is::

    intercept + sum(coefficients[i] * band[i])

computed band-by-band by the engine, so a pixel masked in the input stays
masked in the prediction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np

from ..config.models import LinearModel, ScoringConfig
from ..engine.base import GeospatialEngine
from ..errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

PREDICTION_BAND = "predicted_height_m"


@dataclass
class HeightMapResult:
    """Outputs of :func:`predict_height_map`."""

    prediction: Any
    region: Any
    export: Optional[Any] = None


def score_embeddings(engine: GeospatialEngine, embeddings: Any, model: LinearModel) -> Any:
    """Score ``embeddings`` with ``model``.

    Args:
        engine: Engine the raster belongs to.
        embeddings: Raster holding (at least) the model's bands.
        model: Intercept and one coefficient per band.

    Returns:
        Single-band raster named ``predicted_height_m``.

    Raises:
        ConfigurationError: If the coefficient count differs from the
            raster's band count. Nothing is computed in that case.
    """
    model.validate()
    band_count = len(engine.band_names(embeddings))
    if len(model.coefficients) != band_count:
        raise ConfigurationError(
            f"model.coefficients must have one value per embedding band ({band_count}), "
            f"got {len(model.coefficients)}"
        )

    selected = engine.select_bands(embeddings, model.bands)
    weighted = engine.multiply_constants(selected, model.coefficients)
    total = engine.sum_bands(weighted, PREDICTION_BAND)
    return engine.add_constant(total, model.intercept, name=PREDICTION_BAND)


def prepare_embedding_raster(engine: GeospatialEngine, config: ScoringConfig) -> Tuple[Any, Any]:
    """Mosaic the embedding year over the area of interest.

    Pixels outside the area of interest are masked, and so are pixels
    outside the land-cover forest classes when ``config.landcover`` is set.

    Returns:
        ``(raster, region)``
    """
    region = engine.resolve_region(config.area_of_interest)
    collection = engine.load_collection(config.embedding.source, config.embedding.bands)
    mosaic = engine.annual_mosaic(collection, config.year, region=region)
    raster = engine.clip_to_region(mosaic, region)

    if config.landcover is not None:
        LOGGER.info(
            "Masking to land-cover classes %s (%s, %d)",
            list(config.landcover.classes),
            config.landcover.source,
            config.landcover.year,
        )
        landcover = engine.load_landcover(config.landcover.source, config.landcover.year)
        forest = engine.remap_classes(landcover, config.landcover.classes)
        raster = engine.update_mask(raster, forest)
    return raster, region


def cast_for_storage(engine: GeospatialEngine, raster: Any, dtype: str) -> Any:
    """Cast predicted heights to a storage dtype, warning about what is lost."""
    np_dtype = np.dtype(dtype)
    if np.issubdtype(np_dtype, np.integer):
        LOGGER.warning(
            "Casting predictions to %s drops fractional metres (error up to 1 m per pixel)",
            np_dtype.name,
        )
        if np.issubdtype(np_dtype, np.unsignedinteger):
            LOGGER.warning("Negative predictions are clipped to 0 when stored as %s", np_dtype.name)
    elif np_dtype == np.dtype("float32"):
        LOGGER.debug("Casting predictions to float32")
    return engine.cast(raster, np_dtype.name)


def predict_height_map(engine: GeospatialEngine, config: ScoringConfig) -> HeightMapResult:
    """Prepare, score, cast and (when ``config.output`` is set) export."""
    LOGGER.info(
        "Predicting %d height map with model '%s' (%d band(s))",
        config.year,
        config.model.name,
        config.model.band_count,
    )
    raster, region = prepare_embedding_raster(engine, config)
    prediction = score_embeddings(engine, raster, config.model)
    if config.output_dtype:
        prediction = cast_for_storage(engine, prediction, config.output_dtype)

    result = HeightMapResult(prediction=prediction, region=region)
    if config.output is not None:
        metadata = {
            "model": config.model.name,
            "intercept": config.model.intercept,
            "year": config.year,
            "scale": config.scale,
            "crs": config.crs,
        }
        result.export = engine.export_raster(
            prediction,
            config.output,
            region,
            config.scale,
            config.crs,
            metadata=metadata,
        )
    return result


__all__ = [
    "PREDICTION_BAND",
    "HeightMapResult",
    "score_embeddings",
    "prepare_embedding_raster",
    "cast_for_storage",
    "predict_height_map",
]
