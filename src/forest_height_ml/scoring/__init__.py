"""Linear-model scoring of embedding rasters."""

from .pipeline import (
    PREDICTION_BAND,
    HeightMapResult,
    cast_for_storage,
    predict_height_map,
    prepare_embedding_raster,
    score_embeddings,
)

__all__ = [
    "PREDICTION_BAND",
    "HeightMapResult",
    "cast_for_storage",
    "predict_height_map",
    "prepare_embedding_raster",
    "score_embeddings",
]
