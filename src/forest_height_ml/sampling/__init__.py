"""Stratified height sampling joined with annual embeddings."""

from .pipeline import (
    FOREST_BAND,
    build_height_dataset,
    export_height_dataset,
    run_embedding_sampling,
    sample_reference_data,
)

__all__ = [
    "FOREST_BAND",
    "build_height_dataset",
    "export_height_dataset",
    "run_embedding_sampling",
    "sample_reference_data",
]
