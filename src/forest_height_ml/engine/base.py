"""Engine interface shared by the sampling and scoring pipelines.

The pipelines never touch raster or table objects directly; they compose
calls on a :class:`GeospatialEngine`. Each engine decides what its raster,
collection, region and table handles are:

* :class:`~forest_height_ml.engine.earthengine.EarthEngineEngine` builds lazy
  ``ee.Image`` / ``ee.FeatureCollection`` graphs.
* :class:`~forest_height_ml.engine.local.LocalEngine` evaluates eagerly on
  in-memory arrays and GeoDataFrames.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Callable, Optional, Sequence, Tuple

from ..config.models import AreaOfInterestConfig, ExportConfig


def year_date_range(year: int) -> Tuple[date, date]:
    """Return the closed interval [Jan 1, Dec 31] covering ``year``."""
    return date(int(year), 1, 1), date(int(year), 12, 31)


class GeospatialEngine(ABC):
    """Raster/vector operations the pipelines are written against."""

    name: str = "engine"

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @abstractmethod
    def load_raster(self, source: str) -> Any:
        """Open a single (multi-band) raster."""

    @abstractmethod
    def load_collection(self, source: str, bands: Sequence[str]) -> Any:
        """Open a time series of raster tiles restricted to ``bands``."""

    @abstractmethod
    def load_landcover(self, source: str, year: int) -> Any:
        """Open the land-cover raster for ``year``."""

    @abstractmethod
    def resolve_region(self, aoi: AreaOfInterestConfig) -> Any:
        """Turn an area-of-interest configuration into a region handle."""

    # -------------------------------------------------------------------------
    # Masking and band selection
    # -------------------------------------------------------------------------

    @abstractmethod
    def band_names(self, raster: Any) -> Sequence[str]:
        """Band names of ``raster`` in order."""

    @abstractmethod
    def select_bands(self, raster: Any, bands: Sequence[str]) -> Any:
        """Subset and reorder bands."""

    @abstractmethod
    def add_bands(self, raster: Any, other: Any) -> Any:
        """Append the bands of ``other`` to ``raster``."""

    @abstractmethod
    def presence_layer(self, raster: Any, band: str, name: str) -> Any:
        """Single-band layer: 1 where ``band`` has data, 0 where it is masked."""

    @abstractmethod
    def update_mask(self, raster: Any, mask: Any) -> Any:
        """Mask out pixels of ``raster`` where ``mask`` is 0 or masked."""

    @abstractmethod
    def clip_to_region(self, raster: Any, region: Any) -> Any:
        """Mask out pixels of ``raster`` outside ``region``."""

    @abstractmethod
    def remap_classes(self, raster: Any, classes: Sequence[int]) -> Any:
        """Single-band layer: 1 where the first band is one of ``classes``, else 0."""

    # -------------------------------------------------------------------------
    # Sampling, compositing and reduction
    # -------------------------------------------------------------------------

    @abstractmethod
    def stratified_sample(
        self,
        raster: Any,
        class_band: str,
        class_values: Sequence[int],
        class_points: Sequence[int],
        scale: float,
        crs: str,
        seed: int,
        drop_nulls: bool = True,
        geometries: bool = True,
    ) -> Any:
        """Draw ``class_points[i]`` random pixels of class ``class_values[i]``.

        When fewer pixels of a class are available than requested, all of them
        are returned. A request with no candidate pixels at all gives an empty
        table rather than an error, on every engine.
        """

    @abstractmethod
    def annual_mosaic(self, collection: Any, year: Any, region: Optional[Any] = None) -> Any:
        """Mosaic all tiles acquired within ``year_date_range(year)``."""

    @abstractmethod
    def reduce_regions_mean(self, raster: Any, table: Any, scale: float, crs: str) -> Any:
        """Append the mean of every band over each row's geometry."""

    # -------------------------------------------------------------------------
    # Raster algebra
    # -------------------------------------------------------------------------

    @abstractmethod
    def multiply_constants(self, raster: Any, values: Sequence[float]) -> Any:
        """Multiply band ``i`` by ``values[i]``."""

    @abstractmethod
    def sum_bands(self, raster: Any, name: str) -> Any:
        """Per-pixel sum of all bands as a single band called ``name``."""

    @abstractmethod
    def add_constant(self, raster: Any, value: float, name: Optional[str] = None) -> Any:
        """Add a scalar to every band, optionally renaming a single-band result."""

    @abstractmethod
    def cast(self, raster: Any, dtype: str) -> Any:
        """Cast pixel values to ``dtype``."""

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    @abstractmethod
    def select_columns(self, table: Any, columns: Sequence[str]) -> Any:
        """Keep only ``columns`` (and geometry)."""

    @abstractmethod
    def filter_equals(self, table: Any, column: str, value: Any) -> Any:
        """Rows where ``column == value``."""

    @abstractmethod
    def distinct_sorted(self, table: Any, column: str) -> Any:
        """Distinct values of ``column`` in ascending order."""

    @abstractmethod
    def drop_nulls(self, table: Any, columns: Sequence[str]) -> Any:
        """Rows where none of ``columns`` is null."""

    @abstractmethod
    def add_null_columns(self, table: Any, columns: Sequence[str]) -> Any:
        """Append ``columns`` holding nulls."""

    @abstractmethod
    def map_and_flatten(self, keys: Any, func: Callable[[Any], Any], template: Any) -> Any:
        """Apply ``func`` to every key independently and union the tables.

        ``template`` gives the (empty) result when there are no keys. Result
        row order is unspecified.
        """

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    @abstractmethod
    def export_table(
        self,
        table: Any,
        export: ExportConfig,
        columns: Optional[Sequence[str]] = None,
        metadata: Optional[dict] = None,
    ) -> Any:
        """Write ``table`` to durable storage."""

    @abstractmethod
    def export_raster(
        self,
        raster: Any,
        export: ExportConfig,
        region: Any,
        scale: float,
        crs: str,
        metadata: Optional[dict] = None,
    ) -> Any:
        """Write ``raster`` to durable storage."""


__all__ = [
    "GeospatialEngine",
    "year_date_range",
]
