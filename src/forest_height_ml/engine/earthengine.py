"""Google Earth Engine implementation of the engine interface.

Every method composes ``ee`` objects without contacting the server. Only
:meth:`EarthEngineEngine.band_names` issues a ``getInfo`` request, and the
export methods start batch tasks.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Iterator, List, Optional, Sequence

import ee
from shapely.geometry import mapping

from ..config.models import AreaOfInterestConfig, ExportConfig
from ..errors import ConfigurationError, ExternalEngineError
from ..geometry import parse_aoi
from .base import GeospatialEngine, year_date_range

LOGGER = logging.getLogger(__name__)

CAST_METHODS = {
    "int8": "toInt8",
    "uint8": "toUint8",
    "int16": "toInt16",
    "uint16": "toUint16",
    "int32": "toInt32",
    "uint32": "toUint32",
    "float32": "toFloat",
    "float64": "toDouble",
}


@contextmanager
def _ee_errors(action: str) -> Iterator[None]:
    try:
        yield
    except ee.EEException as exc:
        LOGGER.error("Earth Engine failed to %s: %s", action, exc)
        raise ExternalEngineError(str(exc)) from exc


def initialize_earth_engine(project: Optional[str] = None) -> None:
    """Initialize the Earth Engine client, optionally against a cloud project."""
    try:
        if project:
            ee.Initialize(project=project)
        else:
            ee.Initialize()
    except Exception as exc:
        LOGGER.error(
            "Earth Engine initialization failed: %s. Run `earthengine authenticate`, then rerun.",
            exc,
        )
        raise ExternalEngineError(f"Earth Engine initialization failed: {exc}") from exc
    LOGGER.info("Earth Engine initialized%s", f" (project {project})" if project else "")


@dataclass(frozen=True)
class EarthEngineRegion:
    """A region as features (for painting masks) and as a geometry (for bounds)."""

    features: Any
    geometry: Any


class EarthEngineEngine(GeospatialEngine):
    """Engine backed by the ``earthengine-api`` client."""

    name = "earthengine"

    def __init__(self, project: Optional[str] = None, initialize: bool = True) -> None:
        self.project = project
        if initialize:
            initialize_earth_engine(project)

    # -- loading ---------------------------------------------------------------

    def load_raster(self, source: str) -> Any:
        return ee.Image(source)

    def load_collection(self, source: str, bands: Optional[Sequence[str]]) -> Any:
        collection = ee.ImageCollection(source)
        if bands is not None:
            collection = collection.select(list(bands))
        return collection

    def load_landcover(self, source: str, year: int) -> Any:
        start, end = self._date_bounds(year)
        return ee.Image(ee.ImageCollection(source).filterDate(start, end).first())

    def resolve_region(self, aoi: AreaOfInterestConfig) -> EarthEngineRegion:
        if aoi.geometry is not None:
            geometry = ee.Geometry(mapping(parse_aoi(aoi.geometry)))
            return EarthEngineRegion(
                features=ee.FeatureCollection([ee.Feature(geometry)]),
                geometry=geometry,
            )
        features = ee.FeatureCollection(aoi.collection).filter(ee.Filter.eq(aoi.property, aoi.value))
        return EarthEngineRegion(features=features, geometry=features.geometry())

    # -- masking and band selection ------------------------------------------

    def band_names(self, raster: Any) -> List[str]:
        with _ee_errors("read band names"):
            return raster.bandNames().getInfo()

    def select_bands(self, raster: Any, bands: Sequence[str]) -> Any:
        return raster.select(list(bands))

    def add_bands(self, raster: Any, other: Any) -> Any:
        return raster.addBands(other)

    def presence_layer(self, raster: Any, band: str, name: str) -> Any:
        return raster.select(band).mask().byte().rename(name)

    def update_mask(self, raster: Any, mask: Any) -> Any:
        return raster.updateMask(mask)

    def clip_to_region(self, raster: Any, region: EarthEngineRegion) -> Any:
        return raster.updateMask(ee.Image(0).paint(region.features, 1))

    def remap_classes(self, raster: Any, classes: Sequence[int]) -> Any:
        classes = [int(c) for c in classes]
        return raster.remap(classes, [1] * len(classes), 0).rename("remapped")

    # -- sampling, compositing and reduction ---------------------------------

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
        return raster.stratifiedSample(
            numPoints=0,
            classBand=class_band,
            classValues=list(class_values),
            classPoints=list(class_points),
            scale=scale,
            projection=crs,
            seed=seed,
            dropNulls=drop_nulls,
            geometries=geometries,
        )

    @staticmethod
    def _date_bounds(year: Any):
        """``filterDate`` arguments covering ``year``; the end date is exclusive."""
        if isinstance(year, int):
            start, end = year_date_range(year)
            return start.isoformat(), (end + timedelta(days=1)).isoformat()
        year = ee.Number(year)
        return ee.Date.fromYMD(year, 1, 1), ee.Date.fromYMD(year, 12, 31).advance(1, "day")

    def annual_mosaic(self, collection: Any, year: Any, region: Optional[EarthEngineRegion] = None) -> Any:
        start, end = self._date_bounds(year)
        images = collection.filterDate(start, end)
        if region is not None:
            images = images.filterBounds(region.geometry)
        return images.mosaic()

    def reduce_regions_mean(self, raster: Any, table: Any, scale: float, crs: str) -> Any:
        return raster.reduceRegions(
            collection=table,
            reducer=ee.Reducer.mean(),
            scale=scale,
            crs=crs,
        )

    # -- raster algebra --------------------------------------------------------

    def multiply_constants(self, raster: Any, values: Sequence[float]) -> Any:
        return raster.multiply(ee.Image.constant([float(v) for v in values]))

    def sum_bands(self, raster: Any, name: str) -> Any:
        return raster.reduce(ee.Reducer.sum()).rename(name)

    def add_constant(self, raster: Any, value: float, name: Optional[str] = None) -> Any:
        result = raster.add(float(value))
        return result.rename(name) if name is not None else result

    def cast(self, raster: Any, dtype: str) -> Any:
        try:
            method = CAST_METHODS[dtype]
        except KeyError:
            raise ConfigurationError(
                f"output_dtype must be one of {tuple(CAST_METHODS)}, got '{dtype}'"
            ) from None
        return getattr(raster, method)()

    # -- tables ----------------------------------------------------------------

    def select_columns(self, table: Any, columns: Sequence[str]) -> Any:
        return table.select(list(columns))

    def filter_equals(self, table: Any, column: str, value: Any) -> Any:
        return table.filter(ee.Filter.eq(column, value))

    def distinct_sorted(self, table: Any, column: str) -> Any:
        return table.aggregate_array(column).distinct().sort()

    def drop_nulls(self, table: Any, columns: Sequence[str]) -> Any:
        return table.filter(ee.Filter.notNull(list(columns)))

    def add_null_columns(self, table: Any, columns: Sequence[str]) -> Any:
        # Absent properties already read as null.
        return table

    def map_and_flatten(self, keys: Any, func: Callable[[Any], Any], template: Any) -> Any:
        return ee.FeatureCollection(ee.List(keys).map(func)).flatten()

    # -- export ----------------------------------------------------------------

    def export_table(
        self,
        table: Any,
        export: ExportConfig,
        columns: Optional[Sequence[str]] = None,
        metadata: Optional[dict] = None,
    ) -> Any:
        if metadata:
            table = table.set(metadata)
        if export.destination == "drive":
            kwargs = {
                "collection": table,
                "description": export.description,
                "fileNamePrefix": export.file_name_prefix or export.description,
                "fileFormat": "CSV",
            }
            if export.folder:
                kwargs["folder"] = export.folder
            if columns:
                kwargs["selectors"] = list(columns)
            task = ee.batch.Export.table.toDrive(**kwargs)
        elif export.destination == "asset":
            task = ee.batch.Export.table.toAsset(
                collection=table,
                description=export.description,
                assetId=export.asset_id,
            )
        else:
            raise ConfigurationError(
                f"output.destination '{export.destination}' is not supported by the earthengine engine; "
                "use 'drive' or 'asset'"
            )
        return self._start(task, export)

    def export_raster(
        self,
        raster: Any,
        export: ExportConfig,
        region: Optional[EarthEngineRegion],
        scale: float,
        crs: str,
        metadata: Optional[dict] = None,
    ) -> Any:
        if metadata:
            raster = raster.set(metadata)
        kwargs = {
            "image": raster,
            "description": export.description,
            "scale": scale,
            "crs": crs,
            "maxPixels": export.max_pixels,
        }
        if region is not None:
            kwargs["region"] = region.geometry
        if export.destination == "asset":
            task = ee.batch.Export.image.toAsset(assetId=export.asset_id, **kwargs)
        elif export.destination == "drive":
            kwargs["fileNamePrefix"] = export.file_name_prefix or export.description
            if export.folder:
                kwargs["folder"] = export.folder
            task = ee.batch.Export.image.toDrive(**kwargs)
        else:
            raise ConfigurationError(
                f"output.destination '{export.destination}' is not supported by the earthengine engine; "
                "use 'drive' or 'asset'"
            )
        return self._start(task, export)

    @staticmethod
    def _start(task: Any, export: ExportConfig) -> Any:
        with _ee_errors(f"start export '{export.description}'"):
            task.start()
        LOGGER.info("Started %s export task '%s' (id %s)", export.destination, export.description, task.id)
        return task


__all__ = [
    "CAST_METHODS",
    "EarthEngineEngine",
    "EarthEngineRegion",
    "initialize_earth_engine",
]
