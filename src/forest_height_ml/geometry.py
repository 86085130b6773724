"""AOI (Area of Interest) parsing and geometry utilities.

This module provides functions to parse AOI definitions from various
formats for the local engine. Earth Engine regions are built by the engine
itself from the same configuration.

Supported AOI Formats
---------------------
1. **Bounding box string**: Comma-separated "minx,miny,maxx,maxy"
   Example: "-70.5,44.0,-70.0,44.5"

2. **WKT (Well-Known Text)**: Standard geometry representation
   Example: "POLYGON ((-70.5 44.0, -70.0 44.0, -70.0 44.5, -70.5 44.5, -70.5 44.0))"

3. **GeoJSON**: JSON object with geometry
   Example: '{"type": "Polygon", "coordinates": [[[...]]]]}'

4. **File path**: Path to GeoPackage (.gpkg), Shapefile (.shp) or GeoJSON
   - Automatically reprojects to EPSG:4326 if needed
   - Unions all features into single geometry

5. **JSON array**: Bounding box as JSON array [minx, miny, maxx, maxy]
   Example: "[-70.5, 44.0, -70.0, 44.5]"
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import geopandas as gpd
from shapely import wkt
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry

from .errors import ConfigurationError, DataAvailabilityError

LOGGER = logging.getLogger(__name__)

AOI_CRS = "EPSG:4326"


def _union_frame(gdf: gpd.GeoDataFrame, path: Path) -> BaseGeometry:
    if gdf.empty:
        raise DataAvailabilityError(f"AOI file '{path}' contains no features.")
    if gdf.crs is not None:
        gdf = gdf.to_crs(AOI_CRS)
    else:
        LOGGER.warning("AOI file %s has no CRS; assuming EPSG:4326 coordinates.", path)
    geom_series = gdf.geometry.dropna()
    if geom_series.empty:
        raise DataAvailabilityError(f"AOI file '{path}' contains no valid geometries.")
    return geom_series.union_all()


def parse_aoi(aoi: str) -> BaseGeometry:
    """Parse AOI from various input formats.

    Args:
        aoi: AOI definition as a string. Can be:
            - File path to GeoPackage/Shapefile/GeoJSON
            - GeoJSON string
            - WKT string
            - Bounding box as comma-separated string
            - Bounding box as JSON array

    Returns:
        Parsed geometry in EPSG:4326 coordinates.

    Raises:
        ConfigurationError: If the AOI text cannot be parsed or is empty.
        DataAvailabilityError: If an AOI file holds no features.
    """
    candidate = aoi.strip()
    path = Path(candidate)
    geom: Optional[BaseGeometry] = None

    if len(candidate) < 4096 and path.exists():
        suffix = path.suffix.lower()
        if suffix in {".gpkg", ".shp", ".geojson", ".json"}:
            geom = _union_frame(gpd.read_file(path), path)
        else:
            candidate = path.read_text(encoding="utf-8").strip()

    if geom is None:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            payload = None

        try:
            if isinstance(payload, dict):
                geom = shape(payload.get("geometry", payload))
            elif isinstance(payload, list) and len(payload) == 4:
                geom = box(*payload)
            else:
                if candidate.count(",") == 3 and not candidate[:1].isalpha():
                    parts = [float(x) for x in candidate.split(",")]
                    geom = box(*parts)
                else:
                    geom = wkt.loads(candidate)
        except Exception as exc:
            raise ConfigurationError(
                f"area_of_interest.geometry must be a bbox, WKT, GeoJSON or vector file, got {aoi!r}: {exc}"
            ) from exc

    if geom.is_empty:
        raise ConfigurationError("area_of_interest.geometry is empty.")
    if not geom.is_valid:
        geom = geom.buffer(0)
    return geom


def select_region(collection: str, property_name: str, value: Any) -> BaseGeometry:
    """Union the features of a vector file whose ``property_name`` equals ``value``.

    This is the local counterpart of filtering a feature collection such as
    ``TIGER/2018/States`` by ``NAME``.

    Returns:
        The selected geometry in EPSG:4326.
    """
    path = Path(collection)
    if not path.exists():
        raise FileNotFoundError(f"AOI collection not found: {path}")
    gdf = gpd.read_file(path)
    if property_name not in gdf.columns:
        raise ConfigurationError(
            f"area_of_interest.property '{property_name}' is not a column of {path.name}"
        )
    selected = gdf[gdf[property_name] == value]
    if selected.empty:
        raise DataAvailabilityError(
            f"No features in {path.name} with {property_name} == {value!r}"
        )
    LOGGER.info("Selected %d feature(s) with %s == %r from %s", len(selected), property_name, value, path)
    return _union_frame(selected, path)


def reproject_geometry(geom: BaseGeometry, src_crs: Any, dst_crs: Any) -> BaseGeometry:
    """Reproject a single geometry between coordinate reference systems."""
    series = gpd.GeoSeries([geom], crs=src_crs)
    return series.to_crs(dst_crs).iloc[0]


__all__ = [
    "AOI_CRS",
    "parse_aoi",
    "select_region",
    "reproject_geometry",
]
