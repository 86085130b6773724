"""Eager, in-process implementation of the engine interface.

Rasters are held as float64 arrays with NaN marking masked pixels, tables as
GeoDataFrames. Every operation runs immediately, so this engine is meant for
areas that fit in memory: test fixtures, small study sites, or tiles
exported from Earth Engine.

Grid handling
-------------
Sampling and reduction take a ``(crs, scale)`` grid like their Earth Engine
counterparts. Rasters not already on that grid are warped to it with
nearest-neighbour resampling before any pixel is read.

Mosaics
-------
Tiles are painted in enumeration order (sorted file names) and the last tile
wins where tiles overlap, matching ``ee.ImageCollection.mosaic()``.
"""

from __future__ import annotations

import json
import logging
import math
import re
import warnings
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from affine import Affine
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.features import geometry_mask
from rasterio.transform import array_bounds, rowcol
from rasterio.warp import calculate_default_transform, reproject, transform_bounds
from rasterio.windows import Window
from rasterio.windows import transform as window_transform
from shapely.geometry import box, mapping
from shapely.geometry.base import BaseGeometry

from ..config.models import AreaOfInterestConfig, DEFAULT_MAX_WORKERS, ExportConfig
from ..errors import ConfigurationError, DataAvailabilityError
from ..geometry import AOI_CRS, parse_aoi, reproject_geometry, select_region
from .base import GeospatialEngine, year_date_range

LOGGER = logging.getLogger(__name__)

DATE_TAG = "ACQUISITION_DATE"
RASTER_SUFFIXES = {".tif", ".tiff"}
RESULT_DTYPE = "float32"
_YEAR_PATTERN = re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)")


# =============================================================================
# Data Models
# =============================================================================

@dataclass(frozen=True, eq=False)
class LocalRaster:
    """A multi-band raster on a regular grid."""

    data: np.ndarray  # Shape: (bands, height, width), NaN = masked
    band_names: Tuple[str, ...]
    transform: Affine
    crs: CRS
    dtypes: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.data.ndim != 3:
            raise ValueError(f"Raster data must be 3-D (bands, rows, cols), got {self.data.ndim}-D")
        if len(self.band_names) != self.data.shape[0]:
            raise ValueError(
                f"Expected {self.data.shape[0]} band names, got {len(self.band_names)}"
            )

    @property
    def count(self) -> int:
        return self.data.shape[0]

    @property
    def height(self) -> int:
        return self.data.shape[1]

    @property
    def width(self) -> int:
        return self.data.shape[2]

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return west, south, east, north

    @property
    def band_dtypes(self) -> Tuple[str, ...]:
        return self.dtypes or (RESULT_DTYPE,) * self.count

    def band_index(self, name: str) -> int:
        try:
            return self.band_names.index(name)
        except ValueError:
            raise ConfigurationError(
                f"band '{name}' not found; available bands: {', '.join(self.band_names)}"
            ) from None

    def band(self, name: str) -> np.ndarray:
        return self.data[self.band_index(name)]

    def with_data(
        self,
        data: np.ndarray,
        band_names: Optional[Sequence[str]] = None,
        dtypes: Optional[Sequence[str]] = None,
    ) -> "LocalRaster":
        names = tuple(band_names) if band_names is not None else self.band_names
        return replace(
            self,
            data=data,
            band_names=names,
            dtypes=tuple(dtypes) if dtypes is not None else (RESULT_DTYPE,) * len(names),
        )


@dataclass(frozen=True)
class LocalTile:
    """A raster tile and the date it was acquired."""

    raster: LocalRaster
    acquired: date
    path: Optional[Path] = None


@dataclass(frozen=True)
class LocalCollection:
    """Tiles in enumeration (mosaic) order."""

    tiles: Tuple[LocalTile, ...]
    source: str = ""

    def __len__(self) -> int:
        return len(self.tiles)


@dataclass(frozen=True)
class LocalRegion:
    """A region geometry and its CRS."""

    geometry: BaseGeometry
    crs: str = AOI_CRS

    def geometry_in(self, crs: Any) -> BaseGeometry:
        if CRS.from_user_input(self.crs) == CRS.from_user_input(crs):
            return self.geometry
        return reproject_geometry(self.geometry, self.crs, crs)


# =============================================================================
# Helper Functions
# =============================================================================

def storage_nodata(dtype: str) -> float:
    """Nodata value written for ``dtype``: NaN for floats, a range end for integers."""
    np_dtype = np.dtype(dtype)
    if np.issubdtype(np_dtype, np.floating):
        return float("nan")
    info = np.iinfo(np_dtype)
    return float(info.min) if np.issubdtype(np_dtype, np.signedinteger) else float(info.max)


def _storage_range(dtype: str) -> Tuple[float, float]:
    """Representable values of ``dtype`` excluding its nodata value."""
    info = np.iinfo(np.dtype(dtype))
    if np.issubdtype(np.dtype(dtype), np.signedinteger):
        return float(info.min + 1), float(info.max)
    return float(info.min), float(info.max - 1)


def _restore_dtype(values: np.ndarray, dtype: str) -> np.ndarray:
    np_dtype = np.dtype(dtype)
    if np.issubdtype(np_dtype, np.integer) and not np.isnan(values).any():
        return values.astype(np_dtype)
    return values


def _geometry_name(table: pd.DataFrame) -> Optional[str]:
    try:
        return table.geometry.name
    except AttributeError:
        return None


def _tile_date(path: Path, tags: Dict[str, str]) -> date:
    value = tags.get(DATE_TAG)
    if value:
        return date.fromisoformat(value[:10])
    years = _YEAR_PATTERN.findall(path.stem)
    if years:
        # Last match; tile indices can also be 4 digits.
        return date(int(years[-1]), 1, 1)
    raise ConfigurationError(
        f"embedding tile {path.name} needs an {DATE_TAG} tag or a 4-digit year in its file name"
    )


def read_raster(path: Union[str, Path]) -> LocalRaster:
    """Read a GeoTIFF into a :class:`LocalRaster` (nodata becomes NaN)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster not found: {path}")
    with rasterio.open(path) as src:
        data = src.read(masked=True).astype("float64").filled(np.nan)
        names = tuple(
            desc if desc else f"b{idx}" for idx, desc in enumerate(src.descriptions, start=1)
        )
        return LocalRaster(
            data=data,
            band_names=names,
            transform=src.transform,
            crs=src.crs,
            dtypes=tuple(src.dtypes),
        )


def _read_tile(path: Path, bands: Optional[Sequence[str]]) -> LocalTile:
    with rasterio.open(path) as src:
        tags = src.tags()
    raster = read_raster(path)
    if bands is not None:
        missing = [b for b in bands if b not in raster.band_names]
        if missing:
            raise ConfigurationError(
                f"embedding.bands not found in tile {path.name}: {', '.join(missing[:5])}"
                + (" ..." if len(missing) > 5 else "")
            )
        indices = [raster.band_index(b) for b in bands]
        raster = replace(
            raster,
            data=raster.data[indices],
            band_names=tuple(bands),
            dtypes=tuple(raster.band_dtypes[i] for i in indices),
        )
    return LocalTile(raster=raster, acquired=_tile_date(path, tags), path=path)


def _on_grid(raster: LocalRaster, crs: CRS, scale: float) -> bool:
    t = raster.transform
    return (
        raster.crs == crs
        and t.b == 0
        and t.d == 0
        and math.isclose(abs(t.a), scale, rel_tol=1e-9)
        and math.isclose(abs(t.e), scale, rel_tol=1e-9)
    )


def _warp(raster: LocalRaster, dst_transform: Affine, dst_crs: CRS, width: int, height: int) -> np.ndarray:
    destination = np.full((raster.count, height, width), np.nan, dtype="float64")
    reproject(
        source=raster.data,
        destination=destination,
        src_transform=raster.transform,
        src_crs=raster.crs,
        dst_transform=dst_transform,
        dst_crs=dst_crs,
        resampling=Resampling.nearest,
        src_nodata=np.nan,
        dst_nodata=np.nan,
    )
    return destination


def to_grid(raster: LocalRaster, crs: Any, scale: float) -> LocalRaster:
    """Warp ``raster`` onto a ``scale``-sized grid in ``crs`` unless it already is."""
    dst_crs = CRS.from_user_input(crs)
    if _on_grid(raster, dst_crs, scale):
        return raster
    transform, width, height = calculate_default_transform(
        raster.crs,
        dst_crs,
        raster.width,
        raster.height,
        *raster.bounds,
        resolution=scale,
    )
    LOGGER.debug("Warping %d-band raster to %s at %s (%d x %d)", raster.count, dst_crs, scale, width, height)
    data = _warp(raster, transform, dst_crs, width, height)
    return replace(raster, data=data, transform=transform, crs=dst_crs)


def align_to(raster: LocalRaster, target: LocalRaster) -> LocalRaster:
    """Resample ``raster`` onto the exact grid of ``target``."""
    if (
        raster.crs == target.crs
        and raster.transform == target.transform
        and raster.data.shape[1:] == target.data.shape[1:]
    ):
        return raster
    data = _warp(raster, target.transform, target.crs, target.width, target.height)
    return replace(raster, data=data, transform=target.transform, crs=target.crs)


def _union_grid(rasters: Sequence[LocalRaster], clip_bounds: Optional[Tuple[float, ...]]) -> Tuple[Affine, CRS, int, int]:
    """Grid covering all ``rasters`` in the first raster's CRS and resolution."""
    first = rasters[0]
    crs = first.crs
    res_x, res_y = abs(first.transform.a), abs(first.transform.e)
    all_bounds = [
        r.bounds if r.crs == crs else transform_bounds(r.crs, crs, *r.bounds) for r in rasters
    ]
    west = min(b[0] for b in all_bounds)
    south = min(b[1] for b in all_bounds)
    east = max(b[2] for b in all_bounds)
    north = max(b[3] for b in all_bounds)
    if clip_bounds is not None:
        west, south = max(west, clip_bounds[0]), max(south, clip_bounds[1])
        east, north = min(east, clip_bounds[2]), min(north, clip_bounds[3])
        # Snap to the first raster's pixel lattice.
        west = first.transform.c + math.floor((west - first.transform.c) / res_x) * res_x
        north = first.transform.f - math.floor((first.transform.f - north) / res_y) * res_y
    width = max(int(math.ceil((east - west) / res_x - 1e-9)), 0)
    height = max(int(math.ceil((north - south) / res_y - 1e-9)), 0)
    return Affine(res_x, 0.0, west, 0.0, -res_y, north), crs, width, height


def _covering_window(bounds: Tuple[float, float, float, float], raster: LocalRaster) -> Window:
    """Smallest window of ``raster`` containing ``bounds``."""
    west, south, east, north = bounds
    col_start, row_start = ~raster.transform * (west, north)
    col_stop, row_stop = ~raster.transform * (east, south)
    col_start = max(int(math.floor(col_start)), 0)
    row_start = max(int(math.floor(row_start)), 0)
    col_stop = min(int(math.ceil(col_stop)), raster.width)
    row_stop = min(int(math.ceil(row_stop)), raster.height)
    if col_stop <= col_start or row_stop <= row_start:
        raise DataAvailabilityError("Export region does not overlap the raster")
    return Window(col_start, row_start, col_stop - col_start, row_stop - row_start)


def _write_metadata(path: Path, payload: Dict[str, Any]) -> Path:
    sidecar = path.with_name(path.name + ".json")
    body = {"created_utc": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")}
    body.update(payload)
    sidecar.write_text(json.dumps(body, indent=2, default=str), encoding="utf-8")
    return sidecar


# =============================================================================
# Engine
# =============================================================================

class LocalEngine(GeospatialEngine):
    """Engine over local GeoTIFF and vector files."""

    name = "local"

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers

    # -- loading ---------------------------------------------------------------

    def load_raster(self, source: str) -> LocalRaster:
        raster = read_raster(source)
        LOGGER.info("Loaded %s (%d band(s), %d x %d)", source, raster.count, raster.width, raster.height)
        return raster

    def load_collection(self, source: str, bands: Optional[Sequence[str]]) -> LocalCollection:
        directory = Path(source)
        if not directory.exists():
            raise FileNotFoundError(f"Embedding directory not found: {directory}")
        if not directory.is_dir():
            raise NotADirectoryError(f"Embedding source is not a directory: {directory}")

        paths = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in RASTER_SUFFIXES)
        if not paths:
            LOGGER.warning("No .tif/.tiff files found in %s", directory)
        tiles = tuple(_read_tile(path, bands) for path in paths)
        LOGGER.info("Loaded %d tile(s) from %s", len(tiles), directory)
        return LocalCollection(tiles=tiles, source=str(directory))

    def load_landcover(self, source: str, year: int) -> LocalRaster:
        path = Path(source)
        if path.is_dir():
            return self.annual_mosaic(self.load_collection(source, None), year)
        return self.load_raster(source)

    def resolve_region(self, aoi: AreaOfInterestConfig) -> LocalRegion:
        if aoi.geometry is not None:
            return LocalRegion(geometry=parse_aoi(aoi.geometry))
        return LocalRegion(geometry=select_region(aoi.collection, aoi.property, aoi.value))

    # -- masking and band selection ------------------------------------------

    def band_names(self, raster: LocalRaster) -> Tuple[str, ...]:
        return raster.band_names

    def select_bands(self, raster: LocalRaster, bands: Sequence[str]) -> LocalRaster:
        indices = [raster.band_index(b) for b in bands]
        return raster.with_data(
            raster.data[indices],
            band_names=bands,
            dtypes=[raster.band_dtypes[i] for i in indices],
        )

    def add_bands(self, raster: LocalRaster, other: LocalRaster) -> LocalRaster:
        other = align_to(other, raster)
        return raster.with_data(
            np.concatenate([raster.data, other.data], axis=0),
            band_names=raster.band_names + other.band_names,
            dtypes=raster.band_dtypes + other.band_dtypes,
        )

    def presence_layer(self, raster: LocalRaster, band: str, name: str) -> LocalRaster:
        present = (~np.isnan(raster.band(band))).astype("float64")
        return raster.with_data(present[np.newaxis], band_names=(name,), dtypes=("uint8",))

    def update_mask(self, raster: LocalRaster, mask: LocalRaster) -> LocalRaster:
        values = align_to(mask, raster).data[0]
        keep = ~np.isnan(values) & (values != 0)
        return raster.with_data(np.where(keep, raster.data, np.nan), dtypes=raster.band_dtypes)

    def clip_to_region(self, raster: LocalRaster, region: LocalRegion) -> LocalRaster:
        geom = region.geometry_in(raster.crs)
        inside = geometry_mask(
            [mapping(geom)],
            out_shape=(raster.height, raster.width),
            transform=raster.transform,
            invert=True,
        )
        return raster.with_data(np.where(inside, raster.data, np.nan), dtypes=raster.band_dtypes)

    def remap_classes(self, raster: LocalRaster, classes: Sequence[int]) -> LocalRaster:
        first = raster.data[0]
        hits = np.isin(first, np.asarray(classes, dtype="float64")).astype("float64")
        remapped = np.where(np.isnan(first), np.nan, hits)
        return raster.with_data(remapped[np.newaxis], band_names=("remapped",), dtypes=("uint8",))

    # -- sampling, compositing and reduction ---------------------------------

    def stratified_sample(
        self,
        raster: LocalRaster,
        class_band: str,
        class_values: Sequence[int],
        class_points: Sequence[int],
        scale: float,
        crs: str,
        seed: int,
        drop_nulls: bool = True,
        geometries: bool = True,
    ) -> gpd.GeoDataFrame:
        if len(class_values) != len(class_points):
            raise ConfigurationError(
                f"class_points must have one entry per class value ({len(class_values)}), "
                f"got {len(class_points)}"
            )
        gridded = to_grid(raster, crs, scale)
        classes = gridded.band(class_band)
        valid = ~np.isnan(classes)
        if drop_nulls:
            valid &= ~np.isnan(gridded.data).any(axis=0)

        rng = np.random.default_rng(seed)
        picks: List[np.ndarray] = []
        available = 0
        requested = 0
        for value, points in zip(class_values, class_points):
            if points <= 0:
                continue
            requested += points
            candidates = np.flatnonzero(valid & (classes == value))
            available += candidates.size
            if candidates.size < points:
                LOGGER.warning(
                    "Class %s has %d candidate pixel(s); returning all of them instead of %d",
                    value,
                    candidates.size,
                    points,
                )
            if candidates.size:
                picks.append(rng.choice(candidates, size=min(points, candidates.size), replace=False))

        if requested > 0 and available == 0:
            LOGGER.warning(
                "Stratification band '%s' has no candidate pixels for classes %s; the sample is empty",
                class_band,
                [v for v, p in zip(class_values, class_points) if p > 0],
            )

        indices = np.sort(np.concatenate(picks)) if picks else np.array([], dtype=np.int64)
        rows, cols = np.unravel_index(indices, classes.shape)
        columns = {
            name: _restore_dtype(gridded.data[i, rows, cols], gridded.band_dtypes[i])
            for i, name in enumerate(gridded.band_names)
        }
        frame = pd.DataFrame(columns)
        LOGGER.info("Stratified sample drew %d of %d requested point(s)", len(frame), requested)
        if not geometries:
            return gpd.GeoDataFrame(frame)
        xs, ys = gridded.transform * (cols + 0.5, rows + 0.5)
        return gpd.GeoDataFrame(frame, geometry=gpd.points_from_xy(xs, ys), crs=gridded.crs)

    def annual_mosaic(
        self,
        collection: LocalCollection,
        year: Any,
        region: Optional[LocalRegion] = None,
    ) -> LocalRaster:
        start, end = year_date_range(int(year))
        tiles = [t for t in collection.tiles if start <= t.acquired <= end]
        clip_bounds = None
        if region is not None and tiles:
            crs = tiles[0].raster.crs
            area = region.geometry_in(crs)
            tiles = [
                t for t in tiles
                if box(*(t.raster.bounds if t.raster.crs == crs else transform_bounds(t.raster.crs, crs, *t.raster.bounds))).intersects(area)
            ]
            clip_bounds = area.bounds
        if not tiles:
            raise DataAvailabilityError(f"No tiles in {collection.source or 'collection'} acquired in {int(year)}")

        rasters = [t.raster for t in tiles]
        transform, crs, width, height = _union_grid(rasters, clip_bounds)
        canvas = np.full((rasters[0].count, height, width), np.nan, dtype="float64")
        for tile in rasters:
            painted = _warp(tile, transform, crs, width, height)
            canvas = np.where(np.isnan(painted), canvas, painted)
        LOGGER.debug("Mosaicked %d tile(s) for %s into %d x %d", len(rasters), int(year), width, height)
        return LocalRaster(
            data=canvas,
            band_names=rasters[0].band_names,
            transform=transform,
            crs=crs,
            dtypes=rasters[0].band_dtypes,
        )

    def reduce_regions_mean(
        self,
        raster: LocalRaster,
        table: gpd.GeoDataFrame,
        scale: float,
        crs: str,
    ) -> gpd.GeoDataFrame:
        gridded = to_grid(raster, crs, scale)
        values = np.full((len(table), gridded.count), np.nan, dtype="float64")
        if len(table):
            geoms = table.geometry
            if table.crs is not None and CRS.from_user_input(table.crs) != gridded.crs:
                geoms = geoms.to_crs(gridded.crs)
            for i, geom in enumerate(geoms):
                values[i] = self._region_mean(gridded, geom)

        result = table.copy()
        for j, name in enumerate(gridded.band_names):
            result[name] = values[:, j]
        return result

    @staticmethod
    def _region_mean(raster: LocalRaster, geom: Optional[BaseGeometry]) -> np.ndarray:
        empty = np.full(raster.count, np.nan)
        if geom is None or geom.is_empty:
            return empty
        if geom.geom_type == "Point":
            row, col = rowcol(raster.transform, geom.x, geom.y)
            if 0 <= row < raster.height and 0 <= col < raster.width:
                return raster.data[:, row, col]
            return empty
        inside = geometry_mask(
            [mapping(geom)],
            out_shape=(raster.height, raster.width),
            transform=raster.transform,
            invert=True,
        )
        if not inside.any():
            return empty
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=RuntimeWarning)
            return np.nanmean(raster.data[:, inside], axis=1)

    # -- raster algebra --------------------------------------------------------

    def multiply_constants(self, raster: LocalRaster, values: Sequence[float]) -> LocalRaster:
        if len(values) != raster.count:
            raise ConfigurationError(
                f"constants must have one value per band ({raster.count}), got {len(values)}"
            )
        weights = np.asarray(values, dtype="float64")[:, np.newaxis, np.newaxis]
        return raster.with_data(raster.data * weights)

    def sum_bands(self, raster: LocalRaster, name: str) -> LocalRaster:
        return raster.with_data(raster.data.sum(axis=0, keepdims=True), band_names=(name,))

    def add_constant(self, raster: LocalRaster, value: float, name: Optional[str] = None) -> LocalRaster:
        names = raster.band_names
        if name is not None:
            if raster.count != 1:
                raise ConfigurationError(f"Only single-band rasters can be renamed, got {raster.count} bands")
            names = (name,)
        return raster.with_data(raster.data + float(value), band_names=names)

    def cast(self, raster: LocalRaster, dtype: str) -> LocalRaster:
        np_dtype = np.dtype(dtype)
        if np.issubdtype(np_dtype, np.floating):
            data = raster.data.astype(np_dtype).astype("float64")
        else:
            low, high = _storage_range(dtype)
            data = np.where(np.isnan(raster.data), np.nan, np.clip(np.trunc(raster.data), low, high))
        return raster.with_data(data, dtypes=(str(np_dtype),) * raster.count)

    # -- tables ----------------------------------------------------------------

    def select_columns(self, table: gpd.GeoDataFrame, columns: Sequence[str]) -> gpd.GeoDataFrame:
        missing = [c for c in columns if c not in table.columns]
        if missing:
            raise ConfigurationError(
                f"column(s) not found: {', '.join(missing)}; available: {', '.join(map(str, table.columns))}"
            )
        keep = list(columns)
        geometry = _geometry_name(table)
        if geometry is not None and geometry not in keep:
            keep.append(geometry)
        return table[keep].copy()

    def filter_equals(self, table: gpd.GeoDataFrame, column: str, value: Any) -> gpd.GeoDataFrame:
        return table[table[column] == value].copy()

    def distinct_sorted(self, table: gpd.GeoDataFrame, column: str) -> List[Any]:
        values = pd.unique(table[column].dropna())
        return sorted(v.item() if hasattr(v, "item") else v for v in values)

    def drop_nulls(self, table: gpd.GeoDataFrame, columns: Sequence[str]) -> gpd.GeoDataFrame:
        present = [c for c in columns if c in table.columns]
        return table.dropna(subset=present).copy()

    def add_null_columns(self, table: gpd.GeoDataFrame, columns: Sequence[str]) -> gpd.GeoDataFrame:
        result = table.copy()
        for column in columns:
            if column not in result.columns:
                result[column] = np.nan
        return result

    def map_and_flatten(
        self,
        keys: Sequence[Any],
        func: Callable[[Any], gpd.GeoDataFrame],
        template: gpd.GeoDataFrame,
    ) -> gpd.GeoDataFrame:
        keys = list(keys)
        if not keys:
            return template.iloc[0:0].copy()

        parts: Dict[int, gpd.GeoDataFrame] = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(keys))) as executor:
            futures = {executor.submit(func, key): i for i, key in enumerate(keys)}
            for future in as_completed(futures):
                index = futures[future]
                parts[index] = future.result()
                LOGGER.debug("Partition %s produced %d row(s)", keys[index], len(parts[index]))

        # Key order, not completion order.
        return pd.concat([parts[i] for i in range(len(keys))], ignore_index=True)

    # -- export ----------------------------------------------------------------

    @staticmethod
    def _require_file(export: ExportConfig) -> Path:
        if export.destination != "file" or export.path is None:
            raise ConfigurationError(
                f"output.destination '{export.destination}' is not supported by the local engine; use 'file'"
            )
        path = Path(export.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def export_table(
        self,
        table: gpd.GeoDataFrame,
        export: ExportConfig,
        columns: Optional[Sequence[str]] = None,
        metadata: Optional[dict] = None,
    ) -> Path:
        path = self._require_file(export)
        geometry = _geometry_name(table)
        keep = [c for c in (columns or table.columns) if c in table.columns and c != geometry]
        suffix = path.suffix.lower()

        if suffix == ".csv":
            frame = pd.DataFrame(table[keep])
            if geometry is not None:
                frame[geometry] = table.geometry.to_wkt()
            frame.to_csv(path, index=False)
        elif suffix in {".gpkg", ".geojson"}:
            if geometry is None:
                raise ConfigurationError(f"output.path {path.name} needs a table with geometries")
            driver = "GPKG" if suffix == ".gpkg" else "GeoJSON"
            table[keep + [geometry]].to_file(path, driver=driver)
        else:
            raise ConfigurationError(
                f"output.path must end in .csv, .gpkg or .geojson, got '{path.suffix}'"
            )

        payload = {
            "description": export.description,
            "rows": len(table),
            "columns": keep,
            "crs": table.crs.to_string() if getattr(table, "crs", None) is not None else None,
        }
        payload.update(metadata or {})
        _write_metadata(path, payload)
        LOGGER.info("Wrote %d row(s) to %s", len(table), path)
        return path

    def export_raster(
        self,
        raster: LocalRaster,
        export: ExportConfig,
        region: Optional[LocalRegion],
        scale: float,
        crs: str,
        metadata: Optional[dict] = None,
    ) -> Path:
        path = self._require_file(export)
        gridded = to_grid(raster, crs, scale)
        data = gridded.data
        transform = gridded.transform

        if region is not None:
            window = _covering_window(region.geometry_in(gridded.crs).bounds, gridded)
            data = data[(slice(None),) + window.toslices()]
            transform = window_transform(window, transform)

        dtype = gridded.band_dtypes[0]
        if np.dtype(dtype) == np.dtype("float64"):
            dtype = RESULT_DTYPE
        nodata = storage_nodata(dtype)
        out = np.where(np.isnan(data), nodata, data).astype(dtype)

        profile = {
            "driver": "GTiff",
            "dtype": dtype,
            "width": out.shape[2],
            "height": out.shape[1],
            "count": out.shape[0],
            "crs": gridded.crs,
            "transform": transform,
            "nodata": nodata,
            "compress": "deflate",
        }
        with rasterio.open(path, "w", **profile) as dst:
            dst.write(out)
            for idx, name in enumerate(gridded.band_names, start=1):
                dst.set_band_description(idx, name)
            dst.update_tags(DESCRIPTION=export.description, CRS=str(crs), SCALE=str(scale))

        payload = {
            "description": export.description,
            "bands": list(gridded.band_names),
            "dtype": dtype,
            "crs": gridded.crs.to_string(),
            "scale": scale,
            "bounds": list(array_bounds(out.shape[1], out.shape[2], transform)),
        }
        payload.update(metadata or {})
        _write_metadata(path, payload)
        LOGGER.info("Wrote %s raster (%d x %d) to %s", dtype, out.shape[2], out.shape[1], path)
        return path


__all__ = [
    "DATE_TAG",
    "LocalRaster",
    "LocalTile",
    "LocalCollection",
    "LocalRegion",
    "LocalEngine",
    "read_raster",
    "to_grid",
    "align_to",
    "storage_nodata",
]
