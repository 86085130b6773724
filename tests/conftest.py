"""Shared test fixtures for forest_height_ml tests."""

from pathlib import Path
from typing import Dict, Optional, Sequence

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from affine import Affine
from rasterio.crs import CRS
from shapely.geometry import box

from forest_height_ml.config.models import EMBEDDING_BANDS

# 20 x 20 grid of 10 m pixels in NAD83(2011) / UTM 19N (central Maine).
GRID_CRS = "EPSG:6348"
GRID_SIZE = 20
PIXEL = 10.0
ORIGIN_X = 500000.0
ORIGIN_Y = 4900000.0
GRID_TRANSFORM = Affine(PIXEL, 0.0, ORIGIN_X, 0.0, -PIXEL, ORIGIN_Y)
HEIGHT_NODATA = -9999.0

# Forest occupies columns 0-9; LiDAR was flown in 2018 (rows 0-9) and 2020 (rows 10-19).
FOREST_COLUMNS = 10
FOREST_PIXELS = GRID_SIZE * FOREST_COLUMNS
YEARS = (2018, 2020)


def write_raster(
    path: Path,
    data: np.ndarray,
    band_names: Sequence[str],
    dtype: str = "float32",
    nodata: Optional[float] = None,
    tags: Optional[Dict[str, str]] = None,
    transform: Affine = GRID_TRANSFORM,
    crs: str = GRID_CRS,
) -> Path:
    """Write a (bands, rows, cols) array as a GeoTIFF with band descriptions."""
    profile = {
        "driver": "GTiff",
        "dtype": dtype,
        "width": data.shape[2],
        "height": data.shape[1],
        "count": data.shape[0],
        "crs": CRS.from_user_input(crs),
        "transform": transform,
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype(dtype))
        for idx, name in enumerate(band_names, start=1):
            dst.set_band_description(idx, name)
        if tags:
            dst.update_tags(**tags)
    return path


def embedding_values(year: int) -> np.ndarray:
    """Embedding stack for ``year``: A00 holds the year, A01 the column index / 10,
    A02..A63 hold ``band / 100``."""
    data = np.zeros((len(EMBEDDING_BANDS), GRID_SIZE, GRID_SIZE), dtype="float32")
    data[0] = year
    data[1] = np.tile(np.arange(GRID_SIZE, dtype="float32") / 10.0, (GRID_SIZE, 1))
    for band in range(2, len(EMBEDDING_BANDS)):
        data[band] = band / 100.0
    return data


def write_embedding_tile(directory: Path, year: int, use_tag: bool = False) -> Path:
    """Write one annual embedding tile, dated by tag or by file name."""
    directory.mkdir(parents=True, exist_ok=True)
    if use_tag:
        path = directory / f"tile_{year - 2000:02d}.tif"
        tags = {"ACQUISITION_DATE": f"{year}-01-01"}
    else:
        path = directory / f"embeddings_{year}.tif"
        tags = None
    return write_raster(path, embedding_values(year), EMBEDDING_BANDS, tags=tags)


def grid_polygon_wgs84(minx: float, miny: float, maxx: float, maxy: float) -> str:
    """WKT of a grid-CRS box expressed in EPSG:4326."""
    series = gpd.GeoSeries([box(minx, miny, maxx, maxy)], crs=GRID_CRS).to_crs("EPSG:4326")
    return series.iloc[0].wkt


@pytest.fixture
def height_raster_path(tmp_path: Path) -> Path:
    """Create a 2-band (height_m, year) float32 LiDAR height raster.

    - height_m: 5 + column index on forested pixels (columns 0-9), nodata elsewhere
    - year: 2018 on rows 0-9, 2020 on rows 10-19, nodata off-forest

    Returns:
        Path to the created GeoTIFF file.
    """
    rows, cols = np.mgrid[0:GRID_SIZE, 0:GRID_SIZE]
    forest = cols < FOREST_COLUMNS
    height = np.where(forest, 5.0 + cols, HEIGHT_NODATA)
    year = np.where(forest, np.where(rows < GRID_SIZE // 2, YEARS[0], YEARS[1]), HEIGHT_NODATA)
    return write_raster(
        tmp_path / "height_m.tif",
        np.stack([height, year]),
        ("height_m", "year"),
        nodata=HEIGHT_NODATA,
    )


@pytest.fixture
def embedding_dir(tmp_path: Path) -> Path:
    """Directory with a 2018 tile (dated by file name) and a 2020 tile (dated by tag)."""
    directory = tmp_path / "embeddings"
    write_embedding_tile(directory, YEARS[0])
    write_embedding_tile(directory, YEARS[1], use_tag=True)
    return directory


@pytest.fixture
def embedding_dir_missing_2020(tmp_path: Path) -> Path:
    """Directory holding only the 2018 embedding tile."""
    directory = tmp_path / "embeddings_2018_only"
    write_embedding_tile(directory, YEARS[0])
    return directory


@pytest.fixture
def landcover_path(tmp_path: Path) -> Path:
    """NLCD-style uint8 land cover: deciduous forest (41) on rows 0-9, pasture (81) below."""
    rows = np.mgrid[0:GRID_SIZE, 0:GRID_SIZE][0]
    classes = np.where(rows < GRID_SIZE // 2, 41, 81)[np.newaxis]
    return write_raster(tmp_path / "nlcd_2024.tif", classes, ("landcover",), dtype="uint8")


@pytest.fixture
def left_half_aoi() -> str:
    """AOI (EPSG:4326 WKT) covering grid columns 0-9 and every row."""
    return grid_polygon_wgs84(
        ORIGIN_X - 10.0,
        ORIGIN_Y - GRID_SIZE * PIXEL + 2.0,
        ORIGIN_X + FOREST_COLUMNS * PIXEL - 2.0,
        ORIGIN_Y - 2.0,
    )


@pytest.fixture
def states_gpkg(tmp_path: Path) -> Path:
    """Vector file with a 'Maine' feature covering the grid and an unrelated one."""
    grid = gpd.GeoSeries(
        [box(ORIGIN_X - 50.0, ORIGIN_Y - 250.0, ORIGIN_X + 250.0, ORIGIN_Y + 50.0)],
        crs=GRID_CRS,
    ).to_crs("EPSG:4326")
    gdf = gpd.GeoDataFrame(
        {"NAME": ["Maine", "Vermont"]},
        geometry=[grid.iloc[0], box(-73.4, 42.7, -71.5, 45.0)],
        crs="EPSG:4326",
    )
    path = tmp_path / "states.gpkg"
    gdf.to_file(path, driver="GPKG")
    return path


@pytest.fixture
def raster_writer():
    """The :func:`write_raster` helper, for tests that build their own inputs."""
    return write_raster
